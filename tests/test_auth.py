import threading
import time
import urllib.parse

import pytest
import requests
import responses

from services.auth import APIKEY_GRANT_TYPE, AccessToken, IamTokenIssuer, TokenCache, decode_expiry
from services.errors import IssuanceError, ParseError

TOKEN_URL = "https://iam.test/identity/token"


class TestDecodeExpiry:
    def test_returns_exp_claim(self, make_token):
        assert decode_expiry(make_token(1_700_000_123)) == 1_700_000_123.0

    def test_expired_token_still_decodes(self, make_token):
        assert decode_expiry(make_token(10)) == 10.0

    def test_missing_exp_is_parse_error(self, make_token):
        with pytest.raises(ParseError, match="exp"):
            decode_expiry(make_token(None, sub="x"))

    def test_garbage_is_parse_error(self):
        with pytest.raises(ParseError):
            decode_expiry("not-a-jwt")


class TestAccessTokenStaleness:
    NOW = 1_000_000.0

    def test_default_policy_keeps_token_until_margin_has_passed(self):
        token = AccessToken(token="t", expires_at_epoch=self.NOW - 30)

        assert token.is_stale(self.NOW, 60) is False

    def test_default_policy_refreshes_at_margin_boundary(self):
        token = AccessToken(token="t", expires_at_epoch=self.NOW - 60)

        assert token.is_stale(self.NOW, 60) is True

    def test_refresh_ahead_policy_refreshes_within_margin_of_expiry(self):
        token = AccessToken(token="t", expires_at_epoch=self.NOW + 30)

        assert token.is_stale(self.NOW, 60, refresh_ahead=True) is True
        assert token.is_stale(self.NOW, 60) is False

    def test_refresh_ahead_policy_keeps_token_with_time_to_spare(self):
        token = AccessToken(token="t", expires_at_epoch=self.NOW + 600)

        assert token.is_stale(self.NOW, 60, refresh_ahead=True) is False


class TestTokenCache:
    def test_first_call_issues(self, clock, make_issuer):
        issuer = make_issuer(exp=clock.now + 3600)
        cache = TokenCache(issuer, clock=clock)

        assert cache.cached is None
        token = cache.get_token()

        assert issuer.calls == 1
        assert cache.cached.token == token

    def test_second_call_returns_cached_token(self, clock, make_issuer):
        issuer = make_issuer(exp=clock.now + 3600)
        cache = TokenCache(issuer, clock=clock)

        first = cache.get_token()
        second = cache.get_token()

        assert first == second
        assert issuer.calls == 1

    def test_force_always_reissues(self, clock, make_issuer):
        issuer = make_issuer(exp=clock.now + 3600)
        cache = TokenCache(issuer, clock=clock)

        first = cache.get_token()
        forced = cache.get_token(force=True)

        assert forced != first
        assert issuer.calls == 2
        assert cache.get_token() == forced
        assert issuer.calls == 2

    def test_token_more_than_a_minute_from_expiry_is_not_reissued(self, clock, make_issuer):
        issuer = make_issuer(exp=clock.now + 61)
        cache = TokenCache(issuer, clock=clock)
        token = cache.get_token()

        clock.advance(30)

        assert cache.get_token() == token
        assert issuer.calls == 1

    def test_token_expired_past_margin_is_reissued_once(self, clock, make_issuer):
        issuer = make_issuer(exp=clock.now + 100)
        cache = TokenCache(issuer, clock=clock)
        old = cache.get_token()

        clock.advance(160)
        issuer.exp = clock.now + 3600

        new = cache.get_token()
        assert new != old
        assert issuer.calls == 2
        assert cache.get_token() == new
        assert issuer.calls == 2

    def test_default_policy_serves_token_inside_margin_after_expiry(self, clock, make_issuer):
        issuer = make_issuer(exp=clock.now + 100)
        cache = TokenCache(issuer, clock=clock)
        token = cache.get_token()

        clock.advance(130)

        assert cache.get_token() == token
        assert issuer.calls == 1

    def test_refresh_ahead_reissues_before_expiry(self, clock, make_issuer):
        issuer = make_issuer(exp=clock.now + 100)
        cache = TokenCache(issuer, refresh_ahead=True, clock=clock)
        cache.get_token()

        clock.advance(50)
        cache.get_token()

        assert issuer.calls == 2

    def test_issuer_failure_keeps_previous_token(self, clock, make_issuer):
        issuer = make_issuer(exp=clock.now + 100)
        cache = TokenCache(issuer, clock=clock)
        token = cache.get_token()

        def broken():
            raise requests.ConnectionError("iam unreachable")

        cache._issuer = broken
        clock.advance(500)

        with pytest.raises(IssuanceError) as excinfo:
            cache.get_token()
        assert isinstance(excinfo.value.__cause__, requests.ConnectionError)
        assert cache.cached.token == token

        with pytest.raises(IssuanceError):
            cache.get_token(force=True)
        assert cache.cached.token == token

    def test_issuance_error_propagates_unwrapped(self, clock):
        original = IssuanceError("HTTP 400")

        def broken():
            raise original

        with pytest.raises(IssuanceError) as excinfo:
            TokenCache(broken, clock=clock).get_token()
        assert excinfo.value is original

    def test_undecodable_issued_token_is_issuance_error(self, clock):
        cache = TokenCache(lambda: "opaque-token", clock=clock)

        with pytest.raises(IssuanceError) as excinfo:
            cache.get_token()
        assert isinstance(excinfo.value.__cause__, ParseError)
        assert cache.cached is None

    def test_invalidate_forces_next_issue(self, clock, make_issuer):
        issuer = make_issuer(exp=clock.now + 3600)
        cache = TokenCache(issuer, clock=clock)
        cache.get_token()

        cache.invalidate()
        cache.get_token()

        assert issuer.calls == 2

    def test_concurrent_callers_share_one_issuance(self, make_token):
        release = threading.Event()
        calls = []

        def slow_issuer():
            calls.append(1)
            release.wait(timeout=5)
            return make_token(time.time() + 3600)

        cache = TokenCache(slow_issuer)
        results = []
        threads = [threading.Thread(target=lambda: results.append(cache.get_token())) for _ in range(8)]
        for t in threads:
            t.start()
        time.sleep(0.05)
        release.set()
        for t in threads:
            t.join(timeout=5)

        assert len(calls) == 1
        assert len(results) == 8
        assert len(set(results)) == 1


class TestIamTokenIssuer:
    @responses.activate
    def test_posts_apikey_grant_and_returns_access_token(self):
        responses.add(responses.POST, TOKEN_URL, json={"access_token": "abc.def.ghi", "expires_in": 3600}, status=200)

        token = IamTokenIssuer(TOKEN_URL, "my-key")()

        assert token == "abc.def.ghi"
        assert len(responses.calls) == 1
        request = responses.calls[0].request
        assert request.headers["Accept"] == "application/json"
        form = urllib.parse.parse_qs(request.body)
        assert form == {"grant_type": [APIKEY_GRANT_TYPE], "apikey": ["my-key"]}

    @responses.activate
    def test_http_error_raises_issuance_error(self):
        responses.add(responses.POST, TOKEN_URL, json={"errorMessage": "bad key"}, status=400)

        with pytest.raises(IssuanceError, match="HTTP 400"):
            IamTokenIssuer(TOKEN_URL, "bad")()

    @responses.activate
    def test_non_json_body_raises_issuance_error(self):
        responses.add(responses.POST, TOKEN_URL, body="<html>", status=200)

        with pytest.raises(IssuanceError, match="not valid JSON"):
            IamTokenIssuer(TOKEN_URL, "k")()

    @responses.activate
    def test_missing_access_token_raises_issuance_error(self):
        responses.add(responses.POST, TOKEN_URL, json={"token_type": "Bearer"}, status=200)

        with pytest.raises(IssuanceError) as excinfo:
            IamTokenIssuer(TOKEN_URL, "k")()
        assert isinstance(excinfo.value.__cause__, ParseError)

    @responses.activate
    def test_connection_failure_raises_issuance_error(self):
        responses.add(responses.POST, TOKEN_URL, body=requests.ConnectionError("refused"))

        with pytest.raises(IssuanceError, match="Failed to reach"):
            IamTokenIssuer(TOKEN_URL, "k")()
