from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import jwt
import requests

from services.errors import IssuanceError, ParseError
from services.models import TokenResponse

logger = logging.getLogger(__name__)

APIKEY_GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"
DEFAULT_REFRESH_MARGIN_SECONDS = 60.0


def decode_expiry(token: str) -> float:
    """Return the `exp` claim of a bearer token (epoch seconds) without verifying its signature."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except jwt.PyJWTError as exc:
        raise ParseError(f"Bearer token could not be decoded: {exc}") from exc

    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise ParseError("Bearer token has no numeric 'exp' claim")
    return float(exp)


@dataclass
class AccessToken:
    token: str
    expires_at_epoch: float  # decoded `exp` claim, epoch seconds

    @classmethod
    def from_jwt(cls, token: str) -> "AccessToken":
        return cls(token=token, expires_at_epoch=decode_expiry(token))

    def is_stale(self, now: float, margin_seconds: float, refresh_ahead: bool = False) -> bool:
        if refresh_ahead:
            return self.expires_at_epoch <= now + margin_seconds
        # Default policy: only once expiry lies a full margin in the past.
        return self.expires_at_epoch <= now - margin_seconds


class IamTokenIssuer:
    """Exchanges an IBM Cloud API key for an IAM bearer token."""

    def __init__(
        self,
        token_url: str,
        apikey: str,
        timeout_seconds: float = 30.0,
        verify_ssl: bool = True,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._token_url = token_url
        self._apikey = apikey
        self._timeout_seconds = timeout_seconds
        self._verify_ssl = verify_ssl
        self._session = session or requests.Session()

    def __call__(self) -> str:
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }
        data = {
            "grant_type": APIKEY_GRANT_TYPE,
            "apikey": self._apikey,
        }

        try:
            resp = self._session.post(
                self._token_url,
                headers=headers,
                data=data,
                timeout=self._timeout_seconds,
                verify=self._verify_ssl,
            )
        except requests.RequestException as exc:
            raise IssuanceError(f"Failed to reach IAM token endpoint: {exc}") from exc

        if resp.status_code != 200:
            raise IssuanceError(f"Token request failed: HTTP {resp.status_code} - {resp.text}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise IssuanceError("Token response was not valid JSON") from exc

        try:
            return TokenResponse.from_payload(payload).access_token
        except ParseError as exc:
            raise IssuanceError(f"Invalid token response: {exc}") from exc


class TokenCache:
    """
    Holds one bearer token in memory and reissues it lazily.

    A cached token is returned until it goes stale (see AccessToken.is_stale).
    Refreshes are serialized: callers that find the token stale while another
    refresh is in flight wait for it and reuse its result. A failed issuance
    leaves the previous token in place.
    """

    def __init__(
        self,
        issuer: Callable[[], str],
        margin_seconds: float = DEFAULT_REFRESH_MARGIN_SECONDS,
        refresh_ahead: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._issuer = issuer
        self._margin_seconds = margin_seconds
        self._refresh_ahead = refresh_ahead
        self._clock = clock
        self._cached: Optional[AccessToken] = None
        self._lock = threading.Lock()

    @property
    def cached(self) -> Optional[AccessToken]:
        return self._cached

    def get_token(self, force: bool = False) -> str:
        if not force:
            fresh = self._fresh_cached()
            if fresh is not None:
                return fresh.token

        with self._lock:
            if not force:
                # Another caller may have refreshed while we waited.
                fresh = self._fresh_cached()
                if fresh is not None:
                    return fresh.token

            token = self._issue()
            self._cached = token
            return token.token

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None

    def _fresh_cached(self) -> Optional[AccessToken]:
        cached = self._cached
        if cached is None:
            return None
        if cached.is_stale(self._clock(), self._margin_seconds, self._refresh_ahead):
            logger.info("token | cached token stale | expires_at=%.0f", cached.expires_at_epoch)
            return None
        return cached

    def _issue(self) -> AccessToken:
        logger.info("token | issuing new token")
        try:
            raw = self._issuer()
        except IssuanceError:
            logger.error("token | issuance failed")
            raise
        except Exception as exc:
            logger.error("token | issuance failed")
            raise IssuanceError(f"Token issuance failed: {exc}") from exc

        try:
            token = AccessToken.from_jwt(raw)
        except ParseError as exc:
            raise IssuanceError(f"Issued token could not be used: {exc}") from exc

        logger.info("token | ok | expires_at=%.0f", token.expires_at_epoch)
        return token
