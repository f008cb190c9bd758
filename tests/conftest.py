import itertools

import jwt
import pytest

from config.settings import Settings

SIGNING_KEY = "test-signing-key-that-is-long-enough-for-hs256"
NOW = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingIssuer:
    """Issues a distinct signed token per call, all expiring at `exp`."""

    def __init__(self, exp: float) -> None:
        self.exp = exp
        self.calls = 0
        self._seq = itertools.count(1)

    def __call__(self) -> str:
        self.calls += 1
        return jwt.encode({"exp": self.exp, "jti": str(next(self._seq))}, SIGNING_KEY, algorithm="HS256")


@pytest.fixture
def make_token():
    def _make(exp, **claims):
        payload = dict(claims)
        if exp is not None:
            payload["exp"] = exp
        return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")

    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        apikey="test-apikey",
        iam_url="https://iam.test",
        resource_controller_url="https://rc.test",
        log_path="logs/test.log",
    )


@pytest.fixture
def make_issuer():
    return CountingIssuer
