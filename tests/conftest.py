"""
Shared fixtures

Sealed tokens were produced with the OpenSSL CLI:

    printf '%s' "$TOKEN" | openssl enc -aes-256-cbc -md md5 -pass pass:hunter2 -a -A
"""

import pytest
from fastapi.testclient import TestClient

from waitroom.adapters.memory import InMemorySessionStore
from waitroom.config import Settings
from waitroom.main import create_app

PASSPHRASE = "hunter2"

SEALED_TOKENS = {
    "guest-7f3a9c": "U2FsdGVkX1/Kt7XWqVh1N8J26bfscjU78ond+8jI4FY=",
    "1234567890abcdef": "U2FsdGVkX1+hgiX2B1XX13EIjPDHH283a+VOKsUZswwvmaFhIqohYnG9VHiqzvZ2",
    "訪客-001": "U2FsdGVkX19pgfTvyNhuVCeWE6RDRahejzahvb79yGc=",
}


class FakeClock:
    """Settable millisecond clock"""

    def __init__(self, now: int = 1_760_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def passphrase():
    return PASSPHRASE


@pytest.fixture
def sealed_tokens():
    return dict(SEALED_TOKENS)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def settings():
    return Settings(
        TOKEN_PASSPHRASE=PASSPHRASE,
        SESSION_STORE="memory",
        SWEEP_ENABLED=False,
        LOG_JSON=False,
        REQUIRE_AUTH=False,
        API_KEYS="",
    )


@pytest.fixture
def app(settings, store, clock):
    return create_app(settings, store=store, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
