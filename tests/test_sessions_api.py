"""
Tests for the session HTTP endpoints
"""

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport
from pydantic import SecretStr

from waitroom.adapters.base import StoreError
from waitroom.adapters.memory import InMemorySessionStore
from waitroom.main import create_app
from waitroom.session_models import SessionRecord

WINDOW_MS = 600_000


class UnavailableStore(InMemorySessionStore):

    async def get(self, token):
        raise StoreError("connection refused")

    async def create(self, token, created_time):
        raise StoreError("connection refused")

    async def delete_unentered(self):
        raise StoreError("connection refused")


def _entered(token, enter_time, window_ms=WINDOW_MS):
    return SessionRecord(
        token=token,
        created_time=enter_time - 1_000,
        enter_time=enter_time,
        expired_time=enter_time + window_ms,
    )


class TestRootEndpoint:

    def test_banner(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert r.text == "Waiting Room Gate API"


class TestRegister:

    def test_register(self, client, store, clock):
        r = client.post("/api/users", json={"token": "guest-7f3a9c"})

        assert r.status_code == 200
        assert r.json() == {
            "success": True,
            "token": "guest-7f3a9c",
            "created_time": clock.now,
        }
        assert len(store) == 1

    def test_register_duplicate(self, client):
        client.post("/api/users", json={"token": "guest-7f3a9c"})
        r = client.post("/api/users", json={"token": "guest-7f3a9c"})

        assert r.status_code == 409
        assert r.json()["error"] == "Token already registered"

    @pytest.mark.parametrize("body", [{}, {"token": ""}, {"token": None}])
    def test_register_missing_token(self, client, body):
        r = client.post("/api/users", json=body)

        assert r.status_code == 400
        assert r.json() == {"error": "Missing token"}

    def test_registered_token_can_enter(self, client, sealed_tokens):
        client.post("/api/users", json={"token": "guest-7f3a9c"})

        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "enter", "token": sealed_tokens["guest-7f3a9c"]})
            assert websocket.receive_json()["type"] == "success"


class TestCheckStatus:

    def test_active(self, client, store, clock, sealed_tokens):
        store.put(_entered("guest-7f3a9c", clock.now - 60_000))

        r = client.post("/api/users/check", json={"token": sealed_tokens["guest-7f3a9c"]})

        assert r.status_code == 200
        assert r.json() == {
            "valid": True,
            "token": "guest-7f3a9c",
            "expired_time": clock.now - 60_000 + WINDOW_MS,
            "remaining_time": WINDOW_MS - 60_000,
        }

    def test_not_found(self, client, sealed_tokens):
        r = client.post("/api/users/check", json={"token": sealed_tokens["guest-7f3a9c"]})

        assert r.status_code == 404
        assert r.json() == {"valid": False, "error": "User not found"}

    def test_not_entered_yet(self, client, store, clock, sealed_tokens):
        store.put(SessionRecord(token="guest-7f3a9c", created_time=clock.now))

        r = client.post("/api/users/check", json={"token": sealed_tokens["guest-7f3a9c"]})

        assert r.status_code == 400
        assert r.json() == {"valid": False, "error": "No expiration time set"}

    def test_check_does_not_enter(self, client, store, clock, sealed_tokens):
        store.put(SessionRecord(token="guest-7f3a9c", created_time=clock.now))

        for _ in range(3):
            client.post("/api/users/check", json={"token": sealed_tokens["guest-7f3a9c"]})

        record = store._records["guest-7f3a9c"]
        assert record.enter_time is None
        assert record.expired_time is None

    def test_expired(self, client, store, clock, sealed_tokens):
        store.put(_entered("guest-7f3a9c", clock.now - WINDOW_MS))

        r = client.post("/api/users/check", json={"token": sealed_tokens["guest-7f3a9c"]})

        assert r.status_code == 403
        assert r.json() == {
            "valid": False,
            "error": "Token has expired",
            "expired_time": clock.now,
        }

    def test_window_closes_over_time(self, client, store, clock, sealed_tokens):
        store.put(_entered("guest-7f3a9c", clock.now))
        body = {"token": sealed_tokens["guest-7f3a9c"]}

        clock.advance(WINDOW_MS - 1)
        assert client.post("/api/users/check", json=body).json()["remaining_time"] == 1

        clock.advance(1)
        assert client.post("/api/users/check", json=body).status_code == 403

    def test_unicode_token(self, client, store, clock, sealed_tokens):
        store.put(_entered("訪客-001", clock.now))

        r = client.post("/api/users/check", json={"token": sealed_tokens["訪客-001"]})

        assert r.status_code == 200
        assert r.json()["token"] == "訪客-001"

    @pytest.mark.parametrize("token", [
        "not base64!!",
        "QUJDREVGR0hJSktMTU5PUFFSU1RVVldY",  # base64 without the salted header
        "U2FsdGVkX18BAQEBAQEBAQICAgI=",  # truncated ciphertext
    ])
    def test_invalid_token(self, client, app, token):
        r = client.post("/api/users/check", json={"token": token})

        assert r.status_code == 400
        assert r.json() == {"valid": False, "error": "Invalid token"}

    def test_wrong_passphrase(self, settings, store, clock, sealed_tokens):
        other = settings.model_copy(update={"TOKEN_PASSPHRASE": SecretStr("wrong")})
        store.put(_entered("guest-7f3a9c", clock.now))

        with TestClient(create_app(other, store=store, clock=clock)) as client:
            r = client.post("/api/users/check", json={"token": sealed_tokens["guest-7f3a9c"]})

        assert r.status_code == 400
        assert r.json()["error"] == "Invalid token"

    def test_missing_token(self, client):
        r = client.post("/api/users/check", json={})

        assert r.status_code == 400
        assert r.json() == {"valid": False, "error": "Missing token"}


class TestCleanup:

    def test_cleanup_removes_unentered(self, client, store, clock):
        store.put(SessionRecord(token="pending", created_time=clock.now))
        store.put(_entered("entered", clock.now))

        r = client.post("/api/users/cleanup")

        assert r.status_code == 200
        assert r.json() == {"deleted": 1}
        assert len(store) == 1


class TestStoreFailure:

    @pytest.fixture
    def failing_client(self, settings, clock):
        app = create_app(settings, store=UnavailableStore(), clock=clock)
        with TestClient(app) as client:
            yield client

    def test_check(self, failing_client, sealed_tokens):
        r = failing_client.post(
            "/api/users/check", json={"token": sealed_tokens["guest-7f3a9c"]}
        )

        assert r.status_code == 500
        assert r.json() == {"valid": False, "error": "Session store unavailable"}

    def test_undecryptable_token_never_reaches_store(self, failing_client):
        r = failing_client.post("/api/users/check", json={"token": "not base64!!"})

        assert r.status_code == 400
        assert r.json()["error"] == "Invalid token"

    def test_register(self, failing_client):
        r = failing_client.post("/api/users", json={"token": "guest"})
        assert r.status_code == 500

    def test_cleanup(self, failing_client):
        r = failing_client.post("/api/users/cleanup")
        assert r.status_code == 500

    def test_enter(self, failing_client, sealed_tokens):
        with failing_client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "enter", "token": sealed_tokens["guest-7f3a9c"]})
            reply = websocket.receive_json()

        assert reply["type"] == "error"
        assert reply["code"] == "store_error"


class TestCors:

    def test_preflight(self, client):
        r = client.options(
            "/api/users/check",
            headers={
                "Origin": "https://queue.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )

        assert r.status_code == 200
        assert r.headers["access-control-allow-origin"] == "*"
        assert "POST" in r.headers["access-control-allow-methods"]

    def test_simple_request(self, client):
        r = client.post(
            "/api/users/check",
            json={},
            headers={"Origin": "https://queue.example.com"},
        )
        assert r.headers["access-control-allow-origin"] == "*"


@pytest.mark.asyncio
async def test_check_over_async_client(app, store, clock, sealed_tokens):
    """Status check through the ASGI transport"""
    store.put(_entered("1234567890abcdef", clock.now))

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            "/api/users/check",
            json={"token": sealed_tokens["1234567890abcdef"]},
        )

    assert response.status_code == 200
    assert response.json()["remaining_time"] == WINDOW_MS
