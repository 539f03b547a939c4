"""Tests for API key authentication."""
import pytest
from httpx import AsyncClient, ASGITransport
from waitroom.auth.api_key import APIKeyRegistry, API_KEY_HEADER
from waitroom.config import Settings
from waitroom.main import create_app


@pytest.fixture
def auth_app(settings, store, clock):
    secured = settings.model_copy(update={"REQUIRE_AUTH": True, "API_KEYS": "key-one, key-two"})
    return create_app(secured, store=store, clock=clock)


@pytest.mark.asyncio
async def test_auth_disabled_allows_access(app):
    """Test that requests work when auth is disabled (default)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/api/users", json={"token": "guest"})
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_auth_enabled_rejects_without_key(auth_app):
    """Test that requests are rejected when auth is enabled but no key provided."""
    transport = ASGITransport(app=auth_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/api/users", json={"token": "guest"})
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "ApiKey"


@pytest.mark.asyncio
async def test_invalid_api_key_rejected(auth_app):
    transport = ASGITransport(app=auth_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            "/api/users/cleanup",
            headers={API_KEY_HEADER: "key-three"}
        )
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_valid_api_key_allows_access(auth_app, store):
    """Test that valid API key allows access."""
    transport = ASGITransport(app=auth_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        for key in ("key-one", "key-two"):
            response = await client.post(
                "/api/users",
                json={"token": f"guest-{key}"},
                headers={API_KEY_HEADER: key}
            )
            assert response.status_code == 200

    assert len(store) == 2


@pytest.mark.asyncio
async def test_status_check_is_public(auth_app):
    """Clients check status with their token only."""
    transport = ASGITransport(app=auth_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/api/users/check", json={})
        assert response.status_code == 400


@pytest.mark.asyncio
async def test_required_without_keys_allows_access(settings, store, clock):
    """Auth enabled with no keys configured is not enforced."""
    secured = settings.model_copy(update={"REQUIRE_AUTH": True, "API_KEYS": ""})
    transport = ASGITransport(app=create_app(secured, store=store, clock=clock))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/api/users", json={"token": "guest"})
        assert response.status_code == 200


def test_api_key_registry_validation():
    """Test API key registry validation."""
    registry = APIKeyRegistry(Settings(API_KEYS="valid-key-456"))

    assert registry.validate("valid-key-456") is True
    assert registry.validate("invalid-key") is False
    assert registry.validate("") is False


def test_api_key_registry_count():
    """Test API key registry count ignores blanks."""
    registry = APIKeyRegistry(Settings(API_KEYS=" a, b ,,c, "))
    assert registry.count() == 3


def test_api_key_registry_required_override():
    registry = APIKeyRegistry(Settings(REQUIRE_AUTH=False), required=True)
    assert registry.required is True


def test_api_key_case_sensitive():
    """Test that API keys are case-sensitive."""
    registry = APIKeyRegistry(Settings(API_KEYS="CaseSensitiveKey"))

    assert registry.validate("CaseSensitiveKey") is True
    assert registry.validate("casesensitivekey") is False
