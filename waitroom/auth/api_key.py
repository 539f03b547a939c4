"""API key authentication for server-to-server endpoints."""
from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader
from typing import Optional
import secrets
import structlog
from ..config import Settings

log = structlog.get_logger()

API_KEY_HEADER = "X-Waitroom-Key"

# API key header scheme
api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


class APIKeyRegistry:
    """
    In-memory API key registry.

    Keys are loaded from settings at startup.
    """

    def __init__(self, settings: Settings, required: bool | None = None):
        """
        Initialize API key registry.

        Args:
            settings: Source of API_KEYS and REQUIRE_AUTH
            required: Override for REQUIRE_AUTH
        """
        self._keys: set[str] = set()
        self.required = settings.REQUIRE_AUTH if required is None else required
        self._load_keys(settings.API_KEYS)

    def _load_keys(self, raw: str):
        """Load keys from a comma-separated list."""
        for key in raw.split(","):
            key = key.strip()
            if key:
                self._keys.add(key)

        log.info("api_keys.loaded", count=len(self._keys), required=self.required)

    def validate(self, key: str) -> bool:
        """
        Validate an API key.

        Args:
            key: API key to validate

        Returns:
            True if key is valid
        """
        return any(secrets.compare_digest(key, known) for known in self._keys)

    def count(self) -> int:
        """Get total number of registered keys."""
        return len(self._keys)


async def verify_api_key(
    request: Request,
    api_key: Optional[str] = Security(api_key_header)
) -> str:
    """
    Dependency to verify API key from request header.

    Args:
        request: Incoming request (registry lives on app.state)
        api_key: API key from X-Waitroom-Key header

    Returns:
        Validated API key, or "anonymous" when auth is not enforced

    Raises:
        HTTPException: If API key is missing or invalid
    """
    registry: APIKeyRegistry = request.app.state.api_keys

    # Auth disabled, or enabled with no keys configured
    if not registry.required or registry.count() == 0:
        log.debug("auth.skipped", required=registry.required)
        return "anonymous"

    if not api_key:
        log.warning("auth.failed", reason="missing_key")
        raise HTTPException(
            status_code=401,
            detail=f"Missing API key. Provide {API_KEY_HEADER} header.",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    if not registry.validate(api_key):
        log.warning("auth.failed", reason="invalid_key")
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    log.debug("auth.success")
    return api_key
