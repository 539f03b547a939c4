"""Session store selection."""
import structlog
from ..adapters.base import SessionStore
from ..adapters.memory import InMemorySessionStore
from ..adapters.redis_store import RedisSessionStore
from ..adapters.d1 import D1SessionStore
from ..config import Settings

log = structlog.get_logger()


def create_session_store(settings: Settings) -> SessionStore:
    """
    Create the session store based on configuration.

    Returns:
        SessionStore instance based on the SESSION_STORE setting
    """
    if settings.SESSION_STORE == "redis":
        if not settings.REDIS_URL:
            log.warning(
                "store.fallback",
                requested="redis",
                actual="memory",
                reason="REDIS_URL not configured"
            )
            return InMemorySessionStore()

        log.info("store.selected", type="redis")
        return RedisSessionStore(redis_url=str(settings.REDIS_URL))

    if settings.SESSION_STORE == "d1":
        if not (settings.D1_ACCOUNT_ID and settings.D1_DATABASE_ID
                and settings.D1_API_TOKEN.get_secret_value()):
            log.warning(
                "store.fallback",
                requested="d1",
                actual="memory",
                reason="D1 credentials not configured"
            )
            return InMemorySessionStore()

        log.info("store.selected", type="d1", table=settings.D1_TABLE)
        return D1SessionStore(
            account_id=settings.D1_ACCOUNT_ID,
            database_id=settings.D1_DATABASE_ID,
            api_token=settings.D1_API_TOKEN.get_secret_value(),
            table=settings.D1_TABLE,
        )

    log.info("store.selected", type="memory")
    return InMemorySessionStore()
