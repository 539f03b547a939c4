"""Redis session store adapter."""
import structlog
from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError
from .base import SessionStore, StoreError, DuplicateSessionError
from ..session_models import SessionRecord
from ..config import get_settings

log = structlog.get_logger()

# KEYS: record, pending set. ARGV: token, created_time
_CREATE_LUA = """
if redis.call('EXISTS', KEYS[1]) == 1 then
  return 0
end
redis.call('HSET', KEYS[1], 'token', ARGV[1], 'created_time', ARGV[2])
redis.call('SADD', KEYS[2], ARGV[1])
return 1
"""

# KEYS: record, pending set. ARGV: enter_time, expired_time, token
_ENTER_LUA = """
if redis.call('EXISTS', KEYS[1]) == 0 then
  return 0
end
if redis.call('HEXISTS', KEYS[1], 'enter_time') == 1 then
  return 0
end
redis.call('HSET', KEYS[1], 'enter_time', ARGV[1], 'expired_time', ARGV[2])
redis.call('SREM', KEYS[2], ARGV[3])
return 1
"""

# KEYS: pending set. ARGV: record key prefix
_SWEEP_LUA = """
local removed = 0
for _, token in ipairs(redis.call('SMEMBERS', KEYS[1])) do
  local key = ARGV[1] .. token
  if redis.call('HEXISTS', key, 'enter_time') == 0
     and redis.call('HEXISTS', key, 'expired_time') == 0 then
    removed = removed + redis.call('DEL', key)
  end
  redis.call('SREM', KEYS[1], token)
end
return removed
"""


class RedisSessionStore(SessionStore):
    """Redis implementation of the session store.

    Each session is a hash at ``waitroom:user:{token}``. Tokens that have
    not entered yet are also members of ``waitroom:pending`` so the sweeper
    does not need to scan the keyspace. Writes run as Lua scripts so the
    first-enter update is conditional and atomic.
    """

    def __init__(self, redis_url: str | None = None, prefix: str = "waitroom"):
        """
        Initialize Redis session store.

        Args:
            redis_url: Redis connection URL (defaults to settings.REDIS_URL)
            prefix: Key namespace
        """
        self.redis_url = redis_url or str(get_settings().REDIS_URL)
        self._client: Redis | None = None
        self._record_prefix = f"{prefix}:user:"
        self._pending_key = f"{prefix}:pending"
        self._create_script = None
        self._enter_script = None
        self._sweep_script = None

    def _get_client(self) -> Redis:
        """Get or create Redis client and its scripts."""
        if self._client is None:
            self._client = Redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )
            self._create_script = self._client.register_script(_CREATE_LUA)
            self._enter_script = self._client.register_script(_ENTER_LUA)
            self._sweep_script = self._client.register_script(_SWEEP_LUA)
        return self._client

    def _key(self, token: str) -> str:
        return f"{self._record_prefix}{token}"

    async def get(self, token: str) -> SessionRecord | None:
        client = self._get_client()
        try:
            fields = await client.hgetall(self._key(token))
        except RedisError as e:
            log.error("redis.get_failed", error=str(e), token=token[:8])
            raise StoreError(f"Session lookup failed: {e}") from e

        if not fields:
            return None

        try:
            return SessionRecord(
                token=fields.get("token", token),
                created_time=fields["created_time"],
                enter_time=fields.get("enter_time"),
                expired_time=fields.get("expired_time"),
            )
        except (KeyError, ValidationError) as e:
            raise StoreError(f"Malformed session record for {token[:8]}...") from e

    async def create(self, token: str, created_time: int) -> SessionRecord:
        self._get_client()
        try:
            created = await self._create_script(
                keys=[self._key(token), self._pending_key],
                args=[token, created_time],
            )
        except RedisError as e:
            log.error("redis.create_failed", error=str(e), token=token[:8])
            raise StoreError(f"Session create failed: {e}") from e

        if not int(created):
            raise DuplicateSessionError(f"Session {token[:8]}... already exists")

        log.info("session.created", token=token[:8], adapter="redis")
        return SessionRecord(token=token, created_time=created_time)

    async def mark_entered(self, token: str, enter_time: int, expired_time: int) -> bool:
        self._get_client()
        try:
            written = await self._enter_script(
                keys=[self._key(token), self._pending_key],
                args=[enter_time, expired_time, token],
            )
        except RedisError as e:
            log.error("redis.enter_failed", error=str(e), token=token[:8])
            raise StoreError(f"Session update failed: {e}") from e
        return bool(int(written))

    async def delete_unentered(self) -> int:
        self._get_client()
        try:
            removed = await self._sweep_script(
                keys=[self._pending_key],
                args=[self._record_prefix],
            )
        except RedisError as e:
            raise StoreError(f"Sweep failed: {e}") from e
        return int(removed)

    async def health_check(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            True if Redis is accessible, False otherwise
        """
        try:
            client = self._get_client()
            return bool(await client.ping())
        except Exception as e:
            log.warning("redis.health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
