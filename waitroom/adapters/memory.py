"""In-memory session store adapter."""
import structlog
from .base import SessionStore, DuplicateSessionError
from ..session_models import SessionRecord

log = structlog.get_logger()


class InMemorySessionStore(SessionStore):
    """In-memory implementation of the session store.

    Each method runs without awaiting, so on a single event loop every
    operation is atomic.
    """

    def __init__(self):
        self._records: dict[str, SessionRecord] = {}

    async def get(self, token: str) -> SessionRecord | None:
        record = self._records.get(token)
        return record.model_copy() if record else None

    async def create(self, token: str, created_time: int) -> SessionRecord:
        if token in self._records:
            raise DuplicateSessionError(f"Session {token[:8]}... already exists")
        record = SessionRecord(token=token, created_time=created_time)
        self._records[token] = record
        log.info("session.created", token=token[:8], adapter="memory")
        return record.model_copy()

    async def mark_entered(self, token: str, enter_time: int, expired_time: int) -> bool:
        record = self._records.get(token)
        if record is None or record.enter_time is not None:
            return False
        self._records[token] = record.model_copy(
            update={"enter_time": enter_time, "expired_time": expired_time}
        )
        return True

    async def delete_unentered(self) -> int:
        stale = [
            token for token, record in self._records.items()
            if record.enter_time is None and record.expired_time is None
        ]
        for token in stale:
            del self._records[token]
        return len(stale)

    async def health_check(self) -> bool:
        """In-memory store is always healthy."""
        return True

    def put(self, record: SessionRecord) -> None:
        """Insert or replace a record as-is."""
        self._records[record.token] = record.model_copy()

    def __len__(self) -> int:
        return len(self._records)
