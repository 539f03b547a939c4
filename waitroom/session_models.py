"""Session record and gate decision models."""
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, Field

DEFAULT_WINDOW_MS = 10 * 60 * 1000


class SessionState(str, Enum):
    """Lifecycle state of a token's session."""
    UNREGISTERED = "unregistered"
    PENDING_ENTRY = "pending_entry"
    ACTIVE = "active"
    EXPIRED = "expired"


class SessionRecord(BaseModel):
    """Persisted session row. Timestamps are epoch milliseconds."""
    token: str = Field(..., min_length=1)
    created_time: int
    enter_time: int | None = None
    expired_time: int | None = None

    def window_end(self, window_ms: int = DEFAULT_WINDOW_MS) -> int | None:
        """
        End of the admission window, or None before entry.

        Rows entered without a stored expired_time end at enter_time + window_ms.
        """
        if self.enter_time is None:
            return None
        if self.expired_time is None:
            return self.enter_time + window_ms
        return self.expired_time

    def state_at(self, now_ms: int, window_ms: int = DEFAULT_WINDOW_MS) -> SessionState:
        end = self.window_end(window_ms)
        if end is None:
            return SessionState.PENDING_ENTRY
        if now_ms < end:
            return SessionState.ACTIVE
        return SessionState.EXPIRED


def state_of(
    record: SessionRecord | None, now_ms: int, window_ms: int = DEFAULT_WINDOW_MS
) -> SessionState:
    """State of a possibly missing record at now_ms."""
    if record is None:
        return SessionState.UNREGISTERED
    return record.state_at(now_ms, window_ms)


class EnterSuccess(BaseModel):
    type: Literal["success"] = "success"
    token: str
    enter_time: int
    expired_time: int
    already_entered: bool


class EnterFailure(BaseModel):
    type: Literal["error"] = "error"
    message: str
    code: str


GateDecision = Union[EnterSuccess, EnterFailure]


class SessionStatus(BaseModel):
    """Result of a status query on an active session."""
    valid: bool = True
    token: str
    expired_time: int
    remaining_time: int
