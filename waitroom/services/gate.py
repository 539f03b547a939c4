"""
GateService for admission-window entry and status checks
"""

import time
from typing import Callable, Optional

import structlog

from ..adapters.base import SessionStore, StoreError
from ..session_models import (
    DEFAULT_WINDOW_MS,
    EnterFailure,
    EnterSuccess,
    GateDecision,
    SessionRecord,
    SessionState,
    SessionStatus,
    state_of,
)

log = structlog.get_logger()

def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds"""
    return int(time.time() * 1000)


class GateError(Exception):
    """Base exception for gate status failures"""
    pass


class NotFoundError(GateError):
    """Raised when the token has no session record"""

    def __init__(self, message: str = "User not found"):
        super().__init__(message)


class NoWindowSetError(GateError):
    """Raised when the session has not entered yet"""

    def __init__(self, message: str = "No expiration time set"):
        super().__init__(message)


class AlreadyExpiredError(GateError):
    """Raised when the admission window has passed"""

    def __init__(self, expired_time: int, message: str = "Token has expired"):
        super().__init__(message)
        self.expired_time = expired_time


class GateService:
    """
    Service enforcing single entry into a fixed admission window

    Provides:
    - First entry: records enter_time/expired_time exactly once
    - Idempotent replay while the window is open
    - Read-only status checks
    - Registration of new tokens
    """

    def __init__(
        self,
        store: SessionStore,
        window_ms: int = DEFAULT_WINDOW_MS,
        clock: Optional[Callable[[], int]] = None
    ):
        """
        Initialize GateService

        Args:
            store: Session store backend
            window_ms: Admission window length in milliseconds
            clock: Callable returning epoch milliseconds (defaults to wall clock)
        """
        if window_ms <= 0:
            raise ValueError("Admission window must be positive")
        self._store = store
        self._window_ms = window_ms
        self._clock = clock or now_ms

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def now(self) -> int:
        return self._clock()

    async def enter(self, token: str) -> GateDecision:
        """
        Attempt to enter the admission window for a token

        Args:
            token: Decrypted session token

        Returns:
            EnterSuccess, or EnterFailure with a reason
        """
        try:
            record = await self._store.get(token)
            now = self._clock()
            state = state_of(record, now, self._window_ms)

            if state is SessionState.UNREGISTERED:
                log.info("gate.enter_rejected", token=token[:8], reason="not_found")
                return EnterFailure(message="User not found", code="not_found")

            if state is SessionState.EXPIRED:
                log.info("gate.enter_rejected", token=token[:8], reason="expired")
                return EnterFailure(message="Token has expired", code="expired")

            if state is SessionState.ACTIVE:
                return self._replay(record)

            enter_time = now
            expired_time = enter_time + self._window_ms
            if await self._store.mark_entered(token, enter_time, expired_time):
                log.info("gate.entered", token=token[:8], expired_time=expired_time)
                return EnterSuccess(
                    token=token,
                    enter_time=enter_time,
                    expired_time=expired_time,
                    already_entered=False
                )

            # Lost a concurrent first entry; report the window that was written
            winner = await self._store.get(token)
            if winner is None:
                return EnterFailure(message="User not found", code="not_found")
            if winner.state_at(self._clock(), self._window_ms) is SessionState.ACTIVE:
                log.info("gate.enter_race_lost", token=token[:8])
                return self._replay(winner)
            return EnterFailure(message="Token has expired", code="expired")

        except StoreError as e:
            log.error("gate.store_error", token=token[:8], error=str(e))
            return EnterFailure(message="Session store unavailable", code="store_error")

    def _replay(self, record: SessionRecord) -> EnterSuccess:
        log.debug("gate.replayed", token=record.token[:8])
        return EnterSuccess(
            token=record.token,
            enter_time=record.enter_time,
            expired_time=record.window_end(self._window_ms),
            already_entered=True
        )

    async def check_status(self, token: str) -> SessionStatus:
        """
        Report the admission window of a token without modifying it

        Args:
            token: Decrypted session token

        Returns:
            SessionStatus with remaining time in milliseconds

        Raises:
            NotFoundError, NoWindowSetError, AlreadyExpiredError, StoreError
        """
        record = await self._store.get(token)
        now = self._clock()
        state = state_of(record, now, self._window_ms)

        if state is SessionState.UNREGISTERED:
            raise NotFoundError()
        if state is SessionState.PENDING_ENTRY:
            raise NoWindowSetError()
        end = record.window_end(self._window_ms)
        if state is SessionState.EXPIRED:
            raise AlreadyExpiredError(end)

        return SessionStatus(
            token=record.token,
            expired_time=end,
            remaining_time=end - now
        )

    async def register(self, token: str) -> SessionRecord:
        """
        Register a token so it can enter later

        Raises:
            DuplicateSessionError: If the token is already registered
            StoreError: If the store fails
        """
        record = await self._store.create(token, self._clock())
        log.info("gate.registered", token=token[:8])
        return record
