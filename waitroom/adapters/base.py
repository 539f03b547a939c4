"""Base adapter interface for session store backends."""
from abc import ABC, abstractmethod
from ..session_models import SessionRecord


class StoreError(Exception):
    """Raised when the session store is unreachable or returns malformed data."""


class DuplicateSessionError(StoreError):
    """Raised when registering a token that already has a session record."""


class SessionStore(ABC):
    """Abstract interface for session record persistence."""

    @abstractmethod
    async def get(self, token: str) -> SessionRecord | None:
        """
        Look up the session record for a token.

        Args:
            token: Plaintext session token

        Returns:
            The record, or None if the token is not registered
        """
        pass

    @abstractmethod
    async def create(self, token: str, created_time: int) -> SessionRecord:
        """
        Register a token with only its creation time set.

        Raises:
            DuplicateSessionError: If the token already exists
        """
        pass

    @abstractmethod
    async def mark_entered(self, token: str, enter_time: int, expired_time: int) -> bool:
        """
        Set enter_time and expired_time in one update, only if enter_time is unset.

        Returns:
            True if this call wrote the window, False if the record was
            missing or already had one
        """
        pass

    @abstractmethod
    async def delete_unentered(self) -> int:
        """
        Delete every record with neither enter_time nor expired_time.

        Returns:
            Number of records deleted
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the backend is reachable.

        Returns:
            True if backend is healthy, False otherwise
        """
        pass

    async def close(self) -> None:
        """Release backend connections."""
        return None
