"""Periodic removal of sessions that were registered but never entered."""
import asyncio
import structlog
from ..adapters.base import SessionStore

log = structlog.get_logger()


class Sweeper:
    """
    Deletes session records with neither enter_time nor expired_time.

    A record only leaves that set by gaining an enter_time, which is never
    undone, so sweeping concurrently with live entries cannot drop an
    admitted session.
    """

    def __init__(self, store: SessionStore, interval_seconds: float = 3600, metrics=None):
        """
        Args:
            store: Session store to sweep
            interval_seconds: Seconds between scheduled sweeps
            metrics: Optional Metrics instance
        """
        if interval_seconds <= 0:
            raise ValueError("Sweep interval must be positive")
        self._store = store
        self._interval = interval_seconds
        self._metrics = metrics
        self._task: asyncio.Task | None = None

    async def sweep_once(self) -> int:
        """
        Run one sweep.

        Returns:
            Number of records deleted

        Raises:
            StoreError: If the store fails
        """
        deleted = await self._store.delete_unentered()
        log.info("sweeper.completed", deleted=deleted)
        if self._metrics:
            self._metrics.record_sweep("ok", deleted)
        return deleted

    async def _run(self) -> None:
        """Sweep every interval; failures are logged and retried next tick."""
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error("sweeper.failed", error=str(e), error_type=type(e).__name__)
                if self._metrics:
                    self._metrics.record_sweep("error", 0)

    def start(self) -> None:
        """Schedule periodic sweeps on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="session-sweeper")
        log.info("sweeper.started", interval_seconds=self._interval)

    async def stop(self) -> None:
        """Cancel scheduled sweeps."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        log.info("sweeper.stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
