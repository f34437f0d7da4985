"""
Periodic removal of expired session rows.

The sweeper is an asyncio task owned by the application lifespan: started
once at startup and cancelled at shutdown. Ticks fire on a fixed interval;
a tick that arrives while the previous sweep is still running is skipped,
so the table never sees two concurrent sweeps.
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from starlette.concurrency import run_in_threadpool

from storefront.core.utils.session_store import SessionStore, SweepFailure

logger = logging.getLogger(__name__)


class SweeperState(str, Enum):
    """Lifecycle of the cleanup task"""

    STOPPED = "stopped"
    IDLE = "idle"
    SWEEPING = "sweeping"


class SessionCleanupTask:
    """Owns the background task that purges expired sessions."""

    def __init__(self, store: SessionStore, interval: float) -> None:
        if interval <= 0:
            raise ValueError(f"Sweep interval must be positive, got {interval!r}")
        self.store = store
        self.interval = interval
        self.state = SweeperState.STOPPED

        self.last_run_at: Optional[datetime] = None
        self.last_removed: Optional[int] = None
        self.last_error: Optional[str] = None
        self.skipped_ticks = 0

        self._timer_task: Optional[asyncio.Task] = None
        self._sweep_task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def start(self) -> None:
        """Start the timer. Must be called from inside the running event loop."""
        if self.running:
            logger.warning("Session cleanup already running, ignoring start request")
            return
        self.state = SweeperState.IDLE
        self._timer_task = asyncio.create_task(self._timer(), name="session-cleanup")
        logger.info(
            "Session cleanup started",
            extra={"interval_seconds": self.interval},
        )

    async def stop(self) -> None:
        """Cancel the timer and wait for an in-flight sweep to finish."""
        timer, self._timer_task = self._timer_task, None
        if timer is not None:
            timer.cancel()
            try:
                await timer
            except asyncio.CancelledError:
                pass

        sweep, self._sweep_task = self._sweep_task, None
        if sweep is not None and not sweep.done():
            # Failures were already logged by _sweep_and_log
            await asyncio.gather(sweep, return_exceptions=True)

        self.state = SweeperState.STOPPED
        logger.info("Session cleanup stopped")

    async def _timer(self) -> None:
        while True:
            self._tick()
            await asyncio.sleep(self.interval)

    def _tick(self) -> None:
        if self._sweep_task is not None and not self._sweep_task.done():
            self.skipped_ticks += 1
            logger.debug("Previous session sweep still running, skipping tick")
            return
        self._sweep_task = asyncio.create_task(self._sweep_and_log(), name="session-sweep")

    async def _sweep_and_log(self) -> None:
        try:
            await self.sweep_once()
        except SweepFailure as e:
            logger.error(f"Session sweep failed, will retry in {self.interval}s: {e}")

    async def sweep_once(self) -> Optional[int]:
        """
        Run one sweep now.

        Returns:
            Number of rows removed, or None if another sweep was already running

        Raises:
            SweepFailure: If the store could not complete the sweep
        """
        if self._lock.locked():
            self.skipped_ticks += 1
            return None

        async with self._lock:
            previous_state = self.state
            self.state = SweeperState.SWEEPING
            cutoff = self.store.now()
            try:
                removed = await run_in_threadpool(self.store.sweep_expired, cutoff)
            except Exception as e:
                self.last_error = f"{type(e).__name__}: {e}"
                raise SweepFailure(self.last_error) from e
            finally:
                self.last_run_at = cutoff
                self.state = SweeperState.STOPPED if previous_state == SweeperState.STOPPED else SweeperState.IDLE

        self.last_removed = removed
        self.last_error = None
        if removed:
            logger.info(f"Removed {removed} expired session(s)")
        else:
            logger.debug("No expired sessions to remove")
        return removed

    def status(self) -> Dict[str, Any]:
        """Snapshot for the health endpoint"""
        return {
            "state": self.state.value,
            "interval_seconds": self.interval,
            "last_run_at": self.last_run_at.isoformat() + "Z" if self.last_run_at else None,
            "last_removed": self.last_removed,
            "last_error": self.last_error,
            "skipped_ticks": self.skipped_ticks,
        }
