"""
Unit tests for the expired-session sweeper

The sweeper must never run two sweeps at once, must survive failing sweeps,
and must stop cleanly when the application shuts down.
"""

import asyncio
import threading
from datetime import datetime

import pytest

from storefront.core.utils.session_cleanup import SessionCleanupTask, SweeperState
from storefront.core.utils.session_store import StoreUnavailable, SweepFailure

pytestmark = pytest.mark.unit


class StubStore:
    """Stands in for SessionStore; records sweep cutoffs and can block or fail"""

    def __init__(self, failures: int = 0, removed: int = 0):
        self.cutoffs = []
        self.failures = failures
        self.removed = removed
        self.release = threading.Event()
        self.release.set()
        self.entered = threading.Event()

    def now(self) -> datetime:
        return datetime(2030, 1, 1, 12, 0, 0)

    def sweep_expired(self, now=None) -> int:
        self.entered.set()
        self.release.wait(timeout=5)
        self.cutoffs.append(now)
        if self.failures:
            self.failures -= 1
            raise StoreUnavailable("connection refused")
        return self.removed


async def wait_until(condition, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Wait for a condition to become true with timeout"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if condition():
            return True
        await asyncio.sleep(interval)
    return False


class TestSweepOnce:
    @pytest.mark.asyncio
    async def test_sweep_uses_cutoff_captured_at_start(self, store, clock):
        store.save("old", {}, ttl=10)
        store.save("fresh", {}, ttl=3600)
        clock.advance(60)
        cleanup = SessionCleanupTask(store, interval=60)

        removed = await cleanup.sweep_once()

        assert removed == 1
        assert store.count() == 1
        assert cleanup.last_removed == 1
        assert cleanup.last_run_at == clock()
        assert cleanup.last_error is None

    @pytest.mark.asyncio
    async def test_failure_raises_sweep_failure_and_is_recorded(self):
        cleanup = SessionCleanupTask(StubStore(failures=1), interval=60)

        with pytest.raises(SweepFailure):
            await cleanup.sweep_once()

        assert "StoreUnavailable" in cleanup.last_error
        assert cleanup.state == SweeperState.STOPPED

    @pytest.mark.asyncio
    async def test_success_clears_previous_error(self):
        cleanup = SessionCleanupTask(StubStore(failures=1, removed=4), interval=60)

        with pytest.raises(SweepFailure):
            await cleanup.sweep_once()
        assert await cleanup.sweep_once() == 4
        assert cleanup.last_error is None

    @pytest.mark.asyncio
    async def test_overlapping_sweep_is_skipped(self):
        stub = StubStore()
        stub.release.clear()
        cleanup = SessionCleanupTask(stub, interval=60)

        first = asyncio.create_task(cleanup.sweep_once())
        assert await wait_until(stub.entered.is_set)
        assert cleanup.state == SweeperState.SWEEPING

        assert await cleanup.sweep_once() is None
        assert cleanup.skipped_ticks == 1

        stub.release.set()
        assert await first == 0
        assert len(stub.cutoffs) == 1


class TestLifecycle:
    def test_interval_must_be_positive(self, store):
        with pytest.raises(ValueError):
            SessionCleanupTask(store, interval=0)

    @pytest.mark.asyncio
    async def test_start_sweeps_immediately_and_stop_is_clean(self):
        stub = StubStore()
        cleanup = SessionCleanupTask(stub, interval=3600)

        cleanup.start()
        assert cleanup.running
        assert await wait_until(lambda: len(stub.cutoffs) == 1)

        await cleanup.stop()
        assert not cleanup.running
        assert cleanup.state == SweeperState.STOPPED

    @pytest.mark.asyncio
    async def test_loop_keeps_running_after_failed_sweep(self):
        stub = StubStore(failures=2, removed=1)
        cleanup = SessionCleanupTask(stub, interval=0.01)

        cleanup.start()
        try:
            assert await wait_until(lambda: len(stub.cutoffs) >= 3)
            assert await wait_until(lambda: cleanup.last_removed == 1)
            assert cleanup.running
        finally:
            await cleanup.stop()

    @pytest.mark.asyncio
    async def test_tick_during_slow_sweep_is_skipped(self):
        stub = StubStore()
        stub.release.clear()
        cleanup = SessionCleanupTask(stub, interval=0.01)

        cleanup.start()
        try:
            assert await wait_until(stub.entered.is_set)
            assert await wait_until(lambda: cleanup.skipped_ticks >= 2)
            assert stub.cutoffs == []
        finally:
            stub.release.set()
            await cleanup.stop()
        assert len(stub.cutoffs) == 1

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_sweep(self):
        stub = StubStore()
        stub.release.clear()
        cleanup = SessionCleanupTask(stub, interval=3600)

        cleanup.start()
        assert await wait_until(stub.entered.is_set)

        stopping = asyncio.create_task(cleanup.stop())
        await asyncio.sleep(0.05)
        assert not stopping.done()

        stub.release.set()
        await stopping
        assert len(stub.cutoffs) == 1

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_timer(self):
        stub = StubStore()
        cleanup = SessionCleanupTask(stub, interval=3600)

        cleanup.start()
        timer = cleanup._timer_task
        cleanup.start()
        assert cleanup._timer_task is timer
        await cleanup.stop()

    def test_status_snapshot(self, store):
        cleanup = SessionCleanupTask(store, interval=900)
        status = cleanup.status()

        assert status["state"] == "stopped"
        assert status["interval_seconds"] == 900
        assert status["last_run_at"] is None
