"""Tests for the background loops and their cooperative stop."""

import asyncio
import time

from bomrepo.scheduler import BackgroundLoop, BackgroundScheduler


class TestBackgroundLoop:
    """Loop lifecycle."""

    async def test_runs_immediately_then_every_interval(self):
        calls = []

        async def action():
            calls.append(time.monotonic())

        loop = BackgroundLoop("test", action, interval_seconds=0.01)
        loop.start()
        await asyncio.sleep(0.2)
        await loop.stop()

        assert len(calls) >= 3
        assert loop.iterations == len(calls)
        assert not loop.is_running

    async def test_stop_interrupts_sleep(self):
        async def action():
            pass

        loop = BackgroundLoop("test", action, interval_seconds=3600)
        loop.start()
        await asyncio.sleep(0.05)

        started = time.monotonic()
        await loop.stop(grace_seconds=5)

        assert time.monotonic() - started < 1
        assert loop.iterations == 1

    async def test_stop_waits_for_iteration_in_progress(self):
        finished = asyncio.Event()
        entered = asyncio.Event()

        async def action():
            entered.set()
            await asyncio.sleep(0.2)
            finished.set()

        loop = BackgroundLoop("test", action, interval_seconds=3600)
        loop.start()
        await entered.wait()
        await loop.stop(grace_seconds=5)

        assert finished.is_set()
        assert loop.failures == 0

    async def test_stop_cancels_after_grace_period(self):
        entered = asyncio.Event()

        async def action():
            entered.set()
            await asyncio.sleep(3600)

        loop = BackgroundLoop("test", action, interval_seconds=3600)
        loop.start()
        await entered.wait()

        started = time.monotonic()
        await loop.stop(grace_seconds=0.05)

        assert time.monotonic() - started < 1
        assert not loop.is_running

    async def test_failures_do_not_stop_the_loop(self):
        calls = []

        async def action():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("storage unavailable")

        loop = BackgroundLoop("test", action, interval_seconds=0.01)
        loop.start()
        await asyncio.sleep(0.2)
        await loop.stop()

        assert loop.failures == 1
        assert len(calls) >= 2

    async def test_stop_before_start_is_a_no_op(self):
        async def action():
            pass

        await BackgroundLoop("test", action, interval_seconds=1).stop()


class _Counter:
    def __init__(self):
        self.calls = 0

    async def update_cache(self):
        self.calls += 1

    async def process_retention(self):
        self.calls += 1


class TestBackgroundScheduler:
    async def test_starts_and_stops_both_loops(self):
        cache, retention = _Counter(), _Counter()
        scheduler = BackgroundScheduler(cache, retention, cache_interval_seconds=3600,
                                        retention_interval_seconds=3600)

        scheduler.start()
        await asyncio.sleep(0.05)
        assert all(loop.is_running for loop in scheduler.loops)

        await scheduler.stop(grace_seconds=5)

        assert cache.calls == 1
        assert retention.calls == 1
        assert not any(loop.is_running for loop in scheduler.loops)

    def test_default_intervals(self):
        scheduler = BackgroundScheduler(_Counter(), _Counter())
        assert scheduler.cache_loop.interval_seconds == 600
        assert scheduler.retention_loop.interval_seconds == 3600
