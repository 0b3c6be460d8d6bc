import asyncio
from datetime import datetime, timedelta

from tripredirect.cache import FreshnessCache, MidnightResetScheduler, seconds_until_next_midnight


def test_put_then_get_returns_target():
    async def run() -> None:
        cache = FreshnessCache()
        assert await cache.get("trip.example") is None
        await cache.put("trip.example", "https://polarsteps.com/alice/5-peru")
        assert await cache.get("trip.example") == "https://polarsteps.com/alice/5-peru"
        assert await cache.size() == 1

    asyncio.run(run())


def test_reset_all_forgets_every_host():
    async def run() -> None:
        cache = FreshnessCache()
        await cache.put("a.example", "https://x/a")
        await cache.put("b.example", "https://x/b")
        assert await cache.reset_all() == 2
        assert await cache.get("a.example") is None
        assert await cache.get("b.example") is None
        assert await cache.size() == 0

    asyncio.run(run())


def test_last_writer_wins():
    async def run() -> None:
        cache = FreshnessCache()
        await asyncio.gather(cache.put("h", "one"), cache.put("h", "two"))
        assert await cache.get("h") == "two"

    asyncio.run(run())


def test_readers_share_the_lock():
    async def run() -> None:
        cache = FreshnessCache()
        lock = cache._lock
        inside = 0
        peak = 0

        async def reader():
            nonlocal inside, peak
            async with lock.read():
                inside += 1
                peak = max(peak, inside)
                await asyncio.sleep(0.01)
                inside -= 1

        await asyncio.gather(*(reader() for _ in range(5)))
        assert peak == 5

    asyncio.run(run())


def test_writer_excludes_readers():
    async def run() -> None:
        cache = FreshnessCache()
        lock = cache._lock
        order = []

        async def writer():
            async with lock.write():
                order.append("write-start")
                await asyncio.sleep(0.02)
                order.append("write-end")

        async def reader():
            await asyncio.sleep(0.005)
            async with lock.read():
                order.append("read")

        await asyncio.gather(writer(), reader())
        assert order == ["write-start", "write-end", "read"]

    asyncio.run(run())


def test_seconds_until_next_midnight():
    now = datetime(2026, 3, 10, 23, 0, 0)
    assert abs(seconds_until_next_midnight(now) - 3600) < 1


def test_seconds_until_next_midnight_just_after_midnight():
    now = datetime(2026, 3, 10, 0, 0, 1)
    expected = timedelta(hours=23, minutes=59, seconds=59).total_seconds()
    assert abs(seconds_until_next_midnight(now) - expected) < 1


def test_scheduler_resets_cache_and_recomputes_delay():
    async def run() -> None:
        cache = FreshnessCache()
        await cache.put("trip.example", "https://x/alice/1-a")

        clock_values = [datetime(2026, 6, 1, 22, 0, 0), datetime(2026, 6, 2, 0, 0, 5)]
        delays = []
        both_done = asyncio.Event()

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)
            if len(delays) > 2:
                both_done.set()
                await asyncio.Event().wait()

        def clock() -> datetime:
            return clock_values[min(len(delays), len(clock_values) - 1)]

        scheduler = MidnightResetScheduler(cache, clock=clock, sleep=fake_sleep)
        scheduler.start()
        assert scheduler.running
        await asyncio.wait_for(both_done.wait(), timeout=1)
        await scheduler.stop()

        assert not scheduler.running
        assert scheduler.resets == 2
        assert await cache.get("trip.example") is None
        assert abs(delays[0] - 7200) < 1
        assert abs(delays[1] - (86400 - 5)) < 1

    asyncio.run(run())


def test_scheduler_stop_without_start_is_noop():
    async def run() -> None:
        scheduler = MidnightResetScheduler(FreshnessCache())
        await scheduler.stop()
        assert not scheduler.running

    asyncio.run(run())


def test_cancelled_reader_inside_lock_releases_it():
    async def run() -> None:
        cache = FreshnessCache()
        entered = asyncio.Event()

        async def slow_reader():
            async with cache._lock.read():
                entered.set()
                await asyncio.sleep(10)

        task = asyncio.create_task(slow_reader())
        await entered.wait()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        await asyncio.wait_for(cache.put("trip.example", "https://x/1-a"), timeout=0.5)
        assert await cache.get("trip.example") == "https://x/1-a"

    asyncio.run(run())


def test_cancelled_waiter_does_not_block_later_writers():
    async def run() -> None:
        cache = FreshnessCache()
        lock = cache._lock
        release = asyncio.Event()

        async def writer():
            async with lock.write():
                await release.wait()

        holder = asyncio.create_task(writer())
        await asyncio.sleep(0)
        waiting_reader = asyncio.create_task(cache.get("trip.example"))
        await asyncio.sleep(0)
        waiting_reader.cancel()
        await asyncio.gather(waiting_reader, return_exceptions=True)
        release.set()
        await holder

        await asyncio.wait_for(cache.reset_all(), timeout=0.5)
        await asyncio.wait_for(cache.put("trip.example", "https://x/1-a"), timeout=0.5)
        assert await cache.size() == 1

    asyncio.run(run())
