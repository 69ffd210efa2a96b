import asyncio

from invigilator.engine import PollScheduler


def test_runs_until_stopped():
    async def scenario():
        ticks = []

        async def tick():
            ticks.append(1)

        scheduler = PollScheduler(tick, interval=0.01)
        assert scheduler.start()
        await asyncio.sleep(0.1)
        scheduler.stop()
        await scheduler.join()

        count = len(ticks)
        await asyncio.sleep(0.05)
        return count, len(ticks), scheduler.running

    count, later, running = asyncio.run(scenario())

    assert count >= 2
    assert later == count
    assert not running


def test_start_is_idempotent():
    async def scenario():
        async def tick():
            pass

        scheduler = PollScheduler(tick, interval=0.01)
        first = scheduler.start()
        second = scheduler.start()
        scheduler.stop()
        await scheduler.join()
        return first, second

    assert asyncio.run(scenario()) == (True, False)


def test_tick_errors_do_not_stop_the_chain():
    async def scenario():
        calls = []

        async def tick():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("inference exploded")

        scheduler = PollScheduler(tick, interval=0.01)
        scheduler.start()
        await asyncio.sleep(0.1)
        scheduler.stop()
        await scheduler.join()
        return len(calls), scheduler.errors

    calls, errors = asyncio.run(scenario())

    assert calls >= 2
    assert errors == 1


def test_one_tick_in_flight():
    async def scenario():
        active = []
        peak = []

        async def tick():
            active.append(1)
            peak.append(len(active))
            await asyncio.sleep(0.03)
            active.pop()

        scheduler = PollScheduler(tick, interval=0.0)
        scheduler.start()
        extra = await asyncio.gather(scheduler.run_once(), asyncio.sleep(0.1))
        scheduler.stop()
        await scheduler.join()
        return max(peak), scheduler.skipped, extra[0]

    peak, skipped, ran = asyncio.run(scenario())

    assert peak == 1
    assert skipped == 1
    assert ran is False


def test_stop_cancels_pending_sleep():
    async def scenario():
        ticks = []

        async def tick():
            ticks.append(1)

        scheduler = PollScheduler(tick, interval=10.0)
        scheduler.start()
        await asyncio.sleep(0.02)
        scheduler.stop()
        await asyncio.wait_for(scheduler.join(), timeout=1.0)
        return len(ticks)

    assert asyncio.run(scenario()) == 1
