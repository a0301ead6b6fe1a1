import asyncio

import pytest

from perptrader.services.scheduler import PeriodicTask, Scheduler


@pytest.mark.asyncio
async def test_tick_while_busy_is_dropped_not_queued():
    release = asyncio.Event()
    calls = []

    async def slow_job():
        calls.append(1)
        await release.wait()

    task = PeriodicTask("slow", 60, slow_job)
    assert task.tick() is True
    await asyncio.sleep(0)
    assert task.busy
    assert task.tick() is False
    assert task.tick() is False
    assert task.skipped == 2

    release.set()
    await asyncio.sleep(0.01)
    assert not task.busy
    assert calls == [1]
    assert task.runs == 1

    assert task.tick() is True
    await asyncio.sleep(0.01)
    assert calls == [1, 1]


@pytest.mark.asyncio
async def test_failing_run_does_not_stop_the_loop():
    calls = []

    async def flaky():
        calls.append(1)
        raise RuntimeError("boom")

    task = PeriodicTask("flaky", 0.01, flaky)
    task.start()
    await asyncio.sleep(0.08)
    await task.stop()

    assert len(calls) >= 2
    assert task.failures == len(calls)
    assert task.status()["last_error"] == "RuntimeError: boom"
    assert not task.running


@pytest.mark.asyncio
async def test_scheduler_runs_independent_loops_and_stops():
    counts = {"fast": 0, "slow": 0}

    async def fast():
        counts["fast"] += 1

    async def slow():
        counts["slow"] += 1

    scheduler = Scheduler()
    scheduler.add("fast", 0.01, fast)
    scheduler.add("slow", 10, slow)
    scheduler.start()
    assert scheduler.running
    await asyncio.sleep(0.06)
    await scheduler.stop()

    assert counts["fast"] >= 3
    assert counts["slow"] == 1
    assert not scheduler.running
    status = scheduler.status()
    assert set(status["tasks"]) == {"fast", "slow"}


@pytest.mark.asyncio
async def test_stop_cancels_in_flight_run():
    started = asyncio.Event()

    async def never_finishes():
        started.set()
        await asyncio.sleep(3600)

    scheduler = Scheduler()
    scheduler.add("stuck", 0.01, never_finishes)
    scheduler.start()
    await started.wait()
    await scheduler.stop()
    assert not scheduler.tasks["stuck"].busy


def test_duplicate_task_names_rejected():
    scheduler = Scheduler()

    async def job():
        pass

    scheduler.add("a", 1, job)
    with pytest.raises(ValueError):
        scheduler.add("a", 1, job)
