import asyncio

import pytest

from fairguard.scheduler.maintenance_scheduler import MaintenanceScheduler

from conftest import CHANNEL_ID, USER_ID, make_message


@pytest.mark.asyncio
async def test_failing_job_does_not_stop_the_others() -> None:
    calls = []

    async def first():
        calls.append("first")
        return 1

    async def broken():
        raise RuntimeError("store unavailable")

    async def last():
        calls.append("last")
        return 2

    scheduler = MaintenanceScheduler([("first", first), ("broken", broken), ("last", last)], lambda: 60)

    results = await scheduler.run_once()

    assert calls == ["first", "last"]
    assert results["first"] == 1
    assert results["last"] == 2
    assert isinstance(results["broken"], RuntimeError)


@pytest.mark.asyncio
async def test_start_runs_sweeps_until_shutdown() -> None:
    ran = asyncio.Event()
    count = 0

    async def job():
        nonlocal count
        count += 1
        ran.set()

    scheduler = MaintenanceScheduler([("job", job)], lambda: 0.01)
    scheduler.start()
    scheduler.start()
    await asyncio.wait_for(ran.wait(), timeout=1)

    assert scheduler.running
    await scheduler.shutdown()
    assert not scheduler.running

    seen = count
    await asyncio.sleep(0.03)
    assert count == seen


@pytest.mark.asyncio
async def test_engine_sweep_runs_every_job(engine, backend, context, clock) -> None:
    await engine.ledger.add_warning(USER_ID, "spam", "200000000000000001", "log-1")
    await engine.pipeline.moderate_message(make_message("m1", "hello there", channel_id=CHANNEL_ID), context)
    await engine.pipeline.drain_background_tasks()
    await engine.rate_limiter.allow(USER_ID)
    clock.advance(days=31)

    results = await engine.scheduler.run_once()

    assert results == {
        "warning_expiry": 1,
        "pending_warns": 0,
        "stale_confirmations": 0,
        "message_tracking": 1,
        "rate_limits": 1,
    }
    assert await engine.ledger.get_active_warning_count(USER_ID) == 0
