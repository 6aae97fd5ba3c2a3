from __future__ import annotations

import asyncio

import pytest

from claimsink.application.scheduler import Scheduler


@pytest.mark.asyncio
async def test_runs_immediately_then_on_interval() -> None:
    stop = asyncio.Event()
    starts: list[float] = []
    loop = asyncio.get_running_loop()

    async def run(ev: asyncio.Event) -> None:
        starts.append(loop.time())
        if len(starts) == 3:
            stop.set()

    t0 = loop.time()
    sched = Scheduler(run, interval=0.05, stop=stop)
    assert await asyncio.wait_for(sched.serve(), 2) == 3
    assert starts[0] - t0 < 0.04
    assert starts[1] - starts[0] >= 0.04
    assert starts[2] - starts[1] >= 0.04


@pytest.mark.asyncio
async def test_overrunning_runs_never_overlap_and_ticks_coalesce() -> None:
    stop = asyncio.Event()
    active = peak = count = 0

    async def run(ev: asyncio.Event) -> None:
        nonlocal active, peak, count
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.06)  # > 3 intervals
        active -= 1
        count += 1
        if count == 3:
            stop.set()

    sched = Scheduler(run, interval=0.02, stop=stop)
    await asyncio.wait_for(sched.serve(), 2)
    assert peak == 1
    assert sched.runs == 3
    assert sched.coalesced >= 2


@pytest.mark.asyncio
async def test_trigger_during_run_is_single_flight() -> None:
    stop = asyncio.Event()
    active = peak = 0
    sched: Scheduler

    async def run(ev: asyncio.Event) -> None:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        if sched.runs == 0:
            for _ in range(5):
                sched.trigger_now()
        await asyncio.sleep(0.01)
        active -= 1
        if sched.runs == 1:
            stop.set()

    sched = Scheduler(run, interval=60, stop=stop)
    await asyncio.wait_for(sched.serve(), 2)
    # five triggers collapse into exactly one follow-up run
    assert sched.runs == 2
    assert peak == 1


@pytest.mark.asyncio
async def test_stop_while_idle_ends_serve_promptly() -> None:
    stop = asyncio.Event()
    sched = Scheduler(lambda ev: asyncio.sleep(0), interval=3600, stop=stop)
    task = asyncio.create_task(sched.serve())
    await asyncio.sleep(0.02)
    assert sched.runs == 1
    stop.set()
    assert await asyncio.wait_for(task, 1) == 1


@pytest.mark.asyncio
async def test_stop_does_not_cancel_an_in_flight_run() -> None:
    stop = asyncio.Event()
    finished = False

    async def run(ev: asyncio.Event) -> None:
        nonlocal finished
        stop.set()
        await asyncio.sleep(0.02)
        finished = True

    sched = Scheduler(run, interval=3600, stop=stop)
    assert await asyncio.wait_for(sched.serve(), 1) == 1
    assert finished


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        Scheduler(lambda ev: asyncio.sleep(0), interval=0)
