from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

RunFn = Callable[[asyncio.Event], Awaitable[Any]]


class Scheduler:
    """
    Idle -> Running -> Idle, one run per tick: run immediately, then every
    `interval` seconds.

    Invariants:
      * single flight: every run goes through `_lock`, and the loop awaits
        each run to completion before looking at the clock again, so two
        runs never overlap, whatever asks for them (`trigger_now` included).
      * coalescing: ticks that fall due while a run is in progress collapse
        into one pending tick; it is honoured right after the run finishes
        and the schedule then re-anchors to that moment.
      * stop is observed between runs; a run in progress is never cancelled,
        it only sees `stop` at its own suspension points.
    """

    def __init__(
        self,
        run: RunFn,
        interval: float,
        stop: asyncio.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._run = run
        self.interval = interval
        self.stop = stop or asyncio.Event()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._pending = asyncio.Event()
        self._running = False
        self.runs = 0
        self.coalesced = 0

    @property
    def running(self) -> bool:
        return self._running

    def trigger_now(self) -> None:
        """Ask for a run at the next opportunity; repeated calls collapse into one."""
        self._pending.set()

    async def run_once(self) -> Any:
        async with self._lock:
            self._running = True
            try:
                return await self._run(self.stop)
            finally:
                self._running = False
                self.runs += 1

    async def _wait(self, delay: float) -> None:
        waiters = [asyncio.ensure_future(self.stop.wait()), asyncio.ensure_future(self._pending.wait())]
        try:
            await asyncio.wait(waiters, timeout=delay, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for w in waiters:
                w.cancel()

    async def serve(self) -> int:
        """Loop until `stop` is set; returns the number of runs executed."""
        logger.info("scheduler started interval=%.0fs", self.interval)
        next_due = self._clock()
        while not self.stop.is_set():
            delay = next_due - self._clock()
            if delay > 0 and not self._pending.is_set():
                await self._wait(delay)
                if self.stop.is_set():
                    break
            scheduled = not self._pending.is_set() or self._clock() >= next_due
            self._pending.clear()

            await self.run_once()
            if not scheduled:
                # triggered early; the regular tick stays where it was
                continue

            now = self._clock()
            next_due += self.interval
            if next_due <= now:
                missed = int((now - next_due) // self.interval) + 1
                self.coalesced += missed - 1
                logger.warning("run overran interval; %d tick(s) coalesced into one", missed)
                next_due = now
        logger.info("scheduler stopping runs=%d", self.runs)
        return self.runs
