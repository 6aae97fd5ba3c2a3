# claimsink/adapters/dump_files.py
from __future__ import annotations

import asyncio
import enum
import logging
import os
from datetime import date

logger = logging.getLogger(__name__)

DUMP_NAME = "all_claims_{day}.json"


class Stability(enum.Enum):
    STABLE = "stable"
    NOT_FOUND = "not_found"
    UNSTABLE = "unstable"
    CANCELLED = "cancelled"


def dump_path_for(day: date, dump_dir: str = "") -> str:
    return os.path.join(dump_dir or ".", DUMP_NAME.format(day=day.strftime("%Y%m%d")))


async def interruptible_sleep(seconds: float, stop: asyncio.Event | None) -> bool:
    """Sleep up to `seconds`; return True if `stop` was set in the meantime."""
    if stop is None:
        await asyncio.sleep(seconds)
        return False
    try:
        await asyncio.wait_for(stop.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True


async def wait_until_stable(
    path: str,
    *,
    interval: float = 5.0,
    retries: int = 3,
    stop: asyncio.Event | None = None,
) -> Stability:
    """
    Gate on the writer having finished: the file size must be unchanged across
    two consecutive polls `interval` apart, within `retries` polls.
    Nothing is read from the file here.
    """
    try:
        prev = os.stat(path).st_size
    except FileNotFoundError:
        return Stability.NOT_FOUND

    for i in range(retries):
        if await interruptible_sleep(interval, stop):
            return Stability.CANCELLED
        size = os.stat(path).st_size
        if size == prev:
            return Stability.STABLE
        logger.info("dump file still growing file=%s prev_size=%d new_size=%d retry=%d",
                    path, prev, size, i + 1)
        prev = size
    return Stability.UNSTABLE


def remove_dump(path: str) -> bool:
    try:
        os.remove(path)
    except OSError as e:
        logger.warning("failed to remove dump file file=%s err=%s", path, e)
        return False
    logger.info("dump file removed file=%s", path)
    return True
