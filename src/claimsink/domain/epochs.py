"""Filecoin chain epoch <-> wall-clock conversion (mainnet)."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

# 2020-08-25 22:00:00 UTC
GENESIS_UNIX = 1598306400
EPOCH_SECONDS = 30


def epoch_to_datetime(epoch: int) -> datetime | None:
    """UTC time an epoch started at; None for negative (unset) epochs."""
    if epoch < 0:
        return None
    return datetime.fromtimestamp(GENESIS_UNIX + epoch * EPOCH_SECONDS, tz=timezone.utc)


def datetime_to_epoch(ts: datetime | None) -> int:
    """Epoch containing `ts`; -1 when `ts` is None. Naive datetimes are taken as UTC."""
    if ts is None:
        return -1
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return (int(ts.timestamp()) - GENESIS_UNIX) // EPOCH_SECONDS


def epochs_to_timedelta(epochs: int) -> timedelta:
    if epochs <= 0:
        return timedelta(0)
    return timedelta(seconds=epochs * EPOCH_SECONDS)
