from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any

from ..domain.models import RunSummary
from ..ports.storage import RunManifestSink

logger = logging.getLogger(__name__)

# Counters copied from the summary into each manifest line, in this order
RECORD_COUNTS = (
    "active_providers", "records", "decode_errors", "inactive",
    "prepared", "inserted", "failed_batches", "rejected_rows",
)


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, timezone.utc).isoformat(timespec="seconds")


def manifest_record(s: RunSummary) -> dict[str, Any]:
    """One manifest line: UTC timestamps, outcome, and the counts an operator reads."""
    rec: dict[str, Any] = {
        "started": _iso(s.started_at),
        "finished": _iso(s.finished_at),
        "took_s": round(s.took, 3),
        "status": s.status,
        "reason": s.reason,
        "file": s.file,
    }
    for k in RECORD_COUNTS:
        rec[k] = getattr(s, k)
    rec["file_removed"] = s.file_removed
    return rec


class JSONLRunManifest(RunManifestSink):
    """Append-only JSON-lines history of runs, one durable line per run."""

    def __init__(self, path: str) -> None:
        self.path = path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        self._lock = asyncio.Lock()

    def _write(self, line: str) -> None:
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line)
            f.flush()
            os.fsync(f.fileno())

    async def append(self, rec: RunSummary) -> None:
        line = json.dumps(manifest_record(rec), separators=(",", ":")) + "\n"
        async with self._lock:
            await asyncio.to_thread(self._write, line)


def read_manifest(path: str) -> list[dict]:
    """Run records in append order. Blank and torn lines are skipped."""
    out: list[dict] = []
    if not os.path.exists(path):
        return out
    with open(path, "r", encoding="utf-8") as f:
        for n, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                out.append(json.loads(line))
            except ValueError:
                logger.warning("skipping unreadable manifest line path=%s line=%d", path, n)
    return out
