from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Iterator, Sequence

from ..domain.errors import BatchRejectedError
from ..domain.models import Claim, DiffResult, claim_key
from ..domain.value_types import ClaimKey
from ..ports.storage import ClaimStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 2_000


async def load_existing_keys(store: ClaimStore) -> set[ClaimKey]:
    """Fresh full scan of the uniqueness tuples already persisted."""
    keys: set[ClaimKey] = set()
    async for provider_id, data_cid, sector, term_start in store.iter_claim_keys():
        keys.add(claim_key(provider_id, data_cid, sector, term_start))
    return keys


def plan_inserts(claims: Iterable[Claim], existing: set[ClaimKey], now: datetime | None = None) -> list[Claim]:
    """Claims whose key is neither persisted nor already planned, touched with `now`."""
    now = now or datetime.now(timezone.utc)
    seen: set[ClaimKey] = set()
    out: list[Claim] = []
    for c in claims:
        k = c.key
        if k in existing or k in seen:
            continue
        seen.add(k)
        c.touch(now)
        out.append(c)
    return out


def batched(items: Sequence[Claim], size: int) -> Iterator[Sequence[Claim]]:
    if size <= 0:
        size = DEFAULT_BATCH_SIZE
    for i in range(0, len(items), size):
        yield items[i:i+size]


async def _insert_rows(store: ClaimStore, batch: Sequence[Claim], batch_no: int) -> tuple[int, int]:
    """Retry a rejected batch one claim at a time. Returns (inserted, rejected)."""
    inserted = rejected = 0
    for c in batch:
        try:
            inserted += await store.insert_if_absent([c])
        except BatchRejectedError as e:
            rejected += 1
            logger.warning("claim rejected batch=%d claim_id=%s provider=%d err=%s",
                           batch_no, c.claim_id, c.provider_id, e)
    return inserted, rejected


async def insert_diff(
    store: ClaimStore,
    claims: Iterable[Claim],
    existing: set[ClaimKey],
    batch_size: int = DEFAULT_BATCH_SIZE,
    now: datetime | None = None,
) -> DiffResult:
    """
    Write the set difference in fixed-size batches.

    A batch the store rejects for its data is retried row by row, so one bad
    claim costs only itself. Any other failure is logged and credits the batch
    zero inserts; later batches still run. `inserted` is the sum of
    server-reported counts, so it can undercount but never overcount.
    """
    planned = plan_inserts(claims, existing, now)
    inserted = batches = failed = rejected = 0
    for batch in batched(planned, batch_size):
        batches += 1
        try:
            inserted += await store.insert_if_absent(batch)
        except BatchRejectedError as e:
            logger.warning("batch rejected, retrying per claim batch=%d size=%d err=%s",
                           batches, len(batch), e)
            try:
                n, bad = await _insert_rows(store, batch, batches)
            except Exception as e:
                failed += 1
                logger.warning("batch write failed batch=%d size=%d err=%s: %s",
                               batches, len(batch), type(e).__name__, e)
                continue
            inserted += n
            rejected += bad
        except Exception as e:
            failed += 1
            logger.warning("batch write failed batch=%d size=%d err=%s: %s",
                           batches, len(batch), type(e).__name__, e)

    logger.info("diff insert finished prepared=%d inserted=%d batches=%d failed_batches=%d "
                "rejected_rows=%d batch_size=%d",
                len(planned), inserted, batches, failed, rejected, batch_size)
    return DiffResult(prepared=len(planned), inserted=inserted, batches=batches,
                      failed_batches=failed, rejected_rows=rejected)
