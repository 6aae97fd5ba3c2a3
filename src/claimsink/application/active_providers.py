from __future__ import annotations

import logging
from typing import Iterable

from ..domain.errors import FilterBuildError
from ..domain.models import ActiveProviders, Claim, actor_id_from_address
from ..domain.value_types import ActorID
from ..ports.rpc import ChainClient

logger = logging.getLogger(__name__)


async def load_active_providers(chain: ChainClient) -> ActiveProviders:
    """
    Snapshot of provider ids with raw or quality-adjusted power > 0 at the
    current head. Head and miner list failures abort the build; a failing
    per-miner lookup only drops that miner.
    """
    try:
        tsk = await chain.chain_head()
        miners = await chain.list_miners(tsk)
    except Exception as e:
        raise FilterBuildError(f"{type(e).__name__}: {e}") from e

    active: set[ActorID] = set()
    skipped = 0
    for m in miners:
        try:
            power = await chain.miner_power(m, tsk)
            if not power.has_power:
                continue
            id_addr = await chain.lookup_id(m, tsk)
            active.add(ActorID(actor_id_from_address(id_addr)))
        except Exception as e:
            skipped += 1
            logger.debug("miner skipped miner=%s err=%s: %s", m, type(e).__name__, e)

    logger.info("active providers loaded count=%d miners=%d skipped=%d", len(active), len(miners), skipped)
    return ActiveProviders(ids=frozenset(active), miners_scanned=len(miners), skipped=skipped)


def split_active(claims: Iterable[Claim], active: ActiveProviders) -> tuple[list[Claim], int]:
    """Keep claims whose provider is active; return them with the dropped count."""
    kept: list[Claim] = []
    dropped = 0
    for c in claims:
        if c.provider_id in active:
            kept.append(c)
        else:
            dropped += 1
    return kept, dropped
