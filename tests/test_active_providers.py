from __future__ import annotations

import pytest

from claimsink.application.active_providers import load_active_providers, split_active
from claimsink.domain.errors import FilterBuildError, RPCError
from claimsink.domain.models import ActiveProviders, Claim

from fakes import FakeChain


@pytest.mark.asyncio
async def test_keeps_miners_with_raw_or_qa_power_resolved_to_ids() -> None:
    chain = FakeChain(
        miners={"f01001": (1, 0), "f01002": (0, 0), "f2robust": (0, 5)},
        ids={"f2robust": "f01003"},
    )
    active = await load_active_providers(chain)
    assert active.ids == frozenset({1001, 1003})
    assert active.miners_scanned == 3
    assert active.skipped == 0


@pytest.mark.asyncio
async def test_per_miner_failures_are_skipped() -> None:
    chain = FakeChain(
        miners={"f01001": (1, 1), "f01004": RPCError("StateMinerPower", "boom"), "f2x": (1, 1), "f2y": (1, 1)},
        ids={"f2x": RPCError("StateLookupID", "actor not found"), "f2y": "f2y"},  # f2y: not an ID address
    )
    active = await load_active_providers(chain)
    assert active.ids == frozenset({1001})
    assert active.skipped == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("kw", [{"head_error": RPCError("ChainHead", "down")},
                                {"list_error": TimeoutError("slow")}])
async def test_head_or_miner_list_failure_is_fatal_to_the_build(kw) -> None:
    with pytest.raises(FilterBuildError):
        await load_active_providers(FakeChain({"f01001": (1, 1)}, **kw))


def test_split_active_drops_inactive_providers() -> None:
    def c(p: int) -> Claim:
        return Claim(claim_id=p, provider_id=p, client_id=1, data_cid="b", size=1,
                     term_min=1, term_max=2, term_start=3, sector=4)
    kept, dropped = split_active([c(1001), c(1002), c(1001)], ActiveProviders(ids=frozenset({1001})))
    assert [k.provider_id for k in kept] == [1001, 1001]
    assert dropped == 1
