# claimsink/ports/rpc.py
from __future__ import annotations

from typing import Protocol
from ..domain.models import MinerPower
from ..domain.value_types import Address, TipSetKey


class ChainClient(Protocol):
    """Port defining the subset of the Lotus full-node API the filter needs."""

    async def chain_head(self) -> TipSetKey:
        """Return the key of the current heaviest tipset."""

    async def list_miners(self, tsk: TipSetKey) -> list[Address]:
        """Return every miner actor address as of `tsk`."""

    async def miner_power(self, miner: Address, tsk: TipSetKey) -> MinerPower:
        """Return the miner's raw and quality-adjusted power as of `tsk`."""

    async def lookup_id(self, addr: Address, tsk: TipSetKey) -> Address:
        """Resolve any address to its canonical ID address (f0...) as of `tsk`."""
