# claimsink/ports/storage.py
from __future__ import annotations

from typing import AsyncIterator, Protocol, Sequence
from ..domain.models import Claim, RunSummary


class ClaimStore(Protocol):
    """Port for the persisted, append-only claims collection."""

    def iter_claim_keys(self) -> AsyncIterator[tuple[int, str, int, int]]:
        """Stream (provider_id, data_cid, sector, term_start) for every persisted claim."""

    async def insert_if_absent(self, claims: Sequence[Claim]) -> int:
        """Insert each claim only if no row matches its uniqueness tuple; never update.

        Returns the number of rows the server reports as actually created.
        """


class RunManifestSink(Protocol):
    """Port for appending one record per ingestion run (e.g., JSONL manifest)."""

    async def append(self, rec: RunSummary) -> None:
        """Append a run record atomically."""
