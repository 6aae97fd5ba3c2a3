from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from .epochs import epoch_to_datetime, epochs_to_timedelta
from .value_types import ActorID, ClaimKey, RunStatus


def claim_key(provider_id: int, data_cid: str, sector: int, term_start: int) -> ClaimKey:
    """Uniqueness tuple (provider, cid, sector, term_start) flattened to one string."""
    return ClaimKey(f"{provider_id}|{data_cid}|{sector}|{term_start}")


def miner_addr_for(provider_id: int) -> str:
    return f"f0{provider_id}"


def actor_id_from_address(addr: str) -> int:
    """'f01234' / 't01234' -> 1234. Raises ValueError for non-ID addresses."""
    s = str(addr).strip()
    if len(s) < 3 or s[0] not in "ft" or s[1] != "0" or not s[2:].isdigit():
        raise ValueError(f"not an ID address: {addr!r}")
    return int(s[2:])


@dataclass(slots=True)
class Claim:
    claim_id: int | None               # verifreg ClaimId (None when the dump key is not numeric)
    provider_id: int                   # ActorID
    client_id: int                     # ActorID
    data_cid: str                      # piece CID string
    size: int                          # padded piece size (bytes)
    term_min: int                      # epochs
    term_max: int                      # epochs
    term_start: int                    # epoch
    sector: int
    miner_addr: str = ""               # f0... miner ID address
    client_addr: str = ""              # f1/f3... address, not present in dumps
    updated_at: datetime | None = None # set once, at insert
    meta: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if not self.miner_addr:
            self.miner_addr = miner_addr_for(self.provider_id)

    @property
    def key(self) -> ClaimKey:
        return claim_key(self.provider_id, self.data_cid, self.sector, self.term_start)

    def touch(self, now: datetime | None = None) -> None:
        self.updated_at = now or datetime.now(timezone.utc)

    def term_start_time(self) -> datetime | None:
        return epoch_to_datetime(self.term_start)

    def term_min_duration(self) -> timedelta:
        return epochs_to_timedelta(self.term_min)

    def term_max_duration(self) -> timedelta:
        return epochs_to_timedelta(self.term_max)

    def age_in_years(self, now: datetime | None = None) -> float:
        """Years elapsed since term start; 0.0 when the start epoch is unset."""
        ts = self.term_start_time()
        if ts is None:
            return 0.0
        now = now or datetime.now(timezone.utc)
        return (now - ts).total_seconds() / 3600.0 / 24.0 / 365.0


@dataclass(slots=True, frozen=True)
class MinerPower:
    raw_byte_power: int
    quality_adj_power: int

    @property
    def has_power(self) -> bool:
        return self.raw_byte_power > 0 or self.quality_adj_power > 0


@dataclass(slots=True, frozen=True)
class ActiveProviders:
    ids: frozenset[ActorID]
    miners_scanned: int = 0
    skipped: int = 0                   # per-miner lookups that failed

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self.ids

    def __len__(self) -> int:
        return len(self.ids)


@dataclass(slots=True, frozen=True)
class DecodedDump:
    claims: list[Claim]
    records: int                       # entries in the dump mapping
    decode_errors: int = 0


@dataclass(slots=True, frozen=True)
class DiffResult:
    prepared: int = 0
    inserted: int = 0
    batches: int = 0
    failed_batches: int = 0
    rejected_rows: int = 0             # claims the store refused after a per-claim retry


@dataclass(slots=True)
class RunSummary:
    status: RunStatus
    started_at: float
    finished_at: float = 0.0
    file: str = ""
    reason: str | None = None
    active_providers: int = 0
    records: int = 0
    decoded: int = 0
    inactive: int = 0
    decode_errors: int = 0
    existing_keys: int = 0
    prepared: int = 0
    inserted: int = 0
    batches: int = 0
    failed_batches: int = 0
    rejected_rows: int = 0
    file_removed: bool = False

    @property
    def took(self) -> float:
        return max(0.0, self.finished_at - self.started_at)
