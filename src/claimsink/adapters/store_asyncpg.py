# claimsink/adapters/store_asyncpg.py
from __future__ import annotations

import json
import logging
import re
from typing import AsyncIterator, Sequence

import asyncpg

from ..domain.errors import BatchRejectedError
from ..domain.models import Claim
from ..ports.storage import ClaimStore

logger = logging.getLogger(__name__)

_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

# Column order shared by the DDL, the unnest() arrays and _columns()
COLUMNS: tuple[tuple[str, str], ...] = (
    ("claim_id",    "bigint"),
    ("provider_id", "bigint"),
    ("client_id",   "bigint"),
    ("client_addr", "text"),
    ("data_cid",    "text"),
    ("size",        "bigint"),
    ("term_min",    "bigint"),
    ("term_max",    "bigint"),
    ("term_start",  "bigint"),
    ("sector",      "bigint"),
    ("miner_addr",  "text"),
    ("updated_at",  "timestamptz"),
    ("meta",        "text"),   # cast to jsonb on insert
)


def _columns(claims: Sequence[Claim]) -> list[list]:
    cols: list[list] = [[] for _ in COLUMNS]
    for c in claims:
        row = (
            c.claim_id, c.provider_id, c.client_id, c.client_addr or None, c.data_cid,
            c.size, c.term_min, c.term_max, c.term_start, c.sector, c.miner_addr or None,
            c.updated_at, json.dumps(c.meta) if c.meta else None,
        )
        for i, v in enumerate(row):
            cols[i].append(v)
    return cols


def _is_data_error(e: BaseException) -> bool:
    # asyncpg raises DataError (a ValueError) for values it cannot encode.
    # SQLSTATE class 22 is data exception, 23 is integrity constraint violation.
    if isinstance(e, ValueError):
        return True
    state = getattr(e, "sqlstate", None) or ""
    return isinstance(e, asyncpg.PostgresError) and state[:2] in ("22", "23")


def _inserted_count(status: str) -> int:
    # asyncpg returns the command tag, e.g. "INSERT 0 17"
    parts = status.split()
    if len(parts) == 3 and parts[0] == "INSERT" and parts[2].isdigit():
        return int(parts[2])
    raise ValueError(f"unexpected command status {status!r}")


class PostgresClaimStore(ClaimStore):
    """
    Claims table in PostgreSQL. Append-only from this side: writes go through
    INSERT ... ON CONFLICT DO NOTHING, so a row matching an existing unique
    key (uniqueness tuple, or provider+claim id) is never touched.
    """
    def __init__(self, pool: asyncpg.Pool, table: str = "claims", prefetch: int = 10_000) -> None:
        if not _IDENT.match(table):
            raise ValueError(f"invalid table name: {table!r}")
        self.pool = pool
        self.table = table
        self.prefetch = prefetch

    @classmethod
    async def connect(cls, dsn: str, table: str = "claims", *,
                      command_timeout: float = 300.0, max_size: int = 4) -> "PostgresClaimStore":
        pool = await asyncpg.create_pool(dsn, min_size=1, max_size=max_size, command_timeout=command_timeout)
        return cls(pool, table)

    async def close(self) -> None:
        await self.pool.close()

    # ---------------- schema ----------------

    def _ddl(self) -> tuple[str, list[tuple[str, str]]]:
        t = self.table
        table_sql = f"""
            CREATE TABLE IF NOT EXISTS {t} (
                id          bigserial PRIMARY KEY,
                claim_id    bigint,
                provider_id bigint      NOT NULL,
                client_id   bigint,
                client_addr text,
                data_cid    text        NOT NULL,
                size        bigint      NOT NULL,
                term_min    bigint      NOT NULL,
                term_max    bigint      NOT NULL,
                term_start  bigint      NOT NULL,
                sector      bigint      NOT NULL,
                miner_addr  text,
                updated_at  timestamptz NOT NULL DEFAULT now(),
                meta        jsonb
            )"""
        indexes = [
            ("uniq_claim_tuple",
             f"CREATE UNIQUE INDEX IF NOT EXISTS {t}_uniq_claim_tuple "
             f"ON {t} (provider_id, data_cid, sector, term_start)"),
            ("uniq_provider_claimid",
             f"CREATE UNIQUE INDEX IF NOT EXISTS {t}_uniq_provider_claimid "
             f"ON {t} (provider_id, claim_id) WHERE claim_id IS NOT NULL"),
            ("client_addr", f"CREATE INDEX IF NOT EXISTS {t}_client_addr ON {t} (client_addr)"),
            ("miner_addr",  f"CREATE INDEX IF NOT EXISTS {t}_miner_addr ON {t} (miner_addr)"),
            ("updated_at",  f"CREATE INDEX IF NOT EXISTS {t}_updated_at ON {t} (updated_at DESC)"),
        ]
        return table_sql, indexes

    async def ensure_schema(self) -> None:
        """Create the table (errors propagate) and its indexes (errors are logged)."""
        table_sql, indexes = self._ddl()
        async with self.pool.acquire() as conn:
            await conn.execute(table_sql)
            for name, sql in indexes:
                try:
                    await conn.execute(sql)
                except asyncpg.PostgresError as e:
                    logger.warning("index creation failed table=%s index=%s err=%s", self.table, name, e)

    # ---------------- reads ----------------

    async def iter_claim_keys(self) -> AsyncIterator[tuple[int, str, int, int]]:
        sql = f"SELECT provider_id, data_cid, sector, term_start FROM {self.table}"
        async with self.pool.acquire() as conn:
            # server-side cursors need a transaction
            async with conn.transaction(readonly=True):
                async for r in conn.cursor(sql, prefetch=self.prefetch):
                    yield (r[0], r[1], r[2], r[3])

    # ---------------- writes ----------------

    def _insert_sql(self) -> str:
        names = ", ".join(n for n, _ in COLUMNS)
        arrays = ", ".join(f"${i}::{typ}[]" for i, (_, typ) in enumerate(COLUMNS, start=1))
        select = ", ".join("t.meta::jsonb" if n == "meta" else f"t.{n}" for n, _ in COLUMNS)
        return (
            f"INSERT INTO {self.table} ({names}) "
            f"SELECT {select} FROM unnest({arrays}) AS t({names}) "
            f"ON CONFLICT DO NOTHING"
        )

    async def insert_if_absent(self, claims: Sequence[Claim]) -> int:
        if not claims:
            return 0
        async with self.pool.acquire() as conn:
            try:
                status = await conn.execute(self._insert_sql(), *_columns(claims))
            except (ValueError, asyncpg.PostgresError) as e:
                if not _is_data_error(e):
                    raise
                raise BatchRejectedError(f"{type(e).__name__}: {e}") from e
        return _inserted_count(status)
