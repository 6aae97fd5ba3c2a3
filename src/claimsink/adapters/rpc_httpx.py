from __future__ import annotations
import asyncio, httpx, itertools, logging
from typing import Any
from ..domain.errors import RPCError
from ..domain.models import MinerPower
from ..domain.value_types import Address, TipSetKey
from ..ports.rpc import ChainClient

logger = logging.getLogger(__name__)

def _big(v: Any) -> int:
    # Lotus encodes BigInt as a decimal string
    return int(v) if v not in (None, "") else 0

class LotusRPC(ChainClient):
    def __init__(
        self,
        rpc_url: str,
        token: str = "",
        timeout_s: float = 30,
        max_conn: int = 16,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = client or httpx.AsyncClient(
            http2=True,
            headers=headers,
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max_conn//2),
        )
        self._ids = itertools.count(1)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "LotusRPC":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def call(self, method: str, *params: Any) -> Any:
        payload = {"jsonrpc":"2.0","id":next(self._ids),"method":f"Filecoin.{method}","params":list(params)}
        # retry on 429 with simple backoff
        for attempt in range(3):
            r = await self.client.post(self.rpc_url, json=payload)
            if r.status_code == 429:
                ra = r.headers.get("Retry-After")
                delay = max(1.0, float(ra)) if ra and ra.isdigit() else (1.0 * (2**attempt))
                logger.debug("lotus rate limited method=%s retry_in=%.1fs", method, delay)
                await asyncio.sleep(delay); continue
            r.raise_for_status()
            data = r.json()
            if "error" in data:
                err = data["error"]
                if isinstance(err, dict):
                    raise RPCError(method, str(err.get("message")), err.get("code"))
                raise RPCError(method, str(err))
            return data.get("result")
        raise RPCError(method, "retries exhausted (HTTP 429)")

    async def chain_head(self) -> TipSetKey:
        head = await self.call("ChainHead")
        cids = (head or {}).get("Cids")
        if not cids:
            raise RPCError("ChainHead", "head has no Cids")
        return TipSetKey(tuple(cids))

    async def list_miners(self, tsk: TipSetKey) -> list[Address]:
        res = await self.call("StateListMiners", list(tsk))
        return [Address(a) for a in (res or [])]

    async def miner_power(self, miner: Address, tsk: TipSetKey) -> MinerPower:
        res = await self.call("StateMinerPower", str(miner), list(tsk))
        mp = (res or {}).get("MinerPower") or {}
        return MinerPower(
            raw_byte_power=_big(mp.get("RawBytePower")),
            quality_adj_power=_big(mp.get("QualityAdjPower")),
        )

    async def lookup_id(self, addr: Address, tsk: TipSetKey) -> Address:
        res = await self.call("StateLookupID", str(addr), list(tsk))
        if not isinstance(res, str):
            raise RPCError("StateLookupID", f"unexpected result {res!r}")
        return Address(res)
