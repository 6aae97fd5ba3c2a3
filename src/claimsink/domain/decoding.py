from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, IO

from .errors import ClaimDecodeError, DumpDecodeError
from .models import Claim, DecodedDump

logger = logging.getLogger(__name__)

# Reserved key of an IPLD link object: {"/": "bafy..."}
CID_LINK_KEY = "/"

# Record field -> Claim attribute
INT_FIELDS: dict[str, str] = {
    "Size":      "size",
    "TermMin":   "term_min",
    "TermMax":   "term_max",
    "TermStart": "term_start",
}
UINT_FIELDS: dict[str, str] = {
    "Provider":  "provider_id",
    "Client":    "client_id",
    "Sector":    "sector",
}

# Columns are signed 64-bit
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

# ---------- lenient scalars (primary form first, then the alternate) ----------

def _cid_text(s: str) -> str:
    # NUL is not storable in a text column
    if not s or "\x00" in s:
        raise ValueError(f"invalid CID string: {s!r:.120}")
    return s


def decode_cid(v: Any) -> str:
    """Bare string, or a link object carrying the string under "/"."""
    if isinstance(v, str):
        return _cid_text(v)
    if isinstance(v, dict):
        s = v.get(CID_LINK_KEY)
        if isinstance(s, str):
            return _cid_text(s)
    raise ValueError(f"unsupported CID JSON format: {json.dumps(v)[:120]}")


def _int64(n: int) -> int:
    if not INT64_MIN <= n <= INT64_MAX:
        raise ValueError(f"integer out of int64 range: {n}")
    return n


def decode_int(v: Any) -> int:
    """JSON integer, or a base-10 integer string, within int64. Bools and floats are rejected."""
    if isinstance(v, bool):
        raise ValueError(f"expected integer, got {v!r}")
    if isinstance(v, int):
        return _int64(v)
    if isinstance(v, str):
        s = v.strip()
        if s[:1] in ("+", "-"):
            digits = s[1:]
        else:
            digits = s
        if digits.isdigit() and digits.isascii():
            return _int64(int(s))
        raise ValueError(f"not a base-10 integer: {v!r}")
    raise ValueError(f"expected integer, got {type(v).__name__}")


def decode_uint(v: Any) -> int:
    n = decode_int(v)
    if n < 0:
        raise ValueError(f"expected unsigned integer, got {n}")
    return n


def parse_claim_id(s: str) -> int | None:
    try:
        return decode_uint(s)
    except ValueError:
        return None

# ---------------------------- records -----------------------------------------

def _field(claim_id: str, rec: dict[str, Any], name: str, fn: Callable[[Any], Any]) -> Any:
    if name not in rec:
        raise ClaimDecodeError(claim_id, name, "missing")
    try:
        return fn(rec[name])
    except ValueError as e:
        raise ClaimDecodeError(claim_id, name, str(e)) from e


def decode_claim(claim_id: str, rec: Any, now: datetime | None = None) -> Claim:
    """Decode one dump record into a Claim, normalising every lenient field."""
    if not isinstance(rec, dict):
        raise ClaimDecodeError(claim_id, "*", f"record is {type(rec).__name__}, not an object")
    vals: dict[str, Any] = {"data_cid": _field(claim_id, rec, "Data", decode_cid)}
    for name, attr in UINT_FIELDS.items():
        vals[attr] = _field(claim_id, rec, name, decode_uint)
    for name, attr in INT_FIELDS.items():
        vals[attr] = _field(claim_id, rec, name, decode_int)
    return Claim(claim_id=parse_claim_id(claim_id), updated_at=now, **vals)


def decode_dump(doc: Any, *, skip_malformed: bool = False, now: datetime | None = None) -> DecodedDump:
    """
    Decode a saved Filecoin.StateGetClaims-style response:
    {"jsonrpc": "2.0", "result": {"<claim id>": {...}}, "id": ...}

    The top level is all-or-nothing. A bad record raises ClaimDecodeError
    unless `skip_malformed`, in which case it is logged and counted.
    """
    if not isinstance(doc, dict):
        raise DumpDecodeError(f"dump root is {type(doc).__name__}, not an object")
    result = doc.get("result")
    if not isinstance(result, dict):
        raise DumpDecodeError("dump has no claims mapping under 'result'")

    now = now or datetime.now(timezone.utc)
    claims: list[Claim] = []
    errors = 0
    for cid_str, rec in result.items():
        try:
            claims.append(decode_claim(cid_str, rec, now))
        except ClaimDecodeError as e:
            if not skip_malformed:
                raise
            errors += 1
            logger.warning("skipping malformed claim record: %s", e)
    return DecodedDump(claims=claims, records=len(result), decode_errors=errors)


def load_dump(fp: IO[str] | IO[bytes], **kw: Any) -> DecodedDump:
    try:
        doc = json.load(fp)
    except (ValueError, UnicodeDecodeError) as e:
        raise DumpDecodeError(f"invalid JSON: {e}") from e
    return decode_dump(doc, **kw)


def load_dump_file(path: str, **kw: Any) -> DecodedDump:
    with open(path, "rb") as f:
        try:
            return load_dump(f, **kw)
        except DumpDecodeError as e:
            raise DumpDecodeError(f"decode {path}: {e}") from e
