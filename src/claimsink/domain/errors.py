# claimsink/domain/errors.py
from __future__ import annotations


class ClaimsinkError(Exception):
    """Base class for every error raised by claimsink."""


class FatalInitError(ClaimsinkError):
    """Chain or store could not be reached (or bootstrapped) at startup."""


class RPCError(ClaimsinkError):
    """Lotus returned a JSON-RPC error payload, or retries were exhausted."""

    def __init__(self, method: str, message: str, code: int | None = None) -> None:
        super().__init__(f"{method}: RPC error code={code} message={message}")
        self.method = method
        self.code = code


class FilterBuildError(ClaimsinkError):
    """The chain head or the miner list could not be fetched."""


class DumpDecodeError(ClaimsinkError):
    """The dump document is unreadable as a whole; nothing is ingested."""


class ClaimDecodeError(ClaimsinkError):
    """A single claim record matched none of the accepted representations."""

    def __init__(self, claim_id: str, field: str, reason: str) -> None:
        super().__init__(f"claim {claim_id}: field {field!r}: {reason}")
        self.claim_id = claim_id
        self.field = field
        self.reason = reason


class BatchRejectedError(ClaimsinkError):
    """The store refused a batch because of the data in it, not the connection."""
