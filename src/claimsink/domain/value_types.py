from __future__ import annotations
from typing import NewType, Literal

ActorID   = NewType("ActorID", int)     # abi.ActorID, numeric
Address   = NewType("Address", str)     # f0.../f1.../f3... (or t-prefixed on testnets)
TipSetKey = NewType("TipSetKey", tuple) # tuple of {"/": cid} links, as returned by ChainHead
ClaimKey  = NewType("ClaimKey", str)    # "provider|cid|sector|term_start"
RunStatus = Literal["done", "skipped", "failed"]
