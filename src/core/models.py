"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any wallet SDK or relay-library types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple

from core.records import ZapRequest


@dataclass(frozen=True)
class MatchResult:
    """Sender/recipient metadata decoded from a matching zap receipt.

    ``subject_id`` is None for profile zaps, i.e. zaps not aimed at a note.
    """

    sender: str
    recipient: str
    subject_id: Optional[str] = None
    comment: str = ""


@dataclass(frozen=True)
class RelayFilter:
    """Subscription filter sent to each relay."""

    kinds: Tuple[int, ...]
    p_tags: Tuple[str, ...]
    limit: int

    def to_wire(self) -> dict[str, Any]:
        return {"kinds": list(self.kinds), "#p": list(self.p_tags), "limit": self.limit}


class BranchState(str, Enum):
    """Terminal state of one relay branch within a query."""

    MATCHED = "matched"
    DRAINED = "drained"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BranchOutcome:
    """Diagnostic summary of one relay branch."""

    relay_url: str
    state: BranchState
    match: Optional[MatchResult] = None
    records_seen: int = 0


@dataclass(frozen=True)
class PaymentRecord:
    """Wallet payment as consumed by the enricher.

    ``zap`` is filled in once the payment has been linked to a zap request.
    """

    payment_id: str
    payment_type: str
    invoice: Optional[str] = None
    payment_hash: Optional[str] = None
    description: Optional[str] = None
    zap: Optional[MatchResult] = None

    @property
    def is_zap(self) -> bool:
        return self.zap is not None


@dataclass(frozen=True)
class StoredZapRequest:
    """Zap request remembered locally for an outgoing payment."""

    payment_hash: str
    zap_request: ZapRequest
    recipient_pubkey: str
    stored_at: datetime = field(compare=False)
