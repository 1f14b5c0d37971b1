"""Ports (interfaces) used by the core.

Ports define the minimal contracts for relay and storage adapters so that the
core can be reused with different websocket libraries or backends.
"""

from __future__ import annotations

from typing import AsyncIterator, Callable, Optional, Protocol

from core.models import RelayFilter, StoredZapRequest
from core.records import NostrEvent, ZapRequest


class RelayError(Exception):
    """A relay could not be reached or broke protocol mid-query."""


class RelaySubscription(Protocol):
    """An open REQ on one relay.

    Iteration yields validated events and stops at end-of-stored-events.
    """

    def __aiter__(self) -> AsyncIterator[NostrEvent]:
        ...

    async def close(self) -> None:
        ...


class RelayPort(Protocol):
    """Connection to a single relay."""

    url: str

    async def connect(self) -> None:
        ...

    async def subscribe(self, relay_filter: RelayFilter) -> RelaySubscription:
        ...

    async def close(self) -> None:
        ...


RelayFactory = Callable[[str], RelayPort]


class ZapRequestStorePort(Protocol):
    """Storage for zap requests we created, keyed by payment hash."""

    def save(self, payment_hash: str, zap_request: ZapRequest, recipient_pubkey: str) -> None:
        ...

    def get(self, payment_hash: str) -> Optional[StoredZapRequest]:
        ...

    def cleanup(self, ttl_days: int) -> int:
        ...
