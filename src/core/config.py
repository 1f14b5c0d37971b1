"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

DEFAULT_RELAYS: Tuple[str, ...] = (
    "wss://relay.primal.net",
    "wss://relay.damus.io",
    "wss://relay.nostr.band",
    "wss://nos.lol",
)


@dataclass(frozen=True)
class QueryConfig:
    """Defaults for receipt queries; every field can be overridden per call."""

    relays: Tuple[str, ...] = DEFAULT_RELAYS
    per_relay_timeout: float = 5.0
    overall_timeout: float = 10.0
    limit: int = 50
    # How long query() waits for cancelled branches to close their sockets.
    cleanup_grace: float = 1.0


@dataclass(frozen=True)
class StoreConfig:
    """Retention settings for locally remembered zap requests."""

    db_path: str
    ttl_days: int = 30
