"""Structured Nostr event types and the boundary parser.

Relays hand us loosely-typed JSON. Everything that reaches the core goes
through ``parse_event`` first, so the matcher and enricher only ever deal with
validated, immutable records.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

ZAP_REQUEST_KIND = 9734
ZAP_RECEIPT_KIND = 9735

Tag = Tuple[str, ...]


class InvalidEventError(ValueError):
    """Raised when a wire object does not look like a Nostr event."""


def find_tag_value(tags: Tuple[Tag, ...], key: str) -> Optional[str]:
    """Return the value of the first tag named ``key``.

    A tag without a value (or with an empty one) counts as absent.
    """

    for tag in tags:
        if tag and tag[0] == key:
            if len(tag) < 2 or not tag[1]:
                return None
            return tag[1]
    return None


@dataclass(frozen=True)
class NostrEvent:
    """A validated Nostr event as received from a relay."""

    id: str
    pubkey: str
    kind: int
    created_at: int
    tags: Tuple[Tag, ...]
    content: str

    def tag_value(self, key: str) -> Optional[str]:
        return find_tag_value(self.tags, key)


@dataclass(frozen=True)
class ZapRequest:
    """A kind 9734 zap request, usually embedded in a receipt or invoice."""

    pubkey: str
    kind: int
    content: str
    tags: Tuple[Tag, ...]

    @property
    def recipient(self) -> Optional[str]:
        return find_tag_value(self.tags, "p")

    @property
    def subject_id(self) -> Optional[str]:
        return find_tag_value(self.tags, "e")

    def to_json(self) -> str:
        return json.dumps(
            {
                "kind": self.kind,
                "pubkey": self.pubkey,
                "content": self.content,
                "tags": [list(tag) for tag in self.tags],
            }
        )


def _parse_tags(raw_tags: Any) -> Tuple[Tag, ...]:
    if not isinstance(raw_tags, list):
        raise InvalidEventError("tags must be a list")
    tags = []
    for raw_tag in raw_tags:
        if not isinstance(raw_tag, list) or not raw_tag:
            raise InvalidEventError("each tag must be a non-empty list")
        if not all(isinstance(item, str) for item in raw_tag):
            raise InvalidEventError("tag entries must be strings")
        tags.append(tuple(raw_tag))
    return tuple(tags)


def parse_event(raw: Any) -> NostrEvent:
    """Validate a relay event object and return a ``NostrEvent``."""

    if not isinstance(raw, Mapping):
        raise InvalidEventError("event must be a JSON object")

    event_id = raw.get("id")
    pubkey = raw.get("pubkey")
    kind = raw.get("kind")
    created_at = raw.get("created_at", 0)
    content = raw.get("content", "")

    if not isinstance(event_id, str) or not event_id:
        raise InvalidEventError("event id is missing")
    if not isinstance(pubkey, str) or not pubkey:
        raise InvalidEventError("event pubkey is missing")
    # bool is an int subclass; a kind of True is not a kind.
    if not isinstance(kind, int) or isinstance(kind, bool):
        raise InvalidEventError("event kind must be an integer")
    if not isinstance(created_at, int) or isinstance(created_at, bool):
        raise InvalidEventError("created_at must be an integer")
    if not isinstance(content, str):
        raise InvalidEventError("content must be a string")

    return NostrEvent(
        id=event_id,
        pubkey=pubkey,
        kind=kind,
        created_at=created_at,
        tags=_parse_tags(raw.get("tags", [])),
        content=content,
    )


def parse_zap_request(raw: Any) -> Optional[ZapRequest]:
    """Parse a zap request from a JSON string or an already-decoded object.

    Returns ``None`` when the input is not a kind 9734 request. Malformed tags
    are dropped rather than failing the whole request, since wallets embed
    these objects with varying care.
    """

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return None
    if not isinstance(raw, Mapping):
        return None
    if raw.get("kind") != ZAP_REQUEST_KIND:
        return None

    pubkey = raw.get("pubkey")
    content = raw.get("content")
    raw_tags = raw.get("tags")
    tags: list[Tag] = []
    if isinstance(raw_tags, list):
        for raw_tag in raw_tags:
            if isinstance(raw_tag, list) and raw_tag and all(isinstance(item, str) for item in raw_tag):
                tags.append(tuple(raw_tag))

    return ZapRequest(
        pubkey=pubkey if isinstance(pubkey, str) else "",
        kind=ZAP_REQUEST_KIND,
        content=content if isinstance(content, str) else "",
        tags=tuple(tags),
    )
