"""Zap receipt matching logic (core domain).

Pure and synchronous: no I/O, no logging, no shared state. The invoice
comparison runs before any JSON parsing because nearly every receipt a relay
returns belongs to some other payment.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Union

from core.models import MatchResult
from core.records import ZAP_REQUEST_KIND, NostrEvent


class RejectReason(str, Enum):
    """First gate a candidate receipt failed."""

    MISSING_FINGERPRINT = "missing_fingerprint"
    FINGERPRINT_MISMATCH = "fingerprint_mismatch"
    MISSING_DESCRIPTION = "missing_description"
    MALFORMED_DESCRIPTION = "malformed_description"
    WRONG_KIND = "wrong_kind"
    MISSING_RECIPIENT = "missing_recipient"
    MISSING_SENDER = "missing_sender"


@dataclass(frozen=True)
class Rejection:
    reason: RejectReason


MatchVerdict = Union[MatchResult, Rejection]


def match_receipt(record: NostrEvent, fingerprint: str) -> MatchVerdict:
    """Decide whether ``record`` is the zap receipt for invoice ``fingerprint``.

    Gates, in order:
    - ``bolt11`` tag present and exactly equal to the fingerprint
    - ``description`` tag present and a JSON object of kind 9734
    - ``p`` tag (recipient) present on the receipt
    - sender pubkey present in the embedded request
    The ``e`` tag, when present, becomes the subject id; the request content
    becomes the comment.
    """

    bolt11 = record.tag_value("bolt11")
    if bolt11 is None:
        return Rejection(RejectReason.MISSING_FINGERPRINT)
    if bolt11 != fingerprint:
        return Rejection(RejectReason.FINGERPRINT_MISMATCH)

    description = record.tag_value("description")
    if description is None:
        return Rejection(RejectReason.MISSING_DESCRIPTION)

    try:
        zap_request = json.loads(description)
    except ValueError:
        return Rejection(RejectReason.MALFORMED_DESCRIPTION)
    if not isinstance(zap_request, dict):
        return Rejection(RejectReason.MALFORMED_DESCRIPTION)

    if zap_request.get("kind") != ZAP_REQUEST_KIND:
        return Rejection(RejectReason.WRONG_KIND)

    recipient = record.tag_value("p")
    if recipient is None:
        return Rejection(RejectReason.MISSING_RECIPIENT)

    sender = zap_request.get("pubkey")
    if not isinstance(sender, str) or not sender:
        return Rejection(RejectReason.MISSING_SENDER)

    comment = zap_request.get("content")

    return MatchResult(
        sender=sender,
        recipient=recipient,
        subject_id=record.tag_value("e"),
        comment=comment if isinstance(comment, str) else "",
    )
