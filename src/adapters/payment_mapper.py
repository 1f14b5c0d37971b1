"""Wallet SDK payment mapping adapter.

Converts between the SDK's camelCase payment JSON and the core PaymentRecord
so SDK field names stay out of the enrichment pipeline.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from core.models import MatchResult, PaymentRecord


def _optional_str(raw: Mapping[str, Any], key: str) -> Optional[str]:
    value = raw.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def _zap_from_sdk(raw: Mapping[str, Any]) -> Optional[MatchResult]:
    if not raw.get("isZap"):
        return None
    sender = _optional_str(raw, "zapSenderPubkey")
    recipient = _optional_str(raw, "zapRecipientPubkey")
    # A zap flag without both parties is not worth trusting; enrich again.
    if not sender or not recipient:
        return None
    return MatchResult(
        sender=sender,
        recipient=recipient,
        subject_id=_optional_str(raw, "zapEventId"),
        comment=_optional_str(raw, "zapComment") or "",
    )


def build_payment(raw: Mapping[str, Any]) -> PaymentRecord:
    """Build a core PaymentRecord from an SDK payment object."""

    if not isinstance(raw, Mapping):
        raise ValueError(f"Payment must be a JSON object, got {type(raw).__name__}")
    payment_id = raw.get("id")
    if payment_id is None:
        raise ValueError("Payment is missing an id")
    payment_type = raw.get("paymentType")
    if payment_type not in {"send", "receive"}:
        raise ValueError(f"Unsupported paymentType for payment {payment_id}: {payment_type!r}")

    return PaymentRecord(
        payment_id=str(payment_id),
        payment_type=payment_type,
        invoice=_optional_str(raw, "invoice"),
        payment_hash=_optional_str(raw, "paymentHash"),
        description=_optional_str(raw, "description"),
        zap=_zap_from_sdk(raw),
    )


def payment_to_dict(payment: PaymentRecord) -> dict[str, Any]:
    """Render a PaymentRecord back into SDK-style JSON, zap fields included."""

    data: dict[str, Any] = {
        "id": payment.payment_id,
        "paymentType": payment.payment_type,
        "invoice": payment.invoice,
        "paymentHash": payment.payment_hash,
        "description": payment.description,
        "isZap": payment.is_zap,
    }
    if payment.zap is not None:
        data.update(
            {
                "zapSenderPubkey": payment.zap.sender,
                "zapRecipientPubkey": payment.zap.recipient,
                "zapEventId": payment.zap.subject_id,
                "zapComment": payment.zap.comment,
            }
        )
    return data
