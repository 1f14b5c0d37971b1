from __future__ import annotations

import pytest

from adapters.payment_mapper import build_payment, payment_to_dict
from core.models import MatchResult


def test_build_payment_reads_sdk_fields() -> None:
    payment = build_payment(
        {
            "id": 42,
            "paymentType": "receive",
            "invoice": "lnbc1",
            "paymentHash": "hash-1",
            "description": "",
            "amountSat": 21,
        }
    )

    assert payment.payment_id == "42"
    assert payment.payment_type == "receive"
    assert payment.invoice == "lnbc1"
    assert payment.payment_hash == "hash-1"
    assert payment.description is None
    assert not payment.is_zap


def test_existing_zap_fields_are_kept_when_complete() -> None:
    payment = build_payment(
        {
            "id": "p1",
            "paymentType": "send",
            "isZap": True,
            "zapSenderPubkey": "sender",
            "zapRecipientPubkey": "recipient",
            "zapEventId": "note",
            "zapComment": "gm",
        }
    )

    assert payment.zap == MatchResult(sender="sender", recipient="recipient", subject_id="note", comment="gm")


def test_incomplete_zap_fields_are_dropped() -> None:
    payment = build_payment({"id": "p1", "paymentType": "receive", "isZap": True, "zapSenderPubkey": "sender"})

    assert payment.zap is None


@pytest.mark.parametrize(
    "raw",
    [
        "not an object",
        {"paymentType": "receive"},
        {"id": "p1", "paymentType": "refund"},
        {"id": "p1"},
    ],
)
def test_build_payment_rejects_unusable_objects(raw: dict) -> None:
    with pytest.raises(ValueError):
        build_payment(raw)


def test_payment_to_dict_writes_zap_fields() -> None:
    payment = build_payment({"id": "p1", "paymentType": "receive", "invoice": "lnbc1"})

    assert payment_to_dict(payment) == {
        "id": "p1",
        "paymentType": "receive",
        "invoice": "lnbc1",
        "paymentHash": None,
        "description": None,
        "isZap": False,
    }

    zapped = build_payment(
        {
            "id": "p2",
            "paymentType": "receive",
            "isZap": True,
            "zapSenderPubkey": "sender",
            "zapRecipientPubkey": "recipient",
        }
    )
    data = payment_to_dict(zapped)

    assert data["isZap"] is True
    assert data["zapSenderPubkey"] == "sender"
    assert data["zapEventId"] is None
    assert data["zapComment"] == ""
