"""Payment enrichment pipeline.

Links wallet payments to the zap requests behind them. The order is cheapest
first:
1) Skip payments that are already enriched
2) Local store lookup by payment hash (zaps we sent ourselves)
3) Zap request embedded in the invoice description
4) Relay lookup of the zap receipt (incoming payments only)

This module is integration-agnostic. It only relies on ports for storage and
on the coordinator for relay access.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Callable, Iterable, List, Optional

from core.coordinator import ReceiptQueryCoordinator
from core.models import MatchResult, PaymentRecord
from core.ports import ZapRequestStorePort
from core.records import ZapRequest, parse_zap_request

LOGGER = logging.getLogger(__name__)

PaymentHashResolver = Callable[[str], Optional[str]]


def match_from_zap_request(zap_request: ZapRequest, recipient: Optional[str] = None) -> Optional[MatchResult]:
    """Build a MatchResult from a zap request, if it names both parties."""

    recipient = recipient or zap_request.recipient
    if not zap_request.pubkey or not recipient:
        return None
    return MatchResult(
        sender=zap_request.pubkey,
        recipient=recipient,
        subject_id=zap_request.subject_id,
        comment=zap_request.content,
    )


def remember_outgoing_zap(
    store: ZapRequestStorePort,
    payment_hash_of: PaymentHashResolver,
    invoice: str,
    zap_request: ZapRequest,
    recipient_pubkey: str,
) -> Optional[str]:
    """Store the zap request for an invoice we are about to pay.

    Returns the payment hash used as key, or None when it could not be
    derived (nothing is stored in that case).
    """

    payment_hash = payment_hash_of(invoice)
    if not payment_hash:
        LOGGER.warning("No payment hash found in invoice, zap request not stored")
        return None
    store.save(payment_hash, zap_request, recipient_pubkey)
    LOGGER.info("Stored zap request for payment hash %s", payment_hash)
    return payment_hash


class PaymentEnricher:
    """Orchestrates the local, embedded and relay enrichment strategies."""

    def __init__(
        self,
        coordinator: ReceiptQueryCoordinator,
        store: Optional[ZapRequestStorePort] = None,
        payment_hash_of: Optional[PaymentHashResolver] = None,
    ) -> None:
        self._coordinator = coordinator
        self._store = store
        self._payment_hash_of = payment_hash_of

    def _resolve_payment_hash(self, payment: PaymentRecord) -> Optional[str]:
        if payment.payment_hash:
            return payment.payment_hash
        if payment.invoice and self._payment_hash_of is not None:
            return self._payment_hash_of(payment.invoice)
        return None

    def _from_store(self, payment: PaymentRecord) -> Optional[MatchResult]:
        if self._store is None:
            return None
        payment_hash = self._resolve_payment_hash(payment)
        if not payment_hash:
            return None
        stored = self._store.get(payment_hash)
        if stored is None:
            return None
        return match_from_zap_request(stored.zap_request, stored.recipient_pubkey)

    @staticmethod
    def _from_description(payment: PaymentRecord) -> Optional[MatchResult]:
        if not payment.description:
            return None
        zap_request = parse_zap_request(payment.description)
        if zap_request is None:
            return None
        return match_from_zap_request(zap_request)

    async def enrich(self, payment: PaymentRecord, user_pubkey: Optional[str] = None) -> PaymentRecord:
        """Return ``payment`` with zap metadata attached when it can be found."""

        if payment.is_zap:
            return payment

        match = self._from_store(payment)
        if match is not None:
            LOGGER.info("Enriched payment %s from local zap store", payment.payment_id)
            return dataclasses.replace(payment, zap=match)

        match = self._from_description(payment)
        if match is not None:
            LOGGER.info("Enriched payment %s from invoice description", payment.payment_id)
            return dataclasses.replace(payment, zap=match)

        # Only incoming payments have receipts we can look up by recipient.
        if payment.payment_type != "receive" or not payment.invoice or not user_pubkey:
            return payment

        match = await self._coordinator.query(payment.invoice, user_pubkey)
        if match is None:
            return payment
        LOGGER.info(
            "Enriched payment %s from relay data (event: %s)",
            payment.payment_id,
            match.subject_id or "none, profile zap",
        )
        return dataclasses.replace(payment, zap=match)

    async def enrich_many(
        self,
        payments: Iterable[PaymentRecord],
        user_pubkey: Optional[str] = None,
    ) -> List[PaymentRecord]:
        """Enrich payments concurrently, preserving input order."""

        return list(await asyncio.gather(*(self.enrich(payment, user_pubkey) for payment in payments)))
