"""Multi-relay zap receipt query coordinator.

One query fans out to every configured relay at once. Each relay branch
connects, subscribes to recent zap receipts for the recipient, and feeds the
stream through the receipt matcher. The first branch to produce a match wins;
the rest are cancelled. Relays that fail, drain or time out simply drop out,
and a query where nobody could help resolves to None.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Set, Tuple

from core.config import QueryConfig
from core.models import BranchOutcome, BranchState, MatchResult, RelayFilter
from core.ports import RelayError, RelayFactory, RelayPort
from core.receipt_matcher import match_receipt
from core.records import ZAP_RECEIPT_KIND

LOGGER = logging.getLogger(__name__)


class InvalidQueryError(ValueError):
    """Raised for unusable query input before any relay is contacted."""


def _short(value: str, keep: int = 24) -> str:
    if len(value) <= keep:
        return value
    return f"{value[:keep]}..."


async def _close_quietly(resource, url: str) -> None:
    """Close a relay or subscription, logging instead of raising."""

    try:
        await resource.close()
    except Exception as exc:
        LOGGER.warning("Error while closing %s: %s", url, exc)


@dataclass(frozen=True)
class _QueryPlan:
    relays: Tuple[str, ...]
    per_relay_timeout: float
    overall_timeout: float
    limit: int


class ReceiptQueryCoordinator:
    """Races relays for the zap receipt that matches an invoice."""

    def __init__(self, relay_factory: RelayFactory, config: Optional[QueryConfig] = None) -> None:
        self._relay_factory = relay_factory
        self._config = config or QueryConfig()

    def _plan(
        self,
        relays: Optional[Sequence[str]],
        per_relay_timeout: Optional[float],
        overall_timeout: Optional[float],
        limit: Optional[int],
    ) -> _QueryPlan:
        relay_urls = self._config.relays if relays is None else relays
        # Same relay listed twice would only double the traffic.
        relay_urls = tuple(dict.fromkeys(url.strip() for url in relay_urls if url and url.strip()))
        if not relay_urls:
            raise InvalidQueryError("At least one relay URL is required")

        plan = _QueryPlan(
            relays=relay_urls,
            per_relay_timeout=self._config.per_relay_timeout if per_relay_timeout is None else per_relay_timeout,
            overall_timeout=self._config.overall_timeout if overall_timeout is None else overall_timeout,
            limit=self._config.limit if limit is None else limit,
        )
        if plan.per_relay_timeout <= 0 or plan.overall_timeout <= 0:
            raise InvalidQueryError("Timeouts must be positive")
        if plan.limit < 1:
            raise InvalidQueryError("Result limit must be at least 1")
        return plan

    @staticmethod
    def _check_identity(name: str, value: str) -> None:
        if not isinstance(value, str) or not value.strip():
            raise InvalidQueryError(f"{name} must be a non-empty string")

    async def query(
        self,
        fingerprint: str,
        recipient: str,
        relays: Optional[Sequence[str]] = None,
        per_relay_timeout: Optional[float] = None,
        overall_timeout: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> Optional[MatchResult]:
        """Return the first matching receipt's metadata, or None.

        Raises InvalidQueryError for bad input; relay problems never raise.
        """

        self._check_identity("invoice", fingerprint)
        self._check_identity("recipient", recipient)
        plan = self._plan(relays, per_relay_timeout, overall_timeout, limit)
        return await self._run(fingerprint, recipient, plan)

    async def query_many(
        self,
        fingerprints: Iterable[str],
        recipient: str,
        relays: Optional[Sequence[str]] = None,
        per_relay_timeout: Optional[float] = None,
        overall_timeout: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> dict[str, MatchResult]:
        """Query several invoices concurrently; unmatched invoices are omitted."""

        unique = list(dict.fromkeys(fingerprints))
        for fingerprint in unique:
            self._check_identity("invoice", fingerprint)
        self._check_identity("recipient", recipient)
        plan = self._plan(relays, per_relay_timeout, overall_timeout, limit)

        results = await asyncio.gather(*(self._run(fingerprint, recipient, plan) for fingerprint in unique))
        return {fingerprint: result for fingerprint, result in zip(unique, results) if result is not None}

    async def _run(self, fingerprint: str, recipient: str, plan: _QueryPlan) -> Optional[MatchResult]:
        relay_filter = RelayFilter(kinds=(ZAP_RECEIPT_KIND,), p_tags=(recipient,), limit=plan.limit)
        LOGGER.info("Querying %s relays for zap receipt of %s", len(plan.relays), _short(fingerprint))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + plan.overall_timeout
        pending: Set[asyncio.Task] = {
            asyncio.create_task(self._run_branch(url, relay_filter, fingerprint, plan))
            for url in plan.relays
        }
        result: Optional[MatchResult] = None
        outcomes: list[BranchOutcome] = []

        try:
            while pending and result is None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    LOGGER.info("Overall timeout reached for %s", _short(fingerprint))
                    break
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    outcome = task.result()
                    outcomes.append(outcome)
                    # Several branches can finish in the same tick; the first
                    # one we look at is authoritative.
                    if outcome.match is not None and result is None:
                        result = outcome.match
                        LOGGER.info("Zap receipt matched on %s", outcome.relay_url)
        finally:
            await self._cancel(pending)

        if result is None:
            LOGGER.info(
                "No zap receipt found for %s (%s/%s relays completed)",
                _short(fingerprint),
                len(outcomes),
                len(plan.relays),
            )
        return result

    async def _cancel(self, pending: Set[asyncio.Task]) -> None:
        """Cancel still-running branches and give them a moment to close."""

        if not pending:
            return
        for task in pending:
            task.cancel()
        _, still_running = await asyncio.wait(pending, timeout=self._config.cleanup_grace)
        if still_running:
            LOGGER.warning("%s relay branches still closing after cancellation", len(still_running))

    async def _run_branch(
        self,
        url: str,
        relay_filter: RelayFilter,
        fingerprint: str,
        plan: _QueryPlan,
    ) -> BranchOutcome:
        relay: Optional[RelayPort] = None
        try:
            relay = self._relay_factory(url)
            return await asyncio.wait_for(
                self._consume(relay, relay_filter, fingerprint, plan.limit),
                plan.per_relay_timeout,
            )
        except asyncio.TimeoutError:
            LOGGER.info("Timeout for %s after %.1fs", url, plan.per_relay_timeout)
            return BranchOutcome(url, BranchState.TIMED_OUT)
        except RelayError as exc:
            LOGGER.warning("Failed to query %s: %s", url, exc)
            return BranchOutcome(url, BranchState.FAILED)
        except asyncio.CancelledError:
            LOGGER.debug("Query on %s cancelled", url)
            raise
        except Exception:
            LOGGER.exception("Unexpected error while querying %s", url)
            return BranchOutcome(url, BranchState.FAILED)
        finally:
            if relay is not None:
                await _close_quietly(relay, url)

    async def _consume(
        self,
        relay: RelayPort,
        relay_filter: RelayFilter,
        fingerprint: str,
        limit: int,
    ) -> BranchOutcome:
        await relay.connect()
        LOGGER.debug("Connected to %s", relay.url)

        subscription = await relay.subscribe(relay_filter)
        seen = 0
        try:
            async for event in subscription:
                seen += 1
                verdict = match_receipt(event, fingerprint)
                if isinstance(verdict, MatchResult):
                    return BranchOutcome(relay.url, BranchState.MATCHED, verdict, seen)
                # Chatty relays may ignore the filter limit.
                if seen >= limit:
                    break
        finally:
            await _close_quietly(subscription, relay.url)

        LOGGER.debug("EOSE from %s after %s receipts", relay.url, seen)
        return BranchOutcome(relay.url, BranchState.DRAINED, records_seen=seen)
