"""Application entry point for zapscope."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

import settings
from adapters.invoice_decoder import payment_hash_of
from adapters.payment_mapper import build_payment, payment_to_dict
from adapters.result_formatting import format_match, short_id
from adapters.sqlite_zap_store import SQLiteZapRequestStore
from client import build_relay_factory, build_session
from core.config import QueryConfig, StoreConfig
from core.coordinator import InvalidQueryError, ReceiptQueryCoordinator
from core.enrichment import PaymentEnricher, remember_outgoing_zap
from core.records import parse_zap_request

NAME = "ZAPSCOPE"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        # stderr keeps stdout clean for JSON output of the enrich command.
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/zapscope.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _query_config() -> QueryConfig:
    return QueryConfig(
        relays=settings.RELAYS,
        per_relay_timeout=settings.PER_RELAY_TIMEOUT,
        overall_timeout=settings.OVERALL_TIMEOUT,
        limit=settings.RESULT_LIMIT,
    )


def _store_config() -> StoreConfig:
    return StoreConfig(db_path=settings.DB_PATH, ttl_days=settings.STORE_TTL_DAYS)


def _open_store() -> SQLiteZapRequestStore:
    config = _store_config()
    store = SQLiteZapRequestStore(config.db_path, ttl_days=config.ttl_days)
    store.init_db()
    return store


def _resolve_pubkey(explicit: Optional[str]) -> Optional[str]:
    load_dotenv()
    return explicit or os.getenv("NOSTR_PUBKEY")


def _cli_relays(values: Optional[list[str]]) -> Optional[tuple[str, ...]]:
    """Normalize --relay values like config.json entries; None keeps the configured relays."""

    if not values:
        return None
    return settings.normalize_relays(values) or None


def _require_pubkey(explicit: Optional[str]) -> str:
    pubkey = _resolve_pubkey(explicit)
    if not pubkey:
        raise RuntimeError("A recipient pubkey is required (--recipient or NOSTR_PUBKEY)")
    return pubkey


async def _lookup(args: argparse.Namespace) -> int:
    recipient = _require_pubkey(args.recipient)
    async with build_session() as session:
        coordinator = ReceiptQueryCoordinator(build_relay_factory(session), _query_config())
        result = await coordinator.query(
            args.invoice,
            recipient,
            relays=_cli_relays(args.relay),
            overall_timeout=args.timeout,
        )
    print(format_match(args.invoice, result, mode=args.format))
    return 0 if result is not None else 1


async def _batch(args: argparse.Namespace) -> int:
    recipient = _require_pubkey(args.recipient)
    with open(args.file, "r", encoding="utf-8") as handle:
        invoices = [line.strip() for line in handle if line.strip()]

    async with build_session() as session:
        coordinator = ReceiptQueryCoordinator(build_relay_factory(session), _query_config())
        results = await coordinator.query_many(invoices, recipient)

    table = Table(title=f"Zap receipts ({len(results)}/{len(invoices)} matched)")
    table.add_column("Invoice")
    table.add_column("Sender")
    table.add_column("Event")
    table.add_column("Comment")
    for invoice in invoices:
        result = results.get(invoice)
        if result is None:
            table.add_row(short_id(invoice, 24), "-", "-", "-")
            continue
        table.add_row(
            short_id(invoice, 24),
            short_id(result.sender),
            short_id(result.subject_id) if result.subject_id else "profile",
            result.comment,
        )
    Console().print(table)
    return 0


async def _enrich(args: argparse.Namespace) -> int:
    user_pubkey = _resolve_pubkey(args.pubkey)
    with open(args.file, "r", encoding="utf-8") as handle:
        raw_payments = json.load(handle)
    if not isinstance(raw_payments, list):
        raise ValueError(f"{args.file} must contain a JSON list of payments")
    payments = [build_payment(raw) for raw in raw_payments]

    async with build_session() as session:
        coordinator = ReceiptQueryCoordinator(build_relay_factory(session), _query_config())
        enricher = PaymentEnricher(coordinator, store=_open_store(), payment_hash_of=payment_hash_of)
        enriched = await enricher.enrich_many(payments, user_pubkey)

    json.dump([payment_to_dict(payment) for payment in enriched], sys.stdout, indent=2)
    print()
    return 0


def _remember(args: argparse.Namespace) -> int:
    zap_request = parse_zap_request(args.request)
    if zap_request is None:
        print("--request must be a kind 9734 zap request JSON object", file=sys.stderr)
        return 2

    payment_hash = remember_outgoing_zap(
        _open_store(), payment_hash_of, args.invoice, zap_request, args.recipient
    )
    if payment_hash is None:
        print("Could not derive a payment hash from the invoice", file=sys.stderr)
        return 1
    print(f"Stored zap request for payment hash {payment_hash}")
    return 0


def _cleanup(args: argparse.Namespace) -> int:
    ttl_days = args.ttl_days if args.ttl_days is not None else _store_config().ttl_days
    removed = _open_store().cleanup(ttl_days)
    logging.getLogger(__name__).info("Zap store cleanup removed %s requests", removed)
    print(f"Removed {removed} zap requests older than {ttl_days} days")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="zapscope")
    parser.add_argument("--no-banner", action="store_true", help="Skip the startup banner")
    subparsers = parser.add_subparsers(dest="command", required=True)

    lookup = subparsers.add_parser("lookup", help="Find the zap receipt for one invoice")
    lookup.add_argument("invoice")
    lookup.add_argument("--recipient", help="Recipient pubkey (hex); defaults to NOSTR_PUBKEY")
    lookup.add_argument("--relay", action="append", help="Relay URL; repeat to query several")
    lookup.add_argument("--timeout", type=float, help="Overall timeout in seconds")
    lookup.add_argument("--format", choices=["plain", "markdown"], default="plain")

    batch = subparsers.add_parser("batch", help="Find zap receipts for invoices listed in a file")
    batch.add_argument("file")
    batch.add_argument("--recipient", help="Recipient pubkey (hex); defaults to NOSTR_PUBKEY")

    enrich = subparsers.add_parser("enrich", help="Attach zap metadata to wallet payments JSON")
    enrich.add_argument("file")
    enrich.add_argument("--pubkey", help="Your pubkey (hex); defaults to NOSTR_PUBKEY")

    remember = subparsers.add_parser("remember", help="Store the zap request for an outgoing zap")
    remember.add_argument("invoice")
    remember.add_argument("--request", required=True, help="Zap request (kind 9734) JSON")
    remember.add_argument("--recipient", required=True, help="Recipient pubkey (hex)")

    cleanup = subparsers.add_parser("cleanup", help="Remove expired zap requests")
    cleanup.add_argument("--ttl-days", type=int)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not args.no_banner:
        _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    try:
        if args.command == "lookup":
            code = asyncio.run(_lookup(args))
        elif args.command == "batch":
            code = asyncio.run(_batch(args))
        elif args.command == "enrich":
            code = asyncio.run(_enrich(args))
        elif args.command == "remember":
            code = _remember(args)
        else:
            code = _cleanup(args)
    except InvalidQueryError as exc:
        logger.error("Invalid query: %s", exc)
        code = 2
    except RuntimeError as exc:
        print(str(exc), file=sys.stderr)
        code = 2
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()
