from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

from adapters.sqlite_zap_store import SQLiteZapRequestStore
from core.enrichment import remember_outgoing_zap
from core.records import ZapRequest


def _store(tmp_path) -> SQLiteZapRequestStore:
    store = SQLiteZapRequestStore(str(tmp_path / "zapscope.db"))
    store.init_db()
    return store


def _request(content: str = "gm") -> ZapRequest:
    return ZapRequest(pubkey="sender", kind=9734, content=content, tags=(("p", "recipient"), ("e", "note")))


def test_save_and_get_roundtrip(tmp_path) -> None:
    store = _store(tmp_path)

    store.save("hash-1", _request(), "recipient")
    stored = store.get("hash-1")

    assert stored is not None
    assert stored.payment_hash == "hash-1"
    assert stored.zap_request == _request()
    assert stored.recipient_pubkey == "recipient"
    assert stored.stored_at.tzinfo is not None
    assert store.get("hash-2") is None


def test_save_overwrites_existing_entry(tmp_path) -> None:
    store = _store(tmp_path)

    store.save("hash-1", _request("first"), "recipient")
    store.save("hash-1", _request("second"), "other")

    stored = store.get("hash-1")
    assert stored.zap_request.content == "second"
    assert stored.recipient_pubkey == "other"


def test_cleanup_removes_only_expired_entries(tmp_path) -> None:
    store = _store(tmp_path)
    store.save("fresh", _request(), "recipient")
    old = (datetime.now(timezone.utc) - timedelta(days=45)).isoformat()
    with sqlite3.connect(str(tmp_path / "zapscope.db")) as conn:
        conn.execute(
            "INSERT INTO zap_requests (payment_hash, zap_request, recipient_pubkey, stored_at) VALUES (?, ?, ?, ?)",
            ("stale", _request().to_json(), "recipient", old),
        )

    removed = store.cleanup(30)

    assert removed == 1
    assert store.get("stale") is None
    assert store.get("fresh") is not None


def test_unreadable_row_is_ignored(tmp_path) -> None:
    store = _store(tmp_path)
    with sqlite3.connect(str(tmp_path / "zapscope.db")) as conn:
        conn.execute(
            "INSERT INTO zap_requests (payment_hash, zap_request, recipient_pubkey, stored_at) VALUES (?, ?, ?, ?)",
            ("broken", "{not json", "recipient", datetime.now(timezone.utc).isoformat()),
        )

    assert store.get("broken") is None


def _insert_dated(tmp_path, payment_hash: str, age_days: int) -> None:
    stored_at = (datetime.now(timezone.utc) - timedelta(days=age_days)).isoformat()
    with sqlite3.connect(str(tmp_path / "zapscope.db")) as conn:
        conn.execute(
            "INSERT INTO zap_requests (payment_hash, zap_request, recipient_pubkey, stored_at) VALUES (?, ?, ?, ?)",
            (payment_hash, _request().to_json(), "recipient", stored_at),
        )


def test_expired_entry_is_never_returned(tmp_path) -> None:
    store = _store(tmp_path)
    _insert_dated(tmp_path, "stale", age_days=400)
    _insert_dated(tmp_path, "recent", age_days=2)

    assert store.get("stale") is None
    assert store.get("recent") is not None


def test_saving_purges_expired_entries(tmp_path) -> None:
    store = _store(tmp_path)
    _insert_dated(tmp_path, "stale", age_days=400)

    remember_outgoing_zap(store, lambda invoice: "hash-1", "lnbc-1", _request(), "recipient")

    with sqlite3.connect(str(tmp_path / "zapscope.db")) as conn:
        hashes = {row[0] for row in conn.execute("SELECT payment_hash FROM zap_requests")}
    assert hashes == {"hash-1"}


def test_ttl_is_configurable(tmp_path) -> None:
    store = SQLiteZapRequestStore(str(tmp_path / "zapscope.db"), ttl_days=1)
    store.init_db()
    _insert_dated(tmp_path, "two-days-old", age_days=2)

    assert store.get("two-days-old") is None
