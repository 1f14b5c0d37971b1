"""Static configuration for zapscope.

All user-editable settings (relays, timeouts, store, logging) live in a
single JSON file for quick edits without touching Python.
"""

import json
import os

from core.config import DEFAULT_RELAYS

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Relays, timeouts and logging are loaded from config.json so users can tune
# lookups without editing code.
CONFIG_PATH = os.environ.get("ZAPSCOPE_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def normalize_relays(raw_relays: list) -> tuple[str, ...]:
    """Keep enabled relay URLs, accepting plain strings or {"url", "enabled"} entries."""

    relays: list[str] = []
    for entry in raw_relays:
        if isinstance(entry, str):
            url = entry
        elif isinstance(entry, dict) and entry.get("enabled", True):
            url = entry.get("url", "")
        else:
            continue
        url = url.strip()
        if not url:
            continue
        if not url.startswith(("wss://", "ws://")):
            url = f"wss://{url}"
        if url not in relays:
            relays.append(url)
    return tuple(relays)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Relays queried for zap receipts; falls back to the well-known defaults.
RELAYS = normalize_relays(_CONFIG.get("relays", [])) or DEFAULT_RELAYS

# Query bounds:
# - PER_RELAY_TIMEOUT: seconds one relay may take to connect, stream and EOSE
# - OVERALL_TIMEOUT: hard upper bound for a whole lookup
# - RESULT_LIMIT: most recent receipts requested per relay
_query = _CONFIG.get("query", {})
PER_RELAY_TIMEOUT = float(_query.get("per_relay_timeout", 5.0))
OVERALL_TIMEOUT = float(_query.get("overall_timeout", 10.0))
RESULT_LIMIT = int(_query.get("limit", 50))

# Locally remembered zap requests (outgoing zaps) and their retention.
_store = _CONFIG.get("store", {})
DB_PATH = _store.get("path", os.path.join(PROJECT_ROOT, "zapscope.db"))
if not os.path.isabs(DB_PATH):
    DB_PATH = os.path.join(PROJECT_ROOT, DB_PATH)
STORE_TTL_DAYS = int(_store.get("ttl_days", 30))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
