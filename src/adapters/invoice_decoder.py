"""BOLT-11 invoice adapter.

The core treats invoices as opaque strings; only the payment hash is needed
here, to key locally remembered zap requests.
"""

from __future__ import annotations

import logging
from typing import Optional

import bolt11

LOGGER = logging.getLogger(__name__)


def payment_hash_of(invoice: str) -> Optional[str]:
    """Return the hex payment hash of a BOLT-11 invoice, or None if undecodable."""

    try:
        decoded = bolt11.decode(invoice)
    except Exception:
        LOGGER.warning("Failed to decode invoice %s...", invoice[:30])
        return None
    return decoded.payment_hash or None
