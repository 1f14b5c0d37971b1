"""Relay client factory for zapscope.

We explicitly manage the HTTP session's lifecycle (one session per command,
closed on exit) so it is obvious when relay sockets can exist and when they
are guaranteed gone.
"""

from __future__ import annotations

import logging
import os

import aiohttp
from dotenv import load_dotenv

from adapters.nostr_relay import NostrRelay
from core.ports import RelayFactory

DEFAULT_USER_AGENT = "zapscope/0.1"


def build_session() -> aiohttp.ClientSession:
    """Create the aiohttp session used for relay websockets.

    RELAY_USER_AGENT is read via python-dotenv so deployments can identify
    themselves to relay operators without code changes.
    """

    load_dotenv()
    user_agent = os.getenv("RELAY_USER_AGENT", DEFAULT_USER_AGENT)

    logging.getLogger(__name__).info("Initializing relay session")

    return aiohttp.ClientSession(headers={"User-Agent": user_agent})


def build_relay_factory(session: aiohttp.ClientSession) -> RelayFactory:
    """Return a factory creating one NostrRelay per URL on the shared session."""

    def _factory(url: str) -> NostrRelay:
        return NostrRelay(url, session)

    return _factory
