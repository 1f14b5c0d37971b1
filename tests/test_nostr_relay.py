from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiohttp
import pytest
from aiohttp import web
from aiohttp import test_utils

from adapters.nostr_relay import NostrRelay
from core.config import QueryConfig
from core.coordinator import ReceiptQueryCoordinator
from core.models import RelayFilter
from core.ports import RelayError

INVOICE = "lnbc100n1p..."
RECIPIENT = "abc123..."


def _receipt(invoice: str = INVOICE, event_id: str = "r1") -> dict:
    request = {"kind": 9734, "pubkey": "sender1", "tags": [["p", RECIPIENT], ["e", "note"]], "content": "gm"}
    return {
        "id": event_id,
        "pubkey": "provider",
        "kind": 9735,
        "created_at": 1700000000,
        "tags": [["bolt11", invoice], ["description", json.dumps(request)], ["p", RECIPIENT]],
        "content": "",
        "sig": "00",
    }


class FakeRelayServer:
    """Minimal NIP-01 relay answering every REQ from a canned event list."""

    def __init__(self, events: list, closed_reason: Optional[str] = None) -> None:
        self.events = events
        self.closed_reason = closed_reason
        self.received: list = []

    async def handler(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        async for msg in ws:
            if msg.type != aiohttp.WSMsgType.TEXT:
                continue
            message = json.loads(msg.data)
            self.received.append(message)
            if message[0] != "REQ":
                continue
            sub_id = message[1]
            if self.closed_reason is not None:
                await ws.send_str(json.dumps(["CLOSED", sub_id, self.closed_reason]))
                continue
            await ws.send_str(json.dumps(["NOTICE", "welcome"]))
            for event in self.events:
                await ws.send_str(json.dumps(["EVENT", sub_id, event]))
            await ws.send_str(json.dumps(["EOSE", sub_id]))
        return ws


@asynccontextmanager
async def _serve(relay: FakeRelayServer) -> AsyncIterator[str]:
    app = web.Application()
    app.router.add_get("/", relay.handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url("/"))
    finally:
        await server.close()


async def _wait_for(predicate, attempts: int = 100) -> bool:
    for _ in range(attempts):
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


def test_subscription_yields_valid_events_until_eose() -> None:
    broken = {"id": "bad", "kind": "9735"}
    relay_server = FakeRelayServer([_receipt(event_id="r1"), broken, _receipt(event_id="r2")])

    async def _run() -> tuple[list, list]:
        async with _serve(relay_server) as url, aiohttp.ClientSession() as session:
            relay = NostrRelay(url, session, heartbeat=None)
            await relay.connect()
            try:
                subscription = await relay.subscribe(RelayFilter(kinds=(9735,), p_tags=(RECIPIENT,), limit=50))
                ids = [event.id async for event in subscription]
                await subscription.close()
                await _wait_for(lambda: any(m[0] == "CLOSE" for m in relay_server.received))
            finally:
                await relay.close()
            return ids, relay_server.received

    ids, received = asyncio.run(_run())

    assert ids == ["r1", "r2"]
    req = received[0]
    assert req[0] == "REQ"
    assert req[2] == {"kinds": [9735], "#p": [RECIPIENT], "limit": 50}
    assert ["CLOSE", req[1]] in received


def test_closed_subscription_raises_relay_error() -> None:
    relay_server = FakeRelayServer([], closed_reason="auth-required: sign in first")

    async def _run() -> None:
        async with _serve(relay_server) as url, aiohttp.ClientSession() as session:
            relay = NostrRelay(url, session, heartbeat=None)
            await relay.connect()
            try:
                subscription = await relay.subscribe(RelayFilter(kinds=(9735,), p_tags=(RECIPIENT,), limit=50))
                async for _ in subscription:
                    pass
            finally:
                await relay.close()

    with pytest.raises(RelayError, match="auth-required"):
        asyncio.run(_run())


def test_unreachable_relay_raises_relay_error() -> None:
    async def _run() -> None:
        async with aiohttp.ClientSession() as session:
            relay = NostrRelay("ws://127.0.0.1:1/", session, heartbeat=None)
            try:
                await relay.connect()
            finally:
                await relay.close()

    with pytest.raises(RelayError):
        asyncio.run(_run())


def test_close_is_idempotent_and_subscribe_requires_connection() -> None:
    async def _run() -> None:
        async with aiohttp.ClientSession() as session:
            relay = NostrRelay("ws://127.0.0.1:1/", session, heartbeat=None)
            await relay.close()
            await relay.close()
            assert not relay.connected
            await relay.subscribe(RelayFilter(kinds=(9735,), p_tags=(RECIPIENT,), limit=1))

    with pytest.raises(RelayError, match="Not connected"):
        asyncio.run(_run())


def test_coordinator_matches_over_websocket_relays() -> None:
    matching = FakeRelayServer([_receipt(invoice="lnbc-other", event_id="n1"), _receipt()])
    empty = FakeRelayServer([])

    async def _run():
        async with _serve(matching) as url_a, _serve(empty) as url_b, aiohttp.ClientSession() as session:
            coordinator = ReceiptQueryCoordinator(
                lambda url: NostrRelay(url, session, heartbeat=None),
                QueryConfig(relays=(url_a, url_b), per_relay_timeout=2.0, overall_timeout=3.0),
            )
            return await coordinator.query(INVOICE, RECIPIENT)

    result = asyncio.run(_run())

    assert result is not None
    assert result.sender == "sender1"
    assert result.recipient == RECIPIENT
    assert result.subject_id == "note"
    assert result.comment == "gm"
