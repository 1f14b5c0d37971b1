"""Nostr relay adapter over aiohttp websockets.

Implements the core RelayPort with the NIP-01 client protocol:
- client -> relay: ["REQ", sub_id, filter], ["CLOSE", sub_id]
- relay -> client: ["EVENT", sub_id, event], ["EOSE", sub_id],
  ["CLOSED", sub_id, message], ["NOTICE", message]

Events are validated here, at the network boundary, so subscriptions only ever
yield core NostrEvent objects.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Optional, Union

import aiohttp

from core.models import RelayFilter
from core.ports import RelayError
from core.records import InvalidEventError, NostrEvent, parse_event

LOGGER = logging.getLogger(__name__)

# Queued in place of an event when the relay reports end of stored events.
_EOSE = object()

_QueueItem = Union[NostrEvent, RelayError, object]


class NostrSubscription:
    """One REQ on a relay; iterates stored events until EOSE."""

    def __init__(self, relay: "NostrRelay", sub_id: str, queue: "asyncio.Queue[_QueueItem]") -> None:
        self._relay = relay
        self.sub_id = sub_id
        self._queue = queue
        self._done = False
        self._closed = False

    def __aiter__(self) -> "NostrSubscription":
        return self

    async def __anext__(self) -> NostrEvent:
        if self._done:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _EOSE:
            self._done = True
            raise StopAsyncIteration
        if isinstance(item, RelayError):
            self._done = True
            raise item
        return item

    async def close(self) -> None:
        """Send CLOSE for this subscription; safe to call more than once."""

        if self._closed:
            return
        self._closed = True
        await self._relay._unsubscribe(self.sub_id)


class NostrRelay:
    """Websocket connection to one relay, shared by its subscriptions."""

    def __init__(self, url: str, session: aiohttp.ClientSession, heartbeat: Optional[float] = 20.0) -> None:
        self.url = url
        self._session = session
        self._heartbeat = heartbeat
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None
        self._queues: dict[str, asyncio.Queue] = {}

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self) -> None:
        if self.connected:
            return
        try:
            self._ws = await self._session.ws_connect(self.url, heartbeat=self._heartbeat)
        except (aiohttp.ClientError, OSError, ValueError) as exc:
            raise RelayError(f"Cannot connect to {self.url}: {exc}") from exc
        self._reader = asyncio.create_task(self._read_loop())

    async def subscribe(self, relay_filter: RelayFilter) -> NostrSubscription:
        if not self.connected:
            raise RelayError(f"Not connected to {self.url}")
        sub_id = uuid.uuid4().hex[:16]
        queue: asyncio.Queue = asyncio.Queue()
        self._queues[sub_id] = queue
        LOGGER.debug("Subscribing to %s with filter %s", self.url, relay_filter.to_wire())
        await self._send(["REQ", sub_id, relay_filter.to_wire()])
        return NostrSubscription(self, sub_id, queue)

    async def close(self) -> None:
        """Stop reading and close the socket; safe to call more than once."""

        reader, self._reader = self._reader, None
        if reader is not None:
            reader.cancel()
        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close()
        self._queues.clear()

    async def _unsubscribe(self, sub_id: str) -> None:
        self._queues.pop(sub_id, None)
        if not self.connected:
            return
        try:
            await self._send(["CLOSE", sub_id])
        except RelayError as exc:
            LOGGER.debug("Could not send CLOSE to %s: %s", self.url, exc)

    async def _send(self, message: list[Any]) -> None:
        if self._ws is None:
            raise RelayError(f"Not connected to {self.url}")
        try:
            await self._ws.send_str(json.dumps(message))
        except (aiohttp.ClientError, ConnectionError) as exc:
            raise RelayError(f"Failed to send to {self.url}: {exc}") from exc

    async def _read_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return
        reason = "connection closed by relay"
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._dispatch(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    reason = f"websocket error: {ws.exception()}"
                    break
        finally:
            # Wake every open subscription so none waits on a dead socket.
            for queue in self._queues.values():
                queue.put_nowait(RelayError(f"{self.url}: {reason}"))

    def _dispatch(self, data: str) -> None:
        try:
            message = json.loads(data)
        except ValueError:
            LOGGER.debug("Ignoring non-JSON frame from %s", self.url)
            return
        if not isinstance(message, list) or not message:
            return

        msg_type = message[0]
        if msg_type == "NOTICE":
            LOGGER.info("Notice from %s: %s", self.url, message[1] if len(message) > 1 else "")
            return
        if len(message) < 2 or not isinstance(message[1], str):
            return

        queue = self._queues.get(message[1])
        if queue is None:
            return

        if msg_type == "EVENT" and len(message) >= 3:
            try:
                event = parse_event(message[2])
            except InvalidEventError as exc:
                LOGGER.debug("Dropping invalid event from %s: %s", self.url, exc)
                return
            queue.put_nowait(event)
        elif msg_type == "EOSE":
            queue.put_nowait(_EOSE)
        elif msg_type == "CLOSED":
            detail = message[2] if len(message) > 2 else ""
            queue.put_nowait(RelayError(f"{self.url} closed subscription: {detail}"))
