"""In-process room based publish/subscribe hub.

Room membership lives only in this process and is lost on restart. Delivery
is best-effort and at-most-once per ``publish`` call: a subscriber whose
``send`` fails or exceeds ``send_timeout`` is dropped from every room it had
joined.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Protocol

from fastapi import WebSocket

logger = logging.getLogger(__name__)

MONITORING_ROOM = "monitoring"
SEND_TIMEOUT = float(os.getenv("BROADCAST_SEND_TIMEOUT", "5"))


def conversation_room(conversation_id: int) -> str:
    return f"conversation:{conversation_id}"


class Subscriber(Protocol):
    async def send(self, event: str, payload: Any) -> None: ...


class QueueSubscriber:
    """Subscriber buffering events in an :class:`asyncio.Queue`."""

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue(maxsize)

    async def send(self, event: str, payload: Any) -> None:
        self.queue.put_nowait((event, payload))

    def drain(self) -> list[tuple[str, Any]]:
        items = []
        while not self.queue.empty():
            items.append(self.queue.get_nowait())
        return items


class WebSocketSubscriber:
    """Subscriber writing ``{"event", "data"}`` JSON frames to a WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def send(self, event: str, payload: Any) -> None:
        await self.websocket.send_json({"event": event, "data": payload})


class RoomHub:
    """Map of room name to subscriber set."""

    def __init__(self, send_timeout: float = SEND_TIMEOUT) -> None:
        self.send_timeout = send_timeout
        self._rooms: dict[str, set[Subscriber]] = {}

    def subscribe(self, room: str, subscriber: Subscriber) -> None:
        self._rooms.setdefault(room, set()).add(subscriber)
        logger.debug("Subscriber %s joined %s", id(subscriber), room)

    def unsubscribe(self, room: str, subscriber: Subscriber) -> None:
        members = self._rooms.get(room)
        if not members:
            return
        members.discard(subscriber)
        if not members:
            del self._rooms[room]
        logger.debug("Subscriber %s left %s", id(subscriber), room)

    def discard(self, subscriber: Subscriber) -> None:
        """Remove ``subscriber`` from every room (e.g. on disconnect)."""

        for room in [r for r, members in self._rooms.items() if subscriber in members]:
            self.unsubscribe(room, subscriber)

    def members(self, room: str) -> set[Subscriber]:
        return set(self._rooms.get(room, ()))

    def rooms(self) -> list[str]:
        return sorted(self._rooms)

    async def publish(self, room: str, event: str, payload: Any) -> int:
        """Send ``event`` to every member of ``room``; return delivered count."""

        delivered = 0
        for subscriber in self.members(room):
            try:
                await asyncio.wait_for(
                    subscriber.send(event, payload), timeout=self.send_timeout
                )
            except Exception:
                logger.warning(
                    "Dropping subscriber %s after failed %s delivery to %s",
                    id(subscriber),
                    event,
                    room,
                    exc_info=True,
                )
                self.discard(subscriber)
            else:
                delivered += 1
        return delivered
