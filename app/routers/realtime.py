"""WebSocket endpoint for the monitoring dashboard and live chat rooms.

Clients send JSON actions::

    {"action": "join_monitoring"}
    {"action": "leave_monitoring"}
    {"action": "join_conversation", "conversation_id": 42}
    {"action": "leave_conversation", "conversation_id": 42}

and receive ``{"event": ..., "data": ...}`` frames. Memberships are dropped
on disconnect; reconnecting clients should re-fetch state over HTTP.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..realtime.hub import MONITORING_ROOM, RoomHub, WebSocketSubscriber, conversation_room

router = APIRouter(tags=["realtime"])

logger = logging.getLogger(__name__)


def _conversation_id(message: dict[str, Any]) -> int | None:
    raw = message.get("conversation_id", message.get("conversationId"))
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _room_for(message: dict[str, Any]) -> str | None:
    action = message.get("action")
    if action in ("join_monitoring", "leave_monitoring"):
        return MONITORING_ROOM
    if action in ("join_conversation", "leave_conversation"):
        conversation_id = _conversation_id(message)
        return conversation_room(conversation_id) if conversation_id is not None else None
    return None


@router.websocket("/ws/conversations")
async def conversation_socket(websocket: WebSocket) -> None:
    hub: RoomHub = websocket.app.state.services.hub
    await websocket.accept()
    subscriber = WebSocketSubscriber(websocket)
    logger.info("Client connected to conversation monitoring: %s", id(subscriber))
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                await subscriber.send("error", {"detail": "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                await subscriber.send("error", {"detail": "JSON object expected"})
                continue
            action = message.get("action")
            room = _room_for(message)
            if room is None:
                await subscriber.send(
                    "error", {"detail": f"Unsupported action: {action!r}"}
                )
                continue
            if action.startswith("join_"):
                hub.subscribe(room, subscriber)
            else:
                hub.unsubscribe(room, subscriber)
            await subscriber.send(action, {"room": room})
    except WebSocketDisconnect:
        logger.info("Client disconnected from conversation monitoring: %s", id(subscriber))
    finally:
        hub.discard(subscriber)
