"""Conversation events pushed to the monitoring dashboard and live chats."""

from __future__ import annotations

import logging
from typing import Any

from ..conversations import schemas
from .hub import MONITORING_ROOM, RoomHub, conversation_room

logger = logging.getLogger(__name__)


def _dump(model: Any) -> Any:
    if model is None:
        return None
    return model.model_dump(mode="json")


class ConversationBroadcaster:
    """Publish conversation state changes to :class:`RoomHub` rooms.

    Every event carries the full resulting record (not a delta) so observers
    converge on the last event they receive. Failures are logged and
    swallowed; the store stays the source of truth.
    """

    def __init__(self, hub: RoomHub) -> None:
        self.hub = hub

    async def _publish(self, room: str, event: str, payload: Any) -> None:
        try:
            await self.hub.publish(room, event, payload)
        except Exception:
            logger.exception("Failed to broadcast %s to %s", event, room)

    async def new_conversation(self, conversation: schemas.Conversation) -> None:
        await self._publish(MONITORING_ROOM, "new_conversation", _dump(conversation))

    async def new_message(self, conversation_id: int, message: schemas.Message) -> None:
        await self._publish(
            MONITORING_ROOM,
            "new_message",
            {"conversationId": conversation_id, "message": _dump(message)},
        )
        minimal = schemas.ConversationMessageEvent(
            id=message.id,
            content=message.content,
            sender=message.sender,
            timestamp=message.timestamp,
        )
        await self._publish(
            conversation_room(conversation_id), "conversation_message", _dump(minimal)
        )

    async def conversation_updated(self, conversation: schemas.Conversation) -> None:
        await self._publish(
            MONITORING_ROOM, "conversation_updated", _dump(conversation)
        )

    async def control_mode_changed(
        self,
        conversation_id: int,
        control_mode: schemas.ControlMode,
        assigned_agent: str | None,
    ) -> None:
        await self._publish(
            MONITORING_ROOM,
            "control_mode_changed",
            {
                "conversationId": conversation_id,
                "controlMode": control_mode,
                "assignedAgent": assigned_agent,
            },
        )

    async def behavior_updated(
        self,
        conversation_id: int,
        behavior_settings: schemas.BehaviorSettings | None,
    ) -> None:
        await self._publish(
            MONITORING_ROOM,
            "behavior_updated",
            {
                "conversationId": conversation_id,
                "behaviorSettings": _dump(behavior_settings),
            },
        )
