"""Control-mode state machine for conversations.

A conversation is driven either by the AI (``auto``), by a human agent
(``manual``) or by nobody while staff review it (``paused``). Transitions are
permissive between the three modes and idempotent: re-applying the current
mode persists and re-broadcasts without error. Only ``status == closed``
blocks further changes.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from . import schemas
from .errors import ConversationClosedError, ConversationNotFoundError, InvalidInputError
from .repository import ConversationRepository

if TYPE_CHECKING:  # pragma: no cover
    from ..realtime.broadcaster import ConversationBroadcaster

logger = logging.getLogger(__name__)

#: Placeholder owner while an escalated conversation waits for an agent.
UNASSIGNED_AGENT = "unassigned"


class ControlModeService:
    """Owns ``control_mode``/``assigned_agent`` and announces every change."""

    def __init__(
        self,
        repository: ConversationRepository,
        broadcaster: "ConversationBroadcaster",
    ) -> None:
        self._repository = repository
        self._broadcaster = broadcaster

    # ------------------------------------------------------------------
    # Transitions

    async def takeover(
        self, conversation_id: int, agent_username: Optional[str]
    ) -> schemas.Conversation:
        agent = (agent_username or "").strip()
        if not agent:
            raise InvalidInputError("Agent username is required")
        return await self._transition(conversation_id, "manual", agent)

    async def handoff(self, conversation_id: int) -> schemas.Conversation:
        return await self._transition(conversation_id, "auto", None)

    async def pause(self, conversation_id: int) -> schemas.Conversation:
        # Pausing keeps the current owner so an agent can step away
        # without giving the conversation up.
        current = await self._require_open(conversation_id)
        return await self._transition(
            conversation_id, "paused", current.assigned_agent, current=current
        )

    async def resume(self, conversation_id: int) -> schemas.Conversation:
        return await self._transition(conversation_id, "auto", None)

    async def escalate(self, conversation_id: int, reason: str) -> schemas.Conversation:
        """Hand the conversation to staff after a positive handoff detection."""

        await self._require_open(conversation_id)
        await self._repository.mark_needs_attention(conversation_id, reason)
        return await self._transition(conversation_id, "manual", UNASSIGNED_AGENT)

    async def close(self, conversation_id: int) -> schemas.Conversation:
        current = await self._repository.get_conversation(conversation_id)
        if current is None:
            raise ConversationNotFoundError(conversation_id)
        updated = await self._repository.close(conversation_id)
        if current.status != "closed":
            logger.info("Conversation %s closed", conversation_id)
        await self._broadcaster.conversation_updated(updated)
        return updated

    async def update_behavior(
        self,
        conversation_id: int,
        settings: Optional[schemas.BehaviorSettings],
    ) -> schemas.Conversation:
        await self._require_open(conversation_id)
        updated = await self._repository.update_behavior_settings(
            conversation_id, settings
        )
        logger.info("Behavior settings updated for conversation %s", conversation_id)
        await self._broadcaster.behavior_updated(conversation_id, updated.behavior_settings)
        await self._broadcaster.conversation_updated(updated)
        return updated

    # ------------------------------------------------------------------
    # Helpers

    async def _require_open(self, conversation_id: int) -> schemas.Conversation:
        current = await self._repository.get_conversation(conversation_id)
        if current is None:
            raise ConversationNotFoundError(conversation_id)
        if current.status == "closed":
            raise ConversationClosedError(conversation_id)
        return current

    async def _transition(
        self,
        conversation_id: int,
        mode: schemas.ControlMode,
        agent: Optional[str],
        *,
        current: Optional[schemas.Conversation] = None,
    ) -> schemas.Conversation:
        if current is None:
            current = await self._require_open(conversation_id)
        updated = await self._repository.update_control_mode(conversation_id, mode, agent)
        if current.control_mode == mode and current.assigned_agent == agent:
            logger.debug(
                "Conversation %s already %s; re-broadcasting", conversation_id, mode
            )
        else:
            logger.info(
                "Conversation %s control mode %s -> %s (agent=%s)",
                conversation_id,
                current.control_mode,
                mode,
                agent,
            )
        await self._broadcaster.control_mode_changed(
            conversation_id, updated.control_mode, updated.assigned_agent
        )
        await self._broadcaster.conversation_updated(updated)
        return updated
