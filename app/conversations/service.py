"""High-level conversation flow orchestration."""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from . import schemas
from .control import ControlModeService
from .errors import ConversationNotFoundError, InvalidInputError, UpstreamFailureError
from .handoff import HandoffDetector
from .models import HandoffDecision, InboundMessage, IngestResult
from .repository import ConversationRepository

if TYPE_CHECKING:  # pragma: no cover
    from ..assistant.responder import Responder
    from ..notifications.alerts import OwnerAlerts
    from ..notifications.gateway import NotificationGateway
    from ..realtime.broadcaster import ConversationBroadcaster

logger = logging.getLogger(__name__)

AI_RESPONDER_TIMEOUT = float(os.getenv("AI_RESPONDER_TIMEOUT", "20"))

FALLBACK_REPLY = (
    "Sorry, I encountered an error processing your message. Please try again."
)
HOLDING_REPLIES = {
    "manual": "Thank you for your message. One of our team members will respond shortly.",
    "paused": "We're currently reviewing your message. Please wait for a response.",
}
OPT_OUT_REPLY = (
    "You have been unsubscribed from SMS notifications. Reply START to re-subscribe."
)
RETURN_TO_AI_REPLY = (
    "Thanks for your patience! You're now chatting with our AI assistant again. "
    "Reply anytime if you need anything else."
)

_STATUS_FILTERS = {"all", "manual", "closed"}


def _last_staff_touch(conversation: schemas.Conversation) -> Optional[datetime]:
    """Latest moment a human took or handled the conversation."""
    stamps = [
        stamp
        for stamp in (conversation.manual_mode_started_at, conversation.last_agent_activity)
        if stamp is not None
    ]
    return max(stamps) if stamps else None


class ConversationService:
    """Routes inbound messages between the AI and human agents.

    The store is the only shared mutable state. Nothing here takes a lock:
    concurrent requests interleave at ``await`` points and the repository's
    per-row atomic writes decide the final state (last write wins).
    """

    def __init__(
        self,
        repository: ConversationRepository,
        broadcaster: "ConversationBroadcaster",
        responder: "Responder",
        gateway: "NotificationGateway",
        alerts: "OwnerAlerts",
        *,
        detector: Optional[HandoffDetector] = None,
        responder_timeout: float = AI_RESPONDER_TIMEOUT,
    ) -> None:
        self._repository = repository
        self._broadcaster = broadcaster
        self._responder = responder
        self._gateway = gateway
        self._alerts = alerts
        self._detector = detector or HandoffDetector()
        self._responder_timeout = responder_timeout
        self.control = ControlModeService(repository, broadcaster)

    # ------------------------------------------------------------------
    # Inbound message processing

    async def process_inbound(self, inbound: InboundMessage) -> IngestResult:
        """Persist a customer message and decide who answers it."""

        text = (inbound.text or "").strip()
        if not text:
            raise InvalidInputError("Message is required")
        if inbound.platform == "sms" and text.lower() == "stop":
            logger.info("Opt-out received from %s", inbound.sender_phone)
            return IngestResult(None, OPT_OUT_REPLY, "opt_out")

        conversation = await self._get_or_create(
            inbound.sender_phone, inbound.customer_name, inbound.platform
        )
        logger.info(
            "Inbound %s message for conversation %s (mode=%s)",
            inbound.platform,
            conversation.id,
            conversation.control_mode,
        )

        # Web chat has no holding UI, so it is always answered by the AI.
        if inbound.platform == "web" and conversation.control_mode != "auto":
            logger.info(
                "Resetting web conversation %s to auto (was %s)",
                conversation.id,
                conversation.control_mode,
            )
            conversation = await self.control.handoff(conversation.id)

        await self._append(conversation.id, text, "customer", inbound.platform)

        decision: Optional[HandoffDecision] = None
        if conversation.control_mode == "auto":
            decision, conversation = await self._check_handoff(
                conversation, text, inbound.platform
            )

        if conversation.control_mode != "auto":
            logger.info(
                "Conversation %s in %s mode; holding for a human",
                conversation.id,
                conversation.control_mode,
            )
            return IngestResult(
                conversation,
                HOLDING_REPLIES[conversation.control_mode],
                "holding",
                handoff=decision,
            )

        reply, reply_kind = await self._generate_reply(conversation, text, inbound.platform)
        message = await self._append(conversation.id, reply, "ai", inbound.platform)
        return IngestResult(conversation, reply, reply_kind, message=message, handoff=decision)

    async def _get_or_create(
        self, phone: str, name: Optional[str], platform: schemas.Platform
    ) -> schemas.Conversation:
        conversation = await self._repository.find_active_by_phone(phone)
        if conversation:
            return conversation
        conversation = await self._repository.create_conversation(phone, name, platform)
        logger.info("Created %s conversation %s for %s", platform, conversation.id, phone)
        await self._broadcaster.new_conversation(conversation)
        return conversation

    async def _append(
        self,
        conversation_id: int,
        content: str,
        sender: schemas.Sender,
        channel: schemas.Platform,
    ) -> schemas.Message:
        message = await self._repository.append_message(
            conversation_id, content, sender, channel
        )
        await self._broadcaster.new_message(conversation_id, message)
        return message

    async def _check_handoff(
        self,
        conversation: schemas.Conversation,
        text: str,
        platform: schemas.Platform,
    ) -> tuple[HandoffDecision, schemas.Conversation]:
        detail = await self._repository.get_conversation(conversation.id)
        history = detail.messages if detail else []
        decision = self._detector.detect(
            text, conversation.id, history, since=_last_staff_touch(conversation)
        )
        if not decision.should_handoff:
            return decision, conversation
        if platform != "sms":
            logger.info(
                "Handoff suggested for web conversation %s (%s); staying in auto",
                conversation.id,
                decision.reason,
            )
            return decision, conversation
        conversation = await self.control.escalate(conversation.id, decision.reason)
        await self._alerts.notify_handoff_request(conversation, decision.reason, text)
        return decision, conversation

    async def _generate_reply(
        self,
        conversation: schemas.Conversation,
        text: str,
        platform: schemas.Platform,
    ) -> tuple[str, str]:
        detail = await self._repository.get_conversation(conversation.id)
        history = detail.messages if detail else []
        try:
            reply = await asyncio.wait_for(
                self._responder.generate_reply(
                    text,
                    conversation.customer_phone or "",
                    platform,
                    conversation.behavior_settings,
                    history=history,
                ),
                timeout=self._responder_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "AI responder timed out after %ss for conversation %s",
                self._responder_timeout,
                conversation.id,
            )
            return FALLBACK_REPLY, "fallback"
        except Exception:
            logger.exception("AI responder failed for conversation %s", conversation.id)
            return FALLBACK_REPLY, "fallback"
        return reply, "ai"

    # ------------------------------------------------------------------
    # Queries

    async def list_conversations(
        self, status: Optional[str] = None
    ) -> List[schemas.ConversationSummary]:
        status_filter = status if status in _STATUS_FILTERS else "all"
        return await self._repository.list_conversations(status_filter)

    async def get_conversation(self, conversation_id: int) -> schemas.ConversationDetail:
        conversation = await self._repository.get_conversation(conversation_id)
        if not conversation:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def get_messages(self, conversation_id: int) -> List[schemas.Message]:
        return (await self.get_conversation(conversation_id)).messages

    # ------------------------------------------------------------------
    # Agent actions

    async def start_conversation(
        self, phone: Optional[str], name: Optional[str]
    ) -> schemas.Conversation:
        phone = (phone or "").strip()
        if not phone:
            raise InvalidInputError("Phone number is required")
        return await self._get_or_create(phone, name or None, "web")

    async def send_agent_message(
        self,
        conversation_id: int,
        content: Optional[str],
        agent_username: Optional[str] = None,
    ) -> schemas.Message:
        """Deliver an agent-authored message, then record it.

        SMS delivery must succeed before anything is persisted so a failed
        send never shows up as sent. Web messages reach the customer through
        the conversation room broadcast.
        """

        content = (content or "").strip()
        if not content:
            raise InvalidInputError("Message content is required")
        conversation = await self.get_conversation(conversation_id)
        if conversation.platform == "sms":
            if not conversation.customer_phone:
                raise InvalidInputError("No customer phone number available for SMS delivery")
            result = await self._gateway.send_sms(conversation.customer_phone, content)
            if not result.success:
                raise UpstreamFailureError("sms", result.error)
            logger.info(
                "Agent %s message sent via SMS to %s",
                agent_username or "unknown",
                conversation.customer_phone,
            )
        message = await self._append(
            conversation_id, content, "agent", conversation.platform
        )
        await self._repository.record_agent_activity(conversation_id)
        return message

    async def return_to_ai(
        self,
        conversation_id: int,
        agent_name: Optional[str] = None,
        notify_customer: bool = True,
    ) -> schemas.Conversation:
        conversation = await self.control.handoff(conversation_id)
        conversation = await self._repository.record_agent_activity(conversation_id)
        if notify_customer and conversation.platform == "sms" and conversation.customer_phone:
            result = await self._gateway.send_sms(
                conversation.customer_phone, RETURN_TO_AI_REPLY
            )
            if not result.success:
                logger.warning(
                    "Return-to-AI notice not delivered for conversation %s: %s",
                    conversation_id,
                    result.error,
                )
        await self._alerts.notify_return_to_ai(conversation, agent_name)
        return conversation

    async def suggest_replies(self, conversation_id: int) -> List[str]:
        conversation = await self.get_conversation(conversation_id)
        try:
            return await asyncio.wait_for(
                self._responder.suggest_replies(
                    conversation.messages, conversation.platform
                ),
                timeout=self._responder_timeout,
            )
        except Exception as exc:
            logger.exception("Reply suggestions failed for conversation %s", conversation_id)
            raise UpstreamFailureError("ai", str(exc) or type(exc).__name__) from exc
