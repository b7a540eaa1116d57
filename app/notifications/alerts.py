"""Internal alerts sent to the business owner."""

from __future__ import annotations

import logging
import os

from ..conversations import schemas
from ..conversations.handoff import REASON_LABELS
from .gateway import NotificationGateway

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 100


def _snippet(text: str) -> str:
    text = " ".join((text or "").split())
    if len(text) <= SNIPPET_LENGTH:
        return text
    return text[: SNIPPET_LENGTH - 3] + "..."


def _who(conversation: schemas.Conversation) -> str:
    phone = conversation.customer_phone or "Unknown"
    if conversation.customer_name:
        return f"{conversation.customer_name} ({phone})"
    return phone


class OwnerAlerts:
    """Fire-and-forget SMS alerts; failures are logged, never raised."""

    def __init__(self, gateway: NotificationGateway, owner_phone: str | None) -> None:
        self._gateway = gateway
        self.owner_phone = owner_phone

    async def _send(self, text: str) -> bool:
        if not self.owner_phone:
            logger.warning("BUSINESS_OWNER_PHONE not set; skipping alert: %s", text)
            return False
        try:
            result = await self._gateway.send_sms(self.owner_phone, text)
        except Exception:
            logger.exception("Owner alert failed")
            return False
        if not result.success:
            logger.warning("Owner alert not delivered: %s", result.error)
        return result.success

    async def notify_handoff_request(
        self, conversation: schemas.Conversation, reason: str, message: str
    ) -> bool:
        label = REASON_LABELS.get(reason, reason)
        text = (
            f"Handoff needed for {_who(conversation)} "
            f"(conversation #{conversation.id}). Reason: {label}. "
            f'Message: "{_snippet(message)}"'
        )
        return await self._send(text)

    async def notify_return_to_ai(
        self, conversation: schemas.Conversation, agent_name: str | None
    ) -> bool:
        text = (
            f"Conversation #{conversation.id} with {_who(conversation)} was "
            f"returned to the AI assistant by {agent_name or 'an agent'}."
        )
        return await self._send(text)


def build_owner_alerts(gateway: NotificationGateway) -> OwnerAlerts:
    return OwnerAlerts(gateway, os.getenv("BUSINESS_OWNER_PHONE"))
