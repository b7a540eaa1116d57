"""Domain models used by the conversation service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from . import schemas


@dataclass
class InboundMessage:
    """Uniform representation of a customer message from any channel."""

    text: str
    sender_phone: str
    platform: schemas.Platform
    customer_name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class HandoffDecision:
    should_handoff: bool
    reason: str = ""


@dataclass
class IngestResult:
    """Outcome of routing one inbound message.

    ``reply`` is the text returned synchronously to the sender. It is only
    persisted when ``reply_kind`` is ``ai`` or ``fallback``.
    """

    conversation: schemas.Conversation | None
    reply: str
    reply_kind: str
    message: schemas.Message | None = None
    handoff: HandoffDecision | None = None

    @property
    def used_ai(self) -> bool:
        return self.reply_kind == "ai"
