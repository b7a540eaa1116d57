"""Rules deciding when a conversation should be handed to a human."""
from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from datetime import datetime

from . import schemas
from .models import HandoffDecision

logger = logging.getLogger(__name__)

EXPLICIT_REQUEST = "explicit_request"
URGENT_REQUEST = "urgent_request"
REPEATED_FAILURES = "repeated_failures"

REASON_LABELS = {
    EXPLICIT_REQUEST: "Customer asked for a person",
    URGENT_REQUEST: "Urgent request",
    REPEATED_FAILURES: "AI could not understand the customer",
}

_EXPLICIT_PATTERN = re.compile(
    r"\b(?:talk|speak|chat)\s+(?:to|with)\s+(?:a\s+|an\s+)?(?:person|human|someone|somebody|agent)\b"
    r"|\breal\s+(?:person|human)\b"
    r"|\b(?:human|live)\s+agent\b"
    r"|\brepresentative\b",
    re.I,
)
_URGENT_KEYWORDS = ("emergency", "urgent", "right away")
_CONFUSION_MARKERS = (
    "sorry",
    "apologize",
    "apologies",
    "i don't understand",
    "i do not understand",
    "could you clarify",
    "can you clarify",
    "rephrase",
    "not sure what you mean",
)


class HandoffDetector:
    """Deterministic escalation policy; the first matching rule wins.

    ``failure_window`` is how many of the most recent AI turns are inspected
    and ``failure_threshold`` how many of them must sound confused.
    """

    def __init__(self, failure_window: int = 3, failure_threshold: int = 2) -> None:
        self.failure_window = failure_window
        self.failure_threshold = failure_threshold

    def detect(
        self,
        message_text: str,
        conversation_id: int,
        history: Sequence[schemas.Message],
        since: datetime | None = None,
    ) -> HandoffDecision:
        """Decide whether ``message_text`` should go to a human.

        Only AI turns after the last agent message (and after ``since``, the
        last time staff handled the conversation) count towards the
        repeated-failures rule, so a conversation handed back to the AI is
        not re-escalated over confusion a human already dealt with.
        """
        text = message_text or ""
        lowered = text.lower()
        if _EXPLICIT_PATTERN.search(text):
            decision = HandoffDecision(True, EXPLICIT_REQUEST)
        elif any(keyword in lowered for keyword in _URGENT_KEYWORDS):
            decision = HandoffDecision(True, URGENT_REQUEST)
        elif self._ai_is_struggling(history, since):
            decision = HandoffDecision(True, REPEATED_FAILURES)
        else:
            return HandoffDecision(False)
        logger.info(
            "Handoff detected for conversation %s: %s", conversation_id, decision.reason
        )
        return decision

    def _ai_is_struggling(
        self, history: Sequence[schemas.Message], since: datetime | None
    ) -> bool:
        recent: list[schemas.Message] = []
        for message in history:
            if message.sender == "agent":
                recent = []
            elif message.sender == "ai" and (since is None or message.timestamp > since):
                recent.append(message)
        ai_turns = recent[-self.failure_window :]
        confused = sum(
            1
            for m in ai_turns
            if any(marker in m.content.lower() for marker in _CONFUSION_MARKERS)
        )
        return confused >= self.failure_threshold
