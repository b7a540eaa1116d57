"""Conversation control, handoff detection and message routing."""

from . import schemas
from .control import UNASSIGNED_AGENT, ControlModeService
from .handoff import HandoffDetector
from .models import HandoffDecision, InboundMessage, IngestResult
from .service import ConversationService

__all__ = [
    "ControlModeService",
    "ConversationService",
    "HandoffDecision",
    "HandoffDetector",
    "InboundMessage",
    "IngestResult",
    "UNASSIGNED_AGENT",
    "schemas",
]
