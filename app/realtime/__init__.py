"""Live broadcast fan-out for dashboards and web chat participants."""

from .broadcaster import ConversationBroadcaster
from .hub import (
    MONITORING_ROOM,
    QueueSubscriber,
    RoomHub,
    WebSocketSubscriber,
    conversation_room,
)

__all__ = [
    "ConversationBroadcaster",
    "MONITORING_ROOM",
    "QueueSubscriber",
    "RoomHub",
    "WebSocketSubscriber",
    "conversation_room",
]
