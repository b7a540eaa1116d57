"""Process-wide collaborators shared by every request.

They are built once at startup and stored on ``app.state.services`` so the
broadcast hub, AI responder and SMS gateway are passed by reference instead
of living in module globals.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..assistant.responder import Responder, build_responder
from ..conversations.repository import (
    ConversationRepository,
    InMemoryConversationRepository,
)
from ..conversations.service import AI_RESPONDER_TIMEOUT, ConversationService
from ..notifications.alerts import OwnerAlerts, build_owner_alerts
from ..notifications.gateway import NotificationGateway, build_gateway
from ..realtime.broadcaster import ConversationBroadcaster
from ..realtime.hub import RoomHub


@dataclass
class ServiceRegistry:
    hub: RoomHub
    broadcaster: ConversationBroadcaster
    responder: Responder
    gateway: NotificationGateway
    alerts: OwnerAlerts
    memory_repository: InMemoryConversationRepository = field(
        default_factory=InMemoryConversationRepository
    )
    responder_timeout: float = AI_RESPONDER_TIMEOUT

    def conversation_service(
        self, repository: ConversationRepository
    ) -> ConversationService:
        return ConversationService(
            repository,
            self.broadcaster,
            self.responder,
            self.gateway,
            self.alerts,
            responder_timeout=self.responder_timeout,
        )


def build_registry() -> ServiceRegistry:
    """Create collaborators from environment configuration."""

    hub = RoomHub()
    gateway = build_gateway()
    return ServiceRegistry(
        hub=hub,
        broadcaster=ConversationBroadcaster(hub),
        responder=build_responder(),
        gateway=gateway,
        alerts=build_owner_alerts(gateway),
    )
