"""Outbound SMS gateway and business-owner alerts."""

from .alerts import OwnerAlerts, build_owner_alerts
from .gateway import (
    NotificationGateway,
    SendResult,
    TwilioNotificationGateway,
    build_gateway,
)

__all__ = [
    "NotificationGateway",
    "OwnerAlerts",
    "SendResult",
    "TwilioNotificationGateway",
    "build_gateway",
    "build_owner_alerts",
]
