"""Outbound SMS delivery through Twilio."""

from __future__ import annotations

import asyncio
import logging
import os
import re
from dataclasses import dataclass
from typing import Protocol

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    success: bool
    error: str | None = None
    sid: str | None = None


class NotificationGateway(Protocol):
    """Sends SMS; reports failures in the result instead of raising."""

    async def send_sms(self, phone: str, text: str) -> SendResult: ...


def format_phone_number(phone: str) -> str:
    """Best-effort E.164 normalisation (defaults to the US country code)."""

    digits = re.sub(r"\D", "", phone or "")
    if phone.strip().startswith("+"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return f"+{digits}"


class TwilioNotificationGateway:
    """:class:`NotificationGateway` using the Twilio REST client.

    The Twilio client is synchronous, so calls run in a worker thread.
    """

    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        from_number: str | None = None,
        *,
        demo_mode: bool = False,
        client: Client | None = None,
    ) -> None:
        self.from_number = from_number
        self.demo_mode = demo_mode
        self._client = client
        if self._client is None and account_sid and auth_token:
            self._client = Client(account_sid, auth_token)

    @property
    def configured(self) -> bool:
        return self.demo_mode or (self._client is not None and bool(self.from_number))

    async def send_sms(self, phone: str, text: str) -> SendResult:
        if not phone or not text:
            return SendResult(False, "Phone number and message are required")
        if self.demo_mode:
            logger.info("[DEMO MODE] SMS would be sent to %s: %s", phone, text)
            return SendResult(True)
        if not self.configured:
            logger.error("Twilio client not configured; cannot send SMS to %s", phone)
            return SendResult(False, "SMS service not configured")
        to = format_phone_number(phone)
        try:
            message = await asyncio.to_thread(
                self._client.messages.create,
                body=text,
                from_=self.from_number,
                to=to,
            )
        except TwilioRestException as exc:
            logger.error("Twilio rejected SMS to %s: %s", to, exc.msg)
            return SendResult(False, exc.msg)
        except Exception as exc:
            logger.exception("Error sending SMS to %s", to)
            return SendResult(False, str(exc))
        logger.info("SMS sent to %s, SID: %s", to, message.sid)
        return SendResult(True, sid=message.sid)


def build_gateway() -> TwilioNotificationGateway:
    """Create the default gateway from ``TWILIO_*`` environment variables."""

    return TwilioNotificationGateway(
        os.getenv("TWILIO_ACCOUNT_SID"),
        os.getenv("TWILIO_AUTH_TOKEN"),
        os.getenv("TWILIO_PHONE_NUMBER"),
        demo_mode=os.getenv("DEMO_MODE", "false").lower() == "true",
    )
