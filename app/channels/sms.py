"""Twilio SMS channel adapter."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from fastapi import Response
from twilio.request_validator import RequestValidator
from twilio.twiml.messaging_response import MessagingResponse

from ..conversations.errors import InvalidInputError
from ..conversations.models import InboundMessage, IngestResult
from .base import ChannelAdapter


class SmsAdapter(ChannelAdapter):
    """Twilio messaging webhook: form fields in, TwiML out.

    Config keys: ``auth_token`` and ``validate_signature``.
    """

    channel_name = "sms"

    def verify_signature(
        self,
        url: str,
        params: Mapping[str, Any],
        headers: Mapping[str, str],
    ) -> bool:
        if not self.config.get("validate_signature"):
            return True
        token = self.config.get("auth_token")
        signature = headers.get("X-Twilio-Signature")
        if not token or not signature:
            return False
        return RequestValidator(token).validate(url, dict(params), signature)

    def parse_incoming(
        self,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
    ) -> InboundMessage:
        sender = str(payload.get("From") or "").strip()
        if not sender:
            raise InvalidInputError("Sender phone number (From) is required")
        metadata = {
            key: payload[key]
            for key in ("MessageSid", "AccountSid", "To")
            if payload.get(key)
        }
        return InboundMessage(
            text=str(payload.get("Body") or ""),
            sender_phone=sender,
            platform="sms",
            customer_name=payload.get("customerName") or None,
            metadata=metadata,
        )

    def render_reply(self, result: IngestResult) -> Response:
        return self.render_text(result.reply)

    def render_text(self, text: str, *, success: bool = True) -> Response:
        twiml = MessagingResponse()
        twiml.message(text)
        return Response(content=str(twiml), media_type="text/xml")
