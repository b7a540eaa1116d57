"""Web chat widget adapter."""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from uuid import uuid4

from fastapi import Response
from fastapi.responses import JSONResponse

from ..conversations.models import InboundMessage, IngestResult
from .base import ChannelAdapter


class WebChatAdapter(ChannelAdapter):
    channel_name = "web"

    def parse_incoming(
        self,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
    ) -> InboundMessage:
        text = payload.get("message") or payload.get("Body") or ""
        phone = payload.get("customerPhone") or payload.get("From")
        if not phone:
            phone = f"web-anonymous-{uuid4().hex}"
        return InboundMessage(
            text=str(text),
            sender_phone=str(phone),
            platform="web",
            customer_name=payload.get("customerName") or None,
        )

    def render_reply(self, result: IngestResult) -> Response:
        body: dict[str, Any] = {
            "success": True,
            "message": result.reply,
            "response": result.reply,
        }
        if result.conversation is not None:
            body["conversationId"] = result.conversation.id
        return JSONResponse(body)

    def render_text(self, text: str, *, success: bool = True) -> Response:
        return JSONResponse({"success": success, "message": text, "response": text})
