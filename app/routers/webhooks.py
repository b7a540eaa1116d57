"""Inbound message routes for the Twilio SMS webhook and the web chat widget.

Customers never see raw errors here: anything that goes wrong while
processing a message degrades to the generic apology reply.
"""

import json
import logging
import os
from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response, status

from ..channels import ChannelAdapter, get_adapter
from ..conversations.errors import InvalidInputError
from ..conversations.service import FALLBACK_REPLY
from ..core.db import repository_context
from ..core.rate_limit import CHAT_RATE_LIMIT, limiter
from ..core.services import ServiceRegistry

router = APIRouter(tags=["webhooks"])

logger = logging.getLogger(__name__)

CHAT_MAX_MESSAGE_LENGTH = int(os.getenv("CHAT_MAX_MESSAGE_LENGTH", "2000"))


def _channel_config(channel: str) -> dict[str, Any]:
    if channel != "sms":
        return {}
    return {
        "auth_token": os.getenv("TWILIO_AUTH_TOKEN"),
        "validate_signature": os.getenv("TWILIO_VALIDATE_SIGNATURE", "false").lower()
        == "true",
    }


async def _read_payload(request: Request) -> dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        body_bytes = await request.body()
        try:
            payload = json.loads(body_bytes.decode("utf-8")) if body_bytes else {}
        except json.JSONDecodeError as exc:
            raise HTTPException(
                status_code=400, detail=f"Invalid JSON payload: {exc}"
            ) from exc
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="JSON object expected")
        return payload
    form = await request.form()
    return dict(form)


def _is_web_client(request: Request, payload: dict[str, Any]) -> bool:
    if request.headers.get("x-client-type", "").lower() == "web":
        return True
    return payload.get("isWebClient") in (True, "true")


async def _ingest(request: Request, adapter: ChannelAdapter, payload: dict[str, Any]) -> Response:
    if not adapter.verify_signature(str(request.url), payload, request.headers):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature"
        )
    try:
        inbound = adapter.parse_incoming(payload, request.headers)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not inbound.text.strip():
        raise HTTPException(status_code=400, detail="Message is required")
    if len(inbound.text) > CHAT_MAX_MESSAGE_LENGTH:
        raise HTTPException(status_code=413, detail="Message too long")

    registry: ServiceRegistry = request.app.state.services
    try:
        async with repository_context(registry.memory_repository) as repository:
            service = registry.conversation_service(repository)
            result = await service.process_inbound(inbound)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception:
        logger.exception(
            "Failed to process %s message from %s", adapter.channel_name, inbound.sender_phone
        )
        return adapter.render_text(FALLBACK_REPLY, success=False)
    return adapter.render_reply(result)


@router.post("/sms")
@limiter.limit(CHAT_RATE_LIMIT)
async def sms_webhook(request: Request) -> Response:
    """Twilio messaging webhook; the legacy web widget posts here too.

    Web clients identify themselves with ``X-Client-Type: web`` (or an
    ``isWebClient`` flag) and receive JSON; SMS gets TwiML.
    """
    payload = await _read_payload(request)
    channel = "web" if _is_web_client(request, payload) else "sms"
    adapter = get_adapter(channel)(_channel_config(channel))
    return await _ingest(request, adapter, payload)


@router.post("/api/chat")
@limiter.limit(CHAT_RATE_LIMIT)
async def web_chat(request: Request) -> Response:
    """Web chat endpoint used by the site widget; always answered by the AI."""
    payload = await _read_payload(request)
    adapter = get_adapter("web")(_channel_config("web"))
    return await _ingest(request, adapter, payload)
