"""Conversation monitoring and agent control API routes."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, HTTPException, Request

from ..conversations import schemas as convo_schemas
from ..conversations.errors import (
    ConversationClosedError,
    ConversationNotFoundError,
    InvalidInputError,
    UpstreamFailureError,
)
from ..conversations.service import ConversationService
from ..core.db import repository_context
from ..core.services import ServiceRegistry

router = APIRouter(tags=["conversations"])

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _service_context(request: Request) -> AsyncIterator[ConversationService]:
    registry: ServiceRegistry = request.app.state.services
    try:
        async with repository_context(registry.memory_repository) as repository:
            yield registry.conversation_service(repository)
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ConversationClosedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UpstreamFailureError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except HTTPException:
        raise
    except Exception as exc:  # pragma: no cover
        logger.exception("Conversation request failed")
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def _ok(data, message: str | None = None) -> convo_schemas.ApiResponse:
    return convo_schemas.ApiResponse(data=data, message=message)


@router.get("/api/conversations", response_model=convo_schemas.ApiResponse)
async def list_conversations(
    request: Request, status: Optional[str] = None
) -> convo_schemas.ApiResponse:
    """List active, manual-only or closed conversations (newest first)."""
    async with _service_context(request) as conversations:
        return _ok(await conversations.list_conversations(status))


@router.post("/api/conversations/create", response_model=convo_schemas.ApiResponse)
async def create_conversation(
    request: Request, payload: convo_schemas.CreateConversationRequest
) -> convo_schemas.ApiResponse:
    async with _service_context(request) as conversations:
        conversation = await conversations.start_conversation(payload.phone, payload.name)
    return _ok(conversation, "Conversation created successfully")


@router.get("/api/conversations/{conversation_id}", response_model=convo_schemas.ApiResponse)
async def get_conversation(
    request: Request, conversation_id: int
) -> convo_schemas.ApiResponse:
    async with _service_context(request) as conversations:
        return _ok(await conversations.get_conversation(conversation_id))


@router.get(
    "/api/conversations/{conversation_id}/messages",
    response_model=convo_schemas.ApiResponse,
)
async def get_messages(
    request: Request, conversation_id: int
) -> convo_schemas.ApiResponse:
    async with _service_context(request) as conversations:
        return _ok(await conversations.get_messages(conversation_id))


@router.post(
    "/api/conversations/{conversation_id}/takeover",
    response_model=convo_schemas.ApiResponse,
)
async def takeover_conversation(
    request: Request,
    conversation_id: int,
    payload: Optional[convo_schemas.TakeoverRequest] = None,
) -> convo_schemas.ApiResponse:
    async with _service_context(request) as conversations:
        conversation = await conversations.control.takeover(
            conversation_id, payload.agent_username if payload else None
        )
    return _ok(conversation, "Conversation taken over successfully")


@router.post(
    "/api/conversations/{conversation_id}/handoff",
    response_model=convo_schemas.ApiResponse,
)
async def handoff_conversation(
    request: Request, conversation_id: int
) -> convo_schemas.ApiResponse:
    async with _service_context(request) as conversations:
        conversation = await conversations.control.handoff(conversation_id)
    return _ok(conversation, "Conversation handed off to AI successfully")


@router.post(
    "/api/conversations/{conversation_id}/pause",
    response_model=convo_schemas.ApiResponse,
)
async def pause_conversation(
    request: Request, conversation_id: int
) -> convo_schemas.ApiResponse:
    async with _service_context(request) as conversations:
        conversation = await conversations.control.pause(conversation_id)
    return _ok(conversation, "Conversation paused successfully")


@router.post(
    "/api/conversations/{conversation_id}/resume",
    response_model=convo_schemas.ApiResponse,
)
async def resume_conversation(
    request: Request, conversation_id: int
) -> convo_schemas.ApiResponse:
    async with _service_context(request) as conversations:
        conversation = await conversations.control.resume(conversation_id)
    return _ok(conversation, "Conversation resumed successfully")


@router.post(
    "/api/conversations/{conversation_id}/close",
    response_model=convo_schemas.ApiResponse,
)
async def close_conversation(
    request: Request, conversation_id: int
) -> convo_schemas.ApiResponse:
    async with _service_context(request) as conversations:
        conversation = await conversations.control.close(conversation_id)
    return _ok(conversation, "Conversation closed successfully")


@router.patch(
    "/api/conversations/{conversation_id}/behavior",
    response_model=convo_schemas.ApiResponse,
)
async def update_behavior(
    request: Request,
    conversation_id: int,
    payload: convo_schemas.BehaviorSettings,
) -> convo_schemas.ApiResponse:
    async with _service_context(request) as conversations:
        conversation = await conversations.control.update_behavior(
            conversation_id, payload
        )
    return _ok(conversation, "Behavior settings updated successfully")


@router.post(
    "/api/conversations/{conversation_id}/send-message",
    response_model=convo_schemas.ApiResponse,
)
async def send_message(
    request: Request,
    conversation_id: int,
    payload: convo_schemas.SendMessageRequest,
) -> convo_schemas.ApiResponse:
    """Send an agent-authored message (SMS is delivered before it is saved)."""
    async with _service_context(request) as conversations:
        message = await conversations.send_agent_message(
            conversation_id, payload.content, payload.agent_username
        )
    note = (
        "Message sent successfully via SMS"
        if message.channel == "sms"
        else "Message sent successfully"
    )
    return _ok(message, note)


@router.post(
    "/api/conversations/{conversation_id}/return-to-ai",
    response_model=convo_schemas.ApiResponse,
)
async def return_to_ai(
    request: Request,
    conversation_id: int,
    payload: Optional[convo_schemas.ReturnToAIRequest] = None,
) -> convo_schemas.ApiResponse:
    payload = payload or convo_schemas.ReturnToAIRequest()
    async with _service_context(request) as conversations:
        conversation = await conversations.return_to_ai(
            conversation_id, payload.agent_name, payload.notify_customer
        )
    return _ok(conversation, "Conversation returned to AI")


@router.get(
    "/api/conversations/{conversation_id}/suggestions",
    response_model=convo_schemas.SuggestionsResponse,
)
async def reply_suggestions(
    request: Request, conversation_id: int
) -> convo_schemas.SuggestionsResponse:
    async with _service_context(request) as conversations:
        suggestions = await conversations.suggest_replies(conversation_id)
    return convo_schemas.SuggestionsResponse(suggestions=suggestions)
