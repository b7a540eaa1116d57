"""Pydantic schemas for conversation management APIs."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field

Platform = Literal["web", "sms"]
ControlMode = Literal["auto", "manual", "paused"]
ConversationStatus = Literal["active", "closed"]
Sender = Literal["customer", "ai", "agent"]
StatusFilter = Literal["all", "manual", "closed"]
ForcedAction = Literal["show_scheduler", "collect_info"]


class BehaviorSettings(BaseModel):
    """Per-conversation overrides applied to AI prompts while in auto mode."""

    tone: str | None = None
    forced_action: ForcedAction | None = Field(
        default=None, validation_alias=AliasChoices("forced_action", "forcedAction")
    )
    formality: int | None = Field(default=None, ge=0, le=100)
    response_length: int | None = Field(
        default=None,
        ge=0,
        le=100,
        validation_alias=AliasChoices("response_length", "responseLength"),
    )
    proactivity: int | None = Field(default=None, ge=0, le=100)


class Message(BaseModel):
    id: int
    conversation_id: int
    content: str
    sender: Sender
    from_customer: bool
    channel: Platform
    timestamp: datetime


class Conversation(BaseModel):
    id: int
    customer_id: int | None = None
    customer_phone: str | None = None
    customer_name: str | None = None
    platform: Platform
    control_mode: ControlMode = "auto"
    assigned_agent: str | None = None
    behavior_settings: BehaviorSettings | None = None
    status: ConversationStatus = "active"
    needs_human_attention: bool = False
    resolved: bool = False
    handoff_reason: str | None = None
    handoff_requested_at: datetime | None = None
    manual_mode_started_at: datetime | None = None
    last_agent_activity: datetime | None = None
    last_message_time: datetime
    created_at: datetime


class ConversationSummary(Conversation):
    message_count: int = 0
    latest_message: Message | None = None


class ConversationDetail(Conversation):
    messages: list[Message] = Field(default_factory=list)


class ConversationMessageEvent(BaseModel):
    """Minimal message shape sent to live chat participants."""

    id: int
    content: str
    sender: Sender
    timestamp: datetime


# ---------------------------------------------------------------------------
# Request payloads


class CreateConversationRequest(BaseModel):
    phone: str | None = None
    name: str | None = None


class TakeoverRequest(BaseModel):
    agent_username: str | None = Field(
        default=None, validation_alias=AliasChoices("agent_username", "agentUsername")
    )


class SendMessageRequest(BaseModel):
    content: str | None = None
    agent_username: str | None = Field(
        default=None, validation_alias=AliasChoices("agent_username", "agentUsername")
    )


class ReturnToAIRequest(BaseModel):
    agent_name: str | None = Field(
        default=None, validation_alias=AliasChoices("agent_name", "agentName")
    )
    notify_customer: bool = Field(
        default=True, validation_alias=AliasChoices("notify_customer", "notifyCustomer")
    )


# ---------------------------------------------------------------------------
# Response envelopes


class ApiResponse(BaseModel):
    success: bool = True
    data: Any = None
    message: str | None = None


class SuggestionsResponse(BaseModel):
    success: bool = True
    suggestions: list[str] = Field(default_factory=list)
