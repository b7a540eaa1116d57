"""Prompt construction for the customer-facing assistant.

Behavior settings are advisory: they only shape the system prompt and never
touch the conversation's control mode.
"""

from __future__ import annotations

import os

from ..conversations import schemas

BUSINESS_NAME = os.getenv("BUSINESS_NAME", "Clean Machine Auto Detail")

_BASE_PROMPT = (
    "You are the friendly assistant for {business}, a mobile auto-detailing "
    "service. Answer questions about services, help customers book "
    "appointments and collect the details needed to serve them."
)

_PLATFORM_HINTS = {
    "sms": "You are replying by SMS: keep it short, plain text, no markdown.",
    "web": "You are replying in a web chat: short paragraphs are fine.",
}

_FORCED_ACTIONS = {
    "show_scheduler": (
        "Encourage the customer to book an appointment and direct them to "
        "the scheduling system"
    ),
    "collect_info": (
        "Focus on collecting customer information (name, vehicle info, address)"
    ),
}


def _band(value: int, low: str, mid: str, high: str) -> str:
    if value < 30:
        return low
    if value < 70:
        return mid
    return high


def build_behavior_instructions(
    settings: schemas.BehaviorSettings | None,
) -> list[str]:
    """Translate ``settings`` into prompt directives, one per line."""

    if settings is None:
        return []
    instructions: list[str] = []
    if settings.tone:
        instructions.append(f"Tone: {settings.tone}")
    if settings.formality is not None:
        instructions.append(
            _band(
                settings.formality,
                "Be very casual and friendly",
                "Use a balanced, professional yet approachable tone",
                "Be very formal and professional",
            )
        )
    if settings.response_length is not None:
        instructions.append(
            _band(
                settings.response_length,
                "Keep responses very brief and to the point",
                "Provide moderate-length responses",
                "Provide detailed, comprehensive responses",
            )
        )
    if settings.proactivity is not None and settings.proactivity > 60:
        instructions.append("Be proactive in offering suggestions and upsells")
    if settings.forced_action:
        instructions.append(_FORCED_ACTIONS[settings.forced_action])
    return instructions


def build_system_prompt(
    platform: schemas.Platform,
    settings: schemas.BehaviorSettings | None = None,
) -> str:
    parts = [_BASE_PROMPT.format(business=BUSINESS_NAME)]
    custom_prompt = os.getenv("SYSTEM_PROMPT")
    if custom_prompt:
        parts.insert(0, custom_prompt)
    parts.append(_PLATFORM_HINTS.get(platform, ""))
    instructions = build_behavior_instructions(settings)
    if instructions:
        parts.append(
            "Behavior Adjustments:\n" + "\n".join(f"- {line}" for line in instructions)
        )
    return "\n\n".join(p for p in parts if p)


def build_suggestion_prompt(platform: schemas.Platform) -> str:
    return (
        f"You help a human agent at {BUSINESS_NAME} reply to a customer over "
        f"{'SMS' if platform == 'sms' else 'web chat'}. Propose three short, "
        "distinct replies the agent could send next. Return one reply per "
        "line with no numbering."
    )
