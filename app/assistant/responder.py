"""AI responder backed by the OpenAI chat completions API."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import Protocol

from openai import AsyncOpenAI

from ..conversations import schemas
from .prompts import build_suggestion_prompt, build_system_prompt

logger = logging.getLogger(__name__)

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
HISTORY_TURNS = int(os.getenv("AI_HISTORY_TURNS", "12"))

_ROLE_BY_SENDER = {"customer": "user", "ai": "assistant", "agent": "assistant"}


class Responder(Protocol):
    """Produces assistant text; implementations raise on failure."""

    async def generate_reply(
        self,
        text: str,
        phone: str,
        platform: schemas.Platform,
        behavior_settings: schemas.BehaviorSettings | None = None,
        history: Sequence[schemas.Message] = (),
    ) -> str: ...

    async def suggest_replies(
        self, history: Sequence[schemas.Message], platform: schemas.Platform
    ) -> list[str]: ...


def _history_messages(history: Sequence[schemas.Message]) -> list[dict[str, str]]:
    return [
        {"role": _ROLE_BY_SENDER[m.sender], "content": m.content}
        for m in list(history)[-HISTORY_TURNS:]
    ]


class OpenAIResponder:
    """:class:`Responder` using ``openai.AsyncOpenAI``.

    ``history`` should already contain the customer's latest message; when it
    does not, ``text`` is appended as the final user turn.
    """

    def __init__(self, client: AsyncOpenAI | None, model: str = OPENAI_MODEL) -> None:
        self._client = client
        self._model = model

    def _require_client(self) -> AsyncOpenAI:
        if self._client is None:
            raise RuntimeError("OpenAI client not configured (OPENAI_API_KEY unset)")
        return self._client

    async def generate_reply(
        self,
        text: str,
        phone: str,
        platform: schemas.Platform,
        behavior_settings: schemas.BehaviorSettings | None = None,
        history: Sequence[schemas.Message] = (),
    ) -> str:
        client = self._require_client()
        messages = [
            {"role": "system", "content": build_system_prompt(platform, behavior_settings)}
        ]
        messages.extend(_history_messages(history))
        if not history or history[-1].content != text:
            messages.append({"role": "user", "content": text})
        completion = await client.chat.completions.create(
            model=self._model,
            messages=messages,
            user=phone,
        )
        reply = (completion.choices[0].message.content or "").strip()
        if not reply:
            raise RuntimeError("OpenAI returned an empty reply")
        return reply

    async def suggest_replies(
        self, history: Sequence[schemas.Message], platform: schemas.Platform
    ) -> list[str]:
        client = self._require_client()
        messages = [{"role": "system", "content": build_suggestion_prompt(platform)}]
        messages.extend(_history_messages(history))
        completion = await client.chat.completions.create(
            model=self._model, messages=messages
        )
        content = completion.choices[0].message.content or ""
        suggestions = [line.strip(" -•\t") for line in content.splitlines()]
        return [s for s in suggestions if s][:3]


def build_responder() -> OpenAIResponder:
    """Create the default responder from environment configuration."""

    if not os.getenv("OPENAI_API_KEY"):
        logger.warning("OPENAI_API_KEY not set; AI replies will use the fallback text")
        return OpenAIResponder(None)
    return OpenAIResponder(AsyncOpenAI())
