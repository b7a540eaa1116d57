from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from app.assistant.responder import OpenAIResponder, build_responder
from app.conversations.schemas import BehaviorSettings, Message
from conftest import run


class FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(content):
    completions = FakeCompletions(content)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def _message(sender, content, i=1):
    return Message(
        id=i,
        conversation_id=1,
        content=content,
        sender=sender,
        from_customer=sender == "customer",
        channel="sms",
        timestamp=datetime(2026, 1, 1, 0, 0, i, tzinfo=timezone.utc),
    )


def test_generate_reply_sends_behavior_prompt_and_history():
    client, completions = _client("  Sure, Tuesday at 10 works.  ")
    responder = OpenAIResponder(client, model="test-model")
    history = [_message("customer", "hi", 1), _message("ai", "Hello!", 2), _message("customer", "Tuesday?", 3)]

    reply = run(
        responder.generate_reply(
            "Tuesday?", "+1555", "sms", BehaviorSettings(formality=10), history=history
        )
    )

    assert reply == "Sure, Tuesday at 10 works."
    call = completions.calls[0]
    assert call["model"] == "test-model"
    assert call["messages"][0]["role"] == "system"
    assert "Be very casual and friendly" in call["messages"][0]["content"]
    assert [m["role"] for m in call["messages"][1:]] == ["user", "assistant", "user"]


def test_empty_completion_raises():
    client, _ = _client("")
    with pytest.raises(RuntimeError):
        run(OpenAIResponder(client).generate_reply("hi", "+1555", "web"))


def test_missing_client_raises():
    with pytest.raises(RuntimeError):
        run(OpenAIResponder(None).generate_reply("hi", "+1555", "web"))


def test_suggestions_are_split_into_lines():
    client, _ = _client("- We can come Tuesday\n\n- Price is $180\n- Thanks!\n- extra")
    suggestions = run(OpenAIResponder(client).suggest_replies([], "sms"))
    assert suggestions == ["We can come Tuesday", "Price is $180", "Thanks!"]


def test_build_responder_without_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    responder = build_responder()
    with pytest.raises(RuntimeError):
        run(responder.suggest_replies([], "web"))
