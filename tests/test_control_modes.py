import pytest

from app.conversations import UNASSIGNED_AGENT
from app.conversations.errors import (
    ConversationClosedError,
    ConversationNotFoundError,
    InvalidInputError,
)
from conftest import run


def _new_conversation(harness, phone="+15551230000", platform="sms"):
    return run(harness.repository.create_conversation(phone, "Dana", platform))


def _assert_manual_owner_invariant(conversation):
    if conversation.control_mode == "manual":
        assert conversation.assigned_agent
    if conversation.control_mode == "auto":
        assert conversation.assigned_agent is None


def test_takeover_assigns_agent_and_broadcasts(harness):
    convo = _new_conversation(harness)
    control = harness.service().control

    updated = run(control.takeover(convo.id, "alex"))

    assert updated.control_mode == "manual"
    assert updated.assigned_agent == "alex"
    assert updated.manual_mode_started_at is not None
    changed = harness.events("control_mode_changed")
    assert changed[-1][1] == {
        "conversationId": convo.id,
        "controlMode": "manual",
        "assignedAgent": "alex",
    }
    assert harness.events("conversation_updated")[-1][1]["control_mode"] == "manual"


def test_takeover_requires_agent_username(harness):
    convo = _new_conversation(harness)
    control = harness.service().control

    for agent in (None, "", "   "):
        with pytest.raises(InvalidInputError):
            run(control.takeover(convo.id, agent))
    assert run(harness.repository.get_conversation(convo.id)).control_mode == "auto"
    assert harness.events("control_mode_changed") == []


def test_handoff_clears_agent(harness):
    convo = _new_conversation(harness)
    control = harness.service().control
    run(control.takeover(convo.id, "alex"))

    updated = run(control.handoff(convo.id))

    assert updated.control_mode == "auto"
    assert updated.assigned_agent is None


def test_pause_keeps_assigned_agent_and_resume_clears_it(harness):
    convo = _new_conversation(harness)
    control = harness.service().control
    run(control.takeover(convo.id, "alex"))

    paused = run(control.pause(convo.id))
    assert paused.control_mode == "paused"
    assert paused.assigned_agent == "alex"

    resumed = run(control.resume(convo.id))
    assert resumed.control_mode == "auto"
    assert resumed.assigned_agent is None


def test_transitions_are_idempotent_and_rebroadcast(harness):
    convo = _new_conversation(harness)
    control = harness.service().control

    first = run(control.pause(convo.id))
    second = run(control.pause(convo.id))

    assert first.control_mode == second.control_mode == "paused"
    assert len(harness.events("control_mode_changed")) == 2


def test_every_transition_keeps_owner_invariant(harness):
    convo = _new_conversation(harness)
    control = harness.service().control
    steps = [
        lambda: control.takeover(convo.id, "alex"),
        lambda: control.pause(convo.id),
        lambda: control.takeover(convo.id, "sam"),
        lambda: control.handoff(convo.id),
        lambda: control.pause(convo.id),
        lambda: control.resume(convo.id),
        lambda: control.escalate(convo.id, "explicit_request"),
        lambda: control.resume(convo.id),
    ]
    for step in steps:
        _assert_manual_owner_invariant(run(step()))


def test_escalate_marks_attention_with_placeholder_agent(harness):
    convo = _new_conversation(harness)
    control = harness.service().control

    updated = run(control.escalate(convo.id, "urgent_request"))

    assert updated.control_mode == "manual"
    assert updated.assigned_agent == UNASSIGNED_AGENT
    assert updated.needs_human_attention is True
    assert updated.handoff_reason == "urgent_request"
    assert updated.handoff_requested_at is not None

    back = run(control.handoff(convo.id))
    assert back.needs_human_attention is False


def test_close_is_idempotent_and_blocks_further_changes(harness):
    convo = _new_conversation(harness)
    control = harness.service().control

    closed = run(control.close(convo.id))
    again = run(control.close(convo.id))

    assert closed.status == again.status == "closed"
    assert closed.resolved is True
    assert harness.events("control_mode_changed") == []
    assert len(harness.events("conversation_updated")) == 2

    with pytest.raises(ConversationClosedError):
        run(control.takeover(convo.id, "alex"))
    with pytest.raises(ConversationClosedError):
        run(control.resume(convo.id))
    with pytest.raises(ConversationClosedError):
        run(control.update_behavior(convo.id, None))


def test_unknown_conversation_raises_not_found(harness):
    control = harness.service().control

    with pytest.raises(ConversationNotFoundError):
        run(control.handoff(999))
    with pytest.raises(ConversationNotFoundError):
        run(control.pause(999))
    with pytest.raises(ConversationNotFoundError):
        run(control.close(999))


def test_update_behavior_broadcasts_settings_without_touching_mode(harness):
    from app.conversations.schemas import BehaviorSettings

    convo = _new_conversation(harness)
    control = harness.service().control
    run(control.takeover(convo.id, "alex"))
    settings = BehaviorSettings(tone="upbeat", formality=80, forced_action="collect_info")

    updated = run(control.update_behavior(convo.id, settings))

    assert updated.behavior_settings.tone == "upbeat"
    assert updated.control_mode == "manual"
    assert updated.assigned_agent == "alex"
    event = harness.events("behavior_updated")[-1][1]
    assert event["conversationId"] == convo.id
    assert event["behaviorSettings"]["forced_action"] == "collect_info"
