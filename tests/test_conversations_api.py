from conftest import run, sms


def _seed(harness, text="hi", phone="+15551234567"):
    return run(harness.service().process_inbound(sms(text, phone=phone))).conversation


def test_list_and_detail(api_client, harness):
    convo = _seed(harness)

    resp = api_client.get("/api/conversations")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"][0]["id"] == convo.id
    assert body["data"][0]["message_count"] == 2

    detail = api_client.get(f"/api/conversations/{convo.id}").json()["data"]
    assert [m["sender"] for m in detail["messages"]] == ["customer", "ai"]

    messages = api_client.get(f"/api/conversations/{convo.id}/messages").json()["data"]
    assert messages[0]["content"] == "hi"


def test_unknown_conversation_is_404(api_client):
    assert api_client.get("/api/conversations/999").status_code == 404
    assert api_client.post("/api/conversations/999/pause").status_code == 404


def test_takeover_pause_resume_cycle(api_client, harness):
    convo = _seed(harness)
    base = f"/api/conversations/{convo.id}"

    resp = api_client.post(f"{base}/takeover", json={"agentUsername": "alex"})
    assert resp.status_code == 200
    assert resp.json()["data"]["control_mode"] == "manual"
    assert resp.json()["data"]["assigned_agent"] == "alex"

    paused = api_client.post(f"{base}/pause").json()["data"]
    assert paused["control_mode"] == "paused"
    assert paused["assigned_agent"] == "alex"

    resumed = api_client.post(f"{base}/resume").json()["data"]
    assert resumed["control_mode"] == "auto"
    assert resumed["assigned_agent"] is None

    handed = api_client.post(f"{base}/handoff")
    assert handed.json()["message"] == "Conversation handed off to AI successfully"


def test_takeover_without_agent_is_400(api_client, harness):
    convo = _seed(harness)
    resp = api_client.post(f"/api/conversations/{convo.id}/takeover")
    assert resp.status_code == 400


def test_closed_conversation_rejects_changes_with_409(api_client, harness):
    convo = _seed(harness)
    base = f"/api/conversations/{convo.id}"

    assert api_client.post(f"{base}/close").json()["data"]["status"] == "closed"
    assert api_client.post(f"{base}/close").status_code == 200
    assert api_client.post(f"{base}/takeover", json={"agent_username": "alex"}).status_code == 409

    closed = api_client.get("/api/conversations", params={"status": "closed"}).json()
    assert [c["id"] for c in closed["data"]] == [convo.id]


def test_manual_filter(api_client, harness):
    a = _seed(harness, phone="+15550000001")
    _seed(harness, phone="+15550000002")
    api_client.post(f"/api/conversations/{a.id}/takeover", json={"agentUsername": "alex"})

    data = api_client.get("/api/conversations", params={"status": "manual"}).json()["data"]
    assert [c["id"] for c in data] == [a.id]


def test_behavior_patch_validates_and_broadcasts(api_client, harness):
    convo = _seed(harness)
    url = f"/api/conversations/{convo.id}/behavior"

    assert api_client.patch(url, json={"formality": 150}).status_code == 422

    resp = api_client.patch(url, json={"tone": "warm", "forcedAction": "show_scheduler"})
    assert resp.status_code == 200
    settings = resp.json()["data"]["behavior_settings"]
    assert settings["forced_action"] == "show_scheduler"
    assert harness.events("behavior_updated")[-1][1]["conversationId"] == convo.id


def test_send_message_over_sms(api_client, harness):
    convo = _seed(harness)
    resp = api_client.post(
        f"/api/conversations/{convo.id}/send-message",
        json={"content": "Be there at 3", "agentUsername": "alex"},
    )
    assert resp.status_code == 200
    assert resp.json()["message"] == "Message sent successfully via SMS"
    assert resp.json()["data"]["sender"] == "agent"
    assert harness.gateway.sent_to("+15551234567") == ["Be there at 3"]


def test_send_message_sms_failure_is_502(api_client, harness):
    convo = _seed(harness)
    harness.gateway.succeed = False
    resp = api_client.post(
        f"/api/conversations/{convo.id}/send-message", json={"content": "hello"}
    )
    assert resp.status_code == 502


def test_send_message_requires_content(api_client, harness):
    convo = _seed(harness)
    resp = api_client.post(f"/api/conversations/{convo.id}/send-message", json={})
    assert resp.status_code == 400


def test_create_conversation(api_client):
    resp = api_client.post(
        "/api/conversations/create", json={"phone": "+15550003333", "name": "Riley"}
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["platform"] == "web"
    assert data["control_mode"] == "auto"

    assert api_client.post("/api/conversations/create", json={}).status_code == 400


def test_return_to_ai_and_suggestions(api_client, harness):
    convo = _seed(harness)
    base = f"/api/conversations/{convo.id}"
    api_client.post(f"{base}/takeover", json={"agentUsername": "alex"})

    resp = api_client.post(
        f"{base}/return-to-ai", json={"agentName": "Alex", "notifyCustomer": False}
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["control_mode"] == "auto"
    assert harness.gateway.sent_to("+15551234567") == []

    suggestions = api_client.get(f"{base}/suggestions").json()
    assert suggestions == {
        "success": True,
        "suggestions": ["We can do 3pm", "Let me check", "Thanks!"],
    }


def test_health_and_version(api_client):
    assert api_client.get("/api/health").json() == {"status": "ok"}
    assert "version" in api_client.get("/api/version").json()
