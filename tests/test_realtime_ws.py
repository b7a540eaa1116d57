from app.realtime.hub import MONITORING_ROOM, conversation_room


def test_monitoring_socket_receives_conversation_events(api_client, harness):
    with api_client.websocket_connect("/ws/conversations") as ws:
        ws.send_json({"action": "join_monitoring"})
        assert ws.receive_json() == {
            "event": "join_monitoring",
            "data": {"room": MONITORING_ROOM},
        }

        api_client.post("/api/chat", json={"message": "hi", "customerPhone": "+1555"})

        events = [ws.receive_json()["event"] for _ in range(3)]
        assert events == ["new_conversation", "new_message", "new_message"]


def test_conversation_room_gets_minimal_messages(api_client, harness):
    first = api_client.post(
        "/api/chat", json={"message": "hi", "customerPhone": "+1555"}
    ).json()
    convo_id = first["conversationId"]

    with api_client.websocket_connect("/ws/conversations") as ws:
        ws.send_json({"action": "join_conversation", "conversation_id": convo_id})
        assert ws.receive_json()["data"] == {"room": conversation_room(convo_id)}

        api_client.post(
            f"/api/conversations/{convo_id}/send-message",
            json={"content": "Hi, Alex here"},
        )

        frame = ws.receive_json()
        assert frame["event"] == "conversation_message"
        assert frame["data"]["content"] == "Hi, Alex here"
        assert frame["data"]["sender"] == "agent"


def test_unknown_action_gets_error_frame(api_client):
    with api_client.websocket_connect("/ws/conversations") as ws:
        ws.send_json({"action": "dance"})
        frame = ws.receive_json()
        assert frame["event"] == "error"
        assert "dance" in frame["data"]["detail"]

        ws.send_json({"action": "join_conversation"})
        assert ws.receive_json()["event"] == "error"


def test_invalid_json_gets_error_frame_and_socket_stays_open(api_client, harness):
    with api_client.websocket_connect("/ws/conversations") as ws:
        ws.send_text("not json")
        frame = ws.receive_json()
        assert frame == {"event": "error", "data": {"detail": "Invalid JSON"}}

        ws.send_json({"action": "join_monitoring"})
        assert ws.receive_json()["event"] == "join_monitoring"
        assert MONITORING_ROOM in harness.hub.rooms()


def test_disconnect_removes_memberships(api_client, harness):
    with api_client.websocket_connect("/ws/conversations") as ws:
        ws.send_json({"action": "join_conversation", "conversationId": 42})
        ws.receive_json()
        assert conversation_room(42) in harness.hub.rooms()

    assert conversation_room(42) not in harness.hub.rooms()
