"""WebSocket tests: subscription, fan-out from both entry paths, acks."""
import pytest
from starlette.websockets import WebSocketDisconnect


def _socket_url(token: str) -> str:
    return f"/ws/courses?token={token}"


def test_ready_frame_lists_courses(client, users, course, other_course, token_for):
    with client.websocket_connect(_socket_url(token_for(users["lecturer"]))) as ws:
        ready = ws.receive_json()

    assert ready["event"] == "ready"
    assert ready["data"]["user_id"] == users["lecturer"].id
    assert ready["data"]["course_ids"] == sorted([course.id, other_course.id])


def test_bad_token_closes_with_policy_violation(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(_socket_url("garbage")):
            pass

    assert exc_info.value.code == 1008


def test_missing_token_closes(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/courses"):
            pass

    assert exc_info.value.code == 1008


def test_http_post_fans_out_to_course(client, users, course, auth, token_for):
    with client.websocket_connect(_socket_url(token_for(users["student2"]))) as ws:
        ws.receive_json()

        created = client.post(
            f"/api/courses/{course.id}/messages",
            json={"content": "Hello from HTTP"},
            headers=auth(users["student"]),
        ).json()

        frame = ws.receive_json()

    assert frame["event"] == "course_message:new"
    assert frame["data"] == created["message"]


def test_http_reply_fans_out_message_then_summary(client, users, course, auth, token_for, make_message):
    parent = make_message(course, users["student"], "Thread start")

    with client.websocket_connect(_socket_url(token_for(users["lecturer"]))) as ws:
        ws.receive_json()

        created = client.post(
            f"/api/courses/{course.id}/messages/{parent.id}/replies",
            json={"content": "Lecturer answer"},
            headers=auth(users["lecturer"]),
        ).json()

        new_frame = ws.receive_json()
        summary_frame = ws.receive_json()

    assert new_frame["event"] == "course_message:new"
    assert new_frame["data"]["id"] == created["message"]["id"]
    assert summary_frame["event"] == "course_message:reply_count"
    assert summary_frame["data"] == created["parent_update"]
    assert summary_frame["data"]["reply_count"] == 1


def test_socket_post_is_acked_and_broadcast(client, users, course, token_for):
    with client.websocket_connect(_socket_url(token_for(users["student2"]))) as listener:
        listener.receive_json()
        with client.websocket_connect(_socket_url(token_for(users["student"]))) as sender:
            sender.receive_json()

            sender.send_json({"event": "course_message", "ack": "a-1", "data": {"course_id": course.id, "content": "Hi all"}})

            own_frame = sender.receive_json()
            ack = sender.receive_json()
            other_frame = listener.receive_json()

    assert own_frame["event"] == "course_message:new"
    assert ack["event"] == "ack"
    assert ack["ack"] == "a-1"
    assert ack["status"] == "ok"
    assert ack["data"]["message"] == own_frame["data"]
    assert other_frame == own_frame
    assert own_frame["data"]["content"] == "Hi all"


def test_socket_post_with_blank_parent_is_top_level(client, users, course, token_for):
    with client.websocket_connect(_socket_url(token_for(users["student"]))) as ws:
        ws.receive_json()
        ws.send_json(
            {"event": "course_message", "ack": 2, "data": {"course_id": course.id, "content": "top", "parent_message_id": ""}}
        )
        ws.receive_json()
        ack = ws.receive_json()

    assert ack["status"] == "ok"
    assert ack["data"]["message"]["parent_message_id"] is None


def test_socket_post_to_deleted_parent_errors(client, users, course, token_for, make_message):
    parent = make_message(course, users["student"], "gone", deleted=True)

    with client.websocket_connect(_socket_url(token_for(users["student2"]))) as ws:
        ws.receive_json()
        ws.send_json(
            {
                "event": "course_message",
                "ack": 3,
                "data": {"course_id": course.id, "content": "reply", "parent_message_id": parent.id},
            }
        )
        ack = ws.receive_json()

    assert ack == {
        "event": "ack",
        "ack": 3,
        "status": "error",
        "code": "invalid_parent",
        "message": "Cannot reply to a deleted message",
    }


def test_socket_post_outside_membership_errors(client, users, course, token_for):
    with client.websocket_connect(_socket_url(token_for(users["outsider"]))) as ws:
        ws.receive_json()
        ws.send_json({"event": "course_message", "ack": 4, "data": {"course_id": course.id, "content": "sneaky"}})
        ack = ws.receive_json()

    assert ack["status"] == "error"
    assert ack["code"] == "forbidden"


def test_socket_rejects_malformed_and_unknown_frames(client, users, course, token_for):
    with client.websocket_connect(_socket_url(token_for(users["student"]))) as ws:
        ws.receive_json()

        ws.send_text("not json")
        malformed = ws.receive_json()

        ws.send_json({"event": "typing", "ack": 5})
        unknown = ws.receive_json()

        ws.send_json({"event": "course_message", "ack": 6, "data": {"content": "no course"}})
        invalid = ws.receive_json()

    assert malformed["ack"] is None
    assert malformed["code"] == "invalid_input"
    assert unknown["ack"] == 5
    assert unknown["code"] == "invalid_input"
    assert invalid["ack"] == 6
    assert invalid["status"] == "error"


def test_pin_event_reaches_socket(client, users, course, auth, token_for, make_message):
    message = make_message(course, users["student"], "Important")

    with client.websocket_connect(_socket_url(token_for(users["student"]))) as ws:
        ws.receive_json()

        pinned = client.post(
            f"/api/courses/{course.id}/messages/{message.id}/pin", headers=auth(users["lecturer"])
        ).json()
        pin_frame = ws.receive_json()

        client.delete(f"/api/courses/{course.id}/messages/{message.id}/pin", headers=auth(users["lecturer"]))
        unpin_frame = ws.receive_json()

    assert pin_frame["event"] == "course_message:pinned"
    assert pin_frame["data"] == {"course_id": course.id, "message": pinned}
    assert unpin_frame["event"] == "course_message:unpinned"
    assert unpin_frame["data"]["message"]["pinned"] is False


def test_connection_subscribes_to_course(client, app, users, course, token_for):
    with client.websocket_connect(_socket_url(token_for(users["student"]))) as ws:
        ws.receive_json()
        assert app.state.broadcaster.subscriber_count(course.id) == 1

