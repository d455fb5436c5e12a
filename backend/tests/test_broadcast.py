"""Tests for course-channel fan-out."""
import asyncio
from datetime import datetime, timezone

from coursechat.models.enums import MessageType, Role
from coursechat.schemas.message import CreateMessageResult, MessageOut, ReplySummaryUpdate, UserSummary
from coursechat.services.broadcast import (
    EVENT_NEW_MESSAGE,
    EVENT_PINNED,
    EVENT_REPLY_SUMMARY,
    CourseBroadcaster,
)


class FakeSocket:
    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.frames = []

    async def send_json(self, data, mode: str = "text"):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("socket closed")
        self.frames.append(data)


def _message(message_id: int = 1, course_id: int = 10, parent_id=None) -> MessageOut:
    sender = UserSummary(id=7, name="Sam Student", email="sam@campus.edu", role=Role.STUDENT)
    return MessageOut(
        id=message_id,
        course_id=course_id,
        sender_id=sender.id,
        sender=sender,
        parent_message_id=parent_id,
        content="Hello",
        type=MessageType.TEXT,
        created_at=datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc),
    )


def test_publish_reaches_only_course_subscribers():
    broadcaster = CourseBroadcaster()
    in_course = FakeSocket()
    elsewhere = FakeSocket()
    broadcaster.subscribe(in_course, [10])
    broadcaster.subscribe(elsewhere, [11])

    delivered = asyncio.run(broadcaster.publish_new_message(10, _message()))

    assert delivered == 1
    assert in_course.frames[0]["event"] == EVENT_NEW_MESSAGE
    assert in_course.frames[0]["data"]["id"] == 1
    assert in_course.frames[0]["data"]["created_at"].startswith("2026-01-05T09:00:00")
    assert elsewhere.frames == []


def test_every_subscriber_gets_identical_payload():
    broadcaster = CourseBroadcaster()
    sockets = [FakeSocket() for _ in range(3)]
    for socket in sockets:
        broadcaster.subscribe(socket, [10])

    asyncio.run(broadcaster.publish_new_message(10, _message()))

    assert sockets[0].frames == sockets[1].frames == sockets[2].frames
    assert len(sockets[0].frames) == 1


def test_failing_subscriber_is_dropped():
    broadcaster = CourseBroadcaster()
    healthy = FakeSocket()
    broken = FakeSocket(fail=True)
    broadcaster.subscribe(healthy, [10, 12])
    broadcaster.subscribe(broken, [10, 12])

    delivered = asyncio.run(broadcaster.publish_new_message(10, _message()))

    assert delivered == 1
    assert len(healthy.frames) == 1
    assert broadcaster.subscriber_count(10) == 1
    assert broadcaster.subscriber_count(12) == 1
    assert broadcaster.courses_for(broken) == set()


def test_slow_subscriber_times_out():
    broadcaster = CourseBroadcaster(send_timeout=0.05)
    fast = FakeSocket()
    slow = FakeSocket(delay=1.0)
    broadcaster.subscribe(fast, [10])
    broadcaster.subscribe(slow, [10])

    delivered = asyncio.run(broadcaster.publish_new_message(10, _message()))

    assert delivered == 1
    assert slow.frames == []
    assert broadcaster.subscriber_count(10) == 1


def test_publish_without_subscribers():
    broadcaster = CourseBroadcaster()
    assert asyncio.run(broadcaster.publish_new_message(99, _message(course_id=99))) == 0


def test_unsubscribe_removes_all_courses():
    broadcaster = CourseBroadcaster()
    socket = FakeSocket()
    broadcaster.subscribe(socket, [1, 2, 3])

    broadcaster.unsubscribe(socket)

    assert [broadcaster.subscriber_count(c) for c in (1, 2, 3)] == [0, 0, 0]
    broadcaster.unsubscribe(socket)


def test_publish_created_sends_message_then_parent_summary():
    broadcaster = CourseBroadcaster()
    socket = FakeSocket()
    broadcaster.subscribe(socket, [10])
    result = CreateMessageResult(
        message=_message(message_id=5, parent_id=4),
        parent_update=ReplySummaryUpdate(course_id=10, message_id=4, reply_count=3),
    )

    asyncio.run(broadcaster.publish_created(result))

    assert [frame["event"] for frame in socket.frames] == [EVENT_NEW_MESSAGE, EVENT_REPLY_SUMMARY]
    assert socket.frames[1]["data"] == {"course_id": 10, "message_id": 4, "reply_count": 3, "latest_reply": None}


def test_publish_pinned_wraps_message():
    broadcaster = CourseBroadcaster()
    socket = FakeSocket()
    broadcaster.subscribe(socket, [10])

    asyncio.run(broadcaster.publish_pinned(10, _message(message_id=8)))

    frame = socket.frames[0]
    assert frame["event"] == EVENT_PINNED
    assert frame["data"]["course_id"] == 10
    assert frame["data"]["message"]["id"] == 8
