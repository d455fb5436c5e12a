"""Course-channel fan-out over WebSocket connections.

A ``CourseBroadcaster`` tracks which sockets are subscribed to which course
and pushes canonical event payloads to them. It is constructed once per
application and shared by the REST handlers (via background tasks) and the
socket handler, so both entry paths publish the same payload objects.

Delivery is best effort:
    - sends run concurrently with ``asyncio.gather()``
    - each send is bounded by ``send_timeout`` seconds
    - sockets that fail or time out are dropped from every course
    - ``publish`` never raises; failures are logged
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Protocol, Set

from pydantic import BaseModel

from coursechat.core.observability import broadcast_deliveries_total
from coursechat.schemas.message import CreateMessageResult, MessageOut, PinEvent, ReplySummaryUpdate

logger = logging.getLogger(__name__)

EVENT_NEW_MESSAGE = "course_message:new"
EVENT_REPLY_SUMMARY = "course_message:reply_count"
EVENT_PINNED = "course_message:pinned"
EVENT_UNPINNED = "course_message:unpinned"


class Subscriber(Protocol):
    async def send_json(self, data: Any, mode: str = "text") -> None: ...


class CourseBroadcaster:
    def __init__(self, send_timeout: float = 2.0) -> None:
        self.send_timeout = send_timeout
        # course_id -> sockets subscribed to that course channel
        self._subscribers: Dict[int, Set[Subscriber]] = {}
        # socket -> course_ids, for unsubscribe on disconnect
        self._courses_by_socket: Dict[Subscriber, Set[int]] = {}

    def subscribe(self, websocket: Subscriber, course_ids: Iterable[int]) -> None:
        joined = self._courses_by_socket.setdefault(websocket, set())
        for course_id in course_ids:
            self._subscribers.setdefault(course_id, set()).add(websocket)
            joined.add(course_id)

    def unsubscribe(self, websocket: Subscriber) -> None:
        for course_id in self._courses_by_socket.pop(websocket, set()):
            sockets = self._subscribers.get(course_id)
            if sockets is None:
                continue
            sockets.discard(websocket)
            if not sockets:
                del self._subscribers[course_id]

    def subscriber_count(self, course_id: int) -> int:
        return len(self._subscribers.get(course_id, ()))

    def courses_for(self, websocket: Subscriber) -> Set[int]:
        return set(self._courses_by_socket.get(websocket, ()))

    async def publish(self, course_id: int, event: str, payload: BaseModel) -> int:
        """Send ``payload`` to every subscriber of ``course_id``.

        Returns the number of successful deliveries.
        """
        sockets = list(self._subscribers.get(course_id, ()))
        if not sockets:
            return 0

        try:
            frame = {"event": event, "data": payload.model_dump(mode="json")}
        except Exception:
            logger.exception("broadcast_serialize_failed", extra={"course_id": course_id, "event": event})
            return 0

        results = await asyncio.gather(
            *[self._safe_send(socket, frame) for socket in sockets],
            return_exceptions=True,
        )

        failed: List[Subscriber] = [
            socket for socket, ok in zip(sockets, results) if ok is not True
        ]
        for socket in failed:
            self.unsubscribe(socket)

        delivered = len(sockets) - len(failed)
        broadcast_deliveries_total.labels(event=event, outcome="ok").inc(delivered)
        if failed:
            broadcast_deliveries_total.labels(event=event, outcome="failed").inc(len(failed))
            logger.warning(
                "broadcast_partial_failure",
                extra={
                    "course_id": course_id,
                    "event": event,
                    "subscribers": len(sockets),
                    "failed": len(failed),
                },
            )
        return delivered

    async def _safe_send(self, socket: Subscriber, frame: dict) -> bool:
        try:
            await asyncio.wait_for(socket.send_json(frame), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.debug("broadcast_send_timeout")
            return False
        except Exception as e:
            logger.debug(f"Failed to send to subscriber: {e}")
            return False

    async def publish_new_message(self, course_id: int, message: MessageOut) -> int:
        return await self.publish(course_id, EVENT_NEW_MESSAGE, message)

    async def publish_reply_summary(self, course_id: int, update: ReplySummaryUpdate) -> int:
        return await self.publish(course_id, EVENT_REPLY_SUMMARY, update)

    async def publish_pinned(self, course_id: int, message: MessageOut) -> int:
        return await self.publish(course_id, EVENT_PINNED, PinEvent(course_id=course_id, message=message))

    async def publish_unpinned(self, course_id: int, message: MessageOut) -> int:
        return await self.publish(course_id, EVENT_UNPINNED, PinEvent(course_id=course_id, message=message))

    async def publish_created(self, result: CreateMessageResult) -> None:
        """Fan out a create result: the new message, then the parent summary."""
        await self.publish_new_message(result.message.course_id, result.message)
        if result.parent_update is not None:
            await self.publish_reply_summary(result.parent_update.course_id, result.parent_update)
