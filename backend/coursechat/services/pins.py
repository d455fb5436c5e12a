"""Single pinned message per course.

Pin and unpin lock the course row before touching pin fields, so concurrent
swaps on one course run one after another. The partial unique index on
``course_messages(course_id) WHERE pinned`` backs this up at the storage level.
Callers are expected to have checked that the actor is the course lecturer.
"""
from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from coursechat.core.errors import InvalidInputError, NotFoundError
from coursechat.db.base import utcnow
from coursechat.db.session import atomic
from coursechat.models.course import Course
from coursechat.models.message import Message
from coursechat.schemas.message import MessageOut
from coursechat.services.messages import get_message, serialize_messages

logger = logging.getLogger(__name__)


def _lock_course(db: Session, course_id: int) -> None:
    locked = db.execute(
        select(Course.id).where(Course.id == course_id).with_for_update()
    ).scalar_one_or_none()
    if locked is None:
        raise NotFoundError("Course not found")


def _visible_message_in_course(db: Session, course_id: int, message_id: int) -> Message:
    message = db.get(Message, message_id)
    if message is None or message.course_id != course_id or message.deleted:
        raise NotFoundError("Message not found in this course")
    return message


def pin_message(db: Session, *, course_id: int, message_id: int, actor_id: int) -> MessageOut:
    with atomic(db):
        _lock_course(db, course_id)
        message = _visible_message_in_course(db, course_id, message_id)
        if message.parent_message_id is not None:
            raise InvalidInputError("Only top-level messages can be pinned")

        db.execute(
            update(Message)
            .where(
                Message.course_id == course_id,
                Message.pinned.is_(True),
                Message.id != message_id,
            )
            .values(pinned=False, pinned_at=None, pinned_by_id=None)
        )
        db.flush()

        message.pinned = True
        message.pinned_at = utcnow()
        message.pinned_by_id = actor_id
        db.flush()
        db.expire(message, ["pinned_by"])

        (serialized,) = serialize_messages(db, [get_message(db, message_id)])

    logger.info(
        "message_pinned",
        extra={"course_id": course_id, "message_id": message_id, "user_id": actor_id},
    )
    return serialized


def unpin_message(db: Session, *, course_id: int, message_id: int) -> MessageOut:
    """Clear the pin on ``message_id``; a no-op when it is not pinned."""
    with atomic(db):
        _lock_course(db, course_id)
        message = _visible_message_in_course(db, course_id, message_id)
        changed = message.pinned
        if changed:
            message.pinned = False
            message.pinned_at = None
            message.pinned_by_id = None
            db.flush()
            db.expire(message, ["pinned_by"])

        (serialized,) = serialize_messages(db, [get_message(db, message_id)])

    if changed:
        logger.info("message_unpinned", extra={"course_id": course_id, "message_id": message_id})
    return serialized


def pinned_message_ids(db: Session, course_id: int) -> list[int]:
    return list(
        db.execute(
            select(Message.id).where(
                Message.course_id == course_id,
                Message.pinned.is_(True),
                Message.deleted.is_(False),
            )
        ).scalars().all()
    )
