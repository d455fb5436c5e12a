"""Message persistence and the canonical message serialization."""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session, selectinload

from coursechat.core.errors import InvalidInputError, InvalidParentError, NotFoundError
from coursechat.core.observability import messages_created_total
from coursechat.db.base import as_utc
from coursechat.db.session import atomic
from coursechat.models.enums import MessageType
from coursechat.models.message import Message, MessageAttachment
from coursechat.schemas.message import (
    AttachmentIn,
    AttachmentOut,
    CreateMessageResult,
    MessageOut,
    ReplySummary,
    UserSummary,
)
from coursechat.services.threads import build_parent_update, reply_summaries

logger = logging.getLogger(__name__)

MESSAGE_LOAD_OPTIONS = (
    selectinload(Message.sender),
    selectinload(Message.pinned_by),
    selectinload(Message.attachment),
)


def attachment_download_path(course_id: int, message_id: int) -> str:
    return f"/api/courses/{course_id}/messages/{message_id}/attachment"


def serialize_message(message: Message, summary: Optional[ReplySummary] = None) -> MessageOut:
    summary = summary or ReplySummary()
    attachment = None
    if message.attachment is not None:
        attachment = AttachmentOut(
            file_name=message.attachment.file_name,
            mime_type=message.attachment.mime_type,
            size=message.attachment.size,
            storage_url=message.attachment.storage_url,
            download_url=attachment_download_path(message.course_id, message.id),
        )

    return MessageOut(
        id=message.id,
        course_id=message.course_id,
        sender_id=message.sender_id,
        sender=UserSummary.model_validate(message.sender),
        parent_message_id=message.parent_message_id,
        content=message.content,
        type=message.type,
        created_at=as_utc(message.created_at),
        pinned=bool(message.pinned),
        pinned_at=as_utc(message.pinned_at),
        pinned_by=UserSummary.model_validate(message.pinned_by) if message.pinned_by else None,
        deleted=bool(message.deleted),
        attachment=attachment,
        reply_count=summary.reply_count,
        latest_reply=summary.latest_reply,
    )


def serialize_messages(db: Session, messages: Sequence[Message]) -> list[MessageOut]:
    """Serialize a batch, attaching reply summaries to top-level messages."""
    summaries = reply_summaries(db, [m.id for m in messages if not m.is_reply])
    return [
        serialize_message(m, None if m.is_reply else summaries.get(m.id))
        for m in messages
    ]


def get_message(db: Session, message_id: int, *, include_deleted: bool = False) -> Message:
    message = db.execute(
        select(Message).where(Message.id == message_id).options(*MESSAGE_LOAD_OPTIONS)
    ).scalar_one_or_none()
    if message is None or (message.deleted and not include_deleted):
        raise NotFoundError("Message not found")
    return message


def get_message_in_course(db: Session, course_id: int, message_id: int) -> Message:
    message = get_message(db, message_id)
    if message.course_id != course_id:
        raise NotFoundError("Message not found in this course")
    return message


def list_messages(
    db: Session,
    course_id: int,
    *,
    limit: int,
    only_top_level: bool = True,
    parent_message_id: Optional[int] = None,
    after: Optional[Message] = None,
    extra_criteria: Sequence = (),
) -> list[Message]:
    """Visible messages of a course in ``(created_at, id)`` order.

    ``after`` resumes strictly after that row in the total order.
    """
    query = (
        select(Message)
        .where(Message.course_id == course_id, Message.deleted.is_(False), *extra_criteria)
        .options(*MESSAGE_LOAD_OPTIONS)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .limit(limit)
    )
    if parent_message_id is not None:
        query = query.where(Message.parent_message_id == parent_message_id)
    elif only_top_level:
        query = query.where(Message.parent_message_id.is_(None))

    if after is not None:
        query = query.where(
            or_(
                Message.created_at > after.created_at,
                and_(Message.created_at == after.created_at, Message.id > after.id),
            )
        )

    return list(db.execute(query).scalars().all())


def _load_parent(db: Session, course_id: int, parent_message_id: int) -> Message:
    parent = db.get(Message, parent_message_id)
    if parent is None or parent.course_id != course_id:
        raise InvalidParentError("Parent message not found in this course")
    if parent.parent_message_id is not None:
        raise InvalidParentError("Replies can only target top-level messages")
    if parent.deleted:
        raise InvalidParentError("Cannot reply to a deleted message")
    return parent


def _validate_body(content: Optional[str], message_type: MessageType, attachment: Optional[AttachmentIn]) -> None:
    if message_type == MessageType.FILE and attachment is None:
        raise InvalidInputError("File messages require an attachment")
    if message_type == MessageType.TEXT:
        if attachment is not None:
            raise InvalidInputError("Text messages cannot carry an attachment")
        if content is None or not content.strip():
            raise InvalidInputError("Message content is required")


def create_message(
    db: Session,
    *,
    course_id: int,
    sender_id: int,
    content: Optional[str],
    message_type: MessageType,
    parent_message_id: Optional[int] = None,
    attachment: Optional[AttachmentIn] = None,
) -> CreateMessageResult:
    """Persist a message (and its attachment) in one transaction.

    The serialized message and, for replies, the parent's refreshed reply
    summary are computed before commit so callers and subscribers observe the
    same state.
    """
    _validate_body(content, message_type, attachment)

    with atomic(db):
        parent = _load_parent(db, course_id, parent_message_id) if parent_message_id is not None else None

        message = Message(
            course_id=course_id,
            sender_id=sender_id,
            content=content,
            type=message_type,
            parent_message_id=parent.id if parent else None,
        )
        if attachment is not None:
            message.attachment = MessageAttachment(
                file_name=attachment.file_name,
                mime_type=attachment.mime_type,
                size=attachment.size,
                storage_url=attachment.storage_url,
            )
        db.add(message)
        db.flush()

        hydrated = get_message(db, message.id)
        (serialized,) = serialize_messages(db, [hydrated])
        parent_update = build_parent_update(db, parent) if parent else None

    messages_created_total.labels(type=message_type.value, threaded=str(parent is not None).lower()).inc()
    logger.info(
        "message_created",
        extra={"course_id": course_id, "message_id": serialized.id, "user_id": sender_id},
    )
    return CreateMessageResult(message=serialized, parent_update=parent_update)


def create_text_message(
    db: Session,
    *,
    course_id: int,
    sender_id: int,
    content: str,
    parent_message_id: Optional[int] = None,
) -> CreateMessageResult:
    return create_message(
        db,
        course_id=course_id,
        sender_id=sender_id,
        content=content,
        message_type=MessageType.TEXT,
        parent_message_id=parent_message_id,
    )


def create_reply(
    db: Session,
    *,
    course_id: int,
    sender_id: int,
    parent_message_id: int,
    content: str,
) -> CreateMessageResult:
    return create_text_message(
        db,
        course_id=course_id,
        sender_id=sender_id,
        content=content,
        parent_message_id=parent_message_id,
    )


def create_file_message(
    db: Session,
    *,
    course_id: int,
    sender_id: int,
    attachment: AttachmentIn,
    content: Optional[str] = None,
    parent_message_id: Optional[int] = None,
) -> CreateMessageResult:
    return create_message(
        db,
        course_id=course_id,
        sender_id=sender_id,
        content=content if content and content.strip() else None,
        message_type=MessageType.FILE,
        parent_message_id=parent_message_id,
        attachment=attachment,
    )


def mark_deleted(db: Session, message_id: int) -> Message:
    """Apply a moderation soft-delete; the row stays addressable by id."""
    with atomic(db):
        message = get_message(db, message_id, include_deleted=True)
        message.deleted = True
    logger.info("message_soft_deleted", extra={"course_id": message.course_id, "message_id": message_id})
    return message
