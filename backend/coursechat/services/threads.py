"""Reply summaries for top-level messages.

Counts and latest-reply previews are computed from the message table on every
call; nothing is cached or stored as a running counter.
"""
from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from coursechat.db.base import as_utc
from coursechat.models.message import Message
from coursechat.schemas.message import LatestReply, ReplySummary, ReplySummaryUpdate, UserSummary


def preview_for(message: Message) -> Optional[str]:
    if message.content and message.content.strip():
        return message.content.strip()
    if message.attachment is not None and message.attachment.file_name:
        return message.attachment.file_name
    return None


def _latest_reply(reply: Message) -> LatestReply:
    return LatestReply(
        id=reply.id,
        sender=UserSummary.model_validate(reply.sender),
        preview=preview_for(reply),
        created_at=as_utc(reply.created_at),
    )


def reply_summaries(db: Session, top_level_ids: Iterable[int]) -> dict[int, ReplySummary]:
    ids = sorted({message_id for message_id in top_level_ids if message_id is not None})
    summaries = {message_id: ReplySummary() for message_id in ids}
    if not ids:
        return summaries

    visible_replies = (Message.parent_message_id.in_(ids), Message.deleted.is_(False))

    counts = db.execute(
        select(Message.parent_message_id, func.count(Message.id))
        .where(*visible_replies)
        .group_by(Message.parent_message_id)
    ).all()
    for parent_id, reply_count in counts:
        summaries[parent_id].reply_count = reply_count

    # Latest reply per parent: highest (created_at, id).
    ranked = (
        select(
            Message.id.label("id"),
            func.row_number()
            .over(
                partition_by=Message.parent_message_id,
                order_by=(Message.created_at.desc(), Message.id.desc()),
            )
            .label("rank"),
        )
        .where(*visible_replies)
        .subquery()
    )
    latest = db.execute(
        select(Message)
        .join(ranked, ranked.c.id == Message.id)
        .where(ranked.c.rank == 1)
        .options(selectinload(Message.sender), selectinload(Message.attachment))
    ).scalars().all()
    for reply in latest:
        summaries[reply.parent_message_id].latest_reply = _latest_reply(reply)

    return summaries


def build_parent_update(db: Session, parent: Message) -> ReplySummaryUpdate:
    summary = reply_summaries(db, [parent.id])[parent.id]
    return ReplySummaryUpdate(
        course_id=parent.course_id,
        message_id=parent.id,
        reply_count=summary.reply_count,
        latest_reply=summary.latest_reply,
    )
