"""Keyset pagination and search over course messages.

All scans use the total order ``(created_at, id)`` ascending. A cursor is the
id of the last message of the previous page; it must name a visible message
inside the scanned scope, otherwise ``InvalidCursorError`` is raised.
"""
from __future__ import annotations

from typing import Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from coursechat.core.errors import InvalidCursorError, InvalidInputError
from coursechat.models.message import Message, MessageAttachment
from coursechat.schemas.message import MessagePage
from coursechat.services.messages import get_message_in_course, list_messages, serialize_messages

MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20


def validate_limit(limit: int, max_limit: int = MAX_PAGE_SIZE) -> int:
    if limit < MIN_PAGE_SIZE or limit > max_limit:
        raise InvalidInputError(f"limit must be between {MIN_PAGE_SIZE} and {max_limit}")
    return limit


def _resolve_cursor(
    db: Session,
    course_id: int,
    cursor: Optional[int],
    *,
    parent_message_id: Optional[int] = None,
    top_level_only: bool = False,
) -> Optional[Message]:
    if cursor is None:
        return None
    anchor = db.get(Message, cursor)
    if anchor is None or anchor.deleted or anchor.course_id != course_id:
        raise InvalidCursorError()
    if top_level_only and anchor.parent_message_id is not None:
        raise InvalidCursorError()
    if parent_message_id is not None and anchor.parent_message_id != parent_message_id:
        raise InvalidCursorError()
    return anchor


def _page(db: Session, rows: Sequence[Message], limit: int) -> MessagePage:
    next_cursor = rows[-1].id if len(rows) == limit else None
    return MessagePage(items=serialize_messages(db, rows), next_cursor=next_cursor)


def fetch_page(
    db: Session,
    course_id: int,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    cursor: Optional[int] = None,
    max_limit: int = MAX_PAGE_SIZE,
) -> MessagePage:
    """Top-level channel feed."""
    validate_limit(limit, max_limit)
    anchor = _resolve_cursor(db, course_id, cursor, top_level_only=True)
    rows = list_messages(db, course_id, limit=limit, only_top_level=True, after=anchor)
    return _page(db, rows, limit)


def fetch_replies(
    db: Session,
    course_id: int,
    parent_id: int,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    cursor: Optional[int] = None,
    max_limit: int = MAX_PAGE_SIZE,
) -> MessagePage:
    validate_limit(limit, max_limit)
    get_message_in_course(db, course_id, parent_id)
    anchor = _resolve_cursor(db, course_id, cursor, parent_message_id=parent_id)
    rows = list_messages(db, course_id, limit=limit, parent_message_id=parent_id, after=anchor)
    return _page(db, rows, limit)


def search_messages(
    db: Session,
    course_id: int,
    term: str,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    cursor: Optional[int] = None,
    max_limit: int = MAX_PAGE_SIZE,
) -> MessagePage:
    """Case-insensitive substring match on content or attachment file name."""
    needle = (term or "").strip()
    if not needle:
        raise InvalidInputError("Search term is required")
    validate_limit(limit, max_limit)
    anchor = _resolve_cursor(db, course_id, cursor)

    matching_attachment = (
        select(MessageAttachment.message_id)
        .where(MessageAttachment.file_name.icontains(needle, autoescape=True))
    )
    rows = list_messages(
        db,
        course_id,
        limit=limit,
        only_top_level=False,
        after=anchor,
        extra_criteria=(
            or_(
                Message.content.icontains(needle, autoescape=True),
                Message.id.in_(matching_attachment),
            ),
        ),
    )
    return _page(db, rows, limit)
