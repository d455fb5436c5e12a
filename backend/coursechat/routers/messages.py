from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from coursechat.core.deps import get_broadcaster, get_current_user, get_settings
from coursechat.core.errors import NotFoundError
from coursechat.core.settings import Settings
from coursechat.db.session import get_db
from coursechat.models.enums import Role
from coursechat.models.user import User
from coursechat.schemas.message import (
    AttachmentDownload,
    CreateMessageResult,
    MessageCreate,
    MessageOut,
    MessagePage,
    ReplyCreate,
)
from coursechat.services import messages as message_store
from coursechat.services import pagination, pins
from coursechat.services.broadcast import CourseBroadcaster
from coursechat.services.membership import check_membership, ensure_course_exists, require_lecturer
from coursechat.shared.contracts import API_PREFIXES

router = APIRouter(prefix=API_PREFIXES["messages"], tags=["messages"])


def _require_reader(db: Session, course_id: int, user: User) -> None:
    # Admins may read any existing course without being a member.
    if user.role == Role.ADMIN:
        ensure_course_exists(db, course_id)
    else:
        check_membership(db, course_id, user.id)


@router.get("", response_model=MessagePage)
def list_course_messages(
    course_id: int,
    limit: Optional[int] = Query(None, description="Page size, 1-100"),
    cursor: Optional[int] = Query(None, description="Id of the last message of the previous page"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> MessagePage:
    check_membership(db, course_id, current_user.id)
    return pagination.fetch_page(
        db,
        course_id,
        limit=settings.messages_default_page_size if limit is None else limit,
        cursor=cursor,
        max_limit=settings.messages_max_page_size,
    )


@router.get("/search", response_model=MessagePage)
def search_course_messages(
    course_id: int,
    q: str = Query("", description="Case-insensitive search term"),
    limit: Optional[int] = Query(None),
    cursor: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> MessagePage:
    _require_reader(db, course_id, current_user)
    return pagination.search_messages(
        db,
        course_id,
        q,
        limit=settings.messages_default_page_size if limit is None else limit,
        cursor=cursor,
        max_limit=settings.messages_max_page_size,
    )


@router.post("", response_model=CreateMessageResult, status_code=status.HTTP_201_CREATED)
def create_course_message(
    course_id: int,
    message_in: MessageCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    broadcaster: CourseBroadcaster = Depends(get_broadcaster),
) -> CreateMessageResult:
    check_membership(db, course_id, current_user.id)
    result = message_store.create_text_message(
        db,
        course_id=course_id,
        sender_id=current_user.id,
        content=message_in.content,
        parent_message_id=message_in.parent_message_id,
    )
    background_tasks.add_task(broadcaster.publish_created, result)
    return result


@router.get("/{message_id}", response_model=MessageOut)
def get_course_message(
    course_id: int,
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageOut:
    check_membership(db, course_id, current_user.id)
    message = message_store.get_message_in_course(db, course_id, message_id)
    (serialized,) = message_store.serialize_messages(db, [message])
    return serialized


@router.get("/{message_id}/replies", response_model=MessagePage)
def list_message_replies(
    course_id: int,
    message_id: int,
    limit: Optional[int] = Query(None),
    cursor: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> MessagePage:
    check_membership(db, course_id, current_user.id)
    return pagination.fetch_replies(
        db,
        course_id,
        message_id,
        limit=settings.messages_default_page_size if limit is None else limit,
        cursor=cursor,
        max_limit=settings.messages_max_page_size,
    )


@router.post("/{message_id}/replies", response_model=CreateMessageResult, status_code=status.HTTP_201_CREATED)
def create_message_reply(
    course_id: int,
    message_id: int,
    reply_in: ReplyCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    broadcaster: CourseBroadcaster = Depends(get_broadcaster),
) -> CreateMessageResult:
    check_membership(db, course_id, current_user.id)
    result = message_store.create_reply(
        db,
        course_id=course_id,
        sender_id=current_user.id,
        parent_message_id=message_id,
        content=reply_in.content,
    )
    background_tasks.add_task(broadcaster.publish_created, result)
    return result


@router.get("/{message_id}/attachment", response_model=AttachmentDownload)
def get_message_attachment(
    course_id: int,
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> AttachmentDownload:
    _require_reader(db, course_id, current_user)
    message = message_store.get_message_in_course(db, course_id, message_id)
    if message.attachment is None:
        raise NotFoundError("Message has no attachment")
    return AttachmentDownload(
        message_id=message.id,
        file_name=message.attachment.file_name,
        mime_type=message.attachment.mime_type,
        size=message.attachment.size,
        url=message.attachment.storage_url,
    )


@router.post("/{message_id}/pin", response_model=MessageOut)
def pin_course_message(
    course_id: int,
    message_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    broadcaster: CourseBroadcaster = Depends(get_broadcaster),
) -> MessageOut:
    require_lecturer(db, course_id, current_user.id, action="pin messages")
    message = pins.pin_message(db, course_id=course_id, message_id=message_id, actor_id=current_user.id)
    background_tasks.add_task(broadcaster.publish_pinned, course_id, message)
    return message


@router.delete("/{message_id}/pin", response_model=MessageOut)
def unpin_course_message(
    course_id: int,
    message_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    broadcaster: CourseBroadcaster = Depends(get_broadcaster),
) -> MessageOut:
    require_lecturer(db, course_id, current_user.id, action="unpin messages")
    message = pins.unpin_message(db, course_id=course_id, message_id=message_id)
    background_tasks.add_task(broadcaster.publish_unpinned, course_id, message)
    return message
