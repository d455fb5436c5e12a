"""File messages.

The binary is stored by the upload service beforehand; this endpoint records
the message together with the descriptor it returned.
"""
from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from coursechat.core.deps import get_broadcaster, get_current_user
from coursechat.db.session import get_db
from coursechat.models.user import User
from coursechat.schemas.message import CreateMessageResult, FileMessageCreate
from coursechat.services.broadcast import CourseBroadcaster
from coursechat.services.membership import check_membership
from coursechat.services.messages import create_file_message
from coursechat.shared.contracts import API_PREFIXES

router = APIRouter(prefix=API_PREFIXES["uploads"], tags=["uploads"])


@router.post("", response_model=CreateMessageResult, status_code=status.HTTP_201_CREATED)
def upload_course_file(
    course_id: int,
    upload_in: FileMessageCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    broadcaster: CourseBroadcaster = Depends(get_broadcaster),
) -> CreateMessageResult:
    check_membership(db, course_id, current_user.id)
    result = create_file_message(
        db,
        course_id=course_id,
        sender_id=current_user.id,
        attachment=upload_in.attachment,
        content=upload_in.content,
        parent_message_id=upload_in.parent_message_id,
    )
    background_tasks.add_task(broadcaster.publish_created, result)
    return result
