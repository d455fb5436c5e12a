"""Pydantic schemas for course messages.

``MessageOut`` is the canonical serialized message: it is built once per
mutation and the same object is returned to the caller and fanned out to
course subscribers.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from coursechat.models.enums import MessageType, Role


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: Role
    department: Optional[str] = None


class AttachmentIn(BaseModel):
    """Descriptor of a file the storage service has already accepted."""

    file_name: str = Field(..., min_length=1, max_length=512)
    mime_type: str = Field(..., min_length=1, max_length=255)
    size: int = Field(..., ge=0)
    storage_url: str = Field(..., min_length=1)


class AttachmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    file_name: str
    mime_type: str
    size: int
    storage_url: str
    download_url: str


class AttachmentDownload(BaseModel):
    message_id: int
    file_name: str
    mime_type: str
    size: int
    url: str


class LatestReply(BaseModel):
    id: int
    sender: UserSummary
    preview: Optional[str] = None
    created_at: datetime


class ReplySummary(BaseModel):
    reply_count: int = 0
    latest_reply: Optional[LatestReply] = None


class MessageOut(BaseModel):
    id: int
    course_id: int
    sender_id: int
    sender: UserSummary
    parent_message_id: Optional[int] = None
    content: Optional[str] = None
    type: MessageType
    created_at: datetime
    pinned: bool = False
    pinned_at: Optional[datetime] = None
    pinned_by: Optional[UserSummary] = None
    deleted: bool = False
    attachment: Optional[AttachmentOut] = None
    reply_count: int = 0
    latest_reply: Optional[LatestReply] = None


class ReplySummaryUpdate(BaseModel):
    course_id: int
    message_id: int
    reply_count: int
    latest_reply: Optional[LatestReply] = None


class CreateMessageResult(BaseModel):
    message: MessageOut
    parent_update: Optional[ReplySummaryUpdate] = None


class MessagePage(BaseModel):
    items: list[MessageOut]
    next_cursor: Optional[int] = None


class PinEvent(BaseModel):
    course_id: int
    message: MessageOut


# Request bodies

class MessageCreate(BaseModel):
    content: str
    parent_message_id: Optional[int] = None


class ReplyCreate(BaseModel):
    content: str


class FileMessageCreate(BaseModel):
    content: Optional[str] = None
    parent_message_id: Optional[int] = None
    attachment: AttachmentIn


# WebSocket frames

class SocketFrame(BaseModel):
    event: str
    ack: Any = None
    data: dict[str, Any] = Field(default_factory=dict)


class SocketMessageIn(BaseModel):
    course_id: int
    content: str = Field(..., min_length=1)
    parent_message_id: Optional[int] = None

    @field_validator("parent_message_id", mode="before")
    @classmethod
    def blank_parent_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value
