"""Import all models so SQLAlchemy metadata is fully registered."""

from coursechat.db.base import Base

from coursechat.models.course import Course, CourseEnrollment
from coursechat.models.enums import MessageType, Role
from coursechat.models.message import Message, MessageAttachment
from coursechat.models.user import User

__all__ = [
    "Base",
    "Course",
    "CourseEnrollment",
    "Message",
    "MessageAttachment",
    "MessageType",
    "Role",
    "User",
]
