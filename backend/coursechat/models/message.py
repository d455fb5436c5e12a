from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Enum, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coursechat.db.base import Base, CreatedAtMixin, IDMixin
from coursechat.models.enums import MessageType

if TYPE_CHECKING:
    from coursechat.models.course import Course
    from coursechat.models.user import User


class Message(IDMixin, CreatedAtMixin, Base):
    """One post in a course channel; replies point at a top-level message."""

    __tablename__ = "course_messages"
    __table_args__ = (
        Index("ix_course_messages_course_created", "course_id", "created_at", "id"),
        Index("ix_course_messages_course_parent", "course_id", "parent_message_id"),
        # At most one pinned row per course.
        Index(
            "uq_course_messages_pinned_per_course",
            "course_id",
            unique=True,
            postgresql_where=text("pinned IS TRUE"),
            sqlite_where=text("pinned = 1"),
        ),
    )

    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    sender_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    parent_message_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("course_messages.id"), nullable=True, index=True
    )

    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[MessageType] = mapped_column(
        Enum(MessageType, name="message_type"), nullable=False, default=MessageType.TEXT
    )

    # Pin state
    pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pinned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    pinned_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)

    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)

    course: Mapped["Course"] = relationship(foreign_keys=[course_id])
    sender: Mapped["User"] = relationship(foreign_keys=[sender_id])
    pinned_by: Mapped[Optional["User"]] = relationship(foreign_keys=[pinned_by_id])
    attachment: Mapped[Optional["MessageAttachment"]] = relationship(
        back_populates="message", uselist=False, cascade="all, delete-orphan"
    )

    parent: Mapped[Optional["Message"]] = relationship(
        remote_side="Message.id",
        foreign_keys=[parent_message_id],
        back_populates="replies",
    )
    replies: Mapped[List["Message"]] = relationship(
        back_populates="parent",
        foreign_keys=[parent_message_id],
    )

    @property
    def is_reply(self) -> bool:
        return self.parent_message_id is not None

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, course_id={self.course_id}, type={self.type}, parent={self.parent_message_id})>"


class MessageAttachment(IDMixin, Base):
    __tablename__ = "message_attachments"

    message_id: Mapped[int] = mapped_column(
        ForeignKey("course_messages.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    storage_url: Mapped[str] = mapped_column(Text, nullable=False)

    message: Mapped["Message"] = relationship(back_populates="attachment")
