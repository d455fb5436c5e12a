"""Course and enrollment tables.

Both are administered by the course service; the messaging core only reads
them to answer membership questions and to lock a course during pin swaps.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, List

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coursechat.db.base import Base, CreatedAtMixin, IDMixin

if TYPE_CHECKING:
    from coursechat.models.user import User


class Course(IDMixin, CreatedAtMixin, Base):
    __tablename__ = "courses"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    lecturer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    lecturer: Mapped["User"] = relationship(foreign_keys=[lecturer_id])
    enrollments: Mapped[List["CourseEnrollment"]] = relationship(
        back_populates="course", cascade="all, delete-orphan"
    )


class CourseEnrollment(IDMixin, CreatedAtMixin, Base):
    __tablename__ = "course_enrollments"
    __table_args__ = (UniqueConstraint("course_id", "user_id", name="uq_course_enrollments_course_user"),)

    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    course: Mapped["Course"] = relationship(back_populates="enrollments")
