"""Course membership checks over the course service's tables."""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from coursechat.core.errors import ForbiddenError, NotFoundError
from coursechat.models.course import Course, CourseEnrollment


@dataclass(frozen=True)
class Membership:
    is_lecturer: bool
    is_enrolled: bool


def ensure_course_exists(db: Session, course_id: int) -> Course:
    course = db.get(Course, course_id)
    if course is None:
        raise NotFoundError("Course not found")
    return course


def check_membership(db: Session, course_id: int, user_id: int) -> Membership:
    course = ensure_course_exists(db, course_id)
    is_lecturer = course.lecturer_id == user_id
    is_enrolled = db.scalar(
        select(
            exists().where(
                CourseEnrollment.course_id == course_id,
                CourseEnrollment.user_id == user_id,
            )
        )
    )
    if not is_lecturer and not is_enrolled:
        raise ForbiddenError("You are not a member of this course")
    return Membership(is_lecturer=is_lecturer, is_enrolled=bool(is_enrolled))


def require_lecturer(db: Session, course_id: int, user_id: int, *, action: str = "pin messages") -> Membership:
    membership = check_membership(db, course_id, user_id)
    if not membership.is_lecturer:
        raise ForbiddenError(f"Only the course lecturer can {action}")
    return membership


def course_ids_for_user(db: Session, user_id: int) -> list[int]:
    """Courses the user teaches or is enrolled in, ascending."""
    teaching = select(Course.id).where(Course.lecturer_id == user_id)
    enrolled = select(CourseEnrollment.course_id).where(CourseEnrollment.user_id == user_id)
    rows = db.execute(teaching.union(enrolled)).scalars().all()
    return sorted(set(rows))
