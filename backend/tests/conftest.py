"""Shared fixtures: in-memory SQLite, a seeded course and an app client."""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from coursechat.core.security import create_access_token
from coursechat.core.settings import Settings
from coursechat.db.session import build_session_factory
from coursechat.main import create_app
from coursechat.models import Base, Course, CourseEnrollment, Message, MessageAttachment, MessageType, Role, User

BASE_TIME = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        jwt_secret="test-secret",
        log_level="WARNING",
        broadcast_send_timeout_seconds=0.5,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = build_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()


def _user(db: Session, name: str, role: Role, *, is_banned: bool = False) -> User:
    user = User(
        name=name,
        email=f"{name.lower().replace(' ', '.')}@campus.edu",
        role=role,
        department="Computer Science",
        is_banned=is_banned,
    )
    db.add(user)
    return user


@pytest.fixture
def users(db: Session):
    """Lecturer, two students, an outsider, an admin and a banned student."""
    seeded = {
        "lecturer": _user(db, "Ada Lecturer", Role.LECTURER),
        "student": _user(db, "Sam Student", Role.STUDENT),
        "student2": _user(db, "Kim Student", Role.STUDENT),
        "outsider": _user(db, "Olly Outsider", Role.STUDENT),
        "admin": _user(db, "Ari Admin", Role.ADMIN),
        "banned": _user(db, "Ben Banned", Role.STUDENT, is_banned=True),
    }
    db.commit()
    return seeded


@pytest.fixture
def course(db: Session, users) -> Course:
    course = Course(title="Distributed Systems", lecturer_id=users["lecturer"].id)
    db.add(course)
    db.flush()
    for key in ("student", "student2", "banned"):
        db.add(CourseEnrollment(course_id=course.id, user_id=users[key].id))
    db.commit()
    return course


@pytest.fixture
def other_course(db: Session, users) -> Course:
    """A second course taught by the same lecturer; only the outsider is enrolled."""
    course = Course(title="Compilers", lecturer_id=users["lecturer"].id)
    db.add(course)
    db.flush()
    db.add(CourseEnrollment(course_id=course.id, user_id=users["outsider"].id))
    db.commit()
    return course


@pytest.fixture
def make_message(db: Session):
    """Insert a message row directly, with an explicit timestamp."""

    def _make(
        course: Course,
        sender: User,
        content: str = "hello",
        *,
        minutes: int = 0,
        parent: Message = None,
        deleted: bool = False,
        pinned: bool = False,
        attachment_name: str = None,
    ) -> Message:
        message = Message(
            course_id=course.id,
            sender_id=sender.id,
            content=content,
            type=MessageType.FILE if attachment_name else MessageType.TEXT,
            parent_message_id=parent.id if parent is not None else None,
            created_at=BASE_TIME + timedelta(minutes=minutes),
            deleted=deleted,
            pinned=pinned,
        )
        if attachment_name:
            message.attachment = MessageAttachment(
                file_name=attachment_name,
                mime_type="application/pdf",
                size=2048,
                storage_url=f"https://files.campus.edu/{attachment_name}",
            )
        db.add(message)
        db.commit()
        return message

    return _make


@pytest.fixture
def app(settings, engine):
    return create_app(settings, engine)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def token_for(settings):
    def _token(user: User) -> str:
        return create_access_token({"sub": str(user.id)}, settings=settings)

    return _token


@pytest.fixture
def auth(token_for):
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {token_for(user)}"}

    return _headers
