"""
Shared fixtures: an in-memory database seeded with a few people, callers
for each of them and an API client bound to the same session.
"""

import os
from datetime import datetime
from types import SimpleNamespace

# Must be set before lessonbook.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BILLABLE_STATUSES"] = "completed"
os.environ["INVOICE_DUE_DAY"] = "15"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lessonbook import models  # noqa: F401
from lessonbook.auth import Caller, create_access_token
from lessonbook.database import Base, get_db
from lessonbook.models.lesson import LessonStatus
from lessonbook.models.user import Role, StudentProfile, TeacherProfile, User
from lessonbook.schemas.lesson import LessonCreate
from lessonbook.services import scheduling

TEACHER_ID = 1
UNRATED_TEACHER_ID = 2
STUDENT_ID = 10
OTHER_STUDENT_ID = 11
OUTSIDER_ID = 12
ADMIN_ID = 99


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    _seed_people(session)
    yield session
    session.close()


def _person(user_id, role, first_name, **profile):
    user = User(
        id=user_id,
        email=f"{first_name.lower()}@example.com",
        username=first_name.lower(),
        first_name=first_name,
        last_name="Test",
        role=role,
    )
    if role == Role.TEACHER:
        user.teacher_profile = TeacherProfile(**profile)
    elif role == Role.STUDENT:
        user.student_profile = StudentProfile(**profile)
    return user


def _seed_people(session):
    session.add_all([
        _person(TEACHER_ID, Role.TEACHER, "Tereza", lesson_rate=50.0, specializations="piano"),
        _person(UNRATED_TEACHER_ID, Role.TEACHER, "Ugo", lesson_rate=None),
        _person(STUDENT_ID, Role.STUDENT, "Sofia", grade="5", school="Central"),
        _person(OTHER_STUDENT_ID, Role.STUDENT, "Otto"),
        _person(OUTSIDER_ID, Role.STUDENT, "Olga"),
        _person(ADMIN_ID, Role.ADMIN, "Ada"),
    ])
    session.commit()


@pytest.fixture
def callers():
    return SimpleNamespace(
        teacher=Caller(TEACHER_ID, Role.TEACHER),
        unrated_teacher=Caller(UNRATED_TEACHER_ID, Role.TEACHER),
        student=Caller(STUDENT_ID, Role.STUDENT),
        other_student=Caller(OTHER_STUDENT_ID, Role.STUDENT),
        outsider=Caller(OUTSIDER_ID, Role.STUDENT),
        admin=Caller(ADMIN_ID, Role.ADMIN),
    )


@pytest.fixture
def make_lesson(db, callers):
    """Create a lesson through the service; ``status`` is forced afterwards if given."""

    def _make(when=datetime(2024, 3, 5, 10, 0), students=(STUDENT_ID,), teacher=None,
              duration=60, status=None, lesson_type="private", title="Piano"):
        lesson = scheduling.create_lesson(db, teacher or callers.teacher, LessonCreate(
            type=lesson_type,
            title=title,
            students=list(students),
            scheduled_date=when,
            duration=duration,
        ))
        if status is not None and status != LessonStatus.SCHEDULED:
            lesson.status = status
            db.commit()
            db.refresh(lesson)
        return lesson

    return _make


@pytest.fixture
def client(db):
    from main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers(user_id, role):
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}
