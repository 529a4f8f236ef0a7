# -*- coding: utf-8 -*-
"""
Read-only lookups against the people directory.

The services depend on the ``Directory`` protocol only; ``SqlDirectory`` is
the implementation backed by the ``users`` and profile tables. Managing people
is not done here.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy.orm import Session, joinedload

from lessonbook.models.user import User, Role


@dataclass(frozen=True)
class TeacherEntry:
    id: int
    role: str
    lesson_rate: Optional[float]


class Directory(Protocol):
    def get_role(self, user_id: int) -> Optional[str]:
        ...

    def get_teacher(self, teacher_id: int) -> Optional[TeacherEntry]:
        ...


class SqlDirectory:
    def __init__(self, db: Session):
        self.db = db

    def get_role(self, user_id: int) -> Optional[str]:
        user = self.db.query(User).filter(User.id == user_id).first()
        return user.role if user else None

    def get_teacher(self, teacher_id: int) -> Optional[TeacherEntry]:
        user = self.db.query(User).options(joinedload(User.teacher_profile))\
                                  .filter(User.id == teacher_id, User.role == Role.TEACHER).first()
        if user is None:
            return None
        rate = user.teacher_profile.lesson_rate if user.teacher_profile else None
        return TeacherEntry(id=user.id, role=user.role, lesson_rate=rate)
