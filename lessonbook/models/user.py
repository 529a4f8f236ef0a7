# -*- coding: utf-8 -*-
"""
SQLAlchemy models for people.

A person is one ``users`` row; the role-specific data lives in a separate
profile row chosen by ``role`` (teacher or student). Admins have no profile.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from lessonbook.database import Base


class Role:
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"

    ALL = (STUDENT, TEACHER, ADMIN)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(100), unique=True, index=True, nullable=False)
    username = Column(String(50), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    teacher_profile = relationship("TeacherProfile", back_populates="user", uselist=False,
                                   cascade="all, delete-orphan")
    student_profile = relationship("StudentProfile", back_populates="user", uselist=False,
                                   cascade="all, delete-orphan")

    @property
    def profile(self):
        if self.role == Role.TEACHER:
            return self.teacher_profile
        if self.role == Role.STUDENT:
            return self.student_profile
        return None


class TeacherProfile(Base):
    __tablename__ = "teacher_profiles"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    lesson_rate = Column(Float, nullable=True)  # per lesson, None means not set
    specializations = Column(String(255), nullable=True)

    user = relationship("User", back_populates="teacher_profile")


class StudentProfile(Base):
    __tablename__ = "student_profiles"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    grade = Column(String(50), nullable=True)
    school = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)

    user = relationship("User", back_populates="student_profile")
