# -*- coding: utf-8 -*-
"""
SQLAlchemy model for Lesson.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Table, Index
from sqlalchemy.orm import relationship

from lessonbook.database import Base


class LessonType:
    PRIVATE = "private"
    MASTERCLASS = "masterclass"
    GROUP = "group"

    ALL = (PRIVATE, MASTERCLASS, GROUP)


class LessonStatus:
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    RESCHEDULING = "rescheduling"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    ALL = (SCHEDULED, CONFIRMED, RESCHEDULING, CANCELLING, CANCELLED, COMPLETED)
    NEGOTIATING = (RESCHEDULING, CANCELLING)


class PendingKind:
    RESCHEDULE = "reschedule"
    CANCEL = "cancel"


lesson_students = Table(
    "lesson_students",
    Base.metadata,
    Column("lesson_id", Integer, ForeignKey("lessons.id", ondelete="CASCADE"), primary_key=True),
    Column("student_id", Integer, ForeignKey("users.id"), primary_key=True, index=True),
)


class Lesson(Base):
    __tablename__ = "lessons"
    __table_args__ = (
        Index("ix_lessons_teacher_date", "teacher_id", "scheduled_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(20), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    teacher_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    scheduled_date = Column(DateTime, nullable=False, index=True)
    duration = Column(Integer, nullable=False)  # minutes
    status = Column(String(20), nullable=False, default=LessonStatus.SCHEDULED, index=True)
    attendance_confirmed = Column(Boolean, nullable=False, default=False)
    location = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)

    # Kept after the negotiation closes, for audit
    reschedule_reason = Column(String(500), nullable=True)
    cancel_reason = Column(String(500), nullable=True)

    # The open negotiation, set only while status is rescheduling/cancelling
    pending_kind = Column(String(20), nullable=True)
    pending_reason = Column(String(500), nullable=True)
    proposed_date = Column(DateTime, nullable=True)
    original_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    teacher = relationship("User", foreign_keys=[teacher_id])
    students = relationship("User", secondary=lesson_students, order_by="User.id")

    @property
    def student_ids(self):
        return [student.id for student in self.students]

    @property
    def pending_change(self):
        if self.pending_kind is None:
            return None
        return {
            "kind": self.pending_kind,
            "reason": self.pending_reason,
            "proposed_date": self.proposed_date,
            "original_date": self.original_date,
        }

    def is_enrolled(self, user_id):
        return any(student.id == user_id for student in self.students)

    def open_negotiation(self, kind, reason, proposed_date=None):
        self.pending_kind = kind
        self.pending_reason = reason
        self.proposed_date = proposed_date
        self.original_date = self.scheduled_date

    def close_negotiation(self):
        self.pending_kind = None
        self.pending_reason = None
        self.proposed_date = None
        self.original_date = None
