# -*- coding: utf-8 -*-
"""
SQLAlchemy model for Invoice.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, Date, DateTime, ForeignKey, Table, UniqueConstraint
from sqlalchemy.orm import relationship

from lessonbook.database import Base
from lessonbook.models.lesson import Lesson


class InvoiceStatus:
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"

    ALL = (PENDING, PAID, OVERDUE)


invoice_lessons = Table(
    "invoice_lessons",
    Base.metadata,
    Column("invoice_id", Integer, ForeignKey("invoices.id", ondelete="CASCADE"), primary_key=True),
    Column("lesson_id", Integer, ForeignKey("lessons.id"), primary_key=True),
)


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        # One invoice per student/teacher pair and billing period
        UniqueConstraint("student_id", "teacher_id", "month", "year", name="uq_invoice_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    teacher_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    total_amount = Column(Float, nullable=False, default=0.0)
    paid_amount = Column(Float, nullable=False, default=0.0)
    status = Column(String(20), nullable=False, default=InvoiceStatus.PENDING, index=True)
    due_date = Column(Date, nullable=False, index=True)
    paid_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    student = relationship("User", foreign_keys=[student_id])
    teacher = relationship("User", foreign_keys=[teacher_id])
    lessons = relationship("Lesson", secondary=invoice_lessons,
                           order_by=[Lesson.scheduled_date, Lesson.id])

    @property
    def lesson_ids(self):
        return [lesson.id for lesson in self.lessons]
