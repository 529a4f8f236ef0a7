# -*- coding: utf-8 -*-
"""
Data access for lessons and invoices.

Query helpers shared by the services. Only ``save`` and ``delete`` commit.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from lessonbook.errors import ServerFault
from lessonbook.models.invoice import Invoice
from lessonbook.models.lesson import Lesson, lesson_students

logger = logging.getLogger(__name__)


# --- LESSONS ---
def get_lesson(db: Session, lesson_id: int) -> Optional[Lesson]:
    return db.query(Lesson).options(selectinload(Lesson.students))\
                           .filter(Lesson.id == lesson_id).first()


def find_lessons(
    db: Session,
    teacher_id: Optional[int] = None,
    student_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    statuses: Optional[Iterable[str]] = None,
):
    """
    Lessons ordered by date then id. ``start`` is inclusive, ``end`` exclusive.
    """
    query = db.query(Lesson).options(selectinload(Lesson.students))

    if teacher_id is not None:
        query = query.filter(Lesson.teacher_id == teacher_id)
    if student_id is not None:
        query = query.join(lesson_students, lesson_students.c.lesson_id == Lesson.id)\
                     .filter(lesson_students.c.student_id == student_id)
    if start is not None:
        query = query.filter(Lesson.scheduled_date >= start)
    if end is not None:
        query = query.filter(Lesson.scheduled_date < end)
    if statuses is not None:
        query = query.filter(Lesson.status.in_(list(statuses)))

    return query.order_by(Lesson.scheduled_date.asc(), Lesson.id.asc()).all()


def get_lessons_by_ids(db: Session, lesson_ids):
    if not lesson_ids:
        return []
    return db.query(Lesson).filter(Lesson.id.in_(list(lesson_ids))).all()


# --- INVOICES ---
def get_invoice(db: Session, invoice_id: int) -> Optional[Invoice]:
    return db.query(Invoice).filter(Invoice.id == invoice_id).first()


def find_invoice_by_key(db: Session, student_id: int, teacher_id: int, month: int, year: int) -> Optional[Invoice]:
    return db.query(Invoice).filter(
        Invoice.student_id == student_id,
        Invoice.teacher_id == teacher_id,
        Invoice.month == month,
        Invoice.year == year,
    ).first()


def find_invoices(
    db: Session,
    status: Optional[str] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
    student_id: Optional[int] = None,
    teacher_id: Optional[int] = None,
):
    query = db.query(Invoice)
    if status:
        query = query.filter(Invoice.status == status)
    if month:
        query = query.filter(Invoice.month == month)
    if year:
        query = query.filter(Invoice.year == year)
    if student_id is not None:
        query = query.filter(Invoice.student_id == student_id)
    if teacher_id is not None:
        query = query.filter(Invoice.teacher_id == teacher_id)
    return query.order_by(Invoice.year.desc(), Invoice.month.desc(), Invoice.id.asc()).all()


# --- WRITES ---
def save(db: Session, instance):
    """Commit the session and refresh ``instance``; persistence failures become ServerFault."""
    try:
        db.add(instance)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error saving {type(instance).__name__}: {e}")
        raise ServerFault("Error saving to the database") from e
    db.refresh(instance)
    return instance


def delete(db: Session, instance):
    try:
        db.delete(instance)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting {type(instance).__name__}: {e}")
        raise ServerFault("Error deleting from the database") from e
