# -*- coding: utf-8 -*-
"""
Monthly billing.

``generate_monthly_invoices`` rebuilds the invoices of a period from the
lessons currently on file: billable lessons are split per student, grouped by
(student, teacher) and each group is written over the invoice with the same
(student, teacher, month, year) key. Running it again for the same period
gives the same invoices; it never adds to what is already there.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from lessonbook import stores
from lessonbook.auth import Caller, require_role
from lessonbook.config import config
from lessonbook.directory import Directory, SqlDirectory
from lessonbook.errors import Conflict, Forbidden, InvalidInput, LessonbookError, NotFound, ServerFault
from lessonbook.models.invoice import Invoice, InvoiceStatus
from lessonbook.models.lesson import Lesson
from lessonbook.models.user import Role
from lessonbook.schemas.invoice import InvoiceCreate, InvoiceUpdate

logger = logging.getLogger(__name__)

MIN_YEAR = 2020
MAX_YEAR = 2050

PairKey = Tuple[int, int]


@dataclass
class GenerationResult:
    month: int
    year: int
    invoices: List[Invoice] = field(default_factory=list)
    cleared: List[Invoice] = field(default_factory=list)
    failed: int = 0

    @property
    def generated(self) -> int:
        return len(self.invoices)


# --- PERIOD HELPERS ---
def validate_period(month, year):
    if month is None or year is None:
        raise InvalidInput("Month and year are required")
    if not 1 <= month <= 12:
        raise InvalidInput("Month must be between 1 and 12")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidInput(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")


def billing_period(month: int, year: int) -> Tuple[datetime, datetime]:
    """First instant of the month and first instant of the next one (exclusive)."""
    start = datetime(year, month, 1)
    return start, start + relativedelta(months=1)


def due_date_for(month: int, year: int) -> date:
    """Invoices fall due on INVOICE_DUE_DAY of the month after the period."""
    return date(year, month, 1) + relativedelta(months=1, day=config.INVOICE_DUE_DAY)


def group_by_pair(lessons: List[Lesson]) -> Dict[PairKey, List[Lesson]]:
    """
    Split lessons into one group per (student_id, teacher_id).

    A group lesson with three students lands in three groups. Lessons keep
    the order they came in.
    """
    groups = defaultdict(list)
    for lesson in lessons:
        for student in lesson.students:
            groups[(student.id, lesson.teacher_id)].append(lesson)
    return dict(groups)


def _teacher_rate(directory: Directory, teacher_id: int, cache: Dict[int, float]) -> float:
    if teacher_id not in cache:
        teacher = directory.get_teacher(teacher_id)
        if teacher is None:
            logger.warning(f"Teacher {teacher_id} not found in directory, billing at rate 0")
        cache[teacher_id] = (teacher.lesson_rate if teacher and teacher.lesson_rate else 0.0)
    return cache[teacher_id]


def _require_staff(caller: Caller):
    if caller.role not in Role.ALL:
        raise Forbidden("Unknown role")
    require_role(caller, Role.TEACHER, Role.ADMIN)


def _check_amount(name, value):
    if value is not None and value < 0:
        raise InvalidInput(f"{name} cannot be negative")


# --- RECONCILIATION ---
def _upsert_invoice(db: Session, key: PairKey, month: int, year: int,
                    lessons: List[Lesson], total_amount: float, due_date: date) -> Invoice:
    student_id, teacher_id = key
    invoice = stores.find_invoice_by_key(db, student_id, teacher_id, month, year)

    if invoice is None:
        invoice = Invoice(
            student_id=student_id,
            teacher_id=teacher_id,
            month=month,
            year=year,
            total_amount=total_amount,
            paid_amount=0.0,
            status=InvoiceStatus.PENDING,
            due_date=due_date,
        )
        invoice.lessons = list(lessons)
        db.add(invoice)
        try:
            db.commit()
        except IntegrityError:
            # Someone else inserted the same key since we looked; update theirs
            db.rollback()
            logger.warning(f"Invoice for student {student_id}/teacher {teacher_id} {month}/{year} "
                           f"was created concurrently, updating it instead")
            invoice = stores.find_invoice_by_key(db, student_id, teacher_id, month, year)
            if invoice is None:
                raise Conflict(f"Could not create or find invoice for student {student_id} "
                               f"and teacher {teacher_id} in {month}/{year}")
        else:
            db.refresh(invoice)
            return invoice

    invoice.lessons = list(lessons)
    invoice.total_amount = total_amount
    invoice.due_date = due_date
    db.commit()
    db.refresh(invoice)
    return invoice


def _clear_invoice(db: Session, invoice: Invoice) -> Invoice:
    invoice.lessons = []
    invoice.total_amount = 0.0
    db.commit()
    db.refresh(invoice)
    return invoice


def generate_monthly_invoices(db: Session, caller: Caller, month: Optional[int], year: Optional[int],
                              directory: Directory = None, billable_statuses=None) -> GenerationResult:
    """
    Derive the invoices of ``month``/``year`` from the billable lessons.

    Groups are written one at a time and each commits on its own: a group that
    fails is rolled back, logged and counted in ``failed`` while the rest of
    the batch goes on. Invoices of the period whose pair has no billable
    lesson left are emptied (payment fields untouched) and returned in
    ``cleared``.
    """
    _require_staff(caller)
    validate_period(month, year)
    directory = directory or SqlDirectory(db)
    statuses = tuple(billable_statuses or config.BILLABLE_STATUSES)

    start, end = billing_period(month, year)
    due_date = due_date_for(month, year)
    lessons = stores.find_lessons(db, start=start, end=end, statuses=statuses)
    groups = group_by_pair(lessons)
    logger.info(f"Billing {month:02d}/{year}: {len(lessons)} billable lessons ({', '.join(statuses)}), "
                f"{len(groups)} student/teacher pairs")

    result = GenerationResult(month=month, year=year)
    rates = {}
    for key in sorted(groups):
        group = groups[key]
        try:
            rate = _teacher_rate(directory, key[1], rates)
            total_amount = round(len(group) * rate, 2)
            invoice = _upsert_invoice(db, key, month, year, group, total_amount, due_date)
        except (SQLAlchemyError, LessonbookError) as e:
            db.rollback()
            result.failed += 1
            logger.error(f"Failed to bill student {key[0]}/teacher {key[1]} for {month:02d}/{year}: {e}")
            continue

        result.invoices.append(invoice)
        logger.info(f"-> Invoice {invoice.id}: student {key[0]} | teacher {key[1]} | "
                    f"{len(group)} lessons | {total_amount:.2f} | due {due_date}")

    # Pairs with nothing billable left keep their invoice, emptied
    for invoice in stores.find_invoices(db, month=month, year=year):
        key = (invoice.student_id, invoice.teacher_id)
        if key in groups:
            continue
        try:
            _clear_invoice(db, invoice)
        except (SQLAlchemyError, LessonbookError) as e:
            db.rollback()
            result.failed += 1
            logger.error(f"Failed to clear invoice for student {key[0]}/teacher {key[1]} "
                         f"for {month:02d}/{year}: {e}")
            continue
        result.cleared.append(invoice)
        logger.info(f"-> Invoice {invoice.id}: student {key[0]} | teacher {key[1]} | no billable lessons left")

    logger.info(f"Billing {month:02d}/{year} done: {result.generated} invoices, "
                f"{len(result.cleared)} cleared, {result.failed} failed")
    return result


# --- PAYMENT ---
def mark_as_paid(db: Session, caller: Caller, invoice_id: int, paid_amount: Optional[float] = None,
                 paid_date: Optional[date] = None) -> Invoice:
    """
    Mark an invoice paid. Without an amount the full total is recorded; without
    a date the existing payment date is kept, or today is used.

    Keeping an earlier payment date is deliberate: marking an invoice paid
    twice leaves it exactly as the first call did.
    """
    _require_staff(caller)
    invoice = stores.get_invoice(db, invoice_id)
    if invoice is None:
        raise NotFound("Invoice not found")
    _check_amount("Paid amount", paid_amount)

    invoice.paid_amount = paid_amount if paid_amount is not None else invoice.total_amount
    invoice.paid_date = paid_date or invoice.paid_date or date.today()
    invoice.status = InvoiceStatus.PAID
    stores.save(db, invoice)
    logger.info(f"Invoice {invoice.id} marked as paid ({invoice.paid_amount:.2f} on {invoice.paid_date})")
    return invoice


# --- READS ---
def list_invoices(db: Session, caller: Caller, status: Optional[str] = None, month: Optional[int] = None,
                  year: Optional[int] = None, student_id: Optional[int] = None) -> List[Invoice]:
    if caller.role not in Role.ALL:
        raise Forbidden("Unknown role")
    if status is not None and status not in InvoiceStatus.ALL:
        raise InvalidInput(f"Invalid status '{status}'")

    # Students only ever see their own invoices
    if caller.role == Role.STUDENT:
        student_id = caller.user_id
    return stores.find_invoices(db, status=status, month=month, year=year, student_id=student_id)


def get_invoice(db: Session, caller: Caller, invoice_id: int) -> Invoice:
    if caller.role not in Role.ALL:
        raise Forbidden("Unknown role")
    invoice = stores.get_invoice(db, invoice_id)
    if invoice is None:
        raise NotFound("Invoice not found")
    if caller.role == Role.STUDENT and invoice.student_id != caller.user_id:
        raise Forbidden("You can only view your own invoices")
    return invoice


# --- ADMINISTRATIVE CRUD ---
def _resolve_lessons(db: Session, lesson_ids) -> List[Lesson]:
    ids = sorted(set(lesson_ids or []))
    lessons = stores.get_lessons_by_ids(db, ids)
    if len(lessons) != len(ids):
        raise NotFound("Some lessons not found")
    return lessons


def create_invoice(db: Session, caller: Caller, data: InvoiceCreate, directory: Directory = None) -> Invoice:
    _require_staff(caller)
    directory = directory or SqlDirectory(db)

    validate_period(data.month, data.year)
    _check_amount("Total amount", data.total_amount)
    if directory.get_role(data.student_id) != Role.STUDENT:
        raise NotFound("Student not found")
    if directory.get_teacher(data.teacher_id) is None:
        raise NotFound("Teacher not found")
    lessons = _resolve_lessons(db, data.lessons)

    if stores.find_invoice_by_key(db, data.student_id, data.teacher_id, data.month, data.year):
        raise Conflict("Invoice already exists for this student, teacher and month")

    invoice = Invoice(
        student_id=data.student_id,
        teacher_id=data.teacher_id,
        month=data.month,
        year=data.year,
        total_amount=data.total_amount,
        paid_amount=0.0,
        status=InvoiceStatus.PENDING,
        due_date=data.due_date,
    )
    invoice.lessons = lessons
    db.add(invoice)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise Conflict("Invoice already exists for this student, teacher and month") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating invoice: {e}")
        raise ServerFault("Error saving to the database") from e
    db.refresh(invoice)
    logger.info(f"Invoice {invoice.id} created manually by user {caller.user_id}")
    return invoice


def update_invoice(db: Session, caller: Caller, invoice_id: int, data: InvoiceUpdate) -> Invoice:
    _require_staff(caller)
    invoice = stores.get_invoice(db, invoice_id)
    if invoice is None:
        raise NotFound("Invoice not found")

    changes = data.model_dump(exclude_unset=True)
    for required in ("total_amount", "paid_amount", "due_date", "status", "lessons"):
        if required in changes and changes[required] is None:
            raise InvalidInput(f"'{required}' cannot be empty")
    _check_amount("Total amount", changes.get("total_amount"))
    _check_amount("Paid amount", changes.get("paid_amount"))
    if "status" in changes and changes["status"] not in InvoiceStatus.ALL:
        raise InvalidInput(f"Invalid status '{changes['status']}'")

    lessons = None
    if "lessons" in changes:
        lessons = _resolve_lessons(db, changes.pop("lessons"))

    for key, value in changes.items():
        setattr(invoice, key, value)
    if lessons is not None:
        invoice.lessons = lessons

    stores.save(db, invoice)
    logger.info(f"Invoice {invoice.id} updated by user {caller.user_id}")
    return invoice


def delete_invoice(db: Session, caller: Caller, invoice_id: int):
    _require_staff(caller)
    invoice = stores.get_invoice(db, invoice_id)
    if invoice is None:
        raise NotFound("Invoice not found")
    stores.delete(db, invoice)
    logger.info(f"Invoice {invoice_id} deleted by user {caller.user_id}")
