# -*- coding: utf-8 -*-
"""
Lesson lifecycle.

Students enrolled in a lesson may confirm it or ask to reschedule/cancel it;
the owning teacher approves or denies those requests and may edit the lesson
directly while no request is open.

    scheduled --confirm--------------> confirmed
    scheduled --request_reschedule---> rescheduling --approve/deny--> scheduled
    scheduled --request_cancel-------> cancelling --approve--> cancelled
                                                  --deny-----> scheduled
    scheduled/confirmed --complete---> completed

Every check (caller, ownership, input, current status) runs before the lesson
is touched, so a rejected call never leaves a partial change behind.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from lessonbook import stores
from lessonbook.auth import Caller, require_role
from lessonbook.config import config
from lessonbook.directory import Directory, SqlDirectory
from lessonbook.errors import Forbidden, InvalidInput, InvalidTransition, NotFound
from lessonbook.models.lesson import Lesson, LessonStatus, LessonType, PendingKind
from lessonbook.models.user import Role, User
from lessonbook.schemas.lesson import LessonCreate, LessonUpdate

logger = logging.getLogger(__name__)


# --- VALIDATION HELPERS ---
def validate_duration(duration):
    if duration is None or not (config.LESSON_MIN_DURATION <= duration <= config.LESSON_MAX_DURATION):
        raise InvalidInput(
            f"Duration must be between {config.LESSON_MIN_DURATION} and "
            f"{config.LESSON_MAX_DURATION} minutes"
        )


def _validate_type(lesson_type):
    if lesson_type not in LessonType.ALL:
        raise InvalidInput(f"Invalid lesson type '{lesson_type}'")


def _validate_reason(reason):
    if reason is None or not reason.strip():
        raise InvalidInput("A reason is required")
    return reason.strip()


def _resolve_students(db: Session, directory: Directory, student_ids) -> List[User]:
    """Check every id is a known student and return the User rows, in id order."""
    if not student_ids:
        raise InvalidInput("A lesson needs at least one student")

    ids = sorted(set(student_ids))
    for student_id in ids:
        role = directory.get_role(student_id)
        if role is None:
            raise NotFound(f"Student {student_id} not found")
        if role != Role.STUDENT:
            raise InvalidInput(f"User {student_id} is not a student")

    # The directory vouches for the roles; the association needs the ORM rows,
    # so an injected directory must describe the same users table.
    students = db.query(User).filter(User.id.in_(ids)).order_by(User.id).all()
    if len(students) != len(ids):
        missing = sorted(set(ids) - {student.id for student in students})
        raise NotFound(f"Student {missing[0]} not found")
    return students


# --- AUTHORIZATION HELPERS ---
def _check_caller(caller: Caller):
    if caller.role not in Role.ALL:
        raise Forbidden("Unknown role")


def _load(db: Session, lesson_id: int) -> Lesson:
    lesson = stores.get_lesson(db, lesson_id)
    if lesson is None:
        raise NotFound("Lesson not found")
    return lesson


def _load_as_student(db: Session, caller: Caller, lesson_id: int, action: str) -> Lesson:
    _check_caller(caller)
    lesson = _load(db, lesson_id)
    if caller.role != Role.STUDENT or not lesson.is_enrolled(caller.user_id):
        raise Forbidden(f"Only enrolled students can {action}")
    return lesson


def _load_as_owner(db: Session, caller: Caller, lesson_id: int, action: str) -> Lesson:
    _check_caller(caller)
    lesson = _load(db, lesson_id)
    if caller.role != Role.TEACHER or lesson.teacher_id != caller.user_id:
        raise Forbidden(f"Only the assigned teacher can {action}")
    return lesson


def _ensure_status(lesson: Lesson, action: str, *allowed):
    if lesson.status not in allowed:
        raise InvalidTransition(action, lesson.status)


def _transition(db: Session, lesson: Lesson, caller: Caller, new_status: str) -> Lesson:
    old_status = lesson.status
    lesson.status = new_status
    stores.save(db, lesson)
    logger.info(f"Lesson {lesson.id}: {old_status} -> {new_status} by user {caller.user_id}")
    return lesson


# --- READS ---
def get_lesson(db: Session, caller: Caller, lesson_id: int) -> Lesson:
    _check_caller(caller)
    lesson = _load(db, lesson_id)

    has_access = (
        caller.role == Role.ADMIN
        or (caller.role == Role.TEACHER and lesson.teacher_id == caller.user_id)
        or (caller.role == Role.STUDENT and lesson.is_enrolled(caller.user_id))
    )
    if not has_access:
        raise Forbidden("Access denied")
    return lesson


def list_lessons(
    db: Session,
    caller: Caller,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: Optional[str] = None,
) -> List[Lesson]:
    """
    Lessons visible to the caller: students see the lessons they are enrolled
    in, teachers their own, admins everything. Both dates are inclusive.
    """
    _check_caller(caller)
    if status is not None and status not in LessonStatus.ALL:
        raise InvalidInput(f"Invalid status '{status}'")

    start = datetime.combine(start_date, time.min) if start_date else None
    end = datetime.combine(end_date + timedelta(days=1), time.min) if end_date else None

    return stores.find_lessons(
        db,
        teacher_id=caller.user_id if caller.role == Role.TEACHER else None,
        student_id=caller.user_id if caller.role == Role.STUDENT else None,
        start=start,
        end=end,
        statuses=[status] if status else None,
    )


# --- TEACHER: CREATE / EDIT ---
def create_lesson(db: Session, caller: Caller, data: LessonCreate, directory: Directory = None) -> Lesson:
    _check_caller(caller)
    require_role(caller, Role.TEACHER)
    directory = directory or SqlDirectory(db)

    _validate_type(data.type)
    validate_duration(data.duration)
    students = _resolve_students(db, directory, data.students)

    lesson = Lesson(
        type=data.type,
        title=data.title,
        description=data.description,
        teacher_id=caller.user_id,
        scheduled_date=data.scheduled_date,
        duration=data.duration,
        location=data.location,
        notes=data.notes,
        status=LessonStatus.SCHEDULED,
        attendance_confirmed=False,
    )
    lesson.students = students
    stores.save(db, lesson)
    logger.info(f"Lesson {lesson.id} created by teacher {caller.user_id} for students {lesson.student_ids}")
    return lesson


def update_lesson(db: Session, caller: Caller, lesson_id: int, data: LessonUpdate,
                  directory: Directory = None) -> Lesson:
    """
    Direct edit by the owning teacher. Refused while a reschedule or cancel
    request is open; the teacher has to answer it first.
    """
    lesson = _load_as_owner(db, caller, lesson_id, "edit this lesson")
    directory = directory or SqlDirectory(db)

    changes = data.model_dump(exclude_unset=True)
    for required in ("type", "title", "scheduled_date", "duration", "students"):
        if required in changes and changes[required] is None:
            raise InvalidInput(f"'{required}' cannot be empty")

    if "type" in changes:
        _validate_type(changes["type"])
    if "duration" in changes:
        validate_duration(changes["duration"])
    students = None
    if "students" in changes:
        students = _resolve_students(db, directory, changes.pop("students"))

    if lesson.status in LessonStatus.NEGOTIATING:
        raise InvalidTransition("edit", lesson.status)

    for key, value in changes.items():
        setattr(lesson, key, value)
    if students is not None:
        lesson.students = students

    stores.save(db, lesson)
    logger.info(f"Lesson {lesson.id} edited by teacher {caller.user_id}: {sorted(data.model_fields_set)}")
    return lesson


# --- STUDENT REQUESTS ---
def confirm_attendance(db: Session, caller: Caller, lesson_id: int) -> Lesson:
    lesson = _load_as_student(db, caller, lesson_id, "confirm attendance")
    _ensure_status(lesson, "confirm", LessonStatus.SCHEDULED)

    lesson.attendance_confirmed = True
    return _transition(db, lesson, caller, LessonStatus.CONFIRMED)


def request_reschedule(db: Session, caller: Caller, lesson_id: int, reason: str,
                       new_date: Optional[datetime] = None) -> Lesson:
    """
    Open a reschedule request. A proposed date is applied to the lesson right
    away; the date it replaces is kept so a denial can put it back.
    """
    lesson = _load_as_student(db, caller, lesson_id, "request a reschedule")
    reason = _validate_reason(reason)
    _ensure_status(lesson, "reschedule", LessonStatus.SCHEDULED)

    lesson.open_negotiation(PendingKind.RESCHEDULE, reason, proposed_date=new_date)
    lesson.reschedule_reason = reason
    if new_date is not None:
        lesson.scheduled_date = new_date
    return _transition(db, lesson, caller, LessonStatus.RESCHEDULING)


def request_cancel(db: Session, caller: Caller, lesson_id: int, reason: str) -> Lesson:
    lesson = _load_as_student(db, caller, lesson_id, "request a cancellation")
    reason = _validate_reason(reason)
    _ensure_status(lesson, "cancel", LessonStatus.SCHEDULED)

    lesson.open_negotiation(PendingKind.CANCEL, reason)
    lesson.cancel_reason = reason
    return _transition(db, lesson, caller, LessonStatus.CANCELLING)


# --- TEACHER DECISIONS ---
def approve_reschedule(db: Session, caller: Caller, lesson_id: int, approved: bool,
                       new_date: Optional[datetime] = None) -> Lesson:
    lesson = _load_as_owner(db, caller, lesson_id, "approve a reschedule")
    _ensure_status(lesson, "answer a reschedule request for", LessonStatus.RESCHEDULING)

    if approved:
        if new_date is not None:
            lesson.scheduled_date = new_date
    elif lesson.original_date is not None:
        lesson.scheduled_date = lesson.original_date

    lesson.close_negotiation()
    logger.info(f"Reschedule of lesson {lesson.id} {'approved' if approved else 'denied'}")
    return _transition(db, lesson, caller, LessonStatus.SCHEDULED)


def approve_cancel(db: Session, caller: Caller, lesson_id: int, approved: bool) -> Lesson:
    lesson = _load_as_owner(db, caller, lesson_id, "approve a cancellation")
    _ensure_status(lesson, "answer a cancellation request for", LessonStatus.CANCELLING)

    # cancel_reason stays on the lesson either way
    lesson.close_negotiation()
    logger.info(f"Cancellation of lesson {lesson.id} {'approved' if approved else 'denied'}")
    return _transition(db, lesson, caller, LessonStatus.CANCELLED if approved else LessonStatus.SCHEDULED)


def complete_lesson(db: Session, caller: Caller, lesson_id: int) -> Lesson:
    lesson = _load_as_owner(db, caller, lesson_id, "complete this lesson")
    _ensure_status(lesson, "complete", LessonStatus.SCHEDULED, LessonStatus.CONFIRMED)
    return _transition(db, lesson, caller, LessonStatus.COMPLETED)
