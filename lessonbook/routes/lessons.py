# -*- coding: utf-8 -*-
"""
FastAPI routes for lessons.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from lessonbook.auth import Caller, get_current_caller
from lessonbook.database import get_db
from lessonbook.schemas.lesson import (CancelDecision, CancelRequest, LessonCreate, LessonRead,
                                       LessonUpdate, RescheduleDecision, RescheduleRequest)
from lessonbook.services import scheduling

router = APIRouter(
    prefix="/api/v1/lessons",
    tags=["Lessons"],
    responses={404: {"description": "Lesson not found"}},
)


@router.get("", response_model=List[LessonRead])
def read_lessons(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller)
):
    """
    Lists the caller's lessons, optionally within a date range and by status.
    """
    return scheduling.list_lessons(db, caller, start_date=start_date, end_date=end_date, status=status)


@router.get("/{lesson_id}", response_model=LessonRead)
def read_lesson(lesson_id: int, db: Session = Depends(get_db), caller: Caller = Depends(get_current_caller)):
    return scheduling.get_lesson(db, caller, lesson_id)


# --- TEACHER ---
@router.post("", response_model=LessonRead, status_code=status.HTTP_201_CREATED)
def create_lesson(lesson: LessonCreate, db: Session = Depends(get_db),
                  caller: Caller = Depends(get_current_caller)):
    return scheduling.create_lesson(db, caller, lesson)


@router.put("/{lesson_id}", response_model=LessonRead)
def update_lesson(lesson_id: int, lesson_update: LessonUpdate, db: Session = Depends(get_db),
                  caller: Caller = Depends(get_current_caller)):
    return scheduling.update_lesson(db, caller, lesson_id, lesson_update)


@router.post("/{lesson_id}/approve-reschedule", response_model=LessonRead)
def approve_reschedule(lesson_id: int, decision: RescheduleDecision, db: Session = Depends(get_db),
                       caller: Caller = Depends(get_current_caller)):
    return scheduling.approve_reschedule(db, caller, lesson_id, decision.approved, decision.new_date)


@router.post("/{lesson_id}/approve-cancel", response_model=LessonRead)
def approve_cancel(lesson_id: int, decision: CancelDecision, db: Session = Depends(get_db),
                   caller: Caller = Depends(get_current_caller)):
    return scheduling.approve_cancel(db, caller, lesson_id, decision.approved)


@router.post("/{lesson_id}/complete", response_model=LessonRead)
def complete_lesson(lesson_id: int, db: Session = Depends(get_db), caller: Caller = Depends(get_current_caller)):
    return scheduling.complete_lesson(db, caller, lesson_id)


# --- STUDENT ---
@router.post("/{lesson_id}/confirm-attendance", response_model=LessonRead)
def confirm_attendance(lesson_id: int, db: Session = Depends(get_db),
                       caller: Caller = Depends(get_current_caller)):
    return scheduling.confirm_attendance(db, caller, lesson_id)


@router.post("/{lesson_id}/request-reschedule", response_model=LessonRead)
def request_reschedule(lesson_id: int, request: RescheduleRequest, db: Session = Depends(get_db),
                       caller: Caller = Depends(get_current_caller)):
    return scheduling.request_reschedule(db, caller, lesson_id, request.reason, request.new_date)


@router.post("/{lesson_id}/request-cancel", response_model=LessonRead)
def request_cancel(lesson_id: int, request: CancelRequest, db: Session = Depends(get_db),
                   caller: Caller = Depends(get_current_caller)):
    return scheduling.request_cancel(db, caller, lesson_id, request.reason)
