# -*- coding: utf-8 -*-
"""
Pydantic schemas for Lesson.

Range checks (duration, student list) are left to the scheduling service so
they answer with the same error whether called over HTTP or directly.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from lessonbook.schemas.user import UserSummary

LessonTypeField = Literal["private", "masterclass", "group"]


class LessonBase(BaseModel):
    type: LessonTypeField
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    scheduled_date: datetime
    duration: int
    location: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = None


class LessonCreate(LessonBase):
    students: List[int]


# Direct edit by the owning teacher, every field optional
class LessonUpdate(BaseModel):
    type: Optional[LessonTypeField] = None
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    duration: Optional[int] = None
    students: Optional[List[int]] = None
    location: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = None


class RescheduleRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
    new_date: Optional[datetime] = None


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class RescheduleDecision(BaseModel):
    approved: bool
    new_date: Optional[datetime] = None


class CancelDecision(BaseModel):
    approved: bool


class PendingChangeRead(BaseModel):
    kind: Literal["reschedule", "cancel"]
    reason: Optional[str] = None
    proposed_date: Optional[datetime] = None
    original_date: Optional[datetime] = None


class LessonRead(LessonBase):
    id: int
    teacher_id: int
    student_ids: List[int]
    status: str
    attendance_confirmed: bool
    reschedule_reason: Optional[str] = None
    cancel_reason: Optional[str] = None
    pending_change: Optional[PendingChangeRead] = None
    teacher: Optional[UserSummary] = None
    students: List[UserSummary] = []

    class Config:
        from_attributes = True
