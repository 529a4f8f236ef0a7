# -*- coding: utf-8 -*-
"""
Pydantic schemas for Invoice and the monthly generation endpoint.
"""

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel

from lessonbook.schemas.user import UserSummary

InvoiceStatusField = Literal["pending", "paid", "overdue"]


class InvoiceCreate(BaseModel):
    student_id: int
    teacher_id: int
    month: int
    year: int
    lessons: List[int] = []
    total_amount: float
    due_date: date


class InvoiceUpdate(BaseModel):
    total_amount: Optional[float] = None
    due_date: Optional[date] = None
    status: Optional[InvoiceStatusField] = None
    paid_amount: Optional[float] = None
    paid_date: Optional[date] = None
    lessons: Optional[List[int]] = None


class MarkPaidRequest(BaseModel):
    paid_amount: Optional[float] = None
    paid_date: Optional[date] = None


# month/year are optional here so a missing value gets the service's 400
class GenerateRequest(BaseModel):
    month: Optional[int] = None
    year: Optional[int] = None


class InvoiceLessonRead(BaseModel):
    id: int
    title: str
    scheduled_date: datetime
    duration: int
    status: str

    class Config:
        from_attributes = True


class InvoiceRead(BaseModel):
    id: int
    student_id: int
    teacher_id: int
    month: int
    year: int
    lesson_ids: List[int]
    total_amount: float
    paid_amount: float
    status: str
    due_date: date
    paid_date: Optional[date] = None
    student: Optional[UserSummary] = None
    lessons: List[InvoiceLessonRead] = []

    class Config:
        from_attributes = True


class InvoiceGenerationRead(BaseModel):
    month: int
    year: int
    count: int
    cleared: int
    failed: int
    message: str
    invoices: List[InvoiceRead]
