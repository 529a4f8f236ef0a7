# -*- coding: utf-8 -*-
"""
FastAPI routes for invoices and monthly billing.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from lessonbook.auth import Caller, get_current_caller, get_staff_caller
from lessonbook.database import get_db
from lessonbook.schemas.invoice import (GenerateRequest, InvoiceCreate, InvoiceGenerationRead, InvoiceRead,
                                        InvoiceUpdate, MarkPaidRequest)
from lessonbook.services import billing

router = APIRouter(
    prefix="/api/v1/invoices",
    tags=["Invoices"],
    responses={404: {"description": "Invoice not found"}},
)


@router.get("", response_model=List[InvoiceRead])
def read_invoices(
    status: Optional[str] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
    student: Optional[int] = None,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller)
):
    return billing.list_invoices(db, caller, status=status, month=month, year=year, student_id=student)


@router.post("/generate-monthly", response_model=InvoiceGenerationRead)
def generate_monthly(request: GenerateRequest, db: Session = Depends(get_db),
                     caller: Caller = Depends(get_staff_caller)):
    """
    Rebuilds the invoices of a month from its billable lessons.
    """
    result = billing.generate_monthly_invoices(db, caller, request.month, request.year)
    return {
        "month": result.month,
        "year": result.year,
        "count": result.generated,
        "cleared": len(result.cleared),
        "failed": result.failed,
        "message": f"Generated {result.generated} invoices for {result.month}/{result.year}",
        "invoices": result.invoices,
    }


@router.get("/{invoice_id}", response_model=InvoiceRead)
def read_invoice(invoice_id: int, db: Session = Depends(get_db), caller: Caller = Depends(get_current_caller)):
    return billing.get_invoice(db, caller, invoice_id)


@router.post("", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
def create_invoice(invoice: InvoiceCreate, db: Session = Depends(get_db),
                   caller: Caller = Depends(get_staff_caller)):
    return billing.create_invoice(db, caller, invoice)


@router.put("/{invoice_id}", response_model=InvoiceRead)
def update_invoice(invoice_id: int, invoice_update: InvoiceUpdate, db: Session = Depends(get_db),
                   caller: Caller = Depends(get_staff_caller)):
    return billing.update_invoice(db, caller, invoice_id, invoice_update)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(invoice_id: int, db: Session = Depends(get_db), caller: Caller = Depends(get_staff_caller)):
    billing.delete_invoice(db, caller, invoice_id)
    return None


@router.post("/{invoice_id}/mark-paid", response_model=InvoiceRead)
def mark_paid(invoice_id: int, payment: Optional[MarkPaidRequest] = None, db: Session = Depends(get_db),
              caller: Caller = Depends(get_staff_caller)):
    payment = payment or MarkPaidRequest()
    return billing.mark_as_paid(db, caller, invoice_id, payment.paid_amount, payment.paid_date)
