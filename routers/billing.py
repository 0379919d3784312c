"""
Billing Router - bill listings with statistics, custom bills, payment marking and tokens
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from database import get_db
from schemas.billing import BillOut
from services import billing
from services.gateway import MessageGateway, get_message_gateway
from services.utils import merge_filter
from pydantic import BaseModel
from typing import List, Optional
from datetime import date, datetime

router = APIRouter(prefix="/api/v1/bills", tags=["Billing"])

# =====================
# PYDANTIC SCHEMAS
# =====================

class CustomBillCreate(BaseModel):
    student_id: int
    amount: float
    currency: str
    description: Optional[str] = None
    bill_date: Optional[date] = None
    teacher_id: Optional[int] = None

class MarkPaidRequest(BaseModel):
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None

class SendWhatsAppRequest(BaseModel):
    whatsapp_number: Optional[str] = None

# =====================
# BILL APIs
# =====================

@router.get("")
def list_bills(
    year: Optional[int] = None,
    month: Optional[int] = None,
    status: Optional[List[str]] = Query(None),
    status_list: Optional[List[str]] = Query(None, alias="status[]"),
    student_id: Optional[List[int]] = Query(None),
    student_id_list: Optional[List[int]] = Query(None, alias="student_id[]"),
    teacher_id: Optional[int] = None,
    is_custom: Optional[bool] = None,
    db: Session = Depends(get_db)
):
    """Bills grouped by month; repeated status / student_id values are OR-ed"""
    filters = billing.BillFilters(
        year=year,
        month=month,
        status=merge_filter(status, status_list),
        student_id=merge_filter(student_id, student_id_list),
        teacher_id=teacher_id,
        is_custom=is_custom,
    )
    result = billing.list_bills(db, filters)
    grouped = {
        key: {
            "year": group["year"],
            "month": group["month"],
            "bills": [BillOut.model_validate(b) for b in group["bills"]],
            "paid": [BillOut.model_validate(b) for b in group["paid"]],
            "unpaid": [BillOut.model_validate(b) for b in group["unpaid"]],
        }
        for key, group in result["bills"].items()
    }
    return {"status": "success", "data": {"bills": grouped, "statistics": result["statistics"]}}


@router.post("")
def create_custom_bill(data: CustomBillCreate, db: Session = Depends(get_db)):
    bill = billing.create_custom_bill(
        db, data.student_id, data.amount, data.currency,
        description=data.description, bill_date=data.bill_date, teacher_id=data.teacher_id
    )
    return {"status": "success", "data": BillOut.model_validate(bill)}


@router.get("/statistics")
def get_statistics(year: int, month: int, db: Session = Depends(get_db)):
    return {"status": "success", "data": billing.billing_statistics(db, year, month)}


@router.get("/{bill_id}")
def get_bill(bill_id: int, db: Session = Depends(get_db)):
    return {"status": "success", "data": BillOut.model_validate(billing.get_bill(db, bill_id))}


@router.put("/{bill_id}/mark-paid")
def mark_bill_paid(bill_id: int, data: Optional[MarkPaidRequest] = None, db: Session = Depends(get_db)):
    """Safe to retry: an already paid bill is returned unchanged"""
    data = data or MarkPaidRequest()
    bill = billing.mark_paid(db, bill_id, paid_at=data.paid_at, payment_method=data.payment_method)
    return {"status": "success", "data": BillOut.model_validate(bill)}


@router.post("/{bill_id}/generate-token")
def generate_token(bill_id: int, db: Session = Depends(get_db)):
    return {"status": "success", "data": billing.generate_payment_token(db, bill_id)}


@router.post("/{bill_id}/send-whatsapp")
def send_bill_whatsapp(
    bill_id: int,
    data: Optional[SendWhatsAppRequest] = None,
    db: Session = Depends(get_db),
    gateway: MessageGateway = Depends(get_message_gateway)
):
    """Send the bill to the student; whatsapp_number overrides the number on file"""
    data = data or SendWhatsAppRequest()
    result = billing.send_bill_whatsapp(db, bill_id, gateway, whatsapp_number=data.whatsapp_number)
    return {"status": "success", "message": "Bill sent via WhatsApp", "data": result}
