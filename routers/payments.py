from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from database import get_db
from schemas.billing import BillOut
from services import billing
from pydantic import BaseModel
from typing import Optional

# Public routes used by the payment page and the gateway callback (no admin prefix)
router = APIRouter(prefix="/payment", tags=["Payment"])


class PaymentConfirmation(BaseModel):
    outcome: str  # "completed", "failed", "cancelled"
    payment_method: Optional[str] = None
    reference: Optional[str] = None


@router.get("/{token}")
def get_payment_bill(token: str, db: Session = Depends(get_db)):
    return {"status": "success", "data": BillOut.model_validate(billing.get_bill_by_token(db, token))}


@router.post("/{token}/confirm")
def confirm_payment(token: str, data: PaymentConfirmation, db: Session = Depends(get_db)):
    bill = billing.confirm_payment(
        db, token, data.outcome, payment_method=data.payment_method, reference=data.reference
    )
    return {"status": "success", "data": BillOut.model_validate(bill)}
