from pydantic import BaseModel
from datetime import date, datetime
from typing import Optional

from schemas.common import Money


class BillOut(BaseModel):
    id: int
    package_id: Optional[int]
    student_id: int
    teacher_id: Optional[int]
    amount: Money
    currency: str
    status: str
    bill_date: date
    paid_at: Optional[datetime]
    payment_method: Optional[str]
    is_custom: bool
    description: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class BillSummaryOut(BaseModel):
    total_amount: Money
    unpaid_amount: Money
    bill_count: int
    currency: str

    class Config:
        from_attributes = True
