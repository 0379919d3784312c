"""
Bill Model - financial record tied to a package (automatic) or ad hoc (custom)
"""
from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Boolean, ForeignKey, Text, Index, text
from sqlalchemy.orm import relationship
from database import Base
import datetime
from services.utils import utcnow

BILL_UNPAID = "unpaid"
BILL_PAID = "paid"


class Bill(Base):
    __tablename__ = "bills"

    id = Column(Integer, primary_key=True, index=True)
    package_id = Column(Integer, ForeignKey("packages.id"), nullable=True, index=True)  # None for custom bills
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    teacher_id = Column(Integer, ForeignKey("teachers.id"), nullable=True)

    amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(10), nullable=False, default=BILL_UNPAID, index=True)  # unpaid, paid
    bill_date = Column(Date, default=datetime.date.today, index=True)

    # Payment Info
    paid_at = Column(DateTime, nullable=True)
    payment_method = Column(String(50), nullable=True)
    payment_token = Column(String(64), nullable=True, unique=True)

    is_custom = Column(Boolean, nullable=False, default=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    # One automatic bill per package at most
    __table_args__ = (
        Index(
            "uq_bills_package_auto",
            "package_id",
            unique=True,
            sqlite_where=text("NOT is_custom"),
            postgresql_where=text("NOT is_custom"),
        ),
    )

    package = relationship("Package", back_populates="bills")
    student = relationship("Student")
    teacher = relationship("Teacher")
