"""
Package Model - a purchased block of tutoring hours for one student.
Each reactivation creates a new row (round) instead of mutating the old one.
"""
from sqlalchemy import Column, Integer, String, Float, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from database import Base
from services.utils import utcnow

PACKAGE_ACTIVE = "active"
PACKAGE_FINISHED = "finished"


class Package(Base):
    __tablename__ = "packages"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    round_number = Column(Integer, nullable=False, default=1)
    start_date = Column(Date, nullable=False)

    total_hours = Column(Float, nullable=False)
    consumed_hours = Column(Float, nullable=False, default=0.0)  # Sum of attended class durations
    hour_price = Column(Float, nullable=False, default=0.0)
    currency = Column(String(3), nullable=False)

    status = Column(String(10), nullable=False, default=PACKAGE_ACTIVE, index=True)  # active, finished
    completion_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("student_id", "round_number", name="uq_package_student_round"),
    )

    student = relationship("Student", back_populates="packages")
    bills = relationship("Bill", back_populates="package", order_by="Bill.id")
    notification = relationship("NotificationRecord", uselist=False, back_populates="package")

    @property
    def remaining_hours(self):
        if self.total_hours is None:
            return None
        return max(0.0, self.total_hours - (self.consumed_hours or 0.0))

    @property
    def is_active(self):
        return self.status == PACKAGE_ACTIVE

    @property
    def notification_count(self):
        return self.notification.notification_count if self.notification else 0

    @property
    def last_notification_sent(self):
        return self.notification.last_notification_sent if self.notification else None
