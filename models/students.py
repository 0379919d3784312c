from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from database import Base
from services.utils import utcnow

STUDENT_STATUSES = ("active", "paused", "stopped")


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    whatsapp_number = Column(String(20), nullable=True)
    status = Column(String(10), default="active")  # active, paused, stopped
    created_at = Column(DateTime, default=utcnow)

    packages = relationship("Package", back_populates="student", order_by="Package.round_number")
