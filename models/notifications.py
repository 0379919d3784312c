from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from database import Base
from services.utils import utcnow


class NotificationRecord(Base):
    """Per-package ledger of successful WhatsApp dispatches. No row means zero."""
    __tablename__ = "notification_records"

    package_id = Column(Integer, ForeignKey("packages.id"), primary_key=True)
    notification_count = Column(Integer, nullable=False, default=0)
    last_notification_sent = Column(DateTime, nullable=True)

    package = relationship("Package", back_populates="notification")


class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id = Column(Integer, primary_key=True, index=True)
    package_id = Column(Integer, ForeignKey("packages.id"), nullable=False, index=True)
    kind = Column(String(10), nullable=False)  # "send" or "reminder"
    dispatch_key = Column(String(100), nullable=True, unique=True)  # Retry key from the caller
    sent_at = Column(DateTime, default=utcnow)
