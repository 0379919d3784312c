from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session
from database import get_db
from schemas.packages import NotificationLogOut, NotificationRecordOut
from services import notifications
from services.gateway import MessageGateway, get_message_gateway
from pydantic import BaseModel
from typing import List, Optional

router = APIRouter(prefix="/api/v1/packages", tags=["Package Notifications"])


class BulkNotifyRequest(BaseModel):
    package_ids: List[int]


# --- 1. SEND / REMIND ONE PACKAGE ---
@router.post("/{package_id}/notify")
def notify_package(
    package_id: int,
    idempotency_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    gateway: MessageGateway = Depends(get_message_gateway)
):
    """Send the WhatsApp message for a finished package; first call sends, later calls remind"""
    result = notifications.notify_package(db, package_id, gateway, dispatch_key=idempotency_key)
    return {
        "status": "success",
        "message": "Reminder sent" if result["kind"] == notifications.KIND_REMINDER else "Notification sent",
        "data": {
            "kind": result["kind"],
            "duplicate": result["duplicate"],
            "ledger": NotificationRecordOut.model_validate(result["record"]),
        },
    }


# --- 2. BULK SEND ---
@router.post("/bulk-notify")
def bulk_notify(
    data: BulkNotifyRequest,
    db: Session = Depends(get_db),
    gateway: MessageGateway = Depends(get_message_gateway)
):
    result = notifications.bulk_notify(db, data.package_ids, gateway)
    return {"status": "success", "data": result.to_dict()}


# --- 3. HISTORY ---
@router.get("/{package_id}/notification-history")
def get_notification_history(package_id: int, db: Session = Depends(get_db)):
    logs = notifications.notification_history(db, package_id)
    return {
        "status": "success",
        "data": {
            "is_first_notification": notifications.is_first_notification(db, package_id),
            "history": [NotificationLogOut.model_validate(log) for log in logs],
        },
    }
