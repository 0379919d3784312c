"""
Notification Ledger
Counts successful "package finished" WhatsApp dispatches per package. The
ledger records facts: it is written only after the gateway accepted a message.
"""
import datetime
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from database import unit_of_work
from errors import Conflict, DispatchFailed, NotFound, ServiceError, ValidationError
from models.notifications import NotificationLog, NotificationRecord
from models.packages import Package, PACKAGE_FINISHED
from models.students import Student, STUDENT_STATUSES
from services.billing import summarize
from services.gateway import MessageGateway, dispatch
from services.locks import package_lock
from services.utils import as_set, utcnow

logger = logging.getLogger(__name__)

KIND_SEND = "send"
KIND_REMINDER = "reminder"


@dataclass
class BulkNotifyResult:
    success_count: int = 0
    failed_count: int = 0
    errors: List[dict] = field(default_factory=list)

    def to_dict(self):
        return {
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "errors": self.errors,
        }


def _require_package(db: Session, package_id: int) -> Package:
    package = db.query(Package).filter(Package.id == package_id).first()
    if not package:
        raise NotFound(f"Package {package_id} not found")
    return package


def notification_count(db: Session, package_id: int) -> int:
    record = db.query(NotificationRecord).filter(NotificationRecord.package_id == package_id).first()
    return record.notification_count if record else 0


def is_first_notification(db: Session, package_id: int) -> bool:
    _require_package(db, package_id)
    return notification_count(db, package_id) == 0


def _find_dispatch(db: Session, dispatch_key: Optional[str]):
    if not dispatch_key:
        return None
    return db.query(NotificationLog).filter(NotificationLog.dispatch_key == dispatch_key).first()


def _record_locked(db: Session, package_id: int, timestamp: datetime.datetime,
                   dispatch_key: Optional[str]) -> NotificationRecord:
    record = (
        db.query(NotificationRecord)
        .populate_existing()
        .with_for_update()
        .filter(NotificationRecord.package_id == package_id)
        .first()
    )
    if record is None:
        record = NotificationRecord(package_id=package_id, notification_count=0)
        db.add(record)
        db.flush()

    kind = KIND_SEND if record.notification_count == 0 else KIND_REMINDER
    db.query(NotificationRecord).filter(NotificationRecord.package_id == package_id).update(
        {
            NotificationRecord.notification_count: NotificationRecord.notification_count + 1,
            NotificationRecord.last_notification_sent: timestamp,
        },
        synchronize_session=False,
    )
    db.add(NotificationLog(package_id=package_id, kind=kind, dispatch_key=dispatch_key, sent_at=timestamp))
    db.flush()
    db.refresh(record)

    logger.info("Recorded %s #%s for package %s", kind, record.notification_count, package_id)
    return record


def record_dispatch(db: Session, package_id: int, timestamp: Optional[datetime.datetime] = None,
                    dispatch_key: Optional[str] = None) -> NotificationRecord:
    """
    Count one successful dispatch. A dispatch_key that was already recorded is
    a no-op, so a retried request never counts twice.
    """
    _require_package(db, package_id)
    timestamp = timestamp or utcnow()

    with package_lock(package_id):
        with unit_of_work(db):
            if _find_dispatch(db, dispatch_key):
                logger.info("Dispatch %s already recorded for package %s", dispatch_key, package_id)
                record = db.query(NotificationRecord).filter(NotificationRecord.package_id == package_id).first()
            else:
                record = _record_locked(db, package_id, timestamp, dispatch_key)
    return record


def build_message(package: Package, summary, first: bool) -> str:
    name = package.student.name if package.student else "Student"
    lines = [
        f"Hello {name},",
        f"Your package (round {package.round_number}, {package.total_hours:g} hours) has been completed.",
        f"Outstanding amount: {summary.unpaid_amount:.2f} {summary.currency}.",
    ]
    if not first:
        lines.insert(0, "Reminder")
    return "\n".join(lines)


def notify_package(db: Session, package_id: int, gateway: MessageGateway,
                   dispatch_key: Optional[str] = None) -> dict:
    """Send the finished-package message ("send" first, "reminder" afterwards) and record it."""
    package = db.query(Package).options(joinedload(Package.student)).filter(Package.id == package_id).first()
    if not package:
        raise NotFound(f"Package {package_id} not found")
    if package.status != PACKAGE_FINISHED:
        raise Conflict(f"Package {package_id} is not finished")

    with package_lock(package_id):
        with unit_of_work(db):
            if _find_dispatch(db, dispatch_key):
                record = db.query(NotificationRecord).filter(NotificationRecord.package_id == package_id).first()
                return {"kind": None, "record": record, "duplicate": True}

            first = notification_count(db, package_id) == 0
            message = build_message(package, summarize(db, package_id), first)
            try:
                dispatch(gateway, package.student.whatsapp_number if package.student else None, message)
            except DispatchFailed:
                logger.warning("WhatsApp dispatch failed for package %s", package_id)
                raise

            record = _record_locked(db, package_id, utcnow(), dispatch_key)

    return {"kind": KIND_SEND if first else KIND_REMINDER, "record": record, "duplicate": False}


def bulk_notify(db: Session, package_ids: List[int], gateway: MessageGateway) -> BulkNotifyResult:
    """Each package succeeds or fails on its own; one failure never blocks the rest."""
    result = BulkNotifyResult()
    seen = set()
    for package_id in package_ids:
        if package_id in seen:
            continue
        seen.add(package_id)
        try:
            notify_package(db, package_id, gateway)
            result.success_count += 1
        except ServiceError as e:
            result.failed_count += 1
            result.errors.append({"package_id": package_id, "kind": e.kind, "message": e.message})

    logger.info("Bulk notify: %s sent, %s failed", result.success_count, result.failed_count)
    return result


def notification_history(db: Session, package_id: int) -> List[NotificationLog]:
    _require_package(db, package_id)
    return (
        db.query(NotificationLog)
        .filter(NotificationLog.package_id == package_id)
        .order_by(NotificationLog.sent_at, NotificationLog.id)
        .all()
    )


def _finished_query(db: Session):
    return (
        db.query(Package)
        .join(Student)
        .outerjoin(NotificationRecord, NotificationRecord.package_id == Package.id)
        .options(joinedload(Package.student), joinedload(Package.notification))
        .filter(Package.status == PACKAGE_FINISHED)
    )


def unnotified_count(db: Session) -> int:
    return _finished_query(db).filter(
        (NotificationRecord.package_id == None) | (NotificationRecord.notification_count == 0)  # noqa: E711
    ).count()


def list_finished_packages(db: Session, search: Optional[str] = None, notification_status: Optional[str] = None,
                           student_status=None, days_since_finished: Optional[int] = None,
                           date_from: Optional[datetime.date] = None, date_to: Optional[datetime.date] = None,
                           page: int = 1, per_page: int = 15) -> dict:
    """Finished packages worklist, each with its bill summary and ledger fields."""
    if page < 1 or per_page < 1:
        raise ValidationError("page and per_page must be positive")

    query = _finished_query(db)
    if search:
        query = query.filter(Student.name.ilike(f"%{search}%"))

    if notification_status == "sent":
        query = query.filter(NotificationRecord.notification_count > 0)
    elif notification_status == "not_sent":
        query = query.filter(
            (NotificationRecord.package_id == None) | (NotificationRecord.notification_count == 0)  # noqa: E711
        )
    elif notification_status not in (None, "", "all"):
        raise ValidationError(f"Unknown notification_status: {notification_status}")

    statuses = as_set(student_status)
    if statuses:
        statuses.discard("all")
        if not statuses <= set(STUDENT_STATUSES):
            raise ValidationError(f"Unknown student status: {', '.join(sorted(statuses))}")
        if statuses:
            query = query.filter(Student.status.in_(statuses))

    if days_since_finished is not None:
        cutoff = utcnow() - datetime.timedelta(days=days_since_finished)
        query = query.filter(Package.completion_date <= cutoff)
    if date_from:
        query = query.filter(Package.completion_date >= datetime.datetime.combine(date_from, datetime.time.min))
    if date_to:
        query = query.filter(Package.completion_date <= datetime.datetime.combine(date_to, datetime.time.max))

    total = query.count()
    packages = (
        query.order_by(Package.completion_date.desc(), Package.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "data": [{"package": p, "bills_summary": summarize(db, p.id)} for p in packages],
        "meta": {
            "current_page": page,
            "per_page": per_page,
            "total": total,
            "last_page": max(1, -(-total // per_page)),
        },
    }
