"""
Consumption Tracker
Maps attended classes to hour decrements on the owning package and
computes the running counters shown as "class 3 of 8".
"""
import datetime
import logging
from dataclasses import dataclass, asdict
from typing import Optional

from sqlalchemy.orm import Session

from database import unit_of_work
from errors import NotFound, PackageClosed, ValidationError
from models.classes import ClassRecord, CLASS_ATTENDED, CLASS_PENDING, CLASS_STATUSES
from models.packages import Package, PACKAGE_ACTIVE
from models.students import Student
from models.teachers import Teacher
from services.lifecycle import check_and_close, lock_package
from services.locks import package_lock

logger = logging.getLogger(__name__)


@dataclass
class PackageHourDelta:
    package_id: int
    class_id: int
    duration_hours: float
    cumulative_hours: float  # Running total up to and including this class
    counter: int  # 1-based position among the package's attended classes, 0 once reversed
    consumed_hours: float
    remaining_hours: Optional[float]
    package_status: str
    closing_bill_id: Optional[int] = None

    def to_dict(self):
        return asdict(self)


def _ordered_attended(db: Session, package_id: int):
    return (
        db.query(ClassRecord)
        .filter(ClassRecord.package_id == package_id, ClassRecord.status == CLASS_ATTENDED)
        .order_by(ClassRecord.class_date, ClassRecord.start_time, ClassRecord.id)
        .all()
    )


def _applied_hours(record: ClassRecord) -> float:
    return record.consumed_hours if record.consumed_hours is not None else record.duration_hours


def package_classes(db: Session, package_id: int):
    """
    Attended classes ordered by (class_date, start_time, id), so a backdated
    correction re-ranks instead of counting in creation order.
    """
    if not db.query(Package).filter(Package.id == package_id).first():
        raise NotFound(f"Package {package_id} not found")

    rows = []
    cumulative = 0.0
    for counter, record in enumerate(_ordered_attended(db, package_id), start=1):
        hours = _applied_hours(record)
        cumulative += hours
        rows.append({
            "class": record,
            "duration_hours": hours,
            "cumulative_hours": cumulative,
            "counter": counter,
        })
    return rows


def _delta(db: Session, package: Package, record: ClassRecord, duration: float) -> PackageHourDelta:
    counter, cumulative = 0, 0.0
    for row in package_classes(db, package.id):
        if row["class"].id == record.id:
            counter, cumulative = row["counter"], row["cumulative_hours"]
            break
    return PackageHourDelta(
        package_id=package.id,
        class_id=record.id,
        duration_hours=duration,
        cumulative_hours=cumulative,
        counter=counter,
        consumed_hours=package.consumed_hours,
        remaining_hours=package.remaining_hours,
        package_status=package.status,
    )


def record_attendance(db: Session, record: ClassRecord) -> PackageHourDelta:
    """
    Add the class duration to its package. Flushes only: run it under
    package_lock inside a unit of work, followed by check_and_close.
    """
    if record.package_id is None:
        raise ValidationError(f"Class {record.id} is not linked to a package")

    package = lock_package(db, record.package_id)
    if package.status != PACKAGE_ACTIVE:
        raise PackageClosed(f"Package {package.id} is {package.status}; attendance cannot be recorded")

    if record.consumed_hours is not None:
        # Already applied; recording again must not double-spend hours
        return _delta(db, package, record, record.consumed_hours)

    duration = record.duration_hours
    package.consumed_hours = (package.consumed_hours or 0.0) + duration
    record.consumed_hours = duration
    record.status = CLASS_ATTENDED
    db.flush()

    logger.info("Class %s consumed %.2fh of package %s (%.2fh left)",
                record.id, duration, package.id, package.remaining_hours)
    return _delta(db, package, record, duration)


def reverse_attendance(db: Session, record: ClassRecord, new_status: Optional[str] = None) -> PackageHourDelta:
    """Undo record_attendance, clamped at zero. Only the class's own package is touched."""
    if record.package_id is None:
        raise ValidationError(f"Class {record.id} is not linked to a package")

    package = lock_package(db, record.package_id)
    applied = record.consumed_hours or 0.0
    package.consumed_hours = max(0.0, (package.consumed_hours or 0.0) - applied)
    record.consumed_hours = None
    if record.status == CLASS_ATTENDED:
        record.status = new_status or CLASS_PENDING
    db.flush()

    logger.info("Class %s reversed %.2fh on package %s", record.id, applied, package.id)
    return _delta(db, package, record, applied)


def set_class_status(db: Session, class_id: int, status: str) -> dict:
    """
    Class status API entry point. Attendance, the exhaustion check and the
    closing bill commit together or not at all, serialized per package.
    """
    if status not in CLASS_STATUSES:
        raise ValidationError(f"Unknown class status: {status}")

    record = db.query(ClassRecord).filter(ClassRecord.id == class_id).first()
    if not record:
        raise NotFound(f"Class {class_id} not found")

    if record.package_id is None:
        # Trial class: nothing to consume
        with unit_of_work(db):
            record.status = status
        return {"class": record, "delta": None}

    delta = None
    with package_lock(record.package_id):
        with unit_of_work(db):
            record = db.query(ClassRecord).populate_existing().filter(ClassRecord.id == class_id).first()
            previous = record.status

            if status == CLASS_ATTENDED and previous != CLASS_ATTENDED:
                delta = record_attendance(db, record)
                bill = check_and_close(db, record.package_id, teacher_id=record.teacher_id)
                if bill is not None:
                    delta.package_status = bill.package.status
                    delta.closing_bill_id = bill.id
            elif previous == CLASS_ATTENDED and status != CLASS_ATTENDED:
                delta = reverse_attendance(db, record, new_status=status)

            record.status = status

    return {"class": record, "delta": delta}


def create_class(db: Session, teacher_id: int, student_id: int, class_date: datetime.date,
                 start_time: datetime.time, end_time: datetime.time,
                 package_id: Optional[int] = None, course_id: Optional[int] = None) -> ClassRecord:
    if end_time <= start_time:
        raise ValidationError("end_time must be after start_time")
    if not db.query(Teacher).filter(Teacher.id == teacher_id).first():
        raise NotFound(f"Teacher {teacher_id} not found")
    if not db.query(Student).filter(Student.id == student_id).first():
        raise NotFound(f"Student {student_id} not found")
    if package_id is not None:
        package = db.query(Package).filter(Package.id == package_id).first()
        if not package:
            raise NotFound(f"Package {package_id} not found")
        if package.student_id != student_id:
            raise ValidationError(f"Package {package_id} does not belong to student {student_id}")

    with unit_of_work(db):
        record = ClassRecord(
            package_id=package_id,
            teacher_id=teacher_id,
            student_id=student_id,
            course_id=course_id,
            class_date=class_date,
            start_time=start_time,
            end_time=end_time,
            status=CLASS_PENDING,
        )
        db.add(record)

    db.refresh(record)
    return record
