"""
Package Lifecycle Manager
active -> finished is one-way. Reactivation never reopens a package: it creates
the next round as a new row and leaves the finished one (and its bills) as history.
"""
import datetime
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from database import unit_of_work
from errors import Conflict, NotFound, ValidationError
from models.bills import Bill
from models.classes import ClassRecord
from models.notifications import NotificationLog, NotificationRecord
from models.packages import Package, PACKAGE_ACTIVE, PACKAGE_FINISHED
from models.students import Student
from services.billing import create_package_bill
from services.locks import package_lock, student_lock
from services.utils import as_set, normalize_currency, utcnow

logger = logging.getLogger(__name__)

PACKAGE_STATUSES = (PACKAGE_ACTIVE, PACKAGE_FINISHED)


@dataclass
class ReactivateOverrides:
    total_hours: Optional[float] = None
    hour_price: Optional[float] = None
    start_date: Optional[datetime.date] = None
    currency: Optional[str] = None


def _validate_terms(total_hours, hour_price):
    if total_hours is None or total_hours <= 0:
        raise ValidationError("total_hours must be greater than zero")
    if hour_price is None or hour_price < 0:
        raise ValidationError("hour_price must not be negative")


def _ensure_no_active_package(db: Session, student_id: int):
    active = db.query(Package).filter(
        Package.student_id == student_id,
        Package.status == PACKAGE_ACTIVE,
    ).first()
    if active:
        raise Conflict(f"Student {student_id} already has active package {active.id}")


def _next_round(db: Session, student_id: int) -> int:
    last = db.query(func.max(Package.round_number)).filter(Package.student_id == student_id).scalar()
    return (last or 0) + 1


def get_package(db: Session, package_id: int) -> Package:
    package = db.query(Package).options(joinedload(Package.student)).filter(Package.id == package_id).first()
    if not package:
        raise NotFound(f"Package {package_id} not found")
    return package


def lock_package(db: Session, package_id: int) -> Package:
    """Re-read the package row with a row lock. Call while holding package_lock."""
    package = (
        db.query(Package)
        .populate_existing()
        .with_for_update()
        .filter(Package.id == package_id)
        .first()
    )
    if not package:
        raise NotFound(f"Package {package_id} not found")
    return package


def create_package(db: Session, student_id: int, total_hours: float, hour_price: float,
                   currency: str, start_date: Optional[datetime.date] = None) -> Package:
    _validate_terms(total_hours, hour_price)
    currency = normalize_currency(currency)
    if not db.query(Student).filter(Student.id == student_id).first():
        raise NotFound(f"Student {student_id} not found")

    with student_lock(student_id), unit_of_work(db):
        _ensure_no_active_package(db, student_id)
        package = Package(
            student_id=student_id,
            round_number=_next_round(db, student_id),
            start_date=start_date or datetime.date.today(),
            total_hours=total_hours,
            consumed_hours=0.0,
            hour_price=hour_price,
            currency=currency,
            status=PACKAGE_ACTIVE,
        )
        db.add(package)

    db.refresh(package)
    logger.info("Created package %s (round %s) for student %s", package.id, package.round_number, student_id)
    return package


def _finish(db: Session, package: Package, teacher_id: Optional[int] = None) -> Bill:
    """Flip to finished and create the closing bill in the current transaction."""
    package.status = PACKAGE_FINISHED
    package.completion_date = utcnow()
    bill = create_package_bill(db, package, package.total_hours * package.hour_price, teacher_id=teacher_id)
    logger.info("Package %s finished; closing bill %s", package.id, bill.id)
    return bill


def check_and_close(db: Session, package_id: int, teacher_id: Optional[int] = None) -> Optional[Bill]:
    """
    Close an exhausted package. Must run in the same unit of work (and under the
    same package_lock) as the attendance update that triggered it; it flushes
    but never commits. Returns the closing bill, or None if the package stays open.
    """
    package = lock_package(db, package_id)
    if package.status != PACKAGE_ACTIVE:
        return None
    remaining = package.remaining_hours
    if remaining is None or remaining > 0:
        return None
    return _finish(db, package, teacher_id)


def close_package(db: Session, package_id: int) -> Package:
    """Manual close, regardless of remaining hours."""
    with package_lock(package_id):
        with unit_of_work(db):
            package = lock_package(db, package_id)
            if package.status != PACKAGE_ACTIVE:
                raise Conflict(f"Package {package_id} is already {package.status}")
            _finish(db, package)

    db.refresh(package)
    return package


def update_package(db: Session, package_id: int, hour_price: Optional[float] = None,
                   start_date: Optional[datetime.date] = None) -> Package:
    """
    Edit the terms of an active package. Hours, currency and status only change
    through consumption, closing and reactivation.
    """
    with package_lock(package_id):
        with unit_of_work(db):
            package = lock_package(db, package_id)
            if package.status != PACKAGE_ACTIVE:
                raise Conflict(f"Package {package_id} is {package.status} and can no longer be edited")
            if hour_price is not None:
                _validate_terms(package.total_hours, hour_price)
                package.hour_price = hour_price
            if start_date is not None:
                package.start_date = start_date

    db.refresh(package)
    logger.info("Updated package %s", package_id)
    return package


def delete_package(db: Session, package_id: int):
    """Remove a package entered by mistake. Packages with bills or classes are history and stay."""
    with package_lock(package_id):
        with unit_of_work(db):
            package = lock_package(db, package_id)
            if db.query(Bill).filter(Bill.package_id == package_id).count():
                raise Conflict(f"Package {package_id} has bills and cannot be deleted")
            if db.query(ClassRecord).filter(ClassRecord.package_id == package_id).count():
                raise Conflict(f"Package {package_id} has classes and cannot be deleted")

            db.query(NotificationLog).filter(NotificationLog.package_id == package_id).delete()
            db.query(NotificationRecord).filter(NotificationRecord.package_id == package_id).delete()
            db.delete(package)

    logger.info("Deleted package %s", package_id)


def reactivate(db: Session, package_id: int, overrides: Optional[ReactivateOverrides] = None) -> Package:
    overrides = overrides or ReactivateOverrides()
    student_id = get_package(db, package_id).student_id

    with student_lock(student_id), package_lock(package_id):
        with unit_of_work(db):
            source = lock_package(db, package_id)
            if source.status != PACKAGE_FINISHED:
                raise Conflict(f"Package {package_id} is not finished and cannot be reactivated")
            _ensure_no_active_package(db, source.student_id)

            total_hours = overrides.total_hours if overrides.total_hours is not None else source.total_hours
            hour_price = overrides.hour_price if overrides.hour_price is not None else source.hour_price
            _validate_terms(total_hours, hour_price)

            package = Package(
                student_id=source.student_id,
                round_number=_next_round(db, source.student_id),
                start_date=overrides.start_date or datetime.date.today(),
                total_hours=total_hours,
                consumed_hours=0.0,
                hour_price=hour_price,
                currency=normalize_currency(overrides.currency) if overrides.currency else source.currency,
                status=PACKAGE_ACTIVE,
            )
            db.add(package)

    db.refresh(package)
    logger.info("Reactivated package %s as package %s (round %s)", package_id, package.id, package.round_number)
    return package


def list_packages(db: Session, status=None, student_id=None, search: Optional[str] = None,
                  date_from: Optional[datetime.date] = None, date_to: Optional[datetime.date] = None,
                  page: int = 1, per_page: int = 15) -> dict:
    statuses = as_set(status)
    if statuses and not statuses <= set(PACKAGE_STATUSES):
        raise ValidationError(f"Unknown package status: {', '.join(sorted(statuses - set(PACKAGE_STATUSES)))}")
    if page < 1 or per_page < 1:
        raise ValidationError("page and per_page must be positive")

    query = db.query(Package).join(Student).options(joinedload(Package.student))
    if statuses:
        query = query.filter(Package.status.in_(statuses))
    student_ids = as_set(student_id, int)
    if student_ids:
        query = query.filter(Package.student_id.in_(student_ids))
    if search:
        query = query.filter(Student.name.ilike(f"%{search}%"))
    if date_from:
        query = query.filter(Package.start_date >= date_from)
    if date_to:
        query = query.filter(Package.start_date <= date_to)

    total = query.count()
    items = (
        query.order_by(Package.start_date.desc(), Package.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "data": items,
        "meta": {
            "current_page": page,
            "per_page": per_page,
            "total": total,
            "last_page": max(1, -(-total // per_page)),
        },
    }
