"""
Package Router - purchase, lifecycle and consumption views of tutoring packages
"""
from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session
from database import get_db
from schemas.billing import BillSummaryOut
from schemas.packages import ClassOut, PackageOut
from services import billing, consumption, lifecycle, notifications
from services.utils import merge_filter
from pydantic import BaseModel
from typing import List, Optional
from datetime import date

router = APIRouter(prefix="/api/v1/packages", tags=["Packages"])

# =====================
# PYDANTIC SCHEMAS
# =====================

class PackageCreate(BaseModel):
    student_id: int
    total_hours: float
    hour_price: float
    currency: str
    start_date: Optional[date] = None

class PackageUpdate(BaseModel):
    hour_price: Optional[float] = None
    start_date: Optional[date] = None

class ReactivateRequest(BaseModel):
    total_hours: Optional[float] = None
    hour_price: Optional[float] = None
    start_date: Optional[date] = None
    currency: Optional[str] = None


def package_payload(db: Session, package):
    return {
        "package": PackageOut.model_validate(package),
        "bills_summary": BillSummaryOut.model_validate(billing.summarize(db, package.id)),
    }

# =====================
# PACKAGE APIs
# =====================

@router.post("")
def create_package(data: PackageCreate, db: Session = Depends(get_db)):
    package = lifecycle.create_package(
        db, data.student_id, data.total_hours, data.hour_price, data.currency, data.start_date
    )
    return {"status": "success", "data": PackageOut.model_validate(package)}


@router.get("")
def list_packages(
    status: Optional[List[str]] = Query(None),
    status_list: Optional[List[str]] = Query(None, alias="status[]"),
    student_id: Optional[List[int]] = Query(None),
    search: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = 1,
    per_page: int = 15,
    db: Session = Depends(get_db)
):
    """Packages list with filters; status=all means no status filter"""
    statuses = [s for s in (merge_filter(status, status_list) or []) if s != "all"]
    result = lifecycle.list_packages(
        db, status=statuses or None, student_id=student_id, search=search,
        date_from=date_from, date_to=date_to, page=page, per_page=per_page
    )
    return {
        "status": "success",
        "data": [PackageOut.model_validate(p) for p in result["data"]],
        "meta": result["meta"],
    }


@router.get("/finished")
def list_finished_packages(
    search: Optional[str] = None,
    notification_status: Optional[str] = None,
    student_status: Optional[List[str]] = Query(None),
    days_since_finished: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = 1,
    per_page: int = 15,
    db: Session = Depends(get_db)
):
    """Finished packages worklist for the notifications center"""
    result = notifications.list_finished_packages(
        db, search=search, notification_status=notification_status, student_status=student_status,
        days_since_finished=days_since_finished, date_from=date_from, date_to=date_to,
        page=page, per_page=per_page
    )
    return {
        "status": "success",
        "data": [
            {
                "package": PackageOut.model_validate(row["package"]),
                "bills_summary": BillSummaryOut.model_validate(row["bills_summary"]),
                "completion_date": row["package"].completion_date,
            }
            for row in result["data"]
        ],
        "meta": result["meta"],
    }


@router.get("/unnotified-count")
def get_unnotified_count(db: Session = Depends(get_db)):
    return {"status": "success", "data": {"count": notifications.unnotified_count(db)}}


@router.get("/{package_id}")
def get_package(package_id: int, db: Session = Depends(get_db)):
    """Single package with its bill summary"""
    return {"status": "success", "data": package_payload(db, lifecycle.get_package(db, package_id))}


@router.put("/{package_id}")
def update_package(package_id: int, data: PackageUpdate, db: Session = Depends(get_db)):
    """Edit price or start date of an active package"""
    package = lifecycle.update_package(db, package_id, hour_price=data.hour_price, start_date=data.start_date)
    return {"status": "success", "data": PackageOut.model_validate(package)}


@router.delete("/{package_id}")
def delete_package(package_id: int, db: Session = Depends(get_db)):
    lifecycle.delete_package(db, package_id)
    return {"status": "success", "message": "Package deleted"}


@router.post("/{package_id}/close")
def close_package(package_id: int, db: Session = Depends(get_db)):
    """Manually finish a package; creates its closing bill"""
    package = lifecycle.close_package(db, package_id)
    return {"status": "success", "data": package_payload(db, package)}


@router.post("/{package_id}/reactivate")
def reactivate_package(
    package_id: int,
    data: Optional[ReactivateRequest] = Body(None),
    db: Session = Depends(get_db)
):
    """Start the next round of a finished package"""
    data = data or ReactivateRequest()
    package = lifecycle.reactivate(db, package_id, lifecycle.ReactivateOverrides(
        total_hours=data.total_hours,
        hour_price=data.hour_price,
        start_date=data.start_date,
        currency=data.currency,
    ))
    return {"status": "success", "data": PackageOut.model_validate(package)}


@router.get("/{package_id}/bills")
def get_package_bills(package_id: int, db: Session = Depends(get_db)):
    return {"status": "success", "data": BillSummaryOut.model_validate(billing.summarize(db, package_id))}


@router.get("/{package_id}/classes")
def get_package_classes(package_id: int, db: Session = Depends(get_db)):
    """Attended classes with cumulative hour counters"""
    rows = consumption.package_classes(db, package_id)
    return {
        "status": "success",
        "data": [
            {
                "class": ClassOut.model_validate(row["class"]),
                "duration_hours": row["duration_hours"],
                "cumulative_hours": row["cumulative_hours"],
                "counter": row["counter"],
            }
            for row in rows
        ],
    }
