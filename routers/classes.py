from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from database import get_db
from schemas.packages import ClassOut, PackageHourDeltaOut
from services import consumption
from pydantic import BaseModel
from typing import Optional
from datetime import date, time

router = APIRouter(prefix="/api/v1/classes", tags=["Classes"])

# --- SCHEMAS ---
class ClassCreate(BaseModel):
    teacher_id: int
    student_id: int
    class_date: date
    start_time: time
    end_time: time
    package_id: Optional[int] = None
    course_id: Optional[int] = None

class StatusUpdate(BaseModel):
    status: str


@router.post("")
def create_class(data: ClassCreate, db: Session = Depends(get_db)):
    record = consumption.create_class(
        db, data.teacher_id, data.student_id, data.class_date, data.start_time, data.end_time,
        package_id=data.package_id, course_id=data.course_id
    )
    return {"status": "success", "data": ClassOut.model_validate(record)}


@router.put("/{class_id}/status")
def update_class_status(class_id: int, data: StatusUpdate, db: Session = Depends(get_db)):
    """Mark attended / un-mark; consumes or restores package hours and may close the package"""
    result = consumption.set_class_status(db, class_id, data.status)
    delta = result["delta"]
    return {
        "status": "success",
        "data": {
            "class": ClassOut.model_validate(result["class"]),
            "package": PackageHourDeltaOut.model_validate(delta) if delta else None,
        },
    }
