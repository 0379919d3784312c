from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from database import get_db
from errors import NotFound, ValidationError
from models.students import Student, STUDENT_STATUSES
from models.teachers import Teacher
from schemas.billing import BillSummaryOut
from schemas.packages import PackageOut, StudentOut, TeacherOut
from services import billing
from services.utils import normalize_currency
from pydantic import BaseModel
from typing import Optional

# Reference rows only; the student/teacher CRUD screens live elsewhere
router = APIRouter(prefix="/api/v1", tags=["Students & Teachers"])

# --- SCHEMAS ---
class StudentCreate(BaseModel):
    name: str
    whatsapp_number: Optional[str] = None
    status: str = "active"

class TeacherCreate(BaseModel):
    name: str
    email: Optional[str] = None
    hourly_rate: float
    currency: str = "USD"


# ===============================
#   STUDENTS
# ===============================

@router.post("/students")
def create_student(data: StudentCreate, db: Session = Depends(get_db)):
    if data.status not in STUDENT_STATUSES:
        raise ValidationError(f"Unknown student status: {data.status}")
    student = Student(name=data.name, whatsapp_number=data.whatsapp_number, status=data.status)
    db.add(student)
    db.commit()
    db.refresh(student)
    return {"status": "success", "data": StudentOut.model_validate(student)}


@router.get("/students/{student_id}")
def get_student(student_id: int, db: Session = Depends(get_db)):
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise NotFound(f"Student {student_id} not found")
    return {
        "status": "success",
        "data": {
            "student": StudentOut.model_validate(student),
            "packages": [PackageOut.model_validate(p) for p in student.packages],
        },
    }


@router.get("/students/{student_id}/bills-summary")
def get_student_bills_summary(student_id: int, db: Session = Depends(get_db)):
    """Outstanding totals per currency, never summed across currencies"""
    summaries = billing.summarize_student(db, student_id)
    return {"status": "success", "data": [BillSummaryOut.model_validate(s) for s in summaries]}


# ===============================
#   TEACHERS
# ===============================

@router.post("/teachers")
def create_teacher(data: TeacherCreate, db: Session = Depends(get_db)):
    if data.hourly_rate < 0:
        raise ValidationError("hourly_rate must not be negative")
    teacher = Teacher(
        name=data.name,
        email=data.email,
        hourly_rate=data.hourly_rate,
        currency=normalize_currency(data.currency),
    )
    db.add(teacher)
    db.commit()
    db.refresh(teacher)
    return {"status": "success", "data": TeacherOut.model_validate(teacher)}
