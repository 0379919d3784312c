"""
Salary Computer
Teacher pay is always derived from attended classes and the teacher's hourly
rate; nothing here is stored. Values stay unrounded until the API layer.
"""
import calendar
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from errors import NotFound, ValidationError
from models.classes import ClassRecord, CLASS_ATTENDED
from models.teachers import Teacher
from services.utils import month_bounds, normalize_currency, shift_month


@dataclass
class CurrencyConversion:
    """Display-only conversion, applied to teachers paid in from_currency."""
    from_currency: str
    to_currency: str
    rate: float

    def __post_init__(self):
        self.from_currency = normalize_currency(self.from_currency)
        self.to_currency = normalize_currency(self.to_currency)
        if self.rate is None or self.rate <= 0:
            raise ValidationError("Conversion rate must be positive")

    def factor_for(self, currency: str) -> float:
        return self.rate if currency == self.from_currency else 1.0

    def currency_for(self, currency: str) -> str:
        return self.to_currency if currency == self.from_currency else currency


@dataclass
class SalaryClass:
    class_id: int
    class_date: object
    start_time: object
    end_time: object
    duration_minutes: float
    duration_hours: float
    hourly_rate: float
    salary: float
    student_id: int
    student_name: Optional[str]
    course_id: Optional[int]


@dataclass
class SalaryLine:
    teacher_id: int
    teacher_name: str
    month: str
    total_classes: int
    total_hours: float
    hourly_rate: float
    currency: str
    total_salary: float
    classes: List[SalaryClass] = field(default_factory=list)


def _month_label(year: int, month: int) -> str:
    return f"{year}-{month:02d}"


def _get_teacher(db: Session, teacher_id: int) -> Teacher:
    teacher = db.query(Teacher).filter(Teacher.id == teacher_id).first()
    if not teacher:
        raise NotFound(f"Teacher {teacher_id} not found")
    return teacher


def _attended_classes(db: Session, teacher_id: int, year: int, month: int):
    start, end = month_bounds(year, month)
    return (
        db.query(ClassRecord)
        .options(joinedload(ClassRecord.student))
        .filter(
            ClassRecord.teacher_id == teacher_id,
            ClassRecord.status == CLASS_ATTENDED,
            ClassRecord.class_date >= start,
            ClassRecord.class_date < end,
        )
        .order_by(ClassRecord.class_date, ClassRecord.start_time, ClassRecord.id)
        .all()
    )


def _breakdown(db: Session, teacher: Teacher, month: int, year: int,
               conversion: Optional[CurrencyConversion]) -> SalaryLine:
    factor = conversion.factor_for(teacher.currency) if conversion else 1.0
    currency = conversion.currency_for(teacher.currency) if conversion else teacher.currency
    rate = (teacher.hourly_rate or 0.0) * factor

    lines = []
    total_hours = 0.0
    for record in _attended_classes(db, teacher.id, year, month):
        hours = record.duration_hours
        total_hours += hours
        lines.append(SalaryClass(
            class_id=record.id,
            class_date=record.class_date,
            start_time=record.start_time,
            end_time=record.end_time,
            duration_minutes=record.duration_minutes,
            duration_hours=hours,
            hourly_rate=rate,
            salary=hours * rate,
            student_id=record.student_id,
            student_name=record.student.name if record.student else None,
            course_id=record.course_id,
        ))

    return SalaryLine(
        teacher_id=teacher.id,
        teacher_name=teacher.name,
        month=_month_label(year, month),
        total_classes=len(lines),
        total_hours=total_hours,
        hourly_rate=rate,
        currency=currency,
        total_salary=total_hours * rate,
        classes=lines,
    )


def compute_breakdown(db: Session, teacher_id: int, month: int, year: int,
                      conversion: Optional[CurrencyConversion] = None) -> SalaryLine:
    return _breakdown(db, _get_teacher(db, teacher_id), month, year, conversion)


def teachers_salaries(db: Session, month: int, year: int,
                      conversion: Optional[CurrencyConversion] = None,
                      teacher_id: Optional[int] = None) -> List[dict]:
    query = db.query(Teacher)
    if teacher_id is not None:
        query = query.filter(Teacher.id == teacher_id)

    result = []
    for teacher in query.order_by(Teacher.name, Teacher.id).all():
        line = _breakdown(db, teacher, month, year, conversion)
        result.append({
            "teacher_id": teacher.id,
            "teacher_name": teacher.name,
            "teacher_email": teacher.email,
            "hourly_rate": line.hourly_rate,
            "currency": line.currency,
            "month": line.month,
            "total_hours": line.total_hours,
            "total_classes": line.total_classes,
            "salary": line.total_salary,
            "status": teacher.status,
        })
    return result


def _totals_by_currency(lines: List[SalaryLine]) -> Dict[str, dict]:
    totals = {}
    for line in lines:
        if not line.total_classes:
            continue
        bucket = totals.setdefault(line.currency, {"teachers": 0, "salary": 0.0, "hours": 0.0, "classes": 0})
        bucket["teachers"] += 1
        bucket["salary"] += line.total_salary
        bucket["hours"] += line.total_hours
        bucket["classes"] += line.total_classes
    return totals


def salary_statistics(db: Session, month: int, year: int,
                      conversion: Optional[CurrencyConversion] = None) -> dict:
    """
    Organization-wide totals for the month against the previous month.
    Teachers paid in different currencies are never summed together.
    """
    teachers = db.query(Teacher).all()
    prev_year, prev_month = shift_month(year, month, -1)

    current = _totals_by_currency([_breakdown(db, t, month, year, conversion) for t in teachers])
    previous = _totals_by_currency([_breakdown(db, t, prev_month, prev_year, conversion) for t in teachers])

    by_currency = {}
    for currency in sorted(set(current) | set(previous)):
        now = current.get(currency, {"teachers": 0, "salary": 0.0, "hours": 0.0, "classes": 0})
        before = previous.get(currency, {"salary": 0.0})["salary"]
        by_currency[currency] = {
            "total_teachers": now["teachers"],
            "total_salary": now["salary"],
            "average_salary": now["salary"] / now["teachers"] if now["teachers"] else 0.0,
            "total_hours": now["hours"],
            "total_classes": now["classes"],
            "previous_month_salary": before,
            "salary_change_percentage": (now["salary"] - before) / before * 100 if before else 0.0,
        }

    return {"month": _month_label(year, month), "by_currency": by_currency}


def salary_history(db: Session, teacher_id: int, months: int, end_month: int, end_year: int,
                   conversion: Optional[CurrencyConversion] = None) -> List[dict]:
    """Monthly totals for the last `months` months, oldest first, ending at end_month."""
    if months < 1:
        raise ValidationError("months must be at least 1")
    teacher = _get_teacher(db, teacher_id)

    history = []
    for offset in range(months - 1, -1, -1):
        year, month = shift_month(end_year, end_month, -offset)
        line = _breakdown(db, teacher, month, year, conversion)
        history.append({
            "month": line.month,
            "month_name": f"{calendar.month_name[month]} {year}",
            "salary": line.total_salary,
            "hours": line.total_hours,
            "classes": line.total_classes,
            "currency": line.currency,
        })
    return history


def all_teachers_salary_history(db: Session, months: int, end_month: int, end_year: int,
                                conversion: Optional[CurrencyConversion] = None) -> List[dict]:
    """Organization-wide monthly payroll, oldest first, one total per currency."""
    if months < 1:
        raise ValidationError("months must be at least 1")
    teachers = db.query(Teacher).all()

    history = []
    for offset in range(months - 1, -1, -1):
        year, month = shift_month(end_year, end_month, -offset)
        totals = _totals_by_currency([_breakdown(db, t, month, year, conversion) for t in teachers])
        history.append({
            "month": _month_label(year, month),
            "month_name": f"{calendar.month_name[month]} {year}",
            "by_currency": {
                currency: {"total_salary": values["salary"], "teacher_count": values["teachers"]}
                for currency, values in sorted(totals.items())
            },
        })
    return history
