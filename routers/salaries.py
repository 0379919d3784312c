"""
Salary Router - teacher salaries, breakdowns, statistics and history.
Conversion params only change the returned view (e.g. convert_from=USD&convert_to=EGP&rate=30).
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from database import get_db
from config import settings
from schemas.salaries import (
    PayrollHistoryOut, SalaryHistoryOut, SalaryLineOut, SalaryStatisticsOut, TeacherSalaryOut,
)
from services import salary
from typing import Optional
from datetime import date

router = APIRouter(prefix="/api/v1/salaries", tags=["Salaries"])


def get_conversion(convert_from: Optional[str] = None, convert_to: Optional[str] = None,
                   rate: Optional[float] = None):
    if not convert_to:
        return None
    return salary.CurrencyConversion(
        from_currency=convert_from or "USD",
        to_currency=convert_to,
        rate=rate if rate is not None else settings.default_conversion_rate,
    )


def resolve_period(month: Optional[int], year: Optional[int]):
    today = date.today()
    return (month if month is not None else today.month), (year if year is not None else today.year)


@router.get("")
def list_salaries(
    month: Optional[int] = None,
    year: Optional[int] = None,
    teacher_id: Optional[int] = None,
    conversion: Optional[salary.CurrencyConversion] = Depends(get_conversion),
    db: Session = Depends(get_db)
):
    month, year = resolve_period(month, year)
    rows = salary.teachers_salaries(db, month, year, conversion=conversion, teacher_id=teacher_id)
    return {"status": "success", "data": [TeacherSalaryOut(**row) for row in rows]}


@router.get("/statistics")
def get_statistics(
    month: Optional[int] = None,
    year: Optional[int] = None,
    conversion: Optional[salary.CurrencyConversion] = Depends(get_conversion),
    db: Session = Depends(get_db)
):
    """Totals, average and previous month, grouped per currency"""
    month, year = resolve_period(month, year)
    stats = salary.salary_statistics(db, month, year, conversion=conversion)
    return {
        "status": "success",
        "data": {
            "month": stats["month"],
            "by_currency": {
                currency: SalaryStatisticsOut(**values) for currency, values in stats["by_currency"].items()
            },
        },
    }


@router.get("/history")
def get_all_teachers_history(
    months: int = 12,
    month: Optional[int] = None,
    year: Optional[int] = None,
    conversion: Optional[salary.CurrencyConversion] = Depends(get_conversion),
    db: Session = Depends(get_db)
):
    """Payroll per month for all teachers, for the comparison chart"""
    month, year = resolve_period(month, year)
    rows = salary.all_teachers_salary_history(db, months, month, year, conversion=conversion)
    return {"status": "success", "data": [PayrollHistoryOut(**row) for row in rows]}


@router.get("/{teacher_id}/breakdown")
def get_breakdown(
    teacher_id: int,
    month: Optional[int] = None,
    year: Optional[int] = None,
    conversion: Optional[salary.CurrencyConversion] = Depends(get_conversion),
    db: Session = Depends(get_db)
):
    month, year = resolve_period(month, year)
    line = salary.compute_breakdown(db, teacher_id, month, year, conversion=conversion)
    return {"status": "success", "data": SalaryLineOut.model_validate(line)}


@router.get("/{teacher_id}/history")
def get_history(
    teacher_id: int,
    months: int = 12,
    month: Optional[int] = None,
    year: Optional[int] = None,
    conversion: Optional[salary.CurrencyConversion] = Depends(get_conversion),
    db: Session = Depends(get_db)
):
    month, year = resolve_period(month, year)
    rows = salary.salary_history(db, teacher_id, months, month, year, conversion=conversion)
    return {"status": "success", "data": [SalaryHistoryOut(**row) for row in rows]}
