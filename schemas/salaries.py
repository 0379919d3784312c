from pydantic import BaseModel
from datetime import date, time
from typing import Dict, List, Optional

from schemas.common import Hours, Money


class SalaryClassOut(BaseModel):
    class_id: int
    class_date: date
    start_time: time
    end_time: time
    duration_minutes: float
    duration_hours: Hours
    hourly_rate: Money
    salary: Money
    student_id: int
    student_name: Optional[str]
    course_id: Optional[int]

    class Config:
        from_attributes = True


class SalaryLineOut(BaseModel):
    teacher_id: int
    teacher_name: str
    month: str
    total_classes: int
    total_hours: Hours
    hourly_rate: Money
    currency: str
    total_salary: Money
    classes: List[SalaryClassOut]

    class Config:
        from_attributes = True


class TeacherSalaryOut(BaseModel):
    teacher_id: int
    teacher_name: str
    teacher_email: Optional[str]
    hourly_rate: Money
    currency: str
    month: str
    total_hours: Hours
    total_classes: int
    salary: Money
    status: str


class SalaryStatisticsOut(BaseModel):
    total_teachers: int
    total_salary: Money
    average_salary: Money
    total_hours: Hours
    total_classes: int
    previous_month_salary: Money
    salary_change_percentage: Money


class SalaryHistoryOut(BaseModel):
    month: str
    month_name: str
    salary: Money
    hours: Hours
    classes: int
    currency: str


class CurrencyPayrollOut(BaseModel):
    total_salary: Money
    teacher_count: int


class PayrollHistoryOut(BaseModel):
    month: str
    month_name: str
    by_currency: Dict[str, CurrencyPayrollOut]
