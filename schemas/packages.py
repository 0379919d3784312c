from pydantic import BaseModel
from datetime import date, datetime, time
from typing import Optional

from schemas.common import Hours, Money


class StudentOut(BaseModel):
    id: int
    name: str
    whatsapp_number: Optional[str]
    status: str

    class Config:
        from_attributes = True


class TeacherOut(BaseModel):
    id: int
    name: str
    email: Optional[str]
    hourly_rate: Money
    currency: str
    status: str

    class Config:
        from_attributes = True


class PackageOut(BaseModel):
    id: int
    student_id: int
    student: Optional[StudentOut] = None
    round_number: int
    start_date: date
    total_hours: Hours
    consumed_hours: Hours
    remaining_hours: Optional[Hours]
    hour_price: Money
    currency: str
    status: str
    completion_date: Optional[datetime]
    notification_count: int
    last_notification_sent: Optional[datetime]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class ClassOut(BaseModel):
    id: int
    package_id: Optional[int]
    teacher_id: int
    student_id: int
    course_id: Optional[int]
    class_date: date
    start_time: time
    end_time: time
    status: str
    duration_hours: Hours

    class Config:
        from_attributes = True


class PackageHourDeltaOut(BaseModel):
    package_id: int
    class_id: int
    duration_hours: Hours
    cumulative_hours: Hours
    counter: int
    consumed_hours: Hours
    remaining_hours: Optional[Hours]
    package_status: str
    closing_bill_id: Optional[int]

    class Config:
        from_attributes = True


class NotificationRecordOut(BaseModel):
    package_id: int
    notification_count: int
    last_notification_sent: Optional[datetime]

    class Config:
        from_attributes = True


class NotificationLogOut(BaseModel):
    id: int
    package_id: int
    kind: str
    sent_at: datetime

    class Config:
        from_attributes = True
