from sqlalchemy import Column, Integer, String, Float, Date, Time, ForeignKey
from sqlalchemy.orm import relationship
from database import Base
from datetime import datetime

CLASS_PENDING = "pending"
CLASS_ATTENDED = "attended"
CLASS_STATUSES = (
    CLASS_PENDING,
    CLASS_ATTENDED,
    "absent_student",
    "cancelled_by_teacher",
    "cancelled_by_student",
)


class ClassRecord(Base):
    __tablename__ = "classes"

    id = Column(Integer, primary_key=True, index=True)
    package_id = Column(Integer, ForeignKey("packages.id"), nullable=True, index=True)  # None for trial classes
    teacher_id = Column(Integer, ForeignKey("teachers.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    course_id = Column(Integer, nullable=True)

    class_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String(30), nullable=False, default=CLASS_PENDING)

    # Hours applied to the package while attended; reversal subtracts exactly this
    consumed_hours = Column(Float, nullable=True)

    package = relationship("Package")
    teacher = relationship("Teacher")
    student = relationship("Student")

    @property
    def duration_minutes(self):
        start = datetime.combine(self.class_date, self.start_time)
        end = datetime.combine(self.class_date, self.end_time)
        return (end - start).total_seconds() / 60

    @property
    def duration_hours(self):
        return self.duration_minutes / 60
