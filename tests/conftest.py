import os

os.environ["DATABASE_URL"] = "sqlite://"

import datetime

import pytest
from fastapi.testclient import TestClient

import main
from database import Base, SessionLocal, engine
from errors import DispatchFailed
from models.classes import ClassRecord
from models.students import Student
from models.teachers import Teacher
from services import lifecycle
from services.gateway import MessageGateway, get_message_gateway


class FakeGateway(MessageGateway):
    """Records messages; numbers listed in fail_for are rejected like a provider error."""

    def __init__(self):
        self.sent = []
        self.fail_for = set()

    def send(self, phone, message):
        if phone in self.fail_for:
            raise DispatchFailed(f"Gateway rejected {phone}")
        self.sent.append((phone, message))
        return f"ref-{len(self.sent)}"


@pytest.fixture(autouse=True)
def fresh_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(gateway):
    main.app.dependency_overrides[get_message_gateway] = lambda: gateway
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


@pytest.fixture
def make_student(db):
    counter = {"n": 0}

    def _make(name=None, whatsapp_number="+201001234567", status="active"):
        counter["n"] += 1
        student = Student(name=name or f"Student {counter['n']}", whatsapp_number=whatsapp_number, status=status)
        db.add(student)
        db.commit()
        db.refresh(student)
        return student

    return _make


@pytest.fixture
def make_teacher(db):
    def _make(name="Teacher", hourly_rate=20.0, currency="USD", email=None):
        teacher = Teacher(name=name, hourly_rate=hourly_rate, currency=currency, email=email)
        db.add(teacher)
        db.commit()
        db.refresh(teacher)
        return teacher

    return _make


@pytest.fixture
def teacher(make_teacher):
    return make_teacher()


@pytest.fixture
def make_package(db, make_student):
    def _make(student=None, total_hours=8, hour_price=10, currency="USD", start_date=datetime.date(2026, 3, 1)):
        student = student or make_student()
        return lifecycle.create_package(db, student.id, total_hours, hour_price, currency, start_date)

    return _make


@pytest.fixture
def make_class(db, teacher):
    def _make(package=None, class_date=datetime.date(2026, 3, 2), start=(10, 0), hours=1.0,
              student_id=None, teacher_id=None):
        start_time = datetime.time(*start)
        end = datetime.datetime.combine(class_date, start_time) + datetime.timedelta(hours=hours)
        record = ClassRecord(
            package_id=package.id if package else None,
            teacher_id=teacher_id or teacher.id,
            student_id=student_id or package.student_id,
            class_date=class_date,
            start_time=start_time,
            end_time=end.time(),
            status="pending",
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    return _make
