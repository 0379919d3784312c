import datetime
import threading

import pytest
from sqlalchemy.orm import sessionmaker

from database import Base, build_engine
from errors import PackageClosed
from models.bills import Bill
from models.classes import ClassRecord
from models.packages import Package
from models.students import Student
from models.teachers import Teacher
from services import consumption, lifecycle, notifications


@pytest.fixture
def file_sessions(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


def run_in_threads(factory, jobs):
    """Run each job(session) in its own thread; returns results or raised errors in order."""
    outcomes = [None] * len(jobs)
    barrier = threading.Barrier(len(jobs))

    def worker(index, job):
        session = factory()
        try:
            barrier.wait()
            outcomes[index] = job(session)
        except Exception as exc:
            outcomes[index] = exc
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(i, job)) for i, job in enumerate(jobs)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return outcomes


@pytest.fixture
def seeded(file_sessions):
    session = file_sessions()
    student = Student(name="Racer", whatsapp_number="+201001234567")
    teacher = Teacher(name="Tutor", hourly_rate=20, currency="USD")
    session.add_all([student, teacher])
    session.commit()

    package = lifecycle.create_package(session, student.id, 2, 10, "USD", datetime.date(2026, 3, 1))
    class_ids = []
    for day in range(2, 6):
        record = ClassRecord(
            package_id=package.id, teacher_id=teacher.id, student_id=student.id,
            class_date=datetime.date(2026, 3, day),
            start_time=datetime.time(10, 0), end_time=datetime.time(11, 0), status="pending",
        )
        session.add(record)
        session.commit()
        class_ids.append(record.id)

    ids = {"package_id": package.id, "class_ids": class_ids}
    session.close()
    return ids


def test_concurrent_attendance_closes_package_once(file_sessions, seeded):
    jobs = [
        (lambda class_id: lambda session: consumption.set_class_status(session, class_id, "attended"))(class_id)
        for class_id in seeded["class_ids"]
    ]

    outcomes = run_in_threads(file_sessions, jobs)

    successes = [o for o in outcomes if isinstance(o, dict)]
    closed = [o for o in outcomes if isinstance(o, PackageClosed)]
    assert len(successes) == 2
    assert len(closed) == 2

    session = file_sessions()
    package = session.query(Package).filter(Package.id == seeded["package_id"]).one()
    assert package.status == "finished"
    assert package.consumed_hours == 2
    assert session.query(Bill).filter(Bill.package_id == package.id).count() == 1
    assert session.query(ClassRecord).filter(ClassRecord.status == "attended").count() == 2
    session.close()


def test_concurrent_dispatches_are_all_counted(file_sessions, seeded):
    session = file_sessions()
    lifecycle.close_package(session, seeded["package_id"])
    session.close()

    package_id = seeded["package_id"]
    jobs = [lambda s: notifications.record_dispatch(s, package_id) for _ in range(8)]

    outcomes = run_in_threads(file_sessions, jobs)

    assert not [o for o in outcomes if isinstance(o, Exception)]
    session = file_sessions()
    assert notifications.notification_count(session, package_id) == 8
    assert len(notifications.notification_history(session, package_id)) == 8
    session.close()
