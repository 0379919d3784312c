import datetime

import pytest

from errors import NotFound, PackageClosed, ValidationError
from models.bills import Bill
from models.packages import Package
from services import consumption


def attend(db, record):
    return consumption.set_class_status(db, record.id, "attended")["delta"]


def test_three_classes_exhaust_package_and_create_one_bill(db, make_package, make_class):
    package = make_package(total_hours=8, hour_price=10, currency="USD")
    first = make_class(package, datetime.date(2026, 3, 2), hours=3)
    second = make_class(package, datetime.date(2026, 3, 4), hours=3)
    third = make_class(package, datetime.date(2026, 3, 6), hours=2)

    delta = attend(db, first)
    assert delta.remaining_hours == 5
    assert delta.counter == 1
    assert delta.package_status == "active"

    attend(db, second)
    delta = attend(db, third)

    assert delta.remaining_hours == 0
    assert delta.counter == 3
    assert delta.cumulative_hours == 8
    assert delta.package_status == "finished"
    assert delta.closing_bill_id is not None

    bills = db.query(Bill).filter(Bill.package_id == package.id).all()
    assert len(bills) == 1
    assert bills[0].amount == 80
    assert bills[0].currency == "USD"
    assert bills[0].status == "unpaid"
    assert bills[0].is_custom is False


def test_reversal_restores_remaining_hours(db, make_package, make_class):
    package = make_package(total_hours=8)
    record = make_class(package, hours=1.5)

    attend(db, record)
    delta = consumption.set_class_status(db, record.id, "absent_student")["delta"]

    assert delta.remaining_hours == 8
    assert delta.counter == 0
    refreshed = db.query(Package).filter(Package.id == package.id).one()
    assert refreshed.consumed_hours == 0
    assert refreshed.status == "active"


def test_reverse_never_goes_below_zero(db, make_package, make_class):
    package = make_package(total_hours=4)
    record = make_class(package, hours=2)
    attend(db, record)

    # Simulate a counter that drifted below the applied hours
    stored = db.query(Package).filter(Package.id == package.id).one()
    stored.consumed_hours = 1.0
    db.commit()

    consumption.set_class_status(db, record.id, "cancelled_by_student")
    db.refresh(stored)
    assert stored.consumed_hours == 0
    assert stored.remaining_hours == 4


def test_backdated_class_is_ranked_by_date_not_creation(db, make_package, make_class):
    package = make_package(total_hours=10)
    late = make_class(package, datetime.date(2026, 3, 10), hours=2)
    attend(db, late)

    early = make_class(package, datetime.date(2026, 3, 3), hours=1)
    delta = attend(db, early)

    assert delta.counter == 1
    assert delta.cumulative_hours == 1
    rows = consumption.package_classes(db, package.id)
    assert [row["class"].id for row in rows] == [early.id, late.id]
    assert [row["counter"] for row in rows] == [1, 2]
    assert [row["cumulative_hours"] for row in rows] == [1, 3]


def test_same_slot_ties_are_broken_by_id(db, make_package, make_class):
    package = make_package(total_hours=10)
    a = make_class(package, datetime.date(2026, 3, 3), start=(9, 0))
    b = make_class(package, datetime.date(2026, 3, 3), start=(9, 0))
    attend(db, b)
    attend(db, a)

    rows = consumption.package_classes(db, package.id)
    assert [row["class"].id for row in rows] == [a.id, b.id]


def test_attendance_on_finished_package_is_rejected(db, make_package, make_class):
    package = make_package(total_hours=2)
    attend(db, make_class(package, hours=2))
    extra = make_class(package, datetime.date(2026, 3, 9), hours=1)

    with pytest.raises(PackageClosed):
        consumption.set_class_status(db, extra.id, "attended")

    db.refresh(extra)
    assert extra.status == "pending"
    assert db.query(Package).filter(Package.id == package.id).one().consumed_hours == 2


def test_marking_attended_twice_does_not_double_count(db, make_package, make_class):
    package = make_package(total_hours=8)
    record = make_class(package, hours=2)
    attend(db, record)
    delta = attend(db, record)

    assert delta is None
    assert db.query(Package).filter(Package.id == package.id).one().consumed_hours == 2


def test_overshoot_clamps_remaining_at_zero(db, make_package, make_class):
    package = make_package(total_hours=3)
    attend(db, make_class(package, hours=2))
    delta = attend(db, make_class(package, datetime.date(2026, 3, 5), hours=2))

    assert delta.remaining_hours == 0
    assert delta.consumed_hours == 4
    assert delta.package_status == "finished"


def test_trial_class_changes_status_without_package(db, make_student, make_class):
    student = make_student()
    trial = make_class(None, student_id=student.id)

    result = consumption.set_class_status(db, trial.id, "attended")

    assert result["delta"] is None
    assert result["class"].status == "attended"


def test_record_attendance_requires_package(db, make_student, make_class):
    trial = make_class(None, student_id=make_student().id)
    with pytest.raises(ValidationError):
        consumption.record_attendance(db, trial)


def test_unknown_status_and_class(db, make_package, make_class):
    record = make_class(make_package())
    with pytest.raises(ValidationError):
        consumption.set_class_status(db, record.id, "done")
    with pytest.raises(NotFound):
        consumption.set_class_status(db, 999, "attended")


def test_create_class_validates_times_and_ownership(db, make_package, make_student, teacher):
    package = make_package()
    other = make_student()
    day = datetime.date(2026, 3, 2)

    with pytest.raises(ValidationError):
        consumption.create_class(db, teacher.id, package.student_id, day,
                                 datetime.time(11, 0), datetime.time(10, 0), package_id=package.id)
    with pytest.raises(ValidationError):
        consumption.create_class(db, teacher.id, other.id, day,
                                 datetime.time(10, 0), datetime.time(11, 0), package_id=package.id)

    record = consumption.create_class(db, teacher.id, package.student_id, day,
                                      datetime.time(10, 0), datetime.time(11, 30), package_id=package.id)
    assert record.status == "pending"
    assert record.duration_hours == 1.5
