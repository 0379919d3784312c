import datetime

import pytest

from errors import NotFound, ValidationError
from models.teachers import Teacher
from services import consumption, salary
from services.salary import CurrencyConversion


@pytest.fixture
def attended(db, make_package, make_class):
    package = make_package(total_hours=50)

    def _attend(class_date, hours, teacher_id=None, start=(10, 0)):
        record = make_class(package, class_date, start=start, hours=hours, teacher_id=teacher_id)
        consumption.set_class_status(db, record.id, "attended")
        return record

    _attend.package = package
    return _attend


def test_breakdown_sums_attended_classes(db, teacher, attended, make_class):
    attended(datetime.date(2026, 3, 3), 1.5)
    attended(datetime.date(2026, 3, 10), 2)
    make_class(attended.package, datetime.date(2026, 3, 12), hours=3)  # still pending

    line = salary.compute_breakdown(db, teacher.id, 3, 2026)

    assert line.month == "2026-03"
    assert line.total_classes == 2
    assert line.total_hours == 3.5
    assert line.hourly_rate == 20
    assert line.total_salary == 70
    assert line.currency == "USD"
    assert [c.salary for c in line.classes] == [30, 40]
    assert line.classes[0].duration_minutes == 90


def test_conversion_is_display_only(db, teacher, attended):
    attended(datetime.date(2026, 3, 3), 1.5)
    attended(datetime.date(2026, 3, 10), 2)

    line = salary.compute_breakdown(db, teacher.id, 3, 2026, CurrencyConversion("USD", "EGP", 30))

    assert line.currency == "EGP"
    assert line.hourly_rate == 600
    assert line.total_salary == 2100
    assert [c.salary for c in line.classes] == [900, 1200]
    assert db.query(Teacher).filter(Teacher.id == teacher.id).one().hourly_rate == 20


def test_conversion_leaves_other_currencies_alone(db, make_teacher, attended):
    euro_teacher = make_teacher(name="Eva", hourly_rate=25, currency="EUR")
    attended(datetime.date(2026, 3, 3), 2, teacher_id=euro_teacher.id)

    line = salary.compute_breakdown(db, euro_teacher.id, 3, 2026, CurrencyConversion("USD", "EGP", 30))

    assert (line.currency, line.total_salary) == ("EUR", 50)


@pytest.mark.parametrize("rate", [0, -1, None])
def test_conversion_rate_must_be_positive(rate):
    with pytest.raises(ValidationError):
        CurrencyConversion("USD", "EGP", rate)


def test_breakdown_of_other_months_and_unknown_teacher(db, teacher, attended):
    attended(datetime.date(2026, 3, 31), 1)

    assert salary.compute_breakdown(db, teacher.id, 4, 2026).total_classes == 0
    with pytest.raises(NotFound):
        salary.compute_breakdown(db, 999, 3, 2026)
    with pytest.raises(ValidationError):
        salary.compute_breakdown(db, teacher.id, 13, 2026)


def test_teachers_salaries_lists_every_teacher(db, teacher, make_teacher, attended):
    make_teacher(name="Zed")
    attended(datetime.date(2026, 3, 3), 2)

    rows = salary.teachers_salaries(db, 3, 2026)

    assert [(r["teacher_name"], r["salary"], r["total_classes"]) for r in rows] == [
        ("Teacher", 40, 1),
        ("Zed", 0, 0),
    ]


def test_statistics_compare_with_previous_month(db, teacher, make_teacher, attended):
    other = make_teacher(name="Other", hourly_rate=10)
    make_teacher(name="Idle")
    attended(datetime.date(2026, 2, 20), 1)
    attended(datetime.date(2026, 3, 3), 4)
    attended(datetime.date(2026, 3, 4), 1, teacher_id=other.id)

    stats = salary.salary_statistics(db, 3, 2026)

    usd = stats["by_currency"]["USD"]
    assert stats["month"] == "2026-03"
    assert usd["total_teachers"] == 2
    assert usd["total_salary"] == 90
    assert usd["average_salary"] == 45
    assert usd["total_hours"] == 5
    assert usd["total_classes"] == 2
    assert usd["previous_month_salary"] == 20
    assert usd["salary_change_percentage"] == 350


def test_statistics_never_mix_currencies(db, teacher, make_teacher, attended):
    euro_teacher = make_teacher(name="Eva", hourly_rate=25, currency="EUR")
    attended(datetime.date(2026, 3, 3), 1)
    attended(datetime.date(2026, 3, 4), 2, teacher_id=euro_teacher.id)

    stats = salary.salary_statistics(db, 3, 2026)

    assert stats["by_currency"]["USD"]["total_salary"] == 20
    assert stats["by_currency"]["EUR"]["total_salary"] == 50
    assert stats["by_currency"]["EUR"]["salary_change_percentage"] == 0


def test_history_is_oldest_first_across_year_boundary(db, teacher, attended):
    attended(datetime.date(2025, 12, 15), 1)
    attended(datetime.date(2026, 2, 2), 2)

    history = salary.salary_history(db, teacher.id, 3, 2, 2026)

    assert [h["month"] for h in history] == ["2025-12", "2026-01", "2026-02"]
    assert [h["salary"] for h in history] == [20, 0, 40]
    assert history[0]["month_name"] == "December 2025"

    with pytest.raises(ValidationError):
        salary.salary_history(db, teacher.id, 0, 2, 2026)


def test_all_teachers_history_groups_per_currency(db, teacher, make_teacher, attended):
    euro_teacher = make_teacher(name="Eva", hourly_rate=25, currency="EUR")
    make_teacher(name="Idle")
    attended(datetime.date(2026, 1, 12), 2)
    attended(datetime.date(2026, 3, 3), 1)
    attended(datetime.date(2026, 3, 4), 2, teacher_id=euro_teacher.id)

    history = salary.all_teachers_salary_history(db, 3, 3, 2026)

    assert [h["month"] for h in history] == ["2026-01", "2026-02", "2026-03"]
    assert history[0]["by_currency"] == {"USD": {"total_salary": 40, "teacher_count": 1}}
    assert history[1]["by_currency"] == {}
    assert history[2]["by_currency"] == {
        "EUR": {"total_salary": 50, "teacher_count": 1},
        "USD": {"total_salary": 20, "teacher_count": 1},
    }

    converted = salary.all_teachers_salary_history(db, 1, 3, 2026, CurrencyConversion("USD", "EGP", 30))
    assert converted[0]["by_currency"]["EGP"] == {"total_salary": 600, "teacher_count": 1}


def test_all_teachers_history_needs_a_positive_window(db):
    with pytest.raises(ValidationError):
        salary.all_teachers_salary_history(db, 0, 3, 2026)
