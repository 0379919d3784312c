"""
Billing Aggregator
Bill summaries (per package / per student), custom bills, payment marking,
filtered listings with statistics and payment tokens for the external gateway.
Aggregation never converts currency: amounts are always grouped per currency.
"""
import datetime
import logging
import secrets
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from config import settings
from database import unit_of_work
from errors import Conflict, NotFound, PaymentGatewayError, ValidationError
from models.bills import Bill, BILL_PAID, BILL_UNPAID
from models.packages import Package
from models.students import Student
from services.gateway import MessageGateway, dispatch
from services.locks import bill_lock
from services.utils import as_set, check_year, month_bounds, normalize_currency, utcnow

logger = logging.getLogger(__name__)

BILL_STATUSES = (BILL_UNPAID, BILL_PAID)


@dataclass
class BillSummary:
    total_amount: float
    unpaid_amount: float
    bill_count: int
    currency: str

    def to_dict(self):
        return asdict(self)


def _summaries_by_currency(bills) -> Dict[str, BillSummary]:
    summaries = {}
    for bill in bills:
        summary = summaries.get(bill.currency)
        if summary is None:
            summary = summaries[bill.currency] = BillSummary(0.0, 0.0, 0, bill.currency)
        summary.total_amount += bill.amount
        summary.bill_count += 1
        if bill.status == BILL_UNPAID:
            summary.unpaid_amount += bill.amount
    return summaries


def get_bill(db: Session, bill_id: int) -> Bill:
    bill = db.query(Bill).filter(Bill.id == bill_id).first()
    if not bill:
        raise NotFound(f"Bill {bill_id} not found")
    return bill


def summarize(db: Session, package_id: int) -> BillSummary:
    package = db.query(Package).filter(Package.id == package_id).first()
    if not package:
        raise NotFound(f"Package {package_id} not found")

    bills = db.query(Bill).filter(Bill.package_id == package_id).all()
    summaries = _summaries_by_currency(bills)
    if not summaries:
        return BillSummary(0.0, 0.0, 0, package.currency)
    if len(summaries) > 1:
        # Unreachable through create_package_bill, which rejects foreign currencies
        raise Conflict(f"Package {package_id} has bills in several currencies")
    return next(iter(summaries.values()))


def summarize_student(db: Session, student_id: int) -> List[BillSummary]:
    """One summary per currency, custom and package bills together."""
    if not db.query(Student).filter(Student.id == student_id).first():
        raise NotFound(f"Student {student_id} not found")
    bills = db.query(Bill).filter(Bill.student_id == student_id).order_by(Bill.id).all()
    return sorted(_summaries_by_currency(bills).values(), key=lambda s: s.currency)


# =====================
# BILL CREATION
# =====================

def create_package_bill(db: Session, package: Package, amount: float,
                        teacher_id: Optional[int] = None, currency: Optional[str] = None) -> Bill:
    """
    Automatic closing bill of a package. Runs inside the caller's unit of work
    (flush only), so the bill commits together with the status change.
    """
    currency = normalize_currency(currency or package.currency)
    if currency != package.currency:
        raise ValidationError(
            f"Bill currency {currency} does not match package currency {package.currency}"
        )

    existing = db.query(Bill).filter(Bill.package_id == package.id, Bill.is_custom == False).first()  # noqa: E712
    if existing:
        raise Conflict(f"Package {package.id} already has bill {existing.id}")

    bill = Bill(
        package_id=package.id,
        student_id=package.student_id,
        teacher_id=teacher_id,
        amount=amount,
        currency=currency,
        status=BILL_UNPAID,
        bill_date=datetime.date.today(),
        is_custom=False,
        description=f"Package round {package.round_number}: {package.total_hours:g} hours",
    )
    db.add(bill)
    db.flush()
    logger.info("Created bill %s for package %s: %.2f %s", bill.id, package.id, amount, currency)
    return bill


def create_custom_bill(db: Session, student_id: int, amount: float, currency: str,
                       description: Optional[str] = None, bill_date: Optional[datetime.date] = None,
                       teacher_id: Optional[int] = None) -> Bill:
    if amount is None or amount <= 0:
        raise ValidationError("Bill amount must be positive")
    currency = normalize_currency(currency)
    if not db.query(Student).filter(Student.id == student_id).first():
        raise NotFound(f"Student {student_id} not found")

    with unit_of_work(db):
        bill = Bill(
            package_id=None,
            student_id=student_id,
            teacher_id=teacher_id,
            amount=amount,
            currency=currency,
            status=BILL_UNPAID,
            bill_date=bill_date or datetime.date.today(),
            is_custom=True,
            description=description,
        )
        db.add(bill)

    db.refresh(bill)
    logger.info("Created custom bill %s for student %s: %.2f %s", bill.id, student_id, amount, currency)
    return bill


# =====================
# PAYMENT
# =====================

def mark_paid(db: Session, bill_id: int, paid_at: Optional[datetime.datetime] = None,
              payment_method: Optional[str] = None) -> Bill:
    """
    Idempotent: a bill that is already paid is returned untouched, keeping the
    paid_at of the first successful call.
    """
    with bill_lock(bill_id):
        with unit_of_work(db):
            bill = (
                db.query(Bill)
                .populate_existing()
                .with_for_update()
                .filter(Bill.id == bill_id)
                .first()
            )
            if not bill:
                raise NotFound(f"Bill {bill_id} not found")
            if bill.status == BILL_PAID:
                logger.info("Bill %s already paid at %s; nothing to do", bill_id, bill.paid_at)
                return bill

            bill.status = BILL_PAID
            bill.paid_at = paid_at or utcnow()
            bill.payment_method = payment_method

    db.refresh(bill)
    logger.info("Bill %s marked paid (%s)", bill_id, payment_method or "unspecified")
    return bill


def generate_payment_token(db: Session, bill_id: int) -> dict:
    """Issue a token/link for the payment gateway. Repeated calls return the same token."""
    with bill_lock(bill_id):
        with unit_of_work(db):
            bill = db.query(Bill).populate_existing().with_for_update().filter(Bill.id == bill_id).first()
            if not bill:
                raise NotFound(f"Bill {bill_id} not found")
            if bill.status == BILL_PAID:
                raise Conflict(f"Bill {bill_id} is already paid")
            if not bill.payment_token:
                bill.payment_token = secrets.token_urlsafe(32)

    return {"token": bill.payment_token, "payment_url": f"{settings.payment_base_url}/{bill.payment_token}"}


def get_bill_by_token(db: Session, token: str) -> Bill:
    bill = db.query(Bill).filter(Bill.payment_token == token).first()
    if not bill:
        raise NotFound("Payment link is invalid or expired")
    return bill


def confirm_payment(db: Session, token: str, outcome: str, payment_method: Optional[str] = None,
                    reference: Optional[str] = None) -> Bill:
    """Gateway callback. Anything but a completed outcome leaves the bill unpaid."""
    bill = get_bill_by_token(db, token)
    if outcome != "completed":
        logger.warning("Payment for bill %s not completed (%s, ref=%s)", bill.id, outcome, reference)
        raise PaymentGatewayError(f"Payment for bill {bill.id} was not completed: {outcome}")
    return mark_paid(db, bill.id, payment_method=payment_method or "gateway")


def build_bill_message(bill: Bill) -> str:
    name = bill.student.name if bill.student else "Student"
    lines = [
        f"Hello {name},",
        f"Bill #{bill.id} dated {bill.bill_date.isoformat()}: {bill.amount:.2f} {bill.currency}.",
    ]
    if bill.description:
        lines.append(bill.description)
    if bill.status == BILL_PAID:
        lines.append("Status: paid. Thank you!")
    elif bill.payment_token:
        lines.append(f"Pay online: {settings.payment_base_url}/{bill.payment_token}")
    return "\n".join(lines)


def send_bill_whatsapp(db: Session, bill_id: int, gateway: MessageGateway,
                       whatsapp_number: Optional[str] = None) -> dict:
    """Send a bill to the student; an explicit number overrides the one on file."""
    bill = get_bill(db, bill_id)
    phone = (whatsapp_number or "").strip() or (bill.student.whatsapp_number if bill.student else None)

    reference = dispatch(gateway, phone, build_bill_message(bill))
    logger.info("Bill %s sent via WhatsApp to %s (ref %s)", bill_id, phone, reference)
    return {"bill_id": bill.id, "whatsapp_number": phone, "reference": reference}


# =====================
# LISTING & STATISTICS
# =====================

@dataclass
class BillFilters:
    year: Optional[int] = None
    month: Optional[int] = None
    status: object = None
    student_id: object = None
    teacher_id: object = None
    is_custom: Optional[bool] = None

    def __post_init__(self):
        self.status = as_set(self.status)
        self.student_id = as_set(self.student_id, int)
        self.teacher_id = as_set(self.teacher_id, int)
        if self.status and not self.status <= set(BILL_STATUSES):
            raise ValidationError(f"Unknown bill status: {', '.join(sorted(self.status - set(BILL_STATUSES)))}")
        if self.month is not None and self.year is None:
            raise ValidationError("month filter requires year")
        if self.year is not None:
            check_year(self.year)
        if self.month is not None and not 1 <= self.month <= 12:
            raise ValidationError(f"Invalid month: {self.month}")


def query_bills(db: Session, filters: BillFilters) -> List[Bill]:
    query = db.query(Bill)

    if filters.year is not None:
        if filters.month is not None:
            start, end = month_bounds(filters.year, filters.month)
        else:
            start, end = datetime.date(filters.year, 1, 1), datetime.date(filters.year + 1, 1, 1)
        query = query.filter(Bill.bill_date >= start, Bill.bill_date < end)
    if filters.status:
        query = query.filter(Bill.status.in_(filters.status))
    if filters.student_id:
        query = query.filter(Bill.student_id.in_(filters.student_id))
    if filters.teacher_id:
        query = query.filter(Bill.teacher_id.in_(filters.teacher_id))
    if filters.is_custom is not None:
        query = query.filter(Bill.is_custom == filters.is_custom)

    return query.order_by(Bill.bill_date.desc(), Bill.id.desc()).all()


def bill_statistics(bills) -> dict:
    """Totals per currency for all / paid / unpaid bills."""
    stats = {key: {"total": {}, "count": 0} for key in ("due", "paid", "unpaid")}
    for bill in bills:
        keys = ("due", "paid") if bill.status == BILL_PAID else ("due", "unpaid")
        for key in keys:
            bucket = stats[key]
            bucket["total"][bill.currency] = bucket["total"].get(bill.currency, 0.0) + bill.amount
            bucket["count"] += 1
    return stats


def list_bills(db: Session, filters: BillFilters) -> dict:
    """
    Bills grouped by YYYY-MM of bill_date. Statistics cover the whole filtered
    set, not a page of it.
    """
    bills = query_bills(db, filters)

    grouped = {}
    for bill in bills:
        key = f"{bill.bill_date.year}-{bill.bill_date.month:02d}"
        group = grouped.setdefault(key, {
            "year": bill.bill_date.year,
            "month": bill.bill_date.month,
            "bills": [],
            "paid": [],
            "unpaid": [],
        })
        group["bills"].append(bill)
        group["paid" if bill.status == BILL_PAID else "unpaid"].append(bill)

    return {"bills": grouped, "statistics": bill_statistics(bills)}


def billing_statistics(db: Session, year: int, month: int) -> dict:
    return bill_statistics(query_bills(db, BillFilters(year=year, month=month)))
