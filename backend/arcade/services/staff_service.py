from __future__ import annotations

from datetime import timedelta

import bcrypt
from flask import current_app

from arcade.extensions import db
from arcade.models import Staff, StaffLoan, LoanPayment
from arcade.models.staff import LOAN_STATUS_ACTIVE, LOAN_STATUS_PAID
from arcade.time_utils import parse_iso_date, utcnow
from arcade.validation import ConflictError, ValidationError, clean_str, coerce_cents


LOAN_TERM = timedelta(days=30)

_TEXT_FIELDS = {
    "first_name": 80,
    "last_name": 80,
    "email": 255,
    "phone": 32,
    "position": 80,
    "payment_terms": 64,
    "payment_method": 64,
}
_FLAG_FIELDS = ("is_active", "edit_financial_enabled", "delete_financial_enabled")


class StaffError(Exception):
    """Raised when staff or loan operations fail."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


def hash_pin(pin) -> str:
    pin = str(pin).strip()
    if not pin.isdigit() or not 4 <= len(pin) <= 8:
        raise ValidationError("PIN must be 4-8 digits")
    return bcrypt.hashpw(pin.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def list_staff(store_id: int) -> list[Staff]:
    return db.session.query(Staff).filter_by(store_id=store_id).order_by(
        Staff.last_name.asc(), Staff.first_name.asc(), Staff.id.asc()
    ).all()


def get_staff(staff_id: int) -> Staff:
    staff = db.session.get(Staff, staff_id)
    if not staff:
        raise StaffError("Staff member not found", status=404)
    return staff


def _apply_fields(staff: Staff, data: dict) -> None:
    if "username" in data:
        username = clean_str(data.get("username"), max_length=64, field="username")
        if not username:
            raise ValidationError("username is required")
        clash = db.session.query(Staff.id).filter(
            Staff.store_id == staff.store_id,
            Staff.username == username,
        )
        if staff.id is not None:
            clash = clash.filter(Staff.id != staff.id)
        if clash.first():
            raise ConflictError("A staff member with this username already exists in this store")
        staff.username = username

    for name, max_length in _TEXT_FIELDS.items():
        if name in data:
            setattr(staff, name, clean_str(data.get(name), max_length=max_length, field=name))

    for name in _FLAG_FIELDS:
        if name in data:
            setattr(staff, name, bool(data.get(name)))

    if "start_date" in data:
        try:
            staff.start_date = parse_iso_date(data.get("start_date"))
        except ValueError:
            raise ValidationError("start_date must be a date in YYYY-MM-DD format")

    if "payment_value_cents" in data:
        value = data.get("payment_value_cents")
        staff.payment_value_cents = (
            None if value in (None, "") else coerce_cents(value, "payment_value_cents", allow_negative=False)
        )

    if data.get("pin") not in (None, ""):
        staff.pin_hash = hash_pin(data["pin"])

    if not staff.first_name or not staff.last_name:
        raise ValidationError("first_name and last_name are required")


def create_staff(store_id: int, data: dict) -> list[Staff]:
    if not isinstance(data, dict):
        raise ValidationError("JSON body required")
    if "username" not in data:
        raise ValidationError("username is required")
    staff = Staff(store_id=store_id)
    _apply_fields(staff, data)
    db.session.add(staff)
    db.session.commit()
    return list_staff(store_id)


def update_staff(staff_id: int, data: dict) -> list[Staff]:
    staff = get_staff(staff_id)
    _apply_fields(staff, data or {})
    db.session.commit()
    return list_staff(staff.store_id)


def delete_staff(staff_id: int) -> list[Staff]:
    staff = get_staff(staff_id)
    store_id = staff.store_id
    db.session.delete(staff)
    db.session.commit()
    return list_staff(store_id)


def create_loan(staff_id: int, amount_cents, notes=None) -> list[Staff]:
    """Issue a loan due in 30 days. A staff member carries one active loan at a time."""
    staff = get_staff(staff_id)
    amount = coerce_cents(amount_cents, "amount_cents", allow_negative=False)
    if amount == 0:
        raise ValidationError("amount_cents must be greater than zero")

    current = staff.current_loan
    if current is not None and current.status == LOAN_STATUS_ACTIVE:
        raise StaffError("Staff member already has an active loan")

    issued_at = utcnow()
    staff.loans.insert(0, StaffLoan(
        amount_cents=amount,
        issued_at=issued_at,
        due_at=issued_at + LOAN_TERM,
        status=LOAN_STATUS_ACTIVE,
        notes=clean_str(notes, field="notes"),
    ))
    db.session.commit()
    current_app.logger.info("Issued loan of %s cents to staff %s", amount, staff.id)
    return list_staff(staff.store_id)


def add_loan_payment(staff_id: int, amount_cents, notes=None) -> list[Staff]:
    """Record a repayment; the loan becomes paid once repayments reach its amount."""
    staff = get_staff(staff_id)
    amount = coerce_cents(amount_cents, "amount_cents", allow_negative=False)
    if amount == 0:
        raise ValidationError("amount_cents must be greater than zero")

    loan = staff.current_loan
    if loan is None or loan.status != LOAN_STATUS_ACTIVE:
        raise StaffError("No active loan found for this staff member")

    loan.payments.append(LoanPayment(amount_cents=amount, paid_at=utcnow(), notes=clean_str(notes, field="notes")))
    if loan.paid_cents >= loan.amount_cents:
        loan.status = LOAN_STATUS_PAID
    db.session.commit()
    return list_staff(staff.store_id)
