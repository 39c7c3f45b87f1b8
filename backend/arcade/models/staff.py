from __future__ import annotations

from ..extensions import db
from arcade.time_utils import to_utc_z, to_iso_date, utcnow


LOAN_STATUS_ACTIVE = "active"
LOAN_STATUS_PAID = "paid"
LOAN_STATUS_OVERDUE = "overdue"


class Staff(db.Model):
    """
    Arcade floor staff for a store.

    Staff members are records only; they do not log in. The store login
    account (User.staff_store_id) is what staff use to enter daily figures.
    """
    __tablename__ = "staff"
    __table_args__ = (
        db.UniqueConstraint("store_id", "username", name="uq_staff_store_username"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    username = db.Column(db.String(64), nullable=False)
    pin_hash = db.Column(db.String(255), nullable=True)
    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    position = db.Column(db.String(80), nullable=True)
    start_date = db.Column(db.Date, nullable=True)

    # Pay arrangement, e.g. terms="Weekly", value in cents, method="Cash"
    payment_terms = db.Column(db.String(64), nullable=True)
    payment_value_cents = db.Column(db.Integer, nullable=True)
    payment_method = db.Column(db.String(64), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    edit_financial_enabled = db.Column(db.Boolean, nullable=False, default=False)
    delete_financial_enabled = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    store = db.relationship("Store", backref=db.backref("staff_members", lazy=True))
    loans = db.relationship(
        "StaffLoan",
        order_by="StaffLoan.issued_at.desc()",
        cascade="all, delete-orphan",
        back_populates="staff",
    )

    @property
    def current_loan(self) -> "StaffLoan | None":
        return self.loans[0] if self.loans else None

    def to_dict(self) -> dict:
        loan = self.current_loan
        return {
            "id": self.id,
            "store_id": self.store_id,
            "username": self.username,
            "has_pin": self.pin_hash is not None,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "position": self.position,
            "start_date": to_iso_date(self.start_date),
            "payment_terms": self.payment_terms,
            "payment_value_cents": self.payment_value_cents,
            "payment_method": self.payment_method,
            "is_active": self.is_active,
            "edit_financial_enabled": self.edit_financial_enabled,
            "delete_financial_enabled": self.delete_financial_enabled,
            "loan": loan.to_dict() if loan else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StaffLoan(db.Model):
    """
    Cash advance to a staff member.

    LIFECYCLE:
    - active: issued, repayments accumulating
    - paid: repayments reached the loan amount

    "overdue" is never stored; it is reported for active loans past due_at.
    """
    __tablename__ = "staff_loans"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    issued_at = db.Column(db.DateTime(timezone=True), nullable=False)
    due_at = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=LOAN_STATUS_ACTIVE)
    notes = db.Column(db.Text, nullable=True)

    staff = db.relationship("Staff", back_populates="loans")
    payments = db.relationship(
        "LoanPayment",
        order_by="LoanPayment.paid_at",
        cascade="all, delete-orphan",
        back_populates="loan",
    )

    @property
    def paid_cents(self) -> int:
        return sum(payment.amount_cents for payment in self.payments)

    @property
    def outstanding_cents(self) -> int:
        return max(self.amount_cents - self.paid_cents, 0)

    def effective_status(self, now=None) -> str:
        if self.status == LOAN_STATUS_ACTIVE and self.due_at < (now or utcnow()):
            return LOAN_STATUS_OVERDUE
        return self.status

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "staff_id": self.staff_id,
            "amount_cents": self.amount_cents,
            "paid_cents": self.paid_cents,
            "outstanding_cents": self.outstanding_cents,
            "issued_at": to_utc_z(self.issued_at),
            "due_at": to_utc_z(self.due_at),
            "status": self.effective_status(),
            "notes": self.notes,
            "payments": [payment.to_dict() for payment in self.payments],
        }


class LoanPayment(db.Model):
    __tablename__ = "staff_loan_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    loan_id = db.Column(db.Integer, db.ForeignKey("staff_loans.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    loan = db.relationship("StaffLoan", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "paid_at": to_utc_z(self.paid_at),
            "notes": self.notes,
        }
