from __future__ import annotations

from ..extensions import db
from arcade.time_utils import to_utc_z, to_iso_date


EXPENSE_CATEGORIES = ("Utilities", "Maintenance", "Supplies", "Payroll", "Other")
DEFAULT_EXPENSE_CATEGORY = "Other"


class FinancialRecord(db.Model):
    """
    One day of a store's cash reconciliation ledger.

    LEDGER: cash_balance_cents is never written by callers. It is derived by
    the recalculation engine as the previous record's balance plus this
    record's daily profit, walking the store's records in record_date order.

    Derived totals (money in/out, profit) are filled in by the aggregation
    step before persistence. The model carries no save hooks.
    """
    __tablename__ = "financial_records"
    __table_args__ = (
        db.UniqueConstraint("store_id", "record_date", name="uq_financial_records_store_date"),
        db.Index("ix_financial_records_store_date", "store_id", "record_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    record_date = db.Column(db.Date, nullable=False)

    # Aggregates (cents)
    total_money_in_cents = db.Column(db.BigInteger, nullable=False, default=0)
    total_money_out_cents = db.Column(db.BigInteger, nullable=False, default=0)
    daily_profit_cents = db.Column(db.BigInteger, nullable=False, default=0)

    # Running balance, engine-owned
    cash_balance_cents = db.Column(db.BigInteger, nullable=False, default=0)

    # Counted cash for audit; never feeds the chain
    actual_cash_count_cents = db.Column(db.BigInteger, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=True)
    updated_by = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    store = db.relationship("Store", backref=db.backref("financial_records", lazy=True))
    revenue_lines = db.relationship(
        "RevenueLineItem",
        order_by="RevenueLineItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
        back_populates="record",
    )
    expense_lines = db.relationship(
        "ExpenseLineItem",
        order_by="ExpenseLineItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
        back_populates="record",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<FinancialRecord id={self.id} store_id={self.store_id} date={self.record_date}>"

    @property
    def cash_variance_cents(self) -> int | None:
        if self.actual_cash_count_cents is None:
            return None
        return self.actual_cash_count_cents - self.cash_balance_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "record_date": to_iso_date(self.record_date),
            "revenue_lines": [line.to_dict() for line in self.revenue_lines],
            "expense_lines": [line.to_dict() for line in self.expense_lines],
            "total_money_in_cents": self.total_money_in_cents,
            "total_money_out_cents": self.total_money_out_cents,
            "daily_profit_cents": self.daily_profit_cents,
            "cash_balance_cents": self.cash_balance_cents,
            "actual_cash_count_cents": self.actual_cash_count_cents,
            "cash_variance_cents": self.cash_variance_cents,
            "notes": self.notes,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class RevenueLineItem(db.Model):
    """Per-machine takings for a day. Negative amounts are payouts."""
    __tablename__ = "financial_revenue_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    record_id = db.Column(db.Integer, db.ForeignKey("financial_records.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    source_id = db.Column(db.String(64), nullable=False)
    source_name = db.Column(db.String(120), nullable=False)
    amount_cents = db.Column(db.BigInteger, nullable=False)

    record = db.relationship("FinancialRecord", back_populates="revenue_lines")

    def to_dict(self) -> dict:
        return {
            "source_id": self.source_id,
            "source_name": self.source_name,
            "amount_cents": self.amount_cents,
        }


class ExpenseLineItem(db.Model):
    __tablename__ = "financial_expense_lines"
    __table_args__ = (
        db.CheckConstraint("amount_cents >= 0", name="ck_financial_expense_lines_amount_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    record_id = db.Column(db.Integer, db.ForeignKey("financial_records.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    category = db.Column(db.String(32), nullable=False, default=DEFAULT_EXPENSE_CATEGORY)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    record = db.relationship("FinancialRecord", back_populates="expense_lines")

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "amount_cents": self.amount_cents,
            "category": self.category,
        }
