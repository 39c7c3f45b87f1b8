# Overview: Persistence for daily ledger records, keyed by store and date.

from __future__ import annotations

from datetime import date
from typing import Iterable

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import FinancialRecord, RevenueLineItem, ExpenseLineItem, Store
from .concurrency import lock_for_update
from .ledger_errors import DuplicateDate, RecordNotFound


class SqlLedgerRepository:
    """
    Ledger storage over the Flask-SQLAlchemy session.

    Every write flushes immediately so a failing row surfaces on the call
    that wrote it. Nothing here commits; the ledger service owns the unit
    of work and decides between commit and rollback.
    """

    def __init__(self, session=None):
        self.session = session or db.session

    def store_exists(self, store_id: int) -> bool:
        return self.session.query(Store.id).filter_by(id=store_id).first() is not None

    def lock_store(self, store_id: int) -> Store | None:
        """Take the store row lock for the rest of the transaction."""
        return lock_for_update(self.session.query(Store).filter_by(id=store_id)).first()

    def find_by_id(self, record_id: int) -> FinancialRecord | None:
        return self.session.get(FinancialRecord, record_id)

    def find_by_store_and_date(self, store_id: int, record_date: date) -> FinancialRecord | None:
        return self.session.query(FinancialRecord).filter_by(
            store_id=store_id,
            record_date=record_date,
        ).first()

    def find_by_store_since(self, store_id: int, since: date | None) -> list[FinancialRecord]:
        """Records on or after `since` (all records when None), oldest first."""
        query = self.session.query(FinancialRecord).filter(FinancialRecord.store_id == store_id)
        if since is not None:
            query = query.filter(FinancialRecord.record_date >= since)
        return query.order_by(FinancialRecord.record_date.asc(), FinancialRecord.id.asc()).all()

    def find_latest_before(self, store_id: int, before: date) -> FinancialRecord | None:
        return self.session.query(FinancialRecord).filter(
            FinancialRecord.store_id == store_id,
            FinancialRecord.record_date < before,
        ).order_by(FinancialRecord.record_date.desc(), FinancialRecord.id.desc()).first()

    def find_all_by_store(self, store_id: int) -> list[FinancialRecord]:
        """Every record for the store, newest first."""
        return self.session.query(FinancialRecord).filter(
            FinancialRecord.store_id == store_id,
        ).order_by(FinancialRecord.record_date.desc(), FinancialRecord.id.desc()).all()

    def find_all_for_stores(self, store_ids: Iterable[int]) -> list[FinancialRecord]:
        """Records across several stores, newest first."""
        store_ids = list(store_ids)
        if not store_ids:
            return []
        return self.session.query(FinancialRecord).filter(
            FinancialRecord.store_id.in_(store_ids),
        ).order_by(
            FinancialRecord.record_date.desc(),
            FinancialRecord.store_id.asc(),
            FinancialRecord.id.desc(),
        ).all()

    def insert(self, store_id: int, record_date: date, revenue_lines: Iterable, expense_lines: Iterable, fields: dict) -> FinancialRecord:
        record = FinancialRecord(store_id=store_id, record_date=record_date, **fields)
        self._set_lines(record, revenue_lines, expense_lines)
        self.session.add(record)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise DuplicateDate(store_id, record_date) from exc
        return record

    def replace_lines(self, record: FinancialRecord, revenue_lines: Iterable | None, expense_lines: Iterable | None) -> None:
        """Swap out line items. None leaves that side untouched."""
        if revenue_lines is not None:
            record.revenue_lines = [
                RevenueLineItem(
                    position=position,
                    source_id=line.source_id,
                    source_name=line.source_name,
                    amount_cents=line.amount_cents,
                )
                for position, line in enumerate(revenue_lines)
            ]
        if expense_lines is not None:
            record.expense_lines = [
                ExpenseLineItem(
                    position=position,
                    description=line.description,
                    amount_cents=line.amount_cents,
                    category=line.category,
                )
                for position, line in enumerate(expense_lines)
            ]

    def update(self, record_id: int, fields: dict) -> FinancialRecord:
        record = self.find_by_id(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        store_id = record.store_id
        for name, value in fields.items():
            setattr(record, name, value)
        try:
            self.session.flush()
        except IntegrityError as exc:
            if "record_date" in fields:
                raise DuplicateDate(store_id, fields["record_date"]) from exc
            raise
        return record

    def delete(self, record_id: int) -> None:
        record = self.find_by_id(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        self.session.delete(record)
        self.session.flush()

    def delete_all_for_store(self, store_id: int) -> int:
        records = self.session.query(FinancialRecord).filter_by(store_id=store_id).all()
        for record in records:
            self.session.delete(record)
        self.session.flush()
        return len(records)

    def _set_lines(self, record: FinancialRecord, revenue_lines: Iterable, expense_lines: Iterable) -> None:
        self.replace_lines(record, list(revenue_lines), list(expense_lines))
