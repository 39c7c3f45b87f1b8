# Overview: Service-layer operations for the daily cash ledger; owns the running balance chain.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..time_utils import parse_iso_date, to_iso_date
from ..validation import ValidationError, coerce_cents, clean_str
from .access_service import readable_store_ids
from .aggregation import aggregate, RevenueLine, ExpenseLine
from .concurrency import TRANSIENT_ERRORS, LockTimeoutError, run_with_retry, store_ledger_lock
from .ledger_errors import (
    ConcurrencyConflict,
    DuplicateDate,
    PersistenceError,
    RecordNotFound,
    StoreNotFound,
)
from .ledger_repository import SqlLedgerRepository

"""
Ledger invariants (authoritative)

- Records of one store are ordered by record_date; at most one per date.
- cash_balance[i] = cash_balance[i-1] + daily_profit[i], with the balance
  before the first record taken as 0.
- Balances are derived here only. Values sent by clients are discarded.
- Every mutation is one transaction: take the store lock, apply the change,
  walk forward from the earliest affected date, commit. A failure anywhere
  rolls the whole unit back.
"""

# Client fields that never reach the database
IGNORED_CLIENT_FIELDS = frozenset({
    "cash_balance",
    "cash_balance_cents",
    "moneyBalance",
    "total_money_in_cents",
    "total_money_out_cents",
    "daily_profit_cents",
    "cash_variance_cents",
})

EDITABLE_FIELDS = frozenset({
    "record_date",
    "revenue_lines",
    "expense_lines",
    "notes",
    "actual_cash_count_cents",
    "store_id",
    "id",
})


@dataclass
class RecalculationResult:
    store_id: int
    anchor_date: date | None
    starting_balance_cents: int
    final_balance_cents: int
    records: list[dict] = field(default_factory=list)
    changed_count: int = 0

    def to_dict(self) -> dict:
        return {
            "store_id": self.store_id,
            "anchor_date": to_iso_date(self.anchor_date),
            "starting_balance_cents": self.starting_balance_cents,
            "final_balance_cents": self.final_balance_cents,
            "records": self.records,
            "changed_count": self.changed_count,
        }


def _repo(repository) -> SqlLedgerRepository:
    return repository if repository is not None else SqlLedgerRepository()


def _coerce_date(value: Any, field_name: str = "record_date") -> date:
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a date in YYYY-MM-DD format")
    if parsed is None:
        raise ValidationError(f"{field_name} is required")
    return parsed


def _line_values(lines: Any, kind: type, field_name: str) -> list:
    if isinstance(lines, (str, bytes, dict)):
        raise ValidationError(f"{field_name} must be a list of {kind.__name__} values")
    lines = list(lines)
    for index, line in enumerate(lines):
        if not isinstance(line, kind):
            raise ValidationError(f"{field_name}[{index}] must be a {kind.__name__}, got {type(line).__name__}")
    return lines


def _optional_cents(value: Any, field_name: str) -> int | None:
    if value is None or value == "":
        return None
    return coerce_cents(value, field_name, allow_negative=False)


def discard_client_balances(payload: dict | None, *, context: str) -> dict:
    """Drop balance/derived fields a client sent and log that they were ignored."""
    if not payload:
        return {}
    ignored = sorted(key for key in payload if key in IGNORED_CLIENT_FIELDS)
    if ignored:
        current_app.logger.debug("Ignoring client-supplied ledger fields %s on %s", ignored, context)
    return {key: value for key, value in payload.items() if key not in IGNORED_CLIENT_FIELDS}


def _snapshot(repo: SqlLedgerRepository, store_id: int) -> list[dict]:
    return [record.to_dict() for record in repo.find_all_by_store(store_id)]


def _require_locked_store(repo: SqlLedgerRepository, store_id: int) -> None:
    if repo.lock_store(store_id) is None:
        raise StoreNotFound(store_id)


def _run_unit(store_id: int, work: Callable[[], Any]) -> Any:
    """
    Run `work` as one locked, committed unit for a store.

    Transient database errors and PersistenceError are retried from the top:
    the propagation restarts from its anchor, so a retry reaches the same
    result. Lock timeouts surface as ConcurrencyConflict.
    """
    config = current_app.config

    def _attempt():
        with store_ledger_lock(store_id, timeout=config["LEDGER_LOCK_TIMEOUT_SECONDS"]):
            # Rows loaded before the lock may predate another writer's commit
            db.session.expire_all()
            try:
                result = work()
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
            return result

    try:
        return run_with_retry(
            _attempt,
            attempts=config["LEDGER_RETRY_ATTEMPTS"],
            backoff_base=config["LEDGER_RETRY_BACKOFF_SECONDS"],
            retry_on=TRANSIENT_ERRORS + (PersistenceError,),
        )
    except LockTimeoutError as exc:
        raise ConcurrencyConflict(str(exc)) from exc
    except TRANSIENT_ERRORS as exc:
        raise PersistenceError(store_id, cause=exc) from exc


def _check_unique_dates(store_id: int, records: list) -> None:
    for previous, current in zip(records, records[1:]):
        if previous.record_date == current.record_date:
            raise DuplicateDate(store_id, current.record_date)


def _propagate(
    repo: SqlLedgerRepository,
    store_id: int,
    effective_date: date | None,
    recompute_profit: bool,
) -> RecalculationResult:
    """
    Walk the chain forward from effective_date inside the current unit.

    Anchor is the latest record strictly before effective_date; its balance
    seeds the running total (0 when there is none). Rows whose values are
    already correct are not rewritten.
    """
    anchor = repo.find_latest_before(store_id, effective_date) if effective_date is not None else None
    running = anchor.cash_balance_cents if anchor is not None else 0
    starting = running

    records = repo.find_by_store_since(store_id, effective_date)
    _check_unique_dates(store_id, records)

    applied: list[tuple[int, date]] = []
    summary: list[dict] = []
    changed = 0

    for index, record in enumerate(records):
        fields = {}
        if recompute_profit:
            totals = aggregate(record.revenue_lines, record.expense_lines)
            for name, value in totals.as_fields().items():
                if getattr(record, name) != value:
                    fields[name] = value
            profit = totals.daily_profit_cents
        else:
            profit = record.daily_profit_cents

        balance = running + profit
        if record.cash_balance_cents != balance:
            fields["cash_balance_cents"] = balance

        if fields:
            try:
                repo.update(record.id, fields)
            except SQLAlchemyError as exc:
                raise PersistenceError(
                    store_id,
                    applied=applied,
                    failed=(record.id, record.record_date),
                    remaining=[(later.id, later.record_date) for later in records[index + 1:]],
                    cause=exc,
                ) from exc
            changed += 1

        applied.append((record.id, record.record_date))
        summary.append({
            "id": record.id,
            "record_date": to_iso_date(record.record_date),
            "cash_balance_cents": balance,
        })
        running = balance

    current_app.logger.info(
        "Ledger store=%s from=%s: %s records walked, %s rewritten, closing balance %s",
        store_id, to_iso_date(effective_date) or "start", len(records), changed, running,
    )
    return RecalculationResult(
        store_id=store_id,
        anchor_date=anchor.record_date if anchor is not None else None,
        starting_balance_cents=starting,
        final_balance_cents=running,
        records=summary,
        changed_count=changed,
    )


def recalculate_from(
    store_id: int,
    effective_date: date | None = None,
    *,
    recompute_profit: bool = False,
    repository=None,
) -> RecalculationResult:
    """
    Recompute cash balances for every record on or after effective_date.

    None means the whole chain. With recompute_profit the day totals are
    rebuilt from stored line items first. Running it twice is a no-op the
    second time.
    """
    repo = _repo(repository)

    def _work():
        _require_locked_store(repo, store_id)
        return _propagate(repo, store_id, effective_date, recompute_profit)

    return _run_unit(store_id, _work)


def create_record(
    store_id: int,
    record_date: Any,
    revenue_lines: list[RevenueLine],
    expense_lines: list[ExpenseLine],
    *,
    notes: str | None = None,
    actual_cash_count_cents: Any = None,
    created_by: str | None = None,
    repository=None,
) -> list[dict]:
    """
    Add a day to a store's ledger and return the ledger, newest first.

    Totals are computed before anything is written. The record is inserted
    with a provisional balance of 0 and the chain is walked from its date,
    which fixes its own balance and every later one.
    """
    repo = _repo(repository)
    record_date = _coerce_date(record_date)
    revenue_lines = _line_values(revenue_lines, RevenueLine, "revenue_lines")
    expense_lines = _line_values(expense_lines, ExpenseLine, "expense_lines")
    totals = aggregate(revenue_lines, expense_lines)
    fields = {
        **totals.as_fields(),
        "cash_balance_cents": 0,
        "actual_cash_count_cents": _optional_cents(actual_cash_count_cents, "actual_cash_count_cents"),
        "notes": clean_str(notes, field="notes"),
        "created_by": created_by,
        "updated_by": created_by,
    }

    def _work():
        _require_locked_store(repo, store_id)
        if repo.find_by_store_and_date(store_id, record_date) is not None:
            raise DuplicateDate(store_id, record_date)
        repo.insert(store_id, record_date, revenue_lines, expense_lines, fields)
        _propagate(repo, store_id, record_date, False)
        return _snapshot(repo, store_id)

    return _run_unit(store_id, _work)


def _store_id_of(repo: SqlLedgerRepository, record_id: int) -> int:
    record = repo.find_by_id(record_id)
    if record is None:
        raise RecordNotFound(record_id)
    return record.store_id


def edit_record(record_id: int, changes: dict, *, updated_by: str | None = None, repository=None) -> list[dict]:
    """
    Apply changes to one day and re-walk the chain from the earliest date touched.

    `changes` may carry record_date, revenue_lines, expense_lines (as
    RevenueLine/ExpenseLine values), notes and actual_cash_count_cents.
    store_id cannot change. A move onto an occupied date raises DuplicateDate.
    """
    repo = _repo(repository)
    changes = discard_client_balances(changes, context=f"record {record_id}")
    unknown = sorted(set(changes) - EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}")

    new_date = _coerce_date(changes["record_date"]) if "record_date" in changes else None
    new_revenue = (
        _line_values(changes["revenue_lines"], RevenueLine, "revenue_lines")
        if changes.get("revenue_lines") is not None else None
    )
    new_expense = (
        _line_values(changes["expense_lines"], ExpenseLine, "expense_lines")
        if changes.get("expense_lines") is not None else None
    )
    new_count = (
        _optional_cents(changes["actual_cash_count_cents"], "actual_cash_count_cents")
        if "actual_cash_count_cents" in changes else None
    )
    if new_revenue is not None or new_expense is not None:
        # Validate whatever was sent before touching the database
        aggregate(new_revenue or [], new_expense or [])

    store_id = _store_id_of(repo, record_id)
    if "store_id" in changes and changes["store_id"] not in (None, ""):
        try:
            requested_store = int(changes["store_id"])
        except (TypeError, ValueError):
            raise ValidationError("store_id must be an integer")
        if requested_store != store_id:
            raise ValidationError("store_id of a financial record cannot be changed")

    def _work():
        _require_locked_store(repo, store_id)
        record = repo.find_by_id(record_id)
        if record is None:
            raise RecordNotFound(record_id)

        old_date = record.record_date
        fields: dict = {"updated_by": updated_by}

        if new_date is not None and new_date != old_date:
            if repo.find_by_store_and_date(store_id, new_date) is not None:
                raise DuplicateDate(store_id, new_date)
            fields["record_date"] = new_date

        if new_revenue is not None or new_expense is not None:
            repo.replace_lines(record, new_revenue, new_expense)
            totals = aggregate(record.revenue_lines, record.expense_lines)
            fields.update(totals.as_fields())

        if "notes" in changes:
            fields["notes"] = clean_str(changes["notes"], field="notes")
        if "actual_cash_count_cents" in changes:
            fields["actual_cash_count_cents"] = new_count

        repo.update(record_id, fields)
        anchor = min(old_date, fields.get("record_date", old_date))
        _propagate(repo, store_id, anchor, False)
        return _snapshot(repo, store_id)

    return _run_unit(store_id, _work)


def delete_record(record_id: int, *, repository=None) -> list[dict]:
    """Remove one day and re-walk every later day from the removed date."""
    repo = _repo(repository)
    store_id = _store_id_of(repo, record_id)

    def _work():
        _require_locked_store(repo, store_id)
        record = repo.find_by_id(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        removed_date = record.record_date
        repo.delete(record_id)
        _propagate(repo, store_id, removed_date, False)
        return _snapshot(repo, store_id)

    return _run_unit(store_id, _work)


def get_record(record_id: int, *, repository=None):
    record = _repo(repository).find_by_id(record_id)
    if record is None:
        raise RecordNotFound(record_id)
    return record


def fetch_ledger(store_id: int, *, repository=None) -> list[dict]:
    """Read-only ledger snapshot, newest first. Never recalculates."""
    repo = _repo(repository)
    if not repo.store_exists(store_id):
        raise StoreNotFound(store_id)
    return _snapshot(repo, store_id)


def fetch_owner_ledger(user, *, repository=None) -> list[dict]:
    """Every record the user can read across all of their stores, newest first."""
    records = _repo(repository).find_all_for_stores(readable_store_ids(user))
    return [record.to_dict() for record in records]


def verify_ledger(store_id: int, *, repository=None) -> dict:
    """
    Check a store's ledger against the chain and aggregation rules.

    Read-only. Reports each mismatch; an empty issue list means the
    stored values are exactly what a full recalculation would produce.
    """
    repo = _repo(repository)
    if not repo.store_exists(store_id):
        raise StoreNotFound(store_id)

    records = repo.find_by_store_since(store_id, None)
    issues = []
    running = 0
    previous_date = None

    for record in records:
        if record.record_date == previous_date:
            issues.append({
                "record_id": record.id,
                "record_date": to_iso_date(record.record_date),
                "field": "record_date",
                "expected": "unique",
                "actual": "duplicate",
            })
        totals = aggregate(record.revenue_lines, record.expense_lines)
        for name, expected in totals.as_fields().items():
            actual = getattr(record, name)
            if actual != expected:
                issues.append({
                    "record_id": record.id,
                    "record_date": to_iso_date(record.record_date),
                    "field": name,
                    "expected": expected,
                    "actual": actual,
                })
        running += record.daily_profit_cents
        if record.cash_balance_cents != running:
            issues.append({
                "record_id": record.id,
                "record_date": to_iso_date(record.record_date),
                "field": "cash_balance_cents",
                "expected": running,
                "actual": record.cash_balance_cents,
            })
        # Later expectations follow the stored balance so one bad row is reported once
        running = record.cash_balance_cents
        previous_date = record.record_date

    return {
        "store_id": store_id,
        "record_count": len(records),
        "ok": not issues,
        "issues": issues,
    }
