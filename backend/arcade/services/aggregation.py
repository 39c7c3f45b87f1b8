# Overview: Pure daily totals for ledger records; no database access.

"""
Daily aggregation for the cash ledger.

Given a day's revenue lines (per machine, may be negative for payouts) and
expense lines (never negative), compute:

    total_money_in_cents  = sum of positive revenue amounts
    total_money_out_cents = sum(abs(negative revenue)) + sum(expenses)
    daily_profit_cents    = in - out

All amounts are integer cents.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from ..models.financials import EXPENSE_CATEGORIES, DEFAULT_EXPENSE_CATEGORY
from ..validation import ValidationError, coerce_cents, clean_str
from .ledger_errors import InvalidAmount


@dataclass(frozen=True)
class RevenueLine:
    source_id: str
    source_name: str
    amount_cents: int


@dataclass(frozen=True)
class ExpenseLine:
    description: str
    amount_cents: int
    category: str = DEFAULT_EXPENSE_CATEGORY


@dataclass(frozen=True)
class DailyTotals:
    total_money_in_cents: int
    total_money_out_cents: int
    daily_profit_cents: int

    def as_fields(self) -> dict:
        return {
            "total_money_in_cents": self.total_money_in_cents,
            "total_money_out_cents": self.total_money_out_cents,
            "daily_profit_cents": self.daily_profit_cents,
        }


def _amount_of(line: Any, field: str) -> int:
    value = getattr(line, "amount_cents", line)
    # bool is an int subclass; True is not an amount
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{field} must be an integer amount in cents, got {value!r}")
    return value


def aggregate(revenue_lines: Iterable[Any], expense_lines: Iterable[Any]) -> DailyTotals:
    """
    Compute a day's totals from its line items.

    Lines may be RevenueLine/ExpenseLine values or stored line rows; bare
    ints are totalled as amounts. Only RevenueLine/ExpenseLine values can be
    written to the ledger.
    Raises InvalidAmount for non-integer amounts or negative expenses.
    """
    money_in = 0
    money_out = 0

    for index, line in enumerate(revenue_lines):
        amount = _amount_of(line, f"revenue_lines[{index}].amount_cents")
        if amount > 0:
            money_in += amount
        else:
            money_out += -amount

    for index, line in enumerate(expense_lines):
        amount = _amount_of(line, f"expense_lines[{index}].amount_cents")
        if amount < 0:
            raise InvalidAmount(f"expense_lines[{index}].amount_cents cannot be negative")
        money_out += amount

    return DailyTotals(
        total_money_in_cents=money_in,
        total_money_out_cents=money_out,
        daily_profit_cents=money_in - money_out,
    )


def _payload_cents(value: Any, field: str, *, allow_negative: bool) -> int:
    try:
        return coerce_cents(value, field, allow_negative=allow_negative)
    except ValidationError as exc:
        raise InvalidAmount(str(exc)) from exc


def revenue_lines_from_payload(items: Any) -> list[RevenueLine]:
    """Convert request JSON into RevenueLine values (amounts may be negative)."""
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationError("revenue_lines must be a list")

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"revenue_lines[{index}] must be an object")
        source_name = clean_str(item.get("source_name"), max_length=120, field=f"revenue_lines[{index}].source_name")
        if not source_name:
            raise ValidationError(f"revenue_lines[{index}].source_name is required")
        source_id = item.get("source_id")
        source_id = str(source_id).strip() if source_id not in (None, "") else source_name
        lines.append(RevenueLine(
            source_id=source_id[:64],
            source_name=source_name,
            amount_cents=_payload_cents(
                item.get("amount_cents"), f"revenue_lines[{index}].amount_cents", allow_negative=True
            ),
        ))
    return lines


def expense_lines_from_payload(items: Any) -> list[ExpenseLine]:
    """Convert request JSON into ExpenseLine values (amounts must be >= 0)."""
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationError("expense_lines must be a list")

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"expense_lines[{index}] must be an object")
        description = clean_str(item.get("description"), max_length=255, field=f"expense_lines[{index}].description")
        if not description:
            raise ValidationError(f"expense_lines[{index}].description is required")
        category = item.get("category") or DEFAULT_EXPENSE_CATEGORY
        if category not in EXPENSE_CATEGORIES:
            raise ValidationError(
                f"expense_lines[{index}].category must be one of: {', '.join(EXPENSE_CATEGORIES)}"
            )
        lines.append(ExpenseLine(
            description=description,
            amount_cents=_payload_cents(
                item.get("amount_cents"), f"expense_lines[{index}].amount_cents", allow_negative=False
            ),
            category=category,
        ))
    return lines
