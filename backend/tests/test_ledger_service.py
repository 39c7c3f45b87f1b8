# Overview: Pytest coverage for the daily ledger engine and its running cash balance.

"""
Ledger Engine Tests

Every mutation must leave each store's chain consistent:
cash_balance[n] == cash_balance[n-1] + daily_profit[n], starting from 0.

Coverage:
- create / edit / delete propagation
- duplicate dates, invalid amounts, unknown records and stores
- idempotent recalculation and repair of corrupted rows
- partial-failure reporting when a row cannot be written
- store lock timeouts
- random create/edit/move/delete sequences keep the chain intact
"""

import random
from datetime import date

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from arcade.models import FinancialRecord
from arcade.services import ledger_service, store_service
from arcade.services.aggregation import ExpenseLine, RevenueLine
from arcade.services.concurrency import store_ledger_lock
from arcade.services.ledger_errors import (
    ConcurrencyConflict,
    DuplicateDate,
    InvalidAmount,
    PersistenceError,
    RecordNotFound,
    StoreNotFound,
)
from arcade.services.ledger_repository import SqlLedgerRepository
from arcade.validation import ValidationError


def day(n: int) -> date:
    return date(2024, 3, n)


def revenue(amount: int, name: str = "Pac-Man") -> RevenueLine:
    return RevenueLine(source_id=name.lower(), source_name=name, amount_cents=amount)


def expense(amount: int, description: str = "Tokens") -> ExpenseLine:
    return ExpenseLine(description=description, amount_cents=amount, category="Supplies")


def add_day(store_id: int, n: int, profit: int) -> list[dict]:
    """Create a day whose profit is `profit` cents."""
    if profit >= 0:
        return ledger_service.create_record(store_id, day(n), [revenue(profit)], [])
    return ledger_service.create_record(store_id, day(n), [], [expense(-profit)])


def balances(snapshot: list[dict]) -> dict:
    return {item["record_date"]: item["cash_balance_cents"] for item in snapshot}


def assert_chain(snapshot: list[dict]) -> None:
    """Snapshots are newest first; walk them oldest first."""
    dates = [item["record_date"] for item in snapshot]
    assert dates == sorted(dates, reverse=True)
    running = 0
    for item in reversed(snapshot):
        running += item["daily_profit_cents"]
        assert item["cash_balance_cents"] == running, item


class FailingRepository(SqlLedgerRepository):
    """Repository whose update fails for one record id."""

    def __init__(self, failing_record_id: int):
        super().__init__()
        self.failing_record_id = failing_record_id
        self.update_calls = 0

    def update(self, record_id, fields):
        if record_id == self.failing_record_id:
            self.update_calls += 1
            raise SQLAlchemyError("disk I/O error")
        return super().update(record_id, fields)


class LockWaitTimeoutRepository(SqlLedgerRepository):
    """Repository whose store row lock always hits the database lock timeout."""

    def __init__(self):
        super().__init__()
        self.lock_calls = 0

    def lock_store(self, store_id):
        self.lock_calls += 1
        raise OperationalError(
            "SELECT stores.id FROM stores WHERE stores.id = ? FOR UPDATE",
            (store_id,),
            Exception("canceling statement due to lock timeout"),
        )


class TestCreate:

    def test_first_record_balance_is_its_profit(self, db_session, store):
        snapshot = ledger_service.create_record(
            store.id, day(1), [revenue(12000), revenue(3000, "Galaga")], [expense(2000)],
        )
        assert len(snapshot) == 1
        record = snapshot[0]
        assert record["total_money_in_cents"] == 15000
        assert record["total_money_out_cents"] == 2000
        assert record["daily_profit_cents"] == 13000
        assert record["cash_balance_cents"] == 13000
        assert [line["source_name"] for line in record["revenue_lines"]] == ["Pac-Man", "Galaga"]

    def test_snapshot_is_newest_first(self, db_session, store):
        add_day(store.id, 1, 100)
        add_day(store.id, 2, 200)
        snapshot = add_day(store.id, 3, 300)
        assert [item["record_date"] for item in snapshot] == ["2024-03-03", "2024-03-02", "2024-03-01"]
        assert_chain(snapshot)

    def test_insert_in_middle_propagates_forward(self, db_session, store):
        add_day(store.id, 1, 50)
        snapshot = add_day(store.id, 3, 30)
        assert balances(snapshot) == {"2024-03-03": 80, "2024-03-01": 50}

        snapshot = add_day(store.id, 2, 20)
        assert balances(snapshot) == {"2024-03-03": 100, "2024-03-02": 70, "2024-03-01": 50}
        assert_chain(snapshot)

    def test_backdated_record_before_first_day(self, db_session, store):
        add_day(store.id, 5, 500)
        snapshot = add_day(store.id, 1, -200)
        assert balances(snapshot) == {"2024-03-05": 300, "2024-03-01": -200}

    def test_duplicate_date_rejected_and_ledger_unchanged(self, db_session, store):
        add_day(store.id, 1, 50)
        before = add_day(store.id, 2, 25)

        with pytest.raises(DuplicateDate) as excinfo:
            add_day(store.id, 2, 9999)

        assert excinfo.value.record_date == day(2)
        assert ledger_service.fetch_ledger(store.id) == before

    def test_negative_expense_rejected_before_any_write(self, db_session, store):
        with pytest.raises(InvalidAmount):
            ledger_service.create_record(store.id, day(1), [revenue(100)], [expense(-5)])
        assert ledger_service.fetch_ledger(store.id) == []

    def test_bare_amounts_rejected_before_any_write(self, db_session, store):
        with pytest.raises(ValidationError):
            ledger_service.create_record(store.id, day(1), [100], [])
        with pytest.raises(ValidationError):
            ledger_service.create_record(store.id, day(1), [revenue(100)], [revenue(5)])
        assert ledger_service.fetch_ledger(store.id) == []

    def test_invalid_date_rejected(self, db_session, store):
        with pytest.raises(ValidationError):
            ledger_service.create_record(store.id, "March 1st", [revenue(100)], [])

    def test_unknown_store(self, db_session):
        with pytest.raises(StoreNotFound):
            ledger_service.create_record(424242, day(1), [revenue(100)], [])

    def test_metadata_is_stored(self, db_session, store):
        snapshot = ledger_service.create_record(
            store.id, day(1), [revenue(1000)], [],
            notes="  Busy Saturday  ",
            actual_cash_count_cents=950,
            created_by="pixe1234",
        )
        record = snapshot[0]
        assert record["notes"] == "Busy Saturday"
        assert record["actual_cash_count_cents"] == 950
        assert record["cash_variance_cents"] == -50
        assert record["created_by"] == "pixe1234"

    def test_stores_are_independent(self, db_session, owner, store):
        other, _ = store_service.create_store(owner, name="Retro Room")
        add_day(store.id, 1, 100)
        add_day(other.id, 1, 7)
        snapshot = add_day(other.id, 2, 3)

        assert balances(snapshot) == {"2024-03-02": 10, "2024-03-01": 7}
        assert balances(ledger_service.fetch_ledger(store.id)) == {"2024-03-01": 100}


class TestDelete:

    def test_delete_restores_later_balances(self, db_session, store):
        add_day(store.id, 1, 50)
        add_day(store.id, 3, 30)
        snapshot = add_day(store.id, 2, 20)
        day_two = next(item for item in snapshot if item["record_date"] == "2024-03-02")

        snapshot = ledger_service.delete_record(day_two["id"])

        assert balances(snapshot) == {"2024-03-03": 80, "2024-03-01": 50}
        assert_chain(snapshot)

    def test_delete_first_record(self, db_session, store):
        first = add_day(store.id, 1, 50)[0]
        add_day(store.id, 2, 20)
        snapshot = ledger_service.delete_record(first["id"])
        assert balances(snapshot) == {"2024-03-02": 20}

    def test_delete_last_record(self, db_session, store):
        add_day(store.id, 1, 50)
        last = add_day(store.id, 2, 20)[0]
        assert balances(ledger_service.delete_record(last["id"])) == {"2024-03-01": 50}

    def test_delete_unknown_record(self, db_session, store):
        with pytest.raises(RecordNotFound):
            ledger_service.delete_record(987654)

    def test_line_items_removed_with_record(self, db_session, store):
        record = ledger_service.create_record(store.id, day(1), [revenue(100)], [expense(10)])[0]
        ledger_service.delete_record(record["id"])
        assert db_session.query(FinancialRecord).count() == 0


class TestEdit:

    def _ids_by_date(self, snapshot):
        return {item["record_date"]: item["id"] for item in snapshot}

    def test_amount_edit_propagates(self, db_session, store):
        add_day(store.id, 1, 100)
        add_day(store.id, 2, 200)
        ids = self._ids_by_date(add_day(store.id, 3, 300))

        snapshot = ledger_service.edit_record(
            ids["2024-03-02"],
            {"revenue_lines": [revenue(500)], "expense_lines": [expense(50)]},
            updated_by="olive",
        )

        edited = next(item for item in snapshot if item["id"] == ids["2024-03-02"])
        assert edited["daily_profit_cents"] == 450
        assert edited["updated_by"] == "olive"
        assert balances(snapshot) == {"2024-03-03": 850, "2024-03-02": 550, "2024-03-01": 100}
        assert_chain(snapshot)

    def test_date_change_reorders_chain(self, db_session, store):
        add_day(store.id, 1, 10)
        add_day(store.id, 3, 30)
        add_day(store.id, 4, 40)
        add_day(store.id, 6, 60)
        moved = add_day(store.id, 5, 5)
        ids = self._ids_by_date(moved)

        snapshot = ledger_service.edit_record(ids["2024-03-05"], {"record_date": "2024-03-02"})

        assert [item["record_date"] for item in snapshot] == [
            "2024-03-06", "2024-03-04", "2024-03-03", "2024-03-02", "2024-03-01",
        ]
        assert balances(snapshot) == {
            "2024-03-01": 10,
            "2024-03-02": 15,
            "2024-03-03": 45,
            "2024-03-04": 85,
            "2024-03-06": 145,
        }
        assert_chain(snapshot)

    def test_date_moved_later(self, db_session, store):
        first = add_day(store.id, 1, 10)[0]
        add_day(store.id, 2, 20)
        snapshot = ledger_service.edit_record(first["id"], {"record_date": "2024-03-09"})
        assert balances(snapshot) == {"2024-03-09": 30, "2024-03-02": 20}

    def test_date_collision_rejected(self, db_session, store):
        add_day(store.id, 1, 10)
        before = add_day(store.id, 2, 20)
        ids = self._ids_by_date(before)

        with pytest.raises(DuplicateDate):
            ledger_service.edit_record(ids["2024-03-02"], {"record_date": "2024-03-01"})
        assert ledger_service.fetch_ledger(store.id) == before

    def test_client_balances_ignored(self, db_session, store):
        add_day(store.id, 1, 10)
        record = add_day(store.id, 2, 20)[0]

        snapshot = ledger_service.edit_record(
            record["id"],
            {"notes": "recount", "cash_balance_cents": 1_000_000, "moneyBalance": 5, "daily_profit_cents": 1},
        )
        edited = next(item for item in snapshot if item["id"] == record["id"])
        assert edited["cash_balance_cents"] == 30
        assert edited["daily_profit_cents"] == 20
        assert edited["notes"] == "recount"

    def test_store_id_cannot_change(self, db_session, owner, store):
        other, _ = store_service.create_store(owner, name="Retro Room")
        record = add_day(store.id, 1, 10)[0]
        with pytest.raises(ValidationError):
            ledger_service.edit_record(record["id"], {"store_id": other.id})

    def test_same_store_id_is_accepted(self, db_session, store):
        record = add_day(store.id, 1, 10)[0]
        snapshot = ledger_service.edit_record(record["id"], {"store_id": store.id, "notes": "ok"})
        assert snapshot[0]["notes"] == "ok"

    def test_unknown_field_rejected(self, db_session, store):
        record = add_day(store.id, 1, 10)[0]
        with pytest.raises(ValidationError):
            ledger_service.edit_record(record["id"], {"weather": "rainy"})

    def test_invalid_lines_rejected_before_write(self, db_session, store):
        before = add_day(store.id, 1, 10)
        with pytest.raises(InvalidAmount):
            ledger_service.edit_record(before[0]["id"], {"expense_lines": [expense(-1)]})
        assert ledger_service.fetch_ledger(store.id) == before

    def test_bare_amount_lines_rejected(self, db_session, store):
        before = add_day(store.id, 1, 10)
        with pytest.raises(ValidationError):
            ledger_service.edit_record(before[0]["id"], {"revenue_lines": [250]})
        assert ledger_service.fetch_ledger(store.id) == before

    def test_none_lines_left_unchanged(self, db_session, store):
        add_day(store.id, 1, 500)
        record = add_day(store.id, 2, 300)[0]
        snapshot = ledger_service.edit_record(
            record["id"], {"notes": "recount", "revenue_lines": None, "expense_lines": None},
        )
        assert snapshot[0]["revenue_lines"] == record["revenue_lines"]
        assert balances(snapshot) == {"2024-03-02": 800, "2024-03-01": 500}

    def test_unknown_record(self, db_session, store):
        with pytest.raises(RecordNotFound):
            ledger_service.edit_record(555555, {"notes": "x"})


class TestRecalculate:

    def _corrupt_balances(self, db_session, store_id):
        for record in db_session.query(FinancialRecord).filter_by(store_id=store_id).all():
            record.cash_balance_cents = 0
        db_session.commit()

    def test_recalculate_is_idempotent(self, db_session, store):
        add_day(store.id, 1, 100)
        add_day(store.id, 2, -40)
        add_day(store.id, 3, 25)

        first = ledger_service.recalculate_from(store.id, day(1))
        second = ledger_service.recalculate_from(store.id, day(1))

        assert first.records == second.records
        assert second.changed_count == 0
        assert second.final_balance_cents == 85

    def test_recalculate_from_middle_uses_anchor(self, db_session, store):
        add_day(store.id, 1, 100)
        add_day(store.id, 2, 50)
        add_day(store.id, 3, 25)
        self._corrupt_balances(db_session, store.id)

        result = ledger_service.recalculate_from(store.id, day(3))

        assert result.anchor_date == day(2)
        assert result.starting_balance_cents == 0
        assert result.records == [{"id": result.records[0]["id"], "record_date": "2024-03-03", "cash_balance_cents": 25}]

    def test_full_recalculation_repairs_chain(self, db_session, store):
        add_day(store.id, 1, 100)
        add_day(store.id, 2, 50)
        add_day(store.id, 3, 25)
        self._corrupt_balances(db_session, store.id)

        result = ledger_service.recalculate_from(store.id)

        assert result.changed_count == 3
        assert result.final_balance_cents == 175
        assert_chain(ledger_service.fetch_ledger(store.id))

    def test_recompute_profit_rebuilds_totals(self, db_session, store):
        record = add_day(store.id, 1, 100)[0]
        row = db_session.get(FinancialRecord, record["id"])
        row.daily_profit_cents = 1
        row.total_money_in_cents = 1
        db_session.commit()

        report = ledger_service.verify_ledger(store.id)
        assert not report["ok"]
        assert {issue["field"] for issue in report["issues"]} == {
            "total_money_in_cents", "daily_profit_cents", "cash_balance_cents",
        }

        ledger_service.recalculate_from(store.id, recompute_profit=True)

        report = ledger_service.verify_ledger(store.id)
        assert report == {"store_id": store.id, "record_count": 1, "ok": True, "issues": []}

    def test_unknown_store(self, db_session):
        with pytest.raises(StoreNotFound):
            ledger_service.recalculate_from(31337)

    def test_partial_failure_reports_progress_and_rolls_back(self, app, db_session, store):
        add_day(store.id, 1, 100)
        add_day(store.id, 2, 50)
        snapshot = add_day(store.id, 3, 25)
        ids = {item["record_date"]: item["id"] for item in snapshot}
        self._corrupt_balances(db_session, store.id)

        repository = FailingRepository(ids["2024-03-02"])
        with pytest.raises(PersistenceError) as excinfo:
            ledger_service.recalculate_from(store.id, repository=repository)

        error = excinfo.value
        assert error.applied_through == day(1)
        assert error.failed_at == day(2)
        assert "applied through 2024-03-01, failed at 2024-03-02" in str(error)
        payload = error.to_dict()
        assert payload["applied_record_ids"] == [ids["2024-03-01"]]
        assert payload["failed_record_id"] == ids["2024-03-02"]
        assert payload["unreached_record_ids"] == [ids["2024-03-03"]]

        # Retried wholesale, then rolled back: nothing was committed
        assert repository.update_calls == app.config["LEDGER_RETRY_ATTEMPTS"]
        db_session.expire_all()
        assert all(item["cash_balance_cents"] == 0 for item in ledger_service.fetch_ledger(store.id))


class TestFetchAndLock:

    def test_fetch_is_read_only(self, db_session, store):
        add_day(store.id, 1, 100)
        record = db_session.query(FinancialRecord).filter_by(store_id=store.id).one()
        record.cash_balance_cents = 5
        db_session.commit()

        assert ledger_service.fetch_ledger(store.id)[0]["cash_balance_cents"] == 5

    def test_fetch_unknown_store(self, db_session):
        with pytest.raises(StoreNotFound):
            ledger_service.fetch_ledger(99999)

    def test_lock_timeout_is_concurrency_conflict(self, app, db_session, store, monkeypatch):
        monkeypatch.setitem(app.config, "LEDGER_LOCK_TIMEOUT_SECONDS", 0.05)
        with store_ledger_lock(store.id, timeout=1):
            with pytest.raises(ConcurrencyConflict):
                add_day(store.id, 1, 100)
        assert ledger_service.fetch_ledger(store.id) == []

    def test_database_lock_timeout_is_persistence_error(self, app, db_session, store):
        add_day(store.id, 1, 100)
        repository = LockWaitTimeoutRepository()

        with pytest.raises(PersistenceError) as excinfo:
            ledger_service.create_record(store.id, day(2), [revenue(50)], [], repository=repository)

        assert "lock timeout" in str(excinfo.value)
        assert excinfo.value.to_dict()["kind"] == "persistence_error"
        assert repository.lock_calls == app.config["LEDGER_RETRY_ATTEMPTS"]
        assert balances(ledger_service.fetch_ledger(store.id)) == {"2024-03-01": 100}

    def test_discard_client_balances(self, app):
        with app.test_request_context():
            cleaned = ledger_service.discard_client_balances(
                {"record_date": "2024-03-01", "cash_balance": 10, "moneyBalance": 3, "notes": "x"},
                context="test",
            )
        assert cleaned == {"record_date": "2024-03-01", "notes": "x"}


class TestRandomSequences:

    @pytest.mark.parametrize("seed", [7, 21, 1984])
    def test_chain_holds_after_every_operation(self, db_session, store, seed):
        rng = random.Random(seed)

        # Fewer steps than free days, so a create always finds a date
        for _ in range(25):
            existing = {item["record_date"]: item["id"] for item in ledger_service.fetch_ledger(store.id)}
            record_ids = sorted(existing.values())
            free_days = [n for n in range(1, 29) if day(n).isoformat() not in existing]
            operation = rng.choice(("create", "create", "edit", "move", "delete"))

            if operation == "create" or not record_ids:
                snapshot = ledger_service.create_record(
                    store.id,
                    day(rng.choice(free_days)),
                    [revenue(rng.randint(-500, 2000))],
                    [expense(rng.randint(0, 300))],
                )
            elif operation == "edit":
                snapshot = ledger_service.edit_record(
                    rng.choice(record_ids), {"revenue_lines": [revenue(rng.randint(-500, 2000))]},
                )
            elif operation == "move" and free_days:
                snapshot = ledger_service.edit_record(
                    rng.choice(record_ids), {"record_date": day(rng.choice(free_days)).isoformat()},
                )
            else:
                snapshot = ledger_service.delete_record(rng.choice(record_ids))

            assert_chain(snapshot)

        assert ledger_service.verify_ledger(store.id)["ok"] is True
