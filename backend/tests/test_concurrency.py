# Overview: Pytest coverage for serialized ledger mutations under concurrent requests.

"""
Concurrency Tests

Threads hit one store's ledger at once through a file-backed SQLite
database (in-memory SQLite shares one connection and cannot show
interleaving). Whatever order the writers land in, the final chain must
be consistent.
"""

import threading
from datetime import date

import pytest

from arcade import create_app
from arcade.extensions import db
from arcade.services import auth_service, ledger_service, store_service
from arcade.services.aggregation import RevenueLine
from arcade.services.concurrency import store_ledger_lock
from conftest import TEST_CONFIG


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        **TEST_CONFIG,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'ledger.sqlite3'}",
        'LEDGER_LOCK_TIMEOUT_SECONDS': 30,
    })
    with app.app_context():
        db.create_all()
        owner = auth_service.register_owner(email="threads@arcade.test", password="secret1")
        store, _ = store_service.create_store(owner, name="Threaded Arcade")
        app.config['TEST_STORE_ID'] = store.id
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def run_threads(app, target, args_list):
    errors = []

    def _worker(*args):
        with app.app_context():
            try:
                target(*args)
            except Exception as exc:  # collected for the assertion below
                errors.append(exc)

    threads = [threading.Thread(target=_worker, args=args) for args in args_list]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return errors


def assert_consistent(store_id):
    snapshot = ledger_service.fetch_ledger(store_id)
    running = 0
    for item in reversed(snapshot):
        running += item["daily_profit_cents"]
        assert item["cash_balance_cents"] == running
    assert ledger_service.verify_ledger(store_id)["ok"] is True
    return snapshot


def test_concurrent_creates_on_one_store(file_app):
    store_id = file_app.config['TEST_STORE_ID']

    def create(n):
        ledger_service.create_record(store_id, date(2024, 3, n), [RevenueLine("m1", "Pac-Man", n * 100)], [])

    # Shuffled dates so inserts land before, between and after each other
    days = [7, 2, 11, 1, 9, 4, 12, 3, 10, 5, 8, 6]
    errors = run_threads(file_app, create, [(n,) for n in days])

    assert errors == []
    with file_app.app_context():
        snapshot = assert_consistent(store_id)
        assert len(snapshot) == 12
        assert snapshot[0]["cash_balance_cents"] == sum(n * 100 for n in days)


def test_concurrent_edits_on_one_store(file_app):
    store_id = file_app.config['TEST_STORE_ID']
    with file_app.app_context():
        for n in range(1, 9):
            snapshot = ledger_service.create_record(store_id, date(2024, 3, n), [RevenueLine("m1", "Galaga", 100)], [])
        ids = [item["id"] for item in snapshot]

    def edit(record_id, amount):
        ledger_service.edit_record(record_id, {"revenue_lines": [RevenueLine("m1", "Galaga", amount)]})

    errors = run_threads(file_app, edit, [(record_id, 1000 + index) for index, record_id in enumerate(ids)])

    assert errors == []
    with file_app.app_context():
        snapshot = assert_consistent(store_id)
        assert snapshot[0]["cash_balance_cents"] == sum(1000 + index for index in range(len(ids)))


def test_other_store_not_blocked_by_lock(db_session, owner, store):
    other, _ = store_service.create_store(owner, name="Side Room")
    with store_ledger_lock(store.id, timeout=1):
        snapshot = ledger_service.create_record(other.id, date(2024, 3, 1), [RevenueLine("m1", "Claw", 300)], [])
    assert snapshot[0]["cash_balance_cents"] == 300
