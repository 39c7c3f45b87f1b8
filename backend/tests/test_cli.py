# Overview: Pytest coverage for the ledger and billing CLI commands.

from datetime import date, timedelta

from arcade.models import FinancialRecord, PendingSubscription, User
from arcade.services import ledger_service
from arcade.services.aggregation import RevenueLine
from arcade.time_utils import utcnow


def test_create_owner(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["users", "create-owner", "--email", "cli@arcade.test", "--password", "secret1"])
    assert result.exit_code == 0, result.output
    assert db_session.query(User).filter_by(email="cli@arcade.test").one().is_owner is True


def test_create_owner_rejects_weak_password(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["users", "create-owner", "--email", "cli@arcade.test", "--password", "x"])
    assert result.exit_code != 0


def test_set_support_agent(app, db_session, owner):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["users", "set-support-agent", "--email", "owner@arcade.test"])
    assert result.exit_code == 0, result.output
    db_session.refresh(owner)
    assert owner.is_support_agent is True

    result = runner.invoke(args=["users", "set-support-agent", "--email", "owner@arcade.test", "--revoke"])
    assert result.exit_code == 0
    db_session.refresh(owner)
    assert owner.is_support_agent is False


def test_set_support_agent_unknown_email(app, db_session):
    result = app.test_cli_runner().invoke(args=["users", "set-support-agent", "--email", "nobody@arcade.test"])
    assert result.exit_code != 0
    assert "No user with email" in result.output


def test_verify_and_recalc(app, db_session, store):
    ledger_service.create_record(store.id, date(2024, 3, 1), [RevenueLine("m1", "Claw", 400)], [])
    ledger_service.create_record(store.id, date(2024, 3, 2), [RevenueLine("m1", "Claw", 100)], [])
    for record in db_session.query(FinancialRecord).filter_by(store_id=store.id):
        record.cash_balance_cents = 1
    db_session.commit()

    runner = app.test_cli_runner()
    result = runner.invoke(args=["ledger", "verify", "--store-id", str(store.id)])
    assert result.exit_code != 0
    assert "cash_balance_cents" in result.output

    result = runner.invoke(args=["ledger", "recalc", "--store-id", str(store.id)])
    assert result.exit_code == 0, result.output
    assert "closing balance 500 cents" in result.output

    result = runner.invoke(args=["ledger", "verify", "--store-id", str(store.id)])
    assert result.exit_code == 0
    assert "2 records consistent" in result.output


def test_recalc_bad_date(app, db_session, store):
    result = app.test_cli_runner().invoke(
        args=["ledger", "recalc", "--store-id", str(store.id), "--from-date", "03/01/2024"]
    )
    assert result.exit_code != 0


def test_recalc_unknown_store(app, db_session):
    result = app.test_cli_runner().invoke(args=["ledger", "recalc", "--store-id", "98765"])
    assert result.exit_code != 0
    assert "Store 98765 not found" in result.output


def test_purge_pending(app, db_session, owner):
    now = utcnow()
    db_session.add(PendingSubscription(
        subscription_id="I-OLD", user_id=owner.id, store_data={"name": "Old"},
        created_at=now - timedelta(days=2), expires_at=now - timedelta(days=1),
    ))
    db_session.add(PendingSubscription(
        subscription_id="I-NEW", user_id=owner.id, store_data={"name": "New"},
        created_at=now, expires_at=now + timedelta(hours=1),
    ))
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["billing", "purge-pending"])

    assert result.exit_code == 0
    assert "Removed 1 expired" in result.output
    assert [p.subscription_id for p in db_session.query(PendingSubscription).all()] == ["I-NEW"]
