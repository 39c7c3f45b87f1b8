# Overview: Flask CLI command groups for bootstrap, ledger maintenance and billing housekeeping.

# backend/arcade/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create-owner --email owner@example.com --password secret1
#   Create an owner account (prompts if options are omitted).
# - python -m flask users set-support-agent --email owner@example.com [--revoke]
#   Grant or revoke access to every support request.
#
# Ledger:
# - python -m flask ledger recalc --store-id 1 [--from-date 2024-03-01]
#   Rebuild day totals from line items and re-walk cash balances.
# - python -m flask ledger verify --store-id 1
#   Report records whose totals or balances disagree with a full recalculation.
#
# Billing:
# - python -m flask billing purge-pending
#   Delete expired pending subscriptions.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import auth_service, billing_service, ledger_service
from .services.auth_service import AuthError, PasswordValidationError
from .services.ledger_errors import LedgerError
from .time_utils import parse_iso_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables that do not exist yet."""
    click.echo("START Initializing Arcade Manager database...")
    db.create_all()
    click.echo("PASS Schema ready. Create an owner with 'python -m flask users create-owner'.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create-owner')
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--name', default=None)
@with_appcontext
def create_owner(email, password, name):
    """Create an owner account."""
    try:
        user = auth_service.register_owner(email=email, password=password, name=name)
    except (AuthError, PasswordValidationError) as exc:
        raise click.ClickException(str(exc))
    click.echo(f"PASS Created owner {user.username} (ID: {user.id})")


@users_group.command('set-support-agent')
@click.option('--email', required=True)
@click.option('--revoke', is_flag=True, help='Remove support agent access')
@with_appcontext
def set_support_agent(email, revoke):
    """Grant (or with --revoke remove) support agent access."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if user is None:
        raise click.ClickException(f"No user with email {email}")
    user.is_support_agent = not revoke
    db.session.commit()
    state = "revoked from" if revoke else "granted to"
    click.echo(f"PASS Support agent access {state} {user.username}")


@click.group('ledger')
def ledger_group():
    """Daily ledger maintenance."""


@ledger_group.command('recalc')
@click.option('--store-id', type=int, required=True)
@click.option('--from-date', default=None, help='YYYY-MM-DD; defaults to the first record')
@with_appcontext
def recalc_ledger(store_id, from_date):
    """Rebuild totals and cash balances for a store."""
    try:
        effective_date = parse_iso_date(from_date)
    except ValueError:
        raise click.BadParameter("must be YYYY-MM-DD", param_hint="--from-date")

    try:
        result = ledger_service.recalculate_from(store_id, effective_date, recompute_profit=True)
    except LedgerError as exc:
        raise click.ClickException(str(exc))

    click.echo(
        f"PASS Store {store_id}: {len(result.records)} records walked, "
        f"{result.changed_count} rewritten, closing balance {result.final_balance_cents} cents"
    )


@ledger_group.command('verify')
@click.option('--store-id', type=int, required=True)
@with_appcontext
def verify_ledger(store_id):
    """Check a store's ledger without changing it."""
    try:
        report = ledger_service.verify_ledger(store_id)
    except LedgerError as exc:
        raise click.ClickException(str(exc))

    if report["ok"]:
        click.echo(f"PASS Store {store_id}: {report['record_count']} records consistent")
        return

    for issue in report["issues"]:
        click.echo(
            f"FAIL record {issue['record_id']} ({issue['record_date']}) {issue['field']}: "
            f"expected {issue['expected']}, found {issue['actual']}"
        )
    raise click.ClickException(f"{len(report['issues'])} issue(s) found; run 'ledger recalc' to repair")


@click.group('billing')
def billing_group():
    """Billing housekeeping."""


@billing_group.command('purge-pending')
@with_appcontext
def purge_pending():
    """Delete pending subscriptions past their expiry."""
    deleted = billing_service.purge_expired_pending_subscriptions()
    click.echo(f"PASS Removed {deleted} expired pending subscription(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(billing_group)
