# Overview: Flask API routes for the daily cash ledger; parses input and returns JSON responses.

"""
Daily ledger API

Every mutation responds with the store's full ledger, newest day first,
so clients never have to patch balances locally.

Store login accounts may read their store's ledger and add days.
Edits, deletes and recalculation are for the owning account only.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import access_service, ledger_service
from ..services.access_service import StoreAccessError
from ..services.aggregation import expense_lines_from_payload, revenue_lines_from_payload
from ..services.ledger_errors import LedgerError
from ..time_utils import parse_iso_date
from ..validation import ValidationError, require_fields


financials_bp = Blueprint("financials", __name__, url_prefix="/api/financials")


def _error_response(exc: Exception):
    if isinstance(exc, LedgerError):
        return jsonify(exc.to_dict()), exc.http_status
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc), "kind": "validation_error"}), 400
    if isinstance(exc, StoreAccessError):
        return jsonify({"error": str(exc), "kind": "forbidden" if exc.status == 403 else "store_not_found"}), exc.status
    current_app.logger.exception("Unhandled ledger failure")
    return jsonify({"error": "Internal server error"}), 500


def _store_id_from(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("store_id must be an integer")


@financials_bp.get("")
@require_auth
def list_user_financials():
    """Records across every store the caller can read, newest first."""
    try:
        return jsonify({"records": ledger_service.fetch_owner_ledger(g.current_user)}), 200
    except Exception as exc:
        return _error_response(exc)


@financials_bp.get("/stores/<int:store_id>")
@require_auth
def list_store_financials(store_id: int):
    try:
        access_service.require_store_access(store_id, g.current_user)
        return jsonify({"store_id": store_id, "records": ledger_service.fetch_ledger(store_id)}), 200
    except Exception as exc:
        return _error_response(exc)


@financials_bp.post("")
@require_auth
def create_financial():
    """
    Add a day to a store's ledger.

    Body: store_id, record_date, revenue_lines[], expense_lines[],
    optional notes and actual_cash_count_cents. Balances and totals sent by
    the client are ignored.
    """
    try:
        data = require_fields(request.get_json(silent=True), "store_id", "record_date")
        data = ledger_service.discard_client_balances(data, context="create")
        store_id = _store_id_from(data["store_id"])
        access_service.require_store_access(store_id, g.current_user)

        records = ledger_service.create_record(
            store_id,
            data["record_date"],
            revenue_lines_from_payload(data.get("revenue_lines")),
            expense_lines_from_payload(data.get("expense_lines")),
            notes=data.get("notes"),
            actual_cash_count_cents=data.get("actual_cash_count_cents"),
            created_by=g.current_user.username,
        )
        return jsonify({"store_id": store_id, "records": records}), 201
    except Exception as exc:
        return _error_response(exc)


@financials_bp.patch("/<int:record_id>")
@require_auth
def edit_financial(record_id: int):
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("JSON body required")

        record = ledger_service.get_record(record_id)
        store_id = record.store_id
        access_service.require_store_access(store_id, g.current_user, manage=True)

        # null means "leave as is"; [] clears the lines
        changes = dict(data)
        for name, parse in (("revenue_lines", revenue_lines_from_payload),
                            ("expense_lines", expense_lines_from_payload)):
            if changes.get(name) is not None:
                changes[name] = parse(changes[name])
            else:
                changes.pop(name, None)

        records = ledger_service.edit_record(record_id, changes, updated_by=g.current_user.username)
        return jsonify({"store_id": store_id, "records": records}), 200
    except Exception as exc:
        return _error_response(exc)


@financials_bp.delete("/<int:record_id>")
@require_auth
def delete_financial(record_id: int):
    try:
        record = ledger_service.get_record(record_id)
        store_id = record.store_id
        access_service.require_store_access(store_id, g.current_user, manage=True)

        records = ledger_service.delete_record(record_id)
        return jsonify({"store_id": store_id, "records": records}), 200
    except Exception as exc:
        return _error_response(exc)


@financials_bp.post("/stores/<int:store_id>/recalculate")
@require_auth
def recalculate_store(store_id: int):
    """Rebuild totals from line items and re-walk the chain from from_date (default: first day)."""
    try:
        access_service.require_store_access(store_id, g.current_user, manage=True)
        data = request.get_json(silent=True) or {}
        try:
            from_date = parse_iso_date(data.get("from_date"))
        except ValueError:
            raise ValidationError("from_date must be a date in YYYY-MM-DD format")

        result = ledger_service.recalculate_from(store_id, from_date, recompute_profit=True)
        return jsonify({
            "result": result.to_dict(),
            "records": ledger_service.fetch_ledger(store_id),
        }), 200
    except Exception as exc:
        return _error_response(exc)


@financials_bp.get("/stores/<int:store_id>/verify")
@require_auth
def verify_store(store_id: int):
    try:
        access_service.require_store_access(store_id, g.current_user)
        return jsonify(ledger_service.verify_ledger(store_id)), 200
    except Exception as exc:
        return _error_response(exc)
