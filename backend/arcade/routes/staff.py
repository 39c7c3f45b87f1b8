# Overview: Flask API routes for staff and staff loans; every mutation returns the store's staff list.

from flask import Blueprint, g, jsonify, request

from arcade.decorators import require_auth, require_owner
from arcade.services import access_service, staff_service
from arcade.services.access_service import StoreAccessError
from arcade.validation import ConflictError, ValidationError


staff_bp = Blueprint("staff", __name__, url_prefix="/api/staff")


def _staff_list(members) -> list[dict]:
    return [member.to_dict() for member in members]


def _handle(func):
    try:
        return jsonify(_staff_list(func())), 200
    except StoreAccessError as exc:
        return jsonify({"error": str(exc)}), exc.status
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except ConflictError as exc:
        return jsonify({"error": str(exc)}), 409
    except staff_service.StaffError as exc:
        return jsonify({"error": str(exc)}), exc.status


def _staff_in_managed_store(staff_id: int):
    staff = staff_service.get_staff(staff_id)
    access_service.require_store_access(staff.store_id, g.current_user, manage=True)
    return staff


@staff_bp.get("/stores/<int:store_id>")
@require_auth
@require_owner
def list_store_staff(store_id: int):
    def _op():
        access_service.require_store_access(store_id, g.current_user, manage=True)
        return staff_service.list_staff(store_id)
    return _handle(_op)


@staff_bp.post("/stores/<int:store_id>")
@require_auth
@require_owner
def create_staff(store_id: int):
    data = request.get_json(silent=True)

    def _op():
        access_service.require_store_access(store_id, g.current_user, manage=True)
        return staff_service.create_staff(store_id, data)

    response, status = _handle(_op)
    return response, (201 if status == 200 else status)


@staff_bp.put("/<int:staff_id>")
@require_auth
@require_owner
def update_staff(staff_id: int):
    data = request.get_json(silent=True) or {}

    def _op():
        _staff_in_managed_store(staff_id)
        return staff_service.update_staff(staff_id, data)
    return _handle(_op)


@staff_bp.delete("/<int:staff_id>")
@require_auth
@require_owner
def delete_staff(staff_id: int):
    def _op():
        _staff_in_managed_store(staff_id)
        return staff_service.delete_staff(staff_id)
    return _handle(_op)


@staff_bp.post("/<int:staff_id>/loans")
@require_auth
@require_owner
def create_loan(staff_id: int):
    data = request.get_json(silent=True) or {}

    def _op():
        _staff_in_managed_store(staff_id)
        return staff_service.create_loan(staff_id, data.get("amount_cents"), data.get("notes"))
    return _handle(_op)


@staff_bp.post("/<int:staff_id>/loans/payments")
@require_auth
@require_owner
def add_loan_payment(staff_id: int):
    data = request.get_json(silent=True) or {}

    def _op():
        _staff_in_managed_store(staff_id)
        return staff_service.add_loan_payment(staff_id, data.get("amount_cents"), data.get("notes"))
    return _handle(_op)
