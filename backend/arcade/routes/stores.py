# Overview: Flask API routes for stores operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from arcade.decorators import require_auth, require_owner
from arcade.services import access_service, store_service
from arcade.services.access_service import StoreAccessError
from arcade.validation import ConflictError, ValidationError


stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


def _stores_payload() -> list[dict]:
    return [store.to_dict() for store in store_service.list_stores_for_user(g.current_user)]


@stores_bp.get("")
@require_auth
def list_stores():
    return jsonify(_stores_payload()), 200


@stores_bp.post("")
@require_auth
@require_owner
def create_store():
    """Create a free-tier store. The generated login password is returned only here."""
    data = request.get_json(silent=True) or {}
    try:
        store, credentials = store_service.create_store(
            g.current_user,
            name=data.get("name"),
            address=data.get("address"),
            notes=data.get("notes"),
            description=data.get("description"),
        )
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except ConflictError as exc:
        return jsonify({"error": str(exc)}), 409
    except store_service.StoreError as exc:
        return jsonify({"error": str(exc)}), exc.status

    return jsonify({
        "store": store.to_dict(),
        "stores": _stores_payload(),
        "staff_credentials": credentials.to_dict(),
    }), 201


@stores_bp.get("/<int:store_id>")
@require_auth
def get_store(store_id: int):
    try:
        store = access_service.require_store_access(store_id, g.current_user)
    except StoreAccessError as exc:
        return jsonify({"error": str(exc)}), exc.status
    return jsonify(store.to_dict()), 200


@stores_bp.put("/<int:store_id>")
@require_auth
@require_owner
def update_store(store_id: int):
    data = request.get_json(silent=True) or {}
    try:
        access_service.require_store_access(store_id, g.current_user, manage=True)
        store_service.update_store(
            store_id,
            name=data.get("name"),
            address=data.get("address"),
            notes=data.get("notes"),
            description=data.get("description"),
        )
    except StoreAccessError as exc:
        return jsonify({"error": str(exc)}), exc.status
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except ConflictError as exc:
        return jsonify({"error": str(exc)}), 409
    except store_service.StoreError as exc:
        return jsonify({"error": str(exc)}), exc.status

    return jsonify(_stores_payload()), 200


@stores_bp.delete("/<int:store_id>")
@require_auth
@require_owner
def delete_store(store_id: int):
    try:
        access_service.require_store_access(store_id, g.current_user, manage=True)
        cancellation = store_service.delete_store(store_id)
    except StoreAccessError as exc:
        return jsonify({"error": str(exc)}), exc.status
    except store_service.StoreError as exc:
        return jsonify({"error": str(exc)}), exc.status
    except Exception:
        current_app.logger.exception("Failed to delete store %s", store_id)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"stores": _stores_payload(), "paypal_cancellation": cancellation}), 200
