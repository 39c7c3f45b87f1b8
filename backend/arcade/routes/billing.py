# Overview: Flask API routes for PayPal subscriptions, webhooks and payment history.

from flask import Blueprint, current_app, g, jsonify, request

from arcade.decorators import require_auth, require_owner
from arcade.services import access_service, billing_service
from arcade.services.access_service import StoreAccessError
from arcade.services.billing_service import BillingError
from arcade.services.paypal_client import PayPalError
from arcade.validation import ConflictError, ValidationError


billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")


def _billing_error(exc: Exception):
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc)}), 409
    if isinstance(exc, (BillingError, StoreAccessError)):
        return jsonify({"error": str(exc)}), exc.status
    if isinstance(exc, PayPalError):
        current_app.logger.warning("PayPal call failed: %s", exc)
        return jsonify({"error": str(exc), "details": exc.details}), 502
    current_app.logger.exception("Billing request failed")
    return jsonify({"error": "Internal server error"}), 500


@billing_bp.post("/subscriptions")
@require_auth
@require_owner
def create_subscription():
    data = request.get_json(silent=True) or {}
    try:
        return jsonify(billing_service.start_subscription(g.current_user, data.get("store_data") or data)), 201
    except Exception as exc:
        return _billing_error(exc)


@billing_bp.post("/subscriptions/<subscription_id>/status")
@require_auth
@require_owner
def check_subscription(subscription_id: str):
    try:
        return jsonify(billing_service.check_subscription_status(g.current_user, subscription_id)), 200
    except Exception as exc:
        return _billing_error(exc)


@billing_bp.post("/subscriptions/<subscription_id>/cancel")
@require_auth
@require_owner
def cancel_subscription(subscription_id: str):
    data = request.get_json(silent=True) or {}
    try:
        store = billing_service.cancel_subscription(g.current_user, subscription_id, data.get("reason"))
        return jsonify({"store": store.to_dict(), "message": "Subscription cancelled"}), 200
    except Exception as exc:
        return _billing_error(exc)


@billing_bp.post("/webhook")
def paypal_webhook():
    """PayPal webhook receiver. Unknown event types are acknowledged."""
    try:
        result = billing_service.handle_webhook(request.get_json(silent=True))
        return jsonify({"success": True, **result}), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception:
        current_app.logger.exception("Webhook processing failed")
        return jsonify({"error": "Webhook processing failed"}), 500


@billing_bp.get("/payments")
@require_auth
@require_owner
def user_payment_history():
    payments = billing_service.list_user_payments(g.current_user)
    return jsonify([payment.to_dict() for payment in payments]), 200


@billing_bp.get("/payments/recent")
@require_auth
@require_owner
def recent_payments():
    limit = request.args.get("limit", default=10, type=int)
    payments = billing_service.recent_payments(g.current_user, limit=max(1, min(limit, 100)))
    return jsonify([payment.to_dict() for payment in payments]), 200


@billing_bp.get("/stores/<int:store_id>/payments")
@require_auth
@require_owner
def store_payment_history(store_id: int):
    try:
        access_service.require_store_access(store_id, g.current_user, manage=True)
    except StoreAccessError as exc:
        return jsonify({"error": str(exc)}), exc.status
    payments = billing_service.list_store_payments(store_id)
    return jsonify([payment.to_dict() for payment in payments]), 200


@billing_bp.get("/summary")
@require_auth
@require_owner
def payment_summary():
    return jsonify(billing_service.payment_summary(g.current_user)), 200
