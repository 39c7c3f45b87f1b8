# Overview: Flask API routes for support requests and feature suggestions.

"""
Support API

Any signed-in account can raise a request and manage its own requests.
Listing everything, answering and statistics are for support agents.
"""

from flask import Blueprint, g, jsonify, request

from arcade.decorators import require_auth, require_support_agent
from arcade.services import support_service
from arcade.services.support_service import SupportError
from arcade.validation import ValidationError


support_bp = Blueprint("support", __name__, url_prefix="/api/support")


def _error(exc: Exception):
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    return jsonify({"error": str(exc)}), exc.status


@support_bp.post("")
@require_auth
def create_support_request():
    try:
        support_request = support_service.create_request(g.current_user, request.get_json(silent=True))
    except (ValidationError, SupportError) as exc:
        return _error(exc)

    message = (
        "Support request submitted successfully"
        if support_request.form_type == "support"
        else "Feature suggestion submitted successfully"
    )
    return jsonify({"message": message, "support_request": support_request.to_dict()}), 201


@support_bp.get("")
@require_auth
def list_my_support_requests():
    return jsonify([item.to_dict() for item in support_service.list_for_user(g.current_user)]), 200


@support_bp.get("/all")
@require_auth
@require_support_agent
def list_all_support_requests():
    return jsonify([item.to_dict() for item in support_service.list_all()]), 200


@support_bp.get("/stats")
@require_auth
@require_support_agent
def support_stats():
    return jsonify(support_service.stats()), 200


@support_bp.get("/<int:request_id>")
@require_auth
def get_support_request(request_id: int):
    try:
        return jsonify(support_service.get_request(g.current_user, request_id).to_dict()), 200
    except SupportError as exc:
        return _error(exc)


@support_bp.patch("/<int:request_id>")
@require_auth
@require_support_agent
def update_support_request(request_id: int):
    """Body: status and/or admin_response."""
    try:
        support_request = support_service.update_request(
            g.current_user, request_id, request.get_json(silent=True) or {},
        )
    except (ValidationError, SupportError) as exc:
        return _error(exc)
    return jsonify({"message": "Support request updated successfully", "support_request": support_request.to_dict()}), 200


@support_bp.delete("/<int:request_id>")
@require_auth
def delete_support_request(request_id: int):
    try:
        support_service.delete_request(g.current_user, request_id)
    except SupportError as exc:
        return _error(exc)
    return jsonify({"message": "Support request deleted successfully"}), 200
