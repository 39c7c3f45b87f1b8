# Overview: Service-layer operations for support requests and feature suggestions.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from arcade.extensions import db
from arcade.models import SupportRequest, User
from arcade.models.support import (
    FEATURE_IMPACTS,
    FORM_FEATURE,
    FORM_SUPPORT,
    FORM_TYPES,
    STATUS_OPEN,
    SUPPORT_CATEGORIES,
    SUPPORT_PRIORITIES,
    SUPPORT_STATUSES,
)
from arcade.services.auth_service import AuthError, validate_email
from arcade.time_utils import utcnow
from arcade.validation import ValidationError, clean_str


# form_type -> (field, max length or None for free text, allowed values or None)
_FORM_FIELDS = {
    FORM_SUPPORT: (
        ("category", 32, SUPPORT_CATEGORIES),
        ("priority", 16, SUPPORT_PRIORITIES),
        ("subject", 255, None),
        ("message", None, None),
    ),
    FORM_FEATURE: (
        ("feature_name", 255, None),
        ("feature_description", None, None),
        ("use_case", None, None),
        ("impact", 16, FEATURE_IMPACTS),
    ),
}


class SupportError(Exception):
    """Raised when a support request cannot be found or acted on."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


def _required(data: dict, name: str, max_length: int | None, allowed) -> str:
    value = clean_str(data.get(name), max_length=max_length, field=name)
    if not value:
        raise ValidationError(f"{name} is required")
    if allowed is not None and value not in allowed:
        raise ValidationError(f"{name} must be one of: {', '.join(allowed)}")
    return value


def create_request(user: User, data: dict) -> SupportRequest:
    """
    Record a support request or feature suggestion for `user`.

    name, email and form_type are always required; the rest depends on
    form_type. New requests start Open.
    """
    if not isinstance(data, dict):
        raise ValidationError("JSON body required")

    form_type = data.get("form_type")
    if form_type not in FORM_TYPES:
        raise ValidationError(f"form_type must be one of: {', '.join(FORM_TYPES)}")

    name = _required(data, "name", 120, None)
    try:
        email = validate_email(data.get("email"))
    except AuthError as exc:
        raise ValidationError(str(exc))

    request = SupportRequest(user_id=user.id, form_type=form_type, name=name, email=email, status=STATUS_OPEN)
    for field, max_length, allowed in _FORM_FIELDS[form_type]:
        setattr(request, field, _required(data, field, max_length, allowed))

    db.session.add(request)
    db.session.commit()
    current_app.logger.info("Support %s %s opened by user %s", form_type, request.id, user.id)
    return request


def list_for_user(user: User) -> list[SupportRequest]:
    return db.session.query(SupportRequest).filter_by(user_id=user.id).order_by(
        SupportRequest.created_at.desc(), SupportRequest.id.desc()
    ).all()


def list_all() -> list[SupportRequest]:
    return db.session.query(SupportRequest).order_by(
        SupportRequest.created_at.desc(), SupportRequest.id.desc()
    ).all()


def get_request(user: User, request_id: int) -> SupportRequest:
    """Agents see every request; other accounts only their own (403 otherwise)."""
    request = db.session.get(SupportRequest, request_id)
    if request is None:
        raise SupportError("Support request not found", status=404)
    if not user.is_support_agent and request.user_id != user.id:
        raise SupportError("Access denied", status=403)
    return request


def update_request(agent: User, request_id: int, data: dict) -> SupportRequest:
    """Set status and/or the agent's response. The responder is the agent."""
    data = data or {}
    request = get_request(agent, request_id)

    status = data.get("status")
    if status:
        if status not in SUPPORT_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(SUPPORT_STATUSES)}")
        request.status = status

    response = clean_str(data.get("admin_response"), field="admin_response")
    if response:
        request.admin_response = response
        request.admin_response_at = utcnow()
        request.admin_responder_id = agent.id

    db.session.commit()
    return request


def delete_request(user: User, request_id: int) -> None:
    request = get_request(user, request_id)
    db.session.delete(request)
    db.session.commit()


def _counts_by(column, form_type: str) -> list[dict]:
    rows = db.session.query(column, func.count(SupportRequest.id)).filter(
        SupportRequest.form_type == form_type,
    ).group_by(column).order_by(column.asc()).all()
    return [{"value": value, "count": count} for value, count in rows]


def stats() -> dict:
    """Totals by status and form type, plus support requests by category and priority."""
    status_counts = dict(
        db.session.query(SupportRequest.status, func.count(SupportRequest.id)).group_by(SupportRequest.status).all()
    )
    form_counts = dict(
        db.session.query(SupportRequest.form_type, func.count(SupportRequest.id)).group_by(SupportRequest.form_type).all()
    )
    return {
        "overall": {
            "total": sum(status_counts.values()),
            "by_status": {status: status_counts.get(status, 0) for status in SUPPORT_STATUSES},
            "support_requests": form_counts.get(FORM_SUPPORT, 0),
            "feature_suggestions": form_counts.get(FORM_FEATURE, 0),
        },
        "categories": _counts_by(SupportRequest.category, FORM_SUPPORT),
        "priorities": _counts_by(SupportRequest.priority, FORM_SUPPORT),
    }
