from __future__ import annotations

from ..extensions import db
from arcade.time_utils import to_utc_z


FORM_SUPPORT = "support"
FORM_FEATURE = "feature"
FORM_TYPES = (FORM_SUPPORT, FORM_FEATURE)

SUPPORT_CATEGORIES = ("Technical", "Billing", "Account", "Bug", "General")
SUPPORT_PRIORITIES = ("Low", "Medium", "High", "Urgent")
FEATURE_IMPACTS = ("Low", "Medium", "High", "Critical")

STATUS_OPEN = "Open"
STATUS_IN_PROGRESS = "In Progress"
STATUS_RESOLVED = "Resolved"
STATUS_CLOSED = "Closed"
SUPPORT_STATUSES = (STATUS_OPEN, STATUS_IN_PROGRESS, STATUS_RESOLVED, STATUS_CLOSED)


def _user_summary(user) -> dict | None:
    if user is None:
        return None
    return {"id": user.id, "username": user.username, "email": user.email}


class SupportRequest(db.Model):
    """
    A support request or feature suggestion raised by an account.

    form_type decides which fields are filled:
    - support: category, priority, subject, message
    - feature: feature_name, feature_description, use_case, impact

    Support agents (User.is_support_agent) triage every request; the
    submitting account sees only its own.
    """
    __tablename__ = "support_requests"
    __table_args__ = (
        db.CheckConstraint("form_type IN ('support', 'feature')", name="ck_support_requests_form_type"),
        db.Index("ix_support_requests_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    form_type = db.Column(db.String(16), nullable=False)

    # Contact details as entered on the form
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False)

    category = db.Column(db.String(32), nullable=True)
    priority = db.Column(db.String(16), nullable=True)
    subject = db.Column(db.String(255), nullable=True)
    message = db.Column(db.Text, nullable=True)

    feature_name = db.Column(db.String(255), nullable=True)
    feature_description = db.Column(db.Text, nullable=True)
    use_case = db.Column(db.Text, nullable=True)
    impact = db.Column(db.String(16), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_OPEN, index=True)

    admin_response = db.Column(db.Text, nullable=True)
    admin_response_at = db.Column(db.DateTime(timezone=True), nullable=True)
    admin_responder_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship(
        "User",
        foreign_keys=[user_id],
        backref=db.backref("support_requests", lazy=True, cascade="all, delete-orphan"),
    )
    admin_responder = db.relationship("User", foreign_keys=[admin_responder_id])

    @property
    def title(self) -> str:
        if self.form_type == FORM_SUPPORT:
            return self.subject or "Support Request"
        return self.feature_name or "Feature Suggestion"

    @property
    def description(self) -> str | None:
        return self.message if self.form_type == FORM_SUPPORT else self.feature_description

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user": _user_summary(self.user),
            "form_type": self.form_type,
            "title": self.title,
            "description": self.description,
            "name": self.name,
            "email": self.email,
            "category": self.category,
            "priority": self.priority,
            "subject": self.subject,
            "message": self.message,
            "feature_name": self.feature_name,
            "feature_description": self.feature_description,
            "use_case": self.use_case,
            "impact": self.impact,
            "status": self.status,
            "admin_response": self.admin_response,
            "admin_response_at": to_utc_z(self.admin_response_at) if self.admin_response_at else None,
            "admin_responder": _user_summary(self.admin_responder),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
