from __future__ import annotations

from ..extensions import db
from arcade.time_utils import to_utc_z


class PendingSubscription(db.Model):
    """
    Store creation request waiting for PayPal approval.

    Lives in the database so approval survives restarts and works across
    workers. Rows past expires_at are ignored and purged.
    """
    __tablename__ = "pending_subscriptions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    subscription_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Requested store fields: name, address, notes, description
    store_data = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    user = db.relationship("User", backref=db.backref("pending_subscriptions", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "subscription_id": self.subscription_id,
            "user_id": self.user_id,
            "store_data": self.store_data,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
        }


class PaymentHistory(db.Model):
    """
    Subscription payment events per store.

    Rows outlive their store: store_id is cleared when the store is deleted
    so the owner's billing history stays complete.
    """
    __tablename__ = "payment_history"
    __table_args__ = (
        db.Index("ix_payment_history_user_store_processed", "user_id", "store_id", "processed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True)

    subscription_id = db.Column(db.String(64), nullable=False, index=True)
    payment_id = db.Column(db.String(64), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    status = db.Column(db.String(16), nullable=False, index=True)
    payment_method = db.Column(db.String(32), nullable=False, default="PayPal")
    billing_cycle = db.Column(db.String(16), nullable=False, default="MONTHLY")
    failure_reason = db.Column(db.String(255), nullable=True)

    # Raw provider payload ("metadata" is reserved on declarative models)
    payment_metadata = db.Column("metadata", db.JSON, nullable=True)

    processed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("payment_history", lazy=True))
    store = db.relationship("Store", backref=db.backref("payment_history", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "store_id": self.store_id,
            "store_name": self.store.name if self.store else None,
            "subscription_id": self.subscription_id,
            "payment_id": self.payment_id,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "status": self.status,
            "payment_method": self.payment_method,
            "billing_cycle": self.billing_cycle,
            "failure_reason": self.failure_reason,
            "metadata": self.payment_metadata,
            "processed_at": to_utc_z(self.processed_at),
            "created_at": to_utc_z(self.created_at),
        }
