from __future__ import annotations

from ..extensions import db
from arcade.time_utils import to_utc_z, to_iso_date


FREE_TIER = "free-tier"
PAID_MONTHLY_TIER = "PAID_MONTHLY"


class Store(db.Model):
    """
    Arcade store owned by a single owner account.

    MULTI-TENANT: Stores are scoped to their owner via owner_user_id.
    Store names are unique per owner, not globally.

    The store row doubles as the ledger lock target: every ledger mutation
    takes SELECT ... FOR UPDATE on it before touching financial records.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("owner_user_id", "name", name="uq_stores_owner_name"),
        db.Index("ix_stores_owner_user_id", "owner_user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), nullable=False, default="")
    notes = db.Column(db.Text, nullable=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Subscription billing
    subscription_id = db.Column(db.String(64), nullable=True, unique=True, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="PENDING")
    tier = db.Column(db.String(32), nullable=False, default=FREE_TIER)
    tier_anchor_date = db.Column(db.Date, nullable=True)
    last_payment_date = db.Column(db.DateTime(timezone=True), nullable=True)
    next_payment_date = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_failure_count = db.Column(db.Integer, nullable=False, default=0)
    last_payment_failure_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_failure_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    owner = db.relationship("User", foreign_keys=[owner_user_id], backref=db.backref("stores", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r} owner_user_id={self.owner_user_id}>"

    @property
    def staff_username(self) -> str | None:
        accounts = self.staff_accounts
        return accounts[0].username if accounts else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_user_id": self.owner_user_id,
            "name": self.name,
            "address": self.address,
            "notes": self.notes,
            "description": self.description,
            "is_active": self.is_active,
            "staff_username": self.staff_username,
            "subscription_id": self.subscription_id,
            "payment_status": self.payment_status,
            "tier": self.tier,
            "tier_anchor_date": to_iso_date(self.tier_anchor_date),
            "last_payment_date": to_utc_z(self.last_payment_date),
            "next_payment_date": to_utc_z(self.next_payment_date),
            "payment_failure_count": self.payment_failure_count,
            "last_payment_failure_at": to_utc_z(self.last_payment_failure_at),
            "payment_failure_reason": self.payment_failure_reason,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
