from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from arcade.extensions import db
from arcade.models import Store, Staff, User, PaymentHistory
from arcade.models.tenancy import FREE_TIER
from arcade.services import auth_service
from arcade.services.concurrency import LockTimeoutError, lock_for_update, run_with_retry, store_ledger_lock
from arcade.services.ledger_repository import SqlLedgerRepository
from arcade.services.paypal_client import PayPalClient, PayPalError
from arcade.time_utils import utcnow
from arcade.validation import ConflictError, ValidationError, clean_str


STORE_DELETED_REASON = "Store deleted by user"


class StoreError(Exception):
    """Raised when store operations fail."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


@dataclass
class StoreCredentials:
    """Store login, shown to the owner once at creation."""
    store_id: int
    username: str
    password: str

    def to_dict(self) -> dict:
        return {"store_id": self.store_id, "username": self.username, "password": self.password}


def _clean_name(name) -> str:
    name = clean_str(name, max_length=120, field="name")
    if not name:
        raise ValidationError("Store name is required")
    return name


def _ensure_unique_name(owner_id: int, name: str, exclude_store_id: int | None = None) -> None:
    query = db.session.query(Store.id).filter(Store.owner_user_id == owner_id, Store.name == name)
    if exclude_store_id is not None:
        query = query.filter(Store.id != exclude_store_id)
    if query.first():
        raise ConflictError("A store with this name already exists. Please choose a different name.")


def create_store(
    owner: User,
    *,
    name,
    address=None,
    notes=None,
    description=None,
    tier: str = FREE_TIER,
    payment_status: str = "PENDING",
    subscription_id: str | None = None,
    commit: bool = True,
) -> tuple[Store, StoreCredentials]:
    """
    Create a store and its login account.

    The plaintext password exists only in the returned credentials.
    With commit=False the caller owns the transaction.
    """
    if not owner.is_owner:
        raise StoreError("Only owner accounts can create stores", status=403)

    name = _clean_name(name)
    _ensure_unique_name(owner.id, name)

    store = Store(
        owner_user_id=owner.id,
        name=name,
        address=clean_str(address, max_length=255, field="address") or "",
        notes=clean_str(notes, field="notes"),
        description=clean_str(description, field="description"),
        tier=tier,
        tier_anchor_date=utcnow().date(),
        payment_status=payment_status,
        subscription_id=subscription_id,
    )
    db.session.add(store)
    db.session.flush()

    username, password = auth_service.generate_store_credentials(name)
    auth_service.create_store_account(store.id, username, password)

    if commit:
        db.session.commit()
    current_app.logger.info("Created store %s (%s) for owner %s", store.id, tier, owner.id)
    return store, StoreCredentials(store_id=store.id, username=username, password=password)


def update_store(store_id: int, *, name=None, address=None, notes=None, description=None) -> Store:
    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
        if not store:
            raise StoreError("Store not found", status=404)

        if name is not None:
            new_name = _clean_name(name)
            _ensure_unique_name(store.owner_user_id, new_name, exclude_store_id=store.id)
            store.name = new_name
        if address is not None:
            store.address = clean_str(address, max_length=255, field="address") or ""
        if notes is not None:
            store.notes = clean_str(notes, field="notes")
        if description is not None:
            store.description = clean_str(description, field="description")

        db.session.commit()
        return store

    return run_with_retry(_op)


def list_stores_for_user(user: User) -> list[Store]:
    """Owners see their stores; a store login account sees its one store."""
    if user.is_owner:
        return db.session.query(Store).filter_by(owner_user_id=user.id).order_by(Store.name.asc()).all()
    if user.staff_store_id is not None:
        store = db.session.get(Store, user.staff_store_id)
        return [store] if store else []
    return []


def _cancel_paypal_subscription(store: Store, paypal_client: PayPalClient | None) -> dict:
    """Best-effort cancellation. A PayPal failure never blocks deletion."""
    try:
        if paypal_client is None:
            with PayPalClient.from_config() as client:
                client.cancel_subscription(store.subscription_id, STORE_DELETED_REASON)
        else:
            paypal_client.cancel_subscription(store.subscription_id, STORE_DELETED_REASON)
    except PayPalError as exc:
        current_app.logger.warning(
            "PayPal cancellation failed for store %s subscription %s: %s",
            store.id, store.subscription_id, exc,
        )
        return {"success": False, "subscription_id": store.subscription_id, "error": str(exc)}
    return {"success": True, "subscription_id": store.subscription_id}


def delete_store(store_id: int, *, paypal_client: PayPalClient | None = None) -> dict | None:
    """
    Delete a store with its staff, ledger and login account.

    Cancels the PayPal subscription first when there is one and returns
    the cancellation outcome (None when the store had no subscription).
    Payment history is kept with its store reference cleared.
    """
    store = db.session.get(Store, store_id)
    if not store:
        raise StoreError("Store not found", status=404)

    cancellation = None
    if store.subscription_id:
        cancellation = _cancel_paypal_subscription(store, paypal_client)

    try:
        with store_ledger_lock(store_id, timeout=current_app.config["LEDGER_LOCK_TIMEOUT_SECONDS"]):
            try:
                SqlLedgerRepository().delete_all_for_store(store_id)
                for member in db.session.query(Staff).filter_by(store_id=store_id).all():
                    db.session.delete(member)
                for account in db.session.query(User).filter_by(staff_store_id=store_id).all():
                    db.session.delete(account)
                db.session.query(PaymentHistory).filter_by(store_id=store_id).update(
                    {"store_id": None}, synchronize_session=False
                )
                db.session.delete(store)
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
    except LockTimeoutError as exc:
        raise StoreError(str(exc), status=409) from exc

    current_app.logger.info("Deleted store %s", store_id)
    return cancellation
