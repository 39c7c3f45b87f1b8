# Overview: Store-level access rules for owners and store login accounts.

from __future__ import annotations

from ..extensions import db
from ..models import Store, User


class StoreAccessError(Exception):
    """Raised when a user may not act on a store."""

    def __init__(self, message: str, status: int = 403):
        super().__init__(message)
        self.status = status


def can_read_store(user: User, store: Store) -> bool:
    if user.is_owner and store.owner_user_id == user.id:
        return True
    return user.staff_store_id == store.id


def can_manage_store(user: User, store: Store) -> bool:
    return bool(user.is_owner and store.owner_user_id == user.id)


def require_store_access(store_id: int, user: User, *, manage: bool = False) -> Store:
    """
    Resolve a store the user may act on.

    Owners read and manage their own stores. Store login accounts read
    their pinned store and may add ledger days to it; nothing else.
    Raises StoreAccessError (404 when missing, 403 when not permitted).
    """
    store = db.session.get(Store, store_id)
    if store is None:
        raise StoreAccessError("Store not found", status=404)

    allowed = can_manage_store(user, store) if manage else can_read_store(user, store)
    if not allowed:
        raise StoreAccessError("Not authorized for this store")
    return store


def readable_store_ids(user: User) -> list[int]:
    """Every store whose ledger the user may read, by id."""
    if user.is_owner:
        rows = db.session.query(Store.id).filter(Store.owner_user_id == user.id).order_by(Store.id.asc())
        return [store_id for (store_id,) in rows]
    return [user.staff_store_id] if user.staff_store_id is not None else []
