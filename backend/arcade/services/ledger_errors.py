# Overview: Error taxonomy for the daily cash ledger; each error maps to one HTTP status.

from __future__ import annotations

from datetime import date

from arcade.time_utils import to_iso_date


class LedgerError(Exception):
    """Base class for ledger failures. Routes render to_dict() with http_status."""
    kind = "ledger_error"
    http_status = 500

    def to_dict(self) -> dict:
        return {"error": str(self), "kind": self.kind}


class DuplicateDate(LedgerError):
    kind = "duplicate_date"
    http_status = 409

    def __init__(self, store_id: int, record_date: date):
        self.store_id = store_id
        self.record_date = record_date
        super().__init__(f"A financial record already exists for store {store_id} on {to_iso_date(record_date)}")

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["record_date"] = to_iso_date(self.record_date)
        return payload


class RecordNotFound(LedgerError):
    kind = "record_not_found"
    http_status = 404

    def __init__(self, record_id: int):
        self.record_id = record_id
        super().__init__(f"Financial record {record_id} not found")


class StoreNotFound(LedgerError):
    kind = "store_not_found"
    http_status = 404

    def __init__(self, store_id: int):
        self.store_id = store_id
        super().__init__(f"Store {store_id} not found")


class InvalidAmount(LedgerError):
    kind = "invalid_amount"
    http_status = 400


class ConcurrencyConflict(LedgerError):
    kind = "concurrency_conflict"
    http_status = 409


class PersistenceError(LedgerError):
    """
    A record update failed partway through a forward propagation.

    Carries how far the walk got so the caller can report it. The unit of
    work is rolled back, so none of the applied updates are committed.
    """
    kind = "persistence_error"
    http_status = 500

    def __init__(
        self,
        store_id: int,
        applied: list[tuple[int, date]] = (),
        failed: tuple[int, date] | None = None,
        remaining: list[tuple[int, date]] = (),
        cause: Exception | None = None,
    ):
        self.store_id = store_id
        self.applied = list(applied)
        self.failed = failed
        self.remaining = list(remaining)
        self.cause = cause

        if failed is not None:
            applied_through = to_iso_date(self.applied[-1][1]) if self.applied else "none"
            message = (
                f"Ledger recalculation for store {store_id} applied through {applied_through}, "
                f"failed at {to_iso_date(failed[1])}"
            )
        else:
            message = f"Ledger update for store {store_id} could not be saved"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)

    @property
    def applied_through(self) -> date | None:
        return self.applied[-1][1] if self.applied else None

    @property
    def failed_at(self) -> date | None:
        return self.failed[1] if self.failed else None

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload.update({
            "applied_through": to_iso_date(self.applied_through),
            "failed_at": to_iso_date(self.failed_at),
            "applied_record_ids": [record_id for record_id, _ in self.applied],
            "failed_record_id": self.failed[0] if self.failed else None,
            "unreached_record_ids": [record_id for record_id, _ in self.remaining],
        })
        return payload
