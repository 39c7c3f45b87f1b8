# Overview: Subscription billing: PayPal subscriptions, pending store requests, webhooks and payment history.

from __future__ import annotations

import calendar
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation

from flask import current_app

from arcade.extensions import db
from arcade.models import PaymentHistory, PendingSubscription, Store, User
from arcade.models.tenancy import PAID_MONTHLY_TIER
from arcade.services import store_service
from arcade.services.paypal_client import PayPalClient
from arcade.time_utils import parse_iso_datetime, to_iso_date, utcnow
from arcade.validation import ConflictError, ValidationError, clean_str

"""
Billing flow

1. start_subscription: PayPal subscription created, requested store data
   parked in pending_subscriptions until the owner approves on PayPal.
2. check_subscription_status: once PayPal reports ACTIVE, the pending row
   becomes a paid store (with login credentials) and a first payment entry.
3. Webhooks keep payment_status, failure tracking and history current.

Pending rows expire after PENDING_SUBSCRIPTION_TTL_HOURS; expired rows are
never turned into stores and are removed by purge_expired_pending_subscriptions.
"""

EVENT_SUBSCRIPTION_CANCELLED = "BILLING.SUBSCRIPTION.CANCELLED"
EVENT_SUBSCRIPTION_SUSPENDED = "BILLING.SUBSCRIPTION.SUSPENDED"
EVENT_PAYMENT_FAILED = "BILLING.SUBSCRIPTION.PAYMENT.FAILED"
EVENT_SALE_COMPLETED = "PAYMENT.SALE.COMPLETED"

PENDING_APPROVAL_STATUSES = ("APPROVAL_PENDING", "APPROVED")


class BillingError(Exception):
    """Raised when a billing operation cannot proceed."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


@contextmanager
def _paypal(client: PayPalClient | None):
    """Use the given client, or a configured one closed on exit."""
    if client is not None:
        yield client
        return
    with PayPalClient.from_config() as paypal:
        yield paypal


def _amount_to_cents(amount: dict | None) -> tuple[int, str]:
    config = current_app.config
    amount = amount or {}
    raw = amount.get("value", amount.get("total"))
    currency = amount.get("currency_code") or amount.get("currency") or config["SUBSCRIPTION_CURRENCY"]
    if raw in (None, ""):
        return config["SUBSCRIPTION_PRICE_CENTS"], currency
    try:
        return int((Decimal(str(raw)) * 100).to_integral_value()), currency
    except InvalidOperation:
        current_app.logger.warning("Unparseable PayPal amount %r, using plan price", raw)
        return config["SUBSCRIPTION_PRICE_CENTS"], currency


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def _next_billing_date(anchor: date, today: date) -> date:
    months = 1
    candidate = _add_months(anchor, months)
    while candidate <= today:
        months += 1
        candidate = _add_months(anchor, months)
    return candidate


def _live_pending(subscription_id: str, now: datetime | None = None) -> PendingSubscription | None:
    now = now or utcnow()
    return db.session.query(PendingSubscription).filter(
        PendingSubscription.subscription_id == subscription_id,
        PendingSubscription.expires_at > now,
    ).first()


def start_subscription(user: User, store_data: dict, *, client: PayPalClient | None = None) -> dict:
    """
    Create a PayPal subscription for a new paid store.

    Returns the subscription id and the PayPal approval URL. The store is
    not created until the subscription is confirmed ACTIVE.
    """
    if not user.is_owner:
        raise BillingError("Only owner accounts can subscribe", status=403)
    if not isinstance(store_data, dict):
        raise ValidationError("store_data must be an object")

    name = clean_str(store_data.get("name"), max_length=120, field="name")
    if not name:
        raise ValidationError("Store name is required")
    if db.session.query(Store.id).filter_by(owner_user_id=user.id, name=name).first():
        raise ConflictError("A store with this name already exists. Please choose a different name.")

    config = current_app.config
    with _paypal(client) as paypal:
        subscription = paypal.create_subscription(
            plan_id=config["PAYPAL_PLAN_ID"],
            subscriber_name=user.name or "Arcade Manager User",
            subscriber_email=user.email,
            brand_name=config["PAYPAL_BRAND_NAME"],
            return_url=f"{config['FRONTEND_URL']}/billing/success",
            cancel_url=f"{config['FRONTEND_URL']}/billing/cancel",
        )
    if not subscription.get("id"):
        raise BillingError("PayPal did not return a subscription id", status=502)

    now = utcnow()
    pending = PendingSubscription(
        subscription_id=subscription["id"],
        user_id=user.id,
        store_data={
            "name": name,
            "address": store_data.get("address"),
            "notes": store_data.get("notes"),
            "description": store_data.get("description"),
        },
        created_at=now,
        expires_at=now + timedelta(hours=config["PENDING_SUBSCRIPTION_TTL_HOURS"]),
    )
    db.session.add(pending)
    db.session.commit()

    current_app.logger.info("Started subscription %s for user %s", subscription["id"], user.id)
    return {
        "subscription_id": subscription["id"],
        "status": subscription.get("status"),
        "approval_url": subscription.get("approval_url"),
        "expires_at": pending.to_dict()["expires_at"],
    }


def _activate_pending(user: User, pending: PendingSubscription, subscription: dict) -> dict:
    data = pending.store_data or {}
    subscription_id = pending.subscription_id
    try:
        store, credentials = store_service.create_store(
            user,
            name=data.get("name"),
            address=data.get("address"),
            notes=data.get("notes"),
            description=data.get("description"),
            tier=PAID_MONTHLY_TIER,
            payment_status="ACTIVE",
            subscription_id=subscription_id,
            commit=False,
        )
    except ConflictError as exc:
        db.session.rollback()
        return {
            "status": "ACTIVE",
            "store_created": False,
            "store_error": str(exc),
            "message": "Subscription is active but a store with this name already exists. Please contact support.",
        }

    now = utcnow()
    next_billing = parse_iso_datetime((subscription.get("billing_info") or {}).get("next_billing_time"))
    store.last_payment_date = now
    store.next_payment_date = next_billing

    amount_cents = current_app.config["SUBSCRIPTION_PRICE_CENTS"]
    db.session.add(PaymentHistory(
        user_id=user.id,
        store_id=store.id,
        subscription_id=subscription_id,
        payment_id=f"subscription_created_{int(now.timestamp())}",
        amount_cents=amount_cents,
        currency=current_app.config["SUBSCRIPTION_CURRENCY"],
        status="SUCCESS",
        payment_method="PayPal",
        billing_cycle="MONTHLY",
        payment_metadata={
            "initial_setup": True,
            "paypal_subscription_status": subscription.get("status"),
            "paypal_billing_info": subscription.get("billing_info"),
        },
        processed_at=now,
    ))
    db.session.delete(pending)
    db.session.commit()

    return {
        "status": "ACTIVE",
        "store_created": True,
        "store": store.to_dict(),
        "staff_credentials": credentials.to_dict(),
        "message": "Subscription is active and store has been created successfully!",
    }


def check_subscription_status(user: User, subscription_id: str, *, client: PayPalClient | None = None) -> dict:
    """Ask PayPal for the subscription state and create the paid store once ACTIVE."""
    if not subscription_id:
        raise ValidationError("subscription_id is required")

    with _paypal(client) as paypal:
        subscription = paypal.get_subscription(subscription_id)
    status = subscription.get("status")

    if status == "ACTIVE":
        existing = db.session.query(Store).filter_by(subscription_id=subscription_id).first()
        if existing is not None:
            if existing.owner_user_id != user.id:
                raise BillingError("Subscription not found", status=404)
            return {"status": status, "store_created": False, "store": existing.to_dict(),
                    "message": "Subscription is active."}

        pending = _live_pending(subscription_id)
        if pending is None or pending.user_id != user.id:
            return {"status": status, "store_created": False,
                    "message": "Subscription is active but no pending store request was found."}
        return _activate_pending(user, pending, subscription)

    if status in PENDING_APPROVAL_STATUSES:
        return {"status": status, "store_created": False,
                "message": "Subscription is still pending approval. Please complete the payment process on PayPal."}

    return {"status": status, "store_created": False, "message": f"Subscription status is {status}."}


def cancel_subscription(user: User, subscription_id: str, reason: str | None = None, *, client: PayPalClient | None = None) -> Store:
    store = db.session.query(Store).filter_by(subscription_id=subscription_id).first()
    if store is None or store.owner_user_id != user.id:
        raise BillingError("Subscription not found", status=404)

    with _paypal(client) as paypal:
        paypal.cancel_subscription(subscription_id, reason or "Cancelled by user")
    store.payment_status = "CANCELLED"
    store.is_active = False
    db.session.commit()
    current_app.logger.info("Cancelled subscription %s for store %s", subscription_id, store.id)
    return store


def _record_payment(store: Store, *, subscription_id: str, payment_id: str, status: str, resource: dict,
                    failure_reason: str | None = None) -> PaymentHistory:
    amount_cents, currency = _amount_to_cents(resource.get("amount"))
    entry = PaymentHistory(
        user_id=store.owner_user_id,
        store_id=store.id,
        subscription_id=subscription_id,
        payment_id=payment_id,
        amount_cents=amount_cents,
        currency=currency,
        status=status,
        payment_method="PayPal",
        billing_cycle="MONTHLY",
        failure_reason=failure_reason,
        payment_metadata=resource,
        processed_at=utcnow(),
    )
    db.session.add(entry)
    return entry


def _store_for_subscription(subscription_id: str | None) -> Store | None:
    if not subscription_id:
        return None
    return db.session.query(Store).filter_by(subscription_id=subscription_id).first()


def handle_webhook(event: dict) -> dict:
    """
    Apply a PayPal webhook event. Unknown events are acknowledged untouched.

    Returns {"event_type", "handled", "store_id"}.
    """
    if not isinstance(event, dict):
        raise ValidationError("Webhook body must be a JSON object")
    event_type = event.get("event_type")
    resource = event.get("resource") or {}
    now = utcnow()
    store = None

    if event_type in (EVENT_SUBSCRIPTION_CANCELLED, EVENT_SUBSCRIPTION_SUSPENDED):
        store = _store_for_subscription(resource.get("id"))
        if store is not None:
            store.is_active = False
            store.payment_status = "CANCELLED" if event_type == EVENT_SUBSCRIPTION_CANCELLED else "SUSPENDED"

    elif event_type == EVENT_PAYMENT_FAILED:
        subscription_id = resource.get("id")
        store = _store_for_subscription(subscription_id)
        if store is not None:
            reason = resource.get("failure_reason") or "Payment failed"
            store.payment_status = "FAILED"
            store.payment_failure_count = (store.payment_failure_count or 0) + 1
            store.last_payment_failure_at = now
            store.payment_failure_reason = reason[:255]
            _record_payment(
                store,
                subscription_id=subscription_id,
                payment_id=resource.get("payment_id") or f"failed_{int(now.timestamp())}",
                status="FAILED",
                resource=resource,
                failure_reason=reason[:255],
            )

    elif event_type == EVENT_SALE_COMPLETED:
        subscription_id = resource.get("billing_agreement_id")
        store = _store_for_subscription(subscription_id)
        if store is not None:
            store.payment_status = "ACTIVE"
            store.is_active = True
            store.last_payment_date = now
            store.next_payment_date = datetime.combine(
                _next_billing_date(store.tier_anchor_date or now.date(), now.date()), datetime.min.time()
            )
            store.payment_failure_count = 0
            store.payment_failure_reason = None
            _record_payment(
                store,
                subscription_id=subscription_id,
                payment_id=resource.get("id") or f"sale_{int(now.timestamp())}",
                status="SUCCESS",
                resource=resource,
            )

    else:
        current_app.logger.info("Acknowledged unhandled PayPal webhook %s", event_type)
        return {"event_type": event_type, "handled": False, "store_id": None}

    if store is None:
        current_app.logger.warning("PayPal webhook %s matched no store", event_type)
        return {"event_type": event_type, "handled": False, "store_id": None}

    db.session.commit()
    current_app.logger.info("Applied PayPal webhook %s to store %s", event_type, store.id)
    return {"event_type": event_type, "handled": True, "store_id": store.id}


def list_user_payments(user: User) -> list[PaymentHistory]:
    return db.session.query(PaymentHistory).filter_by(user_id=user.id).order_by(
        PaymentHistory.processed_at.desc(), PaymentHistory.id.desc()
    ).all()


def list_store_payments(store_id: int) -> list[PaymentHistory]:
    return db.session.query(PaymentHistory).filter_by(store_id=store_id).order_by(
        PaymentHistory.processed_at.desc(), PaymentHistory.id.desc()
    ).all()


def recent_payments(user: User, limit: int = 10) -> list[PaymentHistory]:
    return db.session.query(PaymentHistory).filter_by(user_id=user.id).order_by(
        PaymentHistory.processed_at.desc(), PaymentHistory.id.desc()
    ).limit(limit).all()


def payment_summary(user: User, today: date | None = None) -> dict:
    """Subscription health across the owner's stores, with upcoming billing dates."""
    today = today or utcnow().date()
    stores = db.session.query(Store).filter_by(owner_user_id=user.id).all()
    active = [store for store in stores if store.payment_status == "ACTIVE"]

    upcoming = []
    for store in active:
        if store.tier != PAID_MONTHLY_TIER or store.tier_anchor_date is None:
            continue
        next_billing = _next_billing_date(store.tier_anchor_date, today)
        upcoming.append({
            "store_id": store.id,
            "store_name": store.name,
            "next_billing": to_iso_date(next_billing),
            "days_until": (next_billing - today).days,
        })
    upcoming.sort(key=lambda item: item["next_billing"])

    paid_active = [store for store in active if store.tier == PAID_MONTHLY_TIER]
    return {
        "total_stores": len(stores),
        "active_subscriptions": len(paid_active),
        "failed_payments": sum(1 for store in stores if store.payment_status == "FAILED"),
        "suspended_stores": sum(1 for store in stores if store.payment_status == "SUSPENDED"),
        "total_payment_failures": sum(store.payment_failure_count or 0 for store in stores),
        "stores_with_issues": sum(
            1 for store in stores if (store.payment_failure_count or 0) > 0 or store.payment_status == "FAILED"
        ),
        "total_monthly_cost_cents": len(paid_active) * current_app.config["SUBSCRIPTION_PRICE_CENTS"],
        "currency": current_app.config["SUBSCRIPTION_CURRENCY"],
        "next_billing_dates": upcoming,
        "upcoming_billing_count": sum(1 for item in upcoming if item["days_until"] <= 30),
    }


def purge_expired_pending_subscriptions(now: datetime | None = None) -> int:
    now = now or utcnow()
    deleted = db.session.query(PendingSubscription).filter(
        PendingSubscription.expires_at <= now
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
