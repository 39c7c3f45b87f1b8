# Overview: Pytest coverage for PayPal subscriptions, pending store requests, webhooks and payment history.

"""
Billing Tests

PayPal is replaced by FakePayPal (conftest) behind httpx.MockTransport, so
the real PayPalClient code path runs end to end without network access.
"""

from datetime import date, timedelta

import httpx
import pytest

from arcade.models import PaymentHistory, PendingSubscription, Store
from arcade.models.tenancy import PAID_MONTHLY_TIER
from arcade.services import billing_service, store_service
from arcade.services.billing_service import BillingError
from arcade.services.paypal_client import PayPalClient, PayPalError
from arcade.time_utils import utcnow
from arcade.validation import ConflictError


def paid_store(owner, name="Galaxy Games", subscription_id="I-WEB0001"):
    store, _ = store_service.create_store(
        owner, name=name, tier=PAID_MONTHLY_TIER, payment_status="ACTIVE", subscription_id=subscription_id,
    )
    return store


class TestPayPalClient:

    def test_create_subscription_parses_approval_link(self, paypal, app):
        client = PayPalClient.from_config(app.config)
        result = client.create_subscription(
            plan_id="P-TESTPLAN",
            subscriber_name="Olive",
            subscriber_email="owner@arcade.test",
            brand_name="Arcade Manager",
            return_url="http://localhost/ok",
            cancel_url="http://localhost/cancel",
        )
        client.close()

        assert result["id"] == "I-SUB0001"
        assert result["approval_url"] == "https://paypal.test/approve?ba_token=I-SUB0001"
        token_request = paypal.requests[0]
        assert token_request.headers["Authorization"].startswith("Basic ")
        assert paypal.requests[1].headers["Authorization"] == "Bearer A21-test-token"

    def test_error_response_raises(self, paypal, app):
        with PayPalClient.from_config(app.config) as client:
            with pytest.raises(PayPalError) as excinfo:
                client.get_subscription("I-MISSING")
        assert excinfo.value.status_code == 404
        assert excinfo.value.details == {"name": "RESOURCE_NOT_FOUND"}

    def test_missing_credentials(self):
        client = PayPalClient("", "", "https://paypal.test")
        with pytest.raises(PayPalError):
            client.get_access_token()
        client.close()

    def test_transport_failure_is_paypal_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with PayPalClient("id", "secret", "https://paypal.test", transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(PayPalError):
                client.get_access_token()


class TestSubscriptionFlow:

    def test_full_flow_creates_paid_store(self, client, db_session, owner, paypal, headers_for):
        headers = headers_for(owner)
        response = client.post(
            "/api/billing/subscriptions",
            json={"store_data": {"name": "Galaxy Games", "address": "9 Orbit Rd"}},
            headers=headers,
        )
        assert response.status_code == 201
        started = response.get_json()
        subscription_id = started["subscription_id"]
        assert started["approval_url"].endswith(subscription_id)
        assert db_session.query(PendingSubscription).count() == 1

        # Not approved yet
        response = client.post(f"/api/billing/subscriptions/{subscription_id}/status", headers=headers)
        assert response.get_json()["store_created"] is False
        assert response.get_json()["status"] == "APPROVAL_PENDING"

        paypal.subscriptions[subscription_id] = {
            "id": subscription_id,
            "status": "ACTIVE",
            "billing_info": {"next_billing_time": "2024-04-01T10:00:00Z"},
        }
        response = client.post(f"/api/billing/subscriptions/{subscription_id}/status", headers=headers)
        body = response.get_json()
        assert response.status_code == 200
        assert body["store_created"] is True
        assert body["store"]["tier"] == PAID_MONTHLY_TIER
        assert body["store"]["payment_status"] == "ACTIVE"
        assert body["store"]["next_payment_date"] == "2024-04-01T10:00:00Z"
        assert body["staff_credentials"]["username"].startswith("gala")

        assert db_session.query(PendingSubscription).count() == 0
        history = db_session.query(PaymentHistory).one()
        assert history.status == "SUCCESS"
        assert history.amount_cents == 700
        assert history.payment_metadata["initial_setup"] is True

        # Checking again reports the existing store instead of creating another
        response = client.post(f"/api/billing/subscriptions/{subscription_id}/status", headers=headers)
        assert response.get_json()["store_created"] is False
        assert db_session.query(Store).filter_by(owner_user_id=owner.id).count() == 1

    def test_expired_pending_never_becomes_store(self, db_session, owner, paypal):
        started = billing_service.start_subscription(owner, {"name": "Late Arcade"})
        pending = db_session.query(PendingSubscription).one()
        pending.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        paypal.subscriptions[started["subscription_id"]]["status"] = "ACTIVE"
        result = billing_service.check_subscription_status(owner, started["subscription_id"])

        assert result["store_created"] is False
        assert db_session.query(Store).count() == 0
        assert billing_service.purge_expired_pending_subscriptions() == 1
        assert db_session.query(PendingSubscription).count() == 0

    def test_other_owner_cannot_claim_pending(self, db_session, owner, other_owner, paypal):
        started = billing_service.start_subscription(owner, {"name": "Mine"})
        paypal.subscriptions[started["subscription_id"]]["status"] = "ACTIVE"

        result = billing_service.check_subscription_status(other_owner, started["subscription_id"])

        assert result["store_created"] is False
        assert db_session.query(PendingSubscription).count() == 1

    def test_duplicate_name_rejected_before_paypal(self, db_session, owner, store, paypal):
        with pytest.raises(ConflictError):
            billing_service.start_subscription(owner, {"name": store.name})
        assert paypal.requests == []

    def test_store_account_cannot_subscribe(self, client, db_session, store_account, paypal, headers_for):
        response = client.post(
            "/api/billing/subscriptions", json={"name": "Nope"}, headers=headers_for(store_account),
        )
        assert response.status_code == 403

    def test_paypal_failure_is_bad_gateway(self, client, db_session, owner, paypal, headers_for):
        response = client.post("/api/billing/subscriptions/I-UNKNOWN/status", headers=headers_for(owner))
        assert response.status_code == 502

    def test_cancel(self, client, db_session, owner, paypal, headers_for):
        store = paid_store(owner)
        response = client.post(
            f"/api/billing/subscriptions/{store.subscription_id}/cancel",
            json={"reason": "Closing down"},
            headers=headers_for(owner),
        )
        assert response.status_code == 200
        assert response.get_json()["store"]["payment_status"] == "CANCELLED"
        assert paypal.paths()[-1] == "/v1/billing/subscriptions/I-WEB0001/cancel"

    def test_cancel_someone_elses_subscription(self, db_session, owner, other_owner, paypal):
        store = paid_store(owner)
        with pytest.raises(BillingError) as excinfo:
            billing_service.cancel_subscription(other_owner, store.subscription_id)
        assert excinfo.value.status == 404


class TestWebhooks:

    def test_sale_completed(self, client, db_session, owner):
        store = paid_store(owner)
        store.payment_failure_count = 2
        db_session.commit()

        response = client.post("/api/billing/webhook", json={
            "event_type": "PAYMENT.SALE.COMPLETED",
            "resource": {
                "id": "SALE-123",
                "billing_agreement_id": store.subscription_id,
                "amount": {"total": "7.00", "currency": "USD"},
            },
        })
        assert response.status_code == 200
        assert response.get_json()["handled"] is True

        db_session.refresh(store)
        assert store.payment_status == "ACTIVE"
        assert store.payment_failure_count == 0
        assert store.next_payment_date is not None
        entry = db_session.query(PaymentHistory).filter_by(payment_id="SALE-123").one()
        assert entry.amount_cents == 700
        assert entry.status == "SUCCESS"

    def test_payment_failed(self, db_session, owner):
        store = paid_store(owner)
        result = billing_service.handle_webhook({
            "event_type": "BILLING.SUBSCRIPTION.PAYMENT.FAILED",
            "resource": {"id": store.subscription_id, "failure_reason": "INSUFFICIENT_FUNDS"},
        })

        assert result == {"event_type": "BILLING.SUBSCRIPTION.PAYMENT.FAILED", "handled": True, "store_id": store.id}
        assert store.payment_status == "FAILED"
        assert store.payment_failure_count == 1
        entry = db_session.query(PaymentHistory).filter_by(store_id=store.id).one()
        assert entry.status == "FAILED"
        assert entry.failure_reason == "INSUFFICIENT_FUNDS"

    @pytest.mark.parametrize("event_type,status", [
        ("BILLING.SUBSCRIPTION.CANCELLED", "CANCELLED"),
        ("BILLING.SUBSCRIPTION.SUSPENDED", "SUSPENDED"),
    ])
    def test_subscription_ended(self, db_session, owner, event_type, status):
        store = paid_store(owner)
        billing_service.handle_webhook({"event_type": event_type, "resource": {"id": store.subscription_id}})
        assert store.payment_status == status
        assert store.is_active is False

    def test_unknown_event_acknowledged(self, client, db_session):
        response = client.post("/api/billing/webhook", json={"event_type": "CUSTOMER.DISPUTE.CREATED"})
        assert response.status_code == 200
        assert response.get_json()["handled"] is False

    def test_unknown_subscription(self, db_session):
        result = billing_service.handle_webhook({
            "event_type": "BILLING.SUBSCRIPTION.CANCELLED", "resource": {"id": "I-NOBODY"},
        })
        assert result["handled"] is False

    def test_non_object_body(self, client, db_session):
        response = client.post("/api/billing/webhook", data="nope", content_type="text/plain")
        assert response.status_code == 400


class TestPaymentHistory:

    def test_history_and_summary(self, client, db_session, owner, store, headers_for):
        paid = paid_store(owner)
        billing_service.handle_webhook({
            "event_type": "PAYMENT.SALE.COMPLETED",
            "resource": {"id": "SALE-1", "billing_agreement_id": paid.subscription_id},
        })
        headers = headers_for(owner)

        payments = client.get("/api/billing/payments", headers=headers).get_json()
        assert [p["payment_id"] for p in payments] == ["SALE-1"]
        assert payments[0]["store_name"] == "Galaxy Games"

        store_payments = client.get(f"/api/billing/stores/{paid.id}/payments", headers=headers).get_json()
        assert len(store_payments) == 1
        assert client.get("/api/billing/payments/recent?limit=5", headers=headers).status_code == 200

        summary = billing_service.payment_summary(owner, today=paid.tier_anchor_date + timedelta(days=5))
        assert summary["total_stores"] == 2
        assert summary["active_subscriptions"] == 1
        assert summary["total_monthly_cost_cents"] == 700
        assert summary["next_billing_dates"][0]["store_id"] == paid.id
        assert summary["upcoming_billing_count"] == 1

    def test_next_billing_date_clamps_month_end(self):
        assert billing_service._next_billing_date(date(2024, 1, 31), date(2024, 2, 1)) == date(2024, 2, 29)
        assert billing_service._next_billing_date(date(2024, 1, 31), date(2024, 3, 5)) == date(2024, 3, 31)

    def test_other_owner_cannot_read_store_payments(self, client, db_session, owner, other_owner, headers_for):
        paid = paid_store(owner)
        response = client.get(f"/api/billing/stores/{paid.id}/payments", headers=headers_for(other_owner))
        assert response.status_code == 403
