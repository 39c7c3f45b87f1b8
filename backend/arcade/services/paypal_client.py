# Overview: Thin httpx client for the PayPal subscriptions REST API.

from __future__ import annotations

import httpx
from flask import current_app


class PayPalError(Exception):
    """Raised when PayPal is unreachable or rejects a request."""

    def __init__(self, message: str, status_code: int | None = None, details=None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class PayPalClient:
    """
    Client-credentials PayPal client.

    Only the calls the billing flow needs: create, fetch and cancel a
    subscription. Product and plan setup happen outside the app; the plan
    id comes from PAYPAL_PLAN_ID.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str,
        *,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.http = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    @classmethod
    def from_config(cls, config=None, *, transport: httpx.BaseTransport | None = None) -> "PayPalClient":
        config = config if config is not None else current_app.config
        return cls(
            config["PAYPAL_CLIENT_ID"],
            config["PAYPAL_CLIENT_SECRET"],
            config["PAYPAL_BASE_URL"],
            timeout=config["PAYPAL_TIMEOUT_SECONDS"],
            transport=transport or config.get("PAYPAL_TRANSPORT"),
        )

    def close(self) -> None:
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self.http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise PayPalError(f"PayPal request failed: {exc}") from exc
        if response.is_error:
            try:
                details = response.json()
            except ValueError:
                details = response.text
            raise PayPalError(
                f"PayPal returned {response.status_code} for {method} {path}",
                status_code=response.status_code,
                details=details,
            )
        return response

    def get_access_token(self) -> str:
        if not self.client_id or not self.client_secret:
            raise PayPalError("PayPal credentials are not configured")
        response = self._send(
            "POST",
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
            headers={"Accept": "application/json"},
        )
        token = response.json().get("access_token")
        if not token:
            raise PayPalError("PayPal token response had no access_token")
        return token

    def _authorized(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.get_access_token()}",
            "Content-Type": "application/json",
        }
        return self._send(method, path, headers=headers, **kwargs)

    def create_subscription(
        self,
        *,
        plan_id: str,
        subscriber_name: str,
        subscriber_email: str,
        brand_name: str,
        return_url: str,
        cancel_url: str,
    ) -> dict:
        """Returns {"id", "status", "approval_url"}."""
        if not plan_id:
            raise PayPalError("PAYPAL_PLAN_ID is not configured")
        body = {
            "plan_id": plan_id,
            "subscriber": {
                "name": {"given_name": subscriber_name},
                "email_address": subscriber_email,
            },
            "application_context": {
                "brand_name": brand_name,
                "shipping_preference": "NO_SHIPPING",
                "user_action": "SUBSCRIBE_NOW",
                "payment_method": {
                    "payer_selected": "PAYPAL",
                    "payee_preferred": "IMMEDIATE_PAYMENT_REQUIRED",
                },
                "return_url": return_url,
                "cancel_url": cancel_url,
            },
        }
        data = self._authorized("POST", "/v1/billing/subscriptions", json=body).json()
        approval_url = next(
            (link.get("href") for link in data.get("links", []) if link.get("rel") == "approve"),
            None,
        )
        return {"id": data.get("id"), "status": data.get("status"), "approval_url": approval_url}

    def get_subscription(self, subscription_id: str) -> dict:
        return self._authorized("GET", f"/v1/billing/subscriptions/{subscription_id}").json()

    def cancel_subscription(self, subscription_id: str, reason: str) -> None:
        # 204 No Content on success
        self._authorized(
            "POST",
            f"/v1/billing/subscriptions/{subscription_id}/cancel",
            json={"reason": reason},
        )
