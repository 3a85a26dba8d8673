# billing_api/gateways/sumup.py
"""
SumUp adapter and a small REST client for the SumUp API.

Besides the shared checkout contract SumUp exposes pass-through calls for
paying a checkout with a stored card, creating a customer and storing a card
for that customer.
"""

import logging
from typing import Optional

import httpx

from billing_api.config import PROVIDER_TIMEOUT, SUMUP_API_URL
from billing_api.gateways.base import (
    Checkout,
    ErrorKind,
    GatewayError,
    GatewayResult,
    PaymentGateway,
    PaymentStatus,
    ProviderError,
)

logger = logging.getLogger(__name__)

SUMUP_CURRENCIES = frozenset({
    "BGN", "BRL", "CHF", "CLP", "CZK", "DKK", "EUR", "GBP",
    "HUF", "NOK", "PLN", "SEK", "USD",
})


class SumUpClient:
    """
    Thin wrapper over the SumUp REST API.

    With `app_id` and `app_secret` the `authorization` value is treated as an
    OAuth authorization code and exchanged for an access token on first use;
    without them it is used as a bearer API key directly. An access token
    that SumUp rejects with 401 is renewed once with the refresh token from
    the last exchange.
    """

    def __init__(
        self,
        authorization: str,
        app_id: Optional[str] = None,
        app_secret: Optional[str] = None,
        base_url: str = SUMUP_API_URL,
        timeout: float = PROVIDER_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url
        self.app_id = app_id
        self.app_secret = app_secret
        self._code = authorization
        self._access_token = None if app_id else authorization
        self._refresh_token = None
        self.http = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def _exchange(self, grant: dict) -> str:
        response = self.http.post(
            "/token",
            data=dict(grant, client_id=self.app_id, client_secret=self.app_secret),
        )
        response.raise_for_status()
        body = response.json()
        self._access_token = body["access_token"]
        self._refresh_token = body.get("refresh_token", self._refresh_token)
        return self._access_token

    def _token(self) -> str:
        if self._access_token is None:
            return self._exchange({"grant_type": "authorization_code", "code": self._code})
        return self._access_token

    def _refresh(self) -> bool:
        if not self._refresh_token:
            return False
        logger.info("SumUp access token rejected, refreshing")
        self._exchange({"grant_type": "refresh_token", "refresh_token": self._refresh_token})
        return True

    def _send(self, method: str, path: str, json: Optional[dict]) -> httpx.Response:
        return self.http.request(
            method,
            path,
            json=json,
            headers={"Authorization": f"Bearer {self._token()}"},
        )

    def request(self, method: str, path: str, json: Optional[dict] = None) -> dict:
        response = self._send(method, path, json)
        if response.status_code == 401 and self._refresh():
            response = self._send(method, path, json)
        response.raise_for_status()
        if not response.content:
            return {}
        return response.json()

    def fetch_json(self, url: str) -> dict:
        """GET an absolute URL outside the SumUp API (e.g. a customer resource)."""
        response = self.http.get(url)
        response.raise_for_status()
        return response.json()

    def checkout_url(self, checkout_id: str) -> str:
        return f"{self.base_url}/v0.1/checkouts/{checkout_id}"


class SumUpGateway(PaymentGateway):
    name = "sumup"
    supported_currencies = SUMUP_CURRENCIES
    provider_errors = (httpx.HTTPError, KeyError, ValueError)

    def __init__(
        self,
        client: SumUpClient,
        service_id: str,
        redirect_url: Optional[str] = None,
        pay_to_email: Optional[str] = None,
    ):
        super().__init__(service_id, redirect_url)
        self.client = client
        self.pay_to_email = pay_to_email

    def _payee_email(self, invoice: dict) -> str:
        if self.pay_to_email:
            return self.pay_to_email

        customer = self.client.fetch_json(invoice["customer"])
        emails = customer.get("emails") or []
        if not emails or not emails[0].get("email"):
            raise ProviderError(
                ErrorKind.PROVIDER_REJECTED,
                f"Customer {invoice['customer']} has no e-mail address",
            )
        return emails[0]["email"]

    def _create_checkout(self, invoice: dict, redirect_url: str) -> Checkout:
        body = self.client.request(
            "POST",
            "/v0.1/checkouts",
            json={
                "checkout_reference": invoice["reference"],
                "amount": float(invoice["price"]),
                "currency": invoice["price_currency"].upper(),
                "pay_to_email": self._payee_email(invoice),
                "description": invoice.get("description") or invoice.get("name"),
                "return_url": redirect_url,
            },
        )
        return Checkout(
            checkout_url=self.client.checkout_url(body["id"]),
            provider_payment_id=body["id"],
        )

    def _fetch_status(self, provider_payment_id: str) -> PaymentStatus:
        body = self.client.request("GET", f"/v0.1/checkouts/{provider_payment_id}")
        status = body["status"].lower()
        return PaymentStatus(
            status=status,
            is_paid=status == "paid",
            reference=body.get("checkout_reference"),
        )

    def _translate(self, exc: BaseException) -> GatewayError:
        if isinstance(exc, httpx.HTTPStatusError):
            code = exc.response.status_code
            detail = exc.response.text or str(exc)
            if code in (401, 403):
                return GatewayError(ErrorKind.AUTHENTICATION_FAILED, detail)
            if code == 404:
                return GatewayError(ErrorKind.NOT_FOUND, detail)
            if code >= 500:
                return GatewayError(ErrorKind.TRANSPORT_FAILURE, detail)
            return GatewayError(ErrorKind.PROVIDER_REJECTED, detail)
        if isinstance(exc, httpx.HTTPError):
            return GatewayError(ErrorKind.TRANSPORT_FAILURE, str(exc))
        # KeyError / ValueError: a response without the fields we need
        return GatewayError(ErrorKind.PROVIDER_REJECTED, f"Unexpected SumUp response: {exc!r}")

    # ---- pass-through ----

    def _pay(self, provider_payment_id: str, customer_id: str, card_token: str) -> PaymentStatus:
        body = self.client.request(
            "PUT",
            f"/v0.1/checkouts/{provider_payment_id}",
            json={"payment_type": "card", "customer_id": customer_id, "token": card_token},
        )
        status = body["status"].lower()
        return PaymentStatus(
            status=status,
            is_paid=status == "paid",
            reference=body.get("checkout_reference"),
        )

    def pay_payment(self, provider_payment_id: str, customer_id: str, card_token: str) -> GatewayResult:
        return self._call("pay_payment", self._pay, provider_payment_id, customer_id, card_token)

    def _create_customer(self, customer_id: str, first_name: str, last_name: str, email: str) -> str:
        body = self.client.request(
            "POST",
            "/v0.1/customers",
            json={
                "customer_id": customer_id,
                "personal_details": {
                    "first_name": first_name,
                    "last_name": last_name,
                    "email": email,
                },
            },
        )
        return body["customer_id"]

    def create_customer(self, customer_id: str, first_name: str, last_name: str, email: str) -> GatewayResult:
        return self._call(
            "create_customer", self._create_customer, customer_id, first_name, last_name, email
        )

    def _add_card(self, customer_id: str, card: dict) -> str:
        body = self.client.request(
            "POST",
            f"/v0.1/customers/{customer_id}/payment-instruments",
            json={"type": "card", "card": card},
        )
        return body["token"]

    def add_card(self, customer_id: str, card: dict) -> GatewayResult:
        return self._call("add_card", self._add_card, customer_id, card)
