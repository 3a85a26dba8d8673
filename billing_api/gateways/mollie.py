# billing_api/gateways/mollie.py

from typing import Optional

from mollie.api.client import Client
from mollie.api.error import (
    Error,
    NotFoundError,
    RequestError,
    RequestSetupError,
    ResponseError,
    UnauthorizedError,
)

from billing_api.config import PROVIDER_TIMEOUT, WEBHOOK_BASE_URL
from billing_api.gateways.base import (
    Checkout,
    ErrorKind,
    GatewayError,
    PaymentGateway,
    PaymentStatus,
)

MOLLIE_CURRENCIES = frozenset({
    "AED", "AUD", "BGN", "BRL", "CAD", "CHF", "CZK", "DKK", "EUR", "GBP",
    "HKD", "HUF", "ILS", "ISK", "JPY", "MXN", "MYR", "NOK", "NZD", "PHP",
    "PLN", "RON", "SEK", "SGD", "THB", "TWD", "USD", "ZAR",
})


def build_mollie_client(timeout: float = PROVIDER_TIMEOUT) -> Client:
    # retries happen in PaymentGateway._call, not in the HTTP adapter
    return Client(timeout=timeout, retry=0)


class MollieGateway(PaymentGateway):
    """Mollie adapter.

    The API key is set on the SDK client inside each provider call, so a
    malformed key (`RequestSetupError`) comes back as an authentication
    failure instead of escaping from the constructor.
    """

    name = "mollie"
    supported_currencies = MOLLIE_CURRENCIES
    provider_errors = (Error,)

    def __init__(
        self,
        client,
        service_id: str,
        redirect_url: Optional[str] = None,
        webhook_base_url: str = WEBHOOK_BASE_URL,
        api_key: Optional[str] = None,
    ):
        super().__init__(service_id, redirect_url)
        self.client = client
        self.webhook_base_url = webhook_base_url
        self.api_key = api_key

    def _authenticate(self):
        if self.api_key is not None:
            self.client.set_api_key(self.api_key)

    def _create_checkout(self, invoice: dict, redirect_url: str) -> Checkout:
        data = {
            "amount": {
                "currency": invoice["price_currency"].upper(),
                "value": f"{invoice['price']:.2f}",
            },
            "description": invoice.get("description") or invoice.get("name"),
            "redirectUrl": redirect_url,
            "metadata": {"order_id": invoice["reference"]},
        }
        if self.webhook_base_url:
            data["webhookUrl"] = f"{self.webhook_base_url}/payments/webhook/{self.service_id}"

        self._authenticate()
        payment = self.client.payments.create(data)
        return Checkout(checkout_url=payment.checkout_url, provider_payment_id=payment.id)

    def _fetch_status(self, provider_payment_id: str) -> PaymentStatus:
        self._authenticate()
        payment = self.client.payments.get(provider_payment_id)
        metadata = payment.metadata or {}
        return PaymentStatus(
            status=payment.status,
            is_paid=payment.is_paid(),
            reference=metadata.get("order_id"),
        )

    def _translate(self, exc: BaseException) -> GatewayError:
        if isinstance(exc, (UnauthorizedError, RequestSetupError)):
            kind = ErrorKind.AUTHENTICATION_FAILED
        elif isinstance(exc, RequestError):
            kind = ErrorKind.TRANSPORT_FAILURE
        elif isinstance(exc, NotFoundError):
            kind = ErrorKind.NOT_FOUND
        elif isinstance(exc, ResponseError) and (getattr(exc, "status", None) or 0) >= 500:
            # Mollie unavailable; retried like a dropped connection
            kind = ErrorKind.TRANSPORT_FAILURE
        else:
            kind = ErrorKind.PROVIDER_REJECTED
        return GatewayError(kind=kind, detail=str(exc))
