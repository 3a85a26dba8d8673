# billing_api/gateways/base.py
"""
Shared contract for payment-provider adapters.

An adapter never lets a provider exception escape: every call returns a
GatewayResult holding either a value or a GatewayError. Transport failures
are retried once before they are reported.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, FrozenSet, Optional, Tuple, Type

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    AUTHENTICATION_FAILED = "authentication_failed"
    PROVIDER_REJECTED = "provider_rejected"
    TRANSPORT_FAILURE = "transport_failure"
    NOT_FOUND = "not_found"
    UNSUPPORTED_CURRENCY = "unsupported_currency"


@dataclass(frozen=True)
class GatewayError:
    kind: ErrorKind
    detail: str = ""


@dataclass(frozen=True)
class GatewayResult:
    value: Any = None
    error: Optional[GatewayError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any = None) -> "GatewayResult":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, detail: str = "") -> "GatewayResult":
        return cls(error=GatewayError(kind=kind, detail=detail))


class ProviderError(Exception):
    """Raised inside an adapter for failures the provider SDK does not signal itself."""

    def __init__(self, kind: ErrorKind, detail: str = ""):
        super().__init__(detail)
        self.kind = kind
        self.detail = detail


@dataclass(frozen=True)
class Checkout:
    checkout_url: str
    provider_payment_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentStatus:
    status: str
    is_paid: bool
    # correlation reference the payment was created with (the invoice reference)
    reference: Optional[str] = None


@dataclass(frozen=True)
class ReturnContext:
    scheme: str
    host: str

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}"

    def absolute(self, url: str) -> str:
        if url.startswith("/"):
            return self.base_url + url
        return url


class PaymentGateway:
    """
    Base adapter. Subclasses set `name`, `supported_currencies` and
    `provider_errors`, and implement `_create_checkout`, `_fetch_status`
    and `_translate`.
    """

    name = "base"
    supported_currencies: FrozenSet[str] = frozenset()
    provider_errors: Tuple[Type[BaseException], ...] = ()
    retries = 1

    def __init__(self, service_id: str, redirect_url: Optional[str] = None):
        self.service_id = service_id
        self.redirect_url = redirect_url

    # ---- provider specific ----

    def _create_checkout(self, invoice: dict, redirect_url: str) -> Checkout:
        raise NotImplementedError

    def _fetch_status(self, provider_payment_id: str) -> PaymentStatus:
        raise NotImplementedError

    def _translate(self, exc: BaseException) -> GatewayError:
        raise NotImplementedError

    # ---- shared ----

    def _call(self, operation: str, fn: Callable, *args) -> GatewayResult:
        attempt = 0
        while True:
            try:
                return GatewayResult.success(fn(*args))
            except ProviderError as e:
                error = GatewayError(kind=e.kind, detail=e.detail)
            except self.provider_errors as e:
                error = self._translate(e)

            if error.kind == ErrorKind.TRANSPORT_FAILURE and attempt < self.retries:
                attempt += 1
                logger.warning(
                    "%s %s: transport failure (%s), retrying", self.name, operation, error.detail
                )
                continue

            logger.warning(
                "%s %s failed: %s %s", self.name, operation, error.kind.value, error.detail
            )
            return GatewayResult(error=error)

    def _redirect_for(self, invoice: dict, return_context: ReturnContext) -> str:
        redirect_url = self.redirect_url or invoice.get("organization_redirect_url")
        if not redirect_url:
            return f"{return_context.base_url}/invoices/{invoice['id']}"
        return return_context.absolute(redirect_url)

    def create_payment(self, invoice: dict, return_context: ReturnContext) -> GatewayResult:
        """
        Start a payment for `invoice` at the provider and return its Checkout.

        A free invoice skips the provider and is sent straight to the
        organization's redirect URL.
        """
        if Decimal(invoice["price"]) <= 0:
            redirect_url = invoice.get("organization_redirect_url") or return_context.base_url
            redirect_url = return_context.absolute(redirect_url).rstrip("/")
            return GatewayResult.success(
                Checkout(checkout_url=f"{redirect_url}/{invoice['id']}")
            )

        currency = (invoice.get("price_currency") or "").upper()
        if currency not in self.supported_currencies:
            return GatewayResult.failure(
                ErrorKind.UNSUPPORTED_CURRENCY,
                f"{self.name} does not accept {currency or 'an empty currency'}",
            )

        result = self._call(
            "create_payment",
            self._create_checkout,
            invoice,
            self._redirect_for(invoice, return_context),
        )
        if result.ok:
            logger.info(
                "%s checkout %s created for invoice %s",
                self.name,
                result.value.provider_payment_id,
                invoice.get("reference"),
            )
        return result

    def fetch_status(self, provider_payment_id: str) -> GatewayResult:
        return self._call("fetch_status", self._fetch_status, provider_payment_id)

    def sync_payment_record(self, provider_payment_id: str, store) -> GatewayResult:
        """
        Mirror the provider's status of a payment into the Payment table.

        An existing Payment only gets its status refreshed. An unseen one is
        created against the invoice whose reference the provider reports.
        When no such invoice exists the result holds no value and no error.
        """
        result = self.fetch_status(provider_payment_id)
        if not result.ok:
            return result
        status: PaymentStatus = result.value

        with store.unit_of_work() as session:
            payment = session.find_payment_by_provider_id(provider_payment_id)
            if payment is not None:
                payment = session.update_payment_status(payment["id"], status.status)
                logger.info(
                    "Payment %s status is now %s", provider_payment_id, status.status
                )
                return GatewayResult.success(payment)

            invoice = None
            if status.reference:
                invoice = session.find_invoice_by_reference(status.reference)
            if invoice is None:
                logger.info(
                    "No invoice with reference %r for %s payment %s",
                    status.reference,
                    self.name,
                    provider_payment_id,
                )
                return GatewayResult.success(None)

            payment = session.create_payment(
                provider_payment_id, self.service_id, status.status, invoice["id"]
            )

        logger.info(
            "Payment %s recorded for invoice %s with status %s",
            provider_payment_id,
            invoice["reference"],
            status.status,
        )
        return GatewayResult.success(payment)
