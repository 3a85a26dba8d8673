"""
Tests for the payment gateway adapters against fake provider clients.
"""

import json
from decimal import Decimal

import httpx
import pytest
from mollie.api.error import RequestError, ResponseError

from billing_api.gateways.base import ErrorKind, ReturnContext
from billing_api.gateways.factory import build_gateway
from billing_api.gateways.mollie import MollieGateway
from billing_api.gateways.sumup import SumUpClient, SumUpGateway

RETURN_CONTEXT = ReturnContext(scheme="https", host="pay.example.org")


def payment_rows(store):
    with store.unit_of_work() as session:
        return session.list_payments()


class TestCreatePayment:

    def test_free_invoice_skips_provider(self, mollie_gateway, mollie_client, make_invoice):
        invoice = make_invoice([{"price": "0.00"}])

        result = mollie_gateway.create_payment(invoice, RETURN_CONTEXT)

        assert result.ok
        assert result.value.checkout_url == f"https://shop.example.org/done/{invoice['id']}"
        assert result.value.provider_payment_id is None
        assert mollie_client.payments.created == []

    def test_creates_mollie_payment(self, mollie_gateway, mollie_client, make_invoice):
        invoice = make_invoice([{"price": "12.50", "quantity": 2, "taxes": [21]}])

        result = mollie_gateway.create_payment(invoice, RETURN_CONTEXT)

        assert result.ok
        assert result.value.provider_payment_id == "tr_1"
        assert result.value.checkout_url == "https://www.mollie.com/checkout/tr_1"
        sent = mollie_client.payments.created[0]
        assert sent["amount"] == {"currency": "EUR", "value": "25.00"}
        assert sent["metadata"] == {"order_id": invoice["reference"]}
        assert sent["redirectUrl"] == "https://shop.example.org/done"
        assert "webhookUrl" not in sent

    def test_relative_redirect_is_made_absolute(self, mollie_client, mollie_service, make_invoice):
        gateway = MollieGateway(
            client=mollie_client,
            service_id=mollie_service["id"],
            redirect_url="/thanks",
            webhook_base_url="https://hooks.example.org",
        )
        invoice = make_invoice([{"price": "1.00"}])

        assert gateway.create_payment(invoice, RETURN_CONTEXT).ok

        sent = mollie_client.payments.created[0]
        assert sent["redirectUrl"] == "https://pay.example.org/thanks"
        assert sent["webhookUrl"] == f"https://hooks.example.org/payments/webhook/{mollie_service['id']}"

    def test_unsupported_currency_is_not_sent(self, mollie_gateway, mollie_client, make_invoice):
        invoice = dict(make_invoice([{"price": "1.00"}]), price_currency="XTS")

        result = mollie_gateway.create_payment(invoice, RETURN_CONTEXT)

        assert not result.ok
        assert result.error.kind == ErrorKind.UNSUPPORTED_CURRENCY
        assert mollie_client.payments.created == []

    def test_transport_failure_is_retried_once(self, mollie_gateway, mollie_client, make_invoice):
        mollie_client.payments.create_errors = [RequestError("connection reset")]
        invoice = make_invoice([{"price": "1.00"}])

        result = mollie_gateway.create_payment(invoice, RETURN_CONTEXT)

        assert result.ok
        assert len(mollie_client.payments.created) == 2

    def test_persistent_transport_failure(self, mollie_gateway, mollie_client, make_invoice, store):
        mollie_client.payments.create_errors = [RequestError("timeout"), RequestError("timeout")]
        invoice = make_invoice([{"price": "1.00"}])

        result = mollie_gateway.create_payment(invoice, RETURN_CONTEXT)

        assert not result.ok
        assert result.error.kind == ErrorKind.TRANSPORT_FAILURE
        assert "timeout" in result.error.detail
        assert payment_rows(store) == []


class TestSyncPaymentRecord:

    def test_unseen_payment_is_created_against_invoice(
        self, mollie_gateway, mollie_client, make_invoice, store, mollie_service
    ):
        invoice = make_invoice([{"price": "1.00"}])
        checkout = mollie_gateway.create_payment(invoice, RETURN_CONTEXT).value

        result = mollie_gateway.sync_payment_record(checkout.provider_payment_id, store)

        assert result.ok
        payment = result.value
        assert payment["payment_id"] == "tr_1"
        assert payment["status"] == "open"
        assert payment["invoice_id"] == invoice["id"]
        assert payment["service_id"] == mollie_service["id"]

    def test_second_sync_updates_status_in_place(
        self, mollie_gateway, mollie_client, make_invoice, store
    ):
        invoice = make_invoice([{"price": "1.00"}])
        mollie_gateway.create_payment(invoice, RETURN_CONTEXT)
        first = mollie_gateway.sync_payment_record("tr_1", store).value

        mollie_client.payments.statuses["tr_1"] = ("paid", invoice["reference"])
        second = mollie_gateway.sync_payment_record("tr_1", store).value

        assert second["id"] == first["id"]
        assert second["status"] == "paid"
        assert len(payment_rows(store)) == 1
        with store.unit_of_work() as session:
            assert session.get_invoice(invoice["id"])["paid"] is True

    def test_unknown_reference_yields_nothing(self, mollie_gateway, mollie_client, store):
        mollie_client.payments.statuses["tr_x"] = ("paid", "0000-2026-0000000999")

        result = mollie_gateway.sync_payment_record("tr_x", store)

        assert result.ok
        assert result.value is None
        assert payment_rows(store) == []

    def test_provider_failure_writes_nothing(self, mollie_gateway, mollie_client, store):
        mollie_client.payments.get_errors = [RequestError("down"), RequestError("down")]

        result = mollie_gateway.sync_payment_record("tr_1", store)

        assert result.error.kind == ErrorKind.TRANSPORT_FAILURE
        assert payment_rows(store) == []

    def test_fetch_status(self, mollie_gateway, mollie_client):
        mollie_client.payments.statuses["tr_9"] = ("paid", "ref")

        result = mollie_gateway.fetch_status("tr_9")

        assert result.value.status == "paid"
        assert result.value.is_paid is True


def mollie_error(status, title):
    return ResponseError.factory({"status": status, "title": title, "detail": f"{status} {title}"})


class TestMollieErrors:

    @pytest.mark.parametrize(
        "status, title, kind",
        [
            (401, "Unauthorized Request", ErrorKind.AUTHENTICATION_FAILED),
            (404, "Not Found", ErrorKind.NOT_FOUND),
            (422, "Unprocessable Entity", ErrorKind.PROVIDER_REJECTED),
        ],
    )
    def test_response_errors_become_typed_errors(
        self, mollie_gateway, mollie_client, status, title, kind
    ):
        mollie_client.payments.get_errors = [mollie_error(status, title)]

        result = mollie_gateway.fetch_status("tr_1")

        assert not result.ok
        assert result.error.kind == kind
        assert mollie_client.payments.fetched == ["tr_1"]

    def test_unavailable_is_a_transport_failure_and_retried(self, mollie_gateway, mollie_client):
        mollie_client.payments.get_errors = [
            mollie_error(503, "Service Unavailable"),
            mollie_error(503, "Service Unavailable"),
        ]

        result = mollie_gateway.fetch_status("tr_1")

        assert result.error.kind == ErrorKind.TRANSPORT_FAILURE
        assert mollie_client.payments.fetched == ["tr_1", "tr_1"]

    def test_unavailable_once_then_recovers(self, mollie_gateway, mollie_client, make_invoice):
        mollie_client.payments.create_errors = [mollie_error(502, "Bad Gateway")]
        invoice = make_invoice([{"price": "1.00"}])

        result = mollie_gateway.create_payment(invoice, RETURN_CONTEXT)

        assert result.ok
        assert len(mollie_client.payments.created) == 2

    def test_malformed_api_key_is_an_authentication_failure(self, mollie_service, make_invoice):
        gateway = build_gateway(dict(mollie_service, authorization="not-a-key"))
        invoice = make_invoice([{"price": "1.00"}])

        checkout = gateway.create_payment(invoice, RETURN_CONTEXT)
        status = gateway.fetch_status("tr_1")

        assert checkout.error.kind == ErrorKind.AUTHENTICATION_FAILED
        assert status.error.kind == ErrorKind.AUTHENTICATION_FAILED


class SumUpApi:
    """httpx.MockTransport handler emulating the parts of the SumUp API we use."""

    def __init__(self):
        self.requests = []
        self.checkouts = {}
        self.fail_with = None
        self.token_response = {"access_token": "tok_123"}
        self.expired_tokens = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/token":
            form = dict(httpx.QueryParams(request.content.decode()))
            if form["grant_type"] == "refresh_token":
                return httpx.Response(200, json={"access_token": "tok_456", "refresh_token": "ref_2"})
            return httpx.Response(200, json=self.token_response)
        if path == "/people/1":
            return httpx.Response(200, json={"emails": [{"email": "jan@example.org"}]})
        bearer = request.headers.get("Authorization", "").replace("Bearer ", "")
        if bearer in self.expired_tokens:
            return httpx.Response(401, json={"message": "token expired"})
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"message": "nope"})

        if path == "/v0.1/checkouts" and request.method == "POST":
            body = json.loads(request.content)
            checkout_id = f"co_{len(self.checkouts) + 1}"
            self.checkouts[checkout_id] = dict(body, id=checkout_id, status="PENDING")
            return httpx.Response(201, json=self.checkouts[checkout_id])
        if path.startswith("/v0.1/checkouts/"):
            checkout = self.checkouts[path.rsplit("/", 1)[1]]
            if request.method == "PUT":
                checkout["status"] = "PAID"
            return httpx.Response(200, json=checkout)
        if path == "/v0.1/customers":
            return httpx.Response(201, json=json.loads(request.content))
        if path.endswith("/payment-instruments"):
            return httpx.Response(201, json={"token": "card_tok", "type": "card"})
        return httpx.Response(404)


@pytest.fixture
def sumup_api():
    return SumUpApi()


@pytest.fixture
def sumup_gateway(sumup_api):
    client = SumUpClient(
        authorization="auth_code",
        app_id="app",
        app_secret="secret",
        base_url="https://api.sumup.test",
        transport=httpx.MockTransport(sumup_api),
    )
    return SumUpGateway(client=client, service_id="svc-sumup")


class TestSumUpGateway:

    def test_checkout_uses_customer_email_and_token(self, sumup_gateway, sumup_api):
        invoice = {
            "id": "inv-1",
            "reference": "0344-2026-0000000001",
            "price": Decimal("42.00"),
            "price_currency": "EUR",
            "description": "Parking permit",
            "customer": "https://api.sumup.test/people/1",
            "organization_redirect_url": "https://shop.example.org/done",
        }

        result = sumup_gateway.create_payment(invoice, RETURN_CONTEXT)

        assert result.ok
        assert result.value.provider_payment_id == "co_1"
        assert result.value.checkout_url == "https://api.sumup.test/v0.1/checkouts/co_1"
        sent = sumup_api.checkouts["co_1"]
        assert sent["pay_to_email"] == "jan@example.org"
        assert sent["amount"] == 42.0
        assert sent["checkout_reference"] == "0344-2026-0000000001"
        checkout_request = [r for r in sumup_api.requests if r.url.path == "/v0.1/checkouts"][0]
        assert checkout_request.headers["Authorization"] == "Bearer tok_123"

    def test_status_is_lower_cased(self, sumup_gateway, sumup_api):
        sumup_api.checkouts["co_7"] = {"id": "co_7", "status": "PAID", "checkout_reference": "r"}

        result = sumup_gateway.fetch_status("co_7")

        assert result.value.status == "paid"
        assert result.value.is_paid is True
        assert result.value.reference == "r"

    def test_token_is_exchanged_once(self, sumup_gateway, sumup_api):
        sumup_api.checkouts["co_7"] = {"id": "co_7", "status": "PENDING"}

        sumup_gateway.fetch_status("co_7")
        sumup_gateway.fetch_status("co_7")

        assert [r.url.path for r in sumup_api.requests].count("/token") == 1

    def test_expired_token_is_refreshed_once(self, sumup_gateway, sumup_api):
        sumup_api.token_response = {"access_token": "tok_123", "refresh_token": "ref_1"}
        sumup_api.expired_tokens = {"tok_123"}
        sumup_api.checkouts["co_7"] = {"id": "co_7", "status": "PENDING"}

        first = sumup_gateway.fetch_status("co_7")
        second = sumup_gateway.fetch_status("co_7")

        assert first.ok and second.ok
        token_requests = [r for r in sumup_api.requests if r.url.path == "/token"]
        assert len(token_requests) == 2
        refresh = dict(httpx.QueryParams(token_requests[1].content.decode()))
        assert refresh["grant_type"] == "refresh_token"
        assert refresh["refresh_token"] == "ref_1"
        assert sumup_api.requests[-1].headers["Authorization"] == "Bearer tok_456"

    def test_rejected_api_key_is_not_refreshed(self, sumup_api):
        client = SumUpClient(
            authorization="sup_sk_revoked",
            base_url="https://api.sumup.test",
            transport=httpx.MockTransport(sumup_api),
        )
        gateway = SumUpGateway(client=client, service_id="svc-sumup")
        sumup_api.expired_tokens = {"sup_sk_revoked"}

        result = gateway.fetch_status("co_1")

        assert result.error.kind == ErrorKind.AUTHENTICATION_FAILED
        assert [r.url.path for r in sumup_api.requests] == ["/v0.1/checkouts/co_1"]

    @pytest.mark.parametrize(
        "status_code, kind",
        [
            (401, ErrorKind.AUTHENTICATION_FAILED),
            (404, ErrorKind.NOT_FOUND),
            (400, ErrorKind.PROVIDER_REJECTED),
            (503, ErrorKind.TRANSPORT_FAILURE),
        ],
    )
    def test_http_errors_become_typed_errors(self, sumup_gateway, sumup_api, status_code, kind):
        sumup_api.fail_with = status_code

        result = sumup_gateway.fetch_status("co_1")

        assert not result.ok
        assert result.error.kind == kind

    def test_pay_customer_and_card_pass_through(self, sumup_gateway, sumup_api):
        sumup_api.checkouts["co_3"] = {"id": "co_3", "status": "PENDING"}

        paid = sumup_gateway.pay_payment("co_3", "cust-1", "card_tok")
        customer = sumup_gateway.create_customer("cust-1", "Jan", "Jansen", "jan@example.org")
        card = sumup_gateway.add_card("cust-1", {"name": "J Jansen", "number": "4111"})

        assert paid.value.status == "paid"
        assert customer.value == "cust-1"
        assert card.value == "card_tok"
