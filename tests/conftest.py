"""
Shared fixtures: an in-memory SQLite database, a Store on top of it, a
FastAPI TestClient wired to both, and a fake Mollie SDK client.
"""

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from billing_api.db.engine import get_engine
from billing_api.db.schema import metadata
from billing_api.db.store import Store
from billing_api.gateways.factory import get_gateway_factory
from billing_api.gateways.mollie import MollieGateway
from billing_api.main import app
from billing_api.models.invoices import InvoiceIn, InvoiceItemIn


class FakeMolliePayments:
    """Stands in for `Client().payments`; records every call."""

    def __init__(self):
        self.created = []
        self.fetched = []
        self.statuses = {}
        self.create_errors = []
        self.get_errors = []

    def create(self, data):
        self.created.append(data)
        if self.create_errors:
            raise self.create_errors.pop(0)
        payment_id = f"tr_{len(self.created)}"
        self.statuses[payment_id] = ("open", data["metadata"]["order_id"])
        return SimpleNamespace(
            id=payment_id,
            checkout_url=f"https://www.mollie.com/checkout/{payment_id}",
        )

    def get(self, payment_id):
        self.fetched.append(payment_id)
        if self.get_errors:
            raise self.get_errors.pop(0)
        status, order_id = self.statuses[payment_id]
        return SimpleNamespace(
            id=payment_id,
            status=status,
            metadata={"order_id": order_id},
            is_paid=lambda: status == "paid",
        )


class FakeMollieClient:
    def __init__(self):
        self.payments = FakeMolliePayments()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return Store(engine, currency="EUR")


@pytest.fixture
def organization(store):
    with store.unit_of_work() as session:
        return session.create_organization(
            {"name": "Gemeente Utrecht", "rsin": "0344", "redirect_url": "https://shop.example.org/done"}
        )


@pytest.fixture
def mollie_service(store, organization):
    with store.unit_of_work() as session:
        return session.create_service(
            {
                "organization_id": organization["id"],
                "type": "mollie",
                "authorization": "test_dHar4XY7LxsDOtmnkVtjNVWXLSlXsM",
                "configuration": {},
                "redirect_url": None,
            }
        )


@pytest.fixture
def make_invoice(store, organization):
    def _make(items, **overrides):
        data = InvoiceIn(
            name=overrides.pop("name", "Parking permit"),
            description=overrides.pop("description", "Parking permit 2026"),
            target_organization="002851234",
            organization_id=organization["id"],
            customer="https://cc.example.org/people/1",
            items=[InvoiceItemIn(**{"name": "line", **item}) for item in items],
            **overrides,
        )
        with store.unit_of_work() as session:
            return session.create_invoice(data)

    return _make


@pytest.fixture
def mollie_client():
    return FakeMollieClient()


@pytest.fixture
def mollie_gateway(mollie_client, mollie_service):
    return MollieGateway(client=mollie_client, service_id=mollie_service["id"], webhook_base_url="")


@pytest.fixture
def client(engine, mollie_client):
    def factory(service):
        return MollieGateway(client=mollie_client, service_id=service["id"], webhook_base_url="")

    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_gateway_factory] = lambda: factory
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
