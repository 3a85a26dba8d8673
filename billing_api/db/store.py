# billing_api/db/store.py
"""
Persistence for organizations, services, invoices and payments.

`Store.unit_of_work()` opens one transaction (`engine.begin()`) and hands out
a `StoreSession` bound to it; the transaction commits when the block exits
normally and rolls back on any exception. Invoice totals are recomputed
inside the same transaction as every invoice create or update.
"""

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy import and_, func, select, true
from sqlalchemy.engine import Connection, Engine

from billing_api.billing.totals import compute_totals
from billing_api.config import SETTLEMENT_CURRENCY
from billing_api.db.schema import (
    invoice_items,
    invoices,
    organizations,
    payments,
    services,
)
from billing_api.models.invoices import InvoiceIn, InvoiceItemIn


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Store:
    def __init__(self, engine: Engine, currency: str = SETTLEMENT_CURRENCY):
        self.engine = engine
        self.currency = currency

    @contextmanager
    def unit_of_work(self) -> Iterator["StoreSession"]:
        with self.engine.begin() as conn:
            yield StoreSession(conn, self.currency)


class StoreSession:
    def __init__(self, conn: Connection, currency: str = SETTLEMENT_CURRENCY):
        self.conn = conn
        self.currency = currency

    # ---- Organizations ----

    def create_organization(self, values: dict) -> dict:
        row = {"id": _new_id(), **values}
        self.conn.execute(organizations.insert().values(**row))
        return row

    def get_organization(self, organization_id: str) -> Optional[dict]:
        stmt = select(organizations).where(organizations.c.id == organization_id)
        row = self.conn.execute(stmt).mappings().first()
        return dict(row) if row is not None else None

    def list_organizations(self) -> List[dict]:
        stmt = select(organizations).order_by(organizations.c.name)
        return [dict(row) for row in self.conn.execute(stmt).mappings().all()]

    # ---- Services ----

    def create_service(self, values: dict) -> dict:
        row = {"id": _new_id(), **values}
        self.conn.execute(services.insert().values(**row))
        return row

    def get_service(self, service_id: str) -> Optional[dict]:
        stmt = select(services).where(services.c.id == service_id)
        row = self.conn.execute(stmt).mappings().first()
        return dict(row) if row is not None else None

    def list_services(self, organization_id: Optional[str] = None) -> List[dict]:
        stmt = select(services).order_by(services.c.type, services.c.id)
        if organization_id is not None:
            stmt = stmt.where(services.c.organization_id == organization_id)
        return [dict(row) for row in self.conn.execute(stmt).mappings().all()]

    def delete_service(self, service_id: str) -> bool:
        result = self.conn.execute(services.delete().where(services.c.id == service_id))
        return result.rowcount > 0

    # ---- Invoices ----

    def _next_reference(self, organization: dict, year: int) -> Tuple[str, int]:
        """Build {rsin}-{year}-{reference_id}, reference_id counting per organization and year."""
        prefix = f"{organization['rsin']}-{year}-"
        stmt = select(func.max(invoices.c.reference_id)).where(
            and_(
                invoices.c.organization_id == organization["id"],
                invoices.c.reference.like(prefix + "%"),
            )
        )
        reference_id = (self.conn.execute(stmt).scalar() or 0) + 1
        return f"{prefix}{reference_id:010d}", reference_id

    def _insert_items(self, invoice_id: str, items: List[InvoiceItemIn]) -> None:
        if not items:
            return
        self.conn.execute(
            invoice_items.insert(),
            [
                {
                    "id": _new_id(),
                    "invoice_id": invoice_id,
                    "position": position,
                    "name": item.name,
                    "description": item.description,
                    "price": item.price,
                    "price_currency": item.price_currency.upper(),
                    "quantity": item.quantity,
                    "taxes": list(item.taxes),
                }
                for position, item in enumerate(items)
            ],
        )

    def create_invoice(self, data: InvoiceIn) -> dict:
        """
        Insert an invoice and its items. Raises LookupError for an unknown
        organization and TotalsError when the items cannot be totalled.
        """
        organization = self.get_organization(data.organization_id)
        if organization is None:
            raise LookupError(f"Organization {data.organization_id} not found")

        totals = compute_totals(data.items, currency=self.currency)
        now = _now()
        reference, reference_id = self._next_reference(organization, now.year)
        invoice_id = _new_id()

        self.conn.execute(
            invoices.insert().values(
                id=invoice_id,
                name=data.name,
                description=data.description,
                reference=reference,
                reference_id=reference_id,
                target_organization=data.target_organization,
                organization_id=data.organization_id,
                price=totals.price,
                price_currency=totals.currency,
                taxes=totals.taxes_for_storage(),
                date_created=now,
                date_modified=now,
                order_uri=data.order,
                customer=data.customer,
                remark=data.remark,
            )
        )
        self._insert_items(invoice_id, data.items)
        return self.get_invoice(invoice_id)

    def update_invoice(self, invoice_id: str, data: InvoiceIn) -> Optional[dict]:
        """Replace an invoice's fields and items; totals are recomputed from the new items."""
        existing = self.conn.execute(
            select(invoices.c.id).where(invoices.c.id == invoice_id)
        ).first()
        if existing is None:
            return None

        if self.get_organization(data.organization_id) is None:
            raise LookupError(f"Organization {data.organization_id} not found")

        totals = compute_totals(data.items, currency=self.currency)

        self.conn.execute(
            invoices.update()
            .where(invoices.c.id == invoice_id)
            .values(
                name=data.name,
                description=data.description,
                target_organization=data.target_organization,
                organization_id=data.organization_id,
                price=totals.price,
                price_currency=totals.currency,
                taxes=totals.taxes_for_storage(),
                date_modified=_now(),
                order_uri=data.order,
                customer=data.customer,
                remark=data.remark,
            )
        )
        self.conn.execute(invoice_items.delete().where(invoice_items.c.invoice_id == invoice_id))
        self._insert_items(invoice_id, data.items)
        return self.get_invoice(invoice_id)

    def delete_invoice(self, invoice_id: str) -> bool:
        """Delete an invoice without payments. Raises ValueError if it has any."""
        n_payments = self.conn.execute(
            select(func.count()).select_from(payments).where(payments.c.invoice_id == invoice_id)
        ).scalar_one()
        if n_payments:
            raise ValueError("Invoice has payments and cannot be deleted")

        self.conn.execute(invoice_items.delete().where(invoice_items.c.invoice_id == invoice_id))
        result = self.conn.execute(invoices.delete().where(invoices.c.id == invoice_id))
        return result.rowcount > 0

    def set_payment_url(self, invoice_id: str, payment_url: str) -> None:
        self.conn.execute(
            invoices.update()
            .where(invoices.c.id == invoice_id)
            .values(payment_url=payment_url, date_modified=_now())
        )

    def _items_by_invoice(self, invoice_ids: List[str]) -> Dict[str, List[dict]]:
        grouped: Dict[str, List[dict]] = {invoice_id: [] for invoice_id in invoice_ids}
        if not invoice_ids:
            return grouped
        stmt = (
            select(invoice_items)
            .where(invoice_items.c.invoice_id.in_(invoice_ids))
            .order_by(invoice_items.c.invoice_id, invoice_items.c.position)
        )
        for row in self.conn.execute(stmt).mappings().all():
            grouped[row["invoice_id"]].append(dict(row))
        return grouped

    def _paid_invoice_ids(self, invoice_ids: List[str]) -> set:
        if not invoice_ids:
            return set()
        stmt = select(payments.c.invoice_id).where(
            and_(payments.c.invoice_id.in_(invoice_ids), payments.c.status == "paid")
        )
        return set(self.conn.execute(stmt).scalars().all())

    def _invoice_select(self):
        return select(
            invoices,
            organizations.c.redirect_url.label("organization_redirect_url"),
        ).select_from(invoices.join(organizations))

    def _hydrate(self, rows) -> List[dict]:
        ids = [row["id"] for row in rows]
        items = self._items_by_invoice(ids)
        paid = self._paid_invoice_ids(ids)
        result = []
        for row in rows:
            invoice = dict(row)
            invoice["order"] = invoice.pop("order_uri")
            invoice["items"] = items[row["id"]]
            invoice["paid"] = row["id"] in paid
            result.append(invoice)
        return result

    def get_invoice(self, invoice_id: str) -> Optional[dict]:
        stmt = self._invoice_select().where(invoices.c.id == invoice_id)
        row = self.conn.execute(stmt).mappings().first()
        if row is None:
            return None
        return self._hydrate([row])[0]

    def find_invoice_by_reference(self, reference: str) -> Optional[dict]:
        stmt = (
            self._invoice_select()
            .where(invoices.c.reference == reference)
            .order_by(invoices.c.date_created.desc())
        )
        row = self.conn.execute(stmt).mappings().first()
        if row is None:
            return None
        return self._hydrate([row])[0]

    def list_invoices(
        self,
        reference: Optional[str] = None,
        target_organization: Optional[str] = None,
        customer: Optional[str] = None,
        descending: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[dict], int]:
        conditions = []
        if reference is not None:
            conditions.append(invoices.c.reference == reference)
        if target_organization is not None:
            conditions.append(invoices.c.target_organization == target_organization)
        if customer is not None:
            conditions.append(invoices.c.customer == customer)
        where = and_(true(), *conditions)

        count_stmt = select(func.count()).select_from(invoices).where(where)
        total = self.conn.execute(count_stmt).scalar_one()

        order_clause = invoices.c.date_created.desc() if descending else invoices.c.date_created.asc()
        stmt = (
            self._invoice_select()
            .where(where)
            .order_by(order_clause, invoices.c.reference)
            .limit(limit)
            .offset(offset)
        )
        rows = self.conn.execute(stmt).mappings().all()
        return self._hydrate(rows), total

    # ---- Payments ----

    def find_payment_by_provider_id(self, provider_payment_id: str) -> Optional[dict]:
        stmt = select(payments).where(payments.c.payment_id == provider_payment_id)
        row = self.conn.execute(stmt).mappings().first()
        return dict(row) if row is not None else None

    def get_payment(self, payment_id: str) -> Optional[dict]:
        stmt = select(payments).where(payments.c.id == payment_id)
        row = self.conn.execute(stmt).mappings().first()
        return dict(row) if row is not None else None

    def list_payments(self, invoice_id: Optional[str] = None) -> List[dict]:
        stmt = select(payments).order_by(payments.c.date_created)
        if invoice_id is not None:
            stmt = stmt.where(payments.c.invoice_id == invoice_id)
        return [dict(row) for row in self.conn.execute(stmt).mappings().all()]

    def create_payment(
        self, provider_payment_id: str, service_id: str, status: str, invoice_id: str
    ) -> dict:
        now = _now()
        row = {
            "id": _new_id(),
            "payment_id": provider_payment_id,
            "service_id": service_id,
            "status": status,
            "invoice_id": invoice_id,
            "date_created": now,
            "date_modified": now,
        }
        self.conn.execute(payments.insert().values(**row))
        return row

    def update_payment_status(self, payment_id: str, status: str) -> Optional[dict]:
        self.conn.execute(
            payments.update()
            .where(payments.c.id == payment_id)
            .values(status=status, date_modified=_now())
        )
        return self.get_payment(payment_id)
