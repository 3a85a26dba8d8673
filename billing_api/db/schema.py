# billing_api/db/schema.py

from sqlalchemy import (
    JSON, MetaData, Table, Column, Integer, String,
    Numeric, DateTime, ForeignKey, CheckConstraint, Text, UniqueConstraint
)

metadata = MetaData()

organizations = Table(
    "organizations",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    # RSIN or four letter code, first part of every invoice reference
    Column("rsin", String(255), nullable=False),
    Column("redirect_url", String(255), nullable=True),
)

services = Table(
    "services",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("organization_id", String(36), ForeignKey("organizations.id"), nullable=False),
    Column("type", String(32), nullable=False),
    Column("authorization", Text, nullable=False),
    Column("configuration", JSON, nullable=False, default=dict),
    Column("redirect_url", String(255), nullable=True),
    CheckConstraint("type IN ('mollie', 'sumup')", name="ck_services_type"),
)

invoices = Table(
    "invoices",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("description", String(2550)),
    Column("reference", String(255), unique=True),
    Column("reference_id", Integer),
    Column("target_organization", String(255), nullable=False),
    Column("organization_id", String(36), ForeignKey("organizations.id"), nullable=False),
    Column("price", Numeric(8, 2), nullable=False),
    Column("price_currency", String(3), nullable=False),
    Column("taxes", JSON, nullable=False, default=dict),
    Column("date_created", DateTime(timezone=True)),
    Column("date_modified", DateTime(timezone=True)),
    Column("order_uri", String(255)),
    Column("customer", String(255), nullable=False),
    Column("payment_url", String(255)),
    Column("remark", Text),
)

invoice_items = Table(
    "invoice_items",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("invoice_id", String(36), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
    Column("position", Integer, nullable=False),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    # "12.50" (major units) or 1250 (minor units); JSON keeps the two apart
    Column("price", JSON, nullable=False),
    Column("price_currency", String(3), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("taxes", JSON, nullable=False, default=list),
    CheckConstraint("quantity >= 0", name="ck_invoice_items_quantity_nonneg"),
)

payments = Table(
    "payments",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("payment_id", String(255), nullable=False),
    Column("service_id", String(36), ForeignKey("services.id"), nullable=False),
    Column("status", String(64), nullable=False),
    Column("invoice_id", String(36), ForeignKey("invoices.id"), nullable=False),
    Column("date_created", DateTime(timezone=True)),
    Column("date_modified", DateTime(timezone=True)),
    UniqueConstraint("payment_id", name="uq_payments_payment_id"),
)
