# billing_api/api/invoices.py

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from billing_api.api.deps import get_store
from billing_api.billing.totals import TotalsError
from billing_api.db.store import Store
from billing_api.models.invoices import (
    InvoiceIn,
    InvoiceItemOut,
    InvoiceListResponse,
    InvoiceOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])


def _row_to_invoice(row) -> InvoiceOut:
    return InvoiceOut(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        reference=row["reference"],
        target_organization=row["target_organization"],
        organization_id=row["organization_id"],
        customer=row["customer"],
        order=row["order"],
        remark=row["remark"],
        items=[
            InvoiceItemOut(
                id=item["id"],
                name=item["name"],
                description=item["description"],
                price=item["price"],
                price_currency=item["price_currency"],
                quantity=item["quantity"],
                taxes=item["taxes"] or [],
            )
            for item in row["items"]
        ],
        price=row["price"],
        price_currency=row["price_currency"],
        taxes=row["taxes"] or {},
        payment_url=row["payment_url"],
        paid=row["paid"],
        date_created=row["date_created"],
        date_modified=row["date_modified"],
    )


@router.get("/", response_model=InvoiceListResponse)
def list_invoices(
    reference: Optional[str] = Query(default=None, description="Exact invoice reference"),
    target_organization: Optional[str] = Query(default=None),
    customer: Optional[str] = Query(default=None),
    order: Optional[str] = Query(
        default="date_created.asc",
        description="date_created.asc | date_created.desc",
    ),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    store: Store = Depends(get_store),
) -> InvoiceListResponse:
    with store.unit_of_work() as session:
        rows, total = session.list_invoices(
            reference=reference,
            target_organization=target_organization,
            customer=customer,
            descending=order == "date_created.desc",
            limit=limit,
            offset=offset,
        )

    return InvoiceListResponse(
        items=[_row_to_invoice(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/", response_model=InvoiceOut, status_code=201)
def create_invoice(body: InvoiceIn, store: Store = Depends(get_store)) -> InvoiceOut:
    """
    Create an invoice. Price, currency and taxes are computed from the items.
    """
    try:
        with store.unit_of_work() as session:
            row = session.create_invoice(body)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TotalsError as e:
        logger.warning("Invoice %r rejected: %s", body.name, e)
        raise HTTPException(status_code=422, detail=str(e))

    logger.info("Invoice %s created, total %s %s", row["reference"], row["price"], row["price_currency"])
    return _row_to_invoice(row)


@router.get("/{invoice_id}", response_model=InvoiceOut)
def get_invoice(invoice_id: str, store: Store = Depends(get_store)) -> InvoiceOut:
    with store.unit_of_work() as session:
        row = session.get_invoice(invoice_id)

    if row is None:
        raise HTTPException(status_code=404, detail="Invoice not found")

    return _row_to_invoice(row)


@router.put("/{invoice_id}", response_model=InvoiceOut)
def update_invoice(
    invoice_id: str, body: InvoiceIn, store: Store = Depends(get_store)
) -> InvoiceOut:
    try:
        with store.unit_of_work() as session:
            row = session.update_invoice(invoice_id, body)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TotalsError as e:
        logger.warning("Update of invoice %s rejected: %s", invoice_id, e)
        raise HTTPException(status_code=422, detail=str(e))

    if row is None:
        raise HTTPException(status_code=404, detail="Invoice not found")

    return _row_to_invoice(row)


@router.delete("/{invoice_id}", status_code=204)
def delete_invoice(invoice_id: str, store: Store = Depends(get_store)) -> None:
    try:
        with store.unit_of_work() as session:
            deleted = session.delete_invoice(invoice_id)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if not deleted:
        raise HTTPException(status_code=404, detail="Invoice not found")
