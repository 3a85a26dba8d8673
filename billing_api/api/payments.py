# billing_api/api/payments.py

from typing import Callable, Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Query

from billing_api.api.deps import get_return_context, get_store
from billing_api.db.store import Store
from billing_api.gateways.base import ErrorKind, GatewayError, ReturnContext
from billing_api.gateways.factory import get_gateway_factory
from billing_api.gateways.sumup import SumUpGateway
from billing_api.models.payments import (
    CheckoutOut,
    PayIn,
    PaymentListResponse,
    PaymentOut,
    PaymentStatusOut,
)
from billing_api.models.services import CardIn, CustomerIn

router = APIRouter(prefix="/payments", tags=["payments"])
invoice_router = APIRouter(prefix="/invoices", tags=["payments"])
service_router = APIRouter(prefix="/services", tags=["payments"])

ERROR_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNSUPPORTED_CURRENCY: 400,
    ErrorKind.PROVIDER_REJECTED: 422,
    ErrorKind.AUTHENTICATION_FAILED: 502,
    ErrorKind.TRANSPORT_FAILURE: 502,
}


def _raise_for(error: GatewayError) -> None:
    raise HTTPException(
        status_code=ERROR_STATUS[error.kind],
        detail={"kind": error.kind.value, "detail": error.detail},
    )


def _load_service(store: Store, service_id: str) -> dict:
    with store.unit_of_work() as session:
        service = session.get_service(service_id)
    if service is None:
        raise HTTPException(status_code=404, detail="Service not found")
    return service


def _sumup_gateway(store: Store, service_id: str, factory: Callable) -> SumUpGateway:
    gateway = factory(_load_service(store, service_id))
    if not isinstance(gateway, SumUpGateway):
        raise HTTPException(status_code=400, detail="Service is not a SumUp integration")
    return gateway


@router.get("/", response_model=PaymentListResponse)
def list_payments(
    invoice_id: Optional[str] = Query(default=None),
    store: Store = Depends(get_store),
) -> PaymentListResponse:
    with store.unit_of_work() as session:
        rows = session.list_payments(invoice_id)
    return PaymentListResponse(items=[PaymentOut(**row) for row in rows], total=len(rows))


@router.get("/status/{service_id}/{provider_payment_id}", response_model=PaymentStatusOut)
def check_payment(
    service_id: str,
    provider_payment_id: str,
    store: Store = Depends(get_store),
    factory: Callable = Depends(get_gateway_factory),
) -> PaymentStatusOut:
    """
    Ask the provider for the current status of a payment without touching the database.
    """
    gateway = factory(_load_service(store, service_id))
    result = gateway.fetch_status(provider_payment_id)
    if not result.ok:
        _raise_for(result.error)

    return PaymentStatusOut(
        provider_payment_id=provider_payment_id,
        status=result.value.status,
        paid=result.value.is_paid,
    )


@router.post("/webhook/{service_id}", response_model=Optional[PaymentOut])
def payment_webhook(
    service_id: str,
    id: str = Form(..., description="Provider payment id"),
    store: Store = Depends(get_store),
    factory: Callable = Depends(get_gateway_factory),
) -> Optional[PaymentOut]:
    """
    Provider callback: mirror the payment status into our Payment record,
    creating the record the first time the payment is seen.
    Answers null when no invoice matches the payment.
    """
    gateway = factory(_load_service(store, service_id))
    result = gateway.sync_payment_record(id, store)
    if not result.ok:
        _raise_for(result.error)

    if result.value is None:
        return None
    return PaymentOut(**result.value)


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(payment_id: str, store: Store = Depends(get_store)) -> PaymentOut:
    with store.unit_of_work() as session:
        row = session.get_payment(payment_id)

    if row is None:
        raise HTTPException(status_code=404, detail="Payment not found")

    return PaymentOut(**row)


@router.post("/{payment_id}/pay", response_model=PaymentOut)
def pay_payment(
    payment_id: str,
    body: PayIn,
    store: Store = Depends(get_store),
    factory: Callable = Depends(get_gateway_factory),
) -> PaymentOut:
    """
    Pay a SumUp checkout with a stored card and record the resulting status.
    """
    with store.unit_of_work() as session:
        payment = session.get_payment(payment_id)
    if payment is None:
        raise HTTPException(status_code=404, detail="Payment not found")

    gateway = _sumup_gateway(store, payment["service_id"], factory)
    result = gateway.pay_payment(payment["payment_id"], body.customer_id, body.card_token)
    if not result.ok:
        _raise_for(result.error)

    with store.unit_of_work() as session:
        row = session.update_payment_status(payment_id, result.value.status)
    return PaymentOut(**row)


@invoice_router.post("/{invoice_id}/payments", response_model=CheckoutOut, status_code=201)
def create_payment(
    invoice_id: str,
    service_id: str = Query(..., description="Payment provider configuration to pay with"),
    store: Store = Depends(get_store),
    factory: Callable = Depends(get_gateway_factory),
    return_context: ReturnContext = Depends(get_return_context),
) -> CheckoutOut:
    """
    Start a payment for an invoice and return the URL to send the customer to.
    """
    with store.unit_of_work() as session:
        invoice = session.get_invoice(invoice_id)
    if invoice is None:
        raise HTTPException(status_code=404, detail="Invoice not found")

    gateway = factory(_load_service(store, service_id))
    result = gateway.create_payment(invoice, return_context)
    if not result.ok:
        _raise_for(result.error)

    checkout = result.value
    with store.unit_of_work() as session:
        session.set_payment_url(invoice_id, checkout.checkout_url)

    return CheckoutOut(
        invoice_id=invoice_id,
        checkout_url=checkout.checkout_url,
        provider_payment_id=checkout.provider_payment_id,
    )


@service_router.post("/{service_id}/customers", status_code=201)
def create_customer(
    service_id: str,
    body: CustomerIn,
    store: Store = Depends(get_store),
    factory: Callable = Depends(get_gateway_factory),
) -> dict:
    gateway = _sumup_gateway(store, service_id, factory)
    result = gateway.create_customer(body.customer_id, body.first_name, body.last_name, body.email)
    if not result.ok:
        _raise_for(result.error)
    return {"customer_id": result.value}


@service_router.post("/{service_id}/customers/{customer_id}/cards", status_code=201)
def add_card(
    service_id: str,
    customer_id: str,
    body: CardIn,
    store: Store = Depends(get_store),
    factory: Callable = Depends(get_gateway_factory),
) -> dict:
    gateway = _sumup_gateway(store, service_id, factory)
    result = gateway.add_card(customer_id, body.model_dump(exclude_none=True))
    if not result.ok:
        _raise_for(result.error)
    return {"token": result.value}
