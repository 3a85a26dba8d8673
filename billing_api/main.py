import logging

from fastapi import FastAPI

from billing_api.api.invoices import router as invoices_router
from billing_api.api.organizations import router as organizations_router
from billing_api.api.payments import (
    invoice_router as invoice_payments_router,
    router as payments_router,
    service_router as service_payments_router,
)
from billing_api.api.services import router as services_router
from billing_api.config import LOG_LEVEL

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(message)s",
)

app = FastAPI(
    title="Billing and payment service",
    version="0.1.0",
)

@app.get("/health")
def health_check():
    return {"status": "ok"}

app.include_router(organizations_router)
app.include_router(services_router)
app.include_router(service_payments_router)
app.include_router(invoices_router)
app.include_router(invoice_payments_router)
app.include_router(payments_router)
