# billing_api/models/payments.py

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class PaymentOut(BaseModel):
    id: str
    payment_id: str
    service_id: str
    status: str
    invoice_id: str
    date_created: Optional[datetime] = None
    date_modified: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentListResponse(BaseModel):
    items: List[PaymentOut]
    total: int


class CheckoutOut(BaseModel):
    invoice_id: str
    checkout_url: str
    provider_payment_id: Optional[str] = None


class PaymentStatusOut(BaseModel):
    provider_payment_id: str
    status: str
    paid: bool


class PayIn(BaseModel):
    customer_id: str
    card_token: str
