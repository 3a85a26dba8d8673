# billing_api/models/invoices.py

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, StrictInt, StrictStr

from billing_api.config import SETTLEMENT_CURRENCY


class InvoiceItemIn(BaseModel):
    name: str = Field(..., max_length=255)
    description: Optional[str] = None
    # "12.50" in major units, or 1250 in minor units
    price: Union[StrictInt, StrictStr]
    price_currency: str = Field(SETTLEMENT_CURRENCY, min_length=3, max_length=3)
    quantity: int = Field(1, ge=0)
    taxes: List[int] = Field(default_factory=list, description="Tax percentages")


class InvoiceItemOut(InvoiceItemIn):
    id: str

    class Config:
        from_attributes = True


class InvoiceIn(BaseModel):
    name: str = Field(..., max_length=255)
    description: Optional[str] = Field(default=None, max_length=2550)
    target_organization: str = Field(..., max_length=255)
    organization_id: str
    customer: str = Field(..., max_length=255)
    order: Optional[str] = Field(default=None, max_length=255)
    remark: Optional[str] = None
    items: List[InvoiceItemIn] = Field(default_factory=list)


class InvoiceOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    reference: Optional[str] = None
    target_organization: str
    organization_id: str
    customer: str
    order: Optional[str] = None
    remark: Optional[str] = None
    items: List[InvoiceItemOut]
    price: Decimal
    price_currency: str
    taxes: Dict[str, Decimal]
    payment_url: Optional[str] = None
    paid: bool
    date_created: Optional[datetime] = None
    date_modified: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvoiceListResponse(BaseModel):
    items: List[InvoiceOut]
    total: int
    limit: int
    offset: int
