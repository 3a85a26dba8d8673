# billing_api/models/services.py

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class ServiceIn(BaseModel):
    organization_id: str
    type: Literal["mollie", "sumup"]
    authorization: str = Field(..., description="Provider credential (API key or OAuth code)")
    configuration: Dict[str, Any] = Field(default_factory=dict)
    redirect_url: Optional[str] = Field(default=None, max_length=255)


class ServiceOut(BaseModel):
    # the credential is write-only
    id: str
    organization_id: str
    type: str
    configuration: Dict[str, Any]
    redirect_url: Optional[str] = None

    class Config:
        from_attributes = True


class CustomerIn(BaseModel):
    customer_id: str
    first_name: str
    last_name: str
    email: EmailStr


class CardIn(BaseModel):
    name: str
    number: str
    expiry_year: str
    expiry_month: str
    cvv: str
    zip_code: Optional[str] = None
