# billing_api/models/organizations.py

from typing import Optional

from pydantic import BaseModel, Field


class OrganizationIn(BaseModel):
    name: str = Field(..., max_length=255)
    rsin: str = Field(..., max_length=255, description="RSIN or four letter organization code")
    redirect_url: Optional[str] = Field(default=None, max_length=255)


class OrganizationOut(OrganizationIn):
    id: str

    class Config:
        from_attributes = True
