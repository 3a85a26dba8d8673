# billing_api/api/organizations.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from billing_api.api.deps import get_store
from billing_api.db.store import Store
from billing_api.models.organizations import OrganizationIn, OrganizationOut

router = APIRouter(prefix="/organizations", tags=["organizations"])


@router.get("/", response_model=List[OrganizationOut])
def list_organizations(store: Store = Depends(get_store)) -> List[OrganizationOut]:
    with store.unit_of_work() as session:
        rows = session.list_organizations()
    return [OrganizationOut(**row) for row in rows]


@router.post("/", response_model=OrganizationOut, status_code=201)
def create_organization(
    body: OrganizationIn, store: Store = Depends(get_store)
) -> OrganizationOut:
    with store.unit_of_work() as session:
        row = session.create_organization(body.model_dump())
    return OrganizationOut(**row)


@router.get("/{organization_id}", response_model=OrganizationOut)
def get_organization(organization_id: str, store: Store = Depends(get_store)) -> OrganizationOut:
    with store.unit_of_work() as session:
        row = session.get_organization(organization_id)

    if row is None:
        raise HTTPException(status_code=404, detail="Organization not found")

    return OrganizationOut(**row)
