# billing_api/api/services.py

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from billing_api.api.deps import get_store
from billing_api.db.store import Store
from billing_api.models.services import ServiceIn, ServiceOut

router = APIRouter(prefix="/services", tags=["services"])


def _row_to_service(row) -> ServiceOut:
    return ServiceOut(
        id=row["id"],
        organization_id=row["organization_id"],
        type=row["type"],
        configuration=row["configuration"] or {},
        redirect_url=row["redirect_url"],
    )


@router.get("/", response_model=List[ServiceOut])
def list_services(
    organization_id: Optional[str] = Query(default=None),
    store: Store = Depends(get_store),
) -> List[ServiceOut]:
    with store.unit_of_work() as session:
        rows = session.list_services(organization_id)
    return [_row_to_service(row) for row in rows]


@router.post("/", response_model=ServiceOut, status_code=201)
def create_service(body: ServiceIn, store: Store = Depends(get_store)) -> ServiceOut:
    with store.unit_of_work() as session:
        if session.get_organization(body.organization_id) is None:
            raise HTTPException(status_code=404, detail="Organization not found")
        row = session.create_service(body.model_dump())
    return _row_to_service(row)


@router.get("/{service_id}", response_model=ServiceOut)
def get_service(service_id: str, store: Store = Depends(get_store)) -> ServiceOut:
    with store.unit_of_work() as session:
        row = session.get_service(service_id)

    if row is None:
        raise HTTPException(status_code=404, detail="Service not found")

    return _row_to_service(row)


@router.delete("/{service_id}", status_code=204)
def delete_service(service_id: str, store: Store = Depends(get_store)) -> None:
    with store.unit_of_work() as session:
        deleted = session.delete_service(service_id)

    if not deleted:
        raise HTTPException(status_code=404, detail="Service not found")
