from fastapi import APIRouter, Depends, Query

from app.api.deps import get_dealership_service
from app.schemas.common import ListResponse
from app.schemas.dealership import BillingSummary, DealershipRead
from app.services.dealership_service import DealershipService

router = APIRouter(prefix="/dealerships", tags=["dealerships"])


@router.get("", response_model=ListResponse[DealershipRead])
def list_dealerships(
    dealership_type: str | None = Query(default=None, alias="type"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    svc: DealershipService = Depends(get_dealership_service),
):
    items = svc.list_dealerships(dealership_type=dealership_type, limit=limit, offset=offset)
    return {"items": items, "count": len(items), "limit": limit, "offset": offset}


@router.get("/billing/summary", response_model=BillingSummary)
def billing_summary(svc: DealershipService = Depends(get_dealership_service)):
    return svc.billing_summary()


@router.get("/{dealership_id}", response_model=DealershipRead)
def get_dealership(dealership_id: int, svc: DealershipService = Depends(get_dealership_service)):
    return svc.get(dealership_id)
