"""
Shipment Router (customer side)
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.dependencies import CurrentUser, get_current_user
from storefront.schemas.shipment import ShipmentResponse
from storefront.services import shipments as shipment_service

router = APIRouter(prefix="/shipments", tags=["shipments"])


@router.get("/track/{tracking_number}", response_model=ShipmentResponse)
def track(tracking_number: str, db: Session = Depends(get_db)):
    """Public lookup by tracking number."""
    return ShipmentResponse.model_validate(shipment_service.find_by_tracking_number(db, tracking_number))


@router.get("", response_model=list[ShipmentResponse])
def my_shipments(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [ShipmentResponse.model_validate(s) for s in shipment_service.list_user_shipments(db, user.id)]
