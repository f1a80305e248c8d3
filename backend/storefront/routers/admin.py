# -*- coding: utf-8 -*-
"""
Admin Router

Refund review, shipping and payment error inspection.
All endpoints require an admin bearer token.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.dependencies import CurrentUser, require_admin
from storefront.errors import PaymentValidationError
from storefront.models.order import Order
from storefront.schemas.refund import RefundComplete, RefundList, RefundResponse, RefundReview
from storefront.schemas.shipment import ShipOrderRequest, ShipmentResponse, TrackingCreate, TrackingResponse
from storefront.services import refunds as refund_service
from storefront.services import shipments as shipment_service
from storefront.utils.payment_error_tracker import get_error_count_by_type, get_recent_errors

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# ----------------------------------------------------------------------
# Refunds
# ----------------------------------------------------------------------

@router.get("/refunds", response_model=RefundList)
def list_refunds(
    status: Optional[str] = Query(None, max_length=20),
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    refunds = refund_service.list_refunds(db, status=status)
    return RefundList(refunds=[RefundResponse.model_validate(r) for r in refunds], total=len(refunds))


@router.post("/refunds/{refund_id}/approve", response_model=RefundResponse)
def approve_refund(
    refund_id: int,
    data: Optional[RefundReview] = None,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Approve: order becomes Refunded, stock and voucher are restored."""
    refund = refund_service.approve_refund(db, refund_id, admin.id, data.admin_note if data else None)
    return RefundResponse.model_validate(refund)


@router.post("/refunds/{refund_id}/reject", response_model=RefundResponse)
def reject_refund(
    refund_id: int,
    data: Optional[RefundReview] = None,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    refund = refund_service.reject_refund(db, refund_id, admin.id, data.admin_note if data else None)
    return RefundResponse.model_validate(refund)


@router.post("/refunds/{refund_id}/complete", response_model=RefundResponse)
def complete_refund(
    refund_id: int,
    data: Optional[RefundComplete] = None,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    refund = refund_service.complete_refund(
        db,
        refund_id,
        admin.id,
        data.refund_method if data else None,
        data.refund_ref if data else None,
    )
    return RefundResponse.model_validate(refund)


# ----------------------------------------------------------------------
# Shipments
# ----------------------------------------------------------------------

@router.post("/orders/{order_id}/ship", response_model=ShipmentResponse)
def ship_order(
    order_id: int,
    data: Optional[ShipOrderRequest] = None,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise PaymentValidationError("Order not found", status=404)
    data = data or ShipOrderRequest()
    shipment = shipment_service.ship_order(db, order, data.carrier, data.estimated_delivery, data.notes)
    logger.info(f"[Admin] Order shipped: order_id={order_id}, admin_id={admin.id}")
    return ShipmentResponse.model_validate(shipment)


@router.post("/shipments/{shipment_id}/status", response_model=ShipmentResponse)
def update_shipment_status(
    shipment_id: int,
    data: TrackingCreate,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    shipment = shipment_service.update_status(db, shipment_id, data.status, data.location, data.description)
    return ShipmentResponse.model_validate(shipment)


@router.post("/shipments/{shipment_id}/tracking", response_model=TrackingResponse)
def add_tracking(
    shipment_id: int,
    data: TrackingCreate,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    record = shipment_service.add_tracking(db, shipment_id, data.status, data.location, data.description)
    return TrackingResponse.model_validate(record)


# ----------------------------------------------------------------------
# Payment errors
# ----------------------------------------------------------------------

@router.get("/payment-errors")
def payment_errors(
    provider: Optional[str] = Query(None, max_length=20),
    limit: int = Query(20, ge=1, le=200),
    hours: int = Query(24, ge=1, le=24 * 30),
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Recent provider and dependent-effect failures plus per-type counts."""
    errors = get_recent_errors(db, provider=provider, limit=limit)
    return {
        "ok": True,
        "counts": get_error_count_by_type(db, hours=hours),
        "errors": [
            {
                "id": e.id,
                "provider": e.provider,
                "errorType": e.error_type,
                "message": e.error_message,
                "operation": e.operation,
                "payableType": e.payable_type,
                "payableId": e.payable_id,
                "outTradeNo": e.out_trade_no,
                "createdAt": e.created_at,
            }
            for e in errors
        ],
    }
