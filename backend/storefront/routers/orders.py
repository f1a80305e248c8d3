# -*- coding: utf-8 -*-
"""
Order Router

Checkout, order views, order payment, refund requests and the order's
shipment.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.dependencies import CurrentUser, get_current_user
from storefront.models.payment import PayableKind
from storefront.routers.payable import register_pay_routes
from storefront.schemas.order import CheckoutRequest, OrderList, OrderResponse
from storefront.schemas.refund import RefundCreate, RefundResponse
from storefront.schemas.shipment import ShipmentResponse
from storefront.services import checkout as checkout_service
from storefront.services import refunds as refund_service
from storefront.services import shipments as shipment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/checkout", response_model=OrderResponse)
def checkout(
    data: CheckoutRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a Pending order from the cart."""
    order = checkout_service.checkout(db, user.id, data.voucher_code)
    return OrderResponse.model_validate(order)


@router.get("", response_model=OrderList)
def list_orders(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    orders = checkout_service.list_orders(db, user.id)
    return OrderList(orders=[OrderResponse.model_validate(o) for o in orders], total=len(orders))


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    order = checkout_service.get_order_for_user(db, order_id, user.id, user.role)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/refund", response_model=RefundResponse)
def request_refund(
    order_id: int,
    data: RefundCreate,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    order = checkout_service.get_order_for_user(db, order_id, user.id, user.role)
    refund = refund_service.request_refund(db, order, user.id, data.reason, data.description)
    return RefundResponse.model_validate(refund)


@router.get("/{order_id}/shipment")
def get_order_shipment(
    order_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    checkout_service.get_order_for_user(db, order_id, user.id, user.role)
    shipment = shipment_service.get_order_shipment(db, order_id)
    return {
        "ok": True,
        "shipment": ShipmentResponse.model_validate(shipment) if shipment else None,
    }


register_pay_routes(router, PayableKind.ORDER)
