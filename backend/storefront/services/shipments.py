# -*- coding: utf-8 -*-
"""
Shipment Service

One shipment per order with an append-only tracking history.
"""
import logging
import secrets
import time
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from storefront.errors import PaymentValidationError
from storefront.models.order import Order, OrderStatus
from storefront.models.shipment import Shipment, ShipmentStatus, ShipmentTracking
from storefront.models.user import User

logger = logging.getLogger(__name__)

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
WAREHOUSE_LOCATION = "HB Mart Warehouse"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_tracking_number() -> str:
    """HBM + base36 millisecond timestamp + 4 random base36 chars."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"HBM{_to_base36(int(time.time() * 1000))}{suffix}"


def parse_status(value: str) -> ShipmentStatus:
    try:
        return ShipmentStatus(value)
    except ValueError:
        raise PaymentValidationError("Invalid shipment status")


def add_tracking_record(
    db: Session,
    shipment: Shipment,
    status: str,
    location: Optional[str] = None,
    description: Optional[str] = None,
) -> ShipmentTracking:
    """Append a tracking entry. Does not commit."""
    record = ShipmentTracking(
        shipment_id=shipment.id,
        status=status,
        location=location,
        description=description,
    )
    db.add(record)
    return record


def create_shipment(db: Session, order: Order, carrier: Optional[str] = None) -> Shipment:
    """Create the order's shipment in Processing, with recipient details from the user."""
    if order.status != OrderStatus.PAID:
        raise PaymentValidationError("Only paid orders can be shipped")

    user = db.query(User).filter(User.id == order.user_id).first()
    shipment = Shipment(
        order_id=order.id,
        tracking_number=generate_tracking_number(),
        carrier=carrier,
        recipient_name=user.username if user else None,
        recipient_address=user.address if user else None,
        recipient_phone=user.contact if user else None,
        status=ShipmentStatus.PROCESSING,
    )
    db.add(shipment)
    db.flush()
    add_tracking_record(db, shipment, ShipmentStatus.PROCESSING.value, None, "Order received and being processed")
    logger.info(f"[Shipment] Created: order_id={order.id}, tracking={shipment.tracking_number}")
    return shipment


def ship_order(
    db: Session,
    order: Order,
    carrier: Optional[str] = None,
    estimated_delivery: Optional[date] = None,
    notes: Optional[str] = None,
) -> Shipment:
    shipment = db.query(Shipment).filter(Shipment.order_id == order.id).first()
    if shipment is None:
        shipment = create_shipment(db, order, carrier)
    elif shipment.status != ShipmentStatus.PROCESSING:
        raise PaymentValidationError("Order has already been shipped")

    shipment.status = ShipmentStatus.SHIPPED
    shipment.shipped_at = datetime.now(timezone.utc)
    if carrier:
        shipment.carrier = carrier
    if estimated_delivery:
        shipment.estimated_delivery = estimated_delivery
    if notes:
        shipment.notes = notes
    add_tracking_record(db, shipment, ShipmentStatus.SHIPPED.value, WAREHOUSE_LOCATION, "Package has been shipped")
    db.commit()
    db.refresh(shipment)
    logger.info(f"[Shipment] Shipped: order_id={order.id}, tracking={shipment.tracking_number}")
    return shipment


def update_status(
    db: Session,
    shipment_id: int,
    status: str,
    location: Optional[str] = None,
    description: Optional[str] = None,
) -> Shipment:
    shipment = get_shipment(db, shipment_id)
    new_status = parse_status(status)
    shipment.status = new_status
    now = datetime.now(timezone.utc)
    if new_status == ShipmentStatus.SHIPPED and shipment.shipped_at is None:
        shipment.shipped_at = now
    if new_status == ShipmentStatus.DELIVERED:
        shipment.delivered_at = now
    add_tracking_record(db, shipment, new_status.value, location, description)
    db.commit()
    db.refresh(shipment)
    logger.info(f"[Shipment] Status updated: shipment_id={shipment.id}, status={new_status.value}")
    return shipment


def add_tracking(
    db: Session,
    shipment_id: int,
    status: str,
    location: Optional[str] = None,
    description: Optional[str] = None,
) -> ShipmentTracking:
    shipment = get_shipment(db, shipment_id)
    record = add_tracking_record(db, shipment, status, location, description)
    db.commit()
    db.refresh(record)
    return record


def get_shipment(db: Session, shipment_id: int) -> Shipment:
    shipment = db.query(Shipment).filter(Shipment.id == shipment_id).first()
    if not shipment:
        raise PaymentValidationError("Shipment not found", status=404)
    return shipment


def find_by_tracking_number(db: Session, tracking_number: str) -> Shipment:
    shipment = (
        db.query(Shipment)
        .filter(Shipment.tracking_number == (tracking_number or "").strip().upper())
        .first()
    )
    if not shipment:
        raise PaymentValidationError("Tracking number not found", status=404)
    return shipment


def get_order_shipment(db: Session, order_id: int) -> Optional[Shipment]:
    return db.query(Shipment).filter(Shipment.order_id == order_id).first()


def list_user_shipments(db: Session, user_id: int) -> list[Shipment]:
    return (
        db.query(Shipment)
        .join(Order, Order.id == Shipment.order_id)
        .filter(Order.user_id == user_id)
        .order_by(Shipment.id.desc())
        .all()
    )
