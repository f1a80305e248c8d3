# -*- coding: utf-8 -*-
"""
Shipment Models

One shipment per order plus an append-only tracking history.
"""
from sqlalchemy import Column, Integer, String, TIMESTAMP, ForeignKey, Date, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from storefront.database import Base


class ShipmentStatus(str, enum.Enum):
    """Shipment status enumeration"""
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    IN_TRANSIT = "In Transit"
    OUT_FOR_DELIVERY = "Out for Delivery"
    DELIVERED = "Delivered"
    RETURNED = "Returned"


class Shipment(Base):
    __tablename__ = "shipments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, unique=True, index=True)
    tracking_number = Column(String(50), unique=True, nullable=False, index=True)
    carrier = Column(String(100), nullable=True)

    recipient_name = Column(String(100), nullable=True)
    recipient_address = Column(String(255), nullable=True)
    recipient_phone = Column(String(50), nullable=True)

    status = Column(
        SQLEnum(ShipmentStatus, values_callable=lambda x: [e.value for e in x]),
        default=ShipmentStatus.PROCESSING,
        nullable=False
    )
    estimated_delivery = Column(Date, nullable=True)
    notes = Column(String(500), nullable=True)
    shipped_at = Column(TIMESTAMP, nullable=True)
    delivered_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.current_timestamp())

    tracking = relationship(
        "ShipmentTracking",
        back_populates="shipment",
        order_by="ShipmentTracking.id",
        cascade="all, delete-orphan",
    )


class ShipmentTracking(Base):
    __tablename__ = "shipment_tracking"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    shipment_id = Column(Integer, ForeignKey("shipments.id"), nullable=False, index=True)
    status = Column(String(50), nullable=False)
    location = Column(String(255), nullable=True)
    description = Column(String(500), nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.current_timestamp())

    shipment = relationship("Shipment", back_populates="tracking")
