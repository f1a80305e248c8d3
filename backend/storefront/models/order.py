# -*- coding: utf-8 -*-
"""
Order Models

An order is a payable: it moves Pending -> Unpaid -> Paid through the
payment workflow, and Paid -> Refunded / Cancelled through admin actions.
"""
from decimal import Decimal

from sqlalchemy import Column, Integer, String, Numeric, TIMESTAMP, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from storefront.database import Base
from storefront.models.payment import PaymentMethod


class OrderStatus(str, enum.Enum):
    """Order status enumeration"""
    PENDING = "Pending"
    UNPAID = "Unpaid"
    PAID = "Paid"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Pricing snapshot taken at checkout
    subtotal = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    discount_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    # subtotal - discount
    total = Column(Numeric(10, 2), nullable=False)
    delivery_fee = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    voucher_code = Column(String(50), nullable=True)

    status = Column(
        SQLEnum(OrderStatus, values_callable=lambda x: [e.value for e in x]),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )
    # Mirrors the latest refund request state (Pending/Approved/...)
    refund_status = Column(String(20), nullable=True)

    # Active payment attempt
    payment_method = Column(
        SQLEnum(PaymentMethod, values_callable=lambda x: [e.value for e in x]),
        default=PaymentMethod.NONE,
        nullable=False
    )
    payment_out_trade_no = Column(String(64), nullable=True, index=True)
    payment_provider_ref = Column(String(128), nullable=True)
    paid_at = Column(TIMESTAMP, nullable=True)

    created_at = Column(TIMESTAMP, server_default=func.current_timestamp())
    updated_at = Column(TIMESTAMP, server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

    @property
    def amount_due(self) -> Decimal:
        """Amount charged to the customer: discounted total plus delivery."""
        return Decimal(self.total or 0) + Decimal(self.delivery_fee or 0)


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    product_name = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")
