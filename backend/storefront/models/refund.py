# -*- coding: utf-8 -*-
"""
Refund Model

Customer refund requests for paid orders, reviewed by an admin.
"""
from sqlalchemy import Column, Integer, String, Numeric, TIMESTAMP, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from storefront.database import Base


class RefundStatus(str, enum.Enum):
    """Refund status enumeration"""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class Refund(Base):
    __tablename__ = "refunds"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    reason = Column(String(100), nullable=False)
    description = Column(String(1000), nullable=True)

    status = Column(
        SQLEnum(RefundStatus, values_callable=lambda x: [e.value for e in x]),
        default=RefundStatus.PENDING,
        nullable=False,
        index=True
    )
    admin_note = Column(String(500), nullable=True)
    processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    processed_at = Column(TIMESTAMP, nullable=True)
    completed_at = Column(TIMESTAMP, nullable=True)
    refund_method = Column(String(50), nullable=True)
    refund_ref = Column(String(128), nullable=True)
    # Set once stock and voucher have been restored for this refund
    restored_at = Column(TIMESTAMP, nullable=True)

    requested_at = Column(TIMESTAMP, server_default=func.current_timestamp())

    order = relationship("Order")
