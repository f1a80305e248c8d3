# -*- coding: utf-8 -*-
"""
Payment Models

Shared payment enums and the status history audit trail for payables
(orders and memberships).
"""
from sqlalchemy import Column, Integer, String, TIMESTAMP, Enum as SQLEnum, Index
from sqlalchemy.sql import func
import enum
from storefront.database import Base


class PaymentMethod(str, enum.Enum):
    """Payment provider selected for a payable"""
    NONE = "none"
    ALIPAY = "alipay"
    PAYPAL = "paypal"
    NETS = "nets"


class PayableKind(str, enum.Enum):
    """Kinds of entity that can be paid for"""
    ORDER = "order"
    MEMBERSHIP = "membership"


class PaymentStatusHistory(Base):
    """
    Audit trail of payable status transitions.
    One row per transition, written in the same transaction as the change.
    """
    __tablename__ = "payment_status_history"
    __table_args__ = (
        Index("ix_payment_status_history_payable", "payable_type", "payable_id"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    payable_type = Column(
        SQLEnum(PayableKind, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    payable_id = Column(Integer, nullable=False)
    out_trade_no = Column(String(64), nullable=True, index=True)
    previous_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=False)
    # start, status, stream, refund, admin
    source = Column(String(20), nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.current_timestamp())
