# -*- coding: utf-8 -*-
"""
Voucher Model

A voucher is either unused, or used and bound to exactly one order.
"""
from sqlalchemy import Column, Integer, String, Boolean, Numeric, TIMESTAMP, ForeignKey, Enum as SQLEnum
from sqlalchemy.sql import func
import enum
from storefront.database import Base


class VoucherType(str, enum.Enum):
    """Discount calculation type"""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class VoucherSource(str, enum.Enum):
    """Where a voucher came from"""
    MEMBERSHIP = "membership"
    ADMIN = "admin"


class Voucher(Base):
    __tablename__ = "vouchers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    # NULL = unscoped (any user may redeem)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    type = Column(
        SQLEnum(VoucherType, values_callable=lambda x: [e.value for e in x]),
        default=VoucherType.PERCENTAGE,
        nullable=False
    )
    value = Column(Numeric(10, 2), nullable=False)
    min_order = Column(Numeric(10, 2), nullable=False, default=0)
    # Ceiling for percentage vouchers
    max_discount = Column(Numeric(10, 2), nullable=True)

    source = Column(
        SQLEnum(VoucherSource, values_callable=lambda x: [e.value for e in x]),
        default=VoucherSource.ADMIN,
        nullable=False
    )
    membership_id = Column(Integer, ForeignKey("user_memberships.id"), nullable=True, index=True)

    is_used = Column(Boolean, default=False, nullable=False)
    used_at = Column(TIMESTAMP, nullable=True)
    used_order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)

    expires_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.current_timestamp())
