# -*- coding: utf-8 -*-
"""
Membership Models

Plans define price, duration and the vouchers granted on activation.
A UserMembership is a payable: Pending -> Unpaid -> Active, later Expired.
"""
from sqlalchemy import Column, Integer, String, Boolean, Numeric, TIMESTAMP, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from storefront.database import Base
from storefront.models.payment import PaymentMethod
from storefront.models.voucher import VoucherType


class MembershipStatus(str, enum.Enum):
    """Membership status enumeration"""
    PENDING = "Pending"
    UNPAID = "Unpaid"
    ACTIVE = "Active"
    EXPIRED = "Expired"
    CANCELLED = "Cancelled"


class MembershipPlan(Base):
    __tablename__ = "membership_plans"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    duration_days = Column(Integer, nullable=False, default=30)

    # Vouchers issued when a membership on this plan is activated
    voucher_count = Column(Integer, nullable=False, default=0)
    voucher_type = Column(
        SQLEnum(VoucherType, values_callable=lambda x: [e.value for e in x]),
        default=VoucherType.PERCENTAGE,
        nullable=False
    )
    voucher_value = Column(Numeric(10, 2), nullable=False, default=0)
    voucher_min_order = Column(Numeric(10, 2), nullable=False, default=0)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.current_timestamp())


class UserMembership(Base):
    __tablename__ = "user_memberships"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("membership_plans.id"), nullable=False)
    # Plan price at subscribe time
    amount = Column(Numeric(10, 2), nullable=False)

    status = Column(
        SQLEnum(MembershipStatus, values_callable=lambda x: [e.value for e in x]),
        default=MembershipStatus.PENDING,
        nullable=False,
        index=True
    )

    payment_method = Column(
        SQLEnum(PaymentMethod, values_callable=lambda x: [e.value for e in x]),
        default=PaymentMethod.NONE,
        nullable=False
    )
    payment_out_trade_no = Column(String(64), nullable=True, index=True)
    payment_provider_ref = Column(String(128), nullable=True)
    paid_at = Column(TIMESTAMP, nullable=True)

    started_at = Column(TIMESTAMP, nullable=True)
    expires_at = Column(TIMESTAMP, nullable=True, index=True)
    vouchers_issued_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.current_timestamp())

    plan = relationship("MembershipPlan")

    @property
    def amount_due(self):
        return self.amount
