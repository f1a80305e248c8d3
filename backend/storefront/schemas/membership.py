"""
Membership Schemas
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from storefront.models.membership import MembershipStatus
from storefront.models.payment import PaymentMethod
from storefront.models.voucher import VoucherType
from storefront.schemas.voucher import VoucherResponse


class MembershipPlanResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    duration_days: int
    voucher_count: int
    voucher_type: VoucherType
    voucher_value: Decimal
    voucher_min_order: Decimal

    class Config:
        from_attributes = True


class UserMembershipResponse(BaseModel):
    id: int
    user_id: int
    plan_id: int
    amount: Decimal
    status: MembershipStatus
    payment_method: PaymentMethod
    payment_out_trade_no: Optional[str] = None
    paid_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MembershipOverview(BaseModel):
    active: Optional[UserMembershipResponse] = None
    days_remaining: Optional[int] = None
    history: List[UserMembershipResponse] = []
    vouchers: List[VoucherResponse] = []
