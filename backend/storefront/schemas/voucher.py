"""
Voucher Schemas
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.models.voucher import VoucherType


class VoucherValidateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(..., min_length=1, max_length=50)
    order_total: Decimal = Field(..., alias="orderTotal", ge=0)


class VoucherResponse(BaseModel):
    id: int
    code: str
    type: VoucherType
    value: Decimal
    min_order: Decimal
    max_discount: Optional[Decimal] = None
    is_used: bool
    expires_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VoucherValidateResponse(BaseModel):
    ok: bool
    voucher: Optional[VoucherResponse] = None
    discount: Decimal = Decimal("0.00")
    error: Optional[str] = None


class MyVouchersResponse(BaseModel):
    available: List[VoucherResponse]
    all: List[VoucherResponse]
