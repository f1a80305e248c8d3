"""
Refund Schemas
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.models.refund import RefundStatus


class RefundCreate(BaseModel):
    reason: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)


class RefundReview(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    admin_note: Optional[str] = Field(None, alias="adminNote", max_length=500)


class RefundComplete(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refund_method: Optional[str] = Field(None, alias="refundMethod", max_length=50)
    refund_ref: Optional[str] = Field(None, alias="refundRef", max_length=128)


class RefundResponse(BaseModel):
    id: int
    order_id: int
    user_id: int
    amount: Decimal
    reason: str
    description: Optional[str] = None
    status: RefundStatus
    admin_note: Optional[str] = None
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    refund_method: Optional[str] = None
    refund_ref: Optional[str] = None
    requested_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RefundList(BaseModel):
    refunds: List[RefundResponse]
    total: int
