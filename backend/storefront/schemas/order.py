"""
Order Schemas
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.models.order import OrderStatus
from storefront.models.payment import PaymentMethod


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    voucher_code: Optional[str] = Field(None, alias="voucherCode", max_length=50)


class OrderItemResponse(BaseModel):
    product_id: int
    product_name: str
    price: Decimal
    quantity: int

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    user_id: int
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal
    delivery_fee: Decimal
    amount_due: Decimal
    voucher_code: Optional[str] = None
    status: OrderStatus
    refund_status: Optional[str] = None
    payment_method: PaymentMethod
    payment_out_trade_no: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []

    class Config:
        from_attributes = True


class OrderList(BaseModel):
    orders: List[OrderResponse]
    total: int
