"""
Pydantic request/response schemas
"""
from storefront.schemas.payment import PaymentStartRequest
from storefront.schemas.order import CheckoutRequest, OrderResponse, OrderList
from storefront.schemas.voucher import VoucherValidateRequest, VoucherValidateResponse, MyVouchersResponse
from storefront.schemas.membership import MembershipPlanResponse, UserMembershipResponse, MembershipOverview
from storefront.schemas.refund import RefundCreate, RefundReview, RefundComplete, RefundResponse, RefundList
from storefront.schemas.shipment import ShipOrderRequest, TrackingCreate, ShipmentResponse, TrackingResponse

__all__ = [
    'PaymentStartRequest',
    'CheckoutRequest',
    'OrderResponse',
    'OrderList',
    'VoucherValidateRequest',
    'VoucherValidateResponse',
    'MyVouchersResponse',
    'MembershipPlanResponse',
    'UserMembershipResponse',
    'MembershipOverview',
    'RefundCreate',
    'RefundReview',
    'RefundComplete',
    'RefundResponse',
    'RefundList',
    'ShipOrderRequest',
    'TrackingCreate',
    'ShipmentResponse',
    'TrackingResponse',
]
