"""
Database models
- User: customer/admin accounts (identity comes from the bearer token)
- Product, CartItem: catalog and cart
- Order, OrderItem: orders (payable)
- MembershipPlan, UserMembership: memberships (payable)
- Voucher: discount vouchers
- Refund: refund requests
- Shipment, ShipmentTracking: shipment tracking
- PaymentStatusHistory: payable status audit trail
- PaymentErrorLog: provider failure log
"""
from storefront.models.user import User, UserRole
from storefront.models.catalog import Product, CartItem
from storefront.models.payment import PaymentMethod, PayableKind, PaymentStatusHistory
from storefront.models.voucher import Voucher, VoucherType, VoucherSource
from storefront.models.order import Order, OrderItem, OrderStatus
from storefront.models.membership import MembershipPlan, UserMembership, MembershipStatus
from storefront.models.refund import Refund, RefundStatus
from storefront.models.shipment import Shipment, ShipmentTracking, ShipmentStatus
from storefront.models.payment_error import PaymentErrorLog

__all__ = [
    'User',
    'UserRole',
    'Product',
    'CartItem',
    'PaymentMethod',
    'PayableKind',
    'PaymentStatusHistory',
    'Voucher',
    'VoucherType',
    'VoucherSource',
    'Order',
    'OrderItem',
    'OrderStatus',
    'MembershipPlan',
    'UserMembership',
    'MembershipStatus',
    'Refund',
    'RefundStatus',
    'Shipment',
    'ShipmentTracking',
    'ShipmentStatus',
    'PaymentErrorLog',
]
