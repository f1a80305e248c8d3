# -*- coding: utf-8 -*-
"""
Checkout Service

Turns a user's cart into a Pending order. Stock is reserved and the voucher
bound in the same transaction as the order insert.
"""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.config import get_settings
from storefront.errors import PaymentValidationError, StateConflictError
from storefront.models.catalog import CartItem, Product
from storefront.models.order import Order, OrderItem, OrderStatus
from storefront.models.user import UserRole
from storefront.services.pricing import ZERO, calc_delivery_fee, to_money
from storefront.services.vouchers import mark_voucher_used, validate_voucher

logger = logging.getLogger(__name__)


def quote_cart(db: Session, user_id: int, voucher_code: Optional[str] = None) -> dict:
    """
    Price the cart without changing anything.

    Raises PaymentValidationError for an empty cart, an inactive product or a
    rejected voucher.
    """
    settings = get_settings()
    items = db.query(CartItem).filter(CartItem.user_id == user_id).order_by(CartItem.id).all()
    if not items:
        raise PaymentValidationError("Cart is empty")

    subtotal = ZERO
    for item in items:
        product = item.product
        if product is None or not product.is_active:
            raise PaymentValidationError("A product in your cart is no longer available")
        if item.quantity <= 0:
            raise PaymentValidationError("Invalid cart quantity")
        subtotal += to_money(product.price) * item.quantity
    subtotal = to_money(subtotal)

    voucher = None
    discount = ZERO
    if voucher_code:
        check = validate_voucher(db, voucher_code, user_id, subtotal)
        if not check.valid:
            raise PaymentValidationError(check.error)
        voucher = check.voucher
        discount = check.discount

    total = to_money(subtotal - discount)
    delivery_fee = calc_delivery_fee(total, settings.FREE_DELIVERY_THRESHOLD, settings.DELIVERY_FEE)
    return {
        "items": items,
        "subtotal": subtotal,
        "voucher": voucher,
        "discount": discount,
        "total": total,
        "delivery_fee": delivery_fee,
        "amount_due": to_money(total + delivery_fee),
    }


def checkout(db: Session, user_id: int, voucher_code: Optional[str] = None) -> Order:
    """Create a Pending order from the cart, reserve stock and bind the voucher."""
    quote = quote_cart(db, user_id, voucher_code)
    voucher = quote["voucher"]

    try:
        order = Order(
            user_id=user_id,
            subtotal=quote["subtotal"],
            discount_amount=quote["discount"],
            total=quote["total"],
            delivery_fee=quote["delivery_fee"],
            voucher_code=voucher.code if voucher else None,
            status=OrderStatus.PENDING,
        )
        db.add(order)
        db.flush()

        for item in quote["items"]:
            product = item.product
            reserved = (
                db.query(Product)
                .filter(Product.id == product.id, Product.quantity >= item.quantity)
                .update({Product.quantity: Product.quantity - item.quantity}, synchronize_session=False)
            )
            if reserved != 1:
                raise StateConflictError(f"Insufficient stock for {product.name}")
            db.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                product_name=product.name,
                price=to_money(product.price),
                quantity=item.quantity,
            ))

        if voucher and not mark_voucher_used(db, voucher.id, order.id):
            raise StateConflictError("Voucher has already been used")

        db.query(CartItem).filter(CartItem.user_id == user_id).delete(synchronize_session=False)
        db.commit()
    except StateConflictError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[Checkout] Database error: user_id={user_id}, error={e}", exc_info=True)
        raise

    db.refresh(order)
    logger.info(
        f"[Checkout] Order created: order_id={order.id}, user_id={user_id}, "
        f"total={order.total}, delivery_fee={order.delivery_fee}"
    )
    return order


def list_orders(db: Session, user_id: int) -> list[Order]:
    return db.query(Order).filter(Order.user_id == user_id).order_by(Order.id.desc()).all()


def get_order_for_user(db: Session, order_id: int, user_id: int, role: str) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise PaymentValidationError("Order not found", status=404)
    if order.user_id != user_id and role != UserRole.ADMIN.value:
        raise PaymentValidationError("Access denied", status=403)
    return order
