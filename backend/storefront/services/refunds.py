# -*- coding: utf-8 -*-
"""
Refund Service

Customers request refunds for paid orders; admins approve, reject and
complete them. Approval reverses the order's side effects (stock, voucher)
in the same transaction as the status change.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from storefront.errors import PaymentValidationError, StateConflictError
from storefront.models.catalog import Product
from storefront.models.order import Order, OrderItem, OrderStatus
from storefront.models.payment import PayableKind, PaymentStatusHistory
from storefront.models.refund import Refund, RefundStatus
from storefront.services.pricing import to_money
from storefront.services.vouchers import release_voucher_for_order

logger = logging.getLogger(__name__)

OPEN_REFUND_STATUSES = (RefundStatus.PENDING, RefundStatus.APPROVED)


def can_refund(db: Session, order: Order) -> bool:
    if order.status != OrderStatus.PAID:
        return False
    existing = (
        db.query(Refund)
        .filter(Refund.order_id == order.id, Refund.status.in_(OPEN_REFUND_STATUSES))
        .first()
    )
    return existing is None


def _get_refund(db: Session, refund_id: int) -> Refund:
    refund = db.query(Refund).filter(Refund.id == refund_id).first()
    if not refund:
        raise PaymentValidationError("Refund not found", status=404)
    return refund


def _set_refund_status(
    db: Session,
    refund: Refund,
    expected: tuple,
    new_status: RefundStatus,
    extra: Optional[dict] = None,
) -> None:
    values = {Refund.status: new_status}
    values.update(extra or {})
    updated = (
        db.query(Refund)
        .filter(Refund.id == refund.id, Refund.status.in_(expected))
        .update(values, synchronize_session=False)
    )
    if updated != 1:
        db.rollback()
        raise StateConflictError(f"Refund cannot be moved to {new_status.value}")
    db.query(Order).filter(Order.id == refund.order_id).update(
        {Order.refund_status: new_status.value}, synchronize_session=False
    )


def _restore_order_effects(db: Session, refund: Refund) -> None:
    """Put stock back and release the voucher, once per refund."""
    claimed = (
        db.query(Refund)
        .filter(Refund.id == refund.id, Refund.restored_at.is_(None))
        .update({Refund.restored_at: datetime.now(timezone.utc)}, synchronize_session=False)
    )
    if claimed != 1:
        return
    items = db.query(OrderItem).filter(OrderItem.order_id == refund.order_id).all()
    for item in items:
        db.query(Product).filter(Product.id == item.product_id).update(
            {Product.quantity: Product.quantity + item.quantity}, synchronize_session=False
        )
    release_voucher_for_order(db, refund.order_id)
    logger.info(f"[Refund] Restored stock and voucher: refund_id={refund.id}, order_id={refund.order_id}")


def request_refund(
    db: Session,
    order: Order,
    user_id: int,
    reason: str,
    description: Optional[str] = None,
) -> Refund:
    if order.user_id != user_id:
        raise PaymentValidationError("Access denied", status=403)
    if not can_refund(db, order):
        raise PaymentValidationError("This order is not eligible for a refund")

    refund = Refund(
        order_id=order.id,
        user_id=user_id,
        amount=to_money(order.amount_due),
        reason=reason,
        description=description,
        status=RefundStatus.PENDING,
    )
    db.add(refund)
    order.refund_status = RefundStatus.PENDING.value
    db.commit()
    db.refresh(refund)
    logger.info(f"[Refund] Requested: refund_id={refund.id}, order_id={order.id}, amount={refund.amount}")
    return refund


def cancel_refund(db: Session, refund_id: int, user_id: int) -> Refund:
    refund = _get_refund(db, refund_id)
    if refund.user_id != user_id:
        raise PaymentValidationError("Access denied", status=403)
    if refund.status != RefundStatus.PENDING:
        raise PaymentValidationError("Cannot cancel this refund")
    _set_refund_status(db, refund, (RefundStatus.PENDING,), RefundStatus.CANCELLED)
    db.query(Order).filter(Order.id == refund.order_id).update(
        {Order.refund_status: None}, synchronize_session=False
    )
    db.commit()
    db.refresh(refund)
    logger.info(f"[Refund] Cancelled by user: refund_id={refund.id}")
    return refund


def approve_refund(db: Session, refund_id: int, admin_id: int, admin_note: Optional[str] = None) -> Refund:
    refund = _get_refund(db, refund_id)
    now = datetime.now(timezone.utc)
    _set_refund_status(
        db, refund, (RefundStatus.PENDING,), RefundStatus.APPROVED,
        {Refund.admin_note: admin_note, Refund.processed_by: admin_id, Refund.processed_at: now},
    )
    moved = (
        db.query(Order)
        .filter(Order.id == refund.order_id, Order.status == OrderStatus.PAID)
        .update({Order.status: OrderStatus.REFUNDED}, synchronize_session=False)
    )
    if moved != 1:
        db.rollback()
        raise StateConflictError("Order is no longer paid")
    db.add(PaymentStatusHistory(
        payable_type=PayableKind.ORDER,
        payable_id=refund.order_id,
        out_trade_no=None,
        previous_status=OrderStatus.PAID.value,
        new_status=OrderStatus.REFUNDED.value,
        source="refund",
    ))
    _restore_order_effects(db, refund)
    db.commit()
    db.refresh(refund)
    logger.info(f"[Refund] Approved: refund_id={refund.id}, order_id={refund.order_id}, admin_id={admin_id}")
    return refund


def reject_refund(db: Session, refund_id: int, admin_id: int, admin_note: Optional[str] = None) -> Refund:
    refund = _get_refund(db, refund_id)
    _set_refund_status(
        db, refund, (RefundStatus.PENDING,), RefundStatus.REJECTED,
        {
            Refund.admin_note: admin_note,
            Refund.processed_by: admin_id,
            Refund.processed_at: datetime.now(timezone.utc),
        },
    )
    db.commit()
    db.refresh(refund)
    logger.info(f"[Refund] Rejected: refund_id={refund.id}, admin_id={admin_id}")
    return refund


def complete_refund(
    db: Session,
    refund_id: int,
    admin_id: int,
    refund_method: Optional[str] = None,
    refund_ref: Optional[str] = None,
) -> Refund:
    refund = _get_refund(db, refund_id)
    _set_refund_status(
        db, refund, (RefundStatus.APPROVED,), RefundStatus.COMPLETED,
        {
            Refund.refund_method: refund_method,
            Refund.refund_ref: refund_ref,
            Refund.processed_by: admin_id,
            Refund.completed_at: datetime.now(timezone.utc),
        },
    )
    _restore_order_effects(db, refund)
    db.commit()
    db.refresh(refund)
    logger.info(f"[Refund] Completed: refund_id={refund.id}, method={refund_method}")
    return refund


def list_refunds(db: Session, user_id: Optional[int] = None, status: Optional[str] = None) -> list[Refund]:
    query = db.query(Refund)
    if user_id is not None:
        query = query.filter(Refund.user_id == user_id)
    if status:
        try:
            query = query.filter(Refund.status == RefundStatus(status))
        except ValueError:
            raise PaymentValidationError("Invalid refund status")
    return query.order_by(Refund.id.desc()).all()
