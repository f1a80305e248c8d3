# -*- coding: utf-8 -*-
"""
Unit Tests for Refund Service
"""

from decimal import Decimal

import pytest

from storefront.errors import PaymentValidationError, StateConflictError
from storefront.models.catalog import Product
from storefront.models.order import Order, OrderItem, OrderStatus
from storefront.models.payment import PaymentStatusHistory
from storefront.models.refund import RefundStatus
from storefront.models.user import UserRole
from storefront.models.voucher import Voucher
from storefront.services.refunds import (
    approve_refund,
    can_refund,
    cancel_refund,
    complete_refund,
    list_refunds,
    reject_refund,
    request_refund,
)
from storefront.services.vouchers import mark_voucher_used


@pytest.fixture
def paid_order(db, seed):
    """A paid order for 2 units with a consumed voucher."""
    user = seed.user()
    product = seed.product(quantity=8)
    voucher = seed.voucher("SAVE10")
    order = seed.order(user, total="27.00", status=OrderStatus.PAID, voucher_code="SAVE10")
    db.add(OrderItem(order_id=order.id, product_id=product.id, product_name=product.name,
                     price=Decimal("15.00"), quantity=2))
    mark_voucher_used(db, voucher.id, order.id)
    db.commit()
    return user, product, order


class TestRequest:
    def test_request_pending_refund(self, db, paid_order):
        """A refund request on a paid order starts pending"""
        user, _, order = paid_order

        refund = request_refund(db, order, user.id, "Damaged item", "Box was crushed")

        assert refund.status == RefundStatus.PENDING
        assert refund.amount == Decimal("32.00")
        db.refresh(order)
        assert order.refund_status == "Pending"
        assert can_refund(db, order) is False

    def test_unpaid_order_not_eligible(self, db, seed):
        """Unpaid orders cannot be refunded"""
        user = seed.user()
        order = seed.order(user, status=OrderStatus.UNPAID)

        with pytest.raises(PaymentValidationError) as exc_info:
            request_refund(db, order, user.id, "Changed mind")
        assert exc_info.value.message == "This order is not eligible for a refund"

    def test_other_user_denied(self, db, seed, paid_order):
        """Customers cannot request refunds on another user's order"""
        _, _, order = paid_order
        stranger = seed.user()

        with pytest.raises(PaymentValidationError) as exc_info:
            request_refund(db, order, stranger.id, "Not mine")
        assert exc_info.value.status == 403

    def test_cancel_only_while_pending(self, db, seed, paid_order):
        """Only pending refunds can be cancelled"""
        user, _, order = paid_order
        admin = seed.user(role=UserRole.ADMIN)
        refund = request_refund(db, order, user.id, "Late")

        cancelled = cancel_refund(db, refund.id, user.id)
        assert cancelled.status == RefundStatus.CANCELLED
        db.refresh(order)
        assert order.refund_status is None

        again = request_refund(db, order, user.id, "Late again")
        reject_refund(db, again.id, admin.id, "Delivered on time")
        with pytest.raises(PaymentValidationError) as exc_info:
            cancel_refund(db, again.id, user.id)
        assert exc_info.value.message == "Cannot cancel this refund"


class TestAdminActions:
    def test_approve_refunds_order_and_restores_effects(self, db, seed, paid_order):
        """Approval marks the order refunded and restores stock and voucher"""
        user, product, order = paid_order
        admin = seed.user(role=UserRole.ADMIN)
        refund = request_refund(db, order, user.id, "Damaged item")

        approved = approve_refund(db, refund.id, admin.id, "OK")

        assert approved.status == RefundStatus.APPROVED
        assert approved.processed_by == admin.id
        assert approved.restored_at is not None
        db.expire_all()
        assert db.get(Order, order.id).status == OrderStatus.REFUNDED
        assert db.get(Order, order.id).refund_status == "Approved"
        assert db.get(Product, product.id).quantity == 10
        voucher = db.query(Voucher).filter(Voucher.code == "SAVE10").one()
        assert voucher.is_used is False
        history = db.query(PaymentStatusHistory).filter(PaymentStatusHistory.source == "refund").one()
        assert (history.previous_status, history.new_status) == ("Paid", "Refunded")

    def test_complete_does_not_restore_twice(self, db, seed, paid_order):
        """Completing an approved refund does not restore effects again"""
        user, product, order = paid_order
        admin = seed.user(role=UserRole.ADMIN)
        refund = request_refund(db, order, user.id, "Damaged item")
        approve_refund(db, refund.id, admin.id)

        completed = complete_refund(db, refund.id, admin.id, "paypal", "RF-123")

        assert completed.status == RefundStatus.COMPLETED
        assert completed.refund_ref == "RF-123"
        assert completed.completed_at is not None
        db.expire_all()
        assert db.get(Product, product.id).quantity == 10
        assert db.get(Order, order.id).refund_status == "Completed"

    def test_complete_requires_approval(self, db, seed, paid_order):
        """A pending refund cannot be completed"""
        user, _, order = paid_order
        admin = seed.user(role=UserRole.ADMIN)
        refund = request_refund(db, order, user.id, "Damaged item")

        with pytest.raises(StateConflictError):
            complete_refund(db, refund.id, admin.id)

    def test_reject_keeps_order_paid(self, db, seed, paid_order):
        """Rejecting a refund leaves the order paid"""
        user, product, order = paid_order
        admin = seed.user(role=UserRole.ADMIN)
        refund = request_refund(db, order, user.id, "Changed mind")

        rejected = reject_refund(db, refund.id, admin.id, "Outside policy")

        assert rejected.status == RefundStatus.REJECTED
        assert rejected.admin_note == "Outside policy"
        db.expire_all()
        assert db.get(Order, order.id).status == OrderStatus.PAID
        assert db.get(Product, product.id).quantity == 8

    def test_double_approve_conflicts(self, db, seed, paid_order):
        """Approving twice conflicts"""
        user, _, order = paid_order
        admin = seed.user(role=UserRole.ADMIN)
        refund = request_refund(db, order, user.id, "Damaged item")
        approve_refund(db, refund.id, admin.id)

        with pytest.raises(StateConflictError):
            approve_refund(db, refund.id, admin.id)

    def test_missing_refund(self, db, seed):
        """A missing refund is a 404"""
        with pytest.raises(PaymentValidationError) as exc_info:
            approve_refund(db, 404, 1)
        assert exc_info.value.status == 404


def test_list_refunds_filters(db, seed, paid_order):
    """Refunds can be filtered by user and status"""
    user, _, order = paid_order
    request_refund(db, order, user.id, "Damaged item")

    assert len(list_refunds(db, user_id=user.id)) == 1
    assert len(list_refunds(db, status="Pending")) == 1
    assert list_refunds(db, status="Completed") == []
    with pytest.raises(PaymentValidationError):
        list_refunds(db, status="Bogus")
