# -*- coding: utf-8 -*-
"""
Unit Tests for PayableWorkflow

Start, reconcile and confirm for orders and memberships, including stale
token rejection, at-most-once confirmation and dependent effects.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.dependencies import CurrentUser
from storefront.errors import (
    ConfigError,
    PaymentValidationError,
    ProviderError,
    StateConflictError,
)
from storefront.models.membership import MembershipStatus, UserMembership
from storefront.models.order import Order, OrderStatus
from storefront.models.payment import PayableKind, PaymentMethod, PaymentStatusHistory
from storefront.models.payment_error import PaymentErrorLog
from storefront.models.user import UserRole
from storefront.models.voucher import Voucher
from storefront.payments.base import PaymentQueryResult
from storefront.payments.workflow import (
    MEMBERSHIP_BINDING,
    ORDER_BINDING,
    STALE_TOKEN_MESSAGE,
    PayableWorkflow,
    binding_for_token,
    new_out_trade_no,
    payable_id_from_token,
)
from storefront.services.vouchers import mark_voucher_used
from storefront.utils.membership_utils import as_utc, utcnow

BASE_URL = "https://shop.test"
PAID = PaymentQueryResult(ok=True, paid=True, raw_status="00", transaction_id="TXN-1",
                          fields={"responseCode": "00", "txnStatus": 1})
NOT_PAID = PaymentQueryResult(ok=True, paid=False, raw_status="09", fields={"responseCode": "09", "txnStatus": 0})


def as_user(user):
    return CurrentUser(id=user.id, role=user.role.value)


@pytest.fixture
def workflow(db, fake_providers):
    return PayableWorkflow(db, fake_providers)


def _start(workflow, user, payable, method="nets", kind=PayableKind.ORDER):
    return workflow.start_payment(kind, payable.id, as_user(user), method, BASE_URL)


class TestTokens:
    def test_new_tokens_strictly_increase(self):
        """Tokens minted in a tight loop never repeat or go backwards"""
        tokens = [new_out_trade_no("ORDER", 5) for _ in range(50)]
        stamps = [int(t.split("_")[2]) for t in tokens]
        assert stamps == sorted(set(stamps))
        assert all(t.startswith("ORDER_5_") for t in tokens)

    def test_token_routing(self):
        """Token prefixes route to the right payable kind"""
        assert binding_for_token("ORDER_12_1700000000000") is ORDER_BINDING
        assert binding_for_token("MEM_3_1700000000000") is MEMBERSHIP_BINDING
        assert payable_id_from_token("MEM_3_1700000000000") == 3

    @pytest.mark.parametrize("token", ["", "PAY_1_2", "order_1_2"])
    def test_unknown_prefix_rejected(self, token):
        """Tokens with an unknown prefix are rejected"""
        with pytest.raises(PaymentValidationError):
            binding_for_token(token)

    @pytest.mark.parametrize("token", ["ORDER_x_1", "ORDER_1", "ORDER_1_2_3"])
    def test_malformed_id_rejected(self, token):
        """Tokens without a numeric id are rejected"""
        with pytest.raises(PaymentValidationError):
            payable_id_from_token(token)


class TestStartPayment:
    """start_payment()"""

    def test_order_start_moves_to_unpaid(self, db, seed, workflow, fake_providers):
        """Starting a payment stores the attempt and moves the order to Unpaid"""
        user = seed.user()
        order = seed.order(user, total="40.50", delivery_fee="5.00")

        result = _start(workflow, user, order, "alipay")

        assert result["ok"] is True
        assert result["outTradeNo"].startswith(f"ORDER_{order.id}_")
        assert result["url"] == f"https://gateway.test/alipay/{result['outTradeNo']}"
        assert "sseUrl" not in result

        request = fake_providers.fakes[PaymentMethod.ALIPAY].created[0]
        assert request.amount == Decimal("45.50")
        assert request.return_url == f"{BASE_URL}/orders/{order.id}/pay/finish"
        assert request.cancel_url == f"{BASE_URL}/orders/{order.id}/pay?cancelled=1"

        db.refresh(order)
        assert order.status == OrderStatus.UNPAID
        assert order.payment_method == PaymentMethod.ALIPAY
        assert order.payment_out_trade_no == result["outTradeNo"]
        assert order.payment_provider_ref == "REF-alipay-1"

        history = db.query(PaymentStatusHistory).filter(PaymentStatusHistory.payable_id == order.id).all()
        assert [(h.previous_status, h.new_status, h.source) for h in history] == [("Pending", "Unpaid", "start")]

    def test_nets_start_includes_stream_url(self, seed, workflow):
        """A NETS start returns the SSE URL"""
        user = seed.user()
        order = seed.order(user)

        result = _start(workflow, user, order, "nets")

        assert result["sseUrl"].startswith(f"{BASE_URL}/nets/sse/payment-status/")
        assert result["outTradeNo"] in result["sseUrl"]

    def test_membership_start_uses_plan_price(self, db, seed, workflow, fake_providers):
        """Membership attempts charge the plan price"""
        user = seed.user()
        membership = seed.membership(user, seed.plan(price="29.90"))

        result = _start(workflow, user, membership, "paypal", PayableKind.MEMBERSHIP)

        assert result["outTradeNo"].startswith(f"MEM_{membership.id}_")
        assert fake_providers.fakes[PaymentMethod.PAYPAL].created[0].amount == Decimal("29.90")
        db.refresh(membership)
        assert membership.status == MembershipStatus.UNPAID

    def test_paid_order_reports_already_paid(self, seed, workflow, fake_providers):
        """Starting on a paid order reports already paid without a provider call"""
        user = seed.user()
        order = seed.order(user, status=OrderStatus.PAID)

        assert _start(workflow, user, order) == {"ok": True, "alreadyPaid": True}
        assert fake_providers.fakes[PaymentMethod.NETS].created == []

    def test_cancelled_order_cannot_be_paid(self, seed, workflow):
        """Cancelled orders cannot start a payment"""
        user = seed.user()
        order = seed.order(user, status=OrderStatus.CANCELLED)

        with pytest.raises(PaymentValidationError):
            _start(workflow, user, order)

    @pytest.mark.parametrize("method", ["bitcoin", "none", "", None])
    def test_invalid_method(self, seed, workflow, method):
        """Unknown methods are rejected"""
        user = seed.user()
        order = seed.order(user)

        with pytest.raises(PaymentValidationError) as exc_info:
            _start(workflow, user, order, method)
        assert exc_info.value.message == "Invalid payment method"

    def test_method_is_case_insensitive(self, seed, workflow):
        """Payment method names ignore case"""
        user = seed.user()
        order = seed.order(user)

        assert _start(workflow, user, order, " PayPal ")["ok"] is True

    def test_other_user_denied_admin_allowed(self, seed, workflow):
        """Only the owner or an admin may start a payment"""
        owner = seed.user()
        stranger = seed.user()
        admin = seed.user(role=UserRole.ADMIN)
        order = seed.order(owner)

        with pytest.raises(PaymentValidationError) as exc_info:
            _start(workflow, stranger, order)
        assert exc_info.value.status == 403

        assert _start(workflow, admin, order)["ok"] is True

    def test_missing_order_is_404(self, seed, workflow):
        """Starting on a missing order is a 404"""
        user = seed.user()
        with pytest.raises(PaymentValidationError) as exc_info:
            workflow.start_payment(PayableKind.ORDER, 9999, as_user(user), "nets", BASE_URL)
        assert exc_info.value.status == 404
        assert exc_info.value.message == "Order not found"

    def test_provider_failure_recorded_and_state_kept(self, db, seed, workflow, fake_providers):
        """A failed create is logged and leaves the order untouched"""
        user = seed.user()
        order = seed.order(user)
        fake_providers.fakes[PaymentMethod.PAYPAL].create_error = ProviderError("PayPal request timed out")

        with pytest.raises(ProviderError):
            _start(workflow, user, order, "paypal")

        db.refresh(order)
        assert order.status == OrderStatus.PENDING
        assert order.payment_out_trade_no is None
        log = db.query(PaymentErrorLog).one()
        assert log.provider == "paypal"
        assert log.error_type == "timeout"
        assert log.operation == "create_payment"

    def test_config_error_propagates(self, seed, workflow, fake_providers):
        """Missing provider config propagates as ConfigError"""
        user = seed.user()
        order = seed.order(user)
        fake_providers.fakes[PaymentMethod.ALIPAY].create_error = ConfigError("Missing ALIPAY_APP_ID")

        with pytest.raises(ConfigError):
            _start(workflow, user, order, "alipay")

    def test_restart_replaces_token(self, db, seed, workflow):
        """Restarting replaces the stored token and method"""
        user = seed.user()
        order = seed.order(user)

        first = _start(workflow, user, order, "nets")["outTradeNo"]
        second = _start(workflow, user, order, "paypal")["outTradeNo"]

        assert first != second
        db.refresh(order)
        assert order.payment_out_trade_no == second
        assert order.payment_method == PaymentMethod.PAYPAL


class TestReconcile:
    """check_status() and reconcile()"""

    def test_pending_result_passed_through(self, db, seed, workflow, fake_providers):
        """An unpaid answer is returned as is"""
        user = seed.user()
        order = seed.order(user)
        token = _start(workflow, user, order)["outTradeNo"]
        fake_providers.fakes[PaymentMethod.NETS].will_return(NOT_PAID)

        result = workflow.check_status(PayableKind.ORDER, order.id, as_user(user), token)

        assert result == {"ok": True, "paid": False, "responseCode": "09", "txnStatus": 0}
        db.refresh(order)
        assert order.status == OrderStatus.UNPAID

    def test_paid_result_confirms_order(self, db, seed, workflow, fake_providers):
        """A paid answer confirms the order and records history"""
        user = seed.user()
        order = seed.order(user)
        token = _start(workflow, user, order)["outTradeNo"]
        fake = fake_providers.fakes[PaymentMethod.NETS]
        fake.will_return(PAID)

        result = workflow.check_status(PayableKind.ORDER, order.id, as_user(user), token)

        assert result["ok"] is True
        assert result["paid"] is True
        assert "alreadyPaid" not in result
        assert fake.queries == [(token, "REF-nets-1")]

        db.refresh(order)
        assert order.status == OrderStatus.PAID
        assert order.paid_at is not None
        assert order.payment_provider_ref == "TXN-1"

        statuses = [
            (h.new_status, h.source)
            for h in db.query(PaymentStatusHistory).order_by(PaymentStatusHistory.id)
        ]
        assert statuses == [("Unpaid", "start"), ("Paid", "status")]

    def test_settled_order_not_queried_again(self, seed, workflow, fake_providers):
        """Settled payables are not queried"""
        user = seed.user()
        order = seed.order(user)
        token = _start(workflow, user, order)["outTradeNo"]
        fake = fake_providers.fakes[PaymentMethod.NETS]
        fake.will_return(PAID)
        workflow.check_status(PayableKind.ORDER, order.id, as_user(user), token)

        again = workflow.check_status(PayableKind.ORDER, order.id, as_user(user), token)

        assert again == {"ok": True, "paid": True, "alreadyPaid": True}
        assert len(fake.queries) == 1

    def test_stale_token_rejected_without_query(self, db, seed, workflow, fake_providers):
        """A superseded token is rejected before any provider call"""
        user = seed.user()
        order = seed.order(user)
        old = _start(workflow, user, order)["outTradeNo"]
        _start(workflow, user, order)
        fake = fake_providers.fakes[PaymentMethod.NETS]
        fake.will_return(PAID)

        with pytest.raises(StateConflictError) as exc_info:
            workflow.check_status(PayableKind.ORDER, order.id, as_user(user), old)

        assert exc_info.value.message == STALE_TOKEN_MESSAGE
        assert fake.queries == []
        db.refresh(order)
        assert order.status == OrderStatus.UNPAID

    def test_not_started(self, seed, workflow):
        """Polling before any attempt fails"""
        user = seed.user()
        order = seed.order(user)

        with pytest.raises(PaymentValidationError) as exc_info:
            workflow.check_status(PayableKind.ORDER, order.id, as_user(user))
        assert exc_info.value.message == "Order payment method not started"

    def test_provider_not_ok_raises_and_records(self, db, seed, workflow, fake_providers):
        """A gateway that cannot answer raises and is logged"""
        user = seed.user()
        order = seed.order(user)
        token = _start(workflow, user, order)["outTradeNo"]
        fake_providers.fakes[PaymentMethod.NETS].will_return(
            PaymentQueryResult(ok=False, error="NETS HTTP 502: bad gateway")
        )

        with pytest.raises(ProviderError) as exc_info:
            workflow.check_status(PayableKind.ORDER, order.id, as_user(user), token)

        assert exc_info.value.status == 502
        log = db.query(PaymentErrorLog).one()
        assert log.error_type == "gateway_error"
        assert log.operation == "query_payment_status"
        assert log.out_trade_no == token

    def test_find_by_out_trade_no_after_settle_accepts_old_token(self, db, seed, workflow, fake_providers):
        """Once settled an older token still resolves to the payable"""
        user = seed.user()
        order = seed.order(user)
        old = _start(workflow, user, order)["outTradeNo"]
        token = _start(workflow, user, order)["outTradeNo"]
        fake_providers.fakes[PaymentMethod.NETS].will_return(PAID)
        workflow.check_status(PayableKind.ORDER, order.id, as_user(user), token)

        binding, payable = workflow.find_by_out_trade_no(old, as_user(user))

        assert binding is ORDER_BINDING
        assert payable.id == order.id


class TestConfirmAtMostOnce:
    """Two pollers observing the same paid attempt"""

    def test_second_confirmation_is_already_paid(self, db, seed, session_factory, fake_providers):
        """Only the first of two confirmations records the transition"""
        user = seed.user()
        order = seed.order(user)
        token = _start(PayableWorkflow(db, fake_providers), user, order)["outTradeNo"]
        fake_providers.fakes[PaymentMethod.NETS].will_return(PAID)

        db_a, db_b = session_factory(), session_factory()
        try:
            wf_a, wf_b = PayableWorkflow(db_a, fake_providers), PayableWorkflow(db_b, fake_providers)
            _, payable_a = wf_a.find_by_out_trade_no(token, as_user(user))
            _, payable_b = wf_b.find_by_out_trade_no(token, as_user(user))

            first = wf_a.reconcile(ORDER_BINDING, payable_a, token, source="status")
            second = wf_b.reconcile(ORDER_BINDING, payable_b, token, source="stream")
        finally:
            db_a.close()
            db_b.close()

        assert first["paid"] is True and "alreadyPaid" not in first
        assert second["paid"] is True and second["alreadyPaid"] is True

        paid_rows = db.query(PaymentStatusHistory).filter(PaymentStatusHistory.new_status == "Paid").all()
        assert len(paid_rows) == 1
        assert paid_rows[0].source == "status"

    def test_capture_rejected_after_concurrent_confirm(self, db, seed, session_factory, fake_providers):
        """A poller whose capture is refused because another poller already captured reports already paid"""
        user = seed.user()
        order = seed.order(user)
        token = _start(PayableWorkflow(db, fake_providers), user, order, method="paypal")["outTradeNo"]
        fake_providers.fakes[PaymentMethod.PAYPAL].will_return(
            PAID, PaymentQueryResult(ok=False, error="PayPal HTTP 422: ORDER_ALREADY_CAPTURED"),
        )

        db_a, db_b = session_factory(), session_factory()
        try:
            wf_a, wf_b = PayableWorkflow(db_a, fake_providers), PayableWorkflow(db_b, fake_providers)
            _, payable_a = wf_a.find_by_out_trade_no(token, as_user(user))
            _, payable_b = wf_b.find_by_out_trade_no(token, as_user(user))

            first = wf_a.reconcile(ORDER_BINDING, payable_a, token)
            second = wf_b.reconcile(ORDER_BINDING, payable_b, token)
        finally:
            db_a.close()
            db_b.close()

        assert first["paid"] is True and "alreadyPaid" not in first
        assert second == {"ok": True, "paid": True, "alreadyPaid": True}
        assert db.query(PaymentErrorLog).count() == 0

    def test_membership_vouchers_issued_once(self, db, seed, session_factory, fake_providers):
        """Membership vouchers are issued once across two confirmations"""
        user = seed.user()
        plan = seed.plan(voucher_count=3, duration_days=30)
        membership = seed.membership(user, plan)
        token = _start(PayableWorkflow(db, fake_providers), user, membership, "nets", PayableKind.MEMBERSHIP)["outTradeNo"]
        fake_providers.fakes[PaymentMethod.NETS].will_return(PAID)

        db_a, db_b = session_factory(), session_factory()
        try:
            wf_a, wf_b = PayableWorkflow(db_a, fake_providers), PayableWorkflow(db_b, fake_providers)
            _, payable_a = wf_a.find_by_out_trade_no(token, as_user(user))
            _, payable_b = wf_b.find_by_out_trade_no(token, as_user(user))
            wf_a.reconcile(MEMBERSHIP_BINDING, payable_a, token)
            result = wf_b.reconcile(MEMBERSHIP_BINDING, payable_b, token)
        finally:
            db_a.close()
            db_b.close()

        assert result["alreadyPaid"] is True
        db.expire_all()
        assert db.query(Voucher).filter(Voucher.membership_id == membership.id).count() == 3

        row = db.get(UserMembership, membership.id)
        assert row.status == MembershipStatus.ACTIVE
        assert row.vouchers_issued_at is not None
        days = (as_utc(row.expires_at) - utcnow()).days
        assert 29 <= days <= 30

    def test_confirm_with_wrong_token_on_open_payable_conflicts(self, seed, workflow):
        """Confirming an open payable with another token conflicts"""
        user = seed.user()
        order = seed.order(user)
        _start(workflow, user, order)

        with pytest.raises(StateConflictError):
            workflow.confirm_paid(ORDER_BINDING, order.id, "ORDER_1_1", "TXN")


class TestDependentEffects:
    def test_order_voucher_consumed_on_paid(self, db, seed, workflow, fake_providers):
        """Payment consumes the order's voucher"""
        user = seed.user()
        seed.voucher("SAVE10")
        order = seed.order(user, voucher_code="SAVE10")
        token = _start(workflow, user, order)["outTradeNo"]
        fake_providers.fakes[PaymentMethod.NETS].will_return(PAID)

        result = workflow.check_status(PayableKind.ORDER, order.id, as_user(user), token)

        assert "partial" not in result
        voucher = db.query(Voucher).filter(Voucher.code == "SAVE10").one()
        db.refresh(voucher)
        assert voucher.is_used is True
        assert voucher.used_order_id == order.id

    def test_effect_failure_keeps_paid_and_flags_partial(self, db, seed, workflow, fake_providers):
        """A failing dependent effect keeps the payable paid and flags partial"""
        user = seed.user()
        voucher = seed.voucher("SAVE10")
        other = seed.order(user)
        mark_voucher_used(db, voucher.id, other.id)
        db.commit()
        order = seed.order(user, voucher_code="SAVE10")
        token = _start(workflow, user, order)["outTradeNo"]
        fake_providers.fakes[PaymentMethod.NETS].will_return(PAID)

        result = workflow.check_status(PayableKind.ORDER, order.id, as_user(user), token)

        assert result["paid"] is True
        assert result["partial"] is True
        db.expire_all()
        assert db.get(Order, order.id).status == OrderStatus.PAID
        log = db.query(PaymentErrorLog).one()
        assert log.error_type == "dependent_effect"
        assert log.operation == "after_paid"

    def test_membership_extends_active_period(self, db, seed, workflow, fake_providers):
        """Paying a renewal extends the active membership"""
        user = seed.user()
        plan = seed.plan(voucher_count=0, duration_days=30)
        current = seed.membership(user, plan, status=MembershipStatus.ACTIVE)
        current.expires_at = utcnow() + timedelta(days=10)
        db.commit()
        renewal = seed.membership(user, plan)
        token = _start(workflow, user, renewal, "nets", PayableKind.MEMBERSHIP)["outTradeNo"]
        fake_providers.fakes[PaymentMethod.NETS].will_return(PAID)

        workflow.check_status(PayableKind.MEMBERSHIP, renewal.id, as_user(user), token)

        db.expire_all()
        row = db.get(UserMembership, renewal.id)
        days = (as_utc(row.expires_at) - utcnow()).days
        assert 39 <= days <= 40


class TestFinish:
    def test_paid_redirects_to_item(self, seed, workflow):
        """Finish on a paid order goes to the order page"""
        user = seed.user()
        order = seed.order(user, status=OrderStatus.PAID)

        assert workflow.finish(PayableKind.ORDER, order.id, as_user(user)) == f"/orders/{order.id}?paid=1"

    def test_mismatched_token(self, seed, workflow):
        """Finish with a foreign token reports the mismatch"""
        user = seed.user()
        order = seed.order(user)
        _start(workflow, user, order)

        target = workflow.finish(PayableKind.ORDER, order.id, as_user(user), "ORDER_1_1")

        assert target == f"/orders/{order.id}/pay?error=out_trade_no_mismatch"

    def test_unpaid_retries(self, seed, workflow):
        """Finish on an unpaid order sends the browser back to retry"""
        user = seed.user()
        membership = seed.membership(user, seed.plan())
        token = _start(workflow, user, membership, "alipay", PayableKind.MEMBERSHIP)["outTradeNo"]

        target = workflow.finish(PayableKind.MEMBERSHIP, membership.id, as_user(user), token)

        assert target == f"/memberships/{membership.id}/pay?retry=1"
