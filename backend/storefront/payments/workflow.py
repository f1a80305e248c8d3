# -*- coding: utf-8 -*-
"""
Payable Workflow

Drives orders and memberships through Pending -> Unpaid -> Paid.

Every transition is a single-row conditional UPDATE checked by rowcount:
- start:   WHERE status IN (open states)                 -> Unpaid + new token
- confirm: WHERE status IN (open states) AND token = ?   -> Paid
Losing a race is never an error for the caller: the loser re-reads the row
and reports "already paid". A poll carrying a token other than the stored
one is rejected before the provider is asked.

Dependent effects (voucher consumption, voucher issuance) run after the
Paid commit. Their failure is logged and recorded but does not undo Paid.
"""
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.errors import (
    ConfigError,
    PaymentError,
    PaymentValidationError,
    ProviderError,
    StateConflictError,
)
from storefront.models.membership import MembershipStatus, UserMembership
from storefront.models.order import Order, OrderStatus
from storefront.models.payment import PayableKind, PaymentMethod, PaymentStatusHistory
from storefront.payments.base import PaymentProvider, PaymentRequest
from storefront.payments.nets import stream_url
from storefront.payments.registry import ProviderRegistry
from storefront.services.memberships import activation_window
from storefront.services.pricing import to_money
from storefront.services.vouchers import confirm_voucher_for_order, issue_membership_vouchers
from storefront.utils.payment_error_tracker import ErrorType, classify_payment_error, record_payment_error

logger = logging.getLogger(__name__)

STALE_TOKEN_MESSAGE = "out_trade_no not match this order"
STALE_REFERENCE_MESSAGE = "txn_retrieval_ref not match this payment"


def _order_after_paid(db: Session, order: Order) -> None:
    if order.voucher_code:
        confirm_voucher_for_order(db, order.voucher_code, order.id)
        db.commit()


def _membership_paid_values(db: Session, membership: UserMembership) -> dict:
    started_at, expires_at = activation_window(db, membership)
    return {
        UserMembership.started_at: started_at,
        UserMembership.expires_at: expires_at,
    }


def _membership_after_paid(db: Session, membership: UserMembership) -> None:
    # Claim issuance first so a replayed effect cannot issue twice
    claimed = (
        db.query(UserMembership)
        .filter(UserMembership.id == membership.id, UserMembership.vouchers_issued_at.is_(None))
        .update({UserMembership.vouchers_issued_at: datetime.now(timezone.utc)}, synchronize_session=False)
    )
    if claimed != 1:
        db.rollback()
        return
    if membership.plan is not None:
        issue_membership_vouchers(db, membership, membership.plan)
    db.commit()


@dataclass(frozen=True)
class PayableBinding:
    """How the workflow reads and writes one kind of payable."""
    kind: PayableKind
    model: type
    label: str
    token_prefix: str
    path: str
    unpaid_status: object
    paid_status: object
    open_statuses: tuple
    settled_statuses: tuple
    paid_values: Optional[Callable] = None
    after_paid: Optional[Callable] = None

    def owns_token(self, out_trade_no: str) -> bool:
        return (out_trade_no or "").startswith(f"{self.token_prefix}_")


ORDER_BINDING = PayableBinding(
    kind=PayableKind.ORDER,
    model=Order,
    label="Order",
    token_prefix="ORDER",
    path="orders",
    unpaid_status=OrderStatus.UNPAID,
    paid_status=OrderStatus.PAID,
    open_statuses=(OrderStatus.PENDING, OrderStatus.UNPAID),
    settled_statuses=(OrderStatus.PAID, OrderStatus.REFUNDED),
    after_paid=_order_after_paid,
)

MEMBERSHIP_BINDING = PayableBinding(
    kind=PayableKind.MEMBERSHIP,
    model=UserMembership,
    label="Membership",
    token_prefix="MEM",
    path="memberships",
    unpaid_status=MembershipStatus.UNPAID,
    paid_status=MembershipStatus.ACTIVE,
    open_statuses=(MembershipStatus.PENDING, MembershipStatus.UNPAID),
    settled_statuses=(MembershipStatus.ACTIVE, MembershipStatus.EXPIRED),
    paid_values=_membership_paid_values,
    after_paid=_membership_after_paid,
)

BINDINGS = {
    PayableKind.ORDER: ORDER_BINDING,
    PayableKind.MEMBERSHIP: MEMBERSHIP_BINDING,
}


def binding_for(kind) -> PayableBinding:
    return BINDINGS[PayableKind(kind)]


def binding_for_token(out_trade_no: str) -> PayableBinding:
    for binding in BINDINGS.values():
        if binding.owns_token(out_trade_no):
            return binding
    raise PaymentValidationError("Invalid out_trade_no")


def payable_id_from_token(out_trade_no: str) -> int:
    """ORDER_<id>_<ms> / MEM_<id>_<ms> -> id"""
    parts = (out_trade_no or "").split("_")
    if len(parts) != 3 or not parts[1].isdigit():
        raise PaymentValidationError("Invalid out_trade_no")
    return int(parts[1])


_token_lock = threading.Lock()
_last_token_ms = 0


def new_out_trade_no(prefix: str, payable_id: int) -> str:
    """Millisecond token, strictly increasing within this process."""
    global _last_token_ms
    with _token_lock:
        now_ms = int(time.time() * 1000)
        _last_token_ms = max(now_ms, _last_token_ms + 1)
        return f"{prefix}_{payable_id}_{_last_token_ms}"


def _status_value(status) -> Optional[str]:
    return getattr(status, "value", status)


class PayableWorkflow:
    def __init__(self, db: Session, providers: ProviderRegistry):
        self.db = db
        self.providers = providers

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _load(self, binding: PayableBinding, payable_id: int):
        payable = self.db.query(binding.model).filter(binding.model.id == payable_id).first()
        if payable is None:
            raise PaymentValidationError(f"{binding.label} not found", status=404)
        return payable

    def get_payable(self, kind, payable_id: int, user):
        """Load a payable the user owns (admins may access any)."""
        binding = binding_for(kind)
        payable = self._load(binding, payable_id)
        if payable.user_id != user.id and not user.is_admin:
            raise PaymentValidationError("Access denied", status=403)
        return binding, payable

    def find_by_out_trade_no(self, out_trade_no: str, user):
        binding = binding_for_token(out_trade_no)
        binding, payable = self.get_payable(binding.kind, payable_id_from_token(out_trade_no), user)
        if payable.payment_out_trade_no != out_trade_no and payable.status not in binding.settled_statuses:
            raise StateConflictError(STALE_TOKEN_MESSAGE)
        return binding, payable

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _record_status_change(self, binding, payable_id, out_trade_no, previous, new, source):
        """Add a history row to the current transaction; never fails the transition."""
        try:
            with self.db.begin_nested():
                self.db.add(PaymentStatusHistory(
                    payable_type=binding.kind,
                    payable_id=payable_id,
                    out_trade_no=out_trade_no,
                    previous_status=_status_value(previous),
                    new_status=_status_value(new),
                    source=source,
                ))
        except SQLAlchemyError as e:
            logger.warning(f"[Payment] Failed to record status history: {binding.kind.value}:{payable_id}, error={e}")

    def _record_error(self, error: PaymentError, provider: PaymentProvider, binding, payable, out_trade_no, operation):
        record_payment_error(
            self.db,
            error_type=classify_payment_error(error),
            error_message=error.message,
            provider=provider.method.value,
            user_id=payable.user_id,
            payable_type=binding.kind.value,
            payable_id=payable.id,
            out_trade_no=out_trade_no,
            operation=operation,
            context={"code": error.code, "status": error.status},
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def start_payment(self, kind, payable_id: int, user, method, base_url: str) -> dict:
        """
        Open a new payment attempt.

        Returns {ok, outTradeNo, url, sseUrl?} or {ok, alreadyPaid}. A previous
        attempt's token is overwritten, which invalidates its pollers.
        """
        binding, payable = self.get_payable(kind, payable_id, user)
        provider = self.providers.get(method)

        if payable.status in binding.settled_statuses:
            return {"ok": True, "alreadyPaid": True}
        if payable.status not in binding.open_statuses:
            raise PaymentValidationError(
                f"{binding.label} cannot be paid in status {_status_value(payable.status)}"
            )

        out_trade_no = new_out_trade_no(binding.token_prefix, payable.id)
        item_url = f"{base_url}/{binding.path}/{payable.id}"
        request = PaymentRequest(
            payable_kind=binding.kind,
            payable_id=payable.id,
            out_trade_no=out_trade_no,
            amount=to_money(payable.amount_due),
            description=f"{binding.label} #{payable.id}",
            base_url=base_url,
            return_url=f"{item_url}/pay/finish",
            cancel_url=f"{item_url}/pay?cancelled=1",
        )

        try:
            created = provider.create_payment(request)
        except PaymentError as e:
            logger.warning(
                f"[Payment] Start failed: {binding.kind.value}:{payable.id}, method={provider.method.value}, error={e.message}"
            )
            self._record_error(e, provider, binding, payable, out_trade_no, "create_payment")
            raise

        model = binding.model
        previous = payable.status
        updated = (
            self.db.query(model)
            .filter(model.id == payable.id, model.status.in_(binding.open_statuses))
            .update(
                {
                    model.status: binding.unpaid_status,
                    model.payment_method: provider.method,
                    model.payment_out_trade_no: out_trade_no,
                    model.payment_provider_ref: created.provider_reference,
                },
                synchronize_session=False,
            )
        )
        if updated == 0:
            self.db.rollback()
            self.db.refresh(payable)
            if payable.status in binding.settled_statuses:
                return {"ok": True, "alreadyPaid": True}
            raise StateConflictError(f"{binding.label} can no longer be paid")

        self._record_status_change(binding, payable.id, out_trade_no, previous, binding.unpaid_status, "start")
        self.db.commit()
        logger.info(
            f"[Payment] Started: {binding.kind.value}:{payable.id}, method={provider.method.value}, out_trade_no={out_trade_no}"
        )

        result = {"ok": True, "outTradeNo": out_trade_no, "url": created.redirect_url}
        if created.stream_url:
            result["sseUrl"] = created.stream_url
        return result

    def check_status(self, kind, payable_id: int, user, out_trade_no: Optional[str] = None) -> dict:
        binding, payable = self.get_payable(kind, payable_id, user)
        return self.reconcile(binding, payable, out_trade_no, source="status")

    def reconcile(
        self,
        binding: PayableBinding,
        payable,
        out_trade_no: Optional[str],
        source: str = "status",
    ) -> dict:
        """
        Ask the provider about the current attempt and confirm it when paid.

        Raises StateConflictError for a stale token, PaymentValidationError
        when no attempt was started, ProviderError when the gateway could not
        answer and ConfigError when it is not configured. The provider is
        always asked about the reference stored with the current attempt.
        """
        if payable.status in binding.settled_statuses:
            return {"ok": True, "paid": True, "alreadyPaid": True}

        token = payable.payment_out_trade_no
        if out_trade_no and out_trade_no != token:
            logger.info(f"[Payment] Stale poll rejected: {binding.kind.value}:{payable.id}, out_trade_no={out_trade_no}")
            raise StateConflictError(STALE_TOKEN_MESSAGE)
        if not token or payable.payment_method in (None, PaymentMethod.NONE):
            raise PaymentValidationError(f"{binding.label} payment method not started")

        provider = self.providers.get(payable.payment_method)
        try:
            result = provider.query_payment_status(token, payable.payment_provider_ref)
        except ConfigError as e:
            self._record_error(e, provider, binding, payable, token, "query_payment_status")
            raise

        if not result.ok:
            # A concurrent poll may already have confirmed and captured this attempt
            self.db.rollback()
            self.db.refresh(payable)
            if payable.status in binding.settled_statuses:
                logger.info(f"[Payment] Confirmed concurrently: {binding.kind.value}:{payable.id}")
                return {"ok": True, "paid": True, "alreadyPaid": True}
            error = ProviderError(result.error or f"{provider.label} query failed")
            self._record_error(error, provider, binding, payable, token, "query_payment_status")
            raise error

        payload = result.to_dict()
        if not result.paid:
            return payload

        payload.update(self.confirm_paid(binding, payable.id, token, result.transaction_id, source))
        return payload

    def confirm_paid(
        self,
        binding: PayableBinding,
        payable_id: int,
        out_trade_no: str,
        transaction_id: Optional[str] = None,
        source: str = "status",
    ) -> dict:
        """
        Transition to the paid state at most once.

        Returns {paid: True} for the winner, {paid: True, alreadyPaid: True}
        for a caller that lost the race, plus ``partial: True`` when a
        dependent effect failed.
        """
        model = binding.model
        payable = self._load(binding, payable_id)
        previous = payable.status

        values = {
            model.status: binding.paid_status,
            model.paid_at: datetime.now(timezone.utc),
        }
        if transaction_id:
            values[model.payment_provider_ref] = transaction_id
        if binding.paid_values and payable.status in binding.open_statuses:
            values.update(binding.paid_values(self.db, payable))

        updated = (
            self.db.query(model)
            .filter(
                model.id == payable_id,
                model.status.in_(binding.open_statuses),
                model.payment_out_trade_no == out_trade_no,
            )
            .update(values, synchronize_session=False)
        )
        if updated == 0:
            self.db.rollback()
            self.db.refresh(payable)
            if payable.status in binding.settled_statuses:
                logger.info(f"[Payment] Already confirmed: {binding.kind.value}:{payable_id}")
                return {"paid": True, "alreadyPaid": True}
            raise StateConflictError(STALE_TOKEN_MESSAGE)

        self._record_status_change(binding, payable_id, out_trade_no, previous, binding.paid_status, source)
        self.db.commit()
        logger.info(
            f"[Payment] Confirmed paid: {binding.kind.value}:{payable_id}, out_trade_no={out_trade_no}, "
            f"txn={transaction_id}, source={source}"
        )

        result = {"paid": True}
        if not self._apply_dependent_effects(binding, payable_id, out_trade_no):
            result["partial"] = True
        return result

    def _apply_dependent_effects(self, binding: PayableBinding, payable_id: int, out_trade_no: str) -> bool:
        if binding.after_paid is None:
            return True
        self.db.expire_all()
        payable = self._load(binding, payable_id)
        try:
            binding.after_paid(self.db, payable)
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"[Payment] Dependent effect failed after payment: {binding.kind.value}:{payable_id}, error={e}",
                exc_info=True,
            )
            record_payment_error(
                self.db,
                error_type=ErrorType.DEPENDENT_EFFECT,
                error_message=str(e),
                user_id=payable.user_id,
                payable_type=binding.kind.value,
                payable_id=payable_id,
                out_trade_no=out_trade_no,
                operation="after_paid",
                context={"exception": type(e).__name__},
            )
            return False

    def finish(self, kind, payable_id: int, user, out_trade_no: Optional[str] = None) -> str:
        """Path to redirect a returning browser to. Reads only."""
        binding, payable = self.get_payable(kind, payable_id, user)
        item_path = f"/{binding.path}/{payable.id}"
        if payable.status in binding.settled_statuses:
            return f"{item_path}?paid=1"
        if out_trade_no and payable.payment_out_trade_no and out_trade_no != payable.payment_out_trade_no:
            return f"{item_path}/pay?error=out_trade_no_mismatch"
        return f"{item_path}/pay?retry=1"

    def reconcile_stream(self, out_trade_no: str, user, txn_retrieval_ref: Optional[str] = None) -> dict:
        """
        One tick of the NETS status stream.

        The retrieval ref in the stream URL must be the one stored with the
        current NETS attempt; the provider is never asked about any other.
        """
        binding, payable = self.find_by_out_trade_no(out_trade_no, user)
        if payable.status in binding.settled_statuses:
            return {"ok": True, "paid": True, "alreadyPaid": True}
        if payable.payment_method != PaymentMethod.NETS:
            raise PaymentValidationError("Payment was not started with NETS")
        if txn_retrieval_ref and txn_retrieval_ref != payable.payment_provider_ref:
            logger.warning(
                f"[NETS] Stream ref rejected: {binding.kind.value}:{payable.id}, txn_retrieval_ref={txn_retrieval_ref}"
            )
            raise StateConflictError(STALE_REFERENCE_MESSAGE)
        return self.reconcile(binding, payable, out_trade_no, source="stream")

    def nets_page(self, out_trade_no: str, user, base_url: str) -> dict:
        """
        QR page data for an attempt started with NETS.

        An expired QR session is requested again and the new retrieval ref is
        stored on the payable.
        """
        binding, payable = self.find_by_out_trade_no(out_trade_no, user)
        if payable.status in binding.settled_statuses:
            return {"ok": True, "alreadyPaid": True}
        if payable.payment_method != PaymentMethod.NETS:
            raise PaymentValidationError("Payment was not started with NETS")

        provider = self.providers.get(PaymentMethod.NETS)
        amount = to_money(payable.amount_due)
        try:
            session = provider.get_or_create_session(out_trade_no, amount)
        except PaymentError as e:
            self._record_error(e, provider, binding, payable, out_trade_no, "nets_qr_request")
            raise

        if session.provider_reference != payable.payment_provider_ref:
            model = binding.model
            self.db.query(model).filter(
                model.id == payable.id,
                model.status.in_(binding.open_statuses),
                model.payment_out_trade_no == out_trade_no,
            ).update({model.payment_provider_ref: session.provider_reference}, synchronize_session=False)
            self.db.commit()
            logger.info(f"[NETS] Session renewed: out_trade_no={out_trade_no}")

        return {
            "ok": True,
            "outTradeNo": out_trade_no,
            "amount": str(amount),
            "txnRetrievalRef": session.provider_reference,
            "qrCodeUrl": f"data:image/png;base64,{session.qr_payload}",
            "sseUrl": stream_url(base_url, session.provider_reference, out_trade_no),
        }
