# -*- coding: utf-8 -*-
"""
Voucher Service

Validation, discount calculation, use/release and membership issuance.
A voucher is either unused, or used and bound to exactly one order; every
state change goes through a conditional update on ``is_used``.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.models.membership import MembershipPlan, UserMembership
from storefront.models.voucher import Voucher, VoucherSource
from storefront.services.pricing import compute_discount, to_money
from storefront.utils.membership_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

VOUCHER_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
VOUCHER_CODE_LENGTH = 8
MAX_CODE_ATTEMPTS = 10


@dataclass
class VoucherCheck:
    valid: bool
    voucher: Optional[Voucher] = None
    discount: Decimal = Decimal("0.00")
    error: Optional[str] = None


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def generate_voucher_code(prefix: str = "MEM") -> str:
    suffix = "".join(secrets.choice(VOUCHER_CODE_ALPHABET) for _ in range(VOUCHER_CODE_LENGTH))
    return f"{prefix}{suffix}"


def validate_voucher(db: Session, code: Optional[str], user_id: int, subtotal) -> VoucherCheck:
    """
    Check a voucher code against a user and subtotal.

    Returns a VoucherCheck; ``error`` explains a rejection.
    """
    normalized = normalize_code(code)
    if not normalized:
        return VoucherCheck(valid=False, error="Voucher code is required")

    voucher = db.query(Voucher).filter(Voucher.code == normalized).first()
    if not voucher:
        return VoucherCheck(valid=False, error="Voucher not found")
    if voucher.user_id is not None and voucher.user_id != user_id:
        return VoucherCheck(valid=False, error="Voucher not found")
    if voucher.is_used:
        return VoucherCheck(valid=False, error="Voucher has already been used")
    if voucher.expires_at and as_utc(voucher.expires_at) < utcnow():
        return VoucherCheck(valid=False, error="Voucher has expired")

    subtotal = to_money(subtotal)
    min_order = to_money(voucher.min_order)
    if subtotal < min_order:
        return VoucherCheck(valid=False, error=f"Minimum order of ${min_order} required")

    discount = compute_discount(voucher.type, voucher.value, subtotal, voucher.max_discount)
    return VoucherCheck(valid=True, voucher=voucher, discount=discount)


def mark_voucher_used(db: Session, voucher_id: int, order_id: int) -> bool:
    """
    Bind an unused voucher to an order. Does not commit.

    Returns False when the voucher was already used (lost race).
    """
    updated = (
        db.query(Voucher)
        .filter(Voucher.id == voucher_id, Voucher.is_used == False)  # noqa: E712
        .update(
            {
                Voucher.is_used: True,
                Voucher.used_at: datetime.now(timezone.utc),
                Voucher.used_order_id: order_id,
            },
            synchronize_session=False,
        )
    )
    return updated == 1


def confirm_voucher_for_order(db: Session, code: Optional[str], order_id: int) -> bool:
    """
    Make sure the voucher recorded on a paid order is consumed by that order.
    Does not commit.

    Raises ValueError when the voucher is missing or bound to another order.
    """
    normalized = normalize_code(code)
    if not normalized:
        return False

    voucher = db.query(Voucher).filter(Voucher.code == normalized).first()
    if voucher is None:
        raise ValueError(f"Voucher {normalized} not found for order {order_id}")
    if voucher.is_used:
        if voucher.used_order_id != order_id:
            raise ValueError(f"Voucher {normalized} already used by order {voucher.used_order_id}")
        return False
    if not mark_voucher_used(db, voucher.id, order_id):
        raise ValueError(f"Voucher {normalized} was consumed concurrently")
    logger.info(f"[Voucher] Consumed on payment: code={normalized}, order_id={order_id}")
    return True


def release_voucher_for_order(db: Session, order_id: int) -> int:
    """Return the order's voucher to unused. Does not commit. Returns rows changed."""
    return (
        db.query(Voucher)
        .filter(Voucher.used_order_id == order_id, Voucher.is_used == True)  # noqa: E712
        .update(
            {Voucher.is_used: False, Voucher.used_at: None, Voucher.used_order_id: None},
            synchronize_session=False,
        )
    )


def issue_membership_vouchers(
    db: Session,
    membership: UserMembership,
    plan: MembershipPlan,
) -> list[Voucher]:
    """
    Issue the plan's vouchers to the membership owner. Commits.

    Each voucher is inserted in its own savepoint so a code collision only
    retries that one code.
    """
    count = int(plan.voucher_count or 0)
    if count <= 0:
        return []

    expires_at = utcnow() + timedelta(days=int(plan.duration_days or 30))
    issued = []
    for _ in range(count):
        for attempt in range(MAX_CODE_ATTEMPTS):
            voucher = Voucher(
                code=generate_voucher_code("MEM"),
                user_id=membership.user_id,
                type=plan.voucher_type,
                value=plan.voucher_value,
                min_order=plan.voucher_min_order or 0,
                source=VoucherSource.MEMBERSHIP,
                membership_id=membership.id,
                expires_at=expires_at,
            )
            try:
                with db.begin_nested():
                    db.add(voucher)
                issued.append(voucher)
                break
            except IntegrityError:
                logger.warning(f"[Voucher] Code collision, retrying (attempt {attempt + 1})")
        else:
            raise RuntimeError("Could not generate a unique voucher code")

    db.commit()
    logger.info(
        f"[Voucher] Issued {len(issued)} vouchers: membership_id={membership.id}, user_id={membership.user_id}"
    )
    return issued


def list_user_vouchers(db: Session, user_id: int) -> dict:
    vouchers = (
        db.query(Voucher)
        .filter(Voucher.user_id == user_id)
        .order_by(Voucher.id.desc())
        .all()
    )
    now = utcnow()
    available = [
        v for v in vouchers
        if not v.is_used and (v.expires_at is None or as_utc(v.expires_at) >= now)
    ]
    return {"available": available, "all": vouchers}
