# -*- coding: utf-8 -*-
"""
Membership Service

Plan listing, subscription (creates a Pending payable), activation dates
and expiry.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from storefront.errors import PaymentValidationError
from storefront.models.membership import MembershipPlan, MembershipStatus, UserMembership
from storefront.services.pricing import to_money
from storefront.services.vouchers import list_user_vouchers
from storefront.utils.membership_utils import (
    calculate_membership_expiry,
    days_until_expiry,
    is_membership_active,
    utcnow,
)

logger = logging.getLogger(__name__)


def list_plans(db: Session) -> list[MembershipPlan]:
    return (
        db.query(MembershipPlan)
        .filter(MembershipPlan.is_active == True)  # noqa: E712
        .order_by(MembershipPlan.price)
        .all()
    )


def subscribe(db: Session, user_id: int, plan_id: int) -> UserMembership:
    """Create a Pending membership priced at the plan's current price."""
    plan = (
        db.query(MembershipPlan)
        .filter(MembershipPlan.id == plan_id, MembershipPlan.is_active == True)  # noqa: E712
        .first()
    )
    if not plan:
        raise PaymentValidationError("Membership plan not found", status=404)

    membership = UserMembership(
        user_id=user_id,
        plan_id=plan.id,
        amount=to_money(plan.price),
        status=MembershipStatus.PENDING,
    )
    db.add(membership)
    db.commit()
    db.refresh(membership)
    logger.info(f"[Membership] Subscription created: membership_id={membership.id}, user_id={user_id}, plan_id={plan.id}")
    return membership


def get_active_membership(db: Session, user_id: int, exclude_id: Optional[int] = None) -> Optional[UserMembership]:
    """The user's Active membership with the latest expiry, if it has not lapsed."""
    query = db.query(UserMembership).filter(
        UserMembership.user_id == user_id,
        UserMembership.status == MembershipStatus.ACTIVE,
    )
    if exclude_id is not None:
        query = query.filter(UserMembership.id != exclude_id)
    membership = query.order_by(UserMembership.expires_at.desc()).first()
    if membership and is_membership_active(membership.expires_at):
        return membership
    return None


def activation_window(db: Session, membership: UserMembership) -> tuple[datetime, datetime]:
    """
    (started_at, expires_at) for activating a membership now.

    A user who still has an active membership gets the new period appended
    to it instead of overlapping it.
    """
    plan = membership.plan
    current = get_active_membership(db, membership.user_id, exclude_id=membership.id)
    expires_at = calculate_membership_expiry(
        int(plan.duration_days if plan else 30),
        current.expires_at if current else None,
    )
    return utcnow(), expires_at


def expire_memberships(db: Session) -> int:
    """Mark lapsed Active memberships Expired. Commits. Returns rows changed."""
    updated = (
        db.query(UserMembership)
        .filter(
            UserMembership.status == MembershipStatus.ACTIVE,
            UserMembership.expires_at.isnot(None),
            UserMembership.expires_at < utcnow(),
        )
        .update({UserMembership.status: MembershipStatus.EXPIRED}, synchronize_session=False)
    )
    db.commit()
    if updated:
        logger.info(f"[Membership] Expired {updated} memberships")
    return updated


def membership_overview(db: Session, user_id: int) -> dict:
    active = get_active_membership(db, user_id)
    history = (
        db.query(UserMembership)
        .filter(UserMembership.user_id == user_id)
        .order_by(UserMembership.id.desc())
        .all()
    )
    return {
        "active": active,
        "days_remaining": days_until_expiry(active.expires_at) if active else None,
        "history": history,
        "vouchers": list_user_vouchers(db, user_id)["available"],
    }
