"""
Refund Router (customer side)
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.dependencies import CurrentUser, get_current_user
from storefront.schemas.refund import RefundList, RefundResponse
from storefront.services import refunds as refund_service

router = APIRouter(prefix="/refunds", tags=["refunds"])


@router.get("", response_model=RefundList)
def my_refunds(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    refunds = refund_service.list_refunds(db, user_id=user.id)
    return RefundList(refunds=[RefundResponse.model_validate(r) for r in refunds], total=len(refunds))


@router.post("/{refund_id}/cancel", response_model=RefundResponse)
def cancel_refund(
    refund_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Withdraw a refund request that is still Pending."""
    refund = refund_service.cancel_refund(db, refund_id, user.id)
    return RefundResponse.model_validate(refund)
