"""
Membership Router
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.dependencies import CurrentUser, get_current_user
from storefront.models.payment import PayableKind
from storefront.routers.payable import register_pay_routes
from storefront.schemas.membership import MembershipOverview, MembershipPlanResponse, UserMembershipResponse
from storefront.services import memberships as membership_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/memberships", tags=["memberships"])


@router.get("/plans", response_model=list[MembershipPlanResponse])
def list_plans(db: Session = Depends(get_db)):
    return [MembershipPlanResponse.model_validate(p) for p in membership_service.list_plans(db)]


@router.post("/subscribe/{plan_id}", response_model=UserMembershipResponse)
def subscribe(
    plan_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a Pending membership; pay it through /memberships/{id}/pay/start."""
    membership = membership_service.subscribe(db, user.id, plan_id)
    return UserMembershipResponse.model_validate(membership)


@router.get("/my", response_model=MembershipOverview)
def my_memberships(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return MembershipOverview.model_validate(membership_service.membership_overview(db, user.id), from_attributes=True)


register_pay_routes(router, PayableKind.MEMBERSHIP)
