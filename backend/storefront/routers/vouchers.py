"""
Voucher Router
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.dependencies import CurrentUser, get_current_user
from storefront.schemas.voucher import (
    MyVouchersResponse,
    VoucherResponse,
    VoucherValidateRequest,
    VoucherValidateResponse,
)
from storefront.services.vouchers import list_user_vouchers, validate_voucher

router = APIRouter(prefix="/vouchers", tags=["vouchers"])


@router.post("/validate", response_model=VoucherValidateResponse)
def validate(
    data: VoucherValidateRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Preview the discount a code gives on an order total."""
    check = validate_voucher(db, data.code, user.id, data.order_total)
    return VoucherValidateResponse(
        ok=check.valid,
        voucher=VoucherResponse.model_validate(check.voucher) if check.voucher else None,
        discount=check.discount,
        error=check.error,
    )


@router.get("/my", response_model=MyVouchersResponse)
def my_vouchers(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    vouchers = list_user_vouchers(db, user.id)
    return MyVouchersResponse(
        available=[VoucherResponse.model_validate(v) for v in vouchers["available"]],
        all=[VoucherResponse.model_validate(v) for v in vouchers["all"]],
    )
