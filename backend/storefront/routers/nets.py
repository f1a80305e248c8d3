# -*- coding: utf-8 -*-
"""
NETS QR Router

- GET /nets/pay                          QR page data for a NETS attempt
- GET /nets/sse/payment-status/{ref}     live payment status (Server-Sent Events)
"""
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.dependencies import CurrentUser, get_current_user, get_stream_user
from storefront.errors import PaymentError
from storefront.payments.registry import ProviderRegistry
from storefront.payments.workflow import PayableWorkflow
from storefront.routers.payable import get_providers, payment_error_response, resolve_base_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/nets", tags=["nets"])


@router.get("/pay")
def nets_pay_page(
    request: Request,
    out_trade_no: str = Query(..., min_length=1, max_length=64),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    providers: ProviderRegistry = Depends(get_providers),
):
    """QR code, amount and stream URL; reuses the live QR session when there is one."""
    try:
        return PayableWorkflow(db, providers).nets_page(out_trade_no, user, resolve_base_url(request))
    except PaymentError as e:
        return payment_error_response(e)


@router.get("/sse/payment-status/{txn_retrieval_ref}")
async def nets_payment_status_stream(
    request: Request,
    txn_retrieval_ref: str,
    out_trade_no: str = Query(..., min_length=1, max_length=64),
    user: CurrentUser = Depends(get_stream_user),
):
    notifier = request.app.state.notifier
    return StreamingResponse(
        notifier.stream(user, out_trade_no, txn_retrieval_ref, request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
