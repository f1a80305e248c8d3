# -*- coding: utf-8 -*-
"""
Payment routes shared by every payable kind.

register_pay_routes() adds start/status/finish under a router whose prefix
names the payable (``/orders``, ``/memberships``). Handlers are sync so the
blocking gateway calls run in the threadpool.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from storefront.config import get_settings
from storefront.database import get_db
from storefront.dependencies import CurrentUser, get_current_user
from storefront.errors import PaymentError
from storefront.models.payment import PayableKind
from storefront.payments.registry import ProviderRegistry
from storefront.payments.workflow import PayableWorkflow
from storefront.rate_limit import limiter
from storefront.schemas.payment import PaymentStartRequest

logger = logging.getLogger(__name__)


def get_providers(request: Request) -> ProviderRegistry:
    return request.app.state.providers


def resolve_base_url(request: Request) -> str:
    """Public base URL for provider callbacks: APP_BASE_URL, else the request's own."""
    configured = get_settings().APP_BASE_URL
    if configured:
        return configured.rstrip("/")
    return str(request.base_url).rstrip("/")


def payment_error_response(exc: PaymentError) -> JSONResponse:
    return JSONResponse(status_code=exc.status, content=exc.to_payload())


def register_pay_routes(router: APIRouter, kind: PayableKind) -> None:

    @router.post("/{payable_id}/pay/start", name=f"{kind.value}_pay_start")
    @limiter.limit("10/minute")
    def start_payment(
        request: Request,
        payable_id: int,
        data: PaymentStartRequest,
        user: CurrentUser = Depends(get_current_user),
        db: Session = Depends(get_db),
        providers: ProviderRegistry = Depends(get_providers),
    ):
        """Open a payment attempt with the chosen provider."""
        logger.info(f"[Payment] Start requested: {kind.value}:{payable_id}, method={data.payment_method}, user_id={user.id}")
        try:
            return PayableWorkflow(db, providers).start_payment(
                kind, payable_id, user, data.payment_method, resolve_base_url(request)
            )
        except PaymentError as e:
            return payment_error_response(e)

    @router.get("/{payable_id}/pay/status", name=f"{kind.value}_pay_status")
    @limiter.limit("60/minute")
    def payment_status(
        request: Request,
        payable_id: int,
        out_trade_no: str = Query(..., min_length=1, max_length=64),
        user: CurrentUser = Depends(get_current_user),
        db: Session = Depends(get_db),
        providers: ProviderRegistry = Depends(get_providers),
    ):
        """Poll the provider for the current attempt; confirms the payable when paid."""
        try:
            return PayableWorkflow(db, providers).check_status(kind, payable_id, user, out_trade_no)
        except PaymentError as e:
            return payment_error_response(e)

    @router.get("/{payable_id}/pay/finish", name=f"{kind.value}_pay_finish")
    def payment_finish(
        payable_id: int,
        out_trade_no: Optional[str] = Query(None, max_length=64),
        user: CurrentUser = Depends(get_current_user),
        db: Session = Depends(get_db),
        providers: ProviderRegistry = Depends(get_providers),
    ):
        """Landing point for provider browser redirects."""
        try:
            target = PayableWorkflow(db, providers).finish(kind, payable_id, user, out_trade_no)
        except PaymentError as e:
            return payment_error_response(e)
        return RedirectResponse(url=target, status_code=303)
