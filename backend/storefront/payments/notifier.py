# -*- coding: utf-8 -*-
"""
Live Status Notifier

Server-Sent Events stream that polls the provider on a fixed interval and
confirms the payable once it is paid. Each tick opens its own DB session in
the threadpool; waiting happens on the event loop, so cancelling the
generator (client gone) stops polling at the next await.
"""
import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional

from starlette.concurrency import run_in_threadpool

from storefront.errors import PaymentError, ProviderError
from storefront.payments.registry import ProviderRegistry
from storefront.payments.workflow import PayableWorkflow

logger = logging.getLogger(__name__)


def sse_frame(payload: dict) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


class PaymentStatusNotifier:
    def __init__(
        self,
        session_factory: Callable,
        providers: ProviderRegistry,
        timeout_seconds: float = 600,
        interval_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.session_factory = session_factory
        self.providers = providers
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds
        self._sleep = sleep

    def _check_once(self, user, out_trade_no: str, txn_ref: Optional[str]) -> dict:
        db = self.session_factory()
        try:
            return PayableWorkflow(db, self.providers).reconcile_stream(out_trade_no, user, txn_ref)
        finally:
            db.close()

    async def stream(
        self,
        user,
        out_trade_no: str,
        txn_ref: Optional[str] = None,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ):
        """
        Yield SSE frames until the payment resolves.

        {"pending": true, "result": {...}}  provider says not paid yet
        {"success": true}                   payable confirmed paid
        {"fail": true, "message": ...}      stale token or ref, config error,
                                            timeout, unexpected error
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds
        logger.info(f"[SSE] Stream opened: out_trade_no={out_trade_no}")

        try:
            while True:
                if is_disconnected is not None and await is_disconnected():
                    logger.info(f"[SSE] Client disconnected: out_trade_no={out_trade_no}")
                    return

                if loop.time() >= deadline:
                    yield sse_frame({"fail": True, "message": "timeout"})
                    return

                try:
                    result = await run_in_threadpool(self._check_once, user, out_trade_no, txn_ref)
                except ProviderError as e:
                    yield sse_frame({"pending": True, "result": {"ok": False, "error": e.message}})
                except PaymentError as e:
                    logger.info(f"[SSE] Stream failed: out_trade_no={out_trade_no}, error={e.message}")
                    yield sse_frame({"fail": True, "message": e.message})
                    return
                except Exception as e:
                    logger.error(f"[SSE] Status check crashed: out_trade_no={out_trade_no}, error={e}", exc_info=True)
                    yield sse_frame({"fail": True, "message": "Payment status check failed"})
                    return
                else:
                    if result.get("paid"):
                        yield sse_frame({"success": True})
                        logger.info(f"[SSE] Payment confirmed: out_trade_no={out_trade_no}")
                        return
                    yield sse_frame({"pending": True, "result": result})

                await self._sleep(self.interval_seconds)
        except asyncio.CancelledError:
            logger.info(f"[SSE] Stream cancelled: out_trade_no={out_trade_no}")
            raise
