# -*- coding: utf-8 -*-
"""
NETS QR sandbox adapter (QR request + status polling).

QR sessions are cached in the PaymentSessionStore so reloading the pay
page does not mint a new provider-side transaction.
"""
import logging
from typing import Optional
from urllib.parse import quote

from storefront.errors import ProviderError
from storefront.models.payment import PaymentMethod
from storefront.payments.base import (
    PaymentCreated,
    PaymentProvider,
    PaymentQueryResult,
    PaymentRequest,
)
from storefront.payments.http import post_json
from storefront.payments.sessions import PaymentSession, PaymentSessionStore

logger = logging.getLogger(__name__)

SUCCESS_RESPONSE_CODE = "00"
TXN_STATUS_SUCCESS = 1


def _txn_status(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _result_data(payload: dict) -> Optional[dict]:
    result = payload.get("result")
    data = result.get("data") if isinstance(result, dict) else None
    return data if isinstance(data, dict) else None


def pay_page_url(base_url: str, out_trade_no: str) -> str:
    return f"{base_url}/nets/pay?out_trade_no={quote(out_trade_no, safe='')}"


def stream_url(base_url: str, txn_retrieval_ref: str, out_trade_no: str) -> str:
    return (
        f"{base_url}/nets/sse/payment-status/{quote(txn_retrieval_ref, safe='')}"
        f"?out_trade_no={quote(out_trade_no, safe='')}"
    )


class NetsProvider(PaymentProvider):
    method = PaymentMethod.NETS
    label = "NETS"

    def __init__(self, settings, sessions: PaymentSessionStore):
        super().__init__(settings, settings.NETS_AMOUNT_FACTOR)
        self.api_base = (settings.NETS_API_BASE or "").strip().rstrip("/")
        self.api_key = (settings.NETS_API_KEY or "").strip()
        self.project_id = (settings.NETS_PROJECT_ID or "").strip()
        self.txn_id = (settings.NETS_TXN_ID or "").strip()
        self.sessions = sessions

    def missing_config(self) -> Optional[str]:
        if not self.api_base:
            return "Missing NETS_API_BASE"
        if not self.api_key:
            return "Missing NETS_API_KEY"
        if not self.project_id:
            return "Missing NETS_PROJECT_ID"
        if not self.txn_id:
            return "Missing NETS_TXN_ID"
        return None

    def _headers(self) -> dict:
        return {"api-key": self.api_key, "project-id": self.project_id}

    def request_qr(self, out_trade_no: str, amount) -> PaymentSession:
        payload = post_json(
            f"{self.api_base}/api/v1/common/payments/nets-qr/request",
            self.label,
            self.timeout,
            payload={
                "txn_id": self.txn_id,
                "amt_in_dollars": self.charge_amount(amount),
                "notify_mobile": 0,
            },
            headers=self._headers(),
        )
        data = _result_data(payload)
        if data is None:
            raise ProviderError("Invalid NETS QR response")

        if (
            str(data.get("response_code")) != SUCCESS_RESPONSE_CODE
            or _txn_status(data.get("txn_status")) != TXN_STATUS_SUCCESS
            or not data.get("qr_code")
            or not data.get("txn_retrieval_ref")
        ):
            raise ProviderError(data.get("error_message") or "Failed to generate NETS QR code")

        logger.info(f"[NETS] QR issued: out_trade_no={out_trade_no}")
        return PaymentSession(
            out_trade_no=out_trade_no,
            provider_reference=str(data["txn_retrieval_ref"]),
            qr_payload=str(data["qr_code"]),
        )

    def get_or_create_session(self, out_trade_no: str, amount) -> PaymentSession:
        self.assert_configured()
        return self.sessions.get_or_create(out_trade_no, lambda: self.request_qr(out_trade_no, amount))

    def create_payment(self, request: PaymentRequest) -> PaymentCreated:
        session = self.get_or_create_session(request.out_trade_no, request.amount)
        return PaymentCreated(
            out_trade_no=request.out_trade_no,
            redirect_url=pay_page_url(request.base_url, request.out_trade_no),
            provider_reference=session.provider_reference,
            stream_url=stream_url(request.base_url, session.provider_reference, request.out_trade_no),
        )

    def query_payment_status(
        self, out_trade_no: str, provider_reference: Optional[str] = None
    ) -> PaymentQueryResult:
        self.assert_configured()
        if not provider_reference:
            session = self.sessions.get(out_trade_no)
            provider_reference = session.provider_reference if session else None
        if not provider_reference:
            return PaymentQueryResult(
                ok=True, paid=False, error="NETS session expired. Please start payment again."
            )

        try:
            payload = post_json(
                f"{self.api_base}/api/v1/common/payments/nets-qr/query",
                self.label,
                self.timeout,
                payload={"txn_retrieval_ref": provider_reference, "frontend_timeout_status": 0},
                headers=self._headers(),
            )
        except ProviderError as e:
            logger.warning(f"[NETS] Query failed: ref={provider_reference}, error={e.message}")
            return PaymentQueryResult(ok=False, error=e.message)

        data = _result_data(payload)
        if data is None:
            return PaymentQueryResult(ok=True, paid=False)

        response_code = str(data.get("response_code") or "")
        txn_status = _txn_status(data.get("txn_status"))
        action_code = str(data["action_code"]) if data.get("action_code") else None
        paid = response_code == SUCCESS_RESPONSE_CODE and txn_status == TXN_STATUS_SUCCESS
        return PaymentQueryResult(
            ok=True,
            paid=paid,
            raw_status=response_code,
            transaction_id=provider_reference if paid else None,
            fields={"responseCode": response_code, "txnStatus": txn_status, "actionCode": action_code},
        )
