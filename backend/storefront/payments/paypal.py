# -*- coding: utf-8 -*-
"""
PayPal sandbox adapter (OAuth client credentials + order capture).

Querying is not read-only: an order the buyer has APPROVED is captured
during the query, and only a COMPLETED capture counts as paid.
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
from storefront.payments.http import get_json, post_form, post_json

logger = logging.getLogger(__name__)


def extract_capture_id(payload: dict) -> Optional[str]:
    """purchase_units[0].payments.captures[0].id, if present."""
    try:
        capture = payload["purchase_units"][0]["payments"]["captures"][0]
    except (KeyError, IndexError, TypeError):
        return None
    capture_id = capture.get("id") if isinstance(capture, dict) else None
    return str(capture_id) if capture_id else None


class PayPalProvider(PaymentProvider):
    method = PaymentMethod.PAYPAL
    label = "PayPal"

    def __init__(self, settings):
        super().__init__(settings, settings.PAYPAL_AMOUNT_FACTOR)
        self.api_base = (settings.PAYPAL_API_BASE or "").strip().rstrip("/")
        self.client_id = (settings.PAYPAL_CLIENT_ID or "").strip()
        self.client_secret = (settings.PAYPAL_CLIENT_SECRET or "").strip()
        self.brand_name = (settings.PAYPAL_BRAND_NAME or "").strip()
        self.currency = (settings.PAYPAL_CURRENCY or "USD").strip()

    def missing_config(self) -> Optional[str]:
        if not self.api_base:
            return "Missing PAYPAL_API_BASE"
        if not self.client_id:
            return "Missing PAYPAL_CLIENT_ID"
        if not self.client_secret:
            return "Missing PAYPAL_CLIENT_SECRET"
        return None

    def _access_token(self) -> str:
        # Not cached: one token per gateway call is fine at sandbox volume
        data = post_form(
            f"{self.api_base}/v1/oauth2/token",
            self.label,
            self.timeout,
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
        )
        token = data.get("access_token")
        if not token:
            raise ProviderError("PayPal access token missing")
        return str(token)

    def _auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self._access_token()}"}

    def _order_url(self, provider_order_id: str) -> str:
        return f"{self.api_base}/v2/checkout/orders/{quote(provider_order_id, safe='')}"

    def create_payment(self, request: PaymentRequest) -> PaymentCreated:
        self.assert_configured()
        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": request.out_trade_no,
                    "custom_id": request.out_trade_no,
                    "description": request.description,
                    "amount": {
                        "currency_code": self.currency,
                        "value": self.charge_amount(request.amount),
                    },
                }
            ],
            "application_context": {
                "brand_name": self.brand_name,
                "return_url": request.return_url,
                "cancel_url": request.cancel_url,
                "user_action": "PAY_NOW",
            },
        }
        data = post_json(
            f"{self.api_base}/v2/checkout/orders",
            self.label,
            self.timeout,
            payload=body,
            headers=self._auth_headers(),
        )
        provider_order_id = data.get("id")
        links = data.get("links") if isinstance(data.get("links"), list) else []
        approve_url = next(
            (l.get("href") for l in links if isinstance(l, dict) and l.get("rel") == "approve" and l.get("href")),
            None,
        )
        if not provider_order_id or not approve_url:
            raise ProviderError("PayPal create order response missing approve link")

        logger.info(
            f"[PayPal] Order created: out_trade_no={request.out_trade_no}, paypal_order={provider_order_id}"
        )
        return PaymentCreated(
            out_trade_no=request.out_trade_no,
            redirect_url=str(approve_url),
            provider_reference=str(provider_order_id),
        )

    def capture(self, provider_order_id: str) -> dict:
        return post_json(
            f"{self._order_url(provider_order_id)}/capture",
            self.label,
            self.timeout,
            payload={},
            headers=self._auth_headers(),
        )

    def query_payment_status(
        self, out_trade_no: str, provider_reference: Optional[str] = None
    ) -> PaymentQueryResult:
        self.assert_configured()
        if not provider_reference:
            return PaymentQueryResult(ok=True, paid=False, fields={"orderStatus": None})

        try:
            order = get_json(self._order_url(provider_reference), self.label, self.timeout, headers=self._auth_headers())
            order_status = order.get("status")

            if order_status == "APPROVED":
                captured = self.capture(provider_reference)
                capture_status = captured.get("status")
                logger.info(
                    f"[PayPal] Capture attempted: paypal_order={provider_reference}, status={capture_status}"
                )
                if capture_status == "COMPLETED":
                    return PaymentQueryResult(
                        ok=True,
                        paid=True,
                        raw_status="COMPLETED",
                        transaction_id=extract_capture_id(captured),
                        fields={"orderStatus": "COMPLETED"},
                    )
                return PaymentQueryResult(
                    ok=True,
                    paid=False,
                    raw_status=capture_status,
                    fields={"orderStatus": capture_status or order_status},
                )

            if order_status == "COMPLETED":
                return PaymentQueryResult(
                    ok=True,
                    paid=True,
                    raw_status="COMPLETED",
                    transaction_id=extract_capture_id(order),
                    fields={"orderStatus": "COMPLETED"},
                )

            return PaymentQueryResult(ok=True, paid=False, raw_status=order_status, fields={"orderStatus": order_status})
        except ProviderError as e:
            logger.warning(f"[PayPal] Order query failed: paypal_order={provider_reference}, error={e.message}")
            return PaymentQueryResult(ok=False, error=e.message)
