# -*- coding: utf-8 -*-
"""
Alipay sandbox adapter (page redirect + signed trade query).

Request parameters are signed with RSA2: non-empty parameters sorted by key,
joined as ``k=v`` with ``&``, RSA-SHA256 (PKCS#1 v1.5), base64 encoded.
"""
import base64
import binascii
import json
import logging
import re
from datetime import datetime
from typing import Callable, Optional
from urllib.parse import urlencode

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from storefront.errors import ConfigError, ProviderError
from storefront.models.payment import PaymentMethod
from storefront.payments.base import (
    PaymentCreated,
    PaymentProvider,
    PaymentQueryResult,
    PaymentRequest,
)
from storefront.payments.http import post_form

logger = logging.getLogger(__name__)

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/=]+$")
PAID_TRADE_STATUSES = frozenset({"TRADE_SUCCESS", "TRADE_FINISHED"})
QUERY_SUCCESS_CODE = "10000"


def _looks_like_base64_der(value: str) -> bool:
    return "-----BEGIN" not in value and len(value) >= 100 and bool(_BASE64_RE.match(value))


def load_private_key(value: str):
    """
    Load an RSA private key from settings.

    Accepts PEM text (``\\n`` escapes allowed, for single-line env values) or
    a bare base64 DER blob in PKCS#8 or PKCS#1 form.
    """
    key_text = (value or "").replace("\\n", "\n").strip()
    if not key_text:
        return None
    try:
        if "-----BEGIN" in key_text:
            return serialization.load_pem_private_key(key_text.encode("utf-8"), password=None)
        if _looks_like_base64_der(key_text):
            der = base64.b64decode(key_text)
            return serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError, binascii.Error) as e:
        raise ConfigError("Invalid ALIPAY_PRIVATE_KEY (not a supported private key)") from e
    raise ConfigError("Invalid ALIPAY_PRIVATE_KEY format")


def build_sign_content(params: dict) -> str:
    keys = sorted(k for k, v in params.items() if v is not None and v != "")
    return "&".join(f"{k}={params[k]}" for k in keys)


def sign_params(params: dict, private_key) -> str:
    signature = private_key.sign(
        build_sign_content(params).encode("utf-8"),
        padding.PKCS1v15(),
        hashes.SHA256(),
    )
    return base64.b64encode(signature).decode("ascii")


class AlipayProvider(PaymentProvider):
    method = PaymentMethod.ALIPAY
    label = "Alipay"

    def __init__(self, settings, now: Callable[[], datetime] = datetime.now):
        super().__init__(settings, settings.ALIPAY_AMOUNT_FACTOR)
        self.gateway = (settings.ALIPAY_GATEWAY or "").strip()
        self.app_id = (settings.ALIPAY_APP_ID or "").strip()
        self.subject = (settings.ALIPAY_SUBJECT or "Order Payment").strip()
        self._private_key_text = settings.ALIPAY_PRIVATE_KEY or ""
        self._private_key = None
        self._now = now

    def missing_config(self) -> Optional[str]:
        if not self.app_id:
            return "Missing ALIPAY_APP_ID"
        if not self._private_key_text.strip():
            return "Missing ALIPAY_PRIVATE_KEY"
        if not self.gateway:
            return "Missing ALIPAY_GATEWAY"
        return None

    def _key(self):
        if self._private_key is None:
            self._private_key = load_private_key(self._private_key_text)
        return self._private_key

    def _common_params(self, api_method: str) -> dict:
        return {
            "app_id": self.app_id,
            "method": api_method,
            "format": "JSON",
            "charset": "utf-8",
            "sign_type": "RSA2",
            "timestamp": self._now().strftime("%Y-%m-%d %H:%M:%S"),
            "version": "1.0",
        }

    def _signed(self, params: dict) -> dict:
        signed = {k: v for k, v in params.items() if v is not None and v != ""}
        signed["sign"] = sign_params(params, self._key())
        return signed

    def create_payment(self, request: PaymentRequest) -> PaymentCreated:
        self.assert_configured()
        params = self._common_params("alipay.trade.page.pay")
        params["return_url"] = request.return_url
        params["biz_content"] = json.dumps(
            {
                "out_trade_no": request.out_trade_no,
                "product_code": "FAST_INSTANT_TRADE_PAY",
                "total_amount": self.charge_amount(request.amount),
                "subject": f"{self.subject} #{request.payable_id}",
            },
            separators=(",", ":"),
        )
        url = f"{self.gateway}?{urlencode(self._signed(params))}"
        logger.info(f"[Alipay] Page pay URL built: out_trade_no={request.out_trade_no}")
        return PaymentCreated(out_trade_no=request.out_trade_no, redirect_url=url)

    def query_payment_status(
        self, out_trade_no: str, provider_reference: Optional[str] = None
    ) -> PaymentQueryResult:
        self.assert_configured()
        params = self._common_params("alipay.trade.query")
        params["biz_content"] = json.dumps({"out_trade_no": out_trade_no}, separators=(",", ":"))
        try:
            data = post_form(
                self.gateway,
                self.label,
                self.timeout,
                data=self._signed(params),
                headers={"Content-Type": "application/x-www-form-urlencoded;charset=utf-8"},
            )
        except ProviderError as e:
            logger.warning(f"[Alipay] Trade query failed: out_trade_no={out_trade_no}, error={e.message}")
            return PaymentQueryResult(ok=False, error=e.message)

        resp = data.get("alipay_trade_query_response")
        if not isinstance(resp, dict):
            return PaymentQueryResult(ok=True, paid=False, error="Alipay query failed: No response")

        trade_status = resp.get("trade_status")
        fields = {"tradeStatus": trade_status}
        if resp.get("code") != QUERY_SUCCESS_CODE:
            msg = f"{resp.get('code') or ''} {resp.get('msg') or ''}".strip()
            return PaymentQueryResult(
                ok=True,
                paid=False,
                raw_status=trade_status,
                error=f"Alipay query failed: {msg}",
                fields=fields,
            )

        return PaymentQueryResult(
            ok=True,
            paid=trade_status in PAID_TRADE_STATUSES,
            raw_status=trade_status,
            transaction_id=resp.get("trade_no"),
            fields=fields,
        )
