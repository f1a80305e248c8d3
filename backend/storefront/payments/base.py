# -*- coding: utf-8 -*-
"""
Payment Provider Contract

Every gateway integration implements the same two operations:

- create_payment(request) -> PaymentCreated
    Opens a provider-side payment for one attempt (one out_trade_no).
    Raises ConfigError when credentials are missing and ProviderError when
    the gateway call fails. Persists nothing.

- query_payment_status(out_trade_no, provider_reference) -> PaymentQueryResult
    Safe to call repeatedly while polling. "Not paid yet" is a normal
    result; transport and parse failures come back as ``ok=False`` instead
    of being raised. Missing credentials still raise ConfigError.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from storefront.errors import ConfigError
from storefront.models.payment import PaymentMethod, PayableKind

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def format_amount(amount) -> str:
    """Render a currency amount with exactly two fraction digits."""
    return str(Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP))


@dataclass
class PaymentRequest:
    payable_kind: PayableKind
    payable_id: int
    out_trade_no: str
    amount: Decimal
    description: str
    # Public base URL of this service, no trailing slash
    base_url: str
    return_url: str
    cancel_url: str


@dataclass
class PaymentCreated:
    out_trade_no: str
    redirect_url: str
    provider_reference: Optional[str] = None
    stream_url: Optional[str] = None


@dataclass
class PaymentQueryResult:
    ok: bool
    paid: bool = False
    raw_status: Optional[str] = None
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    # Provider specific status fields passed through to the client
    fields: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        payload = {"ok": self.ok, "paid": self.paid}
        payload.update(self.fields)
        if self.error:
            payload["error"] = self.error
        return payload


class PaymentProvider:
    """Base class for gateway adapters."""

    method: PaymentMethod = PaymentMethod.NONE
    label: str = "Payment"

    def __init__(self, settings, amount_factor: Decimal = Decimal("1")):
        self.settings = settings
        self.amount_factor = Decimal(str(amount_factor))
        self.timeout = settings.PAYMENT_HTTP_TIMEOUT_SECONDS

    def charge_amount(self, amount) -> str:
        """Amount sent to the gateway after the per-provider factor."""
        return format_amount(Decimal(str(amount)) * self.amount_factor)

    def missing_config(self) -> Optional[str]:
        """Return a description of the first missing setting, or None."""
        return None

    def assert_configured(self) -> None:
        problem = self.missing_config()
        if problem:
            logger.error(f"[{self.label}] {problem}")
            raise ConfigError(problem)

    def create_payment(self, request: PaymentRequest) -> PaymentCreated:
        raise NotImplementedError

    def query_payment_status(
        self, out_trade_no: str, provider_reference: Optional[str] = None
    ) -> PaymentQueryResult:
        raise NotImplementedError
