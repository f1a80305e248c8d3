"""
Provider registry: maps a PaymentMethod to its adapter instance.
"""
from typing import Union

from storefront.errors import PaymentValidationError
from storefront.models.payment import PaymentMethod
from storefront.payments.alipay import AlipayProvider
from storefront.payments.base import PaymentProvider
from storefront.payments.nets import NetsProvider
from storefront.payments.paypal import PayPalProvider
from storefront.payments.sessions import PaymentSessionStore


def parse_payment_method(value: Union[str, PaymentMethod, None]) -> PaymentMethod:
    """Parse a client-supplied method name. ``none`` is not selectable."""
    if isinstance(value, PaymentMethod):
        method = value
    else:
        try:
            method = PaymentMethod((value or "").strip().lower())
        except ValueError:
            raise PaymentValidationError("Invalid payment method")
    if method == PaymentMethod.NONE:
        raise PaymentValidationError("Invalid payment method")
    return method


class ProviderRegistry:
    def __init__(self, providers: dict[PaymentMethod, PaymentProvider]):
        self._providers = dict(providers)

    def get(self, method: Union[str, PaymentMethod]) -> PaymentProvider:
        method = parse_payment_method(method)
        provider = self._providers.get(method)
        if provider is None:
            raise PaymentValidationError("Invalid payment method")
        return provider

    def methods(self) -> list[PaymentMethod]:
        return list(self._providers)


def build_provider_registry(settings, session_store: PaymentSessionStore) -> ProviderRegistry:
    return ProviderRegistry(
        {
            PaymentMethod.ALIPAY: AlipayProvider(settings),
            PaymentMethod.PAYPAL: PayPalProvider(settings),
            PaymentMethod.NETS: NetsProvider(settings, session_store),
        }
    )
