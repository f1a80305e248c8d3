from decimal import Decimal

import pytest
from pydantic import ValidationError

from storefront.config import Settings


def _required_base_env() -> dict:
    return {
        "DB_USER": "test",
        "DB_PASSWORD": "test",
        "DB_HOST": "127.0.0.1",
        "DB_NAME": "test_db",
        "JWT_SECRET_KEY": "a" * 64,
    }


def test_short_jwt_secret_rejected():
    """JWT secrets shorter than 32 characters are rejected"""
    kwargs = _required_base_env()
    kwargs["JWT_SECRET_KEY"] = "short"

    with pytest.raises(ValidationError):
        Settings(**kwargs)


def test_production_requires_app_base_url():
    """Production requires APP_BASE_URL"""
    kwargs = _required_base_env()
    kwargs.update({"ENVIRONMENT": "production", "APP_BASE_URL": ""})

    with pytest.raises(ValidationError):
        Settings(**kwargs)


def test_production_requires_https_base_url():
    """Production requires an https base URL"""
    kwargs = _required_base_env()
    kwargs.update({"ENVIRONMENT": "production", "APP_BASE_URL": "http://shop.example.com"})

    with pytest.raises(ValidationError):
        Settings(**kwargs)


def test_base_url_must_be_absolute():
    """APP_BASE_URL must include a scheme"""
    kwargs = _required_base_env()
    kwargs.update({"ENVIRONMENT": "development", "APP_BASE_URL": "shop.example.com"})

    with pytest.raises(ValidationError):
        Settings(**kwargs)


def test_production_accepts_valid_configuration():
    """A complete production configuration loads"""
    kwargs = _required_base_env()
    kwargs.update({"ENVIRONMENT": "production", "APP_BASE_URL": "https://shop.example.com/"})

    settings = Settings(**kwargs)
    assert settings.ENVIRONMENT == "production"
    assert settings.APP_BASE_URL == "https://shop.example.com"


def test_amount_factor_must_be_positive():
    """Amount factors must be positive"""
    kwargs = _required_base_env()
    kwargs["NETS_AMOUNT_FACTOR"] = "0"

    with pytest.raises(ValidationError):
        Settings(**kwargs)


def test_amount_factor_and_pricing_defaults():
    """Amount factors and pricing have sensible defaults"""
    settings = Settings(**_required_base_env())
    assert settings.ALIPAY_AMOUNT_FACTOR == Decimal("1")
    assert settings.FREE_DELIVERY_THRESHOLD == Decimal("60.00")
    assert settings.DELIVERY_FEE == Decimal("5.00")
    assert settings.NETS_SESSION_TTL_MINUTES == 30
    assert settings.PAYMENT_STREAM_TIMEOUT_SECONDS == 600


def test_allowed_origins_comma_separated():
    """ALLOWED_ORIGINS accepts a comma separated list"""
    kwargs = _required_base_env()
    kwargs["ALLOWED_ORIGINS"] = "https://a.example.com, https://b.example.com"

    settings = Settings(**kwargs)
    assert settings.ALLOWED_ORIGINS == ["https://a.example.com", "https://b.example.com"]
