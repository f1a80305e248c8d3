import logging
from decimal import Decimal
from functools import lru_cache
from typing import Union
from urllib.parse import urlparse

from pydantic import field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # Database
    DB_HOST: str = "127.0.0.1"
    DB_PORT: int = 3306
    DB_USER: str = "storefront"
    DB_PASSWORD: str = ""
    DB_NAME: str = "storefront"

    # Full SQLAlchemy URL override (e.g. sqlite:///./storefront.db for local runs)
    DATABASE_URL: str = ""

    # JWT
    JWT_SECRET_KEY: str  # Generate with: openssl rand -hex 32
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_HOURS: int = 24

    @field_validator("JWT_SECRET_KEY")
    @classmethod
    def validate_jwt_secret(cls, v):
        """JWT secret must be at least 32 characters for security"""
        if len(v) < 32:
            raise ValueError(
                "JWT_SECRET_KEY must be at least 32 characters. Generate with: openssl rand -hex 32"
            )
        return v

    # Environment
    ENVIRONMENT: str = "development"

    # Public base URL used to build provider return/notify URLs.
    # Required in production; development falls back to the request host.
    APP_BASE_URL: str = ""

    @field_validator("APP_BASE_URL")
    @classmethod
    def validate_app_base_url(cls, v, info):
        """APP_BASE_URL must be an absolute URL, https in production"""
        env = (
            info.data.get("ENVIRONMENT", "development") if info.data else "development"
        )
        v = (v or "").strip().rstrip("/")
        if not v:
            if env == "production":
                raise ValueError("APP_BASE_URL must be configured in production")
            return v
        parsed = urlparse(v)
        if not parsed.scheme or not parsed.hostname:
            raise ValueError("APP_BASE_URL must be an absolute URL")
        if env == "production" and parsed.scheme != "https":
            raise ValueError("APP_BASE_URL must use HTTPS in production")
        return v

    # CORS
    # Use comma-separated list: "https://shop.example.com,https://admin.example.com"
    ALLOWED_ORIGINS: Union[str, list[str]] = "http://localhost:3000"

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_allowed_origins(cls, v):
        """Parse ALLOWED_ORIGINS from string or list"""
        if isinstance(v, str):
            if v == "*":
                logger.warning(
                    "CORS wildcard '*' enabled. Consider restricting for web apps."
                )
                return ["*"]
            if v.startswith("http") and "," not in v:
                return [v]
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # Rate limiting (slowapi)
    RATE_LIMIT_ENABLED: bool = True

    # Outbound payment gateway calls
    PAYMENT_HTTP_TIMEOUT_SECONDS: int = 30

    # Alipay sandbox (page-redirect)
    ALIPAY_GATEWAY: str = "https://openapi-sandbox.dl.alipaydev.com/gateway.do"
    ALIPAY_APP_ID: str = ""
    ALIPAY_PRIVATE_KEY: str = ""
    ALIPAY_SUBJECT: str = "Order Payment"
    ALIPAY_AMOUNT_FACTOR: Decimal = Decimal("1")

    # PayPal sandbox (OAuth + capture)
    PAYPAL_API_BASE: str = "https://api-m.sandbox.paypal.com"
    PAYPAL_CLIENT_ID: str = ""
    PAYPAL_CLIENT_SECRET: str = ""
    PAYPAL_BRAND_NAME: str = "HB Mart"
    PAYPAL_CURRENCY: str = "USD"
    PAYPAL_AMOUNT_FACTOR: Decimal = Decimal("1")

    # NETS sandbox (QR + poll)
    NETS_API_BASE: str = "https://sandbox.nets.openapipaas.com"
    NETS_API_KEY: str = ""
    NETS_PROJECT_ID: str = ""
    NETS_TXN_ID: str = ""
    NETS_AMOUNT_FACTOR: Decimal = Decimal("1")
    NETS_SESSION_TTL_MINUTES: int = 30

    @field_validator("ALIPAY_AMOUNT_FACTOR", "PAYPAL_AMOUNT_FACTOR", "NETS_AMOUNT_FACTOR")
    @classmethod
    def validate_amount_factor(cls, v):
        """Amount factors scale the charged amount and must be positive"""
        if v <= 0:
            raise ValueError("Payment amount factor must be greater than zero")
        return v

    # Live payment status stream (SSE)
    PAYMENT_STREAM_TIMEOUT_SECONDS: int = 600
    PAYMENT_STREAM_INTERVAL_SECONDS: float = 2.0

    # Pricing
    FREE_DELIVERY_THRESHOLD: Decimal = Decimal("60.00")
    DELIVERY_FEE: Decimal = Decimal("5.00")

    # Background maintenance (membership expiry)
    MAINTENANCE_TASK_INTERVAL_MINUTES: int = 60

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
