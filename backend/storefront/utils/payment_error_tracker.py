# -*- coding: utf-8 -*-
"""
Payment Error Tracker

Records provider failures and dependent-effect failures so they can be
inspected and replayed by an operator.
"""
import json
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func as sql_func
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from storefront.errors import ConfigError, PaymentError
from storefront.models.payment_error import PaymentErrorLog

logger = logging.getLogger(__name__)


class ErrorType:
    CONFIG = "config"
    TIMEOUT = "timeout"
    GATEWAY_ERROR = "gateway_error"
    NETWORK_ERROR = "network_error"
    DEPENDENT_EFFECT = "dependent_effect"


def classify_payment_error(error: PaymentError) -> str:
    """Map a provider-side PaymentError onto an ErrorType value."""
    if isinstance(error, ConfigError):
        return ErrorType.CONFIG
    message = (error.message or "").lower()
    if "timed out" in message or "timeout" in message:
        return ErrorType.TIMEOUT
    if "request failed" in message:
        return ErrorType.NETWORK_ERROR
    return ErrorType.GATEWAY_ERROR


_SENSITIVE_KEYS = frozenset({
    "private_key", "client_secret", "api_key", "api-key", "password", "token",
    "authorization", "secret", "sign", "qr_code",
})


def _sanitize_context(context: dict | None) -> str | None:
    """Remove sensitive data from context before storing."""
    if not context:
        return None

    sanitized = {}
    for key, value in context.items():
        lower_key = key.lower()
        if any(sensitive in lower_key for sensitive in _SENSITIVE_KEYS):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, str) and len(value) > 100:
            sanitized[key] = value[:100] + "..."
        else:
            sanitized[key] = value

    try:
        return json.dumps(sanitized, ensure_ascii=False, default=str)[:1000]
    except (TypeError, ValueError):
        return None


def _sanitize_message(error_message: str | None) -> str | None:
    if not error_message:
        return None
    safe_message = str(error_message)[:500]
    # Bearer tokens echoed back in gateway errors
    return re.sub(r"Bearer\s+[A-Za-z0-9\-_.=]+", "Bearer [REDACTED]", safe_message)


def record_payment_error(
    db: Session,
    error_type: str,
    error_message: str | None = None,
    provider: str | None = None,
    user_id: int | None = None,
    payable_type: str | None = None,
    payable_id: int | None = None,
    out_trade_no: str | None = None,
    operation: str | None = None,
    context: dict | None = None,
) -> Optional[PaymentErrorLog]:
    """
    Record a payment error.

    Commits on its own; callers must not hold uncommitted work they intend
    to roll back on the same session.

    Returns:
        Created PaymentErrorLog or None on failure
    """
    try:
        error_log = PaymentErrorLog(
            user_id=user_id,
            provider=provider,
            error_type=error_type,
            error_message=_sanitize_message(error_message),
            operation=str(operation)[:100] if operation else None,
            payable_type=payable_type,
            payable_id=payable_id,
            out_trade_no=out_trade_no,
            context=_sanitize_context(context),
        )
        db.add(error_log)
        db.commit()
        db.refresh(error_log)

        logger.info(
            f"[PaymentError] Recorded: type={error_type}, provider={provider}, "
            f"payable={payable_type}:{payable_id}, op={operation}"
        )
        return error_log
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[PaymentError] Failed to record error: {e}")
        return None


def get_recent_errors(
    db: Session,
    provider: str | None = None,
    limit: int = 20,
) -> list[PaymentErrorLog]:
    """Most recent payment errors, optionally for one provider."""
    query = db.query(PaymentErrorLog)
    if provider:
        query = query.filter(PaymentErrorLog.provider == provider)
    return query.order_by(PaymentErrorLog.id.desc()).limit(limit).all()


def get_error_count_by_type(
    db: Session,
    hours: int = 24,
) -> dict[str, int]:
    """
    Count errors per error_type within the last ``hours`` hours.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)

    results = (
        db.query(
            PaymentErrorLog.error_type,
            sql_func.count(PaymentErrorLog.id).label("count")
        )
        .filter(PaymentErrorLog.created_at >= cutoff)
        .group_by(PaymentErrorLog.error_type)
        .all()
    )

    return {row.error_type: row.count for row in results}
