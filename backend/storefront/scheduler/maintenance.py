# -*- coding: utf-8 -*-
"""
Periodic maintenance tasks: membership expiry and payment session purge.
"""

import asyncio
import logging
from typing import Callable, Optional

from storefront.config import get_settings
from storefront.database import SessionLocal
from storefront.payments.sessions import PaymentSessionStore
from storefront.services.memberships import expire_memberships

logger = logging.getLogger(__name__)


def expire_memberships_once(session_factory: Callable = SessionLocal) -> dict:
    """
    Mark lapsed memberships Expired.

    Returns stats for logging/monitoring.
    """
    db = session_factory()
    try:
        expired = expire_memberships(db)
        result = {"expired_memberships": int(expired or 0)}
        logger.info("[Maintenance] Membership expiry completed: %s", result)
        return result
    except Exception:
        db.rollback()
        logger.exception("[Maintenance] Membership expiry failed")
        return {"expired_memberships": 0, "status": "failed"}
    finally:
        db.close()


def run_maintenance_once(session_store: Optional[PaymentSessionStore] = None) -> dict:
    result = expire_memberships_once()
    if session_store is not None:
        result["purged_payment_sessions"] = session_store.purge_expired()
    return result


async def run_maintenance_loop(
    stop_event: asyncio.Event,
    session_store: Optional[PaymentSessionStore] = None,
) -> None:
    """Run maintenance repeatedly until stop_event is set."""
    settings = get_settings()
    interval_minutes = max(5, int(settings.MAINTENANCE_TASK_INTERVAL_MINUTES or 60))
    interval_seconds = interval_minutes * 60

    while not stop_event.is_set():
        run_maintenance_once(session_store)
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue
