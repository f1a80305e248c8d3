# -*- coding: utf-8 -*-
"""
Payment Session Store

Process-local cache of QR payment sessions keyed by out_trade_no. Sessions
expire lazily after the TTL; a lost or expired session is simply requested
again from the provider. One instance is built at startup and handed to the
NETS adapter.
"""
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentSession:
    out_trade_no: str
    # NETS txn_retrieval_ref
    provider_reference: str
    # Base64 PNG returned by the gateway
    qr_payload: str
    created_at: float = 0.0


@dataclass
class _TokenLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    # callers holding or waiting on the lock
    users: int = 0


class PaymentSessionStore:
    """TTL cache with a per-token lock around session creation."""

    def __init__(self, ttl_seconds: float = 30 * 60, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, PaymentSession] = {}
        self._locks: dict[str, _TokenLock] = {}
        self._guard = threading.Lock()

    def _is_fresh(self, session: PaymentSession) -> bool:
        return self._clock() - session.created_at <= self.ttl_seconds

    def get(self, out_trade_no: str) -> Optional[PaymentSession]:
        with self._guard:
            session = self._sessions.get(out_trade_no)
            if session is None:
                return None
            if not self._is_fresh(session):
                del self._sessions[out_trade_no]
                return None
            return session

    @contextmanager
    def _token_lock(self, out_trade_no: str):
        """Hold the per-token creation lock; the entry is dropped by its last user."""
        with self._guard:
            entry = self._locks.setdefault(out_trade_no, _TokenLock())
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[out_trade_no]

    def get_or_create(
        self, out_trade_no: str, factory: Callable[[], PaymentSession]
    ) -> PaymentSession:
        """
        Return the fresh session for out_trade_no, creating it with factory()
        otherwise. Concurrent callers for the same token wait on one lock, so
        the provider is asked at most once per live session.
        """
        session = self.get(out_trade_no)
        if session is not None:
            return session

        with self._token_lock(out_trade_no):
            session = self.get(out_trade_no)
            if session is not None:
                return session
            session = replace(factory(), created_at=self._clock())
            with self._guard:
                self._sessions[out_trade_no] = session
            logger.info(f"[PaymentSession] Created session for {out_trade_no}")
            return session

    def purge_expired(self) -> int:
        """Drop expired sessions. Returns the number dropped."""
        with self._guard:
            stale = [k for k, s in self._sessions.items() if not self._is_fresh(s)]
            for key in stale:
                del self._sessions[key]
            return len(stale)

    def __len__(self) -> int:
        with self._guard:
            return len(self._sessions)
