# -*- coding: utf-8 -*-
"""
Pytest Configuration for Backend Tests

Common fixtures and setup for FastAPI backend tests.
Environment is set before any storefront import so the cached settings and
the module-level engine pick it up.
"""

import os
import sys
from decimal import Decimal
from pathlib import Path

# Add backend root to path
backend_root = Path(__file__).parent.parent
sys.path.insert(0, str(backend_root))

os.environ.setdefault("JWT_SECRET_KEY", "a" * 64)
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from storefront.config import get_settings

get_settings.cache_clear()

from storefront.database import build_engine, get_db, init_db
from storefront.models.catalog import CartItem, Product
from storefront.models.membership import MembershipPlan, MembershipStatus, UserMembership
from storefront.models.order import Order, OrderStatus
from storefront.models.payment import PaymentMethod
from storefront.models.user import User, UserRole
from storefront.models.voucher import Voucher, VoucherSource, VoucherType
from storefront.payments.base import PaymentCreated, PaymentProvider, PaymentQueryResult
from storefront.payments.registry import ProviderRegistry
from storefront.utils.jwt_handler import create_access_token


class FakeResponse:
    """Stand-in for requests.Response"""

    def __init__(self, payload=None, status_code=200, text=None):
        import json

        self._payload = payload
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(payload if payload is not None else {})

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON")
        return self._payload


class FakeProvider(PaymentProvider):
    """Scriptable adapter: records calls and replays queued query results."""

    def __init__(self, method: PaymentMethod):
        super().__init__(get_settings())
        self.method = method
        self.label = method.value
        self.created = []
        self.queries = []
        self.query_results = [PaymentQueryResult(ok=True, paid=False)]
        self.create_error = None

    def create_payment(self, request):
        if self.create_error is not None:
            raise self.create_error
        self.created.append(request)
        reference = f"REF-{self.method.value}-{len(self.created)}"
        stream_url = None
        if self.method == PaymentMethod.NETS:
            stream_url = f"{request.base_url}/nets/sse/payment-status/{reference}?out_trade_no={request.out_trade_no}"
        return PaymentCreated(
            out_trade_no=request.out_trade_no,
            redirect_url=f"https://gateway.test/{self.method.value}/{request.out_trade_no}",
            provider_reference=reference,
            stream_url=stream_url,
        )

    def query_payment_status(self, out_trade_no, provider_reference=None):
        self.queries.append((out_trade_no, provider_reference))
        result = self.query_results[0] if len(self.query_results) == 1 else self.query_results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def will_return(self, *results):
        self.query_results = list(results)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'storefront.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


class Seed:
    """Row factories for tests"""

    def __init__(self, db):
        self.db = db
        self._counter = 0

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def user(self, username=None, role=UserRole.CUSTOMER, address="1 Test Street"):
        self._counter += 1
        return self._save(User(
            username=username or f"user{self._counter}",
            email=f"user{self._counter}@example.com",
            address=address,
            contact="91234567",
            role=role,
        ))

    def product(self, name="Apple Box", price="15.00", quantity=10, is_active=True):
        return self._save(Product(name=name, price=Decimal(price), quantity=quantity, is_active=is_active))

    def cart(self, user, product, quantity=1):
        return self._save(CartItem(user_id=user.id, product_id=product.id, quantity=quantity))

    def voucher(self, code="SAVE10", user=None, type=VoucherType.PERCENTAGE, value="10",
                min_order="0", max_discount=None, expires_at=None):
        return self._save(Voucher(
            code=code,
            user_id=user.id if user else None,
            type=type,
            value=Decimal(value),
            min_order=Decimal(min_order),
            max_discount=Decimal(max_discount) if max_discount is not None else None,
            source=VoucherSource.ADMIN,
            expires_at=expires_at,
        ))

    def plan(self, name="Gold", price="29.90", duration_days=30, voucher_count=3,
             voucher_type=VoucherType.PERCENTAGE, voucher_value="10"):
        return self._save(MembershipPlan(
            name=name,
            price=Decimal(price),
            duration_days=duration_days,
            voucher_count=voucher_count,
            voucher_type=voucher_type,
            voucher_value=Decimal(voucher_value),
            voucher_min_order=Decimal("0"),
        ))

    def order(self, user, total="40.50", delivery_fee="5.00", status=OrderStatus.PENDING,
              voucher_code=None, subtotal=None, discount="0.00"):
        return self._save(Order(
            user_id=user.id,
            subtotal=Decimal(subtotal or total),
            discount_amount=Decimal(discount),
            total=Decimal(total),
            delivery_fee=Decimal(delivery_fee),
            voucher_code=voucher_code,
            status=status,
        ))

    def membership(self, user, plan, status=MembershipStatus.PENDING):
        return self._save(UserMembership(
            user_id=user.id,
            plan_id=plan.id,
            amount=plan.price,
            status=status,
        ))


@pytest.fixture
def seed(db):
    return Seed(db)


@pytest.fixture
def fake_providers():
    """Registry whose three adapters are FakeProvider instances"""
    providers = {m: FakeProvider(m) for m in (PaymentMethod.ALIPAY, PaymentMethod.PAYPAL, PaymentMethod.NETS)}
    registry = ProviderRegistry(providers)
    registry.fakes = providers
    return registry


async def _no_sleep(seconds):
    return None


@pytest.fixture
def client(session_factory, fake_providers):
    """TestClient on the real app with the test DB and fake providers"""
    from storefront.main import app
    from storefront.payments.notifier import PaymentStatusNotifier

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    saved = (app.state.providers, app.state.notifier)
    app.dependency_overrides[get_db] = override_get_db
    app.state.providers = fake_providers
    app.state.notifier = PaymentStatusNotifier(
        session_factory, fake_providers, timeout_seconds=30, interval_seconds=0, sleep=_no_sleep
    )
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
        app.state.providers, app.state.notifier = saved


@pytest.fixture
def auth_headers():
    def _headers(user):
        token, _, _ = create_access_token(user.id, user.role.value)
        return {"Authorization": f"Bearer {token}"}
    return _headers
