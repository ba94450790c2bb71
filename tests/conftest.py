"""Shared fixtures: in-memory SQLite database, seeded store/affiliate/coupon, HTTP client."""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("DEFAULT_MATURITY_DAYS", "7")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
import uuid

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from affiliate_engine import models  # noqa: F401
from affiliate_engine.database import Base, create_engine_for_url, get_db
from affiliate_engine.main import app
from affiliate_engine.schemas.order import OrderEvent
from affiliate_engine.services.affiliate_service import AffiliateService
from affiliate_engine.services.coupon_service import CouponService
from affiliate_engine.services.order_sync_service import OrderSyncService


@pytest_asyncio.fixture
async def engine():
    engine = create_engine_for_url("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# ==================== Seed data ====================

@pytest_asyncio.fixture
async def store(db):
    return await AffiliateService(db).create_store("Pizzaria Centro", maturity_days=7)


@pytest_asyncio.fixture
async def affiliate(db):
    return await AffiliateService(db).register_affiliate(
        name="Maria Souza",
        email="maria@example.com",
        pix_key="maria@pix.com",
    )


@pytest_asyncio.fixture
async def link(db, store, affiliate):
    """ACTIVE store affiliate with a 10% default commission."""
    service = AffiliateService(db)
    invite = await service.invite_affiliate(
        store_id=store.id,
        affiliate_id=affiliate.id,
        default_commission_type="PERCENTAGE",
        default_commission_value=Decimal("10"),
    )
    return await service.accept_invite(invite.id)


@pytest_asyncio.fixture
async def coupon(db, store, link):
    """Coupon MARIA10 attributed to `link`."""
    service = CouponService(db)
    coupon = await service.create_coupon(store_id=store.id, code="MARIA10", discount_value=Decimal("10"))
    await service.link_coupon(coupon.id, link.id)
    return coupon


def pizza_items():
    """Pizza R$50 (R$5 off) and two sodas R$8 (R$1.60 off)."""
    return [
        {
            "product_id": "PIZZA-1",
            "product_name": "Pizza Calabresa",
            "category": "Pizzas",
            "quantity": 1,
            "unit_price": Decimal("50.00"),
            "line_discount": Decimal("5.00"),
        },
        {
            "product_id": "SODA-1",
            "product_name": "Refrigerante",
            "category": "Bebidas",
            "quantity": 2,
            "unit_price": Decimal("8.00"),
            "line_discount": Decimal("1.60"),
        },
    ]


@pytest.fixture
def ingest(db, store):
    """Send an order event through OrderSyncService."""
    async def _ingest(order_id=None, **fields):
        payload = {
            "order_id": order_id or uuid.uuid4(),
            "store_id": store.id,
            "status": "PENDING",
        }
        payload.update(fields)
        return await OrderSyncService(db).ingest_order_event(OrderEvent(**payload))
    return _ingest


@pytest.fixture
def past():
    """Timestamps far enough back for a 7 day maturity to have elapsed."""
    now = datetime.now(timezone.utc)
    return {
        "created_at": now - timedelta(days=12),
        "delivered_at": now - timedelta(days=10),
    }
