import os
import tempfile
from datetime import datetime, timedelta, timezone
from itertools import count

# Settings are read at import time, so they must be in place before any app module loads
_DB_PATH = os.path.join(tempfile.gettempdir(), f"store-backend-tests-{os.getpid()}.db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_PATH}"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")
os.environ["OTEL_ENABLED"] = "0"
os.environ["ORDER_RATE_LIMIT"] = "1000/minute"

import pytest

from shared.config.database import AsyncSessionLocal, Base, engine
from services.product_service import models as product_models  # noqa: F401
from services.coupon_service import models as coupon_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401
from services.coupon_service.schemas import CouponCreate
from services.coupon_service.service import CouponService
from services.orchestrator.pipeline import OrderPipeline
from services.order_service.schemas import OrderCreate
from services.product_service.models import Product
from services.product_service.schemas import ProductCreate
from services.product_service.service import ProductService
from services.realtime_service.bus import EventBus

_skus = count(1)

ADDRESS = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "address1": "12 Analytical Way",
    "city": "London",
    "state": "LDN",
    "zip_code": "N1 9GU",
    "country": "GB",
}


@pytest.fixture(autouse=True)
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Pooled aiosqlite connections are bound to this test's event loop
    await engine.dispose()


@pytest.fixture
async def db():
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def pipeline(bus):
    return OrderPipeline(bus)


@pytest.fixture
def make_product(db):
    async def _make(**overrides) -> Product:
        fields = {
            "name": f"Product {next(_skus)}",
            "sku": f"SKU-{next(_skus)}",
            "price": 10.0,
            "stock": 10,
            "low_stock_threshold": 2,
        }
        fields.update(overrides)
        return await ProductService.create_product(db, ProductCreate(**fields))
    return _make


@pytest.fixture
def make_coupon(db):
    async def _make(**overrides):
        now = datetime.now(timezone.utc)
        fields = {
            "code": "SAVE10",
            "name": "Save ten percent",
            "discount_type": "percentage",
            "discount_value": 10,
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=30),
        }
        fields.update(overrides)
        return await CouponService.create_coupon(db, CouponCreate(**fields))
    return _make


def order_request(*lines, coupon_code=None, **extra) -> OrderCreate:
    """lines are (product_id, quantity) pairs."""
    return OrderCreate(
        items=[{"product_id": product_id, "quantity": quantity} for product_id, quantity in lines],
        shipping_address=ADDRESS,
        payment_method="credit_card",
        coupon_code=coupon_code,
        **extra,
    )


async def fetch_product(product_id: int) -> Product:
    async with AsyncSessionLocal() as session:
        return await session.get(Product, product_id)


async def fetch_coupon(code: str):
    async with AsyncSessionLocal() as session:
        return await CouponService.get_by_code(session, code)
