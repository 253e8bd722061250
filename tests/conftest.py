import os

# 必须在导入应用之前设置
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DEBUG"] = "true"
os.environ["APP_URL"] = "https://flycloth.my"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["EASYPARCEL_API_KEY"] = ""
os.environ["ALERT_EMAIL_TO"] = ""

from decimal import Decimal  # noqa: E402
from uuid import uuid4  # noqa: E402

import fakeredis  # noqa: E402
import pytest  # noqa: E402
from fakeredis import aioredis as fake_aioredis  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from flycloth.core.redis_client import get_redis_pool  # noqa: E402
from flycloth.core.security import create_access_token, get_password_hash  # noqa: E402
from flycloth.db.base import Base  # noqa: E402
from flycloth.db.session import get_db  # noqa: E402
from flycloth.main import app  # noqa: E402
from flycloth.models.order import Order, OrderItem, OrderStatusEnum, PaymentStatusEnum  # noqa: E402
from flycloth.models.product import FitEnum, Product, ProductVariant  # noqa: E402
from flycloth.models.user import User, UserRoleEnum  # noqa: E402
from flycloth.utils import messaging  # noqa: E402
from flycloth.utils.rate_limit import admin_rate_limiter, checkout_rate_limiter, webhook_rate_limiter  # noqa: E402

PASSWORD = "correct-horse-42"
PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def redis():
    client = fake_aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.flushall()


@pytest.fixture
async def client(session_factory, redis):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis_pool():
        return redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis_pool] = override_get_redis_pool
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def sent_alerts(monkeypatch):
    """拦截发往RabbitMQ的低库存预警"""
    alerts = []

    async def fake_send_alert_to_queue(alert_data: dict) -> None:
        alerts.append(alert_data)

    monkeypatch.setattr(messaging, "send_alert_to_queue", fake_send_alert_to_queue)
    return alerts


@pytest.fixture(autouse=True)
def reset_rate_limiters():
    for limiter in (checkout_rate_limiter, webhook_rate_limiter, admin_rate_limiter):
        limiter.clear()
    yield


async def _create_user(db, email: str, role: UserRoleEnum = UserRoleEnum.USER, full_name: str = None) -> User:
    user = User(email=email, password=PASSWORD_HASH, full_name=full_name, role=role)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def _auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(subject=user.id)}"}


@pytest.fixture
async def user(db):
    return await _create_user(db, "aina@flycloth.my", full_name="Aina Rahman")


@pytest.fixture
async def other_user(db):
    return await _create_user(db, "wei@flycloth.my", full_name="Tan Wei")


@pytest.fixture
async def admin(db):
    return await _create_user(db, "admin@flycloth.my", role=UserRoleEnum.ADMIN, full_name="Store Admin")


@pytest.fixture
def user_headers(user):
    return _auth_headers(user)


@pytest.fixture
def other_user_headers(other_user):
    return _auth_headers(other_user)


@pytest.fixture
def admin_headers(admin):
    return _auth_headers(admin)


@pytest.fixture
def make_product(db):
    """创建商品及规格，variants 为 (尺码, 版型, 库存) 列表"""

    async def _make(name: str = "Heavyweight Tee", base_price: str = "20.00",
                    variants=(("M", FitEnum.REGULAR, 30),), featured: bool = False, is_active: bool = True,
                    category_id: int = None, gsm: int = None, description: str = "") -> Product:
        product = Product(
            name=name,
            sku=f"FC-{uuid4().hex[:8]}",
            description=description,
            base_price=Decimal(base_price),
            featured=featured,
            is_active=is_active,
            category_id=category_id,
            variants=[
                ProductVariant(size=size, fit=fit, gsm=gsm, price=Decimal(base_price), stock_quantity=stock)
                for size, fit, stock in variants
            ],
        )
        db.add(product)
        await db.commit()
        return product

    return _make


@pytest.fixture
def make_order(db):
    """直接落库一笔订单，用于评价、后台和运单测试"""

    async def _make(user: User, product: Product, quantity: int = 1,
                    status: OrderStatusEnum = OrderStatusEnum.PAID,
                    shipping_address: dict = None) -> Order:
        variant = product.variants[0]
        order = Order(
            order_sn=f"SN{uuid4().hex[:12]}",
            user_id=user.id,
            status=status,
            payment_status=PaymentStatusEnum.PAID,
            total_amount=variant.price * quantity,
            shipping_address=shipping_address,
            payment_method="card",
            stripe_session_id=f"cs_test_{uuid4().hex[:10]}",
            items=[
                OrderItem(
                    variant_id=variant.id,
                    product_id=product.id,
                    product_name=product.name,
                    variant_info=variant.variant_info,
                    quantity=quantity,
                    unit_price=variant.price,
                )
            ],
        )
        db.add(order)
        await db.commit()
        return order

    return _make
