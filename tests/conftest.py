"""
Pytest configuration and shared fixtures
"""

import pytest
import pytest_asyncio
from datetime import timedelta
from typing import AsyncGenerator, Callable, Optional
from uuid import uuid4

import httpx
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from pwa_shop.config import TestSettings
from pwa_shop.main import app
from pwa_shop.models import Base
from pwa_shop.models.user import User
from pwa_shop.offline.cache_storage import CacheStorage
from pwa_shop.offline.clients import Clients
from pwa_shop.offline.database import OfflineDatabase
from pwa_shop.offline.local_storage import LocalStorage
from pwa_shop.offline.worker import ServiceWorker
from pwa_shop.utils.security import JWTManager


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ========================================
# 서버 (알림 API)
# ========================================


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    Uses in-memory SQLite database for fast test execution.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing FastAPI endpoints.
    Override the database dependency to use the test database.
    """
    from pwa_shop.models.base import get_db

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def make_user(db_session: AsyncSession) -> Callable:
    """
    Factory fixture that inserts a user.
    """

    async def _make_user(
        email: str,
        role: str = "customer",
        push_subscription: Optional[dict] = None,
        **fields,
    ) -> User:
        user = User(
            id=uuid4(),
            email=email,
            name=email.split("@")[0],
            role=role,
            status=fields.pop("status", "active"),
            push_subscription=push_subscription,
            **fields,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make_user


@pytest_asyncio.fixture(scope="function")
async def test_user(make_user) -> User:
    """
    Create a test user for authentication.
    """
    return await make_user("test@example.com")


@pytest_asyncio.fixture(scope="function")
async def admin_user(make_user) -> User:
    return await make_user("admin@example.com", role="admin")


def make_auth_headers(user: User) -> dict:
    """앱과 같은 SECRET_KEY로 서명한 access token 헤더"""
    token = JWTManager.create_access_token(
        str(user.id), role=user.role, email=user.email, expires_delta=timedelta(hours=24)
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def headers_for() -> Callable:
    """사용자별 인증 헤더 팩토리"""
    return make_auth_headers


@pytest.fixture(scope="function")
def auth_headers(test_user: User) -> dict:
    return make_auth_headers(test_user)


@pytest.fixture(scope="function")
def admin_headers(admin_user: User) -> dict:
    return make_auth_headers(admin_user)


@pytest.fixture(scope="function")
def subscription_info() -> dict:
    return {
        "endpoint": "https://fcm.googleapis.com/fcm/send/test-endpoint",
        "keys": {"p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA", "auth": "tBHItJI5svbpez7KI4CCXg"},
    }


# ========================================
# 오프라인 런타임 (서비스 워커)
# ========================================


class FakeNetwork(httpx.MockTransport):
    """
    Mock network that counts requests and can be switched offline.
    """

    def __init__(self):
        super().__init__(self._handle)
        self.online = True
        self.requests: list[httpx.Request] = []
        self._routes: dict[str, dict] = {}

    def add(self, path: str, status_code: int = 200, **response_kwargs) -> None:
        self._routes[path] = {"status_code": status_code, **response_kwargs}

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.online:
            raise httpx.ConnectError("Network is unreachable", request=request)

        route = self._routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, request=request)
        return httpx.Response(request=request, **route)


@pytest.fixture(scope="function")
def test_settings() -> TestSettings:
    return TestSettings()


@pytest_asyncio.fixture(scope="function")
async def offline_db() -> AsyncGenerator[OfflineDatabase, None]:
    database = OfflineDatabase(TEST_DATABASE_URL)
    await database.init()
    yield database
    await database.dispose()


@pytest.fixture(scope="function")
def network(test_settings: TestSettings) -> FakeNetwork:
    """
    Network serving every pre-cached URL with 200.
    """
    fake = FakeNetwork()
    for url in test_settings.PRECACHE_URLS:
        fake.add(url, content=f"asset:{url}".encode(), headers={"content-type": "text/plain"})
    fake.add(
        test_settings.OFFLINE_PAGE,
        content=b"<html><body>You are offline</body></html>",
        headers={"content-type": "text/html"},
    )
    return fake


@pytest.fixture(scope="function")
def caches(offline_db: OfflineDatabase, test_settings: TestSettings) -> CacheStorage:
    return CacheStorage(offline_db, test_settings.APP_ORIGIN)


@pytest.fixture(scope="function")
def local_storage(offline_db: OfflineDatabase) -> LocalStorage:
    return LocalStorage(offline_db)


@pytest.fixture(scope="function")
def clients() -> Clients:
    return Clients()


@pytest_asyncio.fixture(scope="function")
async def worker(
    offline_db: OfflineDatabase,
    network: FakeNetwork,
    clients: Clients,
    test_settings: TestSettings,
) -> AsyncGenerator[ServiceWorker, None]:
    service_worker = ServiceWorker(offline_db, network, clients, settings=test_settings)
    yield service_worker
    await service_worker.transport.drain()
