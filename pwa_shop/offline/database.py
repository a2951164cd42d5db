"""
오프라인 런타임 저장소 모델 및 세션 관리

서비스 워커가 프로세스 재시작 후에도 유지해야 하는 상태를 SQLite(aiosqlite)에 저장합니다.
- cache_partitions / cache_entries: 버전별 캐시 파티션과 응답 스냅샷
- local_storage: 클라이언트 키-값 저장소 (cachedProducts 등)
- offline_actions: 온라인 복귀 시 재전송할 요청 큐
- sync_registrations: 등록된 백그라운드 동기화 태그

서버 모델(pwa_shop.models)과 메타데이터를 분리하여 서로의 테이블을 생성하지 않도록 합니다.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    LargeBinary,
    MetaData,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from pwa_shop.utils.logging import get_logger

logger = get_logger(__name__)


class OfflineBase(DeclarativeBase):
    """클라이언트 오프라인 저장소 모델의 기본 클래스"""

    metadata = MetaData()


class CachePartitionRecord(OfflineBase):
    """이름(버전 포함)으로 구분되는 캐시 파티션"""

    __tablename__ = "cache_partitions"

    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )


class CacheEntryRecord(OfflineBase):
    """요청(method + URL) 하나에 대응하는 응답 스냅샷"""

    __tablename__ = "cache_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    partition_name: Mapped[str] = mapped_column(
        String(255), ForeignKey("cache_partitions.name"), nullable=False, index=True
    )
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    headers: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    body: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, default=b"")
    stored_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    __table_args__ = (
        UniqueConstraint("partition_name", "method", "url", name="uq_cache_entry_request"),
    )


class LocalStorageRecord(OfflineBase):
    __tablename__ = "local_storage"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class OfflineActionRecord(OfflineBase):
    """오프라인 중 수행되어 재전송을 기다리는 요청"""

    __tablename__ = "offline_actions"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[Optional[dict]] = mapped_column(JSON(none_as_null=True), nullable=True)
    headers: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    retries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )


class SyncRegistrationRecord(OfflineBase):
    __tablename__ = "sync_registrations"

    tag: Mapped[str] = mapped_column(String(255), primary_key=True)
    registered_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )


class OfflineDatabase:
    """
    오프라인 저장소 엔진/세션 팩토리 래퍼

    Example:
        ```python
        database = OfflineDatabase("sqlite+aiosqlite:///./pwa_cache.db")
        await database.init()
        async with database.session() as session:
            ...
        ```
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.engine: AsyncEngine = self._build_engine(database_url, echo)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @staticmethod
    def _build_engine(database_url: str, echo: bool) -> AsyncEngine:
        if ":memory:" in database_url:
            # 인메모리 DB는 연결마다 별도 DB가 되므로 단일 연결을 공유
            return create_async_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_async_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def init(self) -> None:
        """테이블 생성 (이미 있으면 유지)"""
        async with self.engine.begin() as conn:
            await conn.run_sync(OfflineBase.metadata.create_all)
        logger.debug("Offline storage ready: %s", self.database_url)

    async def dispose(self) -> None:
        await self.engine.dispose()
