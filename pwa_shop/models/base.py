"""
서버 DB 기반 클래스와 세션

엔진은 처음 사용할 때 DATABASE_URL로 생성합니다.
테스트는 get_db 의존성을 덮어써서 자체 엔진을 사용하므로 이 엔진을 만들지 않습니다.
"""

from datetime import datetime
from typing import AsyncGenerator, Optional

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

from pwa_shop.config import get_settings

# 제약 조건 이름 규칙 (마이그레이션 diff가 흔들리지 않도록)
metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)


class Base(DeclarativeBase):
    """서버 모델 (users, notifications) 기본 클래스"""

    metadata = metadata


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    비동기 엔진 생성

    aiosqlite는 풀 크기 옵션을 받지 않으므로 PostgreSQL(asyncpg)일 때만 풀을 설정합니다.
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url, echo=echo, connect_args={"check_same_thread": False}
        )

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    global _engine, _session_factory
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)
        _session_factory = async_sessionmaker(
            _engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )
    return _engine


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """요청 단위 세션 (FastAPI 의존성). 예외가 나면 롤백"""
    get_engine()
    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """테이블 생성 (개발 환경 전용, 운영은 마이그레이션 사용)"""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
