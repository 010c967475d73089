"""
Database connection module.
Provides async SQLAlchemy engine and session factory.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from academy_insight.db.models import Base
from academy_insight.utils.config import get_settings
from academy_insight.utils.errors import ConfigurationError

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _build_database_url() -> str:
    url = get_settings().database_url
    if not url:
        raise ConfigurationError(
            "DATABASE_URL 환경변수가 설정되지 않았습니다. "
            ".env 파일에 DATABASE_URL을 반드시 설정하세요."
        )
    return url


def configure_engine(url: str, **engine_kwargs: Any) -> AsyncEngine:
    """Build the singleton engine explicitly from ``url``.

    기존 엔진이 있으면 교체한다 (dispose는 호출자가 close_db로 수행).
    테스트에서는 ``sqlite+aiosqlite:///:memory:`` 와 StaticPool을 넘긴다.
    """
    global _engine, _session_factory
    try:
        _engine = create_async_engine(url, **engine_kwargs)
    except Exception as exc:
        raise ConfigurationError(f"DATABASE_URL이 올바르지 않습니다: {exc}") from exc
    _session_factory = None
    return _engine


def get_engine() -> AsyncEngine:
    """Return the singleton async engine, creating it on first call."""
    global _engine
    if _engine is None:
        configure_engine(
            _build_database_url(),
            echo=get_settings().db_echo,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the singleton session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session with automatic commit/rollback."""
    factory = get_session_factory()
    session = factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db() -> None:
    """Verify database connectivity at startup and create missing tables.

    Raises:
        ConfigurationError: DB에 연결할 수 없는 경우.
    """
    engine = get_engine()
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            await conn.run_sync(Base.metadata.create_all)
    except ConfigurationError:
        raise
    except Exception as exc:
        raise ConfigurationError(f"데이터베이스 연결 실패: {exc}") from exc


async def close_db() -> None:
    """Dispose engine on shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
