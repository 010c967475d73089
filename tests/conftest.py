"""
Shared fixtures: in-memory SQLite engine and seed helpers.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["LOG_DIR"] = ""
os.environ["CRAWL_ENABLED"] = "false"

import pytest
from sqlalchemy.pool import StaticPool

from academy_insight.crawler.base_crawler import BaseStrategy
from academy_insight.db.connection import close_db, configure_engine, get_session
from academy_insight.db.models import Academy, Base, CrawlSource, SourceType
from academy_insight.utils.config import reset_settings


@pytest.fixture
async def db():
    """Fresh in-memory database with all tables created."""
    reset_settings()
    engine = configure_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await close_db()
    await BaseStrategy.close_session()


@pytest.fixture
def make_academy(db):
    async def _make(
        name: str = "에듀윌",
        slug: str | None = None,
        keywords: list[str] | None = None,
        source_types: list[str] | None = None,
        is_active: bool = True,
    ) -> Academy:
        async with get_session() as session:
            academy = Academy(
                name=name,
                slug=slug or name,
                keywords=keywords if keywords is not None else [name],
                is_active=is_active,
            )
            if source_types is not None:
                academy.source_types = source_types
            session.add(academy)
            await session.flush()
        return academy

    return _make


@pytest.fixture
def make_source(db):
    async def _make(
        name: str = "공무원 카페",
        source_type: str = SourceType.NAVER_CAFE.value,
        source_id: str | None = "gongdream",
        url: str | None = "https://cafe.naver.com/gongdream",
        is_active: bool = True,
    ) -> CrawlSource:
        async with get_session() as session:
            source = CrawlSource(
                name=name,
                source_type=source_type,
                source_id=source_id,
                url=url,
                is_active=is_active,
            )
            session.add(source)
            await session.flush()
        return source

    return _make
