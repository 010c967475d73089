"""
SQLAlchemy ORM models for the AcademyInsight crawler.

학원(academies), 수집 소스(crawl_sources), 게시글(posts), 수집 작업(crawl_jobs)
네 개의 테이블을 정의한다. 모든 시각은 timezone-aware로 저장한다.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from academy_insight.utils.date_parser import now_kst

# PostgreSQL에서는 JSONB, 그 외(테스트용 SQLite 등)에서는 일반 JSON
_JSON = JSON().with_variant(JSONB(), "postgresql")

UNKNOWN_AUTHOR = "알 수 없음"


class SourceType(str, Enum):
    """수집 소스 종류.

    NAVER_CAFE: 검색 API + 통합검색 페이지 두 전략을 병합한다.
    NAVER_CAFE_WEB: 통합검색 페이지 전략만 사용한다.
    DCINSIDE: 페이지 단위 갤러리 전략을 사용한다.
    """

    NAVER_CAFE = "naver_cafe"
    NAVER_CAFE_WEB = "naver_cafe_web"
    DCINSIDE = "dcinside"


ALL_SOURCE_TYPES: list[str] = [source_type.value for source_type in SourceType]


class JobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Base(DeclarativeBase):
    pass


class Academy(Base):
    __tablename__ = "academies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    keywords: Mapped[list[str]] = mapped_column(_JSON, nullable=False, default=list)
    source_types: Mapped[list[str]] = mapped_column(
        _JSON, nullable=False, default=lambda: list(ALL_SOURCE_TYPES)
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_kst
    )

    posts: Mapped[list["Post"]] = relationship(back_populates="academy")

    __table_args__ = (Index("idx_academies_is_active", "is_active"),)

    def monitors(self, source_type: str) -> bool:
        """이 학원이 해당 소스 종류를 모니터링하는지 여부."""
        return source_type in (self.source_types or ALL_SOURCE_TYPES)


class CrawlSource(Base):
    __tablename__ = "crawl_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_type: Mapped[str] = mapped_column(String(30), nullable=False)
    # 카페 ID 또는 갤러리 ID
    source_id: Mapped[str | None] = mapped_column(String(100))
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    url: Mapped[str | None] = mapped_column(String(500))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_kst
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_kst, onupdate=now_kst
    )

    posts: Mapped[list["Post"]] = relationship(back_populates="source")

    __table_args__ = (
        Index("idx_crawl_sources_type_active", "source_type", "is_active"),
    )


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("crawl_sources.id"), nullable=False
    )
    academy_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("academies.id"), nullable=False
    )
    keyword: Mapped[str] = mapped_column(String(200), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    author: Mapped[str] = mapped_column(
        String(200), nullable=False, default=UNKNOWN_AUTHOR
    )
    # 정규 게시글 URL 또는 synthetic:{source_type}:{sha256} 키
    post_url: Mapped[str] = mapped_column(String(1000), nullable=False, unique=True)
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    collected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_kst
    )
    source_type: Mapped[str] = mapped_column(String(30), nullable=False)
    # 네이버 카페 이름. 갤러리 게시글은 빈 문자열
    cafe_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    cafe_url: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    is_sample: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    academy: Mapped["Academy"] = relationship(back_populates="posts")
    source: Mapped["CrawlSource"] = relationship(back_populates="posts")

    __table_args__ = (
        Index("idx_posts_academy_id", "academy_id"),
        Index("idx_posts_source_id", "source_id"),
        Index("idx_posts_posted_at", "posted_at"),
        Index("idx_posts_collected_at", "collected_at"),
    )


class CrawlJob(Base):
    __tablename__ = "crawl_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("crawl_sources.id"), nullable=False
    )
    academy_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("academies.id"), nullable=False
    )
    keyword: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.RUNNING.value
    )
    posts_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    posts_saved: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duplicates_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error: Mapped[str | None] = mapped_column(Text)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_kst
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_crawl_jobs_status", "status"),
        Index("idx_crawl_jobs_started_at", "started_at"),
    )
