"""
게시글 저장기 (중복 방지 + 조회수/댓글수 갱신).

정규 게시글 URL(없으면 결정적인 synthetic 키)로 기존 게시글을 찾고,
없으면 새로 저장하며 있으면 조회수/댓글수가 늘어난 경우에만 갱신한다.
posts.post_url의 유니크 제약이 동시 저장 경합의 최종 판정자다.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from enum import Enum

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from academy_insight.crawler.raw_post import RawPost
from academy_insight.db.connection import get_session
from academy_insight.db.models import UNKNOWN_AUTHOR, Post
from academy_insight.utils.logger import get_logger

logger = get_logger(__name__)

_SYNTHETIC_PREFIX = "synthetic"


class UpsertOutcome(str, Enum):
    """게시글 저장 결과.

    SAVED: 새 게시글 저장.
    UPDATED: 기존 게시글의 조회수/댓글수 상향 갱신.
    DUPLICATE: 이미 저장된 게시글 (변경 없음).
    ERROR: 저장 실패 (로그만 남기고 작업은 계속).
    """

    SAVED = "saved"
    UPDATED = "updated"
    DUPLICATE = "duplicate"
    ERROR = "error"


def canonical_key(candidate: RawPost) -> str:
    """저장 키를 계산한다. URL이 없으면 제목과 게시 시각의 sha256으로 만든다."""
    if candidate.url:
        return candidate.url
    posted = candidate.posted_at.isoformat() if candidate.posted_at else candidate.posted_at_raw
    digest = hashlib.sha256(f"{candidate.title}|{posted}".encode("utf-8")).hexdigest()
    return f"{_SYNTHETIC_PREFIX}:{candidate.source_type}:{digest}"


class PostWriter:
    """RawPost 후보를 posts 테이블에 멱등적으로 반영한다."""

    def __init__(
        self,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] = get_session,
    ) -> None:
        self._session_factory = session_factory

    async def upsert(self, candidate: RawPost, source_id: int, academy_id: int) -> UpsertOutcome:
        """후보 하나를 저장하거나 카운트를 갱신한다.

        Args:
            candidate: 저장할 후보.
            source_id: crawl_sources.id.
            academy_id: academies.id.

        Returns:
            UpsertOutcome. 어떤 경우에도 예외를 던지지 않는다.
        """
        post_url = canonical_key(candidate)
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(Post).where(Post.post_url == post_url))
                existing = result.scalar_one_or_none()

                if existing is not None:
                    if (
                        candidate.view_count > existing.view_count
                        or candidate.comment_count > existing.comment_count
                    ):
                        existing.view_count = max(existing.view_count, candidate.view_count)
                        existing.comment_count = max(
                            existing.comment_count, candidate.comment_count
                        )
                        return UpsertOutcome.UPDATED
                    return UpsertOutcome.DUPLICATE

                session.add(
                    Post(
                        source_id=source_id,
                        academy_id=academy_id,
                        keyword=candidate.keyword,
                        title=candidate.title[:500],
                        content=candidate.content or "",
                        author=candidate.author or UNKNOWN_AUTHOR,
                        post_url=post_url,
                        view_count=candidate.view_count,
                        comment_count=candidate.comment_count,
                        posted_at=candidate.posted_at,
                        collected_at=candidate.collected_at,
                        source_type=candidate.source_type,
                        cafe_name=candidate.cafe_name[:200],
                        cafe_url=candidate.cafe_url[:500],
                        is_sample=candidate.is_sample,
                    )
                )
            return UpsertOutcome.SAVED
        except IntegrityError:
            logger.debug("게시글 저장 경합 (이미 존재): %s", post_url)
            return UpsertOutcome.DUPLICATE
        except Exception as e:
            logger.error("게시글 저장 실패 (%s): %s", post_url, e)
            return UpsertOutcome.ERROR
