"""
대시보드 읽기 전용 집계 쿼리.

게시 시각(posted_at) 기준으로 오늘/어제/최근 7일 게시글 수를 학원별,
소스별로 집계하고 참여도(조회수 + 댓글수) 상위 게시글을 조회한다.
날짜 경계는 KST 자정 기준이다.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from academy_insight.db.connection import get_session
from academy_insight.db.models import Academy, CrawlSource, Post
from academy_insight.utils.date_parser import KST, now_kst, start_of_day

# 최근 N일 집계 기간
_WEEK_DAYS = 7

# 인기 게시글 기본 개수
_TRENDING_LIMIT = 10


class DayWindows:
    """기준 시각의 오늘/어제/최근 7일 구간 [start, end)."""

    def __init__(self, now: datetime | None = None) -> None:
        current = now or now_kst()
        if current.tzinfo is None:
            current = current.replace(tzinfo=KST)
        self.today_start = start_of_day(current.astimezone(KST).date())
        self.today_end = self.today_start + timedelta(days=1)
        self.yesterday_start = self.today_start - timedelta(days=1)
        self.week_start = self.today_start - timedelta(days=_WEEK_DAYS)


class DashboardQueries:
    """대시보드 집계 쿼리 모음."""

    def __init__(
        self,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] = get_session,
    ) -> None:
        self._session_factory = session_factory

    @staticmethod
    async def _count_by(
        session: AsyncSession, column: Any, start: datetime, end: datetime
    ) -> dict[int, int]:
        rows = await session.execute(
            select(column, func.count(Post.id))
            .where(Post.posted_at >= start, Post.posted_at < end)
            .group_by(column)
        )
        return {key: count for key, count in rows.all()}

    async def get_summary(self, now: datetime | None = None) -> dict[str, Any]:
        """오늘/어제 게시글 수, 오늘 최다 언급 학원과 소스, 활성 학원 수."""
        windows = DayWindows(now)
        async with self._session_factory() as session:
            today_posts = await session.scalar(
                select(func.count(Post.id)).where(
                    Post.posted_at >= windows.today_start, Post.posted_at < windows.today_end
                )
            )
            yesterday_posts = await session.scalar(
                select(func.count(Post.id)).where(
                    Post.posted_at >= windows.yesterday_start,
                    Post.posted_at < windows.today_start,
                )
            )
            academy_counts = await self._count_by(
                session, Post.academy_id, windows.today_start, windows.today_end
            )
            source_counts = await self._count_by(
                session, Post.source_id, windows.today_start, windows.today_end
            )
            active_academies = await session.scalar(
                select(func.count(Academy.id)).where(Academy.is_active.is_(True))
            )

            top_academy = {"name": "-", "count": 0}
            if academy_counts:
                academy_id, count = max(academy_counts.items(), key=lambda item: item[1])
                academy = await session.get(Academy, academy_id)
                top_academy = {"name": academy.name if academy else "-", "count": count}

            top_source = {"name": "-", "source_type": "", "count": 0}
            if source_counts:
                source_id, count = max(source_counts.items(), key=lambda item: item[1])
                source = await session.get(CrawlSource, source_id)
                top_source = {
                    "name": source.name if source else "-",
                    "source_type": source.source_type if source else "",
                    "count": count,
                }

        return {
            "today_posts": today_posts or 0,
            "yesterday_posts": yesterday_posts or 0,
            "top_academy": top_academy,
            "top_source": top_source,
            "active_academies": active_academies or 0,
        }

    async def get_academy_ranking(self, now: datetime | None = None) -> list[dict[str, Any]]:
        """활성 학원별 오늘/어제/7일 게시글 수. 오늘 건수 내림차순."""
        windows = DayWindows(now)
        async with self._session_factory() as session:
            today = await self._count_by(
                session, Post.academy_id, windows.today_start, windows.today_end
            )
            yesterday = await self._count_by(
                session, Post.academy_id, windows.yesterday_start, windows.today_start
            )
            week = await self._count_by(
                session, Post.academy_id, windows.week_start, windows.today_end
            )
            academies = (
                await session.execute(select(Academy).where(Academy.is_active.is_(True)))
            ).scalars().all()

        ranking = [
            {
                "id": academy.id,
                "name": academy.name,
                "today_count": today.get(academy.id, 0),
                "yesterday_count": yesterday.get(academy.id, 0),
                "week_count": week.get(academy.id, 0),
                "change": today.get(academy.id, 0) - yesterday.get(academy.id, 0),
            }
            for academy in academies
        ]
        ranking.sort(key=lambda item: item["today_count"], reverse=True)
        return ranking

    async def get_source_activity(self, now: datetime | None = None) -> list[dict[str, Any]]:
        """활성 소스별 오늘/어제 게시글 수, 증감률(%), 7일 일평균."""
        windows = DayWindows(now)
        async with self._session_factory() as session:
            today = await self._count_by(
                session, Post.source_id, windows.today_start, windows.today_end
            )
            yesterday = await self._count_by(
                session, Post.source_id, windows.yesterday_start, windows.today_start
            )
            week = await self._count_by(
                session, Post.source_id, windows.week_start, windows.today_end
            )
            sources = (
                await session.execute(select(CrawlSource).where(CrawlSource.is_active.is_(True)))
            ).scalars().all()

        activity = []
        for source in sources:
            today_count = today.get(source.id, 0)
            yesterday_count = yesterday.get(source.id, 0)
            if yesterday_count > 0:
                change_rate = round((today_count - yesterday_count) / yesterday_count * 100)
            else:
                change_rate = 100 if today_count > 0 else 0
            activity.append(
                {
                    "id": source.id,
                    "name": source.name,
                    "source_type": source.source_type,
                    "today_count": today_count,
                    "yesterday_count": yesterday_count,
                    "change_rate": change_rate,
                    "week_avg": round(week.get(source.id, 0) / _WEEK_DAYS, 1),
                }
            )
        activity.sort(key=lambda item: item["today_count"], reverse=True)
        return activity

    async def get_trending_posts(
        self, now: datetime | None = None, limit: int = _TRENDING_LIMIT
    ) -> list[dict[str, Any]]:
        """최근 7일 게시글 중 참여도(조회수 + 댓글수) 상위 limit건."""
        windows = DayWindows(now)
        engagement = (Post.view_count + Post.comment_count).label("engagement")
        async with self._session_factory() as session:
            rows = await session.execute(
                select(Post, engagement, Academy.name, CrawlSource.name, CrawlSource.source_type)
                .outerjoin(Academy, Post.academy_id == Academy.id)
                .outerjoin(CrawlSource, Post.source_id == CrawlSource.id)
                .where(Post.posted_at >= windows.week_start, Post.posted_at < windows.today_end)
                .order_by(engagement.desc(), Post.id)
                .limit(limit)
            )
            results = rows.all()

        return [
            {
                "id": post.id,
                "title": post.title,
                "author": post.author,
                "post_url": post.post_url,
                "view_count": post.view_count,
                "comment_count": post.comment_count,
                "engagement": score,
                "posted_at": post.posted_at.isoformat() if post.posted_at else None,
                "academy_name": academy_name,
                "source_name": source_name,
                "source_type": source_type,
                "cafe_name": post.cafe_name or None,
            }
            for post, score, academy_name, source_name, source_type in results
        ]
