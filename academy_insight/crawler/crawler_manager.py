"""
수집 오케스트레이터.

활성 학원 × 키워드 × 활성 소스(트리플)마다 수집 작업을 실행한다.
작업 하나는 소스 종류에 등록된 전략들을 실행하고, 결과를 병합한 뒤
게시글 저장기로 반영하며, 작업 추적기로 생명주기를 기록한다.
한 작업의 실패는 해당 작업만 failed로 남기고 스윕은 계속된다.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import select

from academy_insight.crawler.base_crawler import BaseStrategy, SourceRateLimiter
from academy_insight.crawler.dcinside_crawler import DCInsideGalleryCrawler, GalleryPathDetector
from academy_insight.crawler.job_tracker import CrawlJobTracker
from academy_insight.crawler.merger import (
    MAX_SAMPLE_POSTS,
    count_overlaps,
    generate_sample_posts,
    merge_posts,
)
from academy_insight.crawler.naver_api_crawler import NaverCafeApiCrawler
from academy_insight.crawler.naver_search_crawler import NaverSearchCrawler
from academy_insight.crawler.post_writer import PostWriter, UpsertOutcome
from academy_insight.crawler.raw_post import RawPost, SourceDescriptor
from academy_insight.db.connection import get_session
from academy_insight.db.models import Academy, CrawlJob, CrawlSource, SourceType
from academy_insight.utils.config import Settings, get_settings
from academy_insight.utils.date_parser import now_kst
from academy_insight.utils.logger import get_logger

logger = get_logger(__name__)

# 소스 종류별 전략 (충실도 높은 순). 첫 전략의 결과가 병합 시 우선한다.
_STRATEGY_REGISTRY: dict[str, tuple[type[BaseStrategy], ...]] = {
    SourceType.NAVER_CAFE.value: (NaverSearchCrawler, NaverCafeApiCrawler),
    SourceType.NAVER_CAFE_WEB.value: (NaverSearchCrawler,),
    SourceType.DCINSIDE.value: (DCInsideGalleryCrawler,),
}

# 건수 제한 없이 페이지 상한까지 수집하는 소스 종류
_UNCAPPED_SOURCE_TYPES = frozenset({SourceType.DCINSIDE.value})

# 병합 결과가 비었을 때 샘플 데이터로 대체하는 소스 종류
_SAMPLE_FALLBACK_SOURCE_TYPES = frozenset(
    {SourceType.NAVER_CAFE.value, SourceType.NAVER_CAFE_WEB.value}
)


@dataclass
class AcademySweepSummary:
    academy: str
    total_jobs: int = 0
    completed: int = 0
    total_posts_saved: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "academy": self.academy,
            "total_jobs": self.total_jobs,
            "completed": self.completed,
            "total_posts_saved": self.total_posts_saved,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class SweepResult:
    """한 번의 스윕 결과 집계."""

    started_at: datetime
    finished_at: datetime | None = None
    total_academies: int = 0
    total_jobs: int = 0
    completed: int = 0
    failed: int = 0
    total_posts_found: int = 0
    total_posts_saved: int = 0
    results: list[AcademySweepSummary] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_academies": self.total_academies,
            "total_jobs": self.total_jobs,
            "completed": self.completed,
            "failed": self.failed,
            "total_posts_found": self.total_posts_found,
            "total_posts_saved": self.total_posts_saved,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "results": [summary.to_dict() for summary in self.results],
        }


class CrawlerManager:
    """학원 언급 수집 스윕을 실행하는 오케스트레이터.

    Attributes:
        settings: 수집 관련 설정 (최대 건수, 기간, 동시성, 샘플 폴백).
        writer: 게시글 저장기.
        tracker: 작업 추적기.
        detector: DC인사이드 갤러리 경로 감지기.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        strategies: dict[str, list[BaseStrategy]] | None = None,
        writer: PostWriter | None = None,
        tracker: CrawlJobTracker | None = None,
        detector: GalleryPathDetector | None = None,
        rate_limiter: SourceRateLimiter | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.rate_limiter = rate_limiter or SourceRateLimiter()
        self.writer = writer or PostWriter()
        self.tracker = tracker or CrawlJobTracker()
        self.detector = detector or GalleryPathDetector(rate_limiter=self.rate_limiter)
        self._strategies = strategies if strategies is not None else self._build_strategies()

    def _build_strategies(self) -> dict[str, list[BaseStrategy]]:
        """레지스트리의 전략 클래스를 소스 종류별로 인스턴스화한다 (클래스당 하나)."""
        instances: dict[type[BaseStrategy], BaseStrategy] = {}
        strategies: dict[str, list[BaseStrategy]] = {}
        for source_type, classes in _STRATEGY_REGISTRY.items():
            strategies[source_type] = []
            for cls in classes:
                if cls not in instances:
                    instances[cls] = cls(rate_limiter=self.rate_limiter)
                strategies[source_type].append(instances[cls])
        return strategies

    def get_strategy_status(self) -> dict[str, list[str]]:
        return {
            source_type: [strategy.name for strategy in strategies]
            for source_type, strategies in self._strategies.items()
        }

    def default_date_range(self) -> tuple[date, date]:
        """기본 수집 기간: 오늘 - CRAWL_LOOKBACK_DAYS ~ 오늘 (KST)."""
        today = now_kst().date()
        return today - timedelta(days=self.settings.crawl_lookback_days), today

    async def execute_crawl_job(
        self,
        source: SourceDescriptor,
        keyword: str,
        academy_id: int,
        *,
        max_results: int | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> CrawlJob:
        """트리플 하나에 대한 수집 작업을 실행한다.

        Args:
            source: 수집 소스.
            keyword: 검색 키워드.
            academy_id: 대상 학원 ID.
            max_results: 최대 저장 후보 수. None이면 CRAWL_MAX_RESULTS.
                DC인사이드는 건수 제한 없이 페이지 상한까지 수집한다.
            start_date: 시작일. None이면 기본 기간.
            end_date: 종료일. None이면 오늘.

        Returns:
            종료(completed 또는 failed)된 CrawlJob.
        """
        if start_date is None or end_date is None:
            default_start, default_end = self.default_date_range()
            start_date = start_date or default_start
            end_date = end_date or default_end
        if max_results is None:
            max_results = self.settings.crawl_max_results

        job = await self.tracker.start(source.id, academy_id, keyword)

        try:
            strategies = self._strategies.get(source.source_type)
            if not strategies:
                raise ValueError(f"지원하지 않는 소스 종류입니다: {source.source_type}")

            cap = None if source.source_type in _UNCAPPED_SOURCE_TYPES else max_results
            batches: list[list[RawPost]] = await asyncio.gather(
                *(
                    strategy.safe_search(source, keyword, cap, start_date, end_date)
                    for strategy in strategies
                )
            )
            higher = batches[0]
            lower = [post for batch in batches[1:] for post in batch]
            posts_found = len(higher) + len(lower)

            merged = merge_posts(higher, lower, cap)
            duplicates_skipped = count_overlaps(higher, lower)

            if not merged and self._use_sample_fallback(source):
                sample_count = MAX_SAMPLE_POSTS if cap is None else min(cap, MAX_SAMPLE_POSTS)
                merged = generate_sample_posts(keyword, source, sample_count)
                posts_found = len(merged)
                logger.info(
                    "[%s] '%s' 수집 결과 없음, 샘플 데이터 %d건으로 대체",
                    source.name, keyword, len(merged),
                )

            posts_saved = 0
            for post in merged:
                outcome = await self.writer.upsert(post, source.id, academy_id)
                if outcome == UpsertOutcome.SAVED:
                    posts_saved += 1
                elif outcome in (UpsertOutcome.DUPLICATE, UpsertOutcome.UPDATED):
                    duplicates_skipped += 1

            logger.info(
                "[%s] '%s' => found=%d, merged=%d, saved=%d, dup=%d",
                source.name, keyword, posts_found, len(merged), posts_saved, duplicates_skipped,
            )
            return await self.tracker.complete(job, posts_found, posts_saved, duplicates_skipped)

        except Exception as e:
            logger.error(
                "[%s] '%s' 수집 작업 실패: %s", source.name, keyword, e, exc_info=True
            )
            return await self.tracker.fail(job, str(e) or type(e).__name__)

    def _use_sample_fallback(self, source: SourceDescriptor) -> bool:
        return (
            self.settings.sample_fallback_enabled
            and source.source_type in _SAMPLE_FALLBACK_SOURCE_TYPES
        )

    async def crawl_all(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        source_types: list[str] | None = None,
    ) -> SweepResult:
        """모든 활성 학원 × 키워드 × 활성 소스에 대해 수집을 실행한다.

        Args:
            start_date: 시작일. None이면 오늘 - CRAWL_LOOKBACK_DAYS.
            end_date: 종료일. None이면 오늘.
            source_types: 수집할 소스 종류 제한. None이면 전체.

        Returns:
            SweepResult 집계.
        """
        default_start, default_end = self.default_date_range()
        start_date = start_date or default_start
        end_date = end_date or default_end
        result = SweepResult(started_at=now_kst())

        await self._cleanup_stale_jobs()

        if source_types is None or SourceType.DCINSIDE.value in source_types:
            try:
                await self.detector.detect_all()
            except Exception as e:
                logger.error("갤러리 경로 감지 실패: %s", e, exc_info=True)

        academies, sources = await self._load_targets(source_types)
        result.total_academies = len(academies)
        logger.info(
            "스윕 시작: 기간 %s ~ %s, 학원 %d곳, 소스 %d개",
            start_date, end_date, len(academies), len(sources),
        )

        semaphore = asyncio.Semaphore(max(1, self.settings.crawl_concurrency))

        async def _run_triple(
            academy: Academy, keyword: str, source: SourceDescriptor
        ) -> CrawlJob:
            async with semaphore:
                return await self.execute_crawl_job(
                    source,
                    keyword,
                    academy.id,
                    max_results=self.settings.crawl_max_results,
                    start_date=start_date,
                    end_date=end_date,
                )

        for academy in academies:
            summary = AcademySweepSummary(academy=academy.name)
            result.results.append(summary)
            try:
                triples = [
                    (keyword, source)
                    for keyword in academy.keywords or []
                    for source in sources
                    if academy.monitors(source.source_type)
                ]
                # 작업 기록 자체가 실패해도 나머지 트리플은 끝까지 기다린다
                jobs = await asyncio.gather(
                    *(_run_triple(academy, keyword, source) for keyword, source in triples),
                    return_exceptions=True,
                )
            except Exception as e:
                logger.error("[%s] 학원 수집 실패: %s", academy.name, e, exc_info=True)
                summary.error = str(e)
                continue

            for (keyword, source), job in zip(triples, jobs):
                summary.total_jobs += 1
                result.total_jobs += 1
                if isinstance(job, BaseException):
                    logger.error(
                        "[%s] '%s' 작업 기록 실패: %s", source.name, keyword, job,
                        exc_info=job,
                    )
                    summary.error = str(job) or type(job).__name__
                    result.failed += 1
                    continue
                result.total_posts_found += job.posts_found or 0
                if job.status == "completed":
                    summary.completed += 1
                    summary.total_posts_saved += job.posts_saved
                    result.completed += 1
                    result.total_posts_saved += job.posts_saved
                else:
                    result.failed += 1

            logger.info(
                "[%s] 작업 %d건 (성공 %d), 신규 저장 %d건",
                academy.name, summary.total_jobs, summary.completed, summary.total_posts_saved,
            )

        result.finished_at = now_kst()
        logger.info(
            "스윕 완료: 작업 %d건 (성공 %d, 실패 %d), 발견 %d건, 저장 %d건",
            result.total_jobs, result.completed, result.failed,
            result.total_posts_found, result.total_posts_saved,
        )
        return result

    async def _load_targets(
        self, source_types: list[str] | None
    ) -> tuple[list[Academy], list[SourceDescriptor]]:
        async with get_session() as session:
            academy_rows = await session.execute(
                select(Academy).where(Academy.is_active.is_(True)).order_by(Academy.name)
            )
            academies = list(academy_rows.scalars().all())

            source_query = select(CrawlSource).where(CrawlSource.is_active.is_(True))
            if source_types is not None:
                source_query = source_query.where(CrawlSource.source_type.in_(source_types))
            source_rows = await session.execute(source_query.order_by(CrawlSource.id))
            sources = [SourceDescriptor.from_model(row) for row in source_rows.scalars().all()]

        return academies, sources

    async def _cleanup_stale_jobs(self) -> None:
        minutes = self.settings.stale_job_timeout_minutes
        if minutes <= 0:
            return
        try:
            await self.tracker.fail_stale_jobs(timedelta(minutes=minutes))
        except Exception as e:
            logger.error("오래된 작업 정리 실패: %s", e, exc_info=True)

    async def cleanup(self) -> None:
        """Clean up resources (close shared aiohttp session)."""
        await BaseStrategy.close_session()
        logger.info("CrawlerManager cleanup complete")
