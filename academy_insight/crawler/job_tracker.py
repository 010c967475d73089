"""
수집 작업(CrawlJob) 생명주기 기록.

작업은 running으로 시작해 completed 또는 failed로 정확히 한 번 종료된다.
종료된 작업을 다시 종료하려 하면 JobTransitionError가 발생한다.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from academy_insight.db.connection import get_session
from academy_insight.db.models import CrawlJob, JobStatus
from academy_insight.utils.date_parser import now_kst
from academy_insight.utils.errors import JobTransitionError
from academy_insight.utils.logger import get_logger

logger = get_logger(__name__)

# 오류 메시지 최대 저장 길이
_MAX_ERROR_LENGTH = 2000

_STALE_JOB_ERROR = "작업이 제한 시간 내에 종료되지 않아 실패 처리됨"


class CrawlJobTracker:
    """CrawlJob 행을 생성하고 단일 종료 전이를 수행한다."""

    def __init__(
        self,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] = get_session,
    ) -> None:
        self._session_factory = session_factory

    async def start(self, source_id: int, academy_id: int, keyword: str) -> CrawlJob:
        """running 상태의 작업을 만들고 반환한다."""
        async with self._session_factory() as session:
            job = CrawlJob(
                source_id=source_id,
                academy_id=academy_id,
                keyword=keyword,
                status=JobStatus.RUNNING.value,
                started_at=now_kst(),
            )
            session.add(job)
            await session.flush()
        return job

    async def complete(
        self,
        job: CrawlJob,
        posts_found: int,
        posts_saved: int,
        duplicates_skipped: int,
    ) -> CrawlJob:
        """작업을 completed로 종료하고 집계 수치를 기록한다.

        Raises:
            JobTransitionError: 이미 종료된 작업인 경우.
        """
        completed_at = now_kst()
        await self._finalize(
            job,
            status=JobStatus.COMPLETED.value,
            posts_found=posts_found,
            posts_saved=posts_saved,
            duplicates_skipped=duplicates_skipped,
            completed_at=completed_at,
        )
        job.status = JobStatus.COMPLETED.value
        job.posts_found = posts_found
        job.posts_saved = posts_saved
        job.duplicates_skipped = duplicates_skipped
        job.completed_at = completed_at
        return job

    async def fail(self, job: CrawlJob, error: str) -> CrawlJob:
        """작업을 failed로 종료하고 오류 메시지를 기록한다.

        Raises:
            JobTransitionError: 이미 종료된 작업인 경우.
        """
        message = (error or "unknown error")[:_MAX_ERROR_LENGTH]
        completed_at = now_kst()
        await self._finalize(
            job,
            status=JobStatus.FAILED.value,
            error=message,
            completed_at=completed_at,
        )
        job.status = JobStatus.FAILED.value
        job.error = message
        job.completed_at = completed_at
        return job

    async def _finalize(self, job: CrawlJob, **values: object) -> None:
        """running인 행만 갱신한다. 갱신된 행이 없으면 이미 종료된 것이다."""
        if job.status != JobStatus.RUNNING.value:
            raise JobTransitionError(
                f"CrawlJob {job.id}은(는) 이미 {job.status} 상태입니다"
            )
        async with self._session_factory() as session:
            result = await session.execute(
                update(CrawlJob)
                .where(CrawlJob.id == job.id, CrawlJob.status == JobStatus.RUNNING.value)
                .values(**values)
            )
            if result.rowcount == 0:
                raise JobTransitionError(f"CrawlJob {job.id}은(는) running 상태가 아닙니다")

    async def get(self, job_id: int) -> CrawlJob | None:
        async with self._session_factory() as session:
            return await session.get(CrawlJob, job_id)

    async def fail_stale_jobs(self, older_than: timedelta) -> int:
        """older_than보다 오래 running 상태로 남은 작업을 failed로 정리한다.

        Returns:
            정리된 작업 수.
        """
        cutoff: datetime = now_kst() - older_than
        async with self._session_factory() as session:
            result = await session.execute(
                select(CrawlJob.id).where(
                    CrawlJob.status == JobStatus.RUNNING.value,
                    CrawlJob.started_at < cutoff,
                )
            )
            stale_ids = [row[0] for row in result.all()]
            if not stale_ids:
                return 0
            await session.execute(
                update(CrawlJob)
                .where(CrawlJob.id.in_(stale_ids), CrawlJob.status == JobStatus.RUNNING.value)
                .values(
                    status=JobStatus.FAILED.value,
                    error=_STALE_JOB_ERROR,
                    completed_at=now_kst(),
                )
            )

        logger.warning("오래된 running 작업 %d건을 failed로 정리함", len(stale_ids))
        return len(stale_ids)
