"""
일일 수집 스케줄러.

APScheduler의 cron 트리거로 CrawlerManager.crawl_all을 주기적으로 실행한다.
한 번에 하나의 스윕만 실행되며(single-flight), 실행 중에 들어온 트리거는
대기열에 넣지 않고 건너뛴다.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from academy_insight.crawler.crawler_manager import CrawlerManager, SweepResult
from academy_insight.utils.config import Settings, get_settings
from academy_insight.utils.date_parser import now_kst
from academy_insight.utils.errors import ConfigurationError
from academy_insight.utils.logger import get_logger

logger = get_logger(__name__)

_JOB_ID = "daily_crawl"


def build_trigger(expression: str, timezone: str) -> CronTrigger:
    """crontab 표현식으로 트리거를 만든다.

    Raises:
        ConfigurationError: 표현식이나 타임존이 잘못된 경우.
    """
    try:
        return CronTrigger.from_crontab(expression, timezone=timezone)
    except (ValueError, KeyError) as exc:
        raise ConfigurationError(f"잘못된 cron 표현식입니다: {expression!r} ({exc})") from exc


class CrawlScheduler:
    """cron 주기로 스윕을 실행하고 마지막 실행 상태를 보관한다.

    Attributes:
        is_running: 스윕 실행 중 여부.
        last_run: 마지막으로 성공한 스윕의 종료 시각.
        last_result: 마지막으로 성공한 스윕 결과.
        last_error: 마지막 실패 메시지. 성공하면 None으로 초기화된다.
    """

    def __init__(
        self,
        manager: CrawlerManager | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.manager = manager or CrawlerManager(settings=self.settings)
        self._scheduler: AsyncIOScheduler | None = None
        self.is_running: bool = False
        self.last_run: datetime | None = None
        self.last_result: SweepResult | None = None
        self.last_error: str | None = None

    def start(self) -> None:
        """cron 작업을 등록하고 스케줄러를 시작한다.

        CRAWL_ENABLED=false이면 아무것도 하지 않는다.

        Raises:
            ConfigurationError: CRAWL_SCHEDULE이 잘못된 경우.
        """
        if not self.settings.crawl_enabled:
            logger.info("[Scheduler] 크롤링 스케줄러 비활성화 (CRAWL_ENABLED=false)")
            return
        if self._scheduler is not None and self._scheduler.running:
            return

        trigger = build_trigger(self.settings.crawl_schedule, self.settings.crawl_timezone)

        self._scheduler = AsyncIOScheduler(
            timezone=self.settings.crawl_timezone,
            job_defaults={"coalesce": True, "max_instances": 1},
        )
        self._scheduler.add_job(
            self.execute_crawl,
            trigger=trigger,
            id=_JOB_ID,
            name="AcademyInsight daily crawl",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "[Scheduler] 크롤링 스케줄 등록: %s (%s), 다음 실행: %s",
            self.settings.crawl_schedule, self.settings.crawl_timezone, self.next_run_time(),
        )

    async def execute_crawl(self) -> SweepResult | None:
        """스윕을 한 번 실행한다.

        Returns:
            SweepResult. 이미 실행 중이거나 스윕이 실패하면 None.
        """
        if self.is_running:
            logger.info("[Scheduler] 이전 크롤링이 아직 실행 중 - 건너뜀")
            return None

        self.is_running = True
        started = time.monotonic()
        logger.info("[Scheduler] 일일 크롤링 시작: %s", now_kst().isoformat())

        try:
            result = await self.manager.crawl_all()
        except Exception as e:
            self.last_error = str(e) or type(e).__name__
            logger.error("[Scheduler] 크롤링 실패: %s", e, exc_info=True)
            return None
        finally:
            self.is_running = False

        self.last_run = now_kst()
        self.last_result = result
        self.last_error = None

        logger.info(
            "[Scheduler] 크롤링 완료 (%.1f초), 학원 %d개 처리",
            time.monotonic() - started, result.total_academies,
        )
        for summary in result.results:
            if summary.error:
                logger.info("[Scheduler]   %s: 오류 - %s", summary.academy, summary.error)
            else:
                logger.info(
                    "[Scheduler]   %s: %d개 저장, %d/%d 완료",
                    summary.academy, summary.total_posts_saved,
                    summary.completed, summary.total_jobs,
                )
        return result

    def stop(self) -> None:
        """스케줄러를 중지한다. 실행 중인 스윕은 기다리지 않는다."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("[Scheduler] 스케줄러 중지")
        self._scheduler = None

    def next_run_time(self) -> datetime | None:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(_JOB_ID)
        return job.next_run_time if job is not None else None

    def get_status(self) -> dict[str, Any]:
        next_run = self.next_run_time()
        return {
            "enabled": self.settings.crawl_enabled,
            "schedule": self.settings.crawl_schedule,
            "timezone": self.settings.crawl_timezone,
            "is_running": self.is_running,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "last_error": self.last_error,
            "next_run": next_run.isoformat() if next_run else None,
        }
