"""
AcademyInsight 크롤러 프로세스 진입점.

설정 검증 → DB 연결 확인 → 수집 스케줄러 시작 → 모니터링 API 서버 실행
순서로 기동하며, SIGINT/SIGTERM 수신 시 스케줄러와 리소스를 정리하고 종료한다.
설정 오류(ConfigurationError)가 있으면 종료 코드 1로 즉시 종료한다.
"""

from __future__ import annotations

import asyncio
import signal
import sys

import uvicorn

from academy_insight.crawler.crawl_scheduler import CrawlScheduler
from academy_insight.crawler.crawler_manager import CrawlerManager
from academy_insight.db.connection import close_db, init_db
from academy_insight.monitoring.analytics_client import TeacherHubClient
from academy_insight.monitoring.api_server import app as api_app
from academy_insight.monitoring.api_server import set_dependencies
from academy_insight.utils.config import get_settings
from academy_insight.utils.errors import ConfigurationError
from academy_insight.utils.logger import get_logger

logger = get_logger(__name__)

# 종료 시퀀스 최대 대기 시간 (초)
_SHUTDOWN_TIMEOUT = 30.0


class CrawlerService:
    """스케줄러, 오케스트레이터, API 서버의 수명을 관리한다."""

    def __init__(self) -> None:
        self.settings = get_settings()
        self.manager: CrawlerManager | None = None
        self.scheduler: CrawlScheduler | None = None
        self.analytics_client: TeacherHubClient | None = None
        self.api_server: uvicorn.Server | None = None
        self.api_server_task: asyncio.Task | None = None

    async def initialize(self) -> None:
        """설정 검증과 DB 확인 후 스케줄러를 시작한다.

        Raises:
            ConfigurationError: 설정 누락, 잘못된 cron, DB 연결 실패.
        """
        self.settings.validate_for_startup()
        await init_db()
        logger.info("Database connection verified")

        self.manager = CrawlerManager(settings=self.settings)
        self.scheduler = CrawlScheduler(manager=self.manager, settings=self.settings)
        self.scheduler.start()

        self.analytics_client = TeacherHubClient(self.settings.teacherhub_api_url)
        set_dependencies(scheduler=self.scheduler, analytics_client=self.analytics_client)

    async def start_api_server(self) -> None:
        """FastAPI 모니터링 서버를 실행한다."""
        config = uvicorn.Config(
            api_app,
            host="0.0.0.0",
            port=self.settings.api_port,
            log_level="info",
        )
        self.api_server = uvicorn.Server(config)
        logger.info("Starting monitoring API server on port %d...", self.settings.api_port)
        await self.api_server.serve()

    async def shutdown(self) -> None:
        if self.scheduler is not None:
            self.scheduler.stop()
        if self.api_server is not None:
            self.api_server.should_exit = True
        if self.api_server_task is not None:
            await asyncio.gather(self.api_server_task, return_exceptions=True)
        if self.manager is not None:
            await self.manager.cleanup()
        if self.analytics_client is not None:
            await self.analytics_client.close()
        await close_db()
        logger.info("Shutdown complete")


async def main() -> int:
    """메인 진입점. 종료 코드를 반환한다."""
    service = CrawlerService()
    shutdown_event = asyncio.Event()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal %s, initiating graceful shutdown...", sig.name)
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    try:
        await service.initialize()
    except ConfigurationError as e:
        logger.error("설정 오류로 시작할 수 없습니다: %s", e)
        await service.shutdown()
        return 1

    service.api_server_task = asyncio.create_task(service.start_api_server())
    service.api_server_task.add_done_callback(lambda _task: shutdown_event.set())

    await shutdown_event.wait()

    logger.info("Running shutdown sequence (timeout=%.0fs)...", _SHUTDOWN_TIMEOUT)
    try:
        await asyncio.wait_for(service.shutdown(), timeout=_SHUTDOWN_TIMEOUT)
    except asyncio.TimeoutError:
        logger.warning("Shutdown timed out after %.0f seconds, forcing exit.", _SHUTDOWN_TIMEOUT)
    return 0


def run() -> None:
    """콘솔 스크립트 진입점."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
