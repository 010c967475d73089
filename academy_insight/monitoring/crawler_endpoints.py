"""수집 스케줄러 상태/수동 실행 및 분석 서비스 연결 상태 API 엔드포인트.

엔드포인트 목록:
  GET  /api/crawler/status     - 스케줄러 상태 (마지막 실행 결과 포함)
  POST /api/crawler/run        - 수동 스윕 실행 (single-flight)
  GET  /api/analytics/health   - TeacherHub 연결 상태 및 캐시 통계
  POST /api/analytics/cache/clear - TeacherHub 캐시 초기화
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from academy_insight.monitoring.schemas import (
    AnalyticsHealthResponse,
    CrawlerActionResponse,
    CrawlerStatusResponse,
    ErrorResponse,
)
from academy_insight.utils.logger import get_logger

logger = get_logger(__name__)

crawler_router = APIRouter(prefix="/api/crawler", tags=["crawler"])
analytics_router = APIRouter(prefix="/api/analytics", tags=["analytics"])

# 백그라운드 태스크 참조 집합 (GC 방지)
_background_tasks: set[asyncio.Task] = set()

# ---------------------------------------------------------------------------
# 의존성 레지스트리 -- set_crawler_deps() 호출로 주입된다.
# ---------------------------------------------------------------------------

_scheduler: Any = None
_analytics_client: Any = None


def set_crawler_deps(scheduler: Any = None, analytics_client: Any = None) -> None:
    """CrawlScheduler / TeacherHubClient 인스턴스를 라우터에 주입한다.

    Args:
        scheduler: CrawlScheduler 인스턴스.
        analytics_client: TeacherHubClient 인스턴스.
    """
    global _scheduler, _analytics_client
    _scheduler = scheduler
    _analytics_client = analytics_client


def _not_ready(detail: str, error_code: str) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content=ErrorResponse(detail=detail, error_code=error_code).model_dump(),
    )


@crawler_router.get(
    "/status",
    response_model=CrawlerStatusResponse,
    responses={503: {"model": ErrorResponse}},
)
async def get_crawler_status() -> CrawlerStatusResponse:
    """스케줄러 상태를 반환한다."""
    if _scheduler is None:
        return _not_ready("Crawl scheduler not initialized", "SCHEDULER_NOT_READY")
    return CrawlerStatusResponse(**_scheduler.get_status())


@crawler_router.post(
    "/run",
    response_model=CrawlerActionResponse,
    responses={503: {"model": ErrorResponse}},
)
async def run_crawler() -> CrawlerActionResponse:
    """스윕을 백그라운드로 시작한다.

    이미 실행 중인 경우 {"status": "already_running"}을 반환한다.

    Returns:
        status: "started" 또는 "already_running".
    """
    if _scheduler is None:
        return _not_ready("Crawl scheduler not initialized", "SCHEDULER_NOT_READY")

    if _scheduler.is_running:
        return CrawlerActionResponse(status="already_running")

    task = asyncio.create_task(_scheduler.execute_crawl())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    logger.info("수동 크롤링 시작 요청 접수")
    return CrawlerActionResponse(status="started")


@analytics_router.get(
    "/health",
    response_model=AnalyticsHealthResponse,
    responses={503: {"model": ErrorResponse}},
)
async def get_analytics_health() -> AnalyticsHealthResponse:
    """TeacherHub 연결 상태와 캐시 통계를 반환한다."""
    if _analytics_client is None:
        return _not_ready("Analytics client not initialized", "ANALYTICS_NOT_READY")
    health = await _analytics_client.health_check()
    return AnalyticsHealthResponse(**health, cache=_analytics_client.get_cache_stats())


@analytics_router.post(
    "/cache/clear",
    responses={503: {"model": ErrorResponse}},
)
async def clear_analytics_cache() -> dict:
    if _analytics_client is None:
        return _not_ready("Analytics client not initialized", "ANALYTICS_NOT_READY")
    _analytics_client.clear_cache()
    return {"status": "cleared"}
