"""
FastAPI monitoring backend for the AcademyInsight crawler.

이 모듈은 FastAPI 앱 인스턴스, 라이프사이클, 미들웨어, 의존성 주입 허브만
담당한다. REST 엔드포인트는 crawler_endpoints / dashboard_endpoints 라우터에
분산되어 있다.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from academy_insight import __version__
from academy_insight.monitoring.crawler_endpoints import (
    analytics_router,
    crawler_router,
    set_crawler_deps,
)
from academy_insight.monitoring.dashboard_endpoints import dashboard_router, set_dashboard_deps
from academy_insight.monitoring.schemas import ErrorResponse
from academy_insight.utils.logger import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Global service registry -- populated at startup via set_dependencies()
# ---------------------------------------------------------------------------

_deps: dict[str, Any] = {}
_startup_time: float = time.monotonic()


def set_dependencies(
    scheduler: Any = None,
    analytics_client: Any = None,
    dashboard_queries: Any = None,
) -> None:
    """Inject runtime dependencies from the main application.

    Missing dependencies cause the corresponding endpoints to return 503.

    Args:
        scheduler: CrawlScheduler 인스턴스.
        analytics_client: TeacherHubClient 인스턴스.
        dashboard_queries: DashboardQueries 인스턴스. None이면 기본값.
    """
    _deps["analytics_client"] = analytics_client
    set_crawler_deps(scheduler=scheduler, analytics_client=analytics_client)
    set_dashboard_deps(dashboard_queries)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[type-arg]
    """Startup / shutdown lifecycle handler.

    DB와 스케줄러의 수명은 main이 관리한다. 여기서는 분석 클라이언트만 닫는다.
    """
    global _startup_time
    _startup_time = time.monotonic()
    logger.info("Monitoring API server starting up")

    yield

    analytics_client = _deps.get("analytics_client")
    if analytics_client is not None:
        try:
            await analytics_client.close()
        except Exception as exc:
            logger.warning("TeacherHub 클라이언트 종료 실패: %s", exc)
    logger.info("Monitoring API server shutting down")


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

app = FastAPI(
    title="AcademyInsight Crawler API",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(crawler_router)
app.include_router(analytics_router)
app.include_router(dashboard_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Log every HTTP request and its response time."""
    start = time.monotonic()
    response = await call_next(request)
    elapsed = (time.monotonic() - start) * 1000
    logger.debug(
        "%s %s -> %d (%.1fms)",
        request.method,
        request.url.path,
        response.status_code,
        elapsed,
    )
    return response


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch unhandled exceptions and return a unified error response."""
    logger.error(
        "Unhandled error on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            detail="내부 서버 오류가 발생했습니다. 서버 로그를 확인하세요.",
            error_code="INTERNAL_ERROR",
        ).model_dump(),
    )


@app.get("/health")
async def health_check() -> dict:
    """Simple health check endpoint."""
    return {"status": "ok", "uptime": round(time.monotonic() - _startup_time, 1)}
