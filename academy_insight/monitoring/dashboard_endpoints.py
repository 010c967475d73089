"""
대시보드 집계 API 엔드포인트.

엔드포인트 목록:
  GET /api/dashboard/summary          - 오늘/어제 게시글 수, 최다 언급 학원/소스
  GET /api/dashboard/academy-ranking  - 학원별 게시글 수 랭킹
  GET /api/dashboard/source-activity  - 소스별 수집 활동
  GET /api/dashboard/trending-posts   - 최근 7일 참여도 상위 게시글
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from academy_insight.monitoring.dashboard_queries import DashboardQueries
from academy_insight.monitoring.schemas import (
    AcademyRankingItem,
    DashboardSummaryResponse,
    ErrorResponse,
    SourceActivityItem,
    TrendingPostItem,
)
from academy_insight.utils.logger import get_logger

logger = get_logger(__name__)

dashboard_router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])

_queries = DashboardQueries()


def set_dashboard_deps(queries: DashboardQueries | None = None) -> None:
    """집계 쿼리 객체를 교체한다. None이면 기본 세션 팩토리를 사용한다."""
    global _queries
    _queries = queries or DashboardQueries()


@dashboard_router.get(
    "/summary",
    response_model=DashboardSummaryResponse,
    responses={500: {"model": ErrorResponse}},
)
async def get_dashboard_summary() -> DashboardSummaryResponse:
    try:
        return DashboardSummaryResponse(**await _queries.get_summary())
    except Exception as exc:
        logger.exception("대시보드 요약 조회 오류: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@dashboard_router.get(
    "/academy-ranking",
    response_model=list[AcademyRankingItem],
    responses={500: {"model": ErrorResponse}},
)
async def get_academy_ranking() -> list[AcademyRankingItem]:
    try:
        rows = await _queries.get_academy_ranking()
    except Exception as exc:
        logger.exception("학원 랭킹 조회 오류: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return [AcademyRankingItem(**row) for row in rows]


@dashboard_router.get(
    "/source-activity",
    response_model=list[SourceActivityItem],
    responses={500: {"model": ErrorResponse}},
)
async def get_source_activity() -> list[SourceActivityItem]:
    try:
        rows = await _queries.get_source_activity()
    except Exception as exc:
        logger.exception("소스 활동 조회 오류: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return [SourceActivityItem(**row) for row in rows]


@dashboard_router.get(
    "/trending-posts",
    response_model=list[TrendingPostItem],
    responses={500: {"model": ErrorResponse}},
)
async def get_trending_posts(
    limit: int = Query(default=10, ge=1, le=100),
) -> list[TrendingPostItem]:
    try:
        rows = await _queries.get_trending_posts(limit=limit)
    except Exception as exc:
        logger.exception("인기 게시글 조회 오류: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return [TrendingPostItem(**row) for row in rows]
