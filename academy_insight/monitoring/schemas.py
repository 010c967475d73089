"""
Pydantic request/response models for the monitoring API.

Defines typed schemas for the REST endpoints ensuring consistent
response formatting.
"""

from typing import Any

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Common
# ---------------------------------------------------------------------------

class ErrorResponse(BaseModel):
    """Unified error response."""

    detail: str
    error_code: str = "INTERNAL_ERROR"


# ---------------------------------------------------------------------------
# Crawler
# ---------------------------------------------------------------------------

class CrawlerStatusResponse(BaseModel):
    """스케줄러 상태 응답."""

    enabled: bool
    schedule: str
    timezone: str
    is_running: bool
    last_run: str | None = None
    last_result: dict[str, Any] | None = None
    last_error: str | None = None
    next_run: str | None = None


class CrawlerActionResponse(BaseModel):
    """수동 수집 트리거 응답. status: "started" | "already_running"."""

    status: str


class AnalyticsHealthResponse(BaseModel):
    connected: bool
    url: str
    cache: dict[str, Any] = {}


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

class TopAcademy(BaseModel):
    name: str
    count: int


class TopSource(BaseModel):
    name: str
    source_type: str
    count: int


class DashboardSummaryResponse(BaseModel):
    """대시보드 요약 응답."""

    today_posts: int
    yesterday_posts: int
    top_academy: TopAcademy
    top_source: TopSource
    active_academies: int


class AcademyRankingItem(BaseModel):
    id: int
    name: str
    today_count: int
    yesterday_count: int
    week_count: int
    change: int


class SourceActivityItem(BaseModel):
    id: int
    name: str
    source_type: str
    today_count: int
    yesterday_count: int
    change_rate: int
    week_avg: float


class TrendingPostItem(BaseModel):
    id: int
    title: str
    author: str
    post_url: str
    view_count: int
    comment_count: int
    engagement: int
    posted_at: str | None = None
    academy_name: str | None = None
    source_name: str | None = None
    source_type: str | None = None
    cafe_name: str | None = None
