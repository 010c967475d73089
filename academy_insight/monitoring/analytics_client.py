"""
TeacherHub 분석 서비스 REST 클라이언트.

수집 파이프라인과는 독립된 읽기 전용 소비자로, 분석 요약/랭킹/일간·주간
리포트를 엔드포인트별 TTL 인메모리 캐시와 함께 제공한다.
조회에 실패하면 None을 반환하고 캐시에는 아무것도 저장하지 않는다.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import Any

import httpx

from academy_insight.utils.config import get_settings
from academy_insight.utils.logger import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# 상수 정의
# ---------------------------------------------------------------------------

_API_PREFIX = "/api/v2"

# 일반 요청 타임아웃 (초)
_REQUEST_TIMEOUT: float = 10.0

# 헬스 체크 타임아웃 (초)
_HEALTH_TIMEOUT: float = 3.0

# 캐시 TTL (초)
TTL_ANALYSIS = 600
TTL_DAILY_REPORT = 1800
TTL_WEEKLY = 1800
TTL_ACADEMIES = 3600


class TTLCache:
    """항목별 만료 시간을 갖는 인메모리 캐시.

    Args:
        clock: 현재 시각(초)을 반환하는 함수. 테스트에서 교체한다.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._store: dict[str, tuple[float, Any]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is not None:
            expires_at, value = entry
            if self._clock() < expires_at:
                self.hits += 1
                return value
            del self._store[key]
        self.misses += 1
        return None

    def set(self, key: str, value: Any, ttl: float) -> None:
        self._store[key] = (self._clock() + ttl, value)

    def keys(self) -> list[str]:
        now = self._clock()
        return [key for key, (expires_at, _) in self._store.items() if now < expires_at]

    def clear(self) -> None:
        self._store.clear()

    def stats(self) -> dict[str, Any]:
        total = self.hits + self.misses
        return {
            "keys": len(self.keys()),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": f"{self.hits / total * 100:.1f}%" if total else "0%",
        }


def build_cache_key(path: str, params: dict[str, Any] | None) -> str:
    return f"{path}:{json.dumps(params, sort_keys=True, ensure_ascii=False)}" if params else path


class TeacherHubClient:
    """TeacherHub ``/api/v2`` 클라이언트.

    Args:
        base_url: TeacherHub 서버 주소. None이면 TEACHERHUB_API_URL.
        cache: TTL 캐시. None이면 새로 만든다.
        transport: httpx 전송 계층 (테스트용 MockTransport 주입).
    """

    def __init__(
        self,
        base_url: str | None = None,
        cache: TTLCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or get_settings().teacherhub_api_url).rstrip("/")
        self.cache = cache or TTLCache()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}{_API_PREFIX}",
                timeout=_REQUEST_TIMEOUT,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _safe_get(self, path: str, params: dict[str, Any] | None) -> Any | None:
        try:
            resp = await self._get_client().get(path, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.TimeoutException:
            logger.warning("[TeacherHub] GET %s 타임아웃", path)
        except httpx.HTTPStatusError as exc:
            logger.error("[TeacherHub] GET %s HTTP 오류: %s", path, exc.response.status_code)
        except Exception as exc:
            logger.error("[TeacherHub] GET %s 실패: %s", path, exc)
        return None

    async def _cached_get(
        self, path: str, params: dict[str, Any] | None, ttl: int
    ) -> Any | None:
        key = build_cache_key(path, params)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("[Cache HIT] %s", key)
            return cached

        logger.debug("[Cache MISS] %s", key)
        data = await self._safe_get(path, params)
        if data is not None:
            self.cache.set(key, data, ttl)
        return data

    async def get_analysis_summary(self) -> Any | None:
        """오늘 분석 요약 (총 언급 수, 평균 감성 점수, 강사 수 등)."""
        return await self._cached_get("/analysis/summary", None, TTL_ANALYSIS)

    async def get_academy_stats(self) -> Any | None:
        """학원별 통계."""
        return await self._cached_get("/analysis/academy-stats", None, TTL_ANALYSIS)

    async def get_ranking(self, limit: int = 10) -> Any | None:
        """언급 수 기준 강사 랭킹 상위 limit명."""
        return await self._cached_get("/analysis/ranking", {"limit": limit}, TTL_ANALYSIS)

    async def get_analysis_today(self) -> Any | None:
        return await self._cached_get("/analysis/today", None, TTL_ANALYSIS)

    async def get_academies(self) -> Any | None:
        return await self._cached_get("/academies", None, TTL_ACADEMIES)

    async def get_daily_report(self, date: str | None = None) -> Any | None:
        """일간 리포트. date는 YYYY-MM-DD, None이면 서버 기본값(오늘)."""
        params = {"date": date} if date else None
        return await self._cached_get("/reports/daily", params, TTL_DAILY_REPORT)

    async def get_current_week(self) -> Any | None:
        return await self._cached_get("/weekly/current", None, TTL_WEEKLY)

    async def get_weekly_summary(self, year: int, week: int) -> Any | None:
        return await self._cached_get(
            "/weekly/summary", {"year": year, "week": week}, TTL_WEEKLY
        )

    async def get_weekly_ranking(self, year: int, week: int, limit: int = 20) -> Any | None:
        return await self._cached_get(
            "/weekly/ranking", {"year": year, "week": week, "limit": limit}, TTL_WEEKLY
        )

    async def get_weekly_report(self, year: int, week: int) -> Any | None:
        return await self._cached_get(
            "/weekly/report", {"year": year, "week": week}, TTL_WEEKLY
        )

    async def health_check(self) -> dict[str, Any]:
        """연결 상태를 확인한다. 캐시를 사용하지 않는다."""
        try:
            resp = await self._get_client().get("/academies", timeout=_HEALTH_TIMEOUT)
            resp.raise_for_status()
            connected = True
        except Exception as exc:
            logger.warning("[TeacherHub] 헬스 체크 실패: %s", exc)
            connected = False
        return {"connected": connected, "url": self.base_url}

    def get_cache_stats(self) -> dict[str, Any]:
        return self.cache.stats()

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("[TeacherHub] 캐시 초기화")
