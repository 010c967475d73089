"""
Abstract base class for all source strategies.

Every concrete strategy (Naver search API, Naver search page, DCInside
gallery) inherits from BaseStrategy and implements the `search` method.
HTTP 세션과 소스별 요청 간격 제한기는 모든 전략 인스턴스가 공유한다.
"""

from __future__ import annotations

import asyncio
import html
import re
import time
from abc import ABC, abstractmethod
from datetime import date

import aiohttp

from academy_insight.crawler.raw_post import RawPost, SourceDescriptor
from academy_insight.utils.logger import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# 모듈 레벨 상수
# ---------------------------------------------------------------------------

_CRAWLER_TIMEOUT_TOTAL: float = 30.0
_CRAWLER_TIMEOUT_CONNECT: float = 10.0

# 브라우저 수준 User-Agent (검색 페이지/갤러리 차단 방지)
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_3) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.2 Safari/605.1.15"
)

_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


def strip_html(text: str | None) -> str:
    """HTML 태그와 엔티티를 제거하고 공백을 정리한다."""
    if not text:
        return ""
    cleaned = html.unescape(_TAG_RE.sub("", text))
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


class SourceRateLimiter:
    """소스 키별 최소 요청 간격을 보장하는 제한기.

    키마다 asyncio.Lock과 마지막 요청 시각(monotonic)을 보관한다.
    같은 키의 두 요청은 항상 min_interval 이상 떨어지고,
    다른 키의 요청은 서로 기다리지 않는다.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._last_request: dict[str, float] = {}

    async def wait(self, key: str, min_interval: float) -> None:
        """key에 대한 다음 요청 슬롯을 얻을 때까지 대기한다."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            last = self._last_request.get(key)
            if last is not None and min_interval > 0:
                elapsed = time.monotonic() - last
                if elapsed < min_interval:
                    await asyncio.sleep(min_interval - elapsed)
            self._last_request[key] = time.monotonic()

    def reset(self) -> None:
        self._locks.clear()
        self._last_request.clear()


class BaseStrategy(ABC):
    """Abstract base for all source fetch strategies.

    Attributes:
        name: 로그/요청 간격 키에 쓰이는 전략 이름.
        request_interval: 같은 소스에 대한 요청 간 최소 간격 (초).
        rate_limiter: 소스별 요청 간격 제한기.
    """

    name: str = "base"
    default_request_interval: float = 0.0

    # Shared aiohttp session across all strategy instances
    _shared_session: aiohttp.ClientSession | None = None
    _shared_rate_limiter: SourceRateLimiter = SourceRateLimiter()

    def __init__(
        self,
        rate_limiter: SourceRateLimiter | None = None,
        request_interval: float | None = None,
    ) -> None:
        self.rate_limiter = rate_limiter or BaseStrategy._shared_rate_limiter
        self.request_interval = (
            self.default_request_interval if request_interval is None else request_interval
        )

    @abstractmethod
    async def search(
        self,
        source: SourceDescriptor,
        keyword: str,
        max_results: int | None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[RawPost]:
        """keyword로 source를 검색하여 날짜 범위 안의 후보를 반환한다.

        전송/파싱 실패는 빈 목록(또는 부분 결과)으로 처리하며
        예외를 밖으로 던지지 않는 것이 원칙이다.
        """

    async def safe_search(
        self,
        source: SourceDescriptor,
        keyword: str,
        max_results: int | None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[RawPost]:
        """search를 호출하고, 예상치 못한 예외는 빈 목록으로 바꾼다."""
        try:
            posts = await self.search(source, keyword, max_results, start_date, end_date)
        except Exception as e:
            logger.error(
                "[%s] '%s' 검색 실패 (%s): %s",
                self.name, keyword, source.name, e, exc_info=True,
            )
            return []
        logger.info(
            "[%s] '%s' 검색 완료 (%s): %d건", self.name, keyword, source.name, len(posts)
        )
        return posts

    def rate_limit_key(self, source: SourceDescriptor) -> str:
        return f"{self.name}:{source.id}"

    async def _rate_limit(self, source: SourceDescriptor) -> None:
        """같은 소스에 대한 직전 요청과 request_interval 이상 간격을 둔다."""
        await self.rate_limiter.wait(self.rate_limit_key(source), self.request_interval)

    @classmethod
    async def get_session(cls) -> aiohttp.ClientSession:
        """Return shared aiohttp session, creating one if needed."""
        if BaseStrategy._shared_session is None or BaseStrategy._shared_session.closed:
            timeout = aiohttp.ClientTimeout(
                total=_CRAWLER_TIMEOUT_TOTAL,
                connect=_CRAWLER_TIMEOUT_CONNECT,
            )
            BaseStrategy._shared_session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": USER_AGENT},
            )
        return BaseStrategy._shared_session

    @classmethod
    async def close_session(cls) -> None:
        """Close the shared aiohttp session."""
        session = BaseStrategy._shared_session
        if session is not None and not session.closed:
            await session.close()
        BaseStrategy._shared_session = None
