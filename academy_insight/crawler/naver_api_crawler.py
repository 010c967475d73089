"""
네이버 검색 API(cafearticle) 기반 카페 게시글 수집 전략.

공식 검색 API로 대량의 카페 게시글을 빠르게 수집하지만 게시 날짜를
제공하지 않는다. 따라서 통합검색 페이지 전략보다 충실도가 낮으며,
날짜가 없는 후보는 날짜 필터에서 제외하지 않고 유지한다.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from academy_insight.crawler.base_crawler import BaseStrategy, strip_html
from academy_insight.crawler.raw_post import RawPost, SourceDescriptor
from academy_insight.utils.config import get_settings
from academy_insight.utils.date_parser import is_within_date_range
from academy_insight.utils.logger import get_logger

logger = get_logger(__name__)

# 네이버 검색 API 카페글 엔드포인트
_API_URL = "https://openapi.naver.com/v1/search/cafearticle"

# 한 번에 요청 가능한 최대 건수
_MAX_DISPLAY = 100

# start 파라미터 상한 (API 제약)
_MAX_START = 1000

# 페이지 간 요청 간격 (초)
_PAGE_INTERVAL = 0.1


class NaverCafeApiCrawler(BaseStrategy):
    """네이버 검색 API로 카페 게시글을 수집하는 전략.

    start 오프셋으로 페이지를 넘기며, max_results를 채우거나 요청보다
    적은 결과가 오거나 오프셋 상한을 넘으면 중단한다.
    """

    name = "naver_api"
    default_request_interval = _PAGE_INTERVAL

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        settings = get_settings()
        self.client_id = settings.naver_client_id if client_id is None else client_id
        self.client_secret = (
            settings.naver_client_secret if client_secret is None else client_secret
        )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def search(
        self,
        source: SourceDescriptor,
        keyword: str,
        max_results: int | None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[RawPost]:
        """검색 API를 페이지 단위로 호출해 후보를 모은다.

        Args:
            source: 카페 소스. source_id가 있으면 해당 카페 글만 남긴다.
            keyword: 검색 키워드.
            max_results: 최대 수집 건수. None이면 API 상한까지.
            start_date: 시작일 (포함).
            end_date: 종료일 (당일 포함).

        Returns:
            RawPost 목록. 인증 정보가 없거나 API 오류 시 빈 목록.
        """
        if not self.configured:
            logger.error(
                "[%s] NAVER_CLIENT_ID / NAVER_CLIENT_SECRET 이 설정되지 않았습니다", self.name
            )
            return []

        limit = max_results if max_results is not None else _MAX_START
        posts: list[RawPost] = []
        start = 1

        while len(posts) < limit and start <= _MAX_START:
            display = min(_MAX_DISPLAY, limit - len(posts))
            await self._rate_limit(source)
            payload = await self._fetch_json(
                {"query": keyword, "display": display, "start": start, "sort": "date"}
            )
            if payload is None:
                break

            items = payload.get("items")
            if not isinstance(items, list) or not items:
                break

            for item in items:
                if len(posts) >= limit:
                    break
                if not isinstance(item, dict):
                    continue
                post = self._parse_item(item, keyword, source)
                if not self._matches_cafe(item, post, source):
                    continue
                if is_within_date_range(
                    post.posted_at, start_date, end_date, include_missing=True
                ):
                    posts.append(post)

            if len(items) < display:
                break
            start += len(items)

        return posts

    async def _fetch_json(self, params: dict[str, Any]) -> dict[str, Any] | None:
        """검색 API를 호출한다.

        Returns:
            응답 JSON 딕셔너리. HTTP 오류/전송 실패/JSON 형식 오류 시 None.
        """
        session = await self.get_session()
        headers = {
            "X-Naver-Client-Id": self.client_id,
            "X-Naver-Client-Secret": self.client_secret,
        }
        try:
            async with session.get(_API_URL, params=params, headers=headers) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    logger.error(
                        "[%s] API 오류: HTTP %d - %s", self.name, resp.status, body[:200]
                    )
                    return None
                data = await resp.json(content_type=None)
        except Exception as e:
            logger.error("[%s] API 요청 실패: %s", self.name, e)
            return None

        if not isinstance(data, dict):
            logger.error("[%s] API 응답 형식 오류: %s", self.name, type(data).__name__)
            return None
        return data

    def _parse_item(
        self, item: dict[str, Any], keyword: str, source: SourceDescriptor
    ) -> RawPost:
        return RawPost(
            title=strip_html(item.get("title")),
            url=item.get("link") or "",
            keyword=keyword,
            source_type=source.source_type,
            content=strip_html(item.get("description")),
            cafe_name=item.get("cafename") or "",
            cafe_url=item.get("cafeurl") or source.url or "",
        )

    @staticmethod
    def _matches_cafe(
        item: dict[str, Any], post: RawPost, source: SourceDescriptor
    ) -> bool:
        """소스에 카페 ID가 있으면 cafeurl 또는 link에 포함된 글만 통과시킨다."""
        cafe_id = source.source_id
        if not cafe_id:
            return True
        return cafe_id in (item.get("cafeurl") or "") or cafe_id in post.url
