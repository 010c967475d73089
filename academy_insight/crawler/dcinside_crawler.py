"""
DC인사이드 갤러리 검색 수집 전략.

갤러리 내부 검색(제목+내용)을 페이지 단위로 넘기며 날짜 범위 안의
게시글을 수집한다. 목록은 최신순이므로 시작일보다 오래된 행을 만나면
그 즉시 남은 행과 페이지 탐색을 모두 중단한다.

갤러리는 mini / mgallery / 정식 갤러리 중 어디에 있는지에 따라 URL 경로가
다르므로, 스윕 시작 전에 GalleryPathDetector로 실제 접근 가능한 경로를
찾아 소스 URL에 반영한다.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any
from urllib.parse import urlencode

from bs4 import BeautifulSoup, Tag
from sqlalchemy import select

from academy_insight.crawler.base_crawler import BaseStrategy, SourceRateLimiter
from academy_insight.crawler.raw_post import RawPost, SourceDescriptor
from academy_insight.db.connection import get_session
from academy_insight.db.models import UNKNOWN_AUTHOR, CrawlSource, SourceType
from academy_insight.utils.date_parser import (
    is_before_start,
    is_within_date_range,
    parse_count,
    parse_date,
)
from academy_insight.utils.logger import get_logger

logger = get_logger(__name__)

_GALLERY_HOST = "https://gall.dcinside.com"

_REQUEST_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
    "Referer": "https://gall.dcinside.com/",
}

# 키워드당 최대 탐색 페이지 수
MAX_PAGES = 5

# 같은 갤러리에 대한 페이지 요청 간격 (초)
_PAGE_INTERVAL = 1.5

# 경로 감지 요청 간격 (초)
_PROBE_INTERVAL = 0.5

# 소스 URL에 경로가 없을 때 사용할 기본 경로
_DEFAULT_BASE_PATH = "mini/board"

# 감지 시 시도할 경로 (우선순위 순)
GALLERY_PATH_PREFIXES = ("mini/board", "mgallery/board", "board")

# 갤러리 ID가 바뀐 경우의 대체 ID
ALTERNATE_GALLERY_IDS = {"gongsisaeng": "gongsi"}

_BASE_PATH_RE = re.compile(r"dcinside\.com/(.+?)/lists")
_GALLERY_ID_RE = re.compile(r"[?&]id=([^&#]+)")

# 목록 셀렉터
_ROW_SELECTOR = ".gall_list .ub-content"
_TITLE_SELECTOR = ".gall_tit a"
_WRITER_SELECTOR = ".gall_writer .nickname, .gall_writer em"
_DATE_SELECTOR = ".gall_date"
_VIEW_SELECTOR = ".gall_count"
_REPLY_SELECTOR = ".reply_numbox .reply_num"


def extract_gallery_id(url: str | None) -> str:
    if not url:
        return ""
    match = _GALLERY_ID_RE.search(url)
    return match.group(1) if match else ""


def extract_base_path(url: str | None) -> str:
    if not url:
        return _DEFAULT_BASE_PATH
    match = _BASE_PATH_RE.search(url)
    return match.group(1) if match else _DEFAULT_BASE_PATH


def build_list_url(base_path: str, gallery_id: str) -> str:
    return f"{_GALLERY_HOST}/{base_path}/lists/?id={gallery_id}"


class DCInsideGalleryCrawler(BaseStrategy):
    """DC인사이드 갤러리 검색 결과를 페이지 단위로 수집하는 전략."""

    name = "dcinside"
    default_request_interval = _PAGE_INTERVAL

    def __init__(self, max_pages: int = MAX_PAGES, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.max_pages = max_pages

    async def search(
        self,
        source: SourceDescriptor,
        keyword: str,
        max_results: int | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[RawPost]:
        """갤러리 검색 결과를 최대 max_pages 페이지까지 수집한다.

        Args:
            source: 갤러리 소스. URL에서 경로, source_id 또는 URL에서 갤러리 ID를 얻는다.
            keyword: 검색 키워드 (제목+내용 검색).
            max_results: 최대 건수. None이면 페이지 상한까지 모두 수집.
            start_date: 시작일. 이보다 오래된 행을 만나면 탐색을 중단한다.
            end_date: 종료일 (당일 포함).

        Returns:
            범위 안의 RawPost 목록. 페이지 요청이 실패하면 그때까지 모은 부분 결과.
        """
        gallery_id = source.source_id or extract_gallery_id(source.url)
        if not gallery_id:
            logger.warning("[%s] 갤러리 ID를 알 수 없음: %s", self.name, source.name)
            return []
        base_path = extract_base_path(source.url)

        posts: list[RawPost] = []
        for page in range(1, self.max_pages + 1):
            await self._rate_limit(source)
            url = self.build_search_url(base_path, gallery_id, keyword, page)
            html = await self._fetch_html(url)
            if html is None:
                logger.warning(
                    "[%s] %d페이지 요청 실패, '%s' 탐색 중단 (%d건 수집)",
                    self.name, page, keyword, len(posts),
                )
                break

            page_posts, rows_seen, reached_older = self.parse_list_page(
                html, keyword, source, start_date, end_date
            )
            posts.extend(page_posts)
            logger.debug(
                "[%s] page %d: %d건 확인, %d건 범위 내", self.name, page, rows_seen, len(posts)
            )

            if max_results is not None and len(posts) >= max_results:
                posts = posts[:max_results]
                break
            if rows_seen == 0 or reached_older:
                break

        return posts

    @staticmethod
    def build_search_url(base_path: str, gallery_id: str, keyword: str, page: int) -> str:
        query = urlencode(
            {
                "id": gallery_id,
                "s_type": "search_subject_memo",
                "s_keyword": keyword,
                "page": page,
            }
        )
        return f"{_GALLERY_HOST}/{base_path}/lists/?{query}"

    async def _fetch_html(self, url: str) -> str | None:
        """페이지 HTML을 가져온다. 전송 실패 또는 200 이외 응답이면 None."""
        session = await self.get_session()
        try:
            async with session.get(url, headers=_REQUEST_HEADERS) as resp:
                if resp.status != 200:
                    logger.warning("[%s] HTTP %d 응답 (URL: %s)", self.name, resp.status, url)
                    return None
                return await resp.text()
        except Exception as e:
            logger.error("[%s] HTTP 요청 실패 (%s): %s", self.name, url, e)
            return None

    def parse_list_page(
        self,
        html: str,
        keyword: str,
        source: SourceDescriptor,
        start_date: date | None,
        end_date: date | None,
    ) -> tuple[list[RawPost], int, bool]:
        """목록 페이지 하나를 파싱한다.

        Returns:
            (범위 안 게시글, 확인한 일반 행 수, 시작일 이전 행 도달 여부)
        """
        soup = BeautifulSoup(html, "html.parser")
        posts: list[RawPost] = []
        rows_seen = 0

        for row in soup.select(_ROW_SELECTOR):
            if self._is_notice(row):
                continue
            title_el = row.select_one(_TITLE_SELECTOR)
            title = title_el.get_text(strip=True) if title_el else ""
            if not title:
                continue
            rows_seen += 1

            date_raw = self._row_date(row)
            posted_at = parse_date(date_raw)
            if is_before_start(posted_at, start_date):
                return posts, rows_seen, True

            if not is_within_date_range(posted_at, start_date, end_date, include_missing=False):
                continue

            posts.append(
                RawPost(
                    title=title,
                    url=self._absolute_url(title_el.get("href") if title_el else None),
                    keyword=keyword,
                    source_type=SourceType.DCINSIDE.value,
                    author=self._text(row, _WRITER_SELECTOR) or UNKNOWN_AUTHOR,
                    posted_at=posted_at,
                    posted_at_raw=date_raw,
                    view_count=parse_count(self._text(row, _VIEW_SELECTOR)),
                    comment_count=parse_count(self._text(row, _REPLY_SELECTOR)),
                    cafe_url=source.url or "",
                )
            )

        return posts, rows_seen, False

    @staticmethod
    def _is_notice(row: Tag) -> bool:
        classes = row.get("class") or []
        return "ub-notice" in classes or row.select_one(".icon_notice") is not None

    @staticmethod
    def _row_date(row: Tag) -> str:
        """``.gall_date`` 의 title 속성(전체 일시)을 우선 사용하고, 없으면 표시 텍스트."""
        el = row.select_one(_DATE_SELECTOR)
        if el is None:
            return ""
        title_attr = el.get("title")
        if isinstance(title_attr, str) and title_attr.strip():
            return title_attr.strip()
        return el.get_text(strip=True)

    @staticmethod
    def _text(row: Tag, selector: str) -> str:
        el = row.select_one(selector)
        return el.get_text(strip=True) if el else ""

    @staticmethod
    def _absolute_url(href: Any) -> str:
        if not href or not isinstance(href, str):
            return ""
        return href if href.startswith("http") else f"{_GALLERY_HOST}{href}"


class GalleryPathDetector:
    """DC인사이드 소스의 실제 접근 가능한 갤러리 경로를 찾아 반영한다.

    mini/board → mgallery/board → board 순서로 목록 페이지를 요청해
    처음 200을 돌려준 경로를 채택한다. 모두 실패하면 대체 갤러리 ID로
    한 번 더 시도하고, 그마저 실패하면 소스를 비활성화한다.
    """

    def __init__(
        self,
        rate_limiter: SourceRateLimiter | None = None,
        probe_interval: float = _PROBE_INTERVAL,
    ) -> None:
        self.rate_limiter = rate_limiter or SourceRateLimiter()
        self.probe_interval = probe_interval

    async def _probe(self, url: str) -> int | None:
        """URL의 HTTP 상태 코드를 반환한다. 전송 실패 시 None."""
        session = await BaseStrategy.get_session()
        try:
            async with session.get(url, headers=_REQUEST_HEADERS, allow_redirects=False) as resp:
                return resp.status
        except Exception as e:
            logger.debug("[갤러리 감지] 요청 실패 (%s): %s", url, e)
            return None

    async def detect_path(self, gallery_id: str) -> str | None:
        """gallery_id가 열리는 경로 접두어를 반환한다. 없으면 None."""
        for prefix in GALLERY_PATH_PREFIXES:
            await self.rate_limiter.wait("dcinside_probe", self.probe_interval)
            status = await self._probe(build_list_url(prefix, gallery_id))
            if status == 200:
                logger.info("[갤러리 감지] %s → /%s/lists/", gallery_id, prefix)
                return prefix
        return None

    async def detect_all(self) -> dict[str, int]:
        """활성 DC인사이드 소스 전체의 경로를 확인하고 DB에 반영한다.

        Returns:
            {"checked": N, "updated": N, "deactivated": N}
        """
        summary = {"checked": 0, "updated": 0, "deactivated": 0}

        async with get_session() as session:
            result = await session.execute(
                select(CrawlSource).where(
                    CrawlSource.source_type == SourceType.DCINSIDE.value,
                    CrawlSource.is_active.is_(True),
                )
            )
            sources = list(result.scalars().all())

            for source in sources:
                summary["checked"] += 1
                outcome = await self._reconcile(source)
                if outcome in summary:
                    summary[outcome] += 1

        logger.info(
            "[갤러리 감지] 확인 %d건, 수정 %d건, 비활성화 %d건",
            summary["checked"], summary["updated"], summary["deactivated"],
        )
        return summary

    async def _reconcile(self, source: CrawlSource) -> str:
        """소스 하나의 경로를 확인한다. 반환값은 "updated" / "deactivated" / "unchanged"."""
        gallery_id = source.source_id or extract_gallery_id(source.url)
        if not gallery_id:
            logger.warning("[갤러리 감지] %s: 갤러리 ID 없음 → 비활성화", source.name)
            source.is_active = False
            return "deactivated"

        prefix = await self.detect_path(gallery_id)
        if prefix is not None:
            correct_url = build_list_url(prefix, gallery_id)
            if source.url != correct_url:
                logger.info("[갤러리 감지] %s: %s → %s", source.name, source.url, correct_url)
                source.url = correct_url
                return "updated"
            return "unchanged"

        alt_id = ALTERNATE_GALLERY_IDS.get(gallery_id)
        if alt_id:
            alt_prefix = await self.detect_path(alt_id)
            if alt_prefix is not None:
                correct_url = build_list_url(alt_prefix, alt_id)
                logger.info(
                    "[갤러리 감지] %s: %s → %s (ID 변경: %s→%s)",
                    source.name, source.url, correct_url, gallery_id, alt_id,
                )
                source.url = correct_url
                source.source_id = alt_id
                return "updated"

        logger.warning("[갤러리 감지] %s: 접근 불가 (%s) → 비활성화", source.name, gallery_id)
        source.is_active = False
        return "deactivated"
