"""
네이버 통합검색(카페글 탭) 페이지 기반 수집 전략.

검색 결과 페이지의 <script> 안에 있는 ``entry.bootstrap({...})`` JSON을
해석하여 게시 날짜와 카페 이름이 포함된 카페 게시글을 추출한다.
JSON에서 아무것도 얻지 못하면 여러 행 셀렉터를 시도하는 DOM 폴백을 사용한다.

결과 수는 적지만 날짜가 있어 검색 API보다 충실도가 높다.
"""

from __future__ import annotations

import json
import re
from datetime import date
from typing import Any
from urllib.parse import urlencode, urljoin

from bs4 import BeautifulSoup, Tag

from academy_insight.crawler.base_crawler import BaseStrategy, strip_html
from academy_insight.crawler.raw_post import RawPost, SourceDescriptor
from academy_insight.utils.date_parser import is_within_date_range, parse_count, parse_date
from academy_insight.utils.logger import get_logger

logger = get_logger(__name__)

# 네이버 통합검색 URL
_SEARCH_URL = "https://search.naver.com/search.naver"

_REQUEST_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
    "Referer": "https://www.naver.com/",
}

# 스크립트 내 임베디드 JSON 시작 표식
_BOOTSTRAP_MARKER = "entry.bootstrap("

_CAFE_HOST = "cafe.naver.com"
_CAFE_ID_RE = re.compile(r"cafe\.naver\.com/([^/?#]+)")

# DOM 폴백 행 셀렉터 (가장 많은 유효 행을 만드는 셀렉터를 채택)
_FALLBACK_ROW_SELECTORS = [
    ".lst_view .bx",
    ".api_subject_bx li",
    ".ArticleItem",
    ".list_item",
    "article",
    ".result-list > div",
    "[class*='search'] [class*='item']",
]
_FALLBACK_TITLE_SELECTOR = "a.title_link, a.api_txt_lines, a.tit, a[class*='title'], h3 a, .title a"
_FALLBACK_DATE_SELECTOR = ".sub, .date, .time, [class*='date']"
_FALLBACK_CAFE_SELECTOR = ".name, .user_info a, [class*='cafe']"
_FALLBACK_CONTENT_SELECTOR = ".dsc_link, .api_txt_lines.dsc_txt, .dsc, [class*='desc']"
_FALLBACK_VIEW_SELECTOR = ".view, [class*='view']"
_FALLBACK_COMMENT_SELECTOR = ".cmt, .comment, [class*='comment']"


def clean_cafe_url(url: str | None) -> str:
    """카페 게시글 URL에서 ``?art=`` 이후 토큰을 제거한다."""
    if not url:
        return ""
    idx = url.find("?art=")
    return url[:idx] if idx != -1 else url


def extract_cafe_id(url: str | None) -> str:
    """URL에서 카페 ID를 추출한다. 없으면 빈 문자열."""
    if not url:
        return ""
    match = _CAFE_ID_RE.search(url)
    return match.group(1) if match else ""


def extract_bootstrap_payloads(html: str) -> list[dict[str, Any]]:
    """HTML의 <script> 태그에서 ``entry.bootstrap(`` 뒤의 JSON 객체를 모두 꺼낸다.

    중괄호 개수를 세는 대신 JSON raw decoder로 객체 하나를 정확히 읽는다.
    디코딩에 실패한 조각은 건너뛴다.
    """
    soup = BeautifulSoup(html, "html.parser")
    decoder = json.JSONDecoder()
    payloads: list[dict[str, Any]] = []

    for script in soup.find_all("script"):
        content = script.string or script.get_text() or ""
        search_from = 0
        while True:
            idx = content.find(_BOOTSTRAP_MARKER, search_from)
            if idx == -1:
                break
            search_from = idx + len(_BOOTSTRAP_MARKER)
            brace = content.find("{", search_from)
            if brace == -1:
                break
            try:
                obj, _ = decoder.raw_decode(content, brace)
            except ValueError:
                continue
            if isinstance(obj, dict):
                payloads.append(obj)

    return payloads


class NaverSearchCrawler(BaseStrategy):
    """네이버 통합검색 카페글 탭을 스크래핑하는 전략."""

    name = "naver_search"

    async def search(
        self,
        source: SourceDescriptor,
        keyword: str,
        max_results: int | None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[RawPost]:
        """검색 페이지 한 장을 받아 카페 게시글 후보를 추출한다.

        날짜가 없거나 파싱되지 않는 행은 제외한다. 어떤 단계에서든
        실패하면 빈 목록을 반환한다.
        """
        url = self.build_search_url(keyword, source.source_id)
        await self._rate_limit(source)
        html = await self._fetch_html(url)
        if not html:
            return []

        try:
            posts = self.parse_search_page(html, keyword, source, start_date, end_date)
        except Exception as e:
            logger.error("[%s] 검색 페이지 파싱 실패: %s", self.name, e, exc_info=True)
            return []

        if max_results is not None:
            posts = posts[:max_results]
        return posts

    @staticmethod
    def build_search_url(keyword: str, cafe_id: str | None = None) -> str:
        params = {"where": "article", "query": keyword, "sm": "tab_viw"}
        if cafe_id:
            params["cafe_url"] = cafe_id
        return f"{_SEARCH_URL}?{urlencode(params)}"

    async def _fetch_html(self, url: str) -> str | None:
        """URL에서 HTML을 가져온다. 실패 시 None."""
        session = await self.get_session()
        try:
            async with session.get(url, headers=_REQUEST_HEADERS) as resp:
                if resp.status != 200:
                    logger.warning(
                        "[%s] HTTP %d 응답 (URL: %s)", self.name, resp.status, url
                    )
                    return None
                return await resp.text()
        except Exception as e:
            logger.error("[%s] HTTP 요청 실패 (%s): %s", self.name, url, e)
            return None

    def parse_search_page(
        self,
        html: str,
        keyword: str,
        source: SourceDescriptor,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[RawPost]:
        """임베디드 JSON을 우선 해석하고, 결과가 없으면 DOM 폴백을 사용한다."""
        candidates: list[RawPost] = []
        for payload in extract_bootstrap_payloads(html):
            self._collect_articles(payload.get("body"), keyword, source, candidates)

        if not candidates:
            candidates = self._parse_dom_fallback(html, keyword, source)
            if candidates:
                logger.debug("[%s] DOM 폴백으로 %d건 추출", self.name, len(candidates))

        return [
            post
            for post in candidates
            if self._matches_cafe(post, source)
            and is_within_date_range(post.posted_at, start_date, end_date, include_missing=False)
        ]

    def _collect_articles(
        self,
        node: Any,
        keyword: str,
        source: SourceDescriptor,
        results: list[RawPost],
    ) -> None:
        """JSON 트리를 재귀적으로 순회하며 카페 게시글 노드를 수집한다.

        ``props.type == "searchBasic"`` 이고 ``props.titleHref`` 가 카페 URL인
        노드를 게시글로 보고, 그 하위는 더 내려가지 않는다.
        """
        if isinstance(node, list):
            for child in node:
                self._collect_articles(child, keyword, source, results)
            return
        if not isinstance(node, dict):
            return

        props = node.get("props")
        if isinstance(props, dict) and self._is_cafe_article(props):
            post = self._article_from_props(props, keyword, source)
            if post is not None:
                results.append(post)
            return

        for value in node.values():
            if isinstance(value, (dict, list)):
                self._collect_articles(value, keyword, source, results)

    @staticmethod
    def _is_cafe_article(props: dict[str, Any]) -> bool:
        title_href = props.get("titleHref")
        return (
            props.get("type") == "searchBasic"
            and isinstance(title_href, str)
            and _CAFE_HOST in title_href
        )

    def _article_from_props(
        self, props: dict[str, Any], keyword: str, source: SourceDescriptor
    ) -> RawPost | None:
        title = strip_html(props.get("title"))
        if not title:
            return None

        profile = props.get("sourceProfile")
        if not isinstance(profile, dict):
            profile = {}
        date_raw = str(profile.get("createdDate") or "")

        return RawPost(
            title=title,
            url=clean_cafe_url(props.get("titleHref")),
            keyword=keyword,
            source_type=source.source_type,
            content=strip_html(props.get("content")),
            posted_at=parse_date(date_raw),
            posted_at_raw=date_raw,
            cafe_name=str(profile.get("title") or ""),
            cafe_url=str(profile.get("titleHref") or source.url or ""),
        )

    def _parse_dom_fallback(
        self, html: str, keyword: str, source: SourceDescriptor
    ) -> list[RawPost]:
        """후보 셀렉터 중 유효 행이 가장 많은 셀렉터의 결과를 사용한다."""
        soup = BeautifulSoup(html, "html.parser")
        best: list[RawPost] = []
        best_selector = ""

        for selector in _FALLBACK_ROW_SELECTORS:
            rows = [
                post
                for post in (
                    self._parse_dom_row(row, keyword, source) for row in soup.select(selector)
                )
                if post is not None
            ]
            if len(rows) > len(best):
                best = rows
                best_selector = selector

        if best_selector:
            logger.debug(
                "[%s] 셀렉터 '%s'로 %d개 항목 발견", self.name, best_selector, len(best)
            )
        return best

    @staticmethod
    def _parse_dom_row(
        row: Tag, keyword: str, source: SourceDescriptor
    ) -> RawPost | None:
        """제목과 카페 링크가 모두 있는 행만 후보로 만든다."""
        title_el = row.select_one(_FALLBACK_TITLE_SELECTOR)
        if title_el is None:
            return None
        title = title_el.get_text(strip=True)
        href = title_el.get("href") or ""
        if isinstance(href, list):
            href = href[0] if href else ""
        if href and not href.startswith("http"):
            href = urljoin(f"https://{_CAFE_HOST}/", href)
        if not title or _CAFE_HOST not in href:
            return None

        def _text(selector: str) -> str:
            el = row.select_one(selector)
            return el.get_text(strip=True) if el else ""

        date_raw = _text(_FALLBACK_DATE_SELECTOR)
        return RawPost(
            title=title,
            url=clean_cafe_url(href),
            keyword=keyword,
            source_type=source.source_type,
            content=_text(_FALLBACK_CONTENT_SELECTOR),
            posted_at=parse_date(date_raw),
            posted_at_raw=date_raw,
            view_count=parse_count(_text(_FALLBACK_VIEW_SELECTOR)),
            comment_count=parse_count(_text(_FALLBACK_COMMENT_SELECTOR)),
            cafe_name=_text(_FALLBACK_CAFE_SELECTOR),
            cafe_url=source.url or "",
        )

    @staticmethod
    def _matches_cafe(post: RawPost, source: SourceDescriptor) -> bool:
        """소스에 카페 ID가 있으면 다른 카페의 게시글을 제외한다."""
        cafe_id = source.source_id
        if not cafe_id:
            return True
        article_cafe_id = extract_cafe_id(post.url)
        return not article_cafe_id or article_cafe_id == cafe_id
