"""
Tests for crawler/naver_search_crawler.py using canned search pages.
"""

import json
from datetime import date

from academy_insight.crawler.base_crawler import SourceRateLimiter
from academy_insight.crawler.naver_search_crawler import (
    NaverSearchCrawler,
    clean_cafe_url,
    extract_bootstrap_payloads,
    extract_cafe_id,
)
from academy_insight.crawler.raw_post import SourceDescriptor

SOURCE = SourceDescriptor(
    id=1,
    source_type="naver_cafe",
    name="공무원 카페",
    source_id="gongdream",
    url="https://cafe.naver.com/gongdream",
)

START, END = date(2026, 2, 1), date(2026, 2, 9)


def _article(n: int, created: str, cafe: str = "gongdream") -> dict:
    return {
        "props": {
            "type": "searchBasic",
            "title": f"<mark>에듀윌</mark> 후기 {n}",
            "titleHref": f"https://cafe.naver.com/{cafe}/{n}?art=token{n}",
            "content": "합격했습니다",
            "sourceProfile": {
                "title": "공드림",
                "titleHref": f"https://cafe.naver.com/{cafe}",
                "createdDate": created,
            },
        }
    }


def _bootstrap_page(articles: list[dict]) -> str:
    payload = {"body": {"props": {"children": [{"props": {"children": articles}}]}}}
    return (
        "<html><head><script>"
        "var x = 1; entry.bootstrap("
        + json.dumps(payload, ensure_ascii=False)
        + ", {\"async\": true});"
        "</script></head><body></body></html>"
    )


DOM_PAGE = """
<html><body>
<ul class="lst_view">
  <li class="bx">
    <a class="title_link" href="https://cafe.naver.com/gongdream/55?art=zz">에듀윌 인강 질문</a>
    <span class="sub">2026.02.06.</span>
    <a class="name">공드림</a>
    <div class="dsc_link">인강 추천 부탁드립니다</div>
  </li>
  <li class="bx">
    <a class="title_link" href="https://cafe.naver.com/gongdream/56">에듀윌 교재</a>
    <span class="sub">2026.02.07.</span>
  </li>
  <li class="bx"><span>광고</span></li>
</ul>
</body></html>
"""


class FakeSearchCrawler(NaverSearchCrawler):
    def __init__(self, html):
        super().__init__(rate_limiter=SourceRateLimiter(), request_interval=0)
        self.html = html
        self.urls: list[str] = []

    async def _fetch_html(self, url):
        self.urls.append(url)
        return self.html


def test_url_helpers():
    assert clean_cafe_url("https://cafe.naver.com/gongdream/1?art=abc") == "https://cafe.naver.com/gongdream/1"
    assert clean_cafe_url("https://cafe.naver.com/gongdream/1") == "https://cafe.naver.com/gongdream/1"
    assert extract_cafe_id("https://cafe.naver.com/gongdream/1") == "gongdream"
    assert extract_cafe_id("https://example.com") == ""


def test_extract_bootstrap_payloads_handles_trailing_arguments():
    payloads = extract_bootstrap_payloads(_bootstrap_page([_article(1, "2026.02.05.")]))
    assert len(payloads) == 1
    assert "body" in payloads[0]


def test_extract_bootstrap_payloads_skips_broken_json():
    html = "<script>entry.bootstrap({broken</script>"
    assert extract_bootstrap_payloads(html) == []


async def test_embedded_json_articles():
    crawler = FakeSearchCrawler(_bootstrap_page([_article(1, "2026.02.05."), _article(2, "2026.02.08.")]))

    posts = await crawler.search(SOURCE, "에듀윌", 20, START, END)

    assert [post.title for post in posts] == ["에듀윌 후기 1", "에듀윌 후기 2"]
    first = posts[0]
    assert first.url == "https://cafe.naver.com/gongdream/1"
    assert first.cafe_name == "공드림"
    assert first.posted_at.date() == date(2026, 2, 5)
    assert first.posted_at_raw == "2026.02.05."
    assert "cafe_url=gongdream" in crawler.urls[0]
    assert "where=article" in crawler.urls[0]


async def test_filters_other_cafes_undated_and_out_of_range():
    crawler = FakeSearchCrawler(
        _bootstrap_page(
            [
                _article(1, "2026.02.05."),
                _article(2, "2026.02.05.", cafe="othercafe"),
                _article(3, ""),
                _article(4, "2026.01.10."),
            ]
        )
    )

    posts = await crawler.search(SOURCE, "에듀윌", 20, START, END)

    assert [post.url for post in posts] == ["https://cafe.naver.com/gongdream/1"]


async def test_truncates_to_max_results():
    crawler = FakeSearchCrawler(
        _bootstrap_page([_article(n, "2026.02.05.") for n in range(1, 6)])
    )
    assert len(await crawler.search(SOURCE, "에듀윌", 3, START, END)) == 3


async def test_dom_fallback_when_no_embedded_json():
    crawler = FakeSearchCrawler(DOM_PAGE)

    posts = await crawler.search(SOURCE, "에듀윌", 20, START, END)

    assert [post.title for post in posts] == ["에듀윌 인강 질문", "에듀윌 교재"]
    assert posts[0].url == "https://cafe.naver.com/gongdream/55"
    assert posts[0].cafe_name == "공드림"
    assert posts[0].content == "인강 추천 부탁드립니다"
    assert posts[1].posted_at.date() == date(2026, 2, 7)


async def test_fetch_failure_returns_empty():
    crawler = FakeSearchCrawler(None)
    assert await crawler.search(SOURCE, "에듀윌", 20, START, END) == []


async def test_unrelated_page_returns_empty():
    crawler = FakeSearchCrawler("<html><body><p>검색 결과가 없습니다</p></body></html>")
    assert await crawler.search(SOURCE, "에듀윌", 20, START, END) == []
