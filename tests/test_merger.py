"""
Tests for crawler/merger.py.
"""

from datetime import timedelta

from academy_insight.crawler.merger import (
    MAX_SAMPLE_POSTS,
    SAMPLE_AUTHOR,
    count_overlaps,
    generate_sample_posts,
    merge_posts,
    normalize_url,
)
from academy_insight.crawler.raw_post import RawPost, SourceDescriptor
from academy_insight.utils.date_parser import now_kst

SOURCE = SourceDescriptor(
    id=1,
    source_type="naver_cafe",
    name="공무원 카페",
    source_id="gongdream",
    url="https://cafe.naver.com/gongdream",
)


def _post(url: str, title: str = "글") -> RawPost:
    return RawPost(title=title, url=url, keyword="에듀윌", source_type="naver_cafe")


def test_normalize_url_folds_variants():
    expected = "cafe.naver.com/gongdream/123"
    assert normalize_url("https://cafe.naver.com/gongdream/123") == expected
    assert normalize_url("http://m.cafe.naver.com/gongdream/123/") == expected
    assert normalize_url("https://cafe.naver.com/gongdream/123?art=abc") == expected
    assert normalize_url("https://m.gall.dcinside.com/board/view?id=x") == "gall.dcinside.com/board/view"
    assert normalize_url("") == ""
    assert normalize_url(None) == ""


def test_merge_prefers_higher_fidelity_and_keeps_order():
    higher = [_post("https://cafe.naver.com/g/1", "web-1"), _post("https://cafe.naver.com/g/2", "web-2")]
    lower = [
        _post("https://m.cafe.naver.com/g/2", "api-2"),
        _post("https://cafe.naver.com/g/3", "api-3"),
    ]

    merged = merge_posts(higher, lower)

    assert [post.title for post in merged] == ["web-1", "web-2", "api-3"]
    assert count_overlaps(higher, lower) == 1


def test_merge_respects_cap():
    higher = [_post(f"https://cafe.naver.com/g/{i}") for i in range(3)]
    lower = [_post(f"https://cafe.naver.com/g/{i}") for i in range(3, 8)]
    assert len(merge_posts(higher, lower, cap=4)) == 4
    assert len(merge_posts(higher, lower)) == 8


def test_merge_keeps_posts_without_url():
    merged = merge_posts([_post(""), _post("")], [])
    assert len(merged) == 2


def test_generate_sample_posts():
    posts = generate_sample_posts("에듀윌", SOURCE, count=10)

    assert len(posts) == MAX_SAMPLE_POSTS
    now = now_kst()
    for i, post in enumerate(posts, start=1):
        assert post.is_sample
        assert post.author == SAMPLE_AUTHOR
        assert post.title == f"[샘플] 에듀윌 관련 네이버카페 게시글 {i}"
        assert post.url == f"https://cafe.naver.com/gongdream?sample_1_에듀윌_{i}"
        assert now - timedelta(days=31) <= post.posted_at <= now


def test_generate_sample_posts_zero_count():
    assert generate_sample_posts("에듀윌", SOURCE, count=0) == []


def test_sample_urls_are_scoped_to_source():
    other = SourceDescriptor(id=2, source_type="naver_cafe", name="다른 카페", source_id="other")
    bare = SourceDescriptor(id=3, source_type="naver_cafe", name="주소 없는 카페", source_id="bare")

    other_urls = {post.url for post in generate_sample_posts("에듀윌", other)}
    bare_urls = {post.url for post in generate_sample_posts("에듀윌", bare)}

    assert "https://cafe.naver.com?sample_2_에듀윌_1" in other_urls
    assert not other_urls & bare_urls
