"""
수집 전략 결과 병합과 샘플 데이터 폴백.

충실도가 높은 전략(날짜 포함)의 결과를 먼저 두고, 낮은 전략의 결과 중
정규화 URL이 겹치지 않는 것만 뒤에 붙인다.
"""

from __future__ import annotations

import random
import re
from datetime import timedelta

from academy_insight.crawler.raw_post import RawPost, SourceDescriptor
from academy_insight.utils.date_parser import now_kst

# 샘플 폴백 최대 건수
MAX_SAMPLE_POSTS = 5

# 샘플 게시 날짜 범위 (최근 N일)
_SAMPLE_DAYS = 30

SAMPLE_AUTHOR = "샘플사용자"

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_MOBILE_HOSTS = (
    (re.compile(r"^m\.cafe\.naver\.com"), "cafe.naver.com"),
    (re.compile(r"^m\.gall\.dcinside\.com"), "gall.dcinside.com"),
)


def normalize_url(url: str | None) -> str:
    """중복 비교용 URL 정규화.

    스킴 제거, 모바일 호스트를 PC 호스트로 통일, 쿼리 문자열과 끝 슬래시 제거.
    """
    if not url:
        return ""
    normalized = _SCHEME_RE.sub("", url.strip())
    for pattern, host in _MOBILE_HOSTS:
        normalized = pattern.sub(host, normalized)
    normalized = normalized.split("?", 1)[0]
    return normalized.rstrip("/")


def _dedup_key(post: RawPost) -> str:
    # URL이 없는 후보는 서로 다른 게시글로 취급한다
    return normalize_url(post.url) or f"id:{id(post)}"


def merge_posts(
    higher: list[RawPost],
    lower: list[RawPost],
    cap: int | None = None,
) -> list[RawPost]:
    """두 후보 목록을 정규화 URL 기준으로 병합한다.

    Args:
        higher: 충실도가 높은 후보 (원래 순서 유지, 우선 채택).
        lower: 충실도가 낮은 후보 (겹치지 않는 것만 추가).
        cap: 최대 건수. None이면 제한 없음.

    Returns:
        병합된 후보 목록.
    """
    seen: set[str] = set()
    merged: list[RawPost] = []

    for post in (*higher, *lower):
        if cap is not None and len(merged) >= cap:
            break
        key = _dedup_key(post)
        if key in seen:
            continue
        seen.add(key)
        merged.append(post)

    return merged


def count_overlaps(higher: list[RawPost], lower: list[RawPost]) -> int:
    """병합 시 URL 중복으로 버려지는 후보 수 (cap과 무관)."""
    seen: set[str] = set()
    dropped = 0
    for post in (*higher, *lower):
        key = _dedup_key(post)
        if key in seen:
            dropped += 1
        else:
            seen.add(key)
    return dropped


def generate_sample_posts(
    keyword: str,
    source: SourceDescriptor,
    count: int = MAX_SAMPLE_POSTS,
) -> list[RawPost]:
    """모든 전략이 0건일 때 대신 저장할 샘플 게시글을 만든다."""
    count = max(0, min(count, MAX_SAMPLE_POSTS))
    now = now_kst()
    base_url = (source.url or "https://cafe.naver.com").rstrip("/")
    posts: list[RawPost] = []

    for i in range(1, count + 1):
        posted_at = (now - timedelta(days=random.randrange(_SAMPLE_DAYS))).replace(microsecond=0)
        posts.append(
            RawPost(
                title=f"[샘플] {keyword} 관련 네이버카페 게시글 {i}",
                url=f"{base_url}?sample_{source.id}_{keyword}_{i}",
                keyword=keyword,
                source_type=source.source_type,
                content=f"{keyword}에 대한 샘플 게시글입니다.",
                author=SAMPLE_AUTHOR,
                posted_at=posted_at,
                posted_at_raw=posted_at.strftime("%Y.%m.%d."),
                view_count=random.randint(50, 549),
                comment_count=random.randint(0, 19),
                cafe_name=source.source_id or "",
                cafe_url=source.url or "",
                is_sample=True,
            )
        )

    return posts
