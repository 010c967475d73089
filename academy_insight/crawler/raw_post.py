"""
수집 전략이 반환하는 게시글 후보와 소스 정보 데이터 클래스.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from academy_insight.db.models import UNKNOWN_AUTHOR, CrawlSource
from academy_insight.utils.date_parser import now_kst


@dataclass
class RawPost:
    """정규화 직후, 저장 전의 게시글 후보.

    Attributes:
        title: HTML이 제거된 제목.
        url: 게시글 URL. 얻을 수 없으면 빈 문자열.
        keyword: 이 후보를 찾은 검색 키워드.
        source_type: 수집 소스 종류 (SourceType 값).
        content: 본문 요약. 없으면 빈 문자열.
        author: 작성자. 알 수 없으면 "알 수 없음".
        posted_at: 게시 시각 (KST aware). 알 수 없으면 None.
        posted_at_raw: 파싱 전 원본 날짜 문자열.
        view_count: 조회수.
        comment_count: 댓글수.
        cafe_name: 네이버 카페 이름.
        cafe_url: 네이버 카페 URL.
        is_sample: 샘플 폴백으로 생성된 후보인지 여부.
    """

    title: str
    url: str
    keyword: str
    source_type: str
    content: str = ""
    author: str = UNKNOWN_AUTHOR
    posted_at: datetime | None = None
    posted_at_raw: str = ""
    view_count: int = 0
    comment_count: int = 0
    cafe_name: str = ""
    cafe_url: str = ""
    collected_at: datetime = field(default_factory=now_kst)
    is_sample: bool = False


@dataclass(frozen=True)
class SourceDescriptor:
    """수집 전략에 전달되는 소스 정보 (ORM 세션과 분리된 스냅샷).

    Attributes:
        id: crawl_sources.id.
        source_type: SourceType 값.
        name: 표시 이름.
        source_id: 카페 ID 또는 갤러리 ID.
        url: 소스 URL. 갤러리는 자동 감지된 목록 URL.
    """

    id: int
    source_type: str
    name: str
    source_id: str | None = None
    url: str | None = None

    @classmethod
    def from_model(cls, source: CrawlSource) -> SourceDescriptor:
        return cls(
            id=source.id,
            source_type=source.source_type,
            name=source.name,
            source_id=source.source_id,
            url=source.url,
        )
