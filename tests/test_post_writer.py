"""
Tests for crawler/post_writer.py against an in-memory database.
"""

from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import false, func, select

from academy_insight.crawler.post_writer import PostWriter, UpsertOutcome, canonical_key
from academy_insight.crawler.raw_post import RawPost
from academy_insight.db.connection import get_session
from academy_insight.db.models import UNKNOWN_AUTHOR, Post
from academy_insight.utils.date_parser import KST


def _candidate(**overrides) -> RawPost:
    fields = dict(
        title="에듀윌 후기",
        url="https://cafe.naver.com/gongdream/1001",
        keyword="에듀윌",
        source_type="naver_cafe",
        posted_at=datetime(2026, 2, 5, 10, 0, tzinfo=KST),
        view_count=10,
        comment_count=2,
    )
    fields.update(overrides)
    return RawPost(**fields)


async def _posts() -> list[Post]:
    async with get_session() as session:
        return list((await session.execute(select(Post).order_by(Post.id))).scalars().all())


class LookupMissSession:
    """Session whose post_url lookup ran before a concurrent insert committed."""

    def __init__(self, session):
        self._session = session

    async def execute(self, statement, *args, **kwargs):
        return await self._session.execute(select(Post).where(false()))

    def add(self, instance):
        self._session.add(instance)


@asynccontextmanager
async def lookup_miss_session():
    async with get_session() as session:
        yield LookupMissSession(session)


def test_canonical_key_prefers_url():
    assert canonical_key(_candidate()) == "https://cafe.naver.com/gongdream/1001"


def test_canonical_key_is_deterministic_without_url():
    first = canonical_key(_candidate(url=""))
    second = canonical_key(_candidate(url="", view_count=999))
    other = canonical_key(_candidate(url="", title="다른 제목"))

    assert first.startswith("synthetic:naver_cafe:")
    assert first == second
    assert first != other


async def test_save_then_duplicate(make_academy, make_source):
    academy = await make_academy()
    source = await make_source()
    writer = PostWriter()

    assert await writer.upsert(_candidate(), source.id, academy.id) == UpsertOutcome.SAVED
    assert await writer.upsert(_candidate(), source.id, academy.id) == UpsertOutcome.DUPLICATE

    posts = await _posts()
    assert len(posts) == 1
    assert posts[0].academy_id == academy.id
    assert posts[0].source_id == source.id
    assert posts[0].author == UNKNOWN_AUTHOR


async def test_counts_only_ratchet_upward(make_academy, make_source):
    academy = await make_academy()
    source = await make_source()
    writer = PostWriter()

    await writer.upsert(_candidate(view_count=10, comment_count=5), source.id, academy.id)
    outcome = await writer.upsert(_candidate(view_count=50, comment_count=1), source.id, academy.id)
    assert outcome == UpsertOutcome.UPDATED

    outcome = await writer.upsert(_candidate(view_count=20, comment_count=0), source.id, academy.id)
    assert outcome == UpsertOutcome.DUPLICATE

    [post] = await _posts()
    assert post.view_count == 50
    assert post.comment_count == 5


async def test_urlless_candidates_are_stored_under_synthetic_key(make_academy, make_source):
    academy = await make_academy()
    source = await make_source()
    writer = PostWriter()

    assert await writer.upsert(_candidate(url=""), source.id, academy.id) == UpsertOutcome.SAVED
    assert await writer.upsert(_candidate(url=""), source.id, academy.id) == UpsertOutcome.DUPLICATE

    [post] = await _posts()
    assert post.post_url.startswith("synthetic:")


async def test_database_error_is_reported_not_raised(db):
    @asynccontextmanager
    async def broken_session():
        raise RuntimeError("connection lost")
        yield  # pragma: no cover

    writer = PostWriter(session_factory=broken_session)
    assert await writer.upsert(_candidate(), 1, 1) == UpsertOutcome.ERROR


async def test_saved_post_count_matches_distinct_urls(make_academy, make_source):
    academy = await make_academy()
    source = await make_source()
    writer = PostWriter()

    for i in [1, 2, 2, 3, 1]:
        await writer.upsert(
            _candidate(url=f"https://cafe.naver.com/gongdream/{i}"), source.id, academy.id
        )

    async with get_session() as session:
        assert await session.scalar(select(func.count(Post.id))) == 3


async def test_concurrent_insert_is_reported_as_duplicate(make_academy, make_source):
    academy = await make_academy()
    source = await make_source()
    assert await PostWriter().upsert(_candidate(), source.id, academy.id) == UpsertOutcome.SAVED

    racing = PostWriter(session_factory=lookup_miss_session)
    outcome = await racing.upsert(_candidate(view_count=99), source.id, academy.id)

    assert outcome == UpsertOutcome.DUPLICATE
    [post] = await _posts()
    assert post.view_count == 10


async def test_cafe_metadata_is_stored(make_academy, make_source):
    academy = await make_academy()
    source = await make_source()
    candidate = _candidate(cafe_name="공드림", cafe_url="https://cafe.naver.com/gongdream")

    await PostWriter().upsert(candidate, source.id, academy.id)

    [post] = await _posts()
    assert post.cafe_name == "공드림"
    assert post.cafe_url == "https://cafe.naver.com/gongdream"
