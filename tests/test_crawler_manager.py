"""
Tests for crawler/crawler_manager.py: job pipeline and sweep accounting.
"""

from datetime import date, datetime

from sqlalchemy import select

from academy_insight.crawler.base_crawler import BaseStrategy, SourceRateLimiter
from academy_insight.crawler.crawler_manager import CrawlerManager
from academy_insight.crawler.job_tracker import CrawlJobTracker
from academy_insight.crawler.post_writer import PostWriter
from academy_insight.crawler.raw_post import RawPost, SourceDescriptor
from academy_insight.db.connection import get_session
from academy_insight.db.models import CrawlJob, Post
from academy_insight.utils.config import Settings
from academy_insight.utils.date_parser import KST

START, END = date(2026, 2, 1), date(2026, 2, 9)


def _post(url: str, keyword: str = "에듀윌") -> RawPost:
    return RawPost(title=f"{keyword} 글", url=url, keyword=keyword, source_type="naver_cafe")


class StaticStrategy(BaseStrategy):
    name = "static"

    def __init__(self, posts=None, error: Exception | None = None):
        super().__init__(rate_limiter=SourceRateLimiter(), request_interval=0)
        self.posts = posts or []
        self.error = error
        self.calls: list[tuple] = []

    async def search(self, source, keyword, max_results, start_date=None, end_date=None):
        self.calls.append((source.id, keyword, max_results, start_date, end_date))
        if self.error is not None:
            raise self.error
        return list(self.posts)


class FakeDetector:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls = 0

    async def detect_all(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return {"checked": 0, "updated": 0, "deactivated": 0}


class ExplodingWriter(PostWriter):
    async def upsert(self, candidate, source_id, academy_id):
        raise RuntimeError("writer exploded")


class StartFailingTracker(CrawlJobTracker):
    def __init__(self, failing_keyword: str):
        super().__init__()
        self.failing_keyword = failing_keyword

    async def start(self, source_id, academy_id, keyword):
        if keyword == self.failing_keyword:
            raise RuntimeError("db hiccup")
        return await super().start(source_id, academy_id, keyword)


def _settings(**overrides) -> Settings:
    values = dict(
        database_url="sqlite+aiosqlite:///:memory:",
        crawl_enabled=False,
        sample_fallback_enabled=False,
        crawl_max_results=20,
        log_dir="",
    )
    values.update(overrides)
    return Settings(**values)


def _manager(strategies, settings=None, **kwargs) -> CrawlerManager:
    kwargs.setdefault("detector", FakeDetector())
    return CrawlerManager(settings=settings or _settings(), strategies=strategies, **kwargs)


def _descriptor(source) -> SourceDescriptor:
    return SourceDescriptor.from_model(source)


async def test_job_merges_strategies_and_counts_duplicates(make_academy, make_source):
    academy = await make_academy()
    source = await make_source()
    higher = StaticStrategy(
        [
            _post("https://cafe.naver.com/gongdream/1"),
            _post("https://cafe.naver.com/gongdream/2"),
            _post("https://cafe.naver.com/gongdream/3"),
        ]
    )
    lower = StaticStrategy(
        [
            _post("https://m.cafe.naver.com/gongdream/3"),
            _post("https://cafe.naver.com/gongdream/4"),
        ]
    )
    manager = _manager({"naver_cafe": [higher, lower]})

    job = await manager.execute_crawl_job(
        _descriptor(source), "에듀윌", academy.id, start_date=START, end_date=END
    )

    assert job.status == "completed"
    assert (job.posts_found, job.posts_saved, job.duplicates_skipped) == (5, 4, 1)
    assert higher.calls == [(source.id, "에듀윌", 20, START, END)]

    rerun = await manager.execute_crawl_job(
        _descriptor(source), "에듀윌", academy.id, start_date=START, end_date=END
    )
    assert (rerun.posts_found, rerun.posts_saved, rerun.duplicates_skipped) == (5, 0, 5)

    async with get_session() as session:
        urls = (await session.execute(select(Post.post_url).order_by(Post.id))).scalars().all()
    assert urls == [f"https://cafe.naver.com/gongdream/{i}" for i in range(1, 5)]


async def test_dated_page_results_merge_with_undated_api_results(make_academy, make_source):
    academy = await make_academy(name="ABC", keywords=["ABC어학원"])
    source = await make_source()
    dated = [
        RawPost(
            title="ABC어학원 후기",
            url=f"https://cafe.naver.com/gongdream/{n}",
            keyword="ABC어학원",
            source_type="naver_cafe",
            posted_at=datetime(2026, 2, 5, 9, 0, tzinfo=KST),
        )
        for n in (1, 2)
    ]
    undated = [_post(f"https://cafe.naver.com/gongdream/{n}", "ABC어학원") for n in (2, 3, 4)]
    manager = _manager({"naver_cafe": [StaticStrategy(dated), StaticStrategy(undated)]})

    job = await manager.execute_crawl_job(
        _descriptor(source), "ABC어학원", academy.id, start_date=START, end_date=END
    )

    assert job.status == "completed"
    assert (job.posts_found, job.posts_saved, job.duplicates_skipped) == (5, 4, 1)
    async with get_session() as session:
        overlapping = (
            await session.execute(
                select(Post).where(Post.post_url == "https://cafe.naver.com/gongdream/2")
            )
        ).scalar_one()
    assert overlapping.posted_at is not None


async def test_failing_strategy_is_isolated(make_academy, make_source):
    academy = await make_academy()
    source = await make_source()
    broken = StaticStrategy(error=RuntimeError("blocked"))
    working = StaticStrategy([_post("https://cafe.naver.com/gongdream/9")])
    manager = _manager({"naver_cafe": [broken, working]})

    job = await manager.execute_crawl_job(_descriptor(source), "에듀윌", academy.id)

    assert job.status == "completed"
    assert job.posts_saved == 1


async def test_writer_crash_fails_job(make_academy, make_source):
    academy = await make_academy()
    source = await make_source()
    manager = _manager(
        {"naver_cafe": [StaticStrategy([_post("https://cafe.naver.com/gongdream/1")])]},
        writer=ExplodingWriter(),
    )

    job = await manager.execute_crawl_job(_descriptor(source), "에듀윌", academy.id)

    assert job.status == "failed"
    assert "writer exploded" in job.error
    async with get_session() as session:
        stored = await session.get(CrawlJob, job.id)
    assert stored.status == "failed"
    assert stored.completed_at is not None


async def test_sample_fallback_when_nothing_found(make_academy, make_source):
    academy = await make_academy()
    source = await make_source()
    manager = _manager(
        {"naver_cafe": [StaticStrategy([])]},
        settings=_settings(sample_fallback_enabled=True),
    )

    job = await manager.execute_crawl_job(_descriptor(source), "에듀윌", academy.id)

    assert job.status == "completed"
    assert job.posts_found == 5
    assert job.posts_saved == 5
    async with get_session() as session:
        samples = (await session.execute(select(Post))).scalars().all()
    assert len(samples) == 5
    assert all(post.is_sample for post in samples)


async def test_no_sample_fallback_for_gallery_sources(make_academy, make_source):
    academy = await make_academy()
    source = await make_source(name="공시 갤러리", source_type="dcinside", source_id="gongsi", url=None)
    manager = _manager(
        {"dcinside": [StaticStrategy([])]},
        settings=_settings(sample_fallback_enabled=True),
    )

    job = await manager.execute_crawl_job(_descriptor(source), "에듀윌", academy.id)

    assert job.status == "completed"
    assert job.posts_saved == 0


async def test_gallery_search_is_uncapped(make_academy, make_source):
    academy = await make_academy()
    source = await make_source(name="공시 갤러리", source_type="dcinside", source_id="gongsi", url=None)
    strategy = StaticStrategy([])
    manager = _manager({"dcinside": [strategy]})

    await manager.execute_crawl_job(_descriptor(source), "에듀윌", academy.id, max_results=3)

    assert strategy.calls[0][2] is None


async def test_crawl_all_sweeps_academy_keyword_source_triples(make_academy, make_source):
    await make_academy(name="에듀윌", keywords=["에듀윌", "에듀윌 후기"])
    await make_academy(name="해커스", keywords=["해커스"], source_types=["naver_cafe"])
    await make_academy(name="폐업학원", keywords=["폐업"], is_active=False)
    await make_source()
    await make_source(name="공시 갤러리", source_type="dcinside", source_id="gongsi", url=None)
    await make_source(name="닫힌 카페", source_id="closed", is_active=False)

    naver = StaticStrategy([_post("https://cafe.naver.com/gongdream/1")])
    gallery = StaticStrategy(error=RuntimeError("gallery down"))
    detector = FakeDetector()
    manager = _manager({"naver_cafe": [naver], "dcinside": [gallery]}, detector=detector)

    result = await manager.crawl_all(START, END)

    assert detector.calls == 1
    assert result.total_academies == 2
    # 에듀윌: 2 keywords x 2 sources, 해커스: 1 keyword x 1 source
    assert result.total_jobs == 5
    assert result.completed == 5
    assert result.failed == 0
    assert {(call[1], call[3], call[4]) for call in naver.calls} == {
        ("에듀윌", START, END),
        ("에듀윌 후기", START, END),
        ("해커스", START, END),
    }

    summaries = {summary.academy: summary for summary in result.results}
    assert summaries["에듀윌"].total_jobs == 4
    assert summaries["해커스"].total_jobs == 1
    assert result.total_posts_saved == 1
    assert result.to_dict()["results"][0]["academy"] == "에듀윌"


async def test_crawl_all_counts_failed_jobs_and_survives_detector_error(make_academy, make_source):
    await make_academy(keywords=["에듀윌"])
    await make_source()
    await make_source(name="공시 갤러리", source_type="dcinside", source_id="gongsi", url=None)

    manager = _manager(
        {"naver_cafe": [StaticStrategy([_post("https://cafe.naver.com/gongdream/1")])]},
        detector=FakeDetector(error=RuntimeError("probe failed")),
    )

    result = await manager.crawl_all(START, END)

    assert result.total_jobs == 2
    assert result.completed == 1
    assert result.failed == 1
    async with get_session() as session:
        statuses = sorted(
            (await session.execute(select(CrawlJob.status))).scalars().all()
        )
    assert statuses == ["completed", "failed"]


async def test_crawl_all_source_type_filter_skips_detection(make_academy, make_source):
    await make_academy(keywords=["에듀윌"])
    await make_source()
    await make_source(name="공시 갤러리", source_type="dcinside", source_id="gongsi", url=None)
    detector = FakeDetector()
    manager = _manager({"naver_cafe": [StaticStrategy([])]}, detector=detector)

    result = await manager.crawl_all(START, END, source_types=["naver_cafe"])

    assert detector.calls == 0
    assert result.total_jobs == 1


def test_strategy_status():
    manager = _manager({"naver_cafe": [StaticStrategy(), StaticStrategy()]})
    assert manager.get_strategy_status() == {"naver_cafe": ["static", "static"]}


def test_default_registry_builds_shared_instances():
    manager = CrawlerManager(settings=_settings(), detector=FakeDetector())
    status = manager.get_strategy_status()

    assert status["naver_cafe"] == ["naver_search", "naver_api"]
    assert status["naver_cafe_web"] == ["naver_search"]
    assert status["dcinside"] == ["dcinside"]


async def test_zero_cap_saves_no_samples(make_academy, make_source):
    academy = await make_academy()
    source = await make_source()
    manager = _manager(
        {"naver_cafe": [StaticStrategy([])]},
        settings=_settings(sample_fallback_enabled=True),
    )

    job = await manager.execute_crawl_job(_descriptor(source), "에듀윌", academy.id, max_results=0)

    assert job.status == "completed"
    assert (job.posts_found, job.posts_saved) == (0, 0)


async def test_samples_from_sources_without_url_do_not_collide(make_academy, make_source):
    academy = await make_academy()
    first = await make_source(name="카페 A", source_id="cafe_a", url=None)
    second = await make_source(name="카페 B", source_id="cafe_b", url=None)
    manager = _manager(
        {"naver_cafe": [StaticStrategy([])]},
        settings=_settings(sample_fallback_enabled=True),
    )

    jobs = [
        await manager.execute_crawl_job(_descriptor(source), "에듀윌", academy.id)
        for source in (first, second)
    ]

    assert [(job.posts_saved, job.duplicates_skipped) for job in jobs] == [(5, 0), (5, 0)]
    async with get_session() as session:
        owners = (await session.execute(select(Post.source_id))).scalars().all()
    assert sorted(owners) == [first.id] * 5 + [second.id] * 5


async def test_crawl_all_survives_tracker_start_failure(make_academy, make_source):
    await make_academy(keywords=["bad", "good1", "good2"])
    await make_source()
    manager = _manager(
        {"naver_cafe": [StaticStrategy([_post("https://cafe.naver.com/gongdream/1")])]},
        settings=_settings(crawl_concurrency=3),
        tracker=StartFailingTracker("bad"),
    )

    result = await manager.crawl_all(START, END)

    assert (result.total_jobs, result.completed, result.failed) == (3, 2, 1)
    summary = result.results[0]
    assert (summary.total_jobs, summary.completed) == (3, 2)
    assert "db hiccup" in summary.error
    async with get_session() as session:
        rows = [
            tuple(row)
            for row in await session.execute(select(CrawlJob.keyword, CrawlJob.status))
        ]
    assert sorted(rows) == [("good1", "completed"), ("good2", "completed")]
