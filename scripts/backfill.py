#!/usr/bin/env python3
"""
과거 기간 일괄 수집(백필) 스크립트.

스케줄러를 띄우지 않고 지정 기간에 대해 스윕을 한 번 실행한 뒤,
학원별 작업/저장 건수를 출력하고 종료한다.

사용법:
    .venv/bin/python scripts/backfill.py
    # 기간 지정:
    .venv/bin/python scripts/backfill.py --start 2024-03-01 --end 2024-03-31
    # DC인사이드만:
    .venv/bin/python scripts/backfill.py --source-type dcinside
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import date
from pathlib import Path

# 프로젝트 루트를 sys.path에 추가한다.
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(_PROJECT_ROOT))

from dotenv import load_dotenv

load_dotenv()

from academy_insight.crawler.crawler_manager import CrawlerManager, SweepResult
from academy_insight.db.connection import close_db, init_db
from academy_insight.db.models import ALL_SOURCE_TYPES, SourceType
from academy_insight.utils.config import get_settings
from academy_insight.utils.errors import ConfigurationError
from academy_insight.utils.logger import get_logger

logger = get_logger(__name__)

_NAVER_SOURCE_TYPES = {SourceType.NAVER_CAFE.value, SourceType.NAVER_CAFE_WEB.value}


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"날짜 형식은 YYYY-MM-DD 입니다: {value}") from exc


def check_settings(source_types: list[str] | None) -> None:
    """백필에 필요한 설정을 확인한다.

    Raises:
        ConfigurationError: DB URL이 없거나, 네이버 소스를 포함하는데 API 키가 없는 경우.
    """
    settings = get_settings()
    if not settings.database_url:
        raise ConfigurationError("DATABASE_URL 환경변수가 설정되지 않았습니다.")
    wants_naver = source_types is None or bool(_NAVER_SOURCE_TYPES & set(source_types))
    if wants_naver and not settings.naver_api_configured:
        raise ConfigurationError(
            "NAVER_CLIENT_ID / NAVER_CLIENT_SECRET 환경변수가 필요합니다. "
            "DC인사이드만 수집하려면 --source-type dcinside 를 지정하세요."
        )


def print_summary(result: SweepResult) -> None:
    print()
    print("=" * 60)
    print(f"  백필 완료: 학원 {result.total_academies}곳, 작업 {result.total_jobs}건")
    print(f"  성공 {result.completed}건 / 실패 {result.failed}건")
    print(f"  발견 {result.total_posts_found}건 / 신규 저장 {result.total_posts_saved}건")
    print("=" * 60)
    for summary in result.results:
        if summary.error:
            print(f"  [실패] {summary.academy}: {summary.error}")
        else:
            print(
                f"  {summary.academy}: 저장 {summary.total_posts_saved}건 "
                f"({summary.completed}/{summary.total_jobs} 완료)"
            )
    print()


async def run_backfill(
    start_date: date | None,
    end_date: date | None,
    source_types: list[str] | None,
) -> int:
    """스윕을 한 번 실행하고 종료 코드를 반환한다."""
    try:
        check_settings(source_types)
        await init_db()
    except ConfigurationError as e:
        logger.error("설정 오류로 백필을 시작할 수 없습니다: %s", e)
        await close_db()
        return 1

    manager = CrawlerManager()
    start, end = manager.default_date_range()
    start_date = start_date or start
    end_date = end_date or end
    if start_date > end_date:
        logger.error("시작일이 종료일보다 늦습니다: %s > %s", start_date, end_date)
        await close_db()
        return 1

    logger.info("백필 시작: %s ~ %s (소스: %s)", start_date, end_date, source_types or "전체")
    try:
        result = await manager.crawl_all(start_date, end_date, source_types)
    finally:
        await manager.cleanup()
        await close_db()

    print_summary(result)
    return 0 if result.failed == 0 else 2


def main() -> None:
    parser = argparse.ArgumentParser(description="AcademyInsight 과거 기간 백필 수집")
    parser.add_argument("--start", type=_parse_day, help="시작일 (YYYY-MM-DD)")
    parser.add_argument("--end", type=_parse_day, help="종료일 (YYYY-MM-DD)")
    parser.add_argument(
        "--source-type",
        action="append",
        choices=list(ALL_SOURCE_TYPES),
        dest="source_types",
        help="수집할 소스 종류 (여러 번 지정 가능, 기본: 전체)",
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(run_backfill(args.start, args.end, args.source_types)))


if __name__ == "__main__":
    main()
