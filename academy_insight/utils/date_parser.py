"""
한국어 커뮤니티 날짜/숫자 문자열 정규화.

네이버 카페, DC인사이드 등에서 쓰이는 다양한 날짜 표기를 KST 기준
timezone-aware datetime으로 변환하고, "1,234건" 같은 숫자 문자열을
정수로 변환한다. I/O가 없는 순수 함수만 제공한다.

지원 날짜 형식 (우선순위 순):
- 4자리 연도: "2026.02.05", "2026-02-05", "2026/02/05.", "2026.02.05 14:30"
- 2자리 연도: "26/02/09", "26.02.09" (연도 = 2000 + 값)
- 월.일: "02.05", "2.5." (now 기준 올해)
- 상대 시간: "N초 전", "N분 전", "N시간 전", "N일 전", "N주 전", "N개월 전", "어제"
- 시각만: "14:30" (now 기준 오늘)
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

KST = ZoneInfo("Asia/Seoul")

_FULL_DATE_RE = re.compile(
    r"(\d{4})[.\-/](\d{1,2})[.\-/](\d{1,2})\.?"
    r"(?:\s+(\d{1,2}):(\d{2})(?::(\d{2}))?)?"
)
_SHORT_YEAR_RE = re.compile(r"(?<!\d)(\d{2})[.\-/](\d{1,2})[.\-/](\d{1,2})(?!\d)")
_MONTH_DAY_RE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.?$")
_TIME_ONLY_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_YESTERDAY_TOKEN = "어제"

# (패턴, timedelta 인자명) -- 개월은 달력 계산이 필요해 별도로 처리한다
_RELATIVE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(\d+)\s*초\s*전"), "seconds"),
    (re.compile(r"(\d+)\s*분\s*전"), "minutes"),
    (re.compile(r"(\d+)\s*시간\s*전"), "hours"),
    (re.compile(r"(\d+)\s*일\s*전"), "days"),
    (re.compile(r"(\d+)\s*주\s*전"), "weeks"),
)
_MONTHS_AGO_RE = re.compile(r"(\d+)\s*개월\s*전")

_NON_DIGIT_RE = re.compile(r"[^0-9]")


def now_kst() -> datetime:
    """현재 KST 시각."""
    return datetime.now(tz=KST)


def _resolve_now(now: datetime | None) -> datetime:
    """기준 시각을 KST aware datetime으로 정규화한다. naive 값은 KST로 간주한다."""
    if now is None:
        return now_kst()
    if now.tzinfo is None:
        return now.replace(tzinfo=KST)
    return now


def _build(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> datetime | None:
    try:
        return datetime(year, month, day, hour, minute, second, tzinfo=KST)
    except ValueError:
        return None


def _months_ago(now: datetime, months: int) -> datetime:
    """now에서 months 개월 전. 말일이 없으면 그 달 마지막 날로 맞춘다."""
    total = now.year * 12 + (now.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def parse_date(text: str | None, now: datetime | None = None) -> datetime | None:
    """날짜 문자열을 KST aware datetime으로 파싱한다.

    Args:
        text: 파싱할 날짜 문자열.
        now: 상대 시간/올해 판단 기준 시각. None이면 현재 KST 시각.

    Returns:
        파싱된 datetime. 어떤 형식에도 맞지 않으면 None (epoch 0이 아니다).
    """
    if not text:
        return None
    text = text.strip()
    if not text:
        return None

    current = _resolve_now(now)

    match = _FULL_DATE_RE.search(text)
    if match:
        year, month, day = int(match.group(1)), int(match.group(2)), int(match.group(3))
        hour = int(match.group(4)) if match.group(4) else 0
        minute = int(match.group(5)) if match.group(5) else 0
        second = int(match.group(6)) if match.group(6) else 0
        return _build(year, month, day, hour, minute, second)

    match = _SHORT_YEAR_RE.search(text)
    if match:
        return _build(2000 + int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = _MONTH_DAY_RE.match(text)
    if match:
        return _build(current.year, int(match.group(1)), int(match.group(2)))

    for pattern, unit in _RELATIVE_PATTERNS:
        match = pattern.search(text)
        if match:
            return current - timedelta(**{unit: int(match.group(1))})

    match = _MONTHS_AGO_RE.search(text)
    if match:
        return _months_ago(current, int(match.group(1)))

    if _YESTERDAY_TOKEN in text:
        return current - timedelta(days=1)

    match = _TIME_ONLY_RE.match(text)
    if match:
        try:
            return current.replace(
                hour=int(match.group(1)),
                minute=int(match.group(2)),
                second=int(match.group(3) or 0),
                microsecond=0,
            )
        except ValueError:
            return None

    return None


def parse_count(text: str | None) -> int:
    """숫자 이외의 문자를 모두 제거하고 정수로 변환한다. 빈 값은 0."""
    if not text:
        return 0
    cleaned = _NON_DIGIT_RE.sub("", str(text))
    return int(cleaned) if cleaned else 0


def start_of_day(day: date) -> datetime:
    """해당 날짜 00:00:00 KST."""
    return datetime.combine(day, time.min, tzinfo=KST)


def end_of_day(day: date) -> datetime:
    """해당 날짜 23:59:59.999999 KST (종료일 당일 포함 비교용)."""
    return datetime.combine(day, time.max, tzinfo=KST)


def is_within_date_range(
    value: datetime | None,
    start_date: date | None,
    end_date: date | None,
    *,
    include_missing: bool,
) -> bool:
    """게시 시각이 [start_date 00:00, end_date 23:59:59] KST 범위에 있는지 판단한다.

    범위가 주어지지 않은 쪽은 열린 구간으로 본다. value가 None이면
    include_missing 값을 그대로 반환한다.
    """
    if value is None:
        return include_missing
    if value.tzinfo is None:
        value = value.replace(tzinfo=KST)
    if start_date is not None and value < start_of_day(start_date):
        return False
    if end_date is not None and value > end_of_day(end_date):
        return False
    return True


def is_before_start(value: datetime | None, start_date: date | None) -> bool:
    """value가 시작일 00:00 KST보다 이전인지. 날짜를 모르면 False."""
    if value is None or start_date is None:
        return False
    if value.tzinfo is None:
        value = value.replace(tzinfo=KST)
    return value < start_of_day(start_date)
