"""
프로젝트 전체 로깅 설정
- 콘솔 + 파일 출력 (LOG_DIR 미설정 시 콘솔만)
- 날짜별 로그 파일 로테이션
- 모듈별 로거 생성 헬퍼
"""
import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from academy_insight.utils.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "crawler.log"

# 크롤링/HTTP 라이브러리의 디버그 로그는 WARNING 이상만 남긴다
_NOISY_LOGGERS = ("aiohttp", "httpx", "httpcore", "apscheduler", "asyncio", "sqlalchemy.engine")

_initialized: bool = False


def _build_file_handler(log_dir: Path, level: int) -> TimedRotatingFileHandler:
    """자정마다 회전하고 30일치를 보관하는 파일 핸들러를 만든다."""
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=log_dir / LOG_FILE_NAME,
        when="midnight",
        interval=1,
        backupCount=30,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.suffix = "%Y-%m-%d"
    return handler


def setup_logging() -> None:
    """루트 로거에 콘솔 핸들러와 파일 핸들러를 설정한다.

    최초 한 번만 실행되며, 이후 호출은 무시된다.
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(console_handler)

    if settings.log_dir:
        root_logger.addHandler(_build_file_handler(Path(settings.log_dir), level))

    for noisy_logger in _NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """모듈별 로거를 생성하여 반환한다.

    Args:
        name: 로거 이름. 보통 ``__name__`` 을 전달한다.

    Returns:
        설정이 적용된 ``logging.Logger`` 인스턴스.
    """
    setup_logging()
    return logging.getLogger(name)
