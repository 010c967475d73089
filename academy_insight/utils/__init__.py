"""유틸리티 모듈 패키지."""
from academy_insight.utils.config import Settings, get_settings
from academy_insight.utils.date_parser import KST, parse_count, parse_date
from academy_insight.utils.errors import AcademyInsightError, ConfigurationError
from academy_insight.utils.logger import get_logger, setup_logging

__all__ = [
    "AcademyInsightError",
    "ConfigurationError",
    "KST",
    "Settings",
    "get_settings",
    "get_logger",
    "parse_count",
    "parse_date",
    "setup_logging",
]
