"""
프로젝트 설정 관리
.env 파일에서 환경변수를 로드하여 타입-안전한 설정 객체 제공
"""
from pydantic_settings import BaseSettings

from academy_insight.utils.errors import ConfigurationError


class Settings(BaseSettings):
    """애플리케이션 전체 설정을 관리하는 클래스."""

    # 크롤링 스케줄 (cron 표현식, KST 기준)
    crawl_enabled: bool = True
    crawl_schedule: str = "0 4 * * *"
    crawl_timezone: str = "Asia/Seoul"

    # 네이버 검색 API -- 크롤링 활성화 시 필수
    naver_client_id: str = ""
    naver_client_secret: str = ""

    # Database (SQLAlchemy async URL, 예: postgresql+asyncpg://user:pw@host/db)
    database_url: str = ""
    db_echo: bool = False

    # TeacherHub 분석 서비스
    teacherhub_api_url: str = "http://host.docker.internal:9010"

    # 크롤링 동작
    crawl_max_results: int = 20
    crawl_lookback_days: int = 7
    crawl_concurrency: int = 1
    sample_fallback_enabled: bool = True
    # 0이면 오래된 running 작업 정리를 하지 않는다
    stale_job_timeout_minutes: int = 0

    log_level: str = "INFO"
    # 빈 문자열이면 파일 로그를 남기지 않는다
    log_dir: str = "logs"

    # API Server
    api_port: int = 5000

    @property
    def naver_api_configured(self) -> bool:
        """네이버 검색 API 키가 모두 설정되었는지 여부."""
        return bool(self.naver_client_id and self.naver_client_secret)

    def validate_for_startup(self) -> None:
        """프로세스 시작 전에 치명적인 설정 누락을 검사한다.

        Raises:
            ConfigurationError: DB URL이 없거나, 크롤링이 활성화되었는데
                네이버 API 키가 없거나, 동시성 설정이 잘못된 경우.
        """
        if not self.database_url:
            raise ConfigurationError(
                "DATABASE_URL 환경변수가 설정되지 않았습니다. "
                ".env 파일에 DATABASE_URL을 반드시 설정하세요."
            )
        if self.crawl_enabled and not self.naver_api_configured:
            raise ConfigurationError(
                "NAVER_CLIENT_ID / NAVER_CLIENT_SECRET 환경변수가 필요합니다. "
                "https://developers.naver.com 에서 애플리케이션 등록 후 발급하세요."
            )
        if self.crawl_concurrency < 1:
            raise ConfigurationError(
                f"CRAWL_CONCURRENCY는 1 이상이어야 합니다: {self.crawl_concurrency}"
            )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


_settings: Settings | None = None


def get_settings() -> Settings:
    """Settings 싱글톤 인스턴스를 반환한다."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """캐시된 Settings를 버린다. 환경변수를 바꾼 뒤 다시 읽을 때 사용한다."""
    global _settings
    _settings = None
