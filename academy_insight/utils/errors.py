"""AcademyInsight 공통 예외 정의."""


class AcademyInsightError(Exception):
    """패키지 전체의 기본 예외."""


class ConfigurationError(AcademyInsightError):
    """시작 시점에 감지되는 치명적인 설정 오류.

    재시도하지 않으며, 프로세스는 서비스를 시작하지 않아야 한다.
    """


class JobTransitionError(AcademyInsightError):
    """이미 종료된 CrawlJob에 상태 전이를 시도했을 때 발생한다."""
