from typing import Any, Dict, Optional

from stampede.common.response.code import BaseCode, FailureCode


class LoadTestException(Exception):
    def __init__(self, code: BaseCode, message: str = None):
        self.code = code
        self.message = message or code.message()
        super().__init__(self.message)


class ConfigError(LoadTestException):
    """실행 전에 검출되는 설정 오류 (stage, threshold, 시나리오 파일)"""

    def __init__(self, message: str = None):
        super().__init__(FailureCode.CONFIG_ERROR, message)


class InternalError(LoadTestException):
    """
    레지스트리/스케줄러 불변식 위반

    state에는 오류 시점의 실행 상태 덤프가 담긴다.
    """

    def __init__(self, message: str = None, state: Optional[Dict[str, Any]] = None):
        super().__init__(FailureCode.INTERNAL_ERROR, message)
        self.state = state or {}


class IterationError(LoadTestException):
    """iteration 함수가 던진 예외를 감싼다. 메트릭으로만 기록되고 실행은 계속된다."""

    def __init__(self, message: str = None, cause: Optional[BaseException] = None):
        super().__init__(FailureCode.ITERATION_ERROR, message)
        self.cause = cause


class NetworkError(LoadTestException):
    """연결 수준의 요청 실패"""

    def __init__(self, message: str = None, url: Optional[str] = None):
        super().__init__(FailureCode.NETWORK_ERROR, message)
        self.url = url


class ThresholdFailure(LoadTestException):
    def __init__(self, message: str = None, failed: Optional[list] = None):
        super().__init__(FailureCode.THRESHOLD_FAILED, message)
        self.failed = failed or []
