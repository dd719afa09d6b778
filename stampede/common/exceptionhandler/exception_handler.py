import json
import logging
import traceback
from typing import Callable

from stampede.common.exception import ConfigError, InternalError, LoadTestException, ThresholdFailure
from stampede.common.response.code import FailureCode

logger = logging.getLogger(__name__)


def handle_exception(exc: BaseException) -> int:
    """CLI 최상위에서 예외를 종료 코드로 변환"""
    # 실행 전 설정 오류
    if isinstance(exc, ConfigError):
        logger.error(f"Configuration error: {exc.message}")
        return exc.code.exit_code()

    # 정상 종료되었지만 threshold 미달
    if isinstance(exc, ThresholdFailure):
        logger.error(exc.message)
        return exc.code.exit_code()

    # 엔진 불변식 위반 -> 상태 덤프 출력
    if isinstance(exc, InternalError):
        logger.error(f"InternalError occurred: {exc.message}", exc_info=True)
        logger.error("State dump:\n" + json.dumps(exc.state, indent=2, default=str, ensure_ascii=False))
        return exc.code.exit_code()

    if isinstance(exc, LoadTestException):
        logger.error(f"LoadTestException occurred: {exc.code}: {exc.message}", exc_info=True)
        # 종료 코드가 없는 예외가 최상위까지 올라온 경우는 엔진 오류
        return exc.code.exit_code() if exc.code.is_failure() else FailureCode.INTERNAL_ERROR.exit_code()

    # 예상치 못한 모든 예외 처리
    tb_str = ''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(f"Unhandled exception occurred: {exc}\nStack trace:\n{tb_str}")
    return FailureCode.INTERNAL_ERROR.exit_code()


def run_with_exception_handler(command: Callable[[], int]) -> int:
    try:
        return command()
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return FailureCode.CANCELLED.exit_code()
    except Exception as exc:
        return handle_exception(exc)
