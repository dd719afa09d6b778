from stampede.common.response.code.base_code import BaseCode

class FailureCode(BaseCode):
    THRESHOLD_FAILED = ("하나 이상의 threshold를 통과하지 못했습니다", 1)
    CONFIG_ERROR = ("잘못된 시나리오 설정입니다", 2)
    INTERNAL_ERROR = ("실행 엔진 내부 오류가 발생했습니다", 3)
    CANCELLED = ("실행이 취소되었습니다", 1)
    ITERATION_ERROR = ("iteration 실행 중 오류가 발생했습니다", 0)
    NETWORK_ERROR = ("요청이 대상 서버에 도달하지 못했습니다", 0)
