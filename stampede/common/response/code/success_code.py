from stampede.common.response.code.base_code import BaseCode

class SuccessCode(BaseCode):
    PASSED = ("모든 threshold를 통과하였습니다.", 0)
