from stampede.common.response.code.base_code import BaseCode
from stampede.common.response.code.failure_code import FailureCode
from stampede.common.response.code.success_code import SuccessCode

__all__ = ["BaseCode", "FailureCode", "SuccessCode"]
