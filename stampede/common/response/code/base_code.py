from enum import Enum


class BaseCode(Enum):
    """(메시지, 프로세스 종료 코드) 쌍"""

    def message(self) -> str:
        return self.value[0]

    def exit_code(self) -> int:
        return self.value[1]

    def is_failure(self) -> bool:
        return self.exit_code() != 0
