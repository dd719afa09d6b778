import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Mapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckResult:
    """이름이 있는 단일 boolean 검증 결과"""
    name: str
    passed: bool


def check(value: Any, predicates: Mapping[str, Callable[[Any], Any]]) -> List[CheckResult]:
    """
    k6의 check()와 동일하게 값 하나에 여러 조건을 적용

    조건 함수가 예외를 던지면 해당 check는 실패로 기록된다.

    Args:
        value: 검증 대상 (보통 HttpResponse)
        predicates: check 이름 -> 조건 함수

    Returns:
        List[CheckResult]: check 결과 목록
    """
    results = []
    for name, predicate in predicates.items():
        try:
            passed = bool(predicate(value))
        except Exception as e:
            logger.debug(f"Check '{name}' raised {type(e).__name__}: {e}")
            passed = False
        results.append(CheckResult(name=name, passed=passed))
    return results


def normalize_checks(result: Any) -> List[CheckResult]:
    """
    iteration 함수의 반환값을 CheckResult 목록으로 정규화

    허용 형식:
    - None
    - {"checks": [...]}
    - {"check 이름": bool, ...}
    - [{"name": ..., "passed": ...}, CheckResult, ("name", bool), ...]

    Raises:
        TypeError: 지원하지 않는 형식인 경우
    """
    if result is None:
        return []

    if isinstance(result, CheckResult):
        return [result]

    if isinstance(result, Mapping):
        if "checks" in result:
            return normalize_checks(result["checks"])
        return [CheckResult(name=str(name), passed=bool(passed)) for name, passed in result.items()]

    if isinstance(result, (str, bytes)) or not isinstance(result, Iterable):
        raise TypeError(f"Unsupported iteration result: {type(result).__name__}")

    checks = []
    for item in result:
        if isinstance(item, CheckResult):
            checks.append(item)
        elif isinstance(item, Mapping) and "name" in item and "passed" in item:
            checks.append(CheckResult(name=str(item["name"]), passed=bool(item["passed"])))
        elif isinstance(item, tuple) and len(item) == 2:
            checks.append(CheckResult(name=str(item[0]), passed=bool(item[1])))
        else:
            raise TypeError(f"Unsupported check entry: {item!r}")
    return checks


def check_metric_name(name: str) -> str:
    """check 이름별 Rate 메트릭 이름"""
    return f"checks{{{name}}}"
