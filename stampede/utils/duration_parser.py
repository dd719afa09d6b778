import re
from typing import Union

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")

_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Union[str, int, float]) -> float:
    """
    k6 형식의 기간 문자열을 초 단위로 변환

    "30s", "1m30s", "500ms", "2h" 형식과 숫자(초)를 허용한다.

    Args:
        value: 변환할 값

    Returns:
        float: 초 단위 기간

    Raises:
        ValueError: 형식이 올바르지 않은 경우
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip().lower()
    if not text:
        raise ValueError("Empty duration")

    # 단위 없는 숫자 문자열은 초로 해석
    sign = -1.0 if text.startswith("-") else 1.0
    body = text[1:] if sign < 0 else text
    try:
        return sign * float(body)
    except ValueError:
        pass

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(body):
        if match.start() != position:
            raise ValueError(f"Invalid duration: {value!r}")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()

    if position == 0 or position != len(body):
        raise ValueError(f"Invalid duration: {value!r}")

    return sign * total


def format_duration(seconds: float) -> str:
    """초 단위 기간을 "1m30s" 형태로 표시"""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    minutes, secs = divmod(seconds, 60)
    if minutes:
        return f"{int(minutes)}m{secs:g}s" if secs else f"{int(minutes)}m"
    return f"{secs:g}s"
