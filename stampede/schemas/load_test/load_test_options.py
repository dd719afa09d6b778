from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from stampede.common.exception import ConfigError
from stampede.schemas.metrics.metric_sample import MetricKind
from stampede.utils.duration_parser import parse_duration


class StageConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    duration: float        # 초 단위 (입력은 "30s", "1m" 등도 허용)
    target: int            # 목표 동시 VU 수

    @field_validator("duration", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> float:
        return parse_duration(value)

    @field_validator("duration")
    @classmethod
    def _positive_duration(cls, value: float) -> float:
        if value <= 0:
            raise ValueError(f"stage duration must be positive, got {value}")
        return value

    @field_validator("target")
    @classmethod
    def _non_negative_target(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"stage target must be >= 0, got {value}")
        return value


class ThresholdConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    metric: str                          # 대상 메트릭 이름 (예: "http_req_duration")
    expression: str                      # 예: "p(95)<1000", "rate<0.05"
    abort_on_fail: bool = False          # 실패 시 즉시 실행 중단
    delay_abort_eval: float = 0.0        # 중단 판정을 시작하기까지의 유예 시간 (초)

    @field_validator("delay_abort_eval", mode="before")
    @classmethod
    def _parse_delay(cls, value: Any) -> float:
        seconds = parse_duration(value)
        if seconds < 0:
            raise ValueError(f"delay_abort_eval must be >= 0, got {value}")
        return seconds

    @property
    def name(self) -> str:
        return f"{self.metric}: {self.expression}"


class LoadTestOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    stages: List[StageConfig] = Field(default_factory=list)
    thresholds: List[ThresholdConfig] = Field(default_factory=list)
    start_vus: int = 0
    vus_max: Optional[int] = None
    graceful_stop: Optional[float] = None                # 초, None이면 설정값 사용
    base_url: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    metrics: Dict[str, MetricKind] = Field(default_factory=dict)   # 사용자 정의 메트릭 선언

    @field_validator("start_vus")
    @classmethod
    def _non_negative_start(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"start_vus must be >= 0, got {value}")
        return value

    @field_validator("vus_max")
    @classmethod
    def _positive_vus_max(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 1:
            raise ValueError(f"vus_max must be >= 1, got {value}")
        return value

    @field_validator("graceful_stop", mode="before")
    @classmethod
    def _parse_graceful_stop(cls, value: Any) -> Optional[float]:
        if value is None:
            return None
        seconds = parse_duration(value)
        if seconds < 0:
            raise ValueError(f"graceful_stop must be >= 0, got {value}")
        return seconds

    @field_validator("thresholds", mode="before")
    @classmethod
    def _normalize_thresholds(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return normalize_k6_thresholds(value)
        return value

    @property
    def total_duration(self) -> float:
        return sum(stage.duration for stage in self.stages)

    @property
    def max_target(self) -> int:
        return max([self.start_vus] + [stage.target for stage in self.stages])

    @classmethod
    def parse(cls, data: Union[Dict[str, Any], "LoadTestOptions"]) -> "LoadTestOptions":
        """
        시나리오의 options 값을 검증하여 LoadTestOptions 생성

        Raises:
            ConfigError: 형식이 잘못되었거나 불변식을 위반한 경우
        """
        if isinstance(data, cls):
            return data
        if not isinstance(data, dict):
            raise ConfigError(f"options must be a mapping, got {type(data).__name__}")

        data = {_to_snake_case(key): value for key, value in data.items()}
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid load test options: {_describe(e)}") from e


def normalize_k6_thresholds(thresholds: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    k6 형식의 threshold 매핑을 ThresholdConfig 입력 목록으로 변환

    {"http_req_duration": ["p(95)<1000", {"threshold": "rate<0.05", "abortOnFail": true}]}
    """
    normalized = []
    for metric, entries in thresholds.items():
        if isinstance(entries, (str, dict)):
            entries = [entries]
        for entry in entries:
            if isinstance(entry, str):
                normalized.append({"metric": metric, "expression": entry})
            elif isinstance(entry, dict):
                normalized.append({
                    "metric": metric,
                    "expression": entry.get("threshold", entry.get("expression")),
                    "abort_on_fail": entry.get("abortOnFail", entry.get("abort_on_fail", False)),
                    "delay_abort_eval": entry.get("delayAbortEval", entry.get("delay_abort_eval", 0)),
                })
            else:
                raise ValueError(f"invalid threshold definition for '{metric}': {entry!r}")
    return normalized


def _to_snake_case(key: str) -> str:
    # startVUs -> start_vus, vusMax -> vus_max, gracefulStop -> graceful_stop
    aliases = {"startVUs": "start_vus", "maxVUs": "vus_max", "vusMax": "vus_max",
               "gracefulStop": "graceful_stop", "baseUrl": "base_url", "baseURL": "base_url"}
    return aliases.get(key, key)


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)
