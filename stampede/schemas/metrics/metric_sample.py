import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional


class MetricKind(str, Enum):
    """메트릭 종류"""
    COUNTER = "counter"  # 누적 합계
    RATE = "rate"        # true 비율
    TREND = "trend"      # 분포 (백분위수 집계)


@dataclass(frozen=True)
class MetricSample:
    """WorkUnitExecutor가 생성하는 단일 메트릭 샘플"""
    name: str
    kind: MetricKind
    value: float
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class MetricSummary:
    """단일 메트릭의 집계 결과 (불변)"""
    name: str
    kind: MetricKind
    values: Mapping[str, float]

    @property
    def count(self) -> int:
        return int(self.values.get("count", 0))

    def get(self, key: str) -> Optional[float]:
        return self.values.get(key)


@dataclass(frozen=True)
class RegistrySnapshot:
    """
    MetricRegistry 스냅샷

    메트릭 단위로는 일관된 시점의 값이지만, 메트릭 간 원자성은 보장하지 않는다.
    """
    elapsed: float
    metrics: Mapping[str, MetricSummary]

    def get(self, name: str) -> Optional[MetricSummary]:
        return self.metrics.get(name)

    def to_dict(self) -> dict:
        return {name: dict(summary.values) for name, summary in self.metrics.items()}


def freeze(values: dict) -> Mapping[str, float]:
    return MappingProxyType(dict(values))
