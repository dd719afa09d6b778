import asyncio
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional

from stampede.common.exception import IterationError
from stampede.metrics.metric_registry import MetricRegistry
from stampede.schemas.metrics.metric_sample import MetricSample
from stampede.services.execution.checks import CheckResult, check


@dataclass
class IterationContext:
    """iteration 함수에 전달되는 실행 컨텍스트"""
    vu_id: int
    iteration: int
    env: Mapping[str, str]
    base_url: Optional[str]
    headers: Mapping[str, str]
    http: Any                      # HttpClient
    registry: MetricRegistry

    def check(self, value: Any, predicates: Mapping[str, Callable[[Any], Any]]) -> List[CheckResult]:
        return check(value, predicates)

    async def sleep(self, seconds: float) -> None:
        """think time"""
        await asyncio.sleep(seconds)

    def add_sample(self, name: str, value: float) -> bool:
        """
        시나리오가 선언한 사용자 정의 메트릭에 샘플 기록

        Raises:
            IterationError: 선언되지 않은 메트릭인 경우
        """
        kind = self.registry.kinds().get(name)
        if kind is None:
            raise IterationError(f"Metric '{name}' is not declared in options.metrics")
        return self.registry.record(MetricSample(name, kind, value))
