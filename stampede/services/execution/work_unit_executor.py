import asyncio
import inspect
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from stampede.common.exception import IterationError, LoadTestException, NetworkError
from stampede.metrics.metric_registry import MetricRegistry
from stampede.services.execution.checks import CheckResult, check_metric_name, normalize_checks
from stampede.services.execution.iteration_context import IterationContext

logger = logging.getLogger(__name__)


@dataclass
class IterationOutcome:
    """iteration 1회 실행 결과"""
    vu_id: int
    iteration: int
    duration_ms: float
    checks: List[CheckResult] = field(default_factory=list)
    error: Optional[LoadTestException] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class WorkUnitExecutor:
    """
    사용자 iteration 함수를 1회 실행하고 결과를 메트릭으로 기록

    기록 항목:
    - iteration_duration (Trend, ms)
    - iterations (Counter, 항상 +1)
    - iteration_failed (Rate)
    - iteration_errors (Counter, 실패 시 +1)
    - checks / checks{이름} (Rate, check 결과마다)

    iteration 함수가 던진 예외는 여기서 흡수되며 풀은 계속 실행된다.
    """

    def __init__(self, iterate: Callable[[IterationContext], Any], registry: MetricRegistry,
                 max_workers: int = 1):
        """
        Args:
            iterate: 사용자 iteration 함수
            registry: 메트릭 레지스트리
            max_workers: 동기 iteration 함수용 워커 스레드 수 (보통 vus_max)
        """
        self.iterate = iterate
        self.registry = registry
        self._is_async = inspect.iscoroutinefunction(iterate)
        # 동기 함수는 VU마다 스레드 하나를 쓸 수 있도록 전용 풀에서 실행
        self._threads: Optional[ThreadPoolExecutor] = None
        if not self._is_async:
            self._threads = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="vu-worker")

    async def _invoke(self, context: IterationContext) -> Any:
        if self._is_async:
            return await self.iterate(context)
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(self._threads, self.iterate, context)
        if inspect.isawaitable(result):
            result = await result
        return result

    def shutdown(self) -> None:
        """대기 중인 동기 iteration을 취소하고 워커 스레드 종료를 기다리지 않음"""
        if self._threads is not None:
            self._threads.shutdown(wait=False, cancel_futures=True)
            logger.debug("Iteration worker threads released")

    async def execute(self, context: IterationContext) -> IterationOutcome:
        checks: List[CheckResult] = []
        error: Optional[LoadTestException] = None

        start = time.perf_counter()
        try:
            result = await self._invoke(context)
            checks = normalize_checks(result)
        except asyncio.CancelledError:
            raise
        except NetworkError as e:
            error = e
        except IterationError as e:
            error = e
        except Exception as e:
            error = IterationError(f"{type(e).__name__}: {e}", cause=e)
        duration_ms = (time.perf_counter() - start) * 1000

        if error is not None:
            logger.debug(f"VU {context.vu_id} iteration {context.iteration} failed: {error.message}")

        self.registry.add_trend("iteration_duration", duration_ms)
        self.registry.add_counter("iterations")
        self.registry.add_rate("iteration_failed", error is not None)
        if error is not None:
            self.registry.add_counter("iteration_errors")

        for result in checks:
            self.registry.add_rate("checks", result.passed)
            self.registry.add_rate(check_metric_name(result.name), result.passed)

        return IterationOutcome(
            vu_id=context.vu_id,
            iteration=context.iteration,
            duration_ms=duration_ms,
            checks=checks,
            error=error,
        )
