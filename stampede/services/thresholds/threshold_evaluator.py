import asyncio
import logging
from typing import Callable, Iterable, List, Optional, Tuple

from stampede.metrics.metric_registry import MetricRegistry
from stampede.schemas.metrics.metric_sample import RegistrySnapshot
from stampede.schemas.report.run_report import ThresholdResult
from stampede.services.thresholds.threshold_parser import ParsedThreshold

logger = logging.getLogger(__name__)


class ThresholdEvaluator:
    """
    레지스트리 스냅샷에 대해 threshold를 주기적으로 평가

    1. 평가 주기마다 스냅샷을 떠서 모든 threshold 평가
    2. abort_on_fail threshold가 실패하면 on_abort 호출
    3. 실행 종료 후 final()로 최종 평가
    """

    def __init__(self, thresholds: Iterable[ParsedThreshold]):
        self.thresholds: List[ParsedThreshold] = list(thresholds)
        self.evaluations = 0
        self.abort_trigger: Optional[ThresholdResult] = None
        # 같은 metric/expression이 여러 번 선언될 수 있으므로 위치로 구분
        self.abort_index: Optional[int] = None

    def evaluate_one(self, threshold: ParsedThreshold, snapshot: RegistrySnapshot) -> ThresholdResult:
        summary = snapshot.get(threshold.metric)
        base = {
            "metric": threshold.metric,
            "expression": threshold.config.expression,
            "abort_on_fail": threshold.config.abort_on_fail,
        }

        # 샘플이 없는 메트릭은 판정하지 않음
        if summary is None or summary.count == 0:
            return ThresholdResult(passed=True, no_data=True, **base)

        observed = summary.get(threshold.expression.aggregate.key)
        if observed is None:
            return ThresholdResult(passed=True, no_data=True, **base)

        return ThresholdResult(
            passed=threshold.expression.compare(observed),
            observed=observed,
            **base,
        )

    def evaluate(self, snapshot: RegistrySnapshot) -> List[ThresholdResult]:
        """같은 스냅샷에 대해서는 항상 같은 결과를 반환"""
        return [self.evaluate_one(threshold, snapshot) for threshold in self.thresholds]

    def find_abort(self, results: List[ThresholdResult], elapsed: float) -> Optional[int]:
        """중단을 유발하는 첫 번째 실패 결과의 위치 (delay_abort_eval 이전에는 무시)"""
        for index, (threshold, result) in enumerate(zip(self.thresholds, results)):
            if result.passed or not threshold.config.abort_on_fail:
                continue
            if elapsed < threshold.config.delay_abort_eval:
                continue
            return index
        return None

    def tick(self, snapshot: RegistrySnapshot) -> Tuple[List[ThresholdResult], Optional[int]]:
        results = self.evaluate(snapshot)
        self.evaluations += 1

        failed = [r for r in results if not r.passed]
        if failed:
            logger.debug(f"Threshold tick at {snapshot.elapsed:.2f}s: "
                         f"{len(failed)}/{len(results)} failing")
        return results, self.find_abort(results, snapshot.elapsed)

    def trigger_abort(self, results: List[ThresholdResult], index: int) -> ThresholdResult:
        self.abort_index = index
        self.abort_trigger = results[index]
        return self.abort_trigger

    async def run(self, registry: MetricRegistry, stop_event: asyncio.Event,
                  on_abort: Callable[[ThresholdResult], None], interval: float = 1.0):
        """
        평가 메인 루프

        Args:
            registry: 메트릭 레지스트리
            stop_event: 외부 중지 신호
            on_abort: abort_on_fail threshold 실패 시 호출 (1회)
            interval: 평가 주기 (초)
        """
        if not self.thresholds:
            return

        logger.info(f"Threshold evaluator started: {len(self.thresholds)} thresholds, interval {interval}s")
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass

            results, index = self.tick(registry.snapshot())
            if index is not None:
                trigger = self.trigger_abort(results, index)
                logger.warning(f"Threshold '{trigger.name}' failed "
                               f"(observed={trigger.observed}), aborting run")
                on_abort(trigger)
                return

    def final(self, snapshot: RegistrySnapshot) -> List[ThresholdResult]:
        """
        실행 종료 후 최종 평가

        실행을 중단시킨 threshold는 최종 스냅샷 값과 무관하게 실패로 기록된다.
        """
        results = self.evaluate(snapshot)
        self.evaluations += 1

        if self.abort_index is None:
            return results

        final_results = []
        for index, result in enumerate(results):
            if index == self.abort_index:
                result = result.model_copy(update={
                    "passed": False,
                    "triggered_abort": True,
                    "observed": result.observed if result.observed is not None else self.abort_trigger.observed,
                    "no_data": False,
                })
            final_results.append(result)
        return final_results
