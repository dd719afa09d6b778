import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional

from stampede.common.exception import ConfigError, InternalError
from stampede.schemas.metrics.metric_sample import (
    MetricKind,
    MetricSample,
    MetricSummary,
    RegistrySnapshot,
    freeze,
)
from stampede.utils.metrics_calculator import MetricsCalculator

logger = logging.getLogger(__name__)

DEFAULT_PERCENTILES = (50.0, 90.0, 95.0, 99.0)

BUILTIN_METRICS: Dict[str, MetricKind] = {
    "iterations": MetricKind.COUNTER,
    "iteration_errors": MetricKind.COUNTER,
    "iteration_failed": MetricKind.RATE,
    "iteration_duration": MetricKind.TREND,
    "checks": MetricKind.RATE,
    "http_reqs": MetricKind.COUNTER,
    "http_req_failed": MetricKind.RATE,
    "http_req_duration": MetricKind.TREND,
}


class MetricSeries:
    """
    단일 메트릭의 누적 저장소

    메트릭마다 자체 락을 가지므로 서로 다른 메트릭의 기록은 경합하지 않는다.
    """

    def __init__(self, name: str, kind: MetricKind):
        self.name = name
        self.kind = kind
        self._lock = threading.Lock()
        self._total = 0.0      # COUNTER 합계
        self._passes = 0       # RATE true 개수
        self._count = 0        # 샘플 수
        self._values: List[float] = []  # TREND 샘플

    def add(self, value: float) -> None:
        with self._lock:
            self._count += 1
            if self.kind == MetricKind.COUNTER:
                self._total += value
            elif self.kind == MetricKind.RATE:
                if value:
                    self._passes += 1
            else:
                self._values.append(float(value))

    def summarize(self, elapsed: float, percentiles: Iterable[float]) -> MetricSummary:
        # 락 안에서는 복사만 하고 계산은 락 밖에서 수행
        with self._lock:
            count = self._count
            total = self._total
            passes = self._passes
            values = list(self._values) if self.kind == MetricKind.TREND else None

        if self.kind == MetricKind.COUNTER:
            summary = {
                "count": total,
                "rate": MetricsCalculator.calculate_per_second(total, elapsed),
            }
        elif self.kind == MetricKind.RATE:
            summary = {
                "rate": MetricsCalculator.calculate_rate(passes, count),
                "passes": passes,
                "fails": count - passes,
                "count": count,
            }
        else:
            stats = MetricsCalculator.calculate_trend_stats(values, percentiles)
            summary = {
                "count": stats.count,
                "min": stats.min_value,
                "max": stats.max_value,
                "mean": stats.avg_value,
                "avg": stats.avg_value,
                "med": MetricsCalculator.calculate_percentile(sorted(values), 50.0),
            }
            summary.update(stats.percentiles)

        return MetricSummary(name=self.name, kind=self.kind, values=freeze(summary))


class MetricRegistry:
    """
    실행 중 발생하는 메트릭을 이름별로 누적하는 레지스트리

    Features:
    - 메트릭 단위의 세분화된 락 (전역 락은 시리즈 생성 시에만 사용)
    - close() 이후 도착한 샘플은 버리고 개수만 집계
    - 스냅샷은 메트릭 단위로 일관된 불변 집계 뷰
    """

    def __init__(self, percentiles: Optional[Iterable[float]] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Args:
            percentiles: Trend 스냅샷에 포함할 백분위 목록
            clock: 경과 시간 측정용 시계
        """
        self._series: Dict[str, MetricSeries] = {}
        self._series_lock = threading.Lock()
        self._percentiles = sorted(set(percentiles or DEFAULT_PERCENTILES))
        self._clock = clock
        self._started_at = clock()
        self._closed = False
        self._dropped = 0
        self._dropped_lock = threading.Lock()

        for name, kind in BUILTIN_METRICS.items():
            self.declare(name, kind)

    @property
    def percentiles(self) -> List[float]:
        return list(self._percentiles)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def dropped_samples(self) -> int:
        return self._dropped

    def add_percentiles(self, percentiles: Iterable[float]) -> None:
        """threshold가 참조하는 백분위를 스냅샷 대상에 추가"""
        self._percentiles = sorted(set(self._percentiles) | set(percentiles))

    def declare(self, name: str, kind: MetricKind) -> MetricSeries:
        """
        메트릭을 미리 등록

        Raises:
            ConfigError: 같은 이름이 다른 종류로 이미 등록된 경우
        """
        with self._series_lock:
            series = self._series.get(name)
            if series is None:
                series = MetricSeries(name, kind)
                self._series[name] = series
                logger.debug(f"Metric declared: {name} ({kind.value})")
            elif series.kind != kind:
                raise ConfigError(
                    f"Metric '{name}' is already declared as {series.kind.value}, not {kind.value}"
                )
            return series

    def kinds(self) -> Dict[str, MetricKind]:
        with self._series_lock:
            return {name: series.kind for name, series in self._series.items()}

    def reset_clock(self) -> None:
        """실행 시작 시점을 기준으로 경과 시간을 다시 잰다"""
        self._started_at = self._clock()

    def elapsed(self) -> float:
        return self._clock() - self._started_at

    def record(self, sample: MetricSample) -> bool:
        """
        샘플 기록

        Returns:
            bool: 기록되었으면 True, 레지스트리가 닫혀 버려졌으면 False

        Raises:
            InternalError: 샘플 종류가 등록된 메트릭 종류와 다른 경우
        """
        if self._closed:
            with self._dropped_lock:
                self._dropped += 1
            return False

        series = self._series.get(sample.name)
        if series is None:
            with self._series_lock:
                series = self._series.get(sample.name)
                if series is None:
                    series = MetricSeries(sample.name, sample.kind)
                    self._series[sample.name] = series

        if series.kind != sample.kind:
            raise InternalError(
                f"Metric kind mismatch for '{sample.name}': "
                f"recorded {sample.kind.value}, registered {series.kind.value}",
                state={"metric": sample.name, "registered": series.kind.value, "sample": sample.kind.value},
            )

        series.add(sample.value)
        return True

    def add_counter(self, name: str, value: float = 1.0) -> bool:
        return self.record(MetricSample(name, MetricKind.COUNTER, value))

    def add_rate(self, name: str, passed: bool) -> bool:
        return self.record(MetricSample(name, MetricKind.RATE, 1.0 if passed else 0.0))

    def add_trend(self, name: str, value: float) -> bool:
        return self.record(MetricSample(name, MetricKind.TREND, value))

    def close(self) -> None:
        """이후 도착하는 샘플은 모두 버린다"""
        if not self._closed:
            self._closed = True
            logger.info("Metric registry closed, late samples will be discarded")

    def snapshot(self) -> RegistrySnapshot:
        elapsed = self.elapsed()
        with self._series_lock:
            series_list = list(self._series.values())

        metrics = {
            series.name: series.summarize(elapsed, self._percentiles)
            for series in series_list
        }
        return RegistrySnapshot(elapsed=elapsed, metrics=freeze(metrics))
