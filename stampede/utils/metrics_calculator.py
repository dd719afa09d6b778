from typing import Dict, Iterable, List
from dataclasses import dataclass, field


@dataclass
class MetricStats:
    """메트릭 통계 결과"""
    max_value: float
    min_value: float
    avg_value: float
    count: int
    percentiles: Dict[str, float] = field(default_factory=dict)


def percentile_key(percentile: float) -> str:
    """95 -> 'p95', 99.9 -> 'p99.9'"""
    return f"p{percentile:g}"


class MetricsCalculator:
    """Trend/Rate/Counter 메트릭 통계 계산 유틸리티"""

    @staticmethod
    def calculate_basic_stats(values: List[float]) -> MetricStats:
        """
        기본 통계 계산 (max, min, avg, count)

        Args:
            values: 계산할 값들의 리스트

        Returns:
            MetricStats: 통계 결과 (max, min, avg, count)
        """
        if not values:
            return MetricStats(0.0, 0.0, 0.0, 0)

        max_val = max(values)
        min_val = min(values)
        count = len(values)
        avg_val = sum(values) / count

        return MetricStats(max_val, min_val, avg_val, count)

    @staticmethod
    def calculate_percentile(sorted_values: List[float], percentile: float) -> float:
        """
        정렬된 값에서 백분위수 계산 (최근접 순위 사이 선형 보간)

        Args:
            sorted_values: 오름차순 정렬된 값
            percentile: 0~100 사이 백분위

        Returns:
            float: 백분위수 값 (값이 없으면 0.0)
        """
        if not sorted_values:
            return 0.0
        if len(sorted_values) == 1:
            return float(sorted_values[0])

        rank = (len(sorted_values) - 1) * (percentile / 100.0)
        lower = int(rank)
        upper = min(lower + 1, len(sorted_values) - 1)
        weight = rank - lower
        return float(sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * weight)

    @staticmethod
    def calculate_trend_stats(values: List[float], percentiles: Iterable[float]) -> MetricStats:
        """
        Trend 메트릭 통계 계산 (기본 통계 + 백분위수)

        Args:
            values: 샘플 값들 (정렬되지 않아도 됨)
            percentiles: 계산할 백분위 목록 (예: [50, 90, 95, 99])

        Returns:
            MetricStats: percentiles 필드에 'p95' 형태의 키로 채워진 통계
        """
        stats = MetricsCalculator.calculate_basic_stats(values)
        sorted_values = sorted(values)
        stats.percentiles = {
            percentile_key(p): MetricsCalculator.calculate_percentile(sorted_values, p)
            for p in percentiles
        }
        return stats

    @staticmethod
    def calculate_rate(passes: int, total: int) -> float:
        """true 비율 계산 (샘플이 없으면 0.0)"""
        if total <= 0:
            return 0.0
        return passes / total

    @staticmethod
    def calculate_per_second(total: float, elapsed_seconds: float) -> float:
        """초당 비율 계산"""
        if elapsed_seconds <= 0:
            return 0.0
        return total / elapsed_seconds
