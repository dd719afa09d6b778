import operator
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from stampede.common.exception import ConfigError
from stampede.schemas.load_test.load_test_options import ThresholdConfig
from stampede.schemas.metrics.metric_sample import MetricKind
from stampede.utils.metrics_calculator import percentile_key

_EXPRESSION = re.compile(
    r"""^\s*
    (?P<aggregate>p\(\s*\d+(?:\.\d+)?\s*\)|p\d+(?:\.\d+)?|min|max|mean|avg|med|rate|count)
    \s*(?:\(\s*(?P<metric>[^()]+?)\s*\))?
    \s*(?P<operator><=|>=|==|<|>)
    \s*(?P<value>-?\d+(?:\.\d+)?)
    \s*(?P<unit>ms|s|m)?
    \s*$""",
    re.VERBOSE,
)

OPERATORS: Dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
}

_UNIT_MS = {"ms": 1.0, "s": 1000.0, "m": 60000.0}

# 메트릭 종류별로 평가 가능한 집계
_SUPPORTED_AGGREGATES = {
    MetricKind.COUNTER: {"count", "rate"},
    MetricKind.RATE: {"rate", "count"},
    MetricKind.TREND: {"min", "max", "mean", "avg", "med", "count"},
}


@dataclass(frozen=True)
class Aggregate:
    """집계 함수 (percentile은 p95 -> percentile=95.0)"""
    name: str
    percentile: Optional[float] = None

    @property
    def key(self) -> str:
        """MetricSummary.values 조회 키"""
        if self.percentile is not None:
            return percentile_key(self.percentile)
        return self.name


@dataclass(frozen=True)
class ThresholdExpression:
    """파싱된 threshold 식: <aggregate> <operator> <value>"""
    aggregate: Aggregate
    operator: str
    value: float
    unit: Optional[str] = None

    def compare(self, observed: float) -> bool:
        return OPERATORS[self.operator](observed, self.value)

    def __str__(self) -> str:
        return f"{self.aggregate.key} {self.operator} {self.value:g}"


@dataclass(frozen=True)
class ParsedThreshold:
    config: ThresholdConfig
    kind: MetricKind
    expression: ThresholdExpression

    @property
    def metric(self) -> str:
        return self.config.metric

    @property
    def name(self) -> str:
        return self.config.name


def parse_expression(text: str, metric: Optional[str] = None) -> ThresholdExpression:
    """
    threshold 식 문자열을 파싱

    허용 예: "p95 < 1000ms", "p(95)<1000", "rate<0.05", "p95(http_req_duration) < 1s"

    Args:
        text: threshold 식
        metric: threshold가 걸린 메트릭 이름 (식 안의 메트릭 이름과 일치해야 함)

    Raises:
        ConfigError: 문법 오류 또는 메트릭 이름 불일치
    """
    match = _EXPRESSION.match(text or "")
    if not match:
        raise ConfigError(f"Invalid threshold expression: {text!r}")

    embedded_metric = match.group("metric")
    if embedded_metric and metric and embedded_metric != metric:
        raise ConfigError(
            f"Threshold expression {text!r} references '{embedded_metric}' but is defined on '{metric}'"
        )

    raw_aggregate = match.group("aggregate").replace(" ", "")
    if raw_aggregate.startswith("p"):
        digits = raw_aggregate[1:].strip("()")
        percentile = float(digits)
        if not 0 < percentile < 100:
            raise ConfigError(f"Percentile out of range in {text!r}")
        aggregate = Aggregate(name="percentile", percentile=percentile)
    else:
        aggregate = Aggregate(name=raw_aggregate)

    value = float(match.group("value")) * _UNIT_MS.get(match.group("unit") or "ms", 1.0)

    return ThresholdExpression(aggregate=aggregate, operator=match.group("operator"),
                               value=value, unit=match.group("unit"))


def parse_thresholds(configs: Iterable[ThresholdConfig],
                     known_metrics: Mapping[str, MetricKind]) -> List[ParsedThreshold]:
    """
    실행 전에 모든 threshold를 파싱하고 검증

    Args:
        configs: threshold 설정 목록
        known_metrics: 메트릭 이름 -> 종류 (레지스트리에 선언된 메트릭)

    Returns:
        List[ParsedThreshold]: 파싱된 threshold 목록

    Raises:
        ConfigError: 알 수 없는 메트릭, 문법 오류, 메트릭 종류와 맞지 않는 집계
    """
    parsed = []
    for config in configs:
        kind = known_metrics.get(config.metric)
        if kind is None and config.metric.startswith("checks{") and config.metric.endswith("}"):
            kind = MetricKind.RATE
        if kind is None:
            raise ConfigError(f"Unknown metric in threshold: '{config.metric}'")

        expression = parse_expression(config.expression, config.metric)

        if expression.aggregate.percentile is not None:
            if kind != MetricKind.TREND:
                raise ConfigError(
                    f"Percentile threshold {config.expression!r} requires a trend metric, "
                    f"'{config.metric}' is a {kind.value}"
                )
        elif expression.aggregate.name not in _SUPPORTED_AGGREGATES[kind]:
            raise ConfigError(
                f"Aggregate '{expression.aggregate.name}' is not available for "
                f"{kind.value} metric '{config.metric}'"
            )

        if expression.unit and kind != MetricKind.TREND:
            raise ConfigError(
                f"Time unit in {config.expression!r} is only valid for trend metrics"
            )

        parsed.append(ParsedThreshold(config=config, kind=kind, expression=expression))
    return parsed


def required_percentiles(thresholds: Iterable[ParsedThreshold]) -> List[float]:
    return sorted({
        t.expression.aggregate.percentile
        for t in thresholds
        if t.expression.aggregate.percentile is not None
    })
