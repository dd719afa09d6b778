import pytest

from stampede.common.exception import ConfigError
from stampede.metrics.metric_registry import BUILTIN_METRICS
from stampede.schemas.load_test.load_test_options import ThresholdConfig
from stampede.services.thresholds.threshold_parser import (
    parse_expression,
    parse_thresholds,
    required_percentiles,
)


class TestParseExpression:
    @pytest.mark.parametrize("text,key,operator,value", [
        ("p(95)<1000", "p95", "<", 1000.0),
        ("p95 < 1000ms", "p95", "<", 1000.0),
        ("p95<1s", "p95", "<", 1000.0),
        ("p99.9 <= 2m", "p99.9", "<=", 120000.0),
        ("rate<0.05", "rate", "<", 0.05),
        ("count >= 10", "count", ">=", 10.0),
        ("avg==5", "avg", "==", 5.0),
        ("med > -1", "med", ">", -1.0),
    ])
    def test_valid_expressions(self, text, key, operator, value):
        expression = parse_expression(text)

        assert expression.aggregate.key == key
        assert expression.operator == operator
        assert expression.value == pytest.approx(value)

    def test_embedded_metric_name(self):
        expression = parse_expression("p95(http_req_duration) < 1s", "http_req_duration")
        assert expression.aggregate.percentile == 95.0

    def test_embedded_metric_mismatch(self):
        with pytest.raises(ConfigError):
            parse_expression("p95(http_req_duration) < 1s", "iteration_duration")

    @pytest.mark.parametrize("text", ["", "p95", "p95 << 10", "foo<1", "rate<abc", "p(0)<1", "p100<1"])
    def test_invalid_expressions(self, text):
        with pytest.raises(ConfigError):
            parse_expression(text)

    def test_compare(self):
        expression = parse_expression("rate<0.05")
        assert expression.compare(0.01)
        assert not expression.compare(0.05)


class TestParseThresholds:
    def _parse(self, metric, expression):
        return parse_thresholds([ThresholdConfig(metric=metric, expression=expression)], BUILTIN_METRICS)

    def test_valid_thresholds(self):
        parsed = parse_thresholds(
            [
                ThresholdConfig(metric="http_req_duration", expression="p(95)<1000"),
                ThresholdConfig(metric="http_req_failed", expression="rate<0.05"),
                ThresholdConfig(metric="iteration_errors", expression="rate<0.05"),
                ThresholdConfig(metric="checks{status is 200}", expression="rate>0.99"),
            ],
            BUILTIN_METRICS,
        )

        assert [t.metric for t in parsed] == [
            "http_req_duration", "http_req_failed", "iteration_errors", "checks{status is 200}",
        ]
        assert required_percentiles(parsed) == [95.0]

    def test_unknown_metric(self):
        with pytest.raises(ConfigError, match="Unknown metric"):
            self._parse("no_such_metric", "rate<0.05")

    def test_percentile_on_non_trend(self):
        with pytest.raises(ConfigError):
            self._parse("http_req_failed", "p95<1")

    def test_unsupported_aggregate(self):
        with pytest.raises(ConfigError):
            self._parse("http_req_failed", "max<1")

    def test_time_unit_on_non_trend(self):
        with pytest.raises(ConfigError):
            self._parse("iterations", "count>1s")
