from typing import Dict, List

from stampede.schemas.report.run_report import RunReport
from stampede.utils.duration_parser import format_duration

_TREND_KEYS = ("avg", "min", "med", "max")


def _format_value(metric: str, key: str, value: float) -> str:
    if "duration" in metric and key not in ("count",):
        return f"{value:.2f}ms"
    if key == "rate" and value <= 1.0:
        return f"{value * 100:.2f}%"
    if float(value).is_integer():
        return f"{int(value)}"
    return f"{value:.2f}"


def _format_metric(name: str, values: Dict[str, float]) -> str:
    if "passes" in values:
        # Rate
        parts = [
            _format_value(name, "rate", values.get("rate", 0.0)),
            f"✓ {int(values.get('passes', 0))}",
            f"✗ {int(values.get('fails', 0))}",
        ]
    elif "mean" in values:
        # Trend
        keys = list(_TREND_KEYS) + sorted(
            (k for k in values if k.startswith("p")),
            key=lambda k: float(k[1:]),
        )
        parts = [f"{key}={_format_value(name, key, values[key])}" for key in keys if key in values]
    else:
        # Counter
        parts = [
            _format_value(name, "count", values.get("count", 0.0)),
            f"{values.get('rate', 0.0):.2f}/s",
        ]
    return f"    {name:.<32} " + "  ".join(parts)


def format_text_summary(report: RunReport) -> str:
    """k6 종료 요약과 비슷한 텍스트 리포트"""
    lines: List[str] = []

    if report.thresholds:
        lines.append("  THRESHOLDS")
        for result in report.thresholds:
            mark = "✓" if result.passed else "✗"
            observed = "no data" if result.no_data else f"{result.observed:.4g}"
            suffix = " (aborted run)" if result.triggered_abort else ""
            lines.append(f"    {mark} {result.metric}: {result.expression}  [{observed}]{suffix}")
        lines.append("")

    lines.append("  METRICS")
    for name in sorted(report.metrics):
        values = report.metrics[name]
        if values.get("count", 0) == 0:
            continue
        lines.append(_format_metric(name, values))
    lines.append("")

    lines.append(f"    vus_max={report.vus.max}  peak={report.vus.peak}  interrupted={report.vus.interrupted}")
    lines.append(f"    duration={format_duration(report.duration_seconds)}  state={report.state.value}")
    if report.aborted:
        lines.append(f"    run terminated early: {report.abort_reason or report.stop_reason.value}")
    if report.dropped_samples:
        lines.append(f"    dropped late samples: {report.dropped_samples}")
    lines.append("")
    lines.append("  RESULT: " + ("PASSED" if report.passed else "FAILED"))
    return "\n".join(lines)
