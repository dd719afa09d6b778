"""
stampede: staged virtual-user load test execution engine
"""

__version__ = "1.0.0"

from stampede.common.exception import (
    ConfigError,
    InternalError,
    IterationError,
    LoadTestException,
    NetworkError,
    ThresholdFailure,
)
from stampede.metrics.metric_registry import MetricRegistry
from stampede.scheduler.stage_scheduler import StageScheduler
from stampede.schemas.load_test.load_test_options import LoadTestOptions, StageConfig, ThresholdConfig
from stampede.schemas.load_test.run_config import RunConfig
from stampede.schemas.report.run_report import RunReport, RunState, StopReason
from stampede.services.execution.checks import CheckResult, check
from stampede.services.run_controller import RunController
from stampede.services.scenario_loader import load_scenario

__all__ = [
    # Engine
    "RunController",
    "StageScheduler",
    "MetricRegistry",
    "load_scenario",
    # Configuration
    "LoadTestOptions",
    "StageConfig",
    "ThresholdConfig",
    "RunConfig",
    # Report
    "RunReport",
    "RunState",
    "StopReason",
    # Checks
    "CheckResult",
    "check",
    # Errors
    "LoadTestException",
    "ConfigError",
    "InternalError",
    "IterationError",
    "NetworkError",
    "ThresholdFailure",
]
