"""Shared fixtures for stampede tests"""
import pytest

from stampede.metrics.metric_registry import MetricRegistry
from stampede.schemas.load_test.load_test_options import LoadTestOptions
from stampede.schemas.load_test.run_config import RunConfig
from stampede.services.execution.iteration_context import IterationContext


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return MetricRegistry(clock=clock)


def make_run_config(options: dict, **overrides) -> RunConfig:
    """Fast-ticking RunConfig for engine tests"""
    vus_max = overrides.pop("vus_max", None)
    settings = {
        "scheduler_tick_interval": 0.01,
        "threshold_eval_interval": 0.05,
        "graceful_stop": 1.0,
    }
    settings.update(overrides)
    return RunConfig.build(LoadTestOptions.parse(options), env={}, vus_max=vus_max, **settings)


def make_context(registry: MetricRegistry, vu_id: int = 1, iteration: int = 0, http=None) -> IterationContext:
    return IterationContext(
        vu_id=vu_id,
        iteration=iteration,
        env={},
        base_url=None,
        headers={},
        http=http,
        registry=registry,
    )


@pytest.fixture
def build_run_config():
    return make_run_config


@pytest.fixture
def build_context():
    return make_context
