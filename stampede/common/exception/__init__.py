from stampede.common.exception.load_test_exception import (
    ConfigError,
    InternalError,
    IterationError,
    LoadTestException,
    NetworkError,
    ThresholdFailure,
)

__all__ = [
    "LoadTestException",
    "ConfigError",
    "InternalError",
    "IterationError",
    "NetworkError",
    "ThresholdFailure",
]
