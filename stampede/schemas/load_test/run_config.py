from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from stampede.common.exception import ConfigError
from stampede.core.config import settings
from stampede.schemas.load_test.load_test_options import LoadTestOptions


@dataclass(frozen=True)
class RunConfig:
    """
    한 번의 실행 동안 변하지 않는 설정

    모든 태스크에 생성 시점에 참조로 전달된다.
    """
    options: LoadTestOptions
    vus_max: int
    graceful_stop: float
    scheduler_tick_interval: float
    threshold_eval_interval: float
    trend_percentiles: Tuple[float, ...]
    report_timezone: str
    http_timeout: float
    env: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def base_url(self) -> Optional[str]:
        return self.options.base_url

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self.options.headers)

    @classmethod
    def build(cls, options: LoadTestOptions, env: Optional[Mapping[str, str]] = None,
              vus_max: Optional[int] = None, **overrides) -> "RunConfig":
        """
        settings + 시나리오 options + CLI 인자로 RunConfig 생성

        vus_max 우선순위: CLI 인자 > options.vus_max > stage 최대 target
        """
        if not settings.validate_run_config():
            raise ConfigError("Invalid engine settings, check the environment variables")

        overrides = {k: v for k, v in overrides.items() if v is not None}
        run_config = settings.get_run_config()
        if options.graceful_stop is not None:
            run_config["graceful_stop"] = options.graceful_stop
        run_config.update(overrides)

        if vus_max is None:
            vus_max = options.vus_max or max(options.max_target, 1)
        if vus_max < 1:
            raise ConfigError(f"vus_max must be >= 1, got {vus_max}")
        graceful_stop = run_config["graceful_stop"]

        return cls(
            options=options,
            vus_max=vus_max,
            graceful_stop=graceful_stop,
            scheduler_tick_interval=run_config["scheduler_tick_interval"],
            threshold_eval_interval=run_config["threshold_eval_interval"],
            trend_percentiles=tuple(run_config["trend_percentiles"]),
            report_timezone=run_config["report_timezone"],
            http_timeout=run_config["http_timeout"],
            env=MappingProxyType(dict(env or {})),
        )
