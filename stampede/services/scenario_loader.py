import importlib.util
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType, ModuleType
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from stampede.common.exception import ConfigError
from stampede.schemas.load_test.load_test_options import LoadTestOptions

logger = logging.getLogger(__name__)

ITERATION_FUNCTION_NAMES = ("default", "iterate")


@dataclass(frozen=True)
class Scenario:
    """시나리오 파일에서 읽어온 실행 단위"""
    path: Path
    options: LoadTestOptions
    iterate: Callable[..., Any]
    env: Mapping[str, str]


def parse_env_pairs(pairs: Optional[Iterable[str]]) -> Dict[str, str]:
    """
    --env KEY=VALUE 인자 목록을 딕셔너리로 변환

    Raises:
        ConfigError: '=' 가 없거나 키가 비어 있는 경우
    """
    env = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ConfigError(f"Invalid --env value {pair!r}, expected KEY=VALUE")
        env[key.strip()] = value
    return env


def build_env(overrides: Optional[Mapping[str, str]] = None) -> Mapping[str, str]:
    """프로세스 환경변수 위에 --env 값을 덮어쓴 읽기 전용 매핑"""
    env = dict(os.environ)
    env.update(overrides or {})
    return MappingProxyType(env)


def load_scenario(path: str, env: Optional[Mapping[str, str]] = None) -> Scenario:
    """
    시나리오 파일(파이썬 모듈) 로드

    모듈 실행 전에 ENV 이름으로 환경변수 매핑을 주입한다.
    모듈은 options(dict 또는 LoadTestOptions)와 default(ctx) 또는 iterate(ctx)를 정의해야 한다.

    Args:
        path: 시나리오 파일 경로
        env: 시나리오에 노출할 환경변수

    Returns:
        Scenario: 검증된 options와 iteration 함수

    Raises:
        ConfigError: 파일이 없거나, 실행에 실패했거나, 필수 항목이 없는 경우
    """
    scenario_path = Path(path)
    if not scenario_path.is_file():
        raise ConfigError(f"Scenario file not found: {scenario_path}")

    env = env if env is not None else build_env()
    module = _execute_module(scenario_path, env)

    raw_options = getattr(module, "options", None)
    if raw_options is None:
        raise ConfigError(f"Scenario {scenario_path} does not define 'options'")
    options = LoadTestOptions.parse(raw_options)

    iterate = None
    for name in ITERATION_FUNCTION_NAMES:
        candidate = getattr(module, name, None)
        if callable(candidate):
            iterate = candidate
            break
    if iterate is None:
        raise ConfigError(
            f"Scenario {scenario_path} must define one of: {', '.join(ITERATION_FUNCTION_NAMES)}"
        )

    logger.info(f"Loaded scenario {scenario_path}: {len(options.stages)} stages, "
                f"{len(options.thresholds)} thresholds")
    return Scenario(path=scenario_path, options=options, iterate=iterate, env=env)


def _execute_module(path: Path, env: Mapping[str, str]) -> ModuleType:
    module_name = f"stampede_scenario_{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ConfigError(f"Cannot load scenario file: {path}")

    module = importlib.util.module_from_spec(spec)
    module.ENV = env
    try:
        spec.loader.exec_module(module)
    except ConfigError:
        raise
    except Exception as e:
        raise ConfigError(f"Failed to execute scenario {path}: {type(e).__name__}: {e}") from e
    return module
