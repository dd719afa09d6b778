import asyncio
import logging
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import httpx
import pytz

from stampede.common.exception import ConfigError, InternalError
from stampede.metrics.metric_registry import MetricRegistry
from stampede.scheduler.stage_scheduler import StageScheduler
from stampede.schemas.load_test.run_config import RunConfig
from stampede.schemas.report.run_report import (
    RunReport,
    RunState,
    StopReason,
    ThresholdResult,
    VuSummary,
)
from stampede.services.execution.iteration_context import IterationContext
from stampede.services.execution.virtual_user_pool import VirtualUserPool
from stampede.services.execution.work_unit_executor import WorkUnitExecutor
from stampede.services.http_client import HttpClient, HttpClientConfig
from stampede.services.scenario_loader import Scenario
from stampede.services.thresholds.threshold_evaluator import ThresholdEvaluator
from stampede.services.thresholds.threshold_parser import parse_thresholds, required_percentiles

logger = logging.getLogger(__name__)


class RunController:
    """
    부하 테스트 1회 실행을 관리하는 컨트롤러

    상태: PENDING -> RUNNING -> (COMPLETED | ABORTED)

    1. StageScheduler 태스크가 VirtualUserPool 크기를 조정
    2. ThresholdEvaluator 태스크가 주기적으로 threshold 평가
    3. 종료 사유가 정해지면 VU를 graceful stop 하고 레지스트리를 닫음
    4. 최종 threshold 평가 후 RunReport 생성
    """

    def __init__(self, iterate: Callable[..., Any], run_config: RunConfig,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Args:
            iterate: 사용자 iteration 함수
            run_config: 실행 설정 (불변)
            transport: HTTP 클라이언트 transport (테스트용)
            clock: 경과 시간 측정용 시계

        Raises:
            ConfigError: 메트릭 선언, threshold, 시간대 설정 오류
        """
        self.run_config = run_config
        options = run_config.options

        try:
            self._timezone = pytz.timezone(run_config.report_timezone)
        except pytz.UnknownTimeZoneError as e:
            raise ConfigError(f"Unknown report timezone: {run_config.report_timezone}") from e

        self.registry = MetricRegistry(percentiles=run_config.trend_percentiles, clock=clock)
        for name, kind in options.metrics.items():
            self.registry.declare(name, kind)

        thresholds = parse_thresholds(options.thresholds, self.registry.kinds())
        self.registry.add_percentiles(required_percentiles(thresholds))

        self.scheduler = StageScheduler(options.stages, start_vus=options.start_vus, clock=clock)
        self.evaluator = ThresholdEvaluator(thresholds)
        self.executor = WorkUnitExecutor(iterate, self.registry, max_workers=run_config.vus_max)
        self.http = HttpClient(
            self.registry,
            HttpClientConfig(
                base_url=run_config.base_url,
                headers=run_config.headers,
                timeout_seconds=run_config.http_timeout,
                max_connections=run_config.vus_max,
            ),
            transport=transport,
        )
        self.pool = VirtualUserPool(
            self.executor,
            context_factory=self._create_context,
            vus_max=run_config.vus_max,
            on_fatal=self._on_fatal,
        )

        self.state = RunState.PENDING
        self.stop_reason: Optional[StopReason] = None
        self.abort_reason: Optional[str] = None
        self.fatal_error: Optional[BaseException] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[int] = None
        self._cancel_requested = False

        logger.info(f"RunController initialized: {len(options.stages)} stages, "
                    f"{len(thresholds)} thresholds, vus_max={run_config.vus_max}, "
                    f"graceful_stop={run_config.graceful_stop}s")

    @classmethod
    def from_scenario(cls, scenario: Scenario, run_config: RunConfig, **kwargs) -> "RunController":
        return cls(scenario.iterate, run_config, **kwargs)

    def _create_context(self, vu_id: int, iteration: int) -> IterationContext:
        return IterationContext(
            vu_id=vu_id,
            iteration=iteration,
            env=self.run_config.env,
            base_url=self.run_config.base_url,
            headers=self.run_config.headers,
            http=self.http,
            registry=self.registry,
        )

    def request_stop(self, reason: StopReason, detail: Optional[str] = None) -> None:
        """첫 번째 종료 사유만 기록하고 모든 태스크에 중지 신호 전달"""
        if self.stop_reason is not None:
            return
        self.stop_reason = reason
        self.abort_reason = detail
        logger.info(f"Stop requested: {reason.value}" + (f" ({detail})" if detail else ""))
        if self._stop_event is not None:
            self._stop_event.set()

    def cancel(self) -> None:
        """외부 취소 신호 (시그널 핸들러나 다른 스레드에서 호출 가능)"""
        if self._loop is None:
            self._cancel_requested = True
            return
        if threading.get_ident() == self._loop_thread:
            self.request_stop(StopReason.CANCELLED, "cancelled by user")
        else:
            self._loop.call_soon_threadsafe(self.request_stop, StopReason.CANCELLED, "cancelled by user")

    def _on_abort(self, result: ThresholdResult) -> None:
        self.request_stop(StopReason.THRESHOLD_ABORT, f"threshold '{result.name}' failed")

    def _on_fatal(self, error: BaseException) -> None:
        if self.fatal_error is None:
            self.fatal_error = error
        self.request_stop(StopReason.INTERNAL_ERROR, f"{type(error).__name__}: {error}")

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Task {task.get_name()} failed: {error!r}", exc_info=error)
            self._on_fatal(error)

    async def run(self) -> RunReport:
        """
        실행 후 RunReport 반환

        Raises:
            InternalError: 엔진 불변식 위반 (state에 실행 상태 덤프 포함)
        """
        if self.state != RunState.PENDING:
            raise InternalError(f"Run already started (state={self.state.value})", state=self.dump_state())

        self._loop = asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()
        self._stop_event = asyncio.Event()
        self.state = RunState.RUNNING
        started_at = datetime.now(self._timezone)
        self.registry.reset_clock()
        logger.info(f"Run started: total stage duration {self.scheduler.total_duration:.1f}s")

        if self._cancel_requested:
            self.request_stop(StopReason.CANCELLED, "cancelled before start")

        interrupted = 0
        async with self.http:
            scheduler_task = asyncio.create_task(
                self.scheduler.run(
                    self.pool,
                    self._stop_event,
                    on_complete=lambda: self.request_stop(StopReason.COMPLETED),
                    tick_interval=self.run_config.scheduler_tick_interval,
                ),
                name="stage-scheduler",
            )
            evaluator_task = asyncio.create_task(
                self.evaluator.run(
                    self.registry,
                    self._stop_event,
                    on_abort=self._on_abort,
                    interval=self.run_config.threshold_eval_interval,
                ),
                name="threshold-evaluator",
            )
            for task in (scheduler_task, evaluator_task):
                task.add_done_callback(self._on_task_done)

            await self._stop_event.wait()
            await asyncio.gather(scheduler_task, evaluator_task, return_exceptions=True)

            interrupted = await self.pool.stop(self.run_config.graceful_stop)
            self.executor.shutdown()

        duration = self.registry.elapsed()
        self.registry.close()
        finished_at = datetime.now(self._timezone)

        if self.stop_reason == StopReason.INTERNAL_ERROR:
            self.state = RunState.ABORTED
            state = self.dump_state()
            raise InternalError(f"Run aborted by internal error: {self.abort_reason}", state=state) \
                from self.fatal_error

        snapshot = self.registry.snapshot()
        results = self.evaluator.final(snapshot)

        self.state = RunState.COMPLETED if self.stop_reason == StopReason.COMPLETED else RunState.ABORTED
        passed = all(result.passed for result in results) and self.stop_reason != StopReason.THRESHOLD_ABORT

        report = RunReport(
            state=self.state,
            passed=passed,
            aborted=self.state == RunState.ABORTED,
            stop_reason=self.stop_reason,
            abort_reason=self.abort_reason if self.state == RunState.ABORTED else None,
            started_at=started_at,
            finished_at=finished_at,
            duration_seconds=round(duration, 3),
            vus=VuSummary(max=self.run_config.vus_max, peak=self.pool.peak_active, interrupted=interrupted),
            metrics=snapshot.to_dict(),
            thresholds=results,
            dropped_samples=self.registry.dropped_samples,
        )

        logger.info(f"Run finished: state={report.state.value}, passed={report.passed}, "
                    f"duration={report.duration_seconds:.2f}s, "
                    f"failed thresholds={len(report.failed_thresholds)}")
        return report

    def dump_state(self) -> Dict[str, Any]:
        """InternalError 보고용 실행 상태 덤프"""
        return {
            "state": self.state.value,
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
            "abort_reason": self.abort_reason,
            "elapsed": round(self.registry.elapsed(), 3),
            "scheduler": {
                "target": self.scheduler.last_target,
                "total_duration": self.scheduler.total_duration,
                "stages": [stage.model_dump() for stage in self.scheduler.stages],
            },
            "pool": self.pool.stats(),
            "thresholds": [t.name for t in self.evaluator.thresholds],
            "metrics": self.registry.snapshot().to_dict(),
            "dropped_samples": self.registry.dropped_samples,
            "error": repr(self.fatal_error) if self.fatal_error else None,
        }
