import asyncio
import logging
import time
from typing import Callable, List, Optional, Sequence

from stampede.schemas.load_test.load_test_options import StageConfig

logger = logging.getLogger(__name__)


class StageScheduler:
    """
    stage 목록에 따라 목표 VU 수를 계산하고 VirtualUserPool을 구동하는 스케줄러

    1. 이전 stage의 target에서 현재 stage의 target까지 선형 보간
    2. stage 경계에서는 선언된 target 값을 정확히 반환
    3. 전체 stage 기간이 지나면 완료 신호
    """

    def __init__(self, stages: Sequence[StageConfig], start_vus: int = 0,
                 clock: Callable[[], float] = time.monotonic):
        """
        Args:
            stages: 순서가 있는 stage 목록 (검증은 StageConfig에서 끝난 상태)
            start_vus: 첫 stage의 시작 VU 수
            clock: 경과 시간 측정용 시계
        """
        self.stages: List[StageConfig] = list(stages)
        self.start_vus = start_vus
        self.total_duration = sum(stage.duration for stage in self.stages)
        self._clock = clock
        self._started_at: Optional[float] = None
        self.last_target = start_vus

    def target_at(self, elapsed: float) -> int:
        """경과 시간 기준 목표 동시 VU 수"""
        previous = self.start_vus
        stage_start = 0.0

        for stage in self.stages:
            stage_end = stage_start + stage.duration
            if elapsed < stage_end:
                progress = max(0.0, elapsed - stage_start) / stage.duration
                return int(previous + (stage.target - previous) * progress)
            previous = stage.target
            stage_start = stage_end

        # 모든 stage 종료: 마지막 target 유지
        return previous

    def is_complete(self, elapsed: float) -> bool:
        return elapsed >= self.total_duration

    def current_stage_index(self, elapsed: float) -> Optional[int]:
        stage_start = 0.0
        for index, stage in enumerate(self.stages):
            stage_start += stage.duration
            if elapsed < stage_start:
                return index
        return None

    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return self._clock() - self._started_at

    async def run(self, pool, stop_event: asyncio.Event, on_complete: Callable[[], None],
                  tick_interval: float = 0.1):
        """
        스케줄러 메인 루프

        Args:
            pool: set_target(n)을 제공하는 VirtualUserPool
            stop_event: 외부 중지 신호
            on_complete: 전체 stage가 끝났을 때 호출
            tick_interval: 목표값 갱신 주기 (초)
        """
        self._started_at = self._clock()
        logger.info(f"Stage scheduler started: {len(self.stages)} stages, "
                    f"total duration {self.total_duration:.1f}s")

        current_stage = None
        while not stop_event.is_set():
            elapsed = self.elapsed()

            if self.is_complete(elapsed):
                # 종료 직전에 VU를 새로 띄우지 않도록 풀 목표는 건드리지 않음
                self.last_target = self.target_at(elapsed)
                logger.info(f"All stages completed after {elapsed:.2f}s")
                on_complete()
                return

            stage_index = self.current_stage_index(elapsed)
            if stage_index != current_stage:
                current_stage = stage_index
                stage = self.stages[stage_index]
                logger.info(f"Entering stage {stage_index + 1}/{len(self.stages)}: "
                            f"target={stage.target} over {stage.duration:.1f}s")

            target = self.target_at(elapsed)
            if target != self.last_target:
                logger.debug(f"Target VUs {self.last_target} -> {target} at {elapsed:.2f}s")
            self.last_target = target
            pool.set_target(target)

            # 다음 tick까지 대기 (단, stage 종료 시점을 넘기지 않음)
            wait = min(tick_interval, max(0.0, self.total_duration - elapsed))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=wait)
            except asyncio.TimeoutError:
                pass

        logger.info("Stage scheduler stopped")
