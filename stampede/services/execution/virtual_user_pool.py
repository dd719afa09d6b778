import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from stampede.common.exception import InternalError
from stampede.services.execution.iteration_context import IterationContext
from stampede.services.execution.work_unit_executor import WorkUnitExecutor

logger = logging.getLogger(__name__)


class VirtualUserState(str, Enum):
    IDLE = "idle"            # iteration 사이
    RUNNING = "running"      # iteration 실행 중
    STOPPING = "stopping"    # 현재 iteration 종료 후 중지 예정


@dataclass
class VirtualUser:
    id: int
    state: VirtualUserState = VirtualUserState.IDLE
    iterations: int = 0
    task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self.state != VirtualUserState.STOPPING


class VirtualUserPool:
    """
    동적으로 크기가 바뀌는 가상 사용자 집합

    Features:
    - set_target(n)은 즉시 반환되고 VU 수는 점진적으로 n에 수렴
    - 증가 시 종료 대기 중인 VU를 먼저 되살리고 부족분만 새로 생성
    - 감소 시 초과 VU를 STOPPING으로 표시 (진행 중 iteration은 중단하지 않음)
    - 살아있는 태스크 수는 vus_max를 넘지 않음
    """

    def __init__(self, executor: WorkUnitExecutor,
                 context_factory: Callable[[int, int], IterationContext],
                 vus_max: int,
                 on_fatal: Optional[Callable[[BaseException], None]] = None):
        """
        Args:
            executor: iteration 실행기
            context_factory: (vu_id, iteration) -> IterationContext
            vus_max: 동시 VU 상한
            on_fatal: VU 태스크가 예기치 않게 종료되었을 때 호출
        """
        if vus_max < 1:
            raise ValueError(f"vus_max must be >= 1, got {vus_max}")
        self.executor = executor
        self.context_factory = context_factory
        self.vus_max = vus_max
        self.on_fatal = on_fatal

        self._users: Dict[int, VirtualUser] = {}
        self._next_id = 1
        self._target = 0
        self._stopping = False
        self.peak_active = 0
        self.fatal_error: Optional[BaseException] = None

    @property
    def target(self) -> int:
        return self._target

    @property
    def live_count(self) -> int:
        """종료 대기 중인 VU를 포함한 살아있는 VU 수"""
        return len(self._users)

    @property
    def active_count(self) -> int:
        """STOPPING이 아닌 VU 수"""
        return sum(1 for user in self._users.values() if user.active)

    def users(self) -> List[VirtualUser]:
        return list(self._users.values())

    def set_target(self, n: int) -> None:
        """목표 VU 수 설정 (수렴은 비동기)"""
        if self._stopping:
            return
        self._target = max(0, min(int(n), self.vus_max))
        self._reconcile()

    def _reconcile(self) -> None:
        if self._stopping:
            return

        active = [user for user in self._users.values() if user.active]
        if len(active) < self._target:
            needed = self._target - len(active)

            # 아직 종료되지 않은 VU부터 재사용
            for user in sorted(self._users.values(), key=lambda u: u.id):
                if needed == 0:
                    break
                if user.state == VirtualUserState.STOPPING:
                    user.state = VirtualUserState.IDLE
                    needed -= 1

            while needed > 0 and len(self._users) < self.vus_max:
                self._spawn()
                needed -= 1

        elif len(active) > self._target:
            excess = len(active) - self._target
            for user in sorted(active, key=lambda u: u.id, reverse=True)[:excess]:
                user.state = VirtualUserState.STOPPING
            logger.debug(f"Marked {excess} VUs for graceful stop (target={self._target})")

        if len(self._users) > self.vus_max:
            raise InternalError(
                f"Live VU count {len(self._users)} exceeds vus_max {self.vus_max}",
                state=self.stats(),
            )
        self.peak_active = max(self.peak_active, len(self._users))

    def _spawn(self) -> VirtualUser:
        user = VirtualUser(id=self._next_id)
        self._next_id += 1
        self._users[user.id] = user
        user.task = asyncio.create_task(self._run_user(user), name=f"vu-{user.id}")
        user.task.add_done_callback(self._on_user_done)
        return user

    async def _run_user(self, user: VirtualUser) -> None:
        try:
            # 중지 신호는 루프 시작 시점에만 확인
            while user.state != VirtualUserState.STOPPING and not self._stopping:
                user.state = VirtualUserState.RUNNING
                context = self.context_factory(user.id, user.iterations)
                await self.executor.execute(context)
                user.iterations += 1
                if user.state == VirtualUserState.RUNNING:
                    user.state = VirtualUserState.IDLE
                # iteration이 I/O 없이 끝나도 다른 VU가 실행될 수 있도록 양보
                await asyncio.sleep(0)
        finally:
            self._users.pop(user.id, None)

    def _on_user_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Virtual user task {task.get_name()} died: {error!r}", exc_info=error)
            if self.fatal_error is None:
                self.fatal_error = error
                if self.on_fatal:
                    self.on_fatal(error)
            return
        # ramp-down 중 종료된 VU 자리를 목표에 맞게 다시 채움
        if not self._stopping:
            self._reconcile()

    async def stop(self, grace: float) -> int:
        """
        모든 VU에 중지 신호를 보내고 종료를 기다림

        Args:
            grace: 진행 중 iteration 종료를 기다리는 최대 시간 (초)

        Returns:
            int: grace 시간 내에 끝나지 않아 강제 종료된 VU 수
        """
        self._stopping = True
        self._target = 0
        for user in self._users.values():
            user.state = VirtualUserState.STOPPING

        tasks = [user.task for user in self._users.values() if user.task is not None]
        if not tasks:
            return 0

        logger.info(f"Stopping {len(tasks)} VUs (graceful stop {grace:.1f}s)")
        done, pending = await asyncio.wait(tasks, timeout=grace)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(f"{len(pending)} VUs did not finish within {grace:.1f}s and were interrupted")

        return len(pending)

    def stats(self) -> dict:
        states = {state.value: 0 for state in VirtualUserState}
        for user in self._users.values():
            states[user.state.value] += 1
        return {
            "target": self._target,
            "live": len(self._users),
            "peak": self.peak_active,
            "vus_max": self.vus_max,
            "states": states,
            "iterations": sum(user.iterations for user in self._users.values()),
        }
