import asyncio
import random

import pytest

from stampede.scheduler.stage_scheduler import StageScheduler
from stampede.schemas.load_test.load_test_options import StageConfig


def make_stages(*pairs):
    return [StageConfig(duration=duration, target=target) for duration, target in pairs]


class RecordingPool:
    def __init__(self):
        self.targets = []

    def set_target(self, n):
        self.targets.append(n)


class TestTargetAt:
    def test_linear_ramp_up(self):
        scheduler = StageScheduler(make_stages((10, 10)))

        assert scheduler.target_at(0) == 0
        assert scheduler.target_at(5) == 5
        assert scheduler.target_at(9.99) == 9
        assert scheduler.target_at(10) == 10

    def test_ramp_down_and_hold(self):
        scheduler = StageScheduler(make_stages((10, 10), (10, 10), (10, 0)))

        assert scheduler.target_at(15) == 10
        assert scheduler.target_at(25) == 5
        assert scheduler.target_at(30) == 0
        assert scheduler.target_at(100) == 0

    def test_start_vus(self):
        scheduler = StageScheduler(make_stages((10, 0)), start_vus=4)

        assert scheduler.target_at(0) == 4
        assert scheduler.target_at(5) == 2

    def test_stage_boundaries_return_declared_targets(self):
        rng = random.Random(42)
        for _ in range(50):
            pairs = [(rng.uniform(0.5, 30), rng.randint(0, 200)) for _ in range(rng.randint(1, 6))]
            scheduler = StageScheduler(make_stages(*pairs))

            boundary = 0.0
            for duration, target in pairs:
                boundary += duration
                assert scheduler.target_at(boundary) == target
            assert scheduler.target_at(scheduler.total_duration) == pairs[-1][1]

    def test_target_stays_between_neighbour_targets(self):
        scheduler = StageScheduler(make_stages((10, 20), (10, 5)))
        for step in range(0, 201):
            elapsed = step / 10
            target = scheduler.target_at(elapsed)
            if elapsed <= 10:
                assert 0 <= target <= 20
            else:
                assert 5 <= target <= 20

    def test_zero_stages(self):
        scheduler = StageScheduler([])

        assert scheduler.total_duration == 0
        assert scheduler.is_complete(0)
        assert scheduler.target_at(0) == 0

    def test_current_stage_index(self):
        scheduler = StageScheduler(make_stages((10, 1), (5, 1)))

        assert scheduler.current_stage_index(0) == 0
        assert scheduler.current_stage_index(12) == 1
        assert scheduler.current_stage_index(15) is None


class TestSchedulerLoop:
    @pytest.mark.asyncio
    async def test_run_drives_pool_and_completes(self):
        scheduler = StageScheduler(make_stages((0.2, 4)))
        pool = RecordingPool()
        stop_event = asyncio.Event()
        completed = []

        await asyncio.wait_for(
            scheduler.run(pool, stop_event, on_complete=lambda: completed.append(True), tick_interval=0.01),
            timeout=5,
        )

        assert completed == [True]
        assert scheduler.last_target == 4
        assert pool.targets[-1] <= 4
        assert pool.targets == sorted(pool.targets)

    @pytest.mark.asyncio
    async def test_zero_stages_complete_immediately(self):
        scheduler = StageScheduler([])
        pool = RecordingPool()
        completed = []

        await asyncio.wait_for(
            scheduler.run(pool, asyncio.Event(), on_complete=lambda: completed.append(True)),
            timeout=1,
        )

        assert completed == [True]
        assert pool.targets == []

    @pytest.mark.asyncio
    async def test_zero_stages_never_spawn_start_vus(self):
        scheduler = StageScheduler([], start_vus=3)
        pool = RecordingPool()

        await asyncio.wait_for(scheduler.run(pool, asyncio.Event(), on_complete=lambda: None), timeout=1)

        assert pool.targets == []
        assert scheduler.last_target == 3

    @pytest.mark.asyncio
    async def test_stop_event_ends_loop_without_completion(self):
        scheduler = StageScheduler(make_stages((60, 10)))
        pool = RecordingPool()
        stop_event = asyncio.Event()
        completed = []

        task = asyncio.create_task(
            scheduler.run(pool, stop_event, on_complete=lambda: completed.append(True), tick_interval=0.01)
        )
        await asyncio.sleep(0.05)
        stop_event.set()
        await asyncio.wait_for(task, timeout=1)

        assert completed == []
        assert scheduler.elapsed() < 60
