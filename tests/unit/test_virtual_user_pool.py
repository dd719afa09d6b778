import asyncio

import pytest

from stampede.metrics.metric_registry import MetricRegistry
from stampede.services.execution.virtual_user_pool import VirtualUserPool, VirtualUserState
from stampede.services.execution.work_unit_executor import WorkUnitExecutor


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def make_pool(iterate, build_context, vus_max=5, on_fatal=None):
    registry = MetricRegistry()
    executor = WorkUnitExecutor(iterate, registry)
    pool = VirtualUserPool(
        executor,
        context_factory=lambda vu_id, iteration: build_context(registry, vu_id, iteration),
        vus_max=vus_max,
        on_fatal=on_fatal,
    )
    return pool, registry


class TestVirtualUserPool:
    @pytest.mark.asyncio
    async def test_scale_up_and_down(self, build_context):
        async def iterate(ctx):
            await asyncio.sleep(0.01)

        pool, registry = make_pool(iterate, build_context)

        pool.set_target(3)
        assert pool.live_count == 3
        await asyncio.sleep(0.05)
        assert registry.snapshot().get("iterations").get("count") > 0

        pool.set_target(1)
        assert pool.active_count == 1
        await wait_until(lambda: pool.live_count == 1)

        assert await pool.stop(1.0) == 0
        assert pool.live_count == 0

    @pytest.mark.asyncio
    async def test_target_is_capped_at_vus_max(self, build_context):
        async def iterate(ctx):
            await asyncio.sleep(0.01)

        pool, _ = make_pool(iterate, build_context, vus_max=4)

        pool.set_target(50)
        assert pool.target == 4
        assert pool.live_count == 4

        await pool.stop(1.0)
        assert pool.peak_active == 4

    @pytest.mark.asyncio
    async def test_stopping_users_count_against_vus_max(self, build_context):
        """종료 대기 중인 VU를 되살려서 vus_max를 넘지 않음"""
        async def iterate(ctx):
            await asyncio.sleep(0.05)

        pool, _ = make_pool(iterate, build_context, vus_max=4)

        pool.set_target(4)
        await asyncio.sleep(0.01)
        pool.set_target(0)
        assert all(user.state == VirtualUserState.STOPPING for user in pool.users())

        pool.set_target(4)
        assert pool.live_count == 4
        assert pool.active_count == 4

        await pool.stop(1.0)
        assert pool.peak_active <= 4

    @pytest.mark.asyncio
    async def test_ramp_down_does_not_interrupt_iterations(self, build_context):
        started = []
        finished = []

        async def iterate(ctx):
            started.append(ctx.vu_id)
            await asyncio.sleep(0.03)
            finished.append(ctx.vu_id)

        pool, _ = make_pool(iterate, build_context)

        pool.set_target(3)
        await asyncio.sleep(0.01)
        pool.set_target(0)
        await wait_until(lambda: pool.live_count == 0)

        assert len(started) == len(finished)
        assert await pool.stop(0.1) == 0

    @pytest.mark.asyncio
    async def test_stop_interrupts_after_grace(self, build_context):
        async def iterate(ctx):
            await asyncio.sleep(10)

        pool, registry = make_pool(iterate, build_context)

        pool.set_target(2)
        await asyncio.sleep(0.01)
        interrupted = await pool.stop(0.05)

        assert interrupted == 2
        assert pool.live_count == 0
        assert registry.snapshot().get("iterations").get("count") == 0

    @pytest.mark.asyncio
    async def test_set_target_after_stop_is_ignored(self, build_context):
        async def iterate(ctx):
            await asyncio.sleep(0.01)

        pool, _ = make_pool(iterate, build_context)
        await pool.stop(0.1)

        pool.set_target(3)
        assert pool.live_count == 0

    @pytest.mark.asyncio
    async def test_dead_user_task_is_reported(self, build_context):
        async def iterate(ctx):
            await asyncio.sleep(0)

        errors = []
        pool, _ = make_pool(iterate, build_context, on_fatal=errors.append)

        async def broken_execute(context):
            raise RuntimeError("executor bug")

        pool.executor.execute = broken_execute
        pool.set_target(1)
        await wait_until(lambda: errors)

        assert isinstance(errors[0], RuntimeError)
        assert isinstance(pool.fatal_error, RuntimeError)
        await pool.stop(0.1)

    def test_vus_max_must_be_positive(self, build_context):
        with pytest.raises(ValueError):
            make_pool(lambda ctx: None, build_context, vus_max=0)
