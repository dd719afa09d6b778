import asyncio
import threading

import pytest

from stampede.common.exception import IterationError, NetworkError
from stampede.schemas.metrics.metric_sample import MetricKind
from stampede.services.execution.checks import CheckResult, check, normalize_checks
from stampede.services.execution.work_unit_executor import WorkUnitExecutor


class TestChecks:
    def test_check_helper(self):
        results = check(200, {
            "status is 200": lambda status: status == 200,
            "status is 500": lambda status: status == 500,
            "raises": lambda status: status["missing"],
        })

        assert results == [
            CheckResult("status is 200", True),
            CheckResult("status is 500", False),
            CheckResult("raises", False),
        ]

    @pytest.mark.parametrize("result,expected", [
        (None, []),
        ({"ok": True}, [CheckResult("ok", True)]),
        ({"checks": [{"name": "ok", "passed": False}]}, [CheckResult("ok", False)]),
        ([("a", 1), CheckResult("b", False)], [CheckResult("a", True), CheckResult("b", False)]),
    ])
    def test_normalize_checks(self, result, expected):
        assert normalize_checks(result) == expected

    @pytest.mark.parametrize("result", [42, "ok", [42]])
    def test_normalize_checks_rejects_unknown_shapes(self, result):
        with pytest.raises(TypeError):
            normalize_checks(result)


class TestWorkUnitExecutor:
    @pytest.mark.asyncio
    async def test_successful_async_iteration(self, registry, build_context):
        async def iterate(ctx):
            return [{"name": "ok", "passed": True}]

        executor = WorkUnitExecutor(iterate, registry)
        outcome = await executor.execute(build_context(registry))

        assert outcome.failed is False
        assert outcome.checks == [CheckResult("ok", True)]

        snapshot = registry.snapshot()
        assert snapshot.get("iterations").get("count") == 1
        assert snapshot.get("iteration_errors").get("count") == 0
        assert snapshot.get("iteration_failed").get("rate") == 0.0
        assert snapshot.get("iteration_duration").count == 1
        assert snapshot.get("checks").get("rate") == 1.0
        assert snapshot.get("checks{ok}").get("rate") == 1.0

    @pytest.mark.asyncio
    async def test_sync_iteration_runs_in_worker_thread(self, registry, build_context):
        def iterate(ctx):
            return {"a": True, "b": False}

        executor = WorkUnitExecutor(iterate, registry)
        outcome = await executor.execute(build_context(registry))
        executor.shutdown()

        assert outcome.failed is False
        assert registry.snapshot().get("checks").get("rate") == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_sync_iterations_run_concurrently_up_to_max_workers(self, registry, build_context):
        """동기 iteration이 기본 스레드 풀 크기에 묶이지 않아야 함"""
        vus = 48
        barrier = threading.Barrier(vus, timeout=5)

        def iterate(ctx):
            barrier.wait()

        executor = WorkUnitExecutor(iterate, registry, max_workers=vus)
        outcomes = await asyncio.gather(*[
            executor.execute(build_context(registry, vu_id=vu_id)) for vu_id in range(1, vus + 1)
        ])
        executor.shutdown()

        assert [outcome.error for outcome in outcomes] == [None] * vus
        assert registry.snapshot().get("iterations").get("count") == vus

    @pytest.mark.asyncio
    async def test_shutdown_cancels_queued_sync_iterations(self, registry, build_context):
        release = threading.Event()

        def iterate(ctx):
            release.wait(5)

        executor = WorkUnitExecutor(iterate, registry, max_workers=1)
        running = asyncio.create_task(executor.execute(build_context(registry, vu_id=1)))
        queued = asyncio.create_task(executor.execute(build_context(registry, vu_id=2)))
        await asyncio.sleep(0.05)

        executor.shutdown()
        release.set()

        assert (await running).failed is False
        with pytest.raises(asyncio.CancelledError):
            await queued

    @pytest.mark.asyncio
    async def test_iteration_exception_is_recorded(self, registry, build_context):
        async def iterate(ctx):
            raise ValueError("boom")

        executor = WorkUnitExecutor(iterate, registry)
        outcome = await executor.execute(build_context(registry))

        assert isinstance(outcome.error, IterationError)
        assert isinstance(outcome.error.cause, ValueError)

        snapshot = registry.snapshot()
        assert snapshot.get("iterations").get("count") == 1
        assert snapshot.get("iteration_errors").get("count") == 1
        assert snapshot.get("iteration_failed").get("rate") == 1.0
        assert snapshot.get("checks").count == 0

    @pytest.mark.asyncio
    async def test_network_error_is_kept(self, registry, build_context):
        async def iterate(ctx):
            raise NetworkError("connection refused", url="http://localhost:1")

        outcome = await WorkUnitExecutor(iterate, registry).execute(build_context(registry))

        assert isinstance(outcome.error, NetworkError)
        assert registry.snapshot().get("iteration_errors").get("count") == 1

    @pytest.mark.asyncio
    async def test_unsupported_return_value_fails_iteration(self, registry, build_context):
        async def iterate(ctx):
            return 42

        outcome = await WorkUnitExecutor(iterate, registry).execute(build_context(registry))
        assert isinstance(outcome.error, IterationError)

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, registry, build_context):
        started = asyncio.Event()

        async def iterate(ctx):
            started.set()
            await asyncio.sleep(10)

        executor = WorkUnitExecutor(iterate, registry)
        task = asyncio.create_task(executor.execute(build_context(registry)))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert registry.snapshot().get("iterations").get("count") == 0

    @pytest.mark.asyncio
    async def test_custom_metric_sample(self, registry, build_context):
        registry.declare("login_duration", MetricKind.TREND)

        async def iterate(ctx):
            ctx.add_sample("login_duration", 12.5)

        await WorkUnitExecutor(iterate, registry).execute(build_context(registry))
        assert registry.snapshot().get("login_duration").get("max") == 12.5

    @pytest.mark.asyncio
    async def test_undeclared_custom_metric_fails_iteration(self, registry, build_context):
        async def iterate(ctx):
            ctx.add_sample("not_declared", 1)

        outcome = await WorkUnitExecutor(iterate, registry).execute(build_context(registry))
        assert isinstance(outcome.error, IterationError)
