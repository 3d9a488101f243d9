"""Tests for the execution-context-local classification holder."""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from isolation_service.traffic import (
    DEFAULT_TEST_RUN_ID,
    ClassificationContext,
    TrafficClassification,
    TrafficContextFilter,
    TrafficKind,
)


class TestDefaults:
    def test_nothing_established_reads_production(self, context):
        assert context.is_test() is False
        assert context.current().kind is TrafficKind.PRODUCTION
        assert context.run_id() == DEFAULT_TEST_RUN_ID

    def test_clear_is_idempotent(self, context):
        context.clear()
        context.clear()
        assert context.is_test() is False

        context.establish(TrafficClassification.for_test("run-1"))
        context.clear()
        context.clear()
        assert context.is_test() is False

    def test_establish_then_clear(self, context):
        context.establish(TrafficClassification.for_test("run-1"))
        assert context.is_test() is True
        assert context.run_id() == "run-1"

        context.clear()
        assert context.is_test() is False

    def test_instances_share_the_same_state(self, context):
        context.establish(TrafficClassification.for_test("run-1"))

        assert ClassificationContext().is_test() is True


class TestScope:
    def test_scope_restores_previous_value(self, context):
        with context.scope(TrafficClassification.for_test("run-1")):
            assert context.is_test()
        assert not context.is_test()

    def test_scopes_nest(self, context):
        with context.scope(TrafficClassification.for_test("outer")):
            with context.scope(TrafficClassification.production()):
                assert not context.is_test()
            assert context.run_id() == "outer"

    def test_scope_restores_on_exception(self, context):
        with pytest.raises(RuntimeError):
            with context.scope(TrafficClassification.for_test("run-1")):
                raise RuntimeError("boom")
        assert not context.is_test()


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_tasks_do_not_observe_each_other(self, context):
        async def handle(classification):
            context.establish(classification)
            await asyncio.sleep(0.01)
            seen = context.current()
            context.clear()
            return seen

        test_seen, prod_seen = await asyncio.gather(
            handle(TrafficClassification.for_test("run-42")),
            handle(TrafficClassification.production()),
        )

        assert test_seen.is_test and test_seen.run_id == "run-42"
        assert not prod_seen.is_test

    @pytest.mark.asyncio
    async def test_task_classification_does_not_leak_to_caller(self, context):
        async def handle():
            context.establish(TrafficClassification.for_test("run-1"))

        await asyncio.create_task(handle())

        assert context.is_test() is False

    def test_threads_do_not_observe_each_other(self, context):
        barrier = threading.Barrier(2)

        def handle(classification):
            context.establish(classification)
            barrier.wait()
            try:
                return context.is_test()
            finally:
                context.clear()

        with ThreadPoolExecutor(max_workers=2) as pool:
            test_result = pool.submit(handle, TrafficClassification.for_test("run-1"))
            prod_result = pool.submit(handle, TrafficClassification.production())

        assert test_result.result() is True
        assert prod_result.result() is False


def test_log_records_carry_classification(context):
    record = logging.LogRecord("t", logging.INFO, __file__, 1, "msg", None, None)
    log_filter = TrafficContextFilter(context)

    with context.scope(TrafficClassification.for_test("run-42")):
        assert log_filter.filter(record) is True

    assert record.traffic_type == "LOAD_TEST"
    assert record.test_run_id == "run-42"
