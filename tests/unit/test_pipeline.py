"""Tests for chain execution and diagnostics of a single pipeline."""

from __future__ import annotations

import asyncio
import logging

import pytest

from chainware import Pipeline
from chainware.continuation import Continuation


def make_unit(name: str, calls: list[str], *, advance: bool = True):
    async def unit(payload, next_fn):
        calls.append(name)
        if advance:
            await next_fn()

    unit.__qualname__ = name
    return unit


@pytest.mark.asyncio
class TestRun:
    """Happy path, ordering and short-circuiting."""

    async def test_all_units_advance(self) -> None:
        calls: list[str] = []
        pipeline = Pipeline(*(make_unit(f"mw{i}", calls) for i in range(3)))

        diagnostics = await pipeline.run("payload")

        assert calls == ["mw0", "mw1", "mw2"]
        assert diagnostics.success is True
        assert diagnostics.ran == 3
        assert diagnostics.total_ran == 3
        assert diagnostics.total == 3
        assert diagnostics.proxies == 0
        assert diagnostics.reached_last is True
        assert diagnostics.last_next_called is True
        assert diagnostics.discontinued is False
        assert diagnostics.error is None

    async def test_units_receive_arguments_and_next(self) -> None:
        received = []

        def unit(a, b, next_fn):
            received.append((a, b, next_fn))

        await Pipeline(unit).run(1, "two")

        assert len(received) == 1
        a, b, next_fn = received[0]
        assert (a, b) == (1, "two")
        assert isinstance(next_fn, Continuation)

    async def test_sync_units_are_supported(self) -> None:
        calls: list[str] = []

        def first(next_fn):
            calls.append("first")
            return next_fn()

        async def second(next_fn):
            calls.append("second")
            await next_fn()

        diagnostics = await Pipeline(first, second).run()

        assert calls == ["first", "second"]
        assert diagnostics.reached_last is True

    async def test_sync_unit_may_call_next_without_returning_it(self) -> None:
        calls: list[str] = []

        def sync_unit(payload, next_fn):
            calls.append("sync_before")
            next_fn()
            calls.append("sync_after")

        diagnostics = await Pipeline(sync_unit, make_unit("after", calls)).run(None)

        assert calls == ["sync_before", "sync_after", "after"]
        assert diagnostics.reached_last is True
        assert diagnostics.discontinued is False
        assert diagnostics.success is True
        assert diagnostics.ran == 2

    async def test_sync_unit_may_discontinue_without_awaiting(self) -> None:
        calls: list[str] = []

        def sync_stop(payload, next_fn):
            next_fn(True)

        diagnostics = await Pipeline(sync_stop, make_unit("after", calls)).run(None)

        assert calls == []
        assert diagnostics.discontinued is True

    async def test_unawaited_next_is_dropped_when_unit_raises(self) -> None:
        calls: list[str] = []
        error = ValueError("after next")

        def sync_unit(payload, next_fn):
            next_fn()
            raise error

        diagnostics = await Pipeline(sync_unit, make_unit("after", calls)).run(None)

        assert calls == []
        assert diagnostics.success is False
        assert diagnostics.error is error

    async def test_unawaited_next_runs_once(self) -> None:
        calls: list[str] = []

        def sync_unit(payload, next_fn):
            next_fn()
            next_fn()

        diagnostics = await Pipeline(sync_unit, make_unit("after", calls)).run(None)

        assert calls == ["after"]
        assert diagnostics.total_ran == 2

    async def test_empty_pipeline_reaches_last(self) -> None:
        diagnostics = await Pipeline().run()

        assert diagnostics.reached_last is True
        assert diagnostics.last_next_called is False
        assert diagnostics.total == 0
        assert diagnostics.ran == 0
        assert diagnostics.success is True

    async def test_duplicate_registration_runs_once(self) -> None:
        calls: list[str] = []
        unit = make_unit("mw", calls)
        pipeline = Pipeline(unit, unit)
        pipeline.register(unit)

        diagnostics = await pipeline.run(None)

        assert calls == ["mw"]
        assert diagnostics.ran == 1
        assert diagnostics.total == 1

    @pytest.mark.parametrize("k", [1, 2, 3])
    async def test_unit_not_calling_next_short_circuits(self, k: int) -> None:
        calls: list[str] = []
        units = [make_unit(f"mw{i}", calls, advance=(i != k)) for i in range(1, 5)]

        diagnostics = await Pipeline(*units).run(None)

        assert calls == [f"mw{i}" for i in range(1, k + 1)]
        assert diagnostics.ran == k
        assert diagnostics.total_ran == k
        assert diagnostics.reached_last is False
        assert diagnostics.last_next_called is False
        assert diagnostics.discontinued is False
        assert diagnostics.success is True

    async def test_last_unit_not_calling_next_does_not_reach_last(self) -> None:
        calls: list[str] = []
        pipeline = Pipeline(make_unit("a", calls), make_unit("b", calls, advance=False))

        diagnostics = await pipeline.run(None)

        assert diagnostics.ran == 2
        assert diagnostics.reached_last is False

    async def test_discontinue_stops_the_chain(self) -> None:
        calls: list[str] = []

        async def stopper(payload, next_fn):
            calls.append("stopper")
            await next_fn(True)

        pipeline = Pipeline(make_unit("a", calls), stopper, make_unit("c", calls))

        diagnostics = await pipeline.run(None)

        assert calls == ["a", "stopper"]
        assert diagnostics.discontinued is True
        assert diagnostics.success is True
        assert diagnostics.reached_last is False
        assert diagnostics.ran == 2

    async def test_next_after_discontinue_does_not_advance(self) -> None:
        calls: list[str] = []

        async def fickle(payload, next_fn):
            await next_fn(True)
            await next_fn()

        pipeline = Pipeline(fickle, make_unit("after", calls))

        diagnostics = await pipeline.run(None)

        assert calls == []
        assert diagnostics.discontinued is True

    async def test_next_is_idempotent(self) -> None:
        calls: list[str] = []

        async def twice(payload, next_fn):
            await next_fn()
            await next_fn()
            assert next_fn.called is True

        pipeline = Pipeline(twice, make_unit("b", calls), make_unit("c", calls))

        diagnostics = await pipeline.run(None)

        assert calls == ["b", "c"]
        assert diagnostics.ran == 3
        assert diagnostics.total_ran == 3

    async def test_units_after_await_run_in_order(self) -> None:
        order: list[str] = []

        async def outer(next_fn):
            order.append("outer_before")
            await asyncio.sleep(0)
            await next_fn()
            order.append("outer_after")

        async def inner(next_fn):
            order.append("inner")
            await next_fn()

        await Pipeline(outer, inner).run()

        assert order == ["outer_before", "inner", "outer_after"]


@pytest.mark.asyncio
class TestFailures:
    """Failures are recorded, never raised by run."""

    async def test_sync_raise_is_recorded(self) -> None:
        calls: list[str] = []
        error = ValueError("boom")

        def broken(payload, next_fn):
            raise error

        pipeline = Pipeline(make_unit("a", calls), broken, make_unit("c", calls))

        diagnostics = await pipeline.run(None)

        assert calls == ["a"]
        assert diagnostics.success is False
        assert diagnostics.error is error
        assert diagnostics.middleware is broken
        assert diagnostics.proxy is None
        assert diagnostics.ran == 2

    async def test_async_raise_is_recorded(self) -> None:
        calls: list[str] = []

        async def broken(payload, next_fn):
            await asyncio.sleep(0)
            raise RuntimeError("later")

        pipeline = Pipeline(broken, make_unit("b", calls))

        diagnostics = await pipeline.run(None)

        assert calls == []
        assert diagnostics.success is False
        assert isinstance(diagnostics.error, RuntimeError)
        assert diagnostics.middleware is broken

    async def test_first_failure_wins(self) -> None:
        first_error = KeyError("first")

        async def outer(payload, next_fn):
            try:
                await next_fn()
            finally:
                raise ValueError("second")

        def inner(payload, next_fn):
            raise first_error

        diagnostics = await Pipeline(outer, inner).run(None)

        assert diagnostics.success is False
        assert diagnostics.error is first_error
        assert diagnostics.middleware is inner

    async def test_upstream_sees_failure_swallowed(self) -> None:
        seen: list[str] = []

        async def first(payload, next_fn):
            await next_fn()
            seen.append("first resumed")

        async def second(payload, next_fn):
            await next_fn()

        def third(payload, next_fn):
            raise ValueError("deep")

        diagnostics = await Pipeline(first, second, third).run(None)

        assert seen == ["first resumed"]
        assert diagnostics.middleware is third

    async def test_failure_is_logged_once(self, caplog) -> None:
        caplog.set_level(logging.ERROR, logger="chainware.pipeline")

        async def passthrough(payload, next_fn):
            await next_fn()

        def broken(payload, next_fn):
            raise ValueError("boom")

        await Pipeline(passthrough, broken, name="orders").run(None)

        failures = [
            r for r in caplog.records if "failed in pipeline" in r.getMessage()
        ]
        assert len(failures) == 1
        assert "orders" in failures[0].getMessage()

    async def test_raise_for_error(self) -> None:
        from chainware import MiddlewareExecutionError

        error = ValueError("boom")

        def broken(next_fn):
            raise error

        diagnostics = await Pipeline(broken).run()

        with pytest.raises(MiddlewareExecutionError) as exc:
            diagnostics.raise_for_error()
        assert exc.value.error is error
        assert exc.value.middleware is broken
        assert exc.value.__cause__ is error


@pytest.mark.asyncio
class TestTerminalContinuation:
    """Custom last-next handling."""

    async def test_custom_terminal_called_once(self) -> None:
        calls: list[str] = []

        async def last_next() -> None:
            calls.append("last")

        async def twice(payload, next_fn):
            await next_fn()
            await next_fn()

        pipeline = Pipeline(twice, make_unit("b", []))

        diagnostics = await pipeline.run_and_then(last_next, None)

        assert calls == ["last"]
        assert diagnostics.last_next_called is True
        assert diagnostics.reached_last is True

    async def test_last_next_keyword(self) -> None:
        calls: list[str] = []

        diagnostics = await Pipeline(make_unit("a", calls)).run(
            "payload", last_next=lambda: calls.append("last")
        )

        assert calls == ["a", "last"]
        assert diagnostics.last_next_called is True

    async def test_custom_terminal_not_called_on_short_circuit(self) -> None:
        calls: list[str] = []

        diagnostics = await Pipeline(make_unit("a", calls, advance=False)).run_and_then(
            lambda: calls.append("last"), None
        )

        assert calls == ["a"]
        assert diagnostics.last_next_called is False

    async def test_failing_terminal_is_attributed_to_last_unit(self) -> None:
        calls: list[str] = []
        unit = make_unit("a", calls)

        def last_next() -> None:
            raise RuntimeError("terminal")

        diagnostics = await Pipeline(unit).run_and_then(last_next, None)

        assert diagnostics.success is False
        assert diagnostics.middleware is unit
        assert str(diagnostics.error) == "terminal"


@pytest.mark.asyncio
class TestRegistrationDuringRun:
    async def test_run_uses_snapshot(self) -> None:
        calls: list[str] = []
        late = make_unit("late", calls)
        pipeline = Pipeline()

        async def registering(payload, next_fn):
            pipeline.register(late)
            await next_fn()

        pipeline.register(registering)

        first = await pipeline.run(None)
        assert calls == []
        assert first.total == 1
        assert first.success is True
        assert first.reached_last is True

        second = await pipeline.run(None)
        assert calls == ["late"]
        assert second.total == 2
        assert second.success is True
        assert second.reached_last is True

    async def test_unregister_removes_unit(self) -> None:
        calls: list[str] = []
        a = make_unit("a", calls)
        b = make_unit("b", calls)
        pipeline = Pipeline(a, b)

        pipeline.unregister(a, make_unit("never", calls))

        await pipeline.run(None)
        assert calls == ["b"]
        assert a not in pipeline
        assert len(pipeline) == 1


@pytest.mark.asyncio
class TestNotifications:
    async def test_listeners_receive_final_diagnostics(self) -> None:
        received = []
        pipeline = Pipeline(make_unit("a", []))
        pipeline.ondiagnostics.subscribe(received.append)

        diagnostics = await pipeline.run(None)

        assert received == [diagnostics]

    async def test_listener_errors_do_not_affect_result(self, caplog) -> None:
        pipeline = Pipeline(make_unit("a", []))
        received = []

        @pipeline.ondiagnostics.subscribe
        async def broken(diagnostics) -> None:
            raise RuntimeError("listener")

        pipeline.ondiagnostics.subscribe(received.append)

        diagnostics = await pipeline.run(None)

        assert diagnostics.success is True
        assert received == [diagnostics]
        assert "Diagnostics listener" in caplog.text

    async def test_empty_run_is_not_dispatched(self) -> None:
        received = []
        pipeline = Pipeline()
        pipeline.ondiagnostics.subscribe(received.append)

        await pipeline.run()

        assert received == []
