"""Pipeline — registers middleware units and runs them as a chain.

Every unit receives the run arguments followed by a ``next`` continuation.
A unit may call ``next()`` to run the rest of the chain, ``next(True)`` to
discontinue it, not call it at all to short-circuit, or raise. A unit may
also be an object exposing ``run`` (typically another :class:`Pipeline`);
such a proxy reports its own diagnostics, which are merged into the outer
run's record.

Units may be sync or async. A sync unit can return ``next()`` or simply call
it; an unawaited ``next()`` is run once the unit returns, so code after the
call executes before the rest of the chain.
"""

from __future__ import annotations

import logging
from inspect import isawaitable
from typing import TYPE_CHECKING, Any

from .continuation import Continuation
from .diagnostics import Diagnostics, DiagnosticsAccumulator, coerce_diagnostics
from .events import DiagnosticsEvent
from .instrumentation import HookContext, HookRegistry, HookScope
from .registry import MiddlewareSet
from .units import MiddlewareKind, classify, describe, is_middleware

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from .ports import MiddlewareUnit

logger = logging.getLogger(__name__)


class ChainRun:
    """State shared by all continuations of a single run."""

    def __init__(
        self,
        pipeline: Pipeline,
        units: Sequence[MiddlewareUnit],
        args: tuple[Any, ...],
        last_next: Callable[..., Any] | None,
        hooks: HookRegistry,
    ) -> None:
        self.pipeline = pipeline
        self.units = units
        self.args = args
        self.last_next = last_next
        self.hooks = hooks
        self.diagnostics = DiagnosticsAccumulator(total=len(units))

    def continuation(self, position: int) -> Continuation:
        return Continuation(self, position)

    async def advance(self, position: int) -> None:
        """Run the unit at *position*, or the terminal past the last one."""
        if position >= len(self.units):
            await self._reach_last()
            return
        unit = self.units[position]
        kind = classify(unit)
        if kind is MiddlewareKind.FUNCTION:
            await self._run_function(unit, self.continuation(position + 1))
        elif kind is MiddlewareKind.PROXY:
            await self._run_proxy(unit, self.continuation(position + 1))
        else:
            await self._reach_last()

    async def _reach_last(self) -> None:
        self.diagnostics.reached_last = True
        self.diagnostics.last_next_called = True
        if self.last_next is not None:
            result = self.last_next()
            if isawaitable(result):
                await result

    async def _run_function(self, unit: Any, next_fn: Continuation) -> None:
        diagnostics = self.diagnostics
        diagnostics.ran += 1
        diagnostics.total_ran += 1
        try:
            await self._invoke(unit, unit, next_fn, MiddlewareKind.FUNCTION)
        except Exception as exc:
            if not self._record_failure(exc, unit):
                return
            raise

    async def _run_proxy(self, unit: Any, next_fn: Continuation) -> None:
        diagnostics = self.diagnostics
        try:
            result = await self._invoke(unit, unit.run, next_fn, MiddlewareKind.PROXY)
            nested = coerce_diagnostics(result)
            if nested is None:
                # Opaque result: counted as a plain call, no auto-advance.
                diagnostics.ran += 1
                return
            diagnostics.merge(nested, unit)
            if not diagnostics.discontinued and diagnostics.success:
                await next_fn()
        except Exception as exc:
            if not self._record_failure(exc, unit):
                return
            raise

    async def _invoke(
        self,
        unit: Any,
        target: Callable[..., Any],
        next_fn: Continuation,
        kind: MiddlewareKind,
    ) -> Any:
        name = describe(unit)

        async def _call() -> Any:
            try:
                result = target(*self.args, next_fn)
                if isawaitable(result):
                    result = await result
            except BaseException:
                next_fn.discard()
                raise
            if await next_fn.drain():
                logger.debug("Drove next() left unawaited by middleware %s", name)
            return result

        context = HookContext(
            scope=HookScope.UNIT,
            pipeline_name=self.pipeline.name,
            unit_count=len(self.units),
            unit_name=name,
            unit_kind=kind,
            position=next_fn.position - 1,
        )
        return await self.hooks.wrap(context, _call)

    def _record_failure(self, error: Exception, unit: Any) -> bool:
        if not self.diagnostics.fail(error, unit):
            return False
        logger.exception(
            "Middleware %s failed in pipeline %s", describe(unit), self.pipeline.name
        )
        return True


class Pipeline:
    """An ordered set of middleware units that can be run as a chain.

    Units run in registration order. Registering a unit twice has no effect,
    and each run works on a snapshot of the units, so registrations made
    while a run is in flight only affect later runs.

    ``run`` never raises because of a failing unit: inspect the returned
    :class:`~chainware.diagnostics.Diagnostics` (or call
    ``raise_for_error()`` on it) instead. ``hooks`` holds the
    instrumentation hooks wrapped around each run and unit invocation.
    """

    def __init__(
        self,
        *units: MiddlewareUnit,
        name: str | None = None,
        hooks: HookRegistry | None = None,
    ) -> None:
        self.name = name or type(self).__name__
        self._middlewares = MiddlewareSet()
        self.hooks = hooks if hooks is not None else HookRegistry()
        self.ondiagnostics = DiagnosticsEvent()
        self.register(*units)

    @staticmethod
    def is_middleware(value: Any) -> bool:
        """Check if *value* can be registered as a middleware unit."""
        return is_middleware(value)

    # ── Registration ─────────────────────────────────────────────

    def register(self, *units: MiddlewareUnit) -> Pipeline:
        """Add units; values that are not middleware are ignored."""
        for unit in units:
            if not is_middleware(unit):
                logger.debug("Ignoring non-middleware value %r", unit)
                continue
            if self._middlewares.add(unit):
                logger.debug(
                    "Registered middleware %s on pipeline %s", describe(unit), self.name
                )
        return self

    def unregister(self, *units: MiddlewareUnit) -> Pipeline:
        """Remove units; units that are not registered are ignored."""
        for unit in units:
            if self._middlewares.discard(unit):
                logger.debug(
                    "Unregistered middleware %s from pipeline %s",
                    describe(unit),
                    self.name,
                )
        return self

    @property
    def middlewares(self) -> tuple[MiddlewareUnit, ...]:
        """Registered units in execution order."""
        return self._middlewares.snapshot()

    def clear(self) -> None:
        """Remove all units (testing utility)."""
        self._middlewares.clear()

    def __contains__(self, unit: object) -> bool:
        return unit in self._middlewares

    def __len__(self) -> int:
        return len(self._middlewares)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} units={len(self)}>"

    # ── Execution ────────────────────────────────────────────────

    async def run(
        self, *args: Any, last_next: Callable[..., Any] | None = None
    ) -> Diagnostics:
        """Run the chain with *args*.

        A trailing :class:`~chainware.continuation.Continuation` argument, as
        passed by an outer pipeline to a nested one, is not forwarded to the
        units: it becomes the terminal continuation instead.
        """
        if last_next is None and args and isinstance(args[-1], Continuation):
            last_next = args[-1]
            args = args[:-1]
        return await self.run_and_then(last_next, *args)

    async def run_and_then(
        self, last_next: Callable[..., Any] | None, *args: Any
    ) -> Diagnostics:
        """Run the chain with *args*, then call *last_next* once exhausted."""
        units = self._middlewares.snapshot()
        chain = ChainRun(self, units, args, last_next, self.hooks)
        if not units:
            chain.diagnostics.reached_last = True
            return chain.diagnostics.freeze()

        logger.debug("Running pipeline %s with %d unit(s)", self.name, len(units))

        async def _start() -> None:
            try:
                await chain.continuation(0)()
            except Exception:
                # Already recorded by the failing position.
                logger.debug("Pipeline %s unwound after failure", self.name)

        context = HookContext(
            scope=HookScope.RUN, pipeline_name=self.name, unit_count=len(units)
        )
        await self.hooks.wrap(context, _start)

        diagnostics = chain.diagnostics.freeze()
        logger.debug(
            "Pipeline %s finished: success=%s ran=%d total_ran=%d proxies=%d "
            "total=%d discontinued=%s reached_last=%s",
            self.name,
            diagnostics.success,
            diagnostics.ran,
            diagnostics.total_ran,
            diagnostics.proxies,
            diagnostics.total,
            diagnostics.discontinued,
            diagnostics.reached_last,
        )
        await self.ondiagnostics.dispatch(diagnostics)
        return diagnostics
