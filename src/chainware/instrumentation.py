"""Around-hooks for pipeline runs and unit invocations.

A hook receives a :class:`HookContext` describing what is about to run and a
``proceed`` callable that runs it::

    async def timing(context, proceed):
        start = time.perf_counter()
        try:
            return await proceed()
        finally:
            metrics.observe(context.operation, time.perf_counter() - start)

    pipeline.hooks.register(timing, scopes={HookScope.UNIT})
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Collection

    from .units import MiddlewareKind


class HookScope(enum.Enum):
    """What a hook is wrapped around."""

    RUN = "run"
    UNIT = "unit"


@dataclass(frozen=True)
class HookContext:
    """Describes the run or unit invocation a hook wraps.

    ``unit_name``, ``unit_kind`` and ``position`` are only set for
    :attr:`HookScope.UNIT`.
    """

    scope: HookScope
    pipeline_name: str
    unit_count: int
    unit_name: str | None = None
    unit_kind: MiddlewareKind | None = None
    position: int | None = None

    @property
    def operation(self) -> str:
        """Dotted name, e.g. ``pipeline.run.auth`` or ``pipeline.unit.login``."""
        if self.scope is HookScope.RUN:
            return f"pipeline.run.{self.pipeline_name}"
        return f"pipeline.unit.{self.unit_name}"


@runtime_checkable
class InstrumentationHook(Protocol):
    """Must await ``proceed()`` exactly once and return its result."""

    async def __call__(
        self,
        context: HookContext,
        proceed: Callable[[], Awaitable[Any]],
    ) -> Any:
        ...


@dataclass(eq=False)
class HookRegistration:
    """A hook plus the runs and units it applies to.

    Empty filters match everything.
    """

    hook: InstrumentationHook
    priority: int = 0
    scopes: frozenset[HookScope] = frozenset()
    pipelines: frozenset[str] = frozenset()
    unit_kinds: frozenset[MiddlewareKind] = frozenset()
    enabled: bool = True

    def applies_to(self, context: HookContext) -> bool:
        if not self.enabled:
            return False
        if self.scopes and context.scope not in self.scopes:
            return False
        if self.pipelines and context.pipeline_name not in self.pipelines:
            return False
        # Kind filters only narrow unit invocations.
        return not (
            self.unit_kinds
            and context.scope is HookScope.UNIT
            and context.unit_kind not in self.unit_kinds
        )


class HookRegistry:
    """Hooks of one pipeline, ordered by priority (lowest wraps outermost)."""

    def __init__(self) -> None:
        self._registrations: list[HookRegistration] = []

    def register(
        self,
        hook: InstrumentationHook,
        *,
        priority: int = 0,
        scopes: Collection[HookScope] = (),
        pipelines: Collection[str] = (),
        unit_kinds: Collection[MiddlewareKind] = (),
        enabled: bool = True,
    ) -> HookRegistration:
        registration = HookRegistration(
            hook=hook,
            priority=priority,
            scopes=frozenset(scopes),
            pipelines=frozenset(pipelines),
            unit_kinds=frozenset(unit_kinds),
            enabled=enabled,
        )
        self._registrations.append(registration)
        self._registrations.sort(key=lambda r: r.priority)
        return registration

    def unregister(self, registration: HookRegistration) -> None:
        if registration in self._registrations:
            self._registrations.remove(registration)

    async def wrap(
        self,
        context: HookContext,
        proceed: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Await *proceed* inside every hook that applies to *context*."""
        call = proceed
        for registration in reversed(self._registrations):
            if not registration.applies_to(context):
                continue

            async def _around(
                _hook: InstrumentationHook = registration.hook,
                _inner: Callable[[], Awaitable[Any]] = call,
            ) -> Any:
                return await _hook(context, _inner)

            call = _around
        return await call()

    def clear(self) -> None:
        self._registrations.clear()

    def __len__(self) -> int:
        return len(self._registrations)
