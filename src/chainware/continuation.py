"""Continuation — the one-shot ``next`` handle of a chain position."""

from __future__ import annotations

from inspect import CORO_CREATED, getcoroutinestate
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Coroutine

    from .pipeline import ChainRun


class Continuation:
    """Advances a running chain to ``position``.

    The first call marks the handle as ``called``; later calls are no-ops.
    ``next(True)`` discontinues the chain without marking the handle as
    called. Nothing at ``position`` is resolved or run until the handle is
    awaited.

    Calling the handle returns a coroutine. Async units await it. A sync unit
    may return it, or just call ``next_fn()`` and return: steps that were
    requested but never awaited are driven by the pipeline once the unit
    returns (see :meth:`drain`).
    """

    __slots__ = ("_chain", "_requested", "called", "position")

    def __init__(self, chain: ChainRun, position: int) -> None:
        self._chain = chain
        self.position = position
        self.called = False
        self._requested: list[Coroutine[Any, Any, None]] = []

    def __call__(self, discontinue: bool = False) -> Coroutine[Any, Any, None]:
        step = self._step(discontinue)
        self._requested.append(step)
        return step

    async def _step(self, discontinue: bool) -> None:
        if self.called:
            return
        diagnostics = self._chain.diagnostics
        if discontinue is True:
            diagnostics.discontinued = True
            return
        if diagnostics.discontinued:
            return
        self.called = True
        await self._chain.advance(self.position)

    def _unstarted(self) -> list[Coroutine[Any, Any, None]]:
        steps = [s for s in self._requested if getcoroutinestate(s) == CORO_CREATED]
        self._requested.clear()
        return steps

    async def drain(self) -> int:
        """Await the steps a unit requested but did not await.

        Returns how many were driven.
        """
        steps = self._unstarted()
        for step in steps:
            await step
        return len(steps)

    def discard(self) -> None:
        """Close requested steps that never started, without running them."""
        for step in self._unstarted():
            step.close()

    def __repr__(self) -> str:
        state = "called" if self.called else "pending"
        return f"<Continuation position={self.position} {state}>"
