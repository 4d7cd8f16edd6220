"""DiagnosticsEvent — notifies subscribers after a pipeline run."""

from __future__ import annotations

import logging
from inspect import isawaitable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .diagnostics import Diagnostics
    from .ports import DiagnosticsListener

logger = logging.getLogger(__name__)


class DiagnosticsEvent:
    """A list of listeners called, in subscription order, with diagnostics.

    Dispatch never raises: a failing listener is logged and the remaining
    listeners still run.
    """

    def __init__(self) -> None:
        self._listeners: list[DiagnosticsListener] = []

    def subscribe(self, listener: DiagnosticsListener) -> DiagnosticsListener:
        """Add *listener*. Returns it, so this can be used as a decorator."""
        if listener not in self._listeners:
            self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: DiagnosticsListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def dispatch(self, diagnostics: Diagnostics) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(diagnostics)
                if isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Diagnostics listener %s failed",
                    getattr(listener, "__qualname__", type(listener).__name__),
                )

    def clear(self) -> None:
        """Remove all listeners (testing utility)."""
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)
