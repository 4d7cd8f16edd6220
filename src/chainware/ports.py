"""Protocols for middleware units, continuations and diagnostics listeners."""

from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Protocol,
    TypeAlias,
    runtime_checkable,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from .diagnostics import Diagnostics


class NextFn(Protocol):
    """The continuation handed to every middleware unit as its last argument.

    Calling it runs the rest of the chain. Passing ``True`` stops the chain
    instead (discontinuation). The returned awaitable should be awaited; a
    sync unit that leaves it unawaited has it run when the unit returns.
    """

    def __call__(self, discontinue: bool = False) -> Awaitable[None]:
        ...


class MiddlewareFn(Protocol):
    """Function variant: ``fn(*args, next)``, sync or async."""

    def __call__(self, *args: Any) -> Awaitable[Any] | Any:
        ...


@runtime_checkable
class MiddlewareObject(Protocol):
    """Object variant (proxy): exposes ``run(*args, next)``.

    ``run`` is expected to return a diagnostics-shaped record, as a nested
    :class:`~chainware.pipeline.Pipeline` does.
    """

    def run(self, *args: Any) -> Awaitable[Any] | Any:
        ...


MiddlewareUnit: TypeAlias = MiddlewareFn | MiddlewareObject


class DiagnosticsListener(Protocol):
    """Subscriber notified with the final diagnostics of every run."""

    def __call__(self, diagnostics: Diagnostics) -> Awaitable[None] | None:
        ...
