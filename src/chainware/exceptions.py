"""Exception hierarchy for chainware."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .diagnostics import Diagnostics


class ChainwareError(Exception):
    """Root exception for the chainware package."""


class MiddlewareExecutionError(ChainwareError):
    """Raised by :meth:`Diagnostics.raise_for_error` for a failed run.

    The original exception is available both as ``error`` and as the
    ``__cause__`` of this exception.
    """

    def __init__(self, diagnostics: Diagnostics) -> None:
        self.diagnostics = diagnostics
        self.error: BaseException | None = diagnostics.error
        self.middleware: Any = diagnostics.middleware
        self.proxy: Any = diagnostics.proxy
        where = f" (inside proxy {self.proxy!r})" if self.proxy is not None else ""
        super().__init__(f"Middleware {self.middleware!r} failed{where}: {self.error!r}")
