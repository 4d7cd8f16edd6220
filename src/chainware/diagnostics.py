"""Diagnostics — outcome record of a single pipeline run.

A run mutates a :class:`DiagnosticsAccumulator` while it is in flight and
hands the caller the frozen :class:`Diagnostics` produced by
:meth:`DiagnosticsAccumulator.freeze`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .exceptions import MiddlewareExecutionError


@dataclass(frozen=True)
class Diagnostics:
    """Immutable outcome of one run.

    ``error``, ``middleware`` and ``proxy`` are only set when ``success`` is
    false. ``proxy`` names the nearest proxy that enclosed the failing unit,
    or ``None`` if the failure happened directly in this chain.
    """

    success: bool
    ran: int
    total_ran: int
    proxies: int
    total: int
    discontinued: bool
    reached_last: bool
    last_next_called: bool
    error: BaseException | None = None
    middleware: Any = None
    proxy: Any = None

    def raise_for_error(self) -> None:
        """Raise :class:`MiddlewareExecutionError` if the run failed."""
        if self.success:
            return
        raise MiddlewareExecutionError(self) from self.error

    def as_dict(self) -> dict[str, Any]:
        """Field values by name; units and the error are not copied."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class DiagnosticsAccumulator:
    """Mutable counterpart of :class:`Diagnostics`, owned by one run."""

    total: int = 0
    success: bool = True
    ran: int = 0
    total_ran: int = 0
    proxies: int = 0
    discontinued: bool = False
    reached_last: bool = False
    last_next_called: bool = False
    error: BaseException | None = None
    middleware: Any = None
    proxy: Any = None

    def fail(self, error: Any, middleware: Any, proxy: Any = None) -> bool:
        """Record a failure; the first one wins.

        Returns ``True`` if this call recorded the failure, ``False`` if an
        earlier failure was already present.
        """
        if not self.success:
            return False
        self.success = False
        self.error = error
        self.middleware = middleware
        self.proxy = proxy
        return True

    def merge(self, nested: DiagnosticsShape, proxy: Any) -> None:
        """Fold the result of a nested proxy run into this record."""
        self.proxies += 1 + nested.proxies
        # The proxy itself was already counted once in ``total``.
        self.total += nested.total - 1
        self.total_ran += nested.total_ran
        if nested.discontinued or not nested.reached_last:
            self.discontinued = True
        if not nested.success:
            enclosing = nested.proxy if nested.proxy is not None else proxy
            self.fail(nested.error, nested.middleware, enclosing)

    def freeze(self) -> Diagnostics:
        return Diagnostics(
            success=self.success,
            ran=self.ran,
            total_ran=self.total_ran,
            proxies=self.proxies,
            total=self.total,
            discontinued=self.discontinued,
            reached_last=self.reached_last,
            last_next_called=self.last_next_called,
            error=self.error,
            middleware=self.middleware,
            proxy=self.proxy,
        )


class DiagnosticsShape(BaseModel):
    """Strict schema a proxy result must satisfy to count as diagnostics.

    Accepts both the snake_case field names used here and the camelCase
    names other implementations report.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    success: bool
    ran: int
    proxies: int
    total: int
    total_ran: int = Field(validation_alias=AliasChoices("total_ran", "totalRan"))
    discontinued: bool
    reached_last: bool = Field(
        validation_alias=AliasChoices("reached_last", "reachedLast")
    )
    last_next_called: bool = Field(
        validation_alias=AliasChoices("last_next_called", "lastNextCalled")
    )
    error: Any = None
    middleware: Any = None
    proxy: Any = None


def coerce_diagnostics(value: Any) -> DiagnosticsShape | None:
    """Validate *value* as a diagnostics record.

    Returns ``None`` when *value* does not have the diagnostics shape.
    """
    if value is None:
        return None
    try:
        if isinstance(value, Mapping):
            return DiagnosticsShape.model_validate(dict(value))
        return DiagnosticsShape.model_validate(value, from_attributes=True)
    except PydanticValidationError:
        return None


def is_diagnostics(value: Any) -> bool:
    """Check whether *value* is shaped like a diagnostics record."""
    return coerce_diagnostics(value) is not None
