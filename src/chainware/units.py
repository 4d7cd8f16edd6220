"""Classification of middleware units into their tagged variants."""

from __future__ import annotations

import enum
from typing import Any


class MiddlewareKind(enum.Enum):
    """The two shapes a registered unit may take."""

    FUNCTION = "function"
    PROXY = "proxy"


def classify(value: Any) -> MiddlewareKind | None:
    """Return the variant of *value*, or ``None`` if it is not a middleware.

    An object exposing a callable ``run`` is a proxy; any other callable is a
    function. Classes are always treated as callables, even when they define
    a ``run`` method.
    """
    if value is None:
        return None
    if not isinstance(value, type) and callable(getattr(value, "run", None)):
        return MiddlewareKind.PROXY
    if callable(value):
        return MiddlewareKind.FUNCTION
    return None


def is_middleware(value: Any) -> bool:
    """Check whether *value* qualifies as a middleware unit."""
    return classify(value) is not None


def describe(unit: Any) -> str:
    """Human readable name of a unit, for logs and instrumentation."""
    name = getattr(unit, "name", None)
    if isinstance(name, str) and name:
        return name
    func_name = getattr(unit, "__name__", None)
    if isinstance(func_name, str):
        return func_name
    return type(unit).__name__
