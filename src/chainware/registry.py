"""MiddlewareSet — insertion-ordered set of units keyed by identity."""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Hashable, Iterator

    from .ports import MiddlewareUnit


def _identity_key(unit: Any) -> Hashable:
    # Bound methods are re-created on every attribute access.
    if inspect.ismethod(unit):
        return (id(unit.__self__), id(unit.__func__))
    return id(unit)


class MiddlewareSet:
    """Ordered, duplicate-free container of middleware units.

    Membership is decided by identity, never by ``__eq__``/``__hash__``, so
    unhashable objects can be stored and two equal but distinct objects are
    kept apart.
    """

    def __init__(self) -> None:
        self._units: dict[Hashable, MiddlewareUnit] = {}

    def add(self, unit: MiddlewareUnit) -> bool:
        """Add *unit*; return ``False`` if it was already present."""
        key = _identity_key(unit)
        if key in self._units:
            return False
        self._units[key] = unit
        return True

    def discard(self, unit: MiddlewareUnit) -> bool:
        """Remove *unit*; return ``False`` if it was not present."""
        return self._units.pop(_identity_key(unit), None) is not None

    def snapshot(self) -> tuple[MiddlewareUnit, ...]:
        """Return the units in insertion order."""
        return tuple(self._units.values())

    def clear(self) -> None:
        self._units.clear()

    def __contains__(self, unit: object) -> bool:
        return _identity_key(unit) in self._units

    def __iter__(self) -> Iterator[MiddlewareUnit]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._units)
