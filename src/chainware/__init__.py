"""chainware — sequential middleware chains with run diagnostics."""

from __future__ import annotations

from .continuation import Continuation
from .diagnostics import (
    Diagnostics,
    DiagnosticsAccumulator,
    DiagnosticsShape,
    coerce_diagnostics,
    is_diagnostics,
)
from .events import DiagnosticsEvent
from .exceptions import ChainwareError, MiddlewareExecutionError
from .instrumentation import (
    HookContext,
    HookRegistration,
    HookRegistry,
    HookScope,
    InstrumentationHook,
)
from .pipeline import Pipeline
from .ports import (
    DiagnosticsListener,
    MiddlewareFn,
    MiddlewareObject,
    MiddlewareUnit,
    NextFn,
)
from .registry import MiddlewareSet
from .units import MiddlewareKind, classify, is_middleware

__all__: list[str] = [
    "ChainwareError",
    "Continuation",
    "Diagnostics",
    "DiagnosticsAccumulator",
    "DiagnosticsEvent",
    "DiagnosticsListener",
    "DiagnosticsShape",
    "HookContext",
    "HookRegistration",
    "HookRegistry",
    "HookScope",
    "InstrumentationHook",
    "MiddlewareExecutionError",
    "MiddlewareFn",
    "MiddlewareKind",
    "MiddlewareObject",
    "MiddlewareSet",
    "MiddlewareUnit",
    "NextFn",
    "Pipeline",
    "classify",
    "coerce_diagnostics",
    "is_diagnostics",
    "is_middleware",
]
