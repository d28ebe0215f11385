"""
stock_engines.tracer -- STOCK_ENGINE_TRACE log records for planner calls.

Responsibility:
    ``@traced_engine`` wraps a pure planning function and emits one DEBUG
    record per call carrying the planner name and version, a fingerprint of
    the inputs that determine the plan, the plan's outcome summary and the
    duration.  Equal fingerprints mean equal plans, which is how a preview
    is matched to the allocation that followed it in the logs.

Architecture position:
    Engines -- infrastructure for the pure calculation layer.  Reads its
    keyword arguments and its result; emits a log record; nothing else.
    Logs under ``stock_kernel.engines.tracer`` through the stdlib logger so
    the engines never import kernel logging setup.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import Any

_logger = logging.getLogger("stock_kernel.engines.tracer")

TRACE_TYPE = "STOCK_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Decimal):
        # 10 and 10.000 are the same quantity
        return format(value.normalize(), "f")
    if isinstance(value, Mapping):
        return "{" + ",".join(
            f"{k}:{_canonicalize(value[k])}" for k in sorted(value)
        ) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    fields = getattr(value, "__dataclass_fields__", None)
    if fields is not None:
        return type(value).__name__ + _canonicalize(
            {name: getattr(value, name) for name in fields}
        )
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: Mapping[str, Any],
) -> str:
    """First 16 hex chars of SHA-256 over the named keyword arguments.

    A field absent from ``kwargs`` contributes "null".
    """
    canonical = "|".join(
        f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
    summarize: Callable[[Any], Mapping[str, Any]] | None = None,
) -> Callable:
    """
    Decorate a keyword-only planner with STOCK_ENGINE_TRACE logging.

    Args:
        engine_name: Stable planner identifier, e.g. "fifo_plan".
        engine_version: Bumped whenever the planner's arithmetic changes.
        fingerprint_fields: Keyword arguments that fully determine the plan.
        summarize: Maps the planner's result to a few log fields.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            t0 = time.monotonic()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

            if _logger.isEnabledFor(logging.DEBUG):
                extra: dict[str, Any] = {
                    "trace_type": TRACE_TYPE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": (
                        compute_input_fingerprint(fingerprint_fields, kwargs)
                        if fingerprint_fields
                        else ""
                    ),
                    "duration_ms": elapsed_ms,
                }
                if summarize is not None:
                    extra.update(summarize(result))
                _logger.debug(TRACE_TYPE, extra=extra)
            return result

        return wrapper

    return decorator
