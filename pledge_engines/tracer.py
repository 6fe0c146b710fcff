"""
Tracing for the pure pledge engines.

Decorating an engine entry point with ``@traced_engine`` logs one
``PLEDGE_ENGINE_TRACE`` record per call with the engine's name and version,
how long it ran, and a short fingerprint of the inputs that identify the
calculation.  Two calls with the same fingerprinted inputs produce the same
fingerprint, which makes repeated work easy to spot in the logs.

Only keyword arguments are fingerprinted.  A field that was not passed is
hashed as ``null``.

    @traced_engine("redistribution", "1.0", fingerprint_fields=("new_total",))
    def redistribute(self, *, allocations, new_total, strategy): ...
"""

from __future__ import annotations

import functools
import hashlib
import json
import time
from collections.abc import Callable
from typing import Any

from pledge_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

FINGERPRINT_LENGTH = 16


def input_fingerprint(fields: tuple[str, ...], kwargs: dict[str, Any]) -> str:
    """Truncated SHA-256 of the named kwargs, stable across runs."""
    selected = {name: kwargs.get(name) for name in fields}
    canonical = json.dumps(selected, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.monotonic()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.monotonic() - started) * 1000, 2)

            _logger.info(
                "PLEDGE_ENGINE_TRACE",
                extra={
                    "trace_type": "PLEDGE_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "function": func.__qualname__,
                    "input_fingerprint": (
                        input_fingerprint(fingerprint_fields, kwargs)
                        if fingerprint_fields
                        else ""
                    ),
                    "duration_ms": elapsed_ms,
                },
            )
            return result

        return wrapper

    return decorator
