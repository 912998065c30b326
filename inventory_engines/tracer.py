"""
Trace decorator for the pure engines.

``@traced_engine`` logs one ``engine_traced`` DEBUG record per call with
the engine name and version, the call's duration, and a short fingerprint
of the arguments named in ``fingerprint_fields``.  Two runs over the same
ledger produce the same fingerprints, which makes it easy to line up the
engine calls of a dry run with those of the apply that followed it.

Engines stay I/O free: the decorator only logs.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

from inventory_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")


def _stable(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Mapping):
        return "{" + ",".join(
            f"{k}:{_stable(v)}" for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))
        ) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_stable(v) for v in value) + "]"
    if isinstance(value, (set, frozenset)):
        return "[" + ",".join(sorted(_stable(v) for v in value)) + "]"
    return "null" if value is None else str(value)


def fingerprint(arguments: Mapping[str, Any], fields: tuple[str, ...]) -> str:
    """16 hex chars of SHA-256 over the named arguments, in field order."""
    canonical = "|".join(f"{name}={_stable(arguments.get(name))}" for name in fields)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            input_fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind(*args, **kwargs)
                bound.apply_defaults()
                input_fingerprint = fingerprint(bound.arguments, fingerprint_fields)

            started = time.monotonic()
            result = func(*args, **kwargs)
            logger.debug(
                "engine_traced",
                extra={
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": input_fingerprint,
                    "duration_ms": round((time.monotonic() - started) * 1000, 2),
                },
            )
            return result

        return wrapper

    return decorator
