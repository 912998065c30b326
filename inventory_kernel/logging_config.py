"""
Structured JSON logging for the inventory ledger.

Responsibility:
    Render every record under the ``inventory_kernel`` logger tree as one
    JSON object per line, stamped with the run-scoped context of the
    reconciliation run or order operation that produced it.

Architecture position:
    Kernel, lowest layer.  Imported by every other layer; imports nothing
    from the project.

Line shape::

    {"ts": ..., "level": ..., "logger": ..., "message": "<event name>",
     <context fields>, <extra fields>, <exc_* fields>}

Event names are snake_case (``movement_appended``, ``reconciliation_state``)
and carry their data in ``extra``.  Ledger exceptions contribute their
``code`` and public attributes as ``exc_<attr>`` keys.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

_ROOT_LOGGER = "inventory_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "run_id",
    "routine",
    "order_id",
    "actor",
)

_context_vars: dict[str, ContextVar[str | None]] = {
    field: ContextVar(f"inventory_log_{field}", default=None)
    for field in CONTEXT_FIELDS
}


class LogContext:
    """
    Run-scoped fields attached to every log line.

    Backed by contextvars, so values follow the current thread or task.
    ``run_id``/``routine`` are bound by the reconciliation run contract,
    ``order_id`` by the ledger writer and lifecycle operations.
    """

    @staticmethod
    def _var(field: str) -> ContextVar[str | None]:
        try:
            return _context_vars[field]
        except KeyError:
            raise TypeError(f"unknown log context field: {field!r}") from None

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set the given fields; ``None`` values leave a field untouched."""
        for field, value in fields.items():
            if value is not None:
                cls._var(field).set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            field: value
            for field, var in _context_vars.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in _context_vars.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a block, then restore them."""
        tokens = [
            (cls._var(field), cls._var(field).set(str(value)))
            for field, value in fields.items()
            if value is not None
        ]
        try:
            yield cls
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    """json.dumps hook for the value types that show up in ledger events."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for attr, value in vars(exc).items():
        if not attr.startswith("_") and attr != "code":
            fields[f"exc_{attr}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` under the inventory_kernel tree."""
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the inventory_kernel logger.

    Only the first call has an effect until ``reset_logging()``.  The
    tree does not propagate to the root logger, so host applications keep
    their own formatting.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger(_ROOT_LOGGER)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and allow reconfiguration. Tests only."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_ROOT_LOGGER)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
