"""
JSON-lines logging for the pledge ledger.

Every record under the ``pledge_kernel`` logger becomes one JSON object.
Besides the standard keys (ts, level, logger, message) a record carries:

    * the ambient ledger context (correlation, actor, payment and pledge ids)
      bound through ``LogContext``; these win over same-named extras,
    * anything passed via ``extra=``,
    * for exceptions, the type, message, traceback and, for ledger errors,
      the ``code`` plus every public attribute as ``exc_<name>``.
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
from decimal import Decimal
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "pledge_kernel"

CONTEXT_FIELDS: tuple[str, ...] = ("correlation_id", "actor_id", "payment_id", "pledge_id")

_context: ContextVar[dict[str, str]] = ContextVar("pledge_log_context", default={})


def _stringified(fields: dict[str, Any]) -> dict[str, str]:
    return {
        name: str(value)
        for name, value in fields.items()
        if name in CONTEXT_FIELDS and value is not None
    }


class LogContext:
    """
    Ledger identifiers attached to every record logged in the current context.

    Values are stored as strings.  The holder is a ``ContextVar`` so that
    concurrent tasks and threads each see their own ids.
    """

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Overwrite the given fields; ``None`` leaves a field untouched."""
        _context.set({**_context.get(), **_stringified(fields)})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Scope fields to a ``with`` block, restoring the prior context on exit."""
        token = _context.set({**_context.get(), **_stringified(fields)})
        try:
            yield cls
        finally:
            _context.reset(token)


# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    # UUID, Decimal and anything else unknown
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as one line of JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                entry.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            entry.update(self._exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_json_default)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        fields.update(
            (f"exc_{name}", value)
            for name, value in vars(exc).items()
            if name != "code" and not name.startswith("_")
        )
        return fields


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.x")`` returns ``pledge_kernel.services.x``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``pledge_kernel`` logger.

    Only the first call in a process has any effect.  The logger stops
    propagating so ledger records are not duplicated by a root handler.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    ledger_logger = logging.getLogger(_LOGGER_PREFIX)
    ledger_logger.setLevel(level)
    ledger_logger.propagate = False
    ledger_logger.addHandler(handler)


def reset_logging() -> None:
    """Undo ``configure_logging``.  Used by the test suite."""
    global _configured
    with _lock:
        _configured = False
    ledger_logger = logging.getLogger(_LOGGER_PREFIX)
    ledger_logger.handlers.clear()
    ledger_logger.setLevel(logging.WARNING)
