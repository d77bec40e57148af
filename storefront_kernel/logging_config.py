"""
Structured JSON logging for the storefront kernel.

Every record is rendered as one JSON object:

    {"ts": ..., "level": ..., "logger": ..., "message": "order_created",
     "correlation_id": ..., "order_id": ..., "total": "20.00"}

Event names are snake_case messages; details travel in ``extra``.
Request-scoped identifiers (the order being transitioned, the scheduler run,
the acting operator) live in LogContext and are stamped onto every record
emitted while they are bound, including records from the ledger and store
calls an orchestrator makes.
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
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

_LOGGER_PREFIX = "storefront_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "order_id",
    "actor_id",
    "product_id",
    "run_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})

_context: ContextVar[Mapping[str, str]] = ContextVar(
    "storefront_log_context", default=_EMPTY
)


def _merged(updates: Mapping[str, Any]) -> Mapping[str, str]:
    current = dict(_context.get())
    for key, value in updates.items():
        if key in _CONTEXT_FIELDS and value is not None:
            current[key] = str(value)
    return MappingProxyType(current)


class LogContext:
    """
    Request-scoped log fields, isolated per thread and per asyncio task.

    Code that hands work to another thread binds what it needs there: the
    lifecycle engine binds ``order_id`` inside each scheduler worker.
    """

    @staticmethod
    def set(
        *,
        correlation_id: str | None = None,
        order_id: str | None = None,
        actor_id: str | None = None,
        product_id: str | None = None,
        run_id: str | None = None,
    ) -> None:
        """Set fields for the rest of the current context.  None leaves a field alone."""
        _context.set(
            _merged(
                {
                    "correlation_id": correlation_id,
                    "order_id": order_id,
                    "actor_id": actor_id,
                    "product_id": product_id,
                    "run_id": run_id,
                }
            )
        )

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @staticmethod
    def bind(**fields: str | None) -> "_Binding":
        """
        Context manager: set fields on entry, restore the previous context on exit.

        Unknown field names and None values are ignored.
        """
        return _Binding(fields)


class _Binding:

    def __init__(self, fields: Mapping[str, Any]):
        self._fields = fields
        self._token: Token | None = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set(_merged(self._fields))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None


# ---------------------------------------------------------------------------
# JSON rendering
# ---------------------------------------------------------------------------

# Attributes every LogRecord carries; anything else came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_context.get())

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record))

        return json.dumps(payload, default=_to_json)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # StorefrontError subclasses keep their details as public attributes
        for name, value in vars(exc).items():
            if not name.startswith("_") and name not in ("args", "code"):
                fields[f"exc_{name}"] = value
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the storefront_kernel namespace, e.g. ``get_logger("services.order_store")``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_installed: logging.Handler | None = None
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``storefront_kernel`` logger.

    Only the first call has any effect, so library entry points
    (init_engine_from_url, the fulfillment CLI) can all call it safely.
    """
    global _installed
    with _lock:
        if _installed is not None:
            return
        _installed = handler or logging.StreamHandler(stream or sys.stderr)
        _installed.setFormatter(StructuredFormatter())

        root = logging.getLogger(_LOGGER_PREFIX)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(_installed)


def reset_logging() -> None:
    """
    Undo configure_logging().  FOR TESTING ONLY.

    Only the handler configure_logging() attached is removed; handlers
    added by others (pytest's capture, a test's own) stay.
    """
    global _installed
    with _lock:
        root = logging.getLogger(_LOGGER_PREFIX)
        if _installed is not None:
            root.removeHandler(_installed)
            _installed = None
        root.setLevel(logging.NOTSET)
        root.propagate = True
