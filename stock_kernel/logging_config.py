"""
Structured JSON logging for the stock ledger.

Every record under the ``stock_kernel`` logger tree is written as one JSON
object per line.  The payload is built from three layers, later layers
never overwriting earlier ones:

1. the fixed fields ``ts``, ``level``, ``logger``, ``message``;
2. the workflow context bound by the TransactionOrchestrator
   (``correlation_id``, ``actor_id``, ``workflow``, ``reference``);
3. the ``extra={...}`` mapping of the call site.

When a record carries an exception, its type, message and ``code`` are
added, along with every public attribute of a StockLedgerError
(``exc_shortfall``, ``exc_batch_id`` and so on), so that an operator can
filter on them without parsing the traceback.
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
from datetime import UTC, date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "stock_kernel"

# ---------------------------------------------------------------------------
# Workflow context
# ---------------------------------------------------------------------------

_EMPTY: MappingProxyType = MappingProxyType({})

_context: ContextVar[MappingProxyType] = ContextVar("stock_log_context", default=_EMPTY)


class LogContext:
    """
    Request-scoped fields added to every record emitted in the same
    thread or task.

    The whole context is one immutable mapping held in a ContextVar, so a
    ``bind`` block restores exactly the mapping it replaced, however the
    block exits.
    """

    FIELDS = frozenset({"correlation_id", "actor_id", "workflow", "reference"})

    @classmethod
    def _merged(cls, fields: dict[str, str | None]) -> MappingProxyType:
        unknown = set(fields) - cls.FIELDS
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
        current = dict(_context.get())
        current.update({k: v for k, v in fields.items() if v is not None})
        return MappingProxyType(current)

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Merge non-None fields into the current context."""
        _context.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @classmethod
    def bind(cls, **fields: str | None) -> "_BoundContext":
        """``with LogContext.bind(workflow=...):`` scoped variant of set()."""
        return _BoundContext(cls._merged(fields))


class _BoundContext:
    def __init__(self, mapping: MappingProxyType):
        self._mapping = mapping
        self._token: Token | None = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set(self._mapping)
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "taskName",
}


def _to_json(obj: Any) -> Any:
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if name.startswith("_") or name == "code":
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for layer in (LogContext.get_all(), vars(record)):
            for key, value in layer.items():
                if key not in _RESERVED:
                    payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.batch_store")`` -> ``stock_kernel.services.batch_store``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_installed_handler: logging.Handler | None = None
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``stock_kernel`` logger.

    Only the first call has any effect; engine initialization calls this
    on every init, and an application that configured logging earlier
    keeps its own level and destination.
    """
    global _installed_handler
    with _lock:
        if _installed_handler is not None:
            return
        h = handler or logging.StreamHandler(stream or sys.stderr)
        h.setFormatter(StructuredFormatter())
        root = logging.getLogger(_LOGGER_PREFIX)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(h)
        _installed_handler = h


def reset_logging() -> None:
    """Detach the handler installed by configure_logging. Tests only."""
    global _installed_handler
    with _lock:
        root = logging.getLogger(_LOGGER_PREFIX)
        if _installed_handler is not None:
            root.removeHandler(_installed_handler)
            _installed_handler = None
        root.setLevel(logging.WARNING)
        root.propagate = True
