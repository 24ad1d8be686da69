"""
Structured Logging with Correlation IDs

Every log line emitted while a batch runs carries the IDs of what is being
worked on:
- batch_id / record_index: the sync batch and the record's position in it
- project_id / wbs: the financial record
- board_id / item_id: the board row being reconciled

IDs live in a ContextVar, so concurrent record pipelines (asyncio tasks)
never see each other's values.

Usage:
    from core.observability.logging import get_logger, with_correlation

    logger = get_logger(__name__)

    with with_correlation(batch_id="batch-001", wbs="2000000036.2"):
        logger.info("Reconciling record", extra_fields={"attempt": 1})

Environment:
- SYNC_LOG_LEVEL: default level name (INFO)
- SYNC_LOG_JSON: "1"/"true" for one JSON object per line
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, asdict, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union


# =============================================================================
# Correlation Context
# =============================================================================

@dataclass(frozen=True)
class CorrelationContext:
    """IDs identifying the batch, record and board row a log line is about."""
    batch_id: Optional[str] = None
    record_index: Optional[int] = None
    project_id: Optional[str] = None
    wbs: Optional[str] = None
    board_id: Optional[str] = None
    item_id: Optional[str] = None
    stage: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Set IDs only."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "CorrelationContext":
        """Copy with the given IDs overridden; None leaves a field as is."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})


_correlation_context: ContextVar[CorrelationContext] = ContextVar(
    "sync_correlation_context",
    default=CorrelationContext(),
)


def get_correlation_context() -> CorrelationContext:
    return _correlation_context.get()


def set_correlation_context(ctx: CorrelationContext) -> None:
    _correlation_context.set(ctx)


@contextmanager
def with_correlation(**kwargs):
    """Add correlation IDs for the duration of the block.

    Nested blocks add to the outer IDs; leaving a block restores them.
    """
    token = _correlation_context.set(get_correlation_context().merge(**kwargs))
    try:
        yield _correlation_context.get()
    finally:
        _correlation_context.reset(token)


# =============================================================================
# Formatters
# =============================================================================

def _exception_fields(exc_info) -> Dict[str, Any]:
    """Type and message of a logged exception, plus the sync error code if any."""
    _, exc, _ = exc_info
    fields: Dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    code = getattr(exc, "code", None)
    if isinstance(code, str):
        fields["code"] = code
    return fields


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    {"timestamp": "2024-01-09T12:00:00.000000+00:00", "level": "INFO",
     "logger": "sync.pipeline", "message": "Record reconciled (create)",
     "batch_id": "batch-001", "record_index": 0, "wbs": "2000000036.2",
     "board_id": "5000", "item_id": "7388693067"}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(get_correlation_context().to_dict())
        entry.update(getattr(record, "extra_fields", None) or {})

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = _exception_fields(record.exc_info)
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Console format with the most useful IDs inline.

    2024-01-09 12:00:00 INFO    sync.pipeline [batch-001/#0/p:123/wbs:2000000036.2]: Record reconciled
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_correlation_context()

        parts = []
        if ctx.batch_id:
            parts.append(ctx.batch_id[:12])
        if ctx.record_index is not None:
            parts.append(f"#{ctx.record_index}")
        if ctx.project_id:
            parts.append(f"p:{ctx.project_id}")
        if ctx.wbs:
            parts.append(f"wbs:{ctx.wbs}")

        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        line = f"{timestamp} {record.levelname:<7} {record.name} [{'/'.join(parts) or '-'}]: {record.getMessage()}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# Logger with Correlation Support
# =============================================================================

class CorrelatedLogger:
    """
    Thin wrapper over a stdlib logger.

    Every call accepts ``extra_fields`` (a dict merged into structured
    output). Correlation IDs are read by the formatters, not stored here.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def log(self, level: int, msg: str, *args, extra_fields: Optional[Dict[str, Any]] = None, exc_info=None):
        if not self._logger.isEnabledFor(level):
            return
        if exc_info is True:
            exc_info = sys.exc_info()
        record = self._logger.makeRecord(
            self._logger.name, level, "(sync)", 0, msg, args, exc_info,
            extra={"extra_fields": dict(extra_fields or {})},
        )
        self._logger.handle(record)

    def debug(self, msg: str, *args, **kwargs):
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self.log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        kwargs.setdefault("exc_info", True)
        self.log(logging.ERROR, msg, *args, **kwargs)

    def isEnabledFor(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)


# =============================================================================
# Setup
# =============================================================================

# Package loggers that follow the configured level
SYNC_LOGGERS = ("sync", "reconciliation", "connectors", "api", "core")

_loggers: Dict[str, CorrelatedLogger] = {}
_handler: Optional[logging.Handler] = None


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


def configure_logging(
    level: Union[int, str, None] = None,
    json_format: Optional[bool] = None,
    force: bool = False,
):
    """
    Install the sync log handler on the root logger (stderr).

    Args:
        level: Level number or name; defaults to SYNC_LOG_LEVEL or INFO
        json_format: JSON lines instead of console format; defaults to SYNC_LOG_JSON
        force: Replace a handler installed by an earlier call
    """
    global _handler

    if _handler is not None and not force:
        return

    if level is None:
        level = os.getenv("SYNC_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")
    if json_format is None:
        json_format = _env_flag("SYNC_LOG_JSON")

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)

    _handler = logging.StreamHandler(sys.stderr)
    _handler.setLevel(level)
    _handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())
    root.addHandler(_handler)
    root.setLevel(level)

    for logger_name in SYNC_LOGGERS:
        logging.getLogger(logger_name).setLevel(level)

    # Third-party chatter
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> CorrelatedLogger:
    """Correlated logger for ``name`` (typically ``__name__``)."""
    if name not in _loggers:
        configure_logging()
        _loggers[name] = CorrelatedLogger(logging.getLogger(name))
    return _loggers[name]


# =============================================================================
# Pipeline / batch events
# =============================================================================

def log_stage(stage: str, message: str, **fields):
    """Log a pipeline stage event; ``stage`` lands in the structured fields."""
    get_logger("sync.pipeline").info(message, extra_fields={"stage": stage, **fields})


def log_batch_event(event: str, **fields):
    """Log a batch lifecycle event (start, completion counts)."""
    get_logger("sync.batch").info(event, extra_fields=fields)
