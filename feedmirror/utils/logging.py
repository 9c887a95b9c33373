"""
FeedMirror Logging
==================

Console and JSON-lines output for the service. Records emitted through a
component logger carry the component name and, when known, the source
identifier they concern, so one channel's activity can be picked out of
a busy log.
"""

import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

ROOT_LOGGER = "feedmirror"

# Loggers whose INFO output drowns out ours
QUIET_LOGGERS = ("aiohttp.access", "aiohttp.client", "aiohttp.server", "asyncio")

_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
}
_PROMOTED_FIELDS = ("component", "source_id")


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields a caller attached to ``record`` through ``extra``."""
    return {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS}


class StructuredFormatter(logging.Formatter):
    """One JSON object per line.

    ``component`` and ``source_id`` become top-level keys; any other extra
    fields are grouped under ``context``.
    """

    def format(self, record: logging.LogRecord) -> str:
        context = record_context(record)

        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        for field in _PROMOTED_FIELDS:
            if field in context:
                entry[field] = context.pop(field)
        entry["message"] = record.getMessage()

        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Single-line terminal output: ``HH:MM:SS LEVEL logger [source]: message``."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        clock = time.strftime("%H:%M:%S", time.localtime(record.created))

        level = f"{record.levelname:<8}"
        if self.use_color:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"

        source_id = getattr(record, "source_id", None)
        origin = f"{record.name} [{source_id}]" if source_id else record.name

        line = f"{clock} {level} {origin}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logger(
    name: str = ROOT_LOGGER,
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    structured: bool = False,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """(Re)configure the ``name`` logger, replacing any handlers it already has.

    The console gets coloured text unless ``structured`` is set; a log file,
    when given, always receives JSON lines and rotates at ``max_file_size``.
    """
    handlers: List[logging.Handler] = []

    if console:
        stream = logging.StreamHandler(sys.stdout)
        if structured:
            stream.setFormatter(StructuredFormatter())
        else:
            stream.setFormatter(ColoredConsoleFormatter(use_color=sys.stdout.isatty()))
        handlers.append(stream)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        rotating = logging.handlers.RotatingFileHandler(
            path, maxBytes=max_file_size, backupCount=backup_count, encoding="utf-8"
        )
        rotating.setFormatter(StructuredFormatter())
        handlers.append(rotating)

    logger = logging.getLogger(name)
    logger.setLevel(level.upper())
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    for handler in handlers:
        logger.addHandler(handler)

    return logger


class ComponentLogger(logging.LoggerAdapter):
    """Adapter stamping a fixed component/source context on every record.

    Fields passed through ``extra`` on an individual call take precedence.
    """

    def process(self, msg: Any, kwargs: Dict[str, Any]):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger_for_component(component_name: str, source_id: Optional[str] = None) -> ComponentLogger:
    """Logger named ``feedmirror.<component_name>`` with component context attached."""
    context: Dict[str, Any] = {"component": component_name}
    if source_id:
        context["source_id"] = source_id
    return ComponentLogger(logging.getLogger(f"{ROOT_LOGGER}.{component_name}"), context)


def configure_application_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_console: bool = True,
    structured_logging: bool = False,
    max_file_size_mb: int = 10,
    backup_count: int = 5,
) -> None:
    """Install the service's handlers on the ``feedmirror`` logger and quiet library loggers."""
    setup_logger(
        name=ROOT_LOGGER,
        level=log_level,
        log_file=log_file,
        console=enable_console,
        structured=structured_logging,
        max_file_size=max_file_size_mb * 1024 * 1024,
        backup_count=backup_count,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class PerformanceLogger:
    """Times a ``with`` block and logs how it ended.

    The closing record carries ``duration_seconds`` and ``success`` next to
    whatever context was passed in; failures are logged at ERROR and the
    exception is left to propagate.
    """

    def __init__(self, logger, operation: str, **context):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.duration: Optional[float] = None
        self._started: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self._started = time.perf_counter()
        self.logger.debug(f"Starting {self.operation}", extra=self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.duration = time.perf_counter() - self._started
        fields = {
            **self.context,
            "duration_seconds": round(self.duration, 3),
            "success": exc_type is None,
        }

        if exc_type is None:
            self.logger.info(f"Completed {self.operation} in {self.duration:.3f}s", extra=fields)
        else:
            self.logger.error(
                f"Failed {self.operation} after {self.duration:.3f}s: {exc_val}", extra=fields
            )
        return False
