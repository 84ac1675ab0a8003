"""Structured logging for TrendJack services.

Provides JSON-formatted logging with a batch-run context so every line a
pipeline run emits can be stitched back together by ``run_id``.

Usage:
    configure_logging(level="INFO", json_format=True, service_name="trendjack-worker")

    logger = get_logger(__name__)
    ctx = RunContext.start("leads.run_pipeline")
    logger.info("keyword processed", context=ctx.for_keyword(12, "user-1"), leads_created=2)
"""

import json
import logging
import sys
import traceback
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional


# Cache for logger instances
_loggers: dict[str, "StructuredLogger"] = {}

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_SERVICE_NAME = "trendjack"


class JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON documents."""

    # Attributes every LogRecord carries; anything else came in via ``extra``
    RESERVED_FIELDS = {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "message", "asctime", "taskName",
    }

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON string representation of the log record
        """
        log_entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        if record.levelno >= logging.WARNING:
            log_entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_entry["exception"] = "".join(
                traceback.format_exception(*record.exc_info)
            )

        for key, value in record.__dict__.items():
            if key in self.RESERVED_FIELDS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_entry[key] = value
            except (TypeError, ValueError):
                log_entry[key] = str(value)

        return json.dumps(log_entry)


@dataclass
class RunContext:
    """Context for batch-run-scoped logging.

    One run (a Celery task invocation or an ops API call) gets a run_id;
    per-keyword lines add the keyword and owning user.
    """

    run_id: Optional[str] = None
    task_name: Optional[str] = None
    keyword_id: Optional[int] = None
    user_id: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def start(cls, task_name: str) -> "RunContext":
        """Create a context with a fresh run id."""
        return cls(run_id=uuid.uuid4().hex[:12], task_name=task_name)

    def for_keyword(self, keyword_id: int, user_id: Optional[str]) -> "RunContext":
        """Derive a child context scoped to one keyword."""
        return replace(self, keyword_id=keyword_id, user_id=user_id, extra=dict(self.extra))

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for logging.

        Returns:
            Dictionary with the populated context fields only
        """
        result: dict[str, Any] = {}

        if self.run_id:
            result["run_id"] = self.run_id
        if self.task_name:
            result["task_name"] = self.task_name
        if self.keyword_id is not None:
            result["keyword_id"] = self.keyword_id
        if self.user_id:
            result["user_id"] = self.user_id

        result.update(self.extra)
        return result


class StructuredLogger:
    """Thin wrapper over ``logging.Logger`` that accepts structured fields."""

    def __init__(self, name: str):
        self.name = name
        self._logger = logging.getLogger(name)

    def _log(
        self,
        level: int,
        msg: str,
        context: Optional[RunContext] = None,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        if context:
            kwargs.update(context.to_dict())
        self._logger.log(level, msg, exc_info=exc_info, extra=kwargs)

    def debug(self, msg: str, context: Optional[RunContext] = None, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, context, **kwargs)

    def info(self, msg: str, context: Optional[RunContext] = None, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, context, **kwargs)

    def warning(self, msg: str, context: Optional[RunContext] = None, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, context, **kwargs)

    def error(
        self,
        msg: str,
        context: Optional[RunContext] = None,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        self._log(logging.ERROR, msg, context, exc_info=exc_info, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get or create a structured logger.

    Args:
        name: Logger name (typically module name)

    Returns:
        StructuredLogger instance
    """
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)
    return _loggers[name]


def configure_logging(
    level: str = DEFAULT_LOG_LEVEL,
    json_format: bool = True,
    service_name: str = DEFAULT_SERVICE_NAME,
) -> None:
    """Configure the root logger for a service process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Whether to use JSON format
        service_name: Service name for log identification
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(JsonFormatter(service_name=service_name))
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root_logger.addHandler(handler)
