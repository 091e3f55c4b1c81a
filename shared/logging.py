"""
JSON log output shared by every pipeline module.

Each record is one JSON object; the id of the run being executed is read from
a ContextVar, so log calls inside a run never pass it explicitly.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from shared.config import settings

# Set by the orchestrator at the start of each run task
run_id_context: ContextVar[Optional[str]] = ContextVar("run_id", default=None)

# Attributes every LogRecord has; anything else was passed via extra=
_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName", "levelname",
    "levelno", "lineno", "module", "msecs", "message", "pathname", "process",
    "processName", "relativeCreated", "thread", "threadName", "exc_info",
    "exc_text", "stack_info", "getMessage", "taskName"
}


class JSONFormatter(logging.Formatter):
    """Renders a record and its extra= fields as one JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "module": record.module,
            "message": record.getMessage(),
        }

        run_id = run_id_context.get()
        if run_id:
            log_data["run_id"] = run_id

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                if isinstance(value, (str, int, float, bool, type(None))):
                    log_data[key] = value
                else:
                    log_data[key] = str(value)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def get_logger(name: str) -> logging.Logger:
    """
    Return the named logger, attaching stdout (and, when LOG_DIR is set, a
    rotating file) handler on first use.
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(JSONFormatter())
    logger.addHandler(console_handler)

    if settings.log_dir:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_dir / "app.log",
            maxBytes=100 * 1024 * 1024,
            backupCount=5
        )
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    return logger


def set_run_id(run_id: Optional[str]) -> None:
    """Tag every record logged from the current context with run_id."""
    run_id_context.set(run_id)


def get_run_id() -> Optional[str]:
    """Run id of the current context, if any."""
    return run_id_context.get()
