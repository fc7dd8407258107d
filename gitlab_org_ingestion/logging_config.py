"""Structured JSON logging for ingestion runs.

Every line is one JSON object. Scheduled refreshes log through a
:class:`TaskLogger`, which stamps each record with the provider name, the
refresh task id and a fresh id per run so the lines of one pass can be
grouped.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, MutableMapping, Optional

EXTRA_FIELDS = (
    "provider",
    "target",
    "entity_type",
    "records",
    "task_id",
    "task_instance_id",
)


class JsonFormatter(logging.Formatter):
    """Emit one JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        return json.dumps(log_entry)


class TaskLogger(logging.LoggerAdapter):
    """Adds the task context to every record.

    Fields passed with ``extra=`` at the call site are kept alongside the
    task context; on a key clash the call site wins.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def task_logger(
    logger: logging.Logger,
    provider: str,
    task_id: str,
    task_instance_id: Optional[str] = None,
) -> TaskLogger:
    """Logger for one run of a scheduled task."""
    return TaskLogger(logger, {
        "provider": provider,
        "task_id": task_id,
        "task_instance_id": task_instance_id or str(uuid.uuid4()),
    })


def configure_logging(level: str = "INFO") -> None:
    """Set up the ``ingestion`` logger with the JSON formatter on stderr."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger("ingestion")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)
    root.propagate = False
