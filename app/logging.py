"""Process-wide logging setup.

Services log through ``logging.getLogger(__name__)``; this module only decides
how records are rendered. JSON output carries the standard fields plus any
``extra={...}`` keys passed at the call site.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from app.config import settings

_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "exc_info",
        "exc_text",
        "stack_info",
        "taskName",
    }
)

_SENSITIVE_KEYS = frozenset({"password", "temp_password", "tempPassword", "token", "secret"})


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            if key in _SENSITIVE_KEYS:
                value = "[REDACTED]"
            log_data[key] = value
        if record.exc_info:
            log_data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


def configure_logging() -> None:
    root = logging.getLogger()
    if getattr(root, "_dealer_logging_configured", False):
        return
    handler = logging.StreamHandler(sys.stdout)
    if settings.log_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.handlers = [handler]
    root.setLevel(settings.log_level.upper())
    root._dealer_logging_configured = True  # type: ignore[attr-defined]
