"""
Logging setup: JSON or text console output, plus optional log files.

With a log directory, everything goes to combined.log and ERROR and above
also go to error.log.
"""
import json
import logging
import os
from datetime import datetime, timezone
from typing import Optional

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"

_EXTRA_KEYS = ("method", "path", "status_code", "duration_ms", "client", "user")

# marks handlers we installed so setup_logging can be called again safely
_HANDLER_FLAG = "_bookstore_handler"


class JSONFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_KEYS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def _formatter(fmt: str) -> logging.Formatter:
    if fmt == "json":
        return JSONFormatter()
    return logging.Formatter(TEXT_FORMAT)


def setup_logging(level: str = "INFO", fmt: str = "json", log_dir: Optional[str] = None):
    """Configure the root logger. Replaces handlers from an earlier call."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_FLAG, False):
            root.removeHandler(handler)
            handler.close()

    formatter = _formatter(fmt)
    handlers = [logging.StreamHandler()]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        error_handler = logging.FileHandler(os.path.join(log_dir, "error.log"))
        error_handler.setLevel(logging.ERROR)
        handlers.append(error_handler)
        handlers.append(logging.FileHandler(os.path.join(log_dir, "combined.log")))

    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_FLAG, True)
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
