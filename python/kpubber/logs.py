"""Logging setup and per-cycle log context.

Every cycle gets its own `CycleLogger` carrying the node name and, once
resolved, the public IP. The adapter is passed down explicitly instead of
mutating a shared logger.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

LOGGER_NAME = "kpubber"
TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_FORMATS = ("text", "json")

logger = logging.getLogger(LOGGER_NAME)


class CycleLogger(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        extra["context"] = {**self.extra, **extra.get("context", {})}
        return msg, kwargs

    def bind(self, **fields: Any) -> "CycleLogger":
        return CycleLogger(self.logger, {**self.extra, **fields})


def cycle_logger(**fields: Any) -> CycleLogger:
    return CycleLogger(logger, fields)


class ContextFormatter(logging.Formatter):
    """Text format with the cycle context appended as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = getattr(record, "context", None)
        if not context:
            return message
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        head, sep, tail = message.partition("\n")
        return f"{head} {pairs}{sep}{tail}"


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in (getattr(record, "context", None) or {}).items():
            try:
                json.dumps(value)
                entry[key] = value
            except (TypeError, ValueError):
                entry[key] = str(value)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(level: str = "INFO", fmt: str = "text") -> None:
    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ContextFormatter(TEXT_FORMAT))

    logging.basicConfig(level=logging.INFO, handlers=[handler], force=True)
    logging.getLogger(LOGGER_NAME).setLevel(getattr(logging, level.upper()))

    # Request lines from the resolver and the cluster client are noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
