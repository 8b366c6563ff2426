"""
Logging for routerdash.

One stdout handler on the "routerdash" logger; every component logs through
a child ("routerdash.hub", "routerdash.scheduler", ...) wrapped in an adapter
that stamps the component name. JSON lines unless
ROUTERDASH_LOG_FORMAT=text, level from ROUTERDASH_LOG_LEVEL.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

ROOT_LOGGER = "routerdash"

# LogRecord attributes that are not user supplied `extra=` fields
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "service"}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, `extra=` fields inlined"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", "unknown"),
            "message": record.getMessage(),
        }
        entry.update({k: v for k, v in record.__dict__.items() if k not in _RESERVED})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Adds the component name without dropping per-call extras"""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**kwargs.get("extra", {}), "service": self.extra["service"]}
        return msg, kwargs


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if root.handlers:
        return root

    level = getattr(logging, os.environ.get("ROUTERDASH_LOG_LEVEL", "INFO").upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    if os.environ.get("ROUTERDASH_LOG_FORMAT", "json").lower() == "text":
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(service)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
    else:
        handler.setFormatter(JsonFormatter())

    root.setLevel(level)
    root.addHandler(handler)
    # uvicorn configures the root logger, keep our lines out of it
    root.propagate = False
    return root


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    _configure_root()
    logger = logging.getLogger(f"{ROOT_LOGGER}.{service_name}")
    return ServiceLoggerAdapter(logger, {"service": service_name})
