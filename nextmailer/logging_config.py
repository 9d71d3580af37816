import json
import logging
import os
import socket
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SERVICE_NAME = os.getenv("SERVICE_NAME", "nextmailer")

_RESERVED = {
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module",
    "exc_info", "exc_text", "stack_info", "lineno", "funcName", "created", "msecs",
    "relativeCreated", "thread", "threadName", "processName", "process", "message",
    "asctime", "taskName",
}

# extras promoted to the top level of every log line
_TOP_LEVEL = ("component", "request_id", "task_id", "campaign_id")


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base: Dict[str, Any] = {
            "ts": _utc_iso(),
            "level": record.levelname,
            "logger": record.name,
            "service": SERVICE_NAME,
            "host": socket.gethostname(),
            "msg": record.getMessage(),
        }

        for key in _TOP_LEVEL:
            value = getattr(record, key, None)
            if value:
                base[key] = str(value)

        # Everything else the caller passed via extra= goes under "props"
        props: Dict[str, Any] = {}
        for k, v in record.__dict__.items():
            if k in _RESERVED or k.startswith("_") or k in _TOP_LEVEL:
                continue
            props[k] = v

        if props:
            base["props"] = props

        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)

        return json.dumps(base, ensure_ascii=False, default=str)


def get_logger(name: str, component: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger(name)

    # Avoid duplicate handlers (uvicorn reload and celery forks re-import modules)
    if not logger.handlers:
        logger.setLevel(LOG_LEVEL)

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())

        logger.addHandler(handler)
        logger.propagate = False

    if component:
        return ComponentAdapter(logger, {"component": component})  # type: ignore
    return logger


class ComponentAdapter(logging.LoggerAdapter):
    """Keeps per-call extra= fields instead of replacing them with the adapter's."""

    def process(self, msg, kwargs):
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs
