"""
Structured logging for the quote normalizer API.

Every record passing through the root handler is stamped with the id of the
HTTP request being served (``request_id_ctx``), so lines logged deep inside
the parsers and engines can be correlated with the access log line written
by ``RequestTimingMiddleware``.
"""
import logging
import json
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

# Set by the request middleware for the duration of one request
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# LogRecord attributes copied into the JSON entry when present
_EXTRA_FIELDS = ("request_id", "source_label", "duration_ms", "http_method", "http_path", "http_status")

TEXT_FORMAT = "%(asctime)s [%(name)s] %(levelname)s [%(request_id)s]: %(message)s"


class RequestContextFilter(logging.Filter):
    """Fill ``record.request_id`` from the current request context."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_ctx.get() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line; non-ASCII (Italian quote text) kept readable."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None and value != "-":
                log_entry[name] = value
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True) -> logging.Handler:
    """Install a single stdout handler on the root logger and return it."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root.handlers = [handler]

    # pdfminer logs every malformed object it skips
    for name in ["uvicorn.access", "pdfminer", "httpx", "multipart"]:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler
