"""
Garud Classes API - Logging
Plain text in development, one JSON object per line in production.
Every record carries the id of the HTTP request it was logged under.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from app.core.config import settings


request_id_var: ContextVar[str] = ContextVar('request_id', default='')

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
SLOW_REQUEST_MS = 1000.0


def get_request_id() -> str:
    return request_id_var.get() or ''


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def generate_request_id() -> str:
    """8 hex chars, enough to correlate one request's lines"""
    return uuid.uuid4().hex[:8]


# Attributes every LogRecord has; anything else came in through extra=
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {'message', 'request_id'}


class JSONFormatter(logging.Formatter):
    """Flat JSON line: core fields, request id, exception, then the extra= fields"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        request_id = get_request_id()
        if request_id:
            entry["request_id"] = request_id

        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(
            (key, value) for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith('_')
        )
        return json.dumps(entry, default=str)


class ContextualFormatter(logging.Formatter):
    """Text formatter exposing %(request_id)s ('-' outside a request)"""

    def format(self, record: logging.LogRecord) -> str:
        record.request_id = get_request_id() or '-'
        return super().format(record)


class GarudLogger(logging.Logger):
    """Logger with one helper per event the API records"""

    def log_request(self, method: str, path: str, status_code: int, duration_ms: float,
                    slow_ms: float = SLOW_REQUEST_MS, **kwargs) -> None:
        """One line per HTTP request; slow requests are raised to WARNING"""
        slow = duration_ms > slow_ms
        self.log(
            logging.WARNING if slow else logging.INFO,
            f"HTTP {method} {path} - {status_code} ({duration_ms:.2f}ms)" + (" SLOW" if slow else ""),
            extra={
                "event_type": "http_request",
                "http_method": method,
                "http_path": path,
                "http_status": status_code,
                "duration_ms": round(duration_ms, 2),
                "slow": slow,
                **kwargs
            }
        )

    def log_upload(self, stored_name: str, category: str, size_bytes: int, **kwargs) -> None:
        self.info(
            f"[Uploads] Stored {category}/{stored_name} ({size_bytes} bytes)",
            extra={
                "event_type": "upload",
                "stored_name": stored_name,
                "category": category,
                "size_bytes": size_bytes,
                **kwargs
            }
        )

    def log_delivery(self, recipient: str, success: bool, message_id: Optional[str] = None,
                     error_kind: Optional[str] = None, **kwargs) -> None:
        """Classified outcome of an email submission"""
        outcome = f"sent ({message_id})" if success else f"failed ({error_kind})"
        self.log(
            logging.INFO if success else logging.ERROR,
            f"[Email] Delivery to {recipient}: {outcome}",
            extra={
                "event_type": "email_delivery",
                "recipient": recipient,
                "delivery_success": success,
                "message_id": message_id,
                "error_kind": error_kind,
                **kwargs
            }
        )

    def log_request_failure(self, method: str, path: str, error: Exception, duration_ms: float) -> None:
        """Unhandled exception escaping a request, with traceback"""
        self.error(
            f"HTTP {method} {path} raised {type(error).__name__}: {error}",
            exc_info=error,
            extra={
                "event_type": "http_error",
                "http_method": method,
                "http_path": path,
                "error_type": type(error).__name__,
                "duration_ms": round(duration_ms, 2),
            }
        )


def _file_handler(path: str, formatter: logging.Formatter, backups: int) -> RotatingFileHandler:
    log_file = Path(path)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=backups)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logging() -> GarudLogger:
    """Configure the 'garud' logger for the current ENVIRONMENT"""
    logging.setLoggerClass(GarudLogger)
    logger = logging.getLogger("garud")
    logger.__class__ = GarudLogger
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    logger.handlers.clear()

    json_logging = settings.ENVIRONMENT == "production"
    if json_logging:
        console_formatter = file_formatter = JSONFormatter()
        backups = 10
    else:
        console_formatter = ContextualFormatter("%(levelname)-8s | %(message)s")
        file_formatter = ContextualFormatter(
            "%(asctime)s | %(levelname)-8s | [%(request_id)s] | %(funcName)s:%(lineno)d | %(message)s"
        )
        backups = 5

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(console_formatter)
    logger.addHandler(console)

    if settings.LOG_FILE:
        logger.addHandler(_file_handler(settings.LOG_FILE, file_formatter, backups))

    for noisy in ("httpx", "uvicorn.access", "aiosmtplib"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info(
        "Logging initialized",
        extra={"environment": settings.ENVIRONMENT, "log_level": settings.LOG_LEVEL, "json_logging": json_logging}
    )
    return logger


logger: GarudLogger = setup_logging()


__all__ = [
    'logger',
    'setup_logging',
    'get_request_id',
    'set_request_id',
    'generate_request_id',
    'GarudLogger',
    'SLOW_REQUEST_MS',
]
