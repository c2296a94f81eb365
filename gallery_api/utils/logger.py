"""
Python logging configuration.

Principles:
- INFO: important business events (upload, album created, task executed)
- WARNING: client errors (bad credentials, rate limit, missing files)
- ERROR: system errors, external service failures
- Personal data is never written to the NDJSON context (email, password, token)

Output:
- stdout: human readable text
- stderr: ERROR and above
- <log_dir>/app.log, <log_dir>/error.log: NDJSON when LOG_DIR is set
"""
import contextvars
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from gallery_api.config import get_settings

logger = logging.getLogger("gallery_api")

# Fields that never reach the NDJSON context
_SENSITIVE_FIELDS = frozenset({"email", "password", "token", "secret", "authorization"})

request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def generate_request_id() -> str:
    """New short request id."""
    return uuid.uuid4().hex[:12]


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request id for the current context, generating one if needed."""
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


class FlushingRotatingFileHandler(RotatingFileHandler):
    """Flush after every record so tailing readers see complete lines."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        self.flush()


# Standard LogRecord attributes (not part of ctx)
_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "message", "asctime", "taskName",
    }
)


class JsonLinesFormatter(logging.Formatter):
    """
    NDJSON formatter.

    Fields: ts, level, rid, event, msg, ctx (extra fields minus sensitive
    ones), exc.
    """

    def format(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        msecs = int(record.msecs) % 1000
        payload = {
            "ts": dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{msecs:03d}Z",
            "level": record.levelname,
        }

        rid = get_request_id()
        if rid:
            payload["rid"] = rid

        if getattr(record, "event", None):
            payload["event"] = record.event

        payload["msg"] = record.getMessage()

        extra_ctx = {
            k: v for k, v in record.__dict__.items()
            if k not in _STANDARD_ATTRS
            and k != "event"
            and k not in _SENSITIVE_FIELDS
            and v is not None
        }
        if extra_ctx:
            payload["ctx"] = extra_ctx

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(extra_handlers: Optional[list] = None, local_output: bool = True) -> None:
    """
    Configure the root logger.

    - stdout: text format
    - stderr: ERROR and above
    - NDJSON files under settings.log_dir when set and writable
    - extra_handlers: e.g. the supervisor relay inside worker processes

    Worker processes pass local_output=False: their records only travel
    through the relay and the supervisor writes them out.
    """
    settings = get_settings()
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)
    root_logger.handlers.clear()

    for handler in extra_handlers or []:
        root_logger.addHandler(handler)

    _quiet_libraries()
    if not local_output:
        return

    text_formatter = logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(logging.INFO)
    stdout_handler.setFormatter(text_formatter)
    root_logger.addHandler(stdout_handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.setFormatter(text_formatter)
    root_logger.addHandler(stderr_handler)

    if settings.log_dir:
        json_formatter = JsonLinesFormatter()
        log_dir = Path(settings.log_dir)
        try:
            log_dir.mkdir(parents=True, exist_ok=True)

            file_handler = FlushingRotatingFileHandler(
                log_dir / "app.log",
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(json_formatter)
            root_logger.addHandler(file_handler)

            error_handler = FlushingRotatingFileHandler(
                log_dir / "error.log",
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(json_formatter)
            root_logger.addHandler(error_handler)
        except OSError as e:
            root_logger.warning("File logging disabled: %s", e)


def _quiet_libraries() -> None:
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)


def _log(level: int, message: str, **extra: Any) -> None:
    exc_info = extra.pop("exc_info", False)
    logger.log(level, message, exc_info=exc_info, extra=extra)


def log_info(message: str, **extra: Any) -> None:
    _log(logging.INFO, message, **extra)


def log_warning(message: str, **extra: Any) -> None:
    _log(logging.WARNING, message, **extra)


def log_error(message: str, **extra: Any) -> None:
    _log(logging.ERROR, message, **extra)
