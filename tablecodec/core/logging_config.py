"""
Logging setup for tablecodec.

Log records go to stderr (stdout carries CLI payload output) and optionally
to a size-rotated file. Either destination can use JSON lines or plain text.
Storage credentials are masked before any handler sees them, and records
emitted during a table operation are tagged with that operation's client
request id.
"""

import json
import logging
import logging.handlers
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

# Set by TableClient for the duration of one operation
client_request_id: ContextVar[Optional[str]] = ContextVar("client_request_id", default=None)

REDACTED = "***REDACTED***"

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(B|KB|MB|GB)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"B": 1, "KB": 1024, "MB": 1024 ** 2, "GB": 1024 ** 3}


class SensitiveDataFilter(logging.Filter):
    """Mask shared keys, account keys and SAS signatures in log messages."""

    PATTERNS = [
        # Authorization: SharedKey account:signature / Bearer token
        re.compile(r"(Authorization:\s+)(?:SharedKey(?:Lite)?\s+|Bearer\s+)?\S+", re.IGNORECASE),
        # Connection string parts
        re.compile(r"(AccountKey=)[^;]+", re.IGNORECASE),
        re.compile(r"(SharedAccessSignature=)[^;&]+", re.IGNORECASE),
        # SAS query parameter
        re.compile(r"(sig=)[^;&\s]+", re.IGNORECASE),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            message = record.msg
            for pattern in self.PATTERNS:
                message = pattern.sub(r"\1" + REDACTED, message)
            record.msg = message
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }

        request_id = client_request_id.get()
        if request_id:
            entry["client_request_id"] = request_id
        context = getattr(record, "context", None)
        if context is not None:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Plain text lines, with the client request id when one is set."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        request_id = client_request_id.get()
        return f"{line} [{request_id}]" if request_id else line


_FORMATTERS = {
    "json": JSONFormatter,
    "text": TextFormatter,
}


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    log_file: Optional[str] = None,
    rotation_size: str = "10MB",
    rotation_count: int = 5,
    module_levels: Optional[Dict[str, str]] = None
) -> None:
    """
    Configure the root logger.

    Replaces any handlers already installed on the root logger.

    Args:
        level: Root log level name
        format_type: "json" or "text"
        log_file: Also write to this file, rotating by size
        rotation_size: Rotation threshold such as "10MB"
        rotation_count: Rotated files to keep
        module_levels: Level overrides by logger name,
                       e.g. {"tablecodec.table.codec": "DEBUG"}
    """
    formatter = _FORMATTERS.get(format_type, TextFormatter)()

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(_level(level))
    root_logger.addHandler(_with_defaults(logging.StreamHandler(sys.stderr), formatter))

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=_parse_size(rotation_size),
            backupCount=rotation_count,
            encoding="utf-8",
        )
        root_logger.addHandler(_with_defaults(file_handler, formatter))

    for name, module_level in (module_levels or {}).items():
        logging.getLogger(name).setLevel(_level(module_level))

    root_logger.debug(
        f"Logging configured: level={level}, format={format_type}, file={log_file or '-'}"
    )


def _with_defaults(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    handler.addFilter(SensitiveDataFilter())
    return handler


def _level(name: str) -> int:
    return getattr(logging, name.upper())


def _parse_size(size_str: str) -> int:
    """
    Convert a size such as "512", "10KB" or "1.5MB" to bytes.

    Raises:
        ValueError: If the size cannot be parsed
    """
    match = _SIZE_PATTERN.match(size_str)
    if not match:
        raise ValueError(f"Invalid size '{size_str}'")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[(unit or "B").upper()])


def set_client_request_id(request_id: str) -> None:
    client_request_id.set(request_id)


def clear_client_request_id() -> None:
    client_request_id.set(None)


def log_with_context(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """Log ``message`` with keyword arguments attached as the record's ``context``."""
    logger.log(level, message, extra={"context": context} if context else {})
