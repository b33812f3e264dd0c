"""Logging configuration for Bucket Bridge using structlog.

Console output is rendered by Rich; the optional log file gets one JSON
object per line. Every event passes through ``redact_event`` first, so SAS
signatures, presigned queries and credential fields never reach a handler.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import structlog
from rich.console import Console
from rich.logging import RichHandler
from structlog.typing import EventDict, WrappedLogger

from bucket_migration import __version__

APP_NAME = "bucket-bridge"

# Query parameters that carry credentials (Azure SAS signature, presigned S3 URLs)
SENSITIVE_QUERY_PARAMS = {"sig", "x-amz-signature", "x-amz-credential", "x-amz-security-token"}

# Field names redacted by sanitize_payload (case-insensitive substring match)
SENSITIVE_FIELDS = {
    "secret",
    "access_key",
    "password",
    "token",
    "authorization",
    "sas",
    "credential",
}

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")


def redact_event(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """structlog processor: mask credentials in every event's key/value pairs."""
    return sanitize_payload(event_dict)


class JSONFileFormatter(logging.Formatter):
    """One JSON object per line, wrapping the structlog-rendered message."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": ANSI_ESCAPE.sub("", record.getMessage()),
            "app": APP_NAME,
            "version": __version__,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def _level(name: str | None, default: int) -> int:
    return getattr(logging, (name or "").upper(), default)


def configure_logging(
    level: str = "WARNING",
    log_format: str = "json",
    log_file: str | None = None,
    file_level: str | None = None,
) -> None:
    """Route structlog through stdlib logging to the console and an optional file.

    Safe to call more than once: existing root handlers are replaced, which
    is how the CLI applies the ``logging`` section after loading a config.

    Args:
        level: Console log level
        log_format: File format, ``json`` or ``console``
        log_file: Optional path to a log file
        file_level: File log level, DEBUG when omitted
    """
    console_level = _level(level, logging.WARNING)
    file_log_level = _level(file_level, logging.DEBUG)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    # Stderr keeps log lines off the Live progress panel drawn on stdout
    rich_handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    rich_handler.setLevel(console_level)
    root_logger.addHandler(rich_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(file_log_level)
        file_handler.setFormatter(
            JSONFileFormatter() if log_format == "json" else logging.Formatter("%(message)s")
        )
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_event,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        # Filter at the lowest level any handler accepts
        wrapper_class=structlog.make_filtering_bound_logger(
            min(console_level, file_log_level) if log_file else console_level
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def redact_url(url: str) -> str:
    """Replace credential-bearing query values in a URL with "[REDACTED]".

    Args:
        url: URL that may carry a SAS token or presigned query

    Returns:
        The URL with sensitive query values masked, everything else untouched
    """
    parts = urlsplit(url)
    if not parts.query:
        return url

    pairs = parse_qsl(parts.query, keep_blank_values=True)
    masked = [
        (key, "[REDACTED]" if key.lower() in SENSITIVE_QUERY_PARAMS else value)
        for key, value in pairs
    ]
    return urlunsplit(parts._replace(query=urlencode(masked, safe="[]/,:")))


def log_api_request(
    logger: structlog.stdlib.BoundLogger,
    method: str,
    url: str,
    status_code: int | None = None,
    duration_ms: float | None = None,
    **extra: Any,
) -> None:
    """Log one storage request.

    Successful requests log at DEBUG since every chunk is a request; 4xx and
    5xx responses log at WARNING because they usually lead to a retry.

    Args:
        logger: Logger instance
        method: HTTP method
        url: Request URL, redacted before logging
        status_code: Response status, None when no response arrived
        duration_ms: Request duration in milliseconds
        **extra: Additional context to log
    """
    fields: dict[str, Any] = {"method": method, "url": redact_url(url), **extra}
    if duration_ms is not None:
        fields["duration_ms"] = round(duration_ms, 2)

    if status_code is None:
        logger.debug("storage_request_started", **fields)
        return

    fields["status_code"] = status_code
    if status_code < 400:
        logger.debug("storage_request_ok", **fields)
    elif status_code < 500:
        logger.warning("storage_request_client_error", **fields)
    else:
        logger.warning("storage_request_server_error", **fields)


def log_migration_progress(
    logger: structlog.stdlib.BoundLogger,
    job_id: str,
    completed: int,
    total: int,
    bytes_copied: int,
    **extra: Any,
) -> None:
    """Log that one more object finished, with the job's running totals."""
    logger.info(
        "migration_progress",
        job_id=job_id,
        completed=completed,
        total=total,
        bytes_copied=bytes_copied,
        percentage=round(completed / total * 100, 2) if total else 0,
        **extra,
    )


def log_error(
    logger: structlog.stdlib.BoundLogger,
    error: Exception,
    context: str,
    **extra: Any,
) -> None:
    """Log a failure with its type, the HTTP status when there is one, and a traceback."""
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        extra["status_code"] = status_code

    logger.error(
        f"{context}_failed",
        error_type=type(error).__name__,
        error_message=str(error),
        **extra,
        exc_info=True,
    )


def sanitize_payload(payload: dict[str, Any] | list[Any] | Any, max_depth: int = 10) -> Any:
    """Redact credential fields before a structure is logged or displayed.

    Args:
        payload: The payload to sanitize (dict, list, or primitive)
        max_depth: Maximum recursion depth to prevent infinite loops

    Returns:
        Sanitized copy of the payload with sensitive values redacted
    """
    if max_depth <= 0:
        return "[MAX_DEPTH_EXCEEDED]"

    if isinstance(payload, dict):
        sanitized = {}
        for key, value in payload.items():
            if any(sensitive in str(key).lower() for sensitive in SENSITIVE_FIELDS):
                sanitized[key] = "[REDACTED]" if value else value
            elif isinstance(value, (dict, list)):
                sanitized[key] = sanitize_payload(value, max_depth - 1)
            elif isinstance(value, str) and "://" in value:
                sanitized[key] = redact_url(value)
            else:
                sanitized[key] = value
        return sanitized

    elif isinstance(payload, list):
        return [sanitize_payload(item, max_depth - 1) for item in payload]

    else:
        return payload


def truncate_text(text: str, max_size: int = 2000) -> str:
    """Truncate a response body for inclusion in logs and error messages."""
    if len(text) > max_size:
        return text[:max_size] + f"... [TRUNCATED - {len(text)} total chars]"
    return text
