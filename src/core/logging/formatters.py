"""Log formatters for JSON and console output."""

import json
import logging
import re
import sys
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from core.logging.context import get_log_context


def json_serializer(obj: Any) -> Any:
    """Serialize dates and decimals with their natural JSON types, else str()."""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    if hasattr(obj, "value"):
        return obj.value
    return str(obj)


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Redacts passwords embedded in connection strings before logging.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # Errors
        "error_category",
        "error_message",
        "error_type",
        "error",
        # Pipeline counters
        "records_pulled",
        "records_enqueued",
        "records_failed",
        "records_total",
        "pending_errors",
        # Message transport metadata
        "message_topic",
        "message_partition",
        "message_offset",
        "message_size",
        "attempt",
        "max_retries",
        # Store
        "property_id",
        "rows_read",
        "fetch_size",
        "dsn",
        # Connection
        "bootstrap_servers",
        "acks",
        "compression_type",
        "input_queue_size",
        "signal",
        "port",
        "duration_ms",
    ]

    # Type mapping for numeric fields so counters are never serialized as strings
    NUMERIC_FIELDS = {
        "rows_read": int,
        "duration_ms": float,
        "records_pulled": int,
        "records_enqueued": int,
        "records_failed": int,
        "records_total": int,
        "pending_errors": int,
        "message_partition": int,
        "message_offset": int,
        "message_size": int,
        "attempt": int,
        "max_retries": int,
        "fetch_size": int,
        "input_queue_size": int,
        "port": int,
    }

    # Fields that may carry credentials and should be sanitized
    DSN_FIELDS = ["dsn", "bootstrap_servers"]

    # user:password@host in URLs and password=... in libpq keyword strings
    SENSITIVE_DSN_PATTERN = re.compile(r"(://[^:/@]+:)[^@]*(@)")
    SENSITIVE_KEYWORD_PATTERN = re.compile(r"(password=)\S+", re.IGNORECASE)

    def _sanitize_dsn(self, dsn: str) -> str:
        dsn = self.SENSITIVE_DSN_PATTERN.sub(r"\1[REDACTED]\2", dsn)
        return self.SENSITIVE_KEYWORD_PATTERN.sub(r"\1[REDACTED]", dsn)

    def _sanitize_value(self, key: str, value: Any) -> Any:
        if key in self.DSN_FIELDS and isinstance(value, str):
            return self._sanitize_dsn(value)
        return value

    def _ensure_type(self, field: str, value: Any) -> Any:
        if field not in self.NUMERIC_FIELDS or value is None:
            return value

        expected_type = self.NUMERIC_FIELDS[field]
        try:
            return expected_type(value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _base_log_entry(record: logging.LogRecord) -> dict[str, Any]:
        return {
            "ts": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

    @staticmethod
    def _inject_context(log_entry: dict[str, Any], log_context: dict[str, Any]) -> None:
        for field in ("stage", "run_id", "worker_id"):
            if log_context[field]:
                log_entry[field] = log_context[field]

    @staticmethod
    def _should_include_source_location(record: logging.LogRecord) -> bool:
        return record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL)

    def _inject_extra_fields(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                typed_value = self._ensure_type(field, value)
                log_entry[field] = self._sanitize_value(field, typed_value)

    def _inject_exception(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        if not record.exc_info:
            return

        exc_type, exc_value, _ = record.exc_info
        log_entry["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": str(exc_value) if exc_value else None,
            "stacktrace": self.formatException(record.exc_info),
        }

    def format(self, record: logging.LogRecord) -> str:
        log_entry = self._base_log_entry(record)

        self._inject_context(log_entry, get_log_context())

        if self._should_include_source_location(record):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        # Type validation must happen before sanitization
        self._inject_extra_fields(log_entry, record)
        self._inject_exception(log_entry, record)

        return json.dumps(log_entry, default=json_serializer, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with color-coded log levels.

    Colors are auto-disabled when output is not a TTY (pipes, files).
    """

    # ANSI color codes
    COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stdout.isatty()

    def _format_level_name(self, record: logging.LogRecord) -> str:
        level_name = record.levelname
        if not self._use_colors:
            return level_name

        color = self.COLORS.get(record.levelno, "")
        if not color:
            return level_name

        return f"{color}{level_name}{self.RESET}"

    @staticmethod
    def _build_prefix(level_name: str, log_context: dict[str, Any]) -> str:
        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            level_name,
        ]

        if log_context["stage"]:
            parts.append(f"[{log_context['stage']}]")

        return " - ".join(parts)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output with optional color coding."""
        log_context = get_log_context()

        level_name = self._format_level_name(record)
        prefix = self._build_prefix(level_name, log_context)
        line = f"{prefix} - {record.getMessage()}"

        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line
