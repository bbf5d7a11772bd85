"""Logging setup and configuration."""

import io
import logging
import os
import secrets
import sys
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter

# Default settings
DEFAULT_LOG_DIR = Path("logs")
DEFAULT_ROTATION_WHEN = "midnight"
DEFAULT_ROTATION_INTERVAL = 1
DEFAULT_BACKUP_COUNT = 7
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "aiokafka",
    "kafka",
    "psycopg",
    "psycopg.pool",
]


def get_log_file_path(log_dir: Path, stage: str | None = None) -> Path:
    """
    Build log file path with a date subfolder.

    Structure: {log_dir}/{YYYY-MM-DD}/{stage}_{MMDD}_{HHMM}.log

    Example:
        logs/2026-01-05/booking-stream_0105_1430.log
    """
    now = datetime.now()
    base_name = stage or "pipeline"
    filename = f"{base_name}_{now.strftime('%m%d')}_{now.strftime('%H%M')}.log"
    return log_dir / now.strftime("%Y-%m-%d") / filename


def _stdout_handler() -> logging.StreamHandler:
    if sys.platform == "win32":
        safe_stdout = io.TextIOWrapper(
            sys.stdout.buffer, encoding="utf-8", errors="replace"
        )
        return logging.StreamHandler(safe_stdout)
    return logging.StreamHandler(sys.stdout)


def setup_logging(
    name: str = "pipeline",
    stage: str | None = None,
    log_dir: Path | None = None,
    json_format: bool = True,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    rotation_when: str = DEFAULT_ROTATION_WHEN,
    rotation_interval: int = DEFAULT_ROTATION_INTERVAL,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
    worker_id: str | None = None,
    log_to_stdout: bool = False,
) -> logging.Logger:
    """
    Configure logging with a console handler and a time-rotated file handler.

    Args:
        name: Logger name returned to the caller
        stage: Stage name, injected into every record and used as file prefix
        log_dir: Directory for log files (default: ./logs)
        json_format: Use JSON format for file logs (default: True)
        console_level: Console handler level (default: INFO)
        file_level: File handler level (default: DEBUG)
        rotation_when: When to rotate logs - 'midnight', 'H' (hourly), 'M' (minutes)
        rotation_interval: Interval for rotation (default: 1)
        backup_count: Number of backup files to keep (default: 7)
        suppress_noisy: Quiet down Kafka and PostgreSQL client loggers
        worker_id: Worker identifier for context
        log_to_stdout: Send all log output to stdout only, skipping file handlers.
            Useful for containerized deployments where logs are captured from stdout.

    Returns:
        Configured logger instance
    """
    log_dir = log_dir or DEFAULT_LOG_DIR

    if worker_id:
        set_log_context(worker_id=worker_id)
    if stage:
        set_log_context(stage=stage)

    console_handler = _stdout_handler()
    console_handler.setFormatter(ConsoleFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.handlers.clear()

    if log_to_stdout:
        console_handler.setLevel(min(console_level, file_level))
        root_logger.addHandler(console_handler)
    else:
        console_handler.setLevel(console_level)
        root_logger.addHandler(console_handler)

        log_file = get_log_file_path(log_dir, stage=stage)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = TimedRotatingFileHandler(
            log_file,
            when=rotation_when,
            interval=rotation_interval,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(file_level)
        if json_format:
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")
            )
        root_logger.addHandler(file_handler)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    return logging.getLogger(name)


def setup_logging_from_env(name: str, stage: str) -> logging.Logger:
    """
    Configure logging from LOG_LEVEL, LOG_DIR, LOG_TO_STDOUT and JSON_LOGS.
    """
    truthy = ("true", "1", "yes")
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    return setup_logging(
        name=name,
        stage=stage,
        log_dir=Path(os.getenv("LOG_DIR", str(DEFAULT_LOG_DIR))),
        json_format=os.getenv("JSON_LOGS", "true").lower() in truthy,
        console_level=getattr(logging, level_name, logging.INFO),
        worker_id=os.getenv("WORKER_ID"),
        log_to_stdout=os.getenv("LOG_TO_STDOUT", "false").lower() in truthy,
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Use this instead of logging.getLogger() to ensure consistent naming.
    """
    return logging.getLogger(name)


def generate_run_id() -> str:
    """
    Generate unique run identifier.

    Format: r-YYYYMMDD-HHMMSS-XXXX where XXXX is random hex.
    """
    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    suffix = secrets.token_hex(2)
    return f"r-{ts}-{suffix}"
