"""
Structured logging module.

Provides JSON logging with run identifiers and context propagation.
"""

from core.logging.context import (
    clear_log_context,
    get_log_context,
    set_log_context,
)
from core.logging.formatters import ConsoleFormatter, JSONFormatter
from core.logging.setup import (
    generate_run_id,
    get_log_file_path,
    get_logger,
    setup_logging,
    setup_logging_from_env,
)
from core.logging.utilities import format_tally, log_exception, log_with_context

__all__ = [
    # Setup
    "setup_logging",
    "setup_logging_from_env",
    "get_logger",
    "generate_run_id",
    "get_log_file_path",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    # Context
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    # Utilities
    "log_with_context",
    "log_exception",
    "format_tally",
]
