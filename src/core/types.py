"""
Core types shared across modules.

Keeps the error classification enum in one place so that exceptions,
log formatters and the pipeline all compare against the same members.
"""

from enum import Enum


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Failure of a single unit of work; counted and skipped
                   (e.g., a Kafka delivery that the broker rejected)
        PERMANENT: Failure that stops the run
                   (e.g., store unreachable, bad configuration, bad schema)
        UNKNOWN: Unclassified errors, handled as permanent
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


__all__ = [
    "ErrorCategory",
]
