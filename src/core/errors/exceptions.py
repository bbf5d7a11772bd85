"""
Unified exception hierarchy for the booking stream.

Errors fall into two families:

- FatalError: the run cannot continue (store, configuration, encoding,
  producer start). Propagated to the entry point, which logs the cause
  and exits non-zero.
- DeliveryError: one message failed to publish. Reported on the
  producer's error outlet, counted by the pipeline, never retried there.
"""

from typing import Any, Optional

# Import ErrorCategory from canonical source to avoid duplicate enum issues
# (comparing enums from different classes always returns False)
from core.types import ErrorCategory


class PipelineError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error description
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Fatal Errors (stop the run)
# =============================================================================


class FatalError(PipelineError):
    """Base class for errors that terminate the run."""

    category = ErrorCategory.PERMANENT


class ConfigurationError(FatalError):
    """Configuration file missing, malformed or out of range."""

    pass


class StoreConnectionError(FatalError):
    """Could not open the connection to the booking store."""

    pass


class StoreQueryError(FatalError):
    """Booking query or property lookup failed in the driver."""

    pass


class PropertyLookupError(StoreQueryError):
    """A booking references a rental property that does not exist."""

    def __init__(self, property_id: Any, cause: Exception | None = None):
        super().__init__(
            f"No rental property found for id {property_id!r}",
            cause,
            {"property_id": property_id},
        )
        self.property_id = property_id


class EncodingError(FatalError):
    """A record could not be encoded against its Avro schema."""

    pass


class SchemaError(EncodingError):
    """An Avro schema definition failed to parse."""

    pass


class ProducerStartError(FatalError):
    """Kafka producer could not be created or connected."""

    pass


# =============================================================================
# Delivery Errors (counted, not fatal)
# =============================================================================


class DeliveryError(PipelineError):
    """
    Kafka rejected or timed out a single message.

    Attributes:
        message_obj: The EncodedMessage that failed (may be None)
        topic: Destination topic
        attempts: How many sends were made before giving up
    """

    category = ErrorCategory.TRANSIENT

    def __init__(
        self,
        topic: str,
        cause: Exception | None = None,
        message_obj: Optional[Any] = None,
        attempts: int = 1,
    ):
        super().__init__(
            f"Failed to deliver message to '{topic}' after {attempts} attempt(s)",
            cause,
            {"topic": topic, "attempts": attempts},
        )
        self.topic = topic
        self.message_obj = message_obj
        self.attempts = attempts


# =============================================================================
# Classification Utilities
# =============================================================================


def classify_exception(exc: BaseException) -> ErrorCategory:
    """Classify any exception; non-pipeline exceptions are UNKNOWN."""
    if isinstance(exc, PipelineError):
        return exc.category
    return ErrorCategory.UNKNOWN
