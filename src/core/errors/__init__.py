"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- PipelineError hierarchy split into fatal and delivery errors
- Classification utilities used by the entry point
"""

from core.errors.exceptions import (
    ConfigurationError,
    DeliveryError,
    EncodingError,
    # Enums
    ErrorCategory,
    FatalError,
    # Base classes
    PipelineError,
    ProducerStartError,
    PropertyLookupError,
    SchemaError,
    StoreConnectionError,
    StoreQueryError,
    # Classification utilities
    classify_exception,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "PipelineError",
    "FatalError",
    "DeliveryError",
    # Fatal errors
    "ConfigurationError",
    "StoreConnectionError",
    "StoreQueryError",
    "PropertyLookupError",
    "EncodingError",
    "SchemaError",
    "ProducerStartError",
    # Classification utilities
    "classify_exception",
]
