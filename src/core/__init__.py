"""
Core library: infrastructure-agnostic components shared by the pipeline.

Modules:
    logging     - Structured JSON/console logging with context variables
    errors      - Exception hierarchy split into fatal and delivery errors
    types       - Shared enums
"""

from .types import ErrorCategory

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
]
