"""Observability module for the document repository core.

Provides structured logging with correlation IDs.
"""

from .logging_config import configure_logging, JSONFormatter, CorrelationIdFilter
from .correlation import (
    correlation_id_var,
    get_correlation_id,
    set_correlation_id,
    generate_correlation_id,
    correlation_scope,
)

__all__ = [
    # Logging
    "configure_logging",
    "JSONFormatter",
    "CorrelationIdFilter",
    # Correlation ID
    "correlation_id_var",
    "get_correlation_id",
    "set_correlation_id",
    "generate_correlation_id",
    "correlation_scope",
]
