"""
Middleware module initialization.
"""
from statement_importer.middleware.logging import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    add_correlation_id_processor,
    get_correlation_id,
    mask_document_numbers,
    redact_sensitive_data,
    redact_sensitive_processor,
)

__all__ = [
    "CorrelationIdMiddleware",
    "RequestLoggingMiddleware",
    "add_correlation_id_processor",
    "get_correlation_id",
    "mask_document_numbers",
    "redact_sensitive_data",
    "redact_sensitive_processor",
]
