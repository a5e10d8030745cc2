"""
Logging middleware and structlog processors.

Provides correlation ID tracking, request/response logging with timing, and
redaction of secrets and Brazilian taxpayer numbers (CPF/CNPJ) that bank
statements tend to carry in their headers.
"""
import re
import time
import uuid
from contextvars import ContextVar
from typing import Any, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Context variable for correlation ID
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

logger = structlog.get_logger(__name__)

# Keys whose values are always redacted
SENSITIVE_FIELDS = {
    "password", "token", "access_token", "authorization",
    "api_key", "analyzer_api_key", "secret", "cpf", "cnpj",
}

CPF_PATTERN = re.compile(r"\b\d{3}\.?\d{3}\.?\d{3}-?\d{2}\b")
CNPJ_PATTERN = re.compile(r"\b\d{2}\.?\d{3}\.?\d{3}/?\d{4}-?\d{2}\b")
REDACTED = "[REDACTED]"


def get_correlation_id() -> str:
    """Get the current request's correlation ID."""
    return correlation_id.get()


def mask_document_numbers(text: str) -> str:
    """Replace CPF and CNPJ numbers inside free text."""
    return CPF_PATTERN.sub(REDACTED, CNPJ_PATTERN.sub(REDACTED, text))


def redact_sensitive_data(data: Any, depth: int = 0) -> Any:
    """
    Recursively redact sensitive values.

    Args:
        data: Dictionary, list or scalar to redact.
        depth: Current recursion depth (bounded to avoid runaway structures).

    Returns:
        Copy of ``data`` with sensitive keys replaced by "[REDACTED]" and
        CPF/CNPJ numbers masked inside strings.
    """
    if depth > 5:
        return data
    if isinstance(data, dict):
        redacted = {}
        for key, value in data.items():
            if isinstance(key, str) and any(s in key.lower() for s in SENSITIVE_FIELDS):
                redacted[key] = REDACTED
            else:
                redacted[key] = redact_sensitive_data(value, depth + 1)
        return redacted
    if isinstance(data, list):
        return [redact_sensitive_data(item, depth + 1) for item in data]
    if isinstance(data, str):
        return mask_document_numbers(data)
    return data


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware that adds a correlation ID to each request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        correlation_id.set(request_id)

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that logs requests with timing information."""

    SKIP_PATHS = {"/health", "/ready", "/docs", "/redoc", "/openapi.json"}
    SLOW_REQUEST_MS = 2000

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        request_info = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
            "content_length": request.headers.get("Content-Length"),
        }
        logger.info("request_started", **request_info)

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "request_failed",
                **request_info,
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round(duration_ms, 2),
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "request_completed",
            **request_info,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        if duration_ms > self.SLOW_REQUEST_MS:
            # Large spreadsheets are the usual cause
            logger.warning("slow_request", **request_info, duration_ms=round(duration_ms, 2))
        return response


def add_correlation_id_processor(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Structlog processor that adds the correlation ID to all log entries."""
    event_dict["correlation_id"] = get_correlation_id()
    return event_dict


def redact_sensitive_processor(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Structlog processor that redacts sensitive data from log entries."""
    return redact_sensitive_data(event_dict)
