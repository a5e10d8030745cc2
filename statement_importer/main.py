"""
FastAPI application entry point.

Configures the application with routes, middleware, and settings.
"""
import logging
import traceback

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from statement_importer import __version__
from statement_importer.api.routes import monitoring, statements
from statement_importer.config import get_settings
from statement_importer.database import init_db
from statement_importer.exceptions import StatementImportError
from statement_importer.middleware.logging import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    add_correlation_id_processor,
    redact_sensitive_processor,
)

settings = get_settings()


def configure_logging(log_level: str) -> None:
    """Route structlog through the standard library at the configured level."""
    level = log_level.upper()
    logging.basicConfig(format="%(message)s")
    logging.getLogger().setLevel(level)


configure_logging(settings.log_level)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        add_correlation_id_processor,  # Add correlation ID to all logs
        redact_sensitive_processor,     # Redact secrets, CPF and CNPJ
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Statement Importer API",
    description="""
## Bank and Credit Card Statement Import API

Turns statement exports from Brazilian banks into household expenses.

### Key Features

- **Formats**: CSV, TXT, XLS (including HTML disguised as XLS) and XLSX
- **Table Detection**: Finds the transaction table between headers, balances and footers
- **Column Mapping**: Remote analyzer when configured, local heuristics otherwise
- **Classification**: Only expenses are imported; income, payments and summaries are reported
- **Deduplication**: Re-importing the same statement does not create duplicates
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Statements", "description": "Statement preview, import and conversion"},
        {"name": "Monitoring", "description": "Health checks"},
    ],
)

if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID"],
    )

# Add logging middleware (order matters: correlation ID first)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)

# Include API routes
app.include_router(statements.router, prefix="/api/v1", tags=["Statements"])

# Monitoring routes (no prefix for easy access)
app.include_router(monitoring.router, tags=["Monitoring"])


@app.exception_handler(StatementImportError)
async def statement_import_exception_handler(request: Request, exc: StatementImportError):
    """Handle all statement importer exceptions."""
    logger.error(
        "statement_import_error",
        error_code=exc.error_code,
        message=exc.message,
        details=exc.details,
        path=str(request.url.path),
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions with consistent format."""
    logger.error(
        "unhandled_error",
        error_type=type(exc).__name__,
        message=str(exc),
        path=str(request.url.path),
        traceback=traceback.format_exc(),
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": True,
            "error_code": "IMP-999",
            "message": "An unexpected error occurred. Please try again.",
            "details": {"error_type": type(exc).__name__} if settings.debug else {},
        },
    )


@app.on_event("startup")
async def startup_event() -> None:
    """Initialize application on startup."""
    logger.info("Starting Statement Importer API", debug=settings.debug)

    if settings.analyzer_url:
        logger.info("Remote column analyzer enabled", url=settings.analyzer_url)
    else:
        logger.info("Remote column analyzer not configured, using local heuristics")

    init_db()

    logger.info("Statement Importer API started successfully")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """Cleanup on application shutdown."""
    logger.info("Shutting down Statement Importer API")
