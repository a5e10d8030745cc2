"""
Custom exceptions for the statement importer.

Provides a hierarchy of exceptions with error codes for consistent error handling.
File-level problems are exceptions; row-level problems are reported on each
parsed row instead (see ``engine.models.RowIssue``).
"""
from typing import Any, Dict, List, Optional


class StatementImportError(Exception):
    """
    Base exception for all statement importer errors.

    Attributes:
        error_code: Unique error code (e.g., IMP-101)
        message: Human-readable error message
        details: Additional error context
    """
    error_code: str = "IMP-000"
    http_status: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# File Errors (IMP-1XX)
class UnsupportedFormatError(StatementImportError):
    """Uploaded file has an extension the importer cannot read."""
    error_code = "IMP-101"
    http_status = 400

    def __init__(self, filename: str, allowed_extensions: List[str], **kwargs):
        message = (
            f"Unsupported file format. Allowed extensions: {', '.join(allowed_extensions)}"
        )
        super().__init__(
            message,
            details={"filename": filename, "allowed_extensions": list(allowed_extensions)},
            **kwargs,
        )


class EmptyOrUnreadableFileError(StatementImportError):
    """File is empty, has an empty first sheet, or could not be decoded."""
    error_code = "IMP-102"
    http_status = 422

    def __init__(self, message: str = "File is empty or could not be read", **kwargs):
        super().__init__(message, **kwargs)


class FileTooLargeError(StatementImportError):
    """File exceeds maximum size limit."""
    error_code = "IMP-103"
    http_status = 413

    def __init__(self, size: int, max_size: int, **kwargs):
        message = f"File too large. Maximum size: {max_size // (1024 * 1024)}MB"
        super().__init__(message, details={"size": size, "max_size": max_size}, **kwargs)


class StatementContentError(StatementImportError):
    """Statement text cannot be analyzed (too large or too few lines)."""
    error_code = "IMP-104"
    http_status = 422

    def __init__(self, message: str = "Statement content cannot be analyzed", **kwargs):
        super().__init__(message, **kwargs)


# Table Extraction Errors (IMP-2XX)
class TableExtractionError(StatementImportError):
    """Error while locating the transaction table."""
    error_code = "IMP-200"
    http_status = 422

    def __init__(self, message: str = "Failed to extract the transaction table", **kwargs):
        super().__init__(message, **kwargs)


class HeaderNotFoundError(TableExtractionError):
    """No row of the matrix looks like a transaction table header."""
    error_code = "IMP-201"

    def __init__(self, scanned_rows: int, **kwargs):
        message = "Could not find a transaction table header in the file"
        super().__init__(message, details={"scanned_rows": scanned_rows}, **kwargs)


class EmptyMatrixError(TableExtractionError):
    """Matrix has no usable rows."""
    error_code = "IMP-202"

    def __init__(self, message: str = "No transaction rows found in the file", **kwargs):
        super().__init__(message, **kwargs)


# External Service Errors (IMP-3XX)
class RemoteAnalyzerError(StatementImportError):
    """Remote column analyzer failed. Never surfaced to API callers."""
    error_code = "IMP-301"
    http_status = 502

    def __init__(self, reason: str, **kwargs):
        super().__init__(f"Remote column analyzer failed: {reason}", **kwargs)


# Persistence Errors (IMP-4XX)
class PersistenceBatchError(StatementImportError):
    """A batch of transactions could not be stored."""
    error_code = "IMP-401"
    http_status = 500

    def __init__(self, batch_size: int, reason: str, **kwargs):
        message = f"Failed to store batch of {batch_size} transactions: {reason}"
        super().__init__(message, details={"batch_size": batch_size}, **kwargs)
