"""
Pydantic schemas for statement API endpoints.

Defines response models for statement preview, import and errors.
"""
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from statement_importer.engine.models import AccountType, InternalField, RowIssue, RowStatus


class ColumnMappingResponse(BaseModel):
    """Response model for one column mapping."""

    model_config = ConfigDict(from_attributes=True)

    source_column: str = Field(..., description="Column label in the statement")
    source_index: int = Field(..., description="Column index (0-based)")
    internal_field: InternalField = Field(..., description="Field the column maps to")
    confidence: float = Field(..., description="Mapping confidence (0-1)")


class AnalysisResponse(BaseModel):
    """Response model for the column analysis of a statement."""

    model_config = ConfigDict(from_attributes=True)

    separator: str = Field(..., description="Column separator")
    has_header: bool = Field(..., description="Whether the first row is a header")
    has_in_out_columns: bool = Field(..., description="Separate inflow/outflow columns")
    column_mappings: List[ColumnMappingResponse] = Field(default_factory=list)
    date_format_hint: Optional[str] = Field(None, description="Detected date format")
    source: str = Field(..., description="local, remote or standard_template")


class NormalizedTransactionResponse(BaseModel):
    """Response model for an importable expense."""

    model_config = ConfigDict(from_attributes=True)

    description: str
    amount: float = Field(..., description="Signed amount (negative for expenses)")
    category: str
    payment_method: str
    transaction_date: date
    notes: Optional[str] = None


class ParsedRowResponse(BaseModel):
    """Response model for one classified row."""

    model_config = ConfigDict(from_attributes=True)

    row_index: int = Field(..., description="Row number (1-based)")
    raw_line: str = Field(..., description="Original row text")
    status: RowStatus
    normalized: Optional[NormalizedTransactionResponse] = None
    errors: List[str] = Field(default_factory=list)
    reason: str = ""
    issue: Optional[RowIssue] = None
    requires_date_confirmation: bool = False
    original_date: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)


class PolarityResponse(BaseModel):
    """Response model for the credit card sign convention."""

    model_config = ConfigDict(from_attributes=True)

    purchases_are_positive: bool
    positive_count: int
    negative_count: int
    confidence: float
    is_ambiguous: bool


class SummaryResponse(BaseModel):
    """Response model for classification totals."""

    model_config = ConfigDict(from_attributes=True)

    total: int
    ok: int
    skipped: int
    errors: int
    total_expense: float = Field(..., description="Sum of imported expenses (positive)")
    ignored_income: int


class InstitutionResponse(BaseModel):
    """Institution guessed from the filename."""

    model_config = ConfigDict(from_attributes=True)

    kind: str
    name: str


class PreviewResponse(BaseModel):
    """Response model for statement preview."""

    filename: str = Field(..., description="Original filename")
    format: str = Field(..., description="Detected file format")
    account_type: AccountType
    institution: Optional[InstitutionResponse] = None
    analysis: AnalysisResponse
    polarity: Optional[PolarityResponse] = None
    summary: SummaryResponse
    rows: List[ParsedRowResponse]
    warnings: List[str] = Field(default_factory=list)
    processing_time_ms: float = Field(..., description="Processing time in milliseconds")


class ImportErrorResponse(BaseModel):
    """A row, or the first row of a batch, that was not imported."""

    model_config = ConfigDict(from_attributes=True)

    row: int
    reason: str


class ImportResponse(BaseModel):
    """Response model for statement import."""

    model_config = ConfigDict(from_attributes=True)

    imported: int
    duplicates: int
    failed: int
    errors: List[ImportErrorResponse] = Field(default_factory=list)
    ignored_income: int = 0
    summary: Optional[SummaryResponse] = Field(None, description="Classification totals")


class ErrorResponse(BaseModel):
    """Response model for API errors."""

    error: bool = Field(True, description="Always true")
    error_code: str = Field(..., description="Error code (e.g. IMP-101)")
    message: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
