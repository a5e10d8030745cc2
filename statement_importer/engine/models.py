"""
Domain value objects for the statement import engine.

Every object here is created fresh for one file import:
- RawMatrix cells as produced by a tabular decoder
- ExtractedTable located inside a noisy matrix
- ColumnMapping / CSVAnalysis describing which column means what
- ParsedRow / NormalizedTransaction produced by the row classifier
- PolarityDecision for single-column credit card statements
- ImportScope / ImportResult exchanged with the persistence layer
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Sequence, Union

CellValue = Union[str, int, float, Decimal, date, datetime, None]
RawMatrix = List[List[CellValue]]


class SupportedFormat(str, Enum):
    """File formats accepted by the importer."""
    CSV = "csv"
    TXT = "txt"
    XLS = "xls"
    XLSX = "xlsx"


class AccountType(str, Enum):
    """Kind of account a statement belongs to. Drives the polarity rules."""
    BANK_ACCOUNT = "bank_account"
    CREDIT_CARD = "credit_card"


class InternalField(str, Enum):
    """Fields a statement column can be mapped to."""
    DATE = "date"
    DESCRIPTION = "description"
    AMOUNT = "amount"
    ENTRADA = "entrada"
    SAIDA = "saida"
    CREDITO = "credito"
    DEBITO = "debito"
    CATEGORY = "category"
    PAYMENT_METHOD = "payment_method"
    NOTES = "notes"
    TRANSACTION_TYPE = "transaction_type"


INFLOW_FIELDS = (InternalField.ENTRADA, InternalField.CREDITO)
OUTFLOW_FIELDS = (InternalField.SAIDA, InternalField.DEBITO)


class RowStatus(str, Enum):
    """Outcome of classifying one statement row."""
    OK = "OK"
    SKIPPED = "SKIPPED"
    ERROR = "ERROR"


class RowIssue(str, Enum):
    """Machine-readable reason attached to SKIPPED and ERROR rows."""
    BLANK_ROW = "blank_row"
    STATEMENT_BOILERPLATE = "statement_boilerplate"
    CARD_SUMMARY = "card_summary"
    HEADER_ROW = "header_row"
    NO_TRANSACTION_DATA = "no_transaction_data"
    INCOME_IGNORED = "income_ignored"
    PAYMENT_OR_REVERSAL = "payment_or_reversal"
    AMOUNT_NOT_FOUND = "amount_not_found"
    ZERO_AMOUNT = "zero_amount"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_OR_MISSING_DATE = "invalid_or_missing_date"


# =============================================================================
# Extraction
# =============================================================================

@dataclass
class ExtractedTable:
    """Transaction block located inside a decoded matrix."""
    header_row_index: int
    data_start_row: int
    data_end_row: int
    column_indices: List[int]
    columns: List[str]
    rows: List[List[CellValue]]

    @property
    def matrix(self) -> RawMatrix:
        """Header followed by the data rows."""
        return [list(self.columns)] + [list(row) for row in self.rows]


# =============================================================================
# Column mapping
# =============================================================================

@dataclass
class ColumnMapping:
    """Association between a source column and an internal field."""
    source_column: str
    source_index: int
    internal_field: InternalField
    confidence: float


@dataclass
class CSVAnalysis:
    """Result of analyzing a delimited statement."""
    separator: str
    has_header: bool
    has_in_out_columns: bool
    column_mappings: List[ColumnMapping] = field(default_factory=list)
    date_format_hint: Optional[str] = None
    headers: List[str] = field(default_factory=list)
    source: str = "local"

    def mapping_for(self, internal_field: InternalField) -> Optional[ColumnMapping]:
        for mapping in self.column_mappings:
            if mapping.internal_field == internal_field:
                return mapping
        return None

    def index_of(self, *fields: InternalField) -> Optional[int]:
        """Index of the first mapped column among ``fields``, in order."""
        for internal_field in fields:
            mapping = self.mapping_for(internal_field)
            if mapping is not None:
                return mapping.source_index
        return None


# =============================================================================
# Classification
# =============================================================================

@dataclass
class NormalizedTransaction:
    """An importable expense. ``amount`` is always negative."""
    description: str
    amount: Decimal
    category: str
    payment_method: str
    transaction_date: date
    import_hash: str
    notes: Optional[str] = None


@dataclass
class ParsedRow:
    """Classification outcome of a single statement row."""
    row_index: int
    raw_line: str
    status: RowStatus
    normalized: Optional[NormalizedTransaction] = None
    errors: List[str] = field(default_factory=list)
    reason: str = ""
    issue: Optional[RowIssue] = None
    requires_date_confirmation: bool = False
    original_date: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


@dataclass
class PolarityDecision:
    """Sign convention chosen for a single-amount credit card statement."""
    purchases_are_positive: bool
    positive_count: int
    negative_count: int
    confidence: float
    is_ambiguous: bool

    @property
    def sample_size(self) -> int:
        return self.positive_count + self.negative_count


@dataclass
class ClassificationSummary:
    """Row counts and expense total for a classified statement."""
    total: int
    ok: int
    skipped: int
    errors: int
    total_expense: Decimal
    ignored_income: int


@dataclass
class ClassificationResult:
    """All classified rows of one statement."""
    rows: List[ParsedRow]
    polarity: Optional[PolarityDecision] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def ok_rows(self) -> List[ParsedRow]:
        return [row for row in self.rows if row.status == RowStatus.OK]

    @property
    def summary(self) -> ClassificationSummary:
        return summarize_rows(self.rows)


def summarize_rows(rows: Sequence[ParsedRow]) -> ClassificationSummary:
    """Count rows per status and total the imported expenses."""
    ok = [row for row in rows if row.status == RowStatus.OK]
    total_expense = sum(
        (abs(row.normalized.amount) for row in ok if row.normalized is not None),
        Decimal("0"),
    )
    return ClassificationSummary(
        total=len(rows),
        ok=len(ok),
        skipped=sum(1 for row in rows if row.status == RowStatus.SKIPPED),
        errors=sum(1 for row in rows if row.status == RowStatus.ERROR),
        total_expense=total_expense,
        ignored_income=sum(1 for row in rows if row.issue == RowIssue.INCOME_IGNORED),
    )


# =============================================================================
# Import
# =============================================================================

@dataclass
class ImportScope:
    """Where imported transactions are stored.

    A credit card import never carries an account id and a bank account
    import never carries a card id.
    """
    household_id: str
    account_type: AccountType
    account_id: Optional[str] = None
    credit_card_id: Optional[str] = None
    original_filename: Optional[str] = None

    def __post_init__(self):
        self.account_type = AccountType(self.account_type)
        if self.account_type == AccountType.CREDIT_CARD:
            self.account_id = None
        else:
            self.credit_card_id = None


@dataclass
class ImportErrorEntry:
    """A row (or batch starting at a row) that could not be imported."""
    row: int
    reason: str


@dataclass
class ImportResult:
    """Aggregated outcome of persisting a classified statement."""
    imported: int = 0
    duplicates: int = 0
    failed: int = 0
    errors: List[ImportErrorEntry] = field(default_factory=list)
    ignored_income: int = 0
