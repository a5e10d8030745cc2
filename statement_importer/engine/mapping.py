"""
Column mapping for delimited statements.

Decides which column holds the date, description, amount (or the
inflow/outflow pair), category and friends. An optional remote analyzer is
consulted first; its result is wrapped in ``AnalyzerResult`` and any failure
falls through to the deterministic local ``ColumnAnalyzer``.
"""

import csv
import io
import re
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Protocol, Sequence

import structlog

from statement_importer.engine.decoding import count_outside_quotes
from statement_importer.engine.extraction import HEADER_TOKENS
from statement_importer.engine.models import (
    INFLOW_FIELDS,
    OUTFLOW_FIELDS,
    ColumnMapping,
    CSVAnalysis,
    InternalField,
)
from statement_importer.engine.normalization import (
    is_amount_like,
    is_date_like,
    normalize_text,
    parse_date,
)
from statement_importer.exceptions import StatementContentError

logger = structlog.get_logger(__name__)

MAX_CONTENT_BYTES = 5 * 1024 * 1024
DEFAULT_SAMPLE_SIZE = 50
CONTENT_SAMPLE_VALUES = 5
CONTENT_MATCH_THRESHOLD = 3
DATE_INFERENCE_ROWS = 50
SEPARATORS = (";", ",", "\t")
DEFAULT_DATE_FORMAT = "DD/MM/YYYY"

SKIP_COLUMN = re.compile(r"saldo|balance")
INFLOW_HEADER = re.compile(r"^(entrada|credito|credit|receita|deposito)")
OUTFLOW_HEADER = re.compile(r"^(saida|debito|debit|despesa|retirada)")
DATE_HEADER = re.compile(r"^(data|date|dia\b|dt\b|movimenta|vencimento)")
DESCRIPTION_HEADER = re.compile(r"descri|nome|hist|lancamento|estabelecimento|detalhe|titulo|memo$")
AMOUNT_HEADER = re.compile(r"^(valor|amount|total|preco|custo|quantia|montante)")
TYPE_HEADER = re.compile(r"^(natureza|type|tipo|d/c|c/d|dc|cd)$")
PAYMENT_HEADER = re.compile(r"forma|pagamento|meio")
CATEGORY_HEADER = re.compile(r"categ")
NOTES_HEADER = re.compile(r"^(obs|nota|notes|coment)")
INFERRED_DATE_HEADER = re.compile(
    r"^(data|date|dia|dt|mov|vencimento|lancamento|compra|transa)"
)

HEADER_CONFIDENCE = {
    InternalField.ENTRADA: 0.95,
    InternalField.SAIDA: 0.95,
    InternalField.CREDITO: 0.95,
    InternalField.DEBITO: 0.95,
    InternalField.DATE: 0.9,
    InternalField.DESCRIPTION: 0.9,
    InternalField.AMOUNT: 0.9,
    InternalField.TRANSACTION_TYPE: 0.85,
    InternalField.PAYMENT_METHOD: 0.85,
    InternalField.CATEGORY: 0.8,
    InternalField.NOTES: 0.8,
}
CONTENT_CONFIDENCE = 0.7
LONGEST_TEXT_CONFIDENCE = 0.6
INFERRED_DATE_CONFIDENCE = 0.6


# =============================================================================
# Row splitting helpers
# =============================================================================

def detect_separator(lines: Sequence[str]) -> str:
    """Separator with a consistent count on every line, else the most frequent."""
    sample = [line for line in lines if line.strip()]
    if not sample:
        return ";"
    totals: Dict[str, int] = {}
    for separator in SEPARATORS:
        counts = [count_outside_quotes(line, separator) for line in sample]
        if counts[0] > 0 and all(count == counts[0] for count in counts):
            return separator
        totals[separator] = sum(counts)
    best = max(SEPARATORS, key=lambda sep: totals[sep])
    return best if totals[best] > 0 else ";"


def split_rows(content: str, separator: str) -> List[List[str]]:
    """Split delimited content into trimmed cell rows, skipping blank lines."""
    reader = csv.reader(io.StringIO(content), delimiter=separator, quotechar='"')
    return [[cell.strip() for cell in row] for row in reader if any(cell.strip() for cell in row)]


def looks_like_header(row: Sequence[str]) -> bool:
    """Header rows use the table vocabulary and carry no dates or amounts."""
    texts = [normalize_text(cell) for cell in row if cell and cell.strip()]
    if not texts:
        return False
    if any(is_date_like(cell) for cell in row if cell):
        return False
    vocabulary = HEADER_TOKENS + ("date", "description", "amount")
    return any(token in text for text in texts for token in vocabulary)


def detect_date_format(values: Sequence[str]) -> str:
    """Guess a date format hint from sample date strings."""
    for value in values:
        text = value.strip()
        if re.match(r"^\d{4}[-/]", text):
            return "YYYY-MM-DD"
        match = re.match(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-]\d{2,4}", text)
        if not match:
            continue
        first, second = int(match.group(1)), int(match.group(2))
        if first > 12:
            return DEFAULT_DATE_FORMAT
        if second > 12:
            return "MM/DD/YYYY"
    return DEFAULT_DATE_FORMAT


# =============================================================================
# Result type for optional remote analysis
# =============================================================================

@dataclass(frozen=True)
class AnalyzerResult:
    """Outcome of an analysis attempt: an analysis or a failure reason."""
    analysis: Optional[CSVAnalysis] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, analysis: CSVAnalysis) -> "AnalyzerResult":
        return cls(analysis=analysis)

    @classmethod
    def failure(cls, reason: str) -> "AnalyzerResult":
        return cls(error=reason)

    @property
    def is_success(self) -> bool:
        return self.analysis is not None

    def or_else(self, fallback: Callable[[], CSVAnalysis]) -> CSVAnalysis:
        """The analysis on success, otherwise whatever ``fallback`` produces."""
        if self.analysis is not None:
            return self.analysis
        logger.debug("analysis_fallback", reason=self.error)
        return fallback()


class RemoteAnalyzer(Protocol):
    async def analyze(self, content: str) -> AnalyzerResult:
        ...


# =============================================================================
# Local analyzer
# =============================================================================

def _header_field(header: str, in_out_layout: bool) -> Optional[InternalField]:
    """Field suggested by a header name, in priority order."""
    if INFLOW_HEADER.match(header):
        if in_out_layout:
            return InternalField.ENTRADA if header.startswith("entrada") else InternalField.CREDITO
        return None
    if OUTFLOW_HEADER.match(header):
        if in_out_layout:
            return InternalField.SAIDA if header.startswith("saida") else InternalField.DEBITO
        return None
    if DATE_HEADER.match(header):
        return InternalField.DATE
    if DESCRIPTION_HEADER.search(header):
        return InternalField.DESCRIPTION
    if AMOUNT_HEADER.match(header):
        return None if in_out_layout else InternalField.AMOUNT
    if TYPE_HEADER.match(header):
        return InternalField.TRANSACTION_TYPE
    if PAYMENT_HEADER.search(header):
        return InternalField.PAYMENT_METHOD
    if CATEGORY_HEADER.search(header):
        return InternalField.CATEGORY
    if NOTES_HEADER.match(header):
        return InternalField.NOTES
    return None


class ColumnAnalyzer:
    """
    Deterministic column analysis.

    Header names are tried first; unmapped columns are then classified by
    the shape of their first values; finally the column with the longest
    text becomes the description when none was named.
    """

    def __init__(self, sample_size: int = DEFAULT_SAMPLE_SIZE):
        self.sample_size = sample_size

    def analyze(self, content: str) -> CSVAnalysis:
        lines = [line for line in content.splitlines() if line.strip()]
        sample_lines = lines[: self.sample_size + 1]
        separator = detect_separator(sample_lines)
        rows = split_rows("\n".join(sample_lines), separator)
        if not rows:
            return CSVAnalysis(separator=separator, has_header=False, has_in_out_columns=False)

        has_header = looks_like_header(rows[0])
        data_rows = rows[1:] if has_header else rows
        width = max(len(row) for row in rows)
        headers = [
            rows[0][i] if has_header and i < len(rows[0]) else f"Column {i + 1}"
            for i in range(width)
        ]
        normalized_headers = [normalize_text(h) if has_header else "" for h in headers]

        columns = [[row[i] if i < len(row) else "" for row in data_rows] for i in range(width)]
        filled = [[value for value in column if value] for column in columns]
        empty = {
            i for i, values in enumerate(filled)
            if not values or (len(values) <= 1 and len(data_rows) >= 3)
        }
        skipped = {i for i, header in enumerate(normalized_headers) if SKIP_COLUMN.search(header)}

        has_inflow = any(INFLOW_HEADER.match(h) for h in normalized_headers)
        has_outflow = any(OUTFLOW_HEADER.match(h) for h in normalized_headers)
        has_amount_header = any(AMOUNT_HEADER.match(h) for h in normalized_headers)
        in_out_layout = (has_inflow and has_outflow) or (
            (has_inflow or has_outflow) and not has_amount_header
        )

        mapped: Dict[InternalField, ColumnMapping] = {}

        def assign(index: int, internal_field: InternalField, confidence: float) -> None:
            if internal_field in mapped:
                return
            mapped[internal_field] = ColumnMapping(
                source_column=headers[index],
                source_index=index,
                internal_field=internal_field,
                confidence=confidence,
            )

        def is_free(index: int) -> bool:
            return (
                index not in empty
                and index not in skipped
                and all(m.source_index != index for m in mapped.values())
            )

        for index, header in enumerate(normalized_headers):
            if not header or not is_free(index):
                continue
            internal_field = _header_field(header, in_out_layout)
            if internal_field is not None:
                assign(index, internal_field, HEADER_CONFIDENCE[internal_field])

        for index in range(width):
            if not is_free(index):
                continue
            values = filled[index][:CONTENT_SAMPLE_VALUES]
            required = min(CONTENT_MATCH_THRESHOLD, len(values))
            if sum(1 for v in values if is_date_like(v)) >= required:
                assign(index, InternalField.DATE, CONTENT_CONFIDENCE)
            elif not in_out_layout and sum(1 for v in values if is_amount_like(v)) >= required:
                assign(index, InternalField.AMOUNT, CONTENT_CONFIDENCE)

        if InternalField.DESCRIPTION not in mapped:
            candidates = [
                index for index in range(width)
                if is_free(index)
                and not all(is_amount_like(v) or is_date_like(v) for v in filled[index])
            ]
            if candidates:
                best = max(
                    candidates,
                    key=lambda i: sum(len(v) for v in filled[i]) / len(filled[i]),
                )
                assign(best, InternalField.DESCRIPTION, LONGEST_TEXT_CONFIDENCE)

        date_format = DEFAULT_DATE_FORMAT
        if InternalField.DATE in mapped:
            date_format = detect_date_format(filled[mapped[InternalField.DATE].source_index])

        analysis = CSVAnalysis(
            separator=separator,
            has_header=has_header,
            has_in_out_columns=in_out_layout and any(
                f in mapped for f in INFLOW_FIELDS + OUTFLOW_FIELDS
            ),
            column_mappings=sorted(mapped.values(), key=lambda m: m.source_index),
            date_format_hint=date_format,
            headers=headers,
            source="local",
        )
        logger.info(
            "columns_analyzed",
            source="local",
            separator=separator,
            has_header=has_header,
            has_in_out_columns=analysis.has_in_out_columns,
            mappings={m.internal_field.value: m.source_index for m in analysis.column_mappings},
        )
        return analysis


def validate_content(content: str) -> None:
    """
    Reject content the analyzers cannot work with.

    Raises:
        StatementContentError: If content is too large or has fewer than two lines.
    """
    if len(content.encode("utf-8")) > MAX_CONTENT_BYTES:
        raise StatementContentError(
            "Statement content is too large to analyze",
            details={"max_bytes": MAX_CONTENT_BYTES},
        )
    if sum(1 for line in content.splitlines() if line.strip()) < 2:
        raise StatementContentError("Statement needs a header and at least one data line")


async def analyze_content(
    content: str,
    remote: Optional[RemoteAnalyzer] = None,
    analyzer: Optional[ColumnAnalyzer] = None,
) -> CSVAnalysis:
    """
    Analyze delimited statement content.

    The remote analyzer, when given, is tried first. Any failure falls
    back to the local analyzer without surfacing an error.

    Args:
        content: Delimited statement text.
        remote: Optional remote analyzer.
        analyzer: Local analyzer (defaults to ``ColumnAnalyzer()``).

    Returns:
        CSVAnalysis for the content.
    """
    validate_content(content)
    local = analyzer or ColumnAnalyzer()
    if remote is not None:
        result = await remote.analyze(content)
    else:
        result = AnalyzerResult.failure("remote analyzer not configured")
    return result.or_else(lambda: local.analyze(content))


def ensure_date_mapping(analysis: CSVAnalysis, rows: Sequence[Sequence[str]]) -> CSVAnalysis:
    """
    Add a date mapping when the analysis has none.

    Looks for a date-like header name first, then for an unmapped column
    with at least three parseable dates in the first rows.
    """
    if analysis.mapping_for(InternalField.DATE) is not None:
        return analysis

    taken = {m.source_index for m in analysis.column_mappings}
    width = max((len(row) for row in rows), default=0)
    data_rows = list(rows[1:] if analysis.has_header else rows)[:DATE_INFERENCE_ROWS]
    headers = list(analysis.headers) or [f"Column {i + 1}" for i in range(width)]

    chosen: Optional[int] = None
    if analysis.has_header:
        for index, header in enumerate(headers):
            if index not in taken and INFERRED_DATE_HEADER.match(normalize_text(header)):
                chosen = index
                break

    if chosen is None:
        for index in range(width):
            if index in taken:
                continue
            values = [row[index] for row in data_rows if index < len(row) and row[index]]
            parsed = sum(
                1 for v in values if parse_date(v, analysis.date_format_hint) is not None
            )
            if parsed >= min(CONTENT_MATCH_THRESHOLD, len(values)) and parsed > 0:
                chosen = index
                break

    if chosen is None:
        return analysis

    label = headers[chosen] if chosen < len(headers) else f"Column {chosen + 1}"
    logger.info("date_column_inferred", index=chosen, column=label)
    mappings = list(analysis.column_mappings) + [
        ColumnMapping(
            source_column=label,
            source_index=chosen,
            internal_field=InternalField.DATE,
            confidence=INFERRED_DATE_CONFIDENCE,
        )
    ]
    return replace(analysis, column_mappings=sorted(mappings, key=lambda m: m.source_index))
