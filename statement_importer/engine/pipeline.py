"""
End-to-end statement parsing: file bytes in, classified rows out.

Stages:
1. Format detection and the standard-template fast path
2. Decoding into a matrix
3. Table extraction (text files fall back to the whole matrix)
4. Serialization to canonical ``;``-delimited content
5. Column analysis (remote when configured, local otherwise)
6. Row classification
"""

from dataclasses import dataclass
from typing import List, Optional

import structlog

from statement_importer.engine.classification import classify_rows
from statement_importer.engine.decoding import (
    DecoderRegistry,
    decode_file,
    detect_supported_format,
    read_text,
)
from statement_importer.engine.extraction import (
    extract_importable_table,
    is_blank_row,
    matrix_to_delimited_string,
)
from statement_importer.engine.mapping import (
    RemoteAnalyzer,
    analyze_content,
    ensure_date_mapping,
    split_rows,
)
from statement_importer.engine.models import (
    AccountType,
    ClassificationResult,
    ClassificationSummary,
    CSVAnalysis,
    ExtractedTable,
    SupportedFormat,
)
from statement_importer.engine.standard_template import (
    is_standard_format,
    standard_analysis,
    template_rows,
)
from statement_importer.exceptions import EmptyOrUnreadableFileError, TableExtractionError

logger = structlog.get_logger(__name__)

CANONICAL_DELIMITER = ";"
TEXT_FORMATS = (SupportedFormat.CSV, SupportedFormat.TXT)


@dataclass
class StatementParseResult:
    """Everything produced while parsing one statement file."""
    filename: str
    format: SupportedFormat
    account_type: AccountType
    analysis: CSVAnalysis
    classification: ClassificationResult
    rows: List[List[str]]
    content: str = ""
    extracted: Optional[ExtractedTable] = None

    @property
    def summary(self) -> ClassificationSummary:
        return self.classification.summary


async def parse_statement(
    filename: str,
    data: bytes,
    account_type: AccountType,
    remote: Optional[RemoteAnalyzer] = None,
    default_category: Optional[str] = None,
    registry: Optional[DecoderRegistry] = None,
) -> StatementParseResult:
    """
    Parse and classify a statement file.

    Args:
        filename: Original filename (drives format detection).
        data: File contents.
        account_type: Account the statement belongs to.
        remote: Optional remote column analyzer.
        default_category: Category for rows that name none.
        registry: Decoder registry override.

    Returns:
        StatementParseResult with the analysis and classified rows.

    Raises:
        UnsupportedFormatError: For extensions other than csv/txt/xls/xlsx.
        EmptyOrUnreadableFileError: For empty or undecodable files.
        TableExtractionError: When a spreadsheet has no transaction table.
    """
    account_type = AccountType(account_type)
    fmt = detect_supported_format(filename)
    if not data:
        raise EmptyOrUnreadableFileError("File is empty", details={"filename": filename})

    if fmt in TEXT_FORMATS:
        text = read_text(data)
        if is_standard_format(text):
            rows = template_rows(text)
            analysis = standard_analysis()
            logger.info("standard_template_detected", filename=filename, rows=len(rows))
            classification = classify_rows(rows, analysis, account_type, default_category)
            return StatementParseResult(
                filename=filename,
                format=fmt,
                account_type=account_type,
                analysis=analysis,
                classification=classification,
                rows=rows,
                content=text,
            )

    decoded = decode_file(filename, data, registry)

    extracted: Optional[ExtractedTable] = None
    try:
        extracted = extract_importable_table(decoded.matrix)
        matrix = extracted.matrix
    except TableExtractionError as e:
        if fmt not in TEXT_FORMATS:
            raise
        # Headerless or unusual text exports are analyzed as a whole
        logger.info("table_extraction_skipped", filename=filename, reason=e.message)
        matrix = [row for row in decoded.matrix if not is_blank_row(row)]

    content = matrix_to_delimited_string(matrix, CANONICAL_DELIMITER)
    analysis = await analyze_content(content, remote)
    rows = split_rows(content, analysis.separator)
    analysis = ensure_date_mapping(analysis, rows)

    classification = classify_rows(rows, analysis, account_type, default_category)

    logger.info(
        "statement_parsed",
        filename=filename,
        format=fmt.value,
        analysis_source=analysis.source,
        extracted=extracted is not None,
        rows=len(classification.rows),
    )
    return StatementParseResult(
        filename=filename,
        format=fmt,
        account_type=account_type,
        analysis=analysis,
        classification=classification,
        rows=rows,
        content=content,
        extracted=extracted,
    )
