"""
Table extraction for noisy statement layouts.

Bank exports wrap the transaction table in letterheads, account metadata,
pagination repeats, blank separators and summary footers. This module finds
the header row and the contiguous transaction block beneath it.
"""

import re
from typing import Any, List, Optional, Sequence, Tuple

import structlog

from statement_importer.engine.models import CellValue, ExtractedTable, RawMatrix
from statement_importer.engine.normalization import (
    cell_to_text,
    is_date_like,
    normalize_text,
    parse_localized_number,
)
from statement_importer.exceptions import EmptyMatrixError, HeaderNotFoundError

logger = structlog.get_logger(__name__)

SCAN_HEADER_LIMIT = 200
HEADER_MIN_TOKENS = 3
REPEATED_HEADER_MIN_TOKENS = 3
INVALID_ROWS_STOP = 3
COLUMN_GAP_THRESHOLD = 3
COLUMN_LOOKAHEAD_ROWS = 5
DATE_COLUMN_BONUS = 2

HEADER_TOKENS = (
    "data", "dt", "descri", "hist", "historico", "lancamento", "movimento",
    "texto", "documento", "docto", "situacao", "credito", "debito",
    "entrada", "saida", "valor", "saldo", "categoria",
)

FOOTER_PATTERNS = tuple(re.compile(p) for p in (
    r"^total\s*(do\s*periodo|geral)?$",
    r"^total\s",
    r"^totais$",
    r"^saldo\s*final",
    r"^resumo$",
    r"^fim$",
    r"^assinatura",
    r"^gerado\s*em",
    r"^documento\s*gerado",
))

BALANCE_PATTERNS = tuple(re.compile(p) for p in (
    r"^saldo\s*anterior",
    r"^saldo\s*inicial",
))


def _non_empty(row: Sequence[CellValue]) -> List[str]:
    return [text for text in (cell_to_text(cell) for cell in row) if text]


def _first_text(row: Sequence[CellValue]) -> str:
    cells = _non_empty(row)
    return normalize_text(cells[0]) if cells else ""


def is_blank_row(row: Sequence[CellValue]) -> bool:
    return not _non_empty(row)


def header_token_count(row: Sequence[CellValue]) -> int:
    """Number of cells containing a header vocabulary token."""
    count = 0
    for cell in row:
        text = normalize_text(cell_to_text(cell))
        if text and any(token in text for token in HEADER_TOKENS):
            count += 1
    return count


def header_score(row: Sequence[CellValue]) -> int:
    """Score a candidate header row. Zero means not a header."""
    if len(_non_empty(row)) < 2:
        return 0
    tokens = header_token_count(row)
    if tokens < HEADER_MIN_TOKENS:
        return 0
    score = tokens
    for index in (0, 1):
        if index < len(row) and normalize_text(cell_to_text(row[index])).startswith("data"):
            score += DATE_COLUMN_BONUS
            break
    return score


def is_balance_row(row: Sequence[CellValue]) -> bool:
    first = _first_text(row)
    return any(pattern.match(first) for pattern in BALANCE_PATTERNS)


def is_likely_footer_row(row: Sequence[CellValue], column_count: int = 0) -> bool:
    """
    Whether a row closes the transaction block.

    Footers start with a summary keyword (total, saldo final, resumo, ...)
    or carry very little data: a lone cell with no digits inside a table of
    three or more columns.
    """
    first = _first_text(row)
    if not first:
        return False
    if any(pattern.match(first) for pattern in FOOTER_PATTERNS):
        return True
    cells = _non_empty(row)
    if column_count >= 3 and len(cells) == 1 and not any(ch.isdigit() for ch in cells[0]):
        return True
    return False


def is_valid_data_row(row: Sequence[CellValue]) -> bool:
    """A data row has a date-shaped cell, or a description plus an amount."""
    has_date = False
    has_text = False
    has_amount = False
    for cell in row:
        if cell is None or cell == "":
            continue
        if isinstance(cell, str):
            if is_date_like(cell):
                has_date = True
            elif parse_localized_number(cell) is not None:
                has_amount = True
            elif any(ch.isalpha() for ch in cell):
                has_text = True
        elif is_date_like(cell) and not isinstance(cell, (int, float)):
            has_date = True
        elif parse_localized_number(cell) is not None:
            has_amount = True
    return has_date or (has_text and has_amount)


def find_header_row(matrix: RawMatrix) -> Optional[int]:
    """Index of the best-scoring header row within the scan limit."""
    best_index = None
    best_score = 0
    for index, row in enumerate(matrix[:SCAN_HEADER_LIMIT]):
        score = header_score(row)
        if score > best_score:
            best_index, best_score = index, score
    return best_index


def find_useful_columns(matrix: RawMatrix, header_index: int) -> List[int]:
    """
    Columns worth keeping, scanning right from the first column.

    A column is useful when its header or one of the next rows has data.
    Scanning stops after a run of empty columns.
    """
    window = matrix[header_index:header_index + 1 + COLUMN_LOOKAHEAD_ROWS]
    width = max((len(row) for row in window), default=0)

    useful = []
    gap = 0
    for column in range(width):
        has_data = any(
            column < len(row) and cell_to_text(row[column]) for row in window
        )
        if has_data:
            useful.append(column)
            gap = 0
        else:
            gap += 1
            if gap >= COLUMN_GAP_THRESHOLD and useful:
                break
    return useful


def _project(row: Sequence[CellValue], columns: List[int]) -> List[CellValue]:
    return [row[c] if c < len(row) and row[c] is not None else "" for c in columns]


def _next_meaningful(matrix: RawMatrix, start: int, width: int) -> Tuple[str, int]:
    """Classify the first non-blank row at or after ``start``."""
    for index in range(start, len(matrix)):
        row = matrix[index]
        if is_blank_row(row):
            continue
        if header_token_count(row) >= REPEATED_HEADER_MIN_TOKENS:
            return "header", index
        if is_likely_footer_row(row, width) or is_balance_row(row):
            return "footer", index
        if is_valid_data_row(row):
            return "data", index
        return "other", index
    return "end", len(matrix)


def extract_importable_table(matrix: RawMatrix) -> ExtractedTable:
    """
    Locate the transaction table inside a decoded matrix.

    Args:
        matrix: Decoded rows.

    Returns:
        ExtractedTable restricted to the useful columns.

    Raises:
        EmptyMatrixError: If the matrix or the data block is empty.
        HeaderNotFoundError: If no row looks like a header.
    """
    if not matrix or len(matrix) < 2:
        raise EmptyMatrixError("File has fewer than two rows")

    header_index = find_header_row(matrix)
    if header_index is None:
        raise HeaderNotFoundError(scanned_rows=min(len(matrix), SCAN_HEADER_LIMIT))

    columns = find_useful_columns(matrix, header_index)
    width = len(columns)

    rows: List[List[CellValue]] = []
    data_start: Optional[int] = None
    data_end = header_index
    invalid_streak = 0

    index = header_index + 1
    while index < len(matrix):
        row = _project(matrix[index], columns)

        if is_blank_row(row):
            kind, _ = _next_meaningful(matrix, index + 1, width)
            if kind in ("data", "header") and rows:
                index += 1
                continue
            if not rows and kind != "end":
                index += 1
                continue
            logger.debug("table_end_blank", row=index)
            break

        if header_token_count(row) >= REPEATED_HEADER_MIN_TOKENS:
            index += 1
            continue

        if is_balance_row(row):
            if rows:
                logger.debug("table_end_balance", row=index)
                break
            index += 1
            continue

        if is_likely_footer_row(row, width):
            logger.debug("table_end_footer", row=index, text=_first_text(row))
            break

        if is_valid_data_row(row):
            rows.append(row)
            if data_start is None:
                data_start = index
            data_end = index
            invalid_streak = 0
        else:
            invalid_streak += 1
            if invalid_streak >= INVALID_ROWS_STOP:
                logger.debug("table_end_invalid_rows", row=index)
                break
        index += 1

    if not rows:
        raise EmptyMatrixError(
            "No transaction rows found below the header",
            details={"header_row_index": header_index},
        )

    header_labels = [cell_to_text(cell) for cell in _project(matrix[header_index], columns)]

    logger.info(
        "table_extracted",
        header_row_index=header_index,
        columns=len(columns),
        rows=len(rows),
    )
    return ExtractedTable(
        header_row_index=header_index,
        data_start_row=data_start if data_start is not None else header_index + 1,
        data_end_row=data_end,
        column_indices=columns,
        columns=header_labels,
        rows=rows,
    )


def _quote(value: Any, delimiter: str) -> str:
    text = cell_to_text(value)
    if delimiter in text or '"' in text or "\n" in text or "\r" in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def matrix_to_delimited_string(matrix: RawMatrix, delimiter: str = ";") -> str:
    """Serialize a matrix to delimiter-separated text with minimal quoting."""
    return "\n".join(
        delimiter.join(_quote(cell, delimiter) for cell in row) for row in matrix
    )
