"""
Statement import engine.

Turns a bank or credit card statement file into classified rows and
importable expenses:

1. Decode csv/txt/xls/xlsx into a cell matrix
2. Locate the transaction table inside the noise
3. Map columns to internal fields (remote analyzer first, heuristics second)
4. Classify every row as OK, SKIPPED or ERROR
5. Persist OK rows in batches, skipping re-imports

The engine has no web or database dependencies; persistence goes through a
``TransactionStore``.
"""

from statement_importer.engine.models import (
    AccountType,
    ClassificationResult,
    CSVAnalysis,
    ImportResult,
    ImportScope,
    ParsedRow,
    RowStatus,
)
from statement_importer.engine.orchestrator import ImportOrchestrator, TransactionStore
from statement_importer.engine.pipeline import StatementParseResult, parse_statement

__version__ = "1.0.0"
__all__ = [
    "parse_statement",
    "StatementParseResult",
    "ImportOrchestrator",
    "TransactionStore",
    "AccountType",
    "ClassificationResult",
    "CSVAnalysis",
    "ImportResult",
    "ImportScope",
    "ParsedRow",
    "RowStatus",
]
