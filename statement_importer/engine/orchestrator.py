"""
Import orchestration.

Filters classified rows down to importable expenses, removes records that
were already imported into the same scope, and hands the rest to the
persistence layer in bounded batches. A failing batch is recorded and the
import moves on to the next one; earlier batches stay committed.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog

from statement_importer.engine.dedup import Deduplicator
from statement_importer.engine.models import (
    ImportErrorEntry,
    ImportResult,
    ImportScope,
    NormalizedTransaction,
    ParsedRow,
    RowIssue,
    RowStatus,
)
from statement_importer.exceptions import PersistenceBatchError

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZE = 50


class TransactionStore(ABC):
    """Persistence collaborator used by the orchestrator."""

    @abstractmethod
    def fetch_existing(self, scope: ImportScope) -> Iterable[Tuple[date, Decimal, str]]:
        """``(date, amount, description)`` of transactions already stored in scope."""

    @abstractmethod
    def insert_batch(self, scope: ImportScope, records: Sequence[NormalizedTransaction]) -> int:
        """
        Store a batch of transactions.

        Returns:
            Number of stored records.

        Raises:
            PersistenceBatchError: If the batch could not be stored.
        """


class ImportOrchestrator:
    """Batches OK rows into a TransactionStore and aggregates the outcome."""

    def __init__(self, store: TransactionStore, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.store = store
        self.batch_size = batch_size

    def import_rows(
        self,
        scope: ImportScope,
        rows: Sequence[ParsedRow],
        skip_duplicates: bool = True,
    ) -> ImportResult:
        """
        Persist the OK rows of a classified statement.

        Args:
            scope: Household and account/card receiving the transactions.
            rows: Classified rows (any status).
            skip_duplicates: Drop rows whose hash already exists in scope.

        Returns:
            ImportResult with imported, duplicate and failed counts.
        """
        result = ImportResult(
            ignored_income=sum(1 for row in rows if row.issue == RowIssue.INCOME_IGNORED)
        )
        ok_rows = [row for row in rows if row.status == RowStatus.OK and row.normalized]

        if not ok_rows:
            result.failed = sum(1 for row in rows if row.status == RowStatus.ERROR)
            result.errors.append(ImportErrorEntry(row=0, reason="No valid transactions to import"))
            logger.warning("import_nothing_to_do", household_id=scope.household_id,
                           failed=result.failed)
            return result

        dedup: Optional[Deduplicator] = None
        if skip_duplicates:
            dedup = Deduplicator.from_records(self.store.fetch_existing(scope))

        pending: List[ParsedRow] = []
        for row in ok_rows:
            if dedup is not None and dedup.is_duplicate(row.normalized.import_hash):
                result.duplicates += 1
                continue
            pending.append(row)

        for start in range(0, len(pending), self.batch_size):
            batch = pending[start:start + self.batch_size]
            try:
                self.store.insert_batch(scope, [row.normalized for row in batch])
            except PersistenceBatchError as e:
                result.failed += len(batch)
                result.errors.append(ImportErrorEntry(row=batch[0].row_index, reason=e.message))
                logger.error(
                    "import_batch_failed",
                    household_id=scope.household_id,
                    first_row=batch[0].row_index,
                    batch_size=len(batch),
                    error=e.message,
                )
                continue
            result.imported += len(batch)

        logger.info(
            "import_completed",
            household_id=scope.household_id,
            account_type=scope.account_type.value,
            imported=result.imported,
            duplicates=result.duplicates,
            failed=result.failed,
        )
        return result
