"""
SQLAlchemy-backed transaction store.

Implements the engine's TransactionStore on top of the
``imported_transactions`` table.
"""
from datetime import date
from decimal import Decimal
from typing import List, Sequence, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from statement_importer.engine.models import ImportScope, NormalizedTransaction
from statement_importer.engine.orchestrator import TransactionStore
from statement_importer.exceptions import PersistenceBatchError
from statement_importer.models.transaction import ImportedTransaction

logger = structlog.get_logger(__name__)


class SqlAlchemyTransactionStore(TransactionStore):
    """Stores imported transactions with a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def _scoped_query(self, scope: ImportScope):
        query = self.db.query(
            ImportedTransaction.transaction_date,
            ImportedTransaction.amount,
            ImportedTransaction.description,
        ).filter(ImportedTransaction.household_id == scope.household_id)
        if scope.account_id:
            query = query.filter(ImportedTransaction.account_id == scope.account_id)
        if scope.credit_card_id:
            query = query.filter(ImportedTransaction.credit_card_id == scope.credit_card_id)
        return query

    def fetch_existing(self, scope: ImportScope) -> List[Tuple[date, Decimal, str]]:
        existing = [
            (row.transaction_date, row.amount, row.description)
            for row in self._scoped_query(scope).all()
        ]
        logger.debug("existing_transactions_loaded", household_id=scope.household_id,
                     count=len(existing))
        return existing

    def insert_batch(self, scope: ImportScope, records: Sequence[NormalizedTransaction]) -> int:
        try:
            self.db.add_all([
                ImportedTransaction(
                    household_id=scope.household_id,
                    account_id=scope.account_id,
                    credit_card_id=scope.credit_card_id,
                    description=record.description,
                    amount=record.amount,
                    category=record.category,
                    payment_method=record.payment_method,
                    transaction_date=record.transaction_date,
                    notes=record.notes,
                    import_hash=record.import_hash,
                    source_filename=scope.original_filename,
                )
                for record in records
            ])
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceBatchError(len(records), type(e).__name__) from e
        return len(records)
