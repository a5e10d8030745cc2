"""
Imported transaction model.

Stores the expenses produced by a statement import. Households, accounts and
cards live in another service; only their identifiers are kept here.
"""
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Column, Date, DateTime, Index, Numeric, String, Text

from statement_importer.database import Base


class ImportedTransaction(Base):
    """
    SQLAlchemy model for an imported expense.

    Attributes:
        id: Unique identifier (UUID string).
        household_id: Owning household.
        account_id: Checking account (bank statements only).
        credit_card_id: Credit card (card statements only).
        description: Transaction description (max 255 chars).
        amount: Signed amount, always negative for expenses.
        category: Inferred or mapped category.
        payment_method: pix, boleto, card or cash.
        transaction_date: Calendar date of the transaction.
        notes: Optional notes (max 500 chars).
        import_hash: Fingerprint used to detect re-imports.
        source_filename: Name of the uploaded statement.
        created_at: Timestamp of the import.
    """

    __tablename__ = "imported_transactions"
    __table_args__ = (
        Index("ix_imported_transactions_scope", "household_id", "account_id", "credit_card_id"),
    )

    id: str = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    household_id: str = Column(String(64), nullable=False, index=True)
    account_id: Optional[str] = Column(String(64), nullable=True)
    credit_card_id: Optional[str] = Column(String(64), nullable=True)
    description: str = Column(String(255), nullable=False)
    amount: Decimal = Column(Numeric(14, 2), nullable=False)
    category: str = Column(String(32), nullable=False, default="other")
    payment_method: str = Column(String(16), nullable=False, default="pix")
    transaction_date: date = Column(Date, nullable=False)
    notes: Optional[str] = Column(Text, nullable=True)
    import_hash: str = Column(String(64), nullable=False, index=True)
    source_filename: Optional[str] = Column(String(255), nullable=True)
    created_at: datetime = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ImportedTransaction {self.transaction_date} {self.amount} "
            f"{self.description[:30]!r}>"
        )
