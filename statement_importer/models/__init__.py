"""Models package."""
from statement_importer.models.transaction import ImportedTransaction

__all__ = ["ImportedTransaction"]
