"""
Statement importer.

Imports bank account and credit card statements (CSV, TXT, XLS, XLSX) as
household expenses.
"""

__version__ = "1.0.0"
