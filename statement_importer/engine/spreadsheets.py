"""
Spreadsheet decoders.

Reads the first sheet of .xlsx (openpyxl), legacy BIFF .xls (xlrd) and the
HTML tables some banks export with an .xls extension (BeautifulSoup).
Native cell types are preserved: numbers stay numbers and date cells become
``datetime`` values.
"""

import io
import zipfile
from typing import List

import structlog
import xlrd
from xlrd.compdoc import CompDocError
from xlrd.xldate import XLDateError, xldate_as_datetime
from bs4 import BeautifulSoup
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from statement_importer.engine.decoding import TabularDecoder, read_text
from statement_importer.engine.models import CellValue, RawMatrix
from statement_importer.exceptions import EmptyOrUnreadableFileError

logger = structlog.get_logger(__name__)

SNIFF_BYTES = 512
OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
ZIP_MAGIC = b"PK\x03\x04"


def _trim_trailing_empty(rows: List[List[CellValue]]) -> RawMatrix:
    """Drop trailing empty cells and trailing empty rows."""
    trimmed = []
    for row in rows:
        cells = list(row)
        while cells and (cells[-1] is None or cells[-1] == ""):
            cells.pop()
        trimmed.append([cell if cell is not None else "" for cell in cells])
    while trimmed and not trimmed[-1]:
        trimmed.pop()
    return trimmed


class XlsxDecoder(TabularDecoder):
    """OOXML workbooks, first sheet only, cached formula values."""

    def decode(self, data: bytes) -> RawMatrix:
        try:
            wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
            raise EmptyOrUnreadableFileError(
                "Could not read .xlsx workbook", details={"reason": str(e)}
            ) from e

        try:
            if not wb.worksheets:
                raise EmptyOrUnreadableFileError("Workbook has no sheets")
            ws = wb.worksheets[0]
            matrix = _trim_trailing_empty(ws.iter_rows(values_only=True))
        finally:
            wb.close()

        if not matrix:
            raise EmptyOrUnreadableFileError("First sheet is empty")

        logger.debug("xlsx_decoded", rows=len(matrix))
        return matrix


class BiffXlsDecoder(TabularDecoder):
    """Legacy binary .xls workbooks."""

    def decode(self, data: bytes) -> RawMatrix:
        try:
            book = xlrd.open_workbook(file_contents=data)
        except (xlrd.XLRDError, CompDocError, ValueError, EOFError) as e:
            raise EmptyOrUnreadableFileError(
                "Could not read .xls workbook", details={"reason": str(e)}
            ) from e

        if book.nsheets == 0:
            raise EmptyOrUnreadableFileError("Workbook has no sheets")

        sheet = book.sheet_by_index(0)
        rows = []
        for row_index in range(sheet.nrows):
            row = []
            for cell in sheet.row(row_index):
                if cell.ctype == xlrd.XL_CELL_DATE:
                    try:
                        row.append(xldate_as_datetime(cell.value, book.datemode))
                    except XLDateError:
                        row.append(cell.value)
                elif cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
                    row.append("")
                elif cell.ctype == xlrd.XL_CELL_ERROR:
                    row.append("")
                else:
                    row.append(cell.value)
            rows.append(row)

        matrix = _trim_trailing_empty(rows)
        if not matrix:
            raise EmptyOrUnreadableFileError("First sheet is empty")

        logger.debug("biff_xls_decoded", rows=len(matrix))
        return matrix


class HtmlTableDecoder(TabularDecoder):
    """HTML exports saved with an .xls extension. Uses the largest table."""

    def decode(self, data: bytes) -> RawMatrix:
        soup = BeautifulSoup(read_text(data), "html.parser")
        tables = soup.find_all("table")
        if not tables:
            raise EmptyOrUnreadableFileError("HTML file contains no table")

        table = max(tables, key=lambda t: len(t.find_all("tr")))
        rows = []
        for tr in table.find_all("tr"):
            row = []
            for cell in tr.find_all(["td", "th"]):
                row.append(cell.get_text(" ", strip=True))
                try:
                    span = int(cell.get("colspan", 1))
                except (TypeError, ValueError):
                    span = 1
                row.extend([""] * max(0, span - 1))
            rows.append(row)

        matrix = _trim_trailing_empty(rows)
        if not matrix:
            raise EmptyOrUnreadableFileError("HTML table is empty")

        logger.debug("html_table_decoded", rows=len(matrix), tables=len(tables))
        return matrix


def sniff_xls(data: bytes) -> str:
    """
    Classify the contents of an .xls upload.

    Returns:
        ``"html"``, ``"xlsx"`` or ``"biff"``.
    """
    head = data[:SNIFF_BYTES]
    if head.startswith(OLE2_MAGIC):
        return "biff"
    if head.startswith(ZIP_MAGIC):
        return "xlsx"
    lowered = head.decode("latin-1").lower().lstrip()
    if lowered.startswith("<html") or lowered.startswith("<!doctype") or "<html" in lowered:
        return "html"
    if "<table" in lowered and "</table>" in data.decode("latin-1").lower():
        return "html"
    return "biff"


class XlsDecoder(TabularDecoder):
    """.xls uploads: BIFF, HTML-disguised or mislabelled OOXML."""

    def __init__(self):
        self.biff = BiffXlsDecoder()
        self.html = HtmlTableDecoder()
        self.xlsx = XlsxDecoder()

    def decode(self, data: bytes) -> RawMatrix:
        kind = sniff_xls(data)
        logger.info("xls_sniffed", kind=kind)
        if kind == "html":
            return self.html.decode(data)
        if kind == "xlsx":
            return self.xlsx.decode(data)
        return self.biff.decode(data)
