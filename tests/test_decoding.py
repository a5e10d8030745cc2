"""
Tests for tabular decoding of statement files.
"""
from datetime import date, datetime

import pytest

from statement_importer.engine.decoding import (
    DecoderRegistry,
    DelimitedTextDecoder,
    TabularDecoder,
    count_outside_quotes,
    decode_file,
    detect_delimiter,
    detect_supported_format,
    read_text,
)
from statement_importer.engine.models import SupportedFormat
from statement_importer.engine.spreadsheets import (
    BiffXlsDecoder,
    XlsDecoder,
    XlsxDecoder,
    sniff_xls,
)
from statement_importer.exceptions import EmptyOrUnreadableFileError, UnsupportedFormatError


class TestFormatDetection:
    """Tests for detect_supported_format."""

    def test_supported_extensions(self):
        """Test every accepted extension, case-insensitively."""
        assert detect_supported_format("extrato.csv") == SupportedFormat.CSV
        assert detect_supported_format("extrato.TXT") == SupportedFormat.TXT
        assert detect_supported_format("fatura.xls") == SupportedFormat.XLS
        assert detect_supported_format("EXTRATO.XLSX") == SupportedFormat.XLSX

    def test_pdf_rejected_with_allowed_list(self):
        """Test the error lists the allowed extensions."""
        with pytest.raises(UnsupportedFormatError) as exc_info:
            detect_supported_format("extrato.pdf")

        assert exc_info.value.error_code == "IMP-101"
        assert ".csv, .txt, .xls, .xlsx" in exc_info.value.message
        assert exc_info.value.details["filename"] == "extrato.pdf"

    def test_missing_extension_rejected(self):
        """Test a filename without extension."""
        with pytest.raises(UnsupportedFormatError):
            detect_supported_format("extrato")


class TestTextDecoding:
    """Tests for CSV and TXT decoding."""

    def test_read_text_falls_back_to_latin1(self):
        """Test ISO-8859-1 statements keep their accents."""
        data = "Padaria São João".encode("latin-1")
        assert read_text(data) == "Padaria São João"

    def test_read_text_strips_bom(self):
        """Test UTF-8 byte order mark removal."""
        assert read_text(b"\xef\xbb\xbfData;Valor") == "Data;Valor"

    def test_detect_delimiter(self):
        """Test delimiter detection with consistent counts."""
        assert detect_delimiter(["a;b;c", "1;2;3"]) == ";"
        assert detect_delimiter(["a,b", "1,2"]) == ","
        assert detect_delimiter(["a\tb", "1\t2"]) == "\t"
        assert detect_delimiter(["a|b", "1|2"]) == "|"

    def test_detect_delimiter_ignores_quoted(self):
        """Test delimiters inside quotes are not counted."""
        assert detect_delimiter(['a;b;c', '1;"x;y";3']) == ";"

    def test_count_outside_quotes(self):
        """Test quoted separators are not counted."""
        assert count_outside_quotes('a;"b;c";d', ";") == 2
        assert count_outside_quotes("a;b", ",") == 0

    def test_detect_delimiter_fixed_width(self):
        """Test text without delimiters."""
        assert detect_delimiter(["Data    Valor", "10/01/2026    -12.50"]) is None

    def test_semicolon_statement(self):
        """Test a semicolon statement with a quoted description."""
        data = 'Data;Descrição;Valor\n10/01/2026;"Loja; Centro";-10,00\n'.encode("utf-8")
        matrix = DelimitedTextDecoder().decode(data)

        assert matrix[0] == ["Data", "Descrição", "Valor"]
        assert matrix[1] == ["10/01/2026", "Loja; Centro", "-10,00"]

    def test_fixed_width_statement(self):
        """Test columns separated by runs of spaces."""
        data = b"Data        Descricao        Valor\n10/01/2026  Padaria Central  -12.50\n"
        matrix = DelimitedTextDecoder().decode(data)

        assert matrix[0] == ["Data", "Descricao", "Valor"]
        assert matrix[1] == ["10/01/2026", "Padaria Central", "-12.50"]

    @pytest.mark.parametrize("data", [b"", b"   \n\n"])
    def test_empty_text_rejected(self, data):
        """Test empty content raises."""
        with pytest.raises(EmptyOrUnreadableFileError):
            DelimitedTextDecoder().decode(data)


class TestSpreadsheetDecoding:
    """Tests for xlsx, xls and HTML-disguised xls decoding."""

    def test_xlsx_first_sheet(self, make_xlsx):
        """Test native cell types are preserved."""
        data = make_xlsx([
            ["Data", "Descrição", "Valor"],
            [datetime(2026, 1, 10), "Supermercado", -150.5],
        ])
        matrix = XlsxDecoder().decode(data)

        assert matrix[0] == ["Data", "Descrição", "Valor"]
        assert matrix[1][0] == datetime(2026, 1, 10)
        assert matrix[1][1] == "Supermercado"
        assert matrix[1][2] == -150.5

    def test_xlsx_trailing_empty_cells_trimmed(self, make_xlsx):
        """Test short rows lose their trailing empty cells."""
        data = make_xlsx([["Banco Exemplo"], ["Data", "Descrição", "Valor"]])
        matrix = XlsxDecoder().decode(data)

        assert matrix[0] == ["Banco Exemplo"]

    def test_corrupt_xlsx(self):
        """Test bytes that are not a workbook."""
        with pytest.raises(EmptyOrUnreadableFileError):
            XlsxDecoder().decode(b"not a zip archive")

    def test_biff_workbook(self, make_xls):
        """Test a legacy Excel 97 workbook with dates, numbers and blanks."""
        data = make_xls([
            ["Data", "Descrição", "Entrada", "Saída"],
            [date(2026, 1, 10), "Supermercado", None, 150.5],
            [date(2026, 1, 11), "Salário", 2500, None],
        ])

        assert sniff_xls(data) == "biff"
        assert BiffXlsDecoder().decode(data) == [
            ["Data", "Descrição", "Entrada", "Saída"],
            [datetime(2026, 1, 10), "Supermercado", "", 150.5],
            [datetime(2026, 1, 11), "Salário", 2500.0],
        ]

    def test_biff_through_registry(self, make_xls):
        """Test .xls uploads reach the BIFF decoder."""
        data = make_xls([["Data", "Valor"], [date(2026, 1, 10), -12.5]])
        decoded = decode_file("extrato.xls", data)

        assert decoded.format == SupportedFormat.XLS
        assert decoded.matrix[1] == [datetime(2026, 1, 10), -12.5]

    def test_corrupt_biff(self):
        """Test garbage in a legacy .xls."""
        with pytest.raises(EmptyOrUnreadableFileError):
            BiffXlsDecoder().decode(b"this is not a spreadsheet")

    def test_sniff_xls(self):
        """Test classification of .xls payloads."""
        assert sniff_xls(b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 32) == "biff"
        assert sniff_xls(b"PK\x03\x04rest") == "xlsx"
        assert sniff_xls(b"<html><body><table></table></body></html>") == "html"
        assert sniff_xls(b"  <table><tr><td>x</td></tr></table>") == "html"
        assert sniff_xls(b"random bytes") == "biff"

    def test_html_disguised_xls(self):
        """Test the largest HTML table is decoded with colspans expanded."""
        data = (
            "<html><body>"
            "<table><tr><td>Banco Exemplo</td></tr></table>"
            "<table>"
            "<tr><th>Data</th><th>Histórico</th><th>Valor</th></tr>"
            "<tr><td>10/01/2026</td><td>Padaria</td><td>-12,50</td></tr>"
            "<tr><td colspan='2'>Total</td><td>-12,50</td></tr>"
            "</table></body></html>"
        ).encode("utf-8")
        matrix = XlsDecoder().decode(data)

        assert matrix[0] == ["Data", "Histórico", "Valor"]
        assert matrix[1] == ["10/01/2026", "Padaria", "-12,50"]
        assert matrix[2] == ["Total", "", "-12,50"]

    def test_xlsx_saved_as_xls(self, make_xlsx):
        """Test an OOXML workbook with the wrong extension."""
        data = make_xlsx([["Data", "Valor"], ["10/01/2026", 5]])
        matrix = XlsDecoder().decode(data)

        assert matrix[0] == ["Data", "Valor"]


class TestDecodeFile:
    """Tests for decode_file and the decoder registry."""

    def test_decode_csv(self, sample_txt_statement):
        """Test the default registry decodes text."""
        decoded = decode_file("extrato.csv", sample_txt_statement.encode("utf-8"))

        assert decoded.format == SupportedFormat.CSV
        assert len(decoded.matrix) == 3

    def test_empty_file(self):
        """Test empty uploads are rejected before decoding."""
        with pytest.raises(EmptyOrUnreadableFileError):
            decode_file("extrato.csv", b"")

    def test_injected_decoder(self):
        """Test a custom decoder strategy is used."""

        class StaticDecoder(TabularDecoder):
            def decode(self, data):
                return [["Data", "Valor"], ["10/01/2026", "-1,00"]]

        registry = DecoderRegistry({SupportedFormat.XLSX: StaticDecoder()})
        decoded = decode_file("extrato.xlsx", b"anything", registry)

        assert decoded.matrix[1] == ["10/01/2026", "-1,00"]

    def test_registry_without_decoder(self):
        """Test a format without a registered decoder."""
        registry = DecoderRegistry({})
        with pytest.raises(UnsupportedFormatError):
            registry.decoder_for(SupportedFormat.CSV)
