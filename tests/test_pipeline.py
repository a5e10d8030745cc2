"""
End-to-end tests for statement parsing.
"""
from datetime import date, datetime
from decimal import Decimal

import pytest

from statement_importer.engine.mapping import AnalyzerResult
from statement_importer.engine.models import (
    AccountType,
    ColumnMapping,
    CSVAnalysis,
    InternalField,
    RowStatus,
    SupportedFormat,
)
from statement_importer.engine.pipeline import parse_statement
from statement_importer.engine.standard_template import generate_csv_template
from statement_importer.exceptions import (
    EmptyOrUnreadableFileError,
    HeaderNotFoundError,
    UnsupportedFormatError,
)


class StubRemote:
    """Remote analyzer returning a fixed analysis."""

    def __init__(self, result: AnalyzerResult):
        self.result = result
        self.calls = 0

    async def analyze(self, content: str) -> AnalyzerResult:
        self.calls += 1
        return self.result


class TestTextStatements:
    """Tests for .txt and .csv statements."""

    @pytest.mark.asyncio
    async def test_checking_account_txt(self, sample_txt_statement):
        """Test a semicolon statement with Brazilian amounts."""
        result = await parse_statement(
            "extrato.txt", sample_txt_statement.encode("utf-8"), AccountType.BANK_ACCOUNT
        )

        assert result.format == SupportedFormat.TXT
        assert result.analysis.source == "local"
        assert result.extracted is not None
        ok = result.classification.ok_rows
        assert len(ok) == 2
        assert ok[0].normalized.amount == Decimal("-150.00")
        assert ok[0].normalized.transaction_date == date(2026, 1, 10)
        assert ok[0].normalized.category == "food"
        assert ok[1].normalized.amount == Decimal("-25.50")
        assert ok[1].normalized.transaction_date == date(2026, 1, 11)
        assert result.summary.total_expense == Decimal("175.50")

    @pytest.mark.asyncio
    async def test_latin1_csv(self):
        """Test ISO-8859-1 content is decoded."""
        content = "Data;Descrição;Valor\n10/01/2026;Farmácia;-40,00\n"

        result = await parse_statement(
            "extrato.csv", content.encode("latin-1"), AccountType.BANK_ACCOUNT
        )

        assert result.classification.ok_rows[0].normalized.description == "Farmácia"

    @pytest.mark.asyncio
    async def test_headerless_csv_falls_back(self):
        """Test text files without a header are analyzed as a whole."""
        content = (
            "10/01/2026;Supermercado;-150,00\n"
            "11/01/2026;Uber;-25,50\n"
            "12/01/2026;Padaria;-8,00\n"
        )

        result = await parse_statement("sem_cabecalho.csv", content.encode(), "bank_account")

        assert result.extracted is None
        assert not result.analysis.has_header
        assert result.summary.ok == 3
        assert [row.row_index for row in result.classification.rows] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_standard_template_fast_path(self):
        """Test the standard template skips column analysis."""
        remote = StubRemote(AnalyzerResult.failure("unused"))
        data = generate_csv_template(AccountType.BANK_ACCOUNT).encode("utf-8")

        result = await parse_statement(
            "modelo.csv", data, AccountType.BANK_ACCOUNT, remote=remote
        )

        assert result.analysis.source == "standard_template"
        assert remote.calls == 0
        assert result.summary.ok == 2

    @pytest.mark.asyncio
    async def test_remote_analysis_used(self, sample_txt_statement):
        """Test a successful remote analysis replaces the local one."""
        analysis = CSVAnalysis(
            separator=";",
            has_header=True,
            has_in_out_columns=False,
            column_mappings=[
                ColumnMapping("Data", 0, InternalField.DATE, 0.99),
                ColumnMapping("Descrição", 1, InternalField.DESCRIPTION, 0.99),
                ColumnMapping("Valor", 2, InternalField.AMOUNT, 0.99),
            ],
            date_format_hint="DD/MM/YYYY",
            headers=["Data", "Descrição", "Valor"],
            source="remote",
        )
        remote = StubRemote(AnalyzerResult.success(analysis))

        result = await parse_statement(
            "extrato.txt", sample_txt_statement.encode(), AccountType.BANK_ACCOUNT, remote=remote
        )

        assert remote.calls == 1
        assert result.analysis.source == "remote"
        assert result.summary.ok == 2

    @pytest.mark.asyncio
    async def test_remote_failure_falls_back(self, sample_txt_statement):
        """Test a failed remote analysis is invisible to the caller."""
        remote = StubRemote(AnalyzerResult.failure("timeout"))

        result = await parse_statement(
            "extrato.txt", sample_txt_statement.encode(), AccountType.BANK_ACCOUNT, remote=remote
        )

        assert result.analysis.source == "local"
        assert result.summary.ok == 2


class TestSpreadsheetStatements:
    """Tests for .xlsx statements."""

    @pytest.mark.asyncio
    async def test_xlsx_with_letterhead(self, make_xlsx):
        """Test letterhead and footer rows around native cells."""
        data = make_xlsx([
            ["Banco Exemplo"],
            ["Agência: 0001", "Conta: 12345-6"],
            ["Data", "Descrição", "Valor"],
            [datetime(2026, 1, 10), "Supermercado", -150.0],
            [datetime(2026, 1, 11), "Uber", -25.5],
            ["Total", None, -175.5],
        ])

        result = await parse_statement("extrato.xlsx", data, AccountType.BANK_ACCOUNT)

        assert result.extracted.header_row_index == 2
        ok = result.classification.ok_rows
        assert len(ok) == 2
        assert ok[0].normalized.transaction_date == date(2026, 1, 10)
        assert ok[1].normalized.amount == Decimal("-25.5")

    @pytest.mark.asyncio
    async def test_credit_card_xlsx(self, make_xlsx):
        """Test positive card purchases become negative expenses."""
        data = make_xlsx([
            ["Data", "Descrição", "Valor"],
            ["10/01/2026", "Restaurante", 80.0],
            ["11/01/2026", "Livraria", 45.9],
            ["12/01/2026", "Cinema", 30.0],
        ])

        result = await parse_statement("fatura.xlsx", data, AccountType.CREDIT_CARD)

        amounts = [row.normalized.amount for row in result.classification.ok_rows]
        assert amounts == [Decimal("-80"), Decimal("-45.9"), Decimal("-30")]
        assert result.classification.polarity.purchases_are_positive

    @pytest.mark.asyncio
    async def test_legacy_xls_in_out(self, make_xls):
        """Test a legacy .xls export with dash placeholders."""
        data = make_xls([
            ["Data", "Descrição", "Entrada", "Saída"],
            [date(2026, 1, 10), "Supermercado", "-", 150.5],
            [date(2026, 1, 11), "Salário", 2500, "-"],
        ])

        result = await parse_statement("extrato.xls", data, AccountType.BANK_ACCOUNT)

        assert result.format == SupportedFormat.XLS
        ok = result.classification.ok_rows
        assert len(ok) == 1
        assert ok[0].normalized.amount == Decimal("-150.5")
        assert ok[0].normalized.transaction_date == date(2026, 1, 10)
        assert result.summary.ignored_income == 1

    @pytest.mark.asyncio
    async def test_headerless_xlsx_raises(self, make_xlsx):
        """Test spreadsheets without a header are rejected."""
        data = make_xlsx([
            [datetime(2026, 1, 10), "Supermercado", -150.0],
            [datetime(2026, 1, 11), "Uber", -25.5],
        ])

        with pytest.raises(HeaderNotFoundError):
            await parse_statement("extrato.xlsx", data, AccountType.BANK_ACCOUNT)


class TestFileErrors:
    """Tests for file-level failures."""

    @pytest.mark.asyncio
    async def test_unsupported_format(self):
        """Test PDF uploads are rejected."""
        with pytest.raises(UnsupportedFormatError):
            await parse_statement("extrato.pdf", b"%PDF-1.4", AccountType.BANK_ACCOUNT)

    @pytest.mark.asyncio
    async def test_empty_file(self):
        """Test empty uploads are rejected."""
        with pytest.raises(EmptyOrUnreadableFileError):
            await parse_statement("extrato.csv", b"", AccountType.BANK_ACCOUNT)
