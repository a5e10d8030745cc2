"""
Tests for transaction table extraction.
"""
from datetime import datetime

import pytest

from statement_importer.engine.extraction import (
    extract_importable_table,
    find_header_row,
    find_useful_columns,
    header_score,
    is_likely_footer_row,
    is_valid_data_row,
    matrix_to_delimited_string,
)
from statement_importer.exceptions import EmptyMatrixError, HeaderNotFoundError

HEADER = ["Data", "Descrição", "Valor", "Saldo"]
DATA_ROWS = [
    ["10/01/2026", "Supermercado", "-150,00", "850,00"],
    ["11/01/2026", "Uber", "-25,50", "824,50"],
    ["12/01/2026", "Farmácia", "-40,00", "784,50"],
]


@pytest.fixture
def noisy_matrix():
    """Letterhead, metadata, blank, header, 3 data rows, blank, footer."""
    return [
        ["Banco Exemplo S.A."],
        ["Extrato de conta corrente"],
        ["Agência: 0001", "Conta: 12345-6"],
        [],
        list(HEADER),
        *[list(row) for row in DATA_ROWS],
        [],
        ["Total do Período", "", "-215,50", ""],
    ]


class TestHeaderDetection:
    """Tests for header scoring."""

    def test_header_score(self):
        """Test vocabulary rows score and data rows do not."""
        assert header_score(HEADER) > 0
        assert header_score(DATA_ROWS[0]) == 0
        assert header_score(["Data"]) == 0

    def test_date_column_bonus(self):
        """Test a leading date column wins over a later one."""
        assert header_score(["Data", "Histórico", "Valor"]) > header_score(
            ["Histórico", "Valor", "Documento"]
        )

    def test_find_header_row(self, noisy_matrix):
        """Test the header below the letterhead is found."""
        assert find_header_row(noisy_matrix) == 4


class TestRowPredicates:
    """Tests for data and footer row predicates."""

    def test_valid_data_rows(self):
        """Test date rows and description-plus-amount rows."""
        assert is_valid_data_row(DATA_ROWS[0])
        assert is_valid_data_row(["", "Tarifa mensal", "-12,90"])
        assert is_valid_data_row([datetime(2026, 1, 10), "Padaria", -12.5])
        assert not is_valid_data_row(["Banco Exemplo"])

    def test_footer_rows(self):
        """Test summary keywords and lone text cells."""
        assert is_likely_footer_row(["Total do Período", "", "-215,50"], 3)
        assert is_likely_footer_row(["Saldo final", "784,50"], 3)
        assert is_likely_footer_row(["Documento gerado em 12/01/2026"], 3)
        assert is_likely_footer_row(["Fim do extrato"], 3)
        assert not is_likely_footer_row(DATA_ROWS[0], 4)


class TestExtractImportableTable:
    """Tests for extract_importable_table."""

    def test_noisy_statement(self, noisy_matrix):
        """Test letterhead and footer are excluded."""
        table = extract_importable_table(noisy_matrix)

        assert table.header_row_index == 4
        assert table.data_start_row == 5
        assert table.data_end_row == 7
        assert len(table.rows) == 3
        assert table.columns == HEADER
        flattened = [str(cell) for row in table.rows for cell in row]
        assert "Banco Exemplo S.A." not in flattened
        assert "Total do Período" not in flattened

    def test_repeated_header_mid_stream(self):
        """Test a repeated header neither ends the block nor counts as data."""
        matrix = [
            list(HEADER),
            list(DATA_ROWS[0]),
            list(HEADER),
            list(DATA_ROWS[1]),
            list(DATA_ROWS[2]),
        ]
        table = extract_importable_table(matrix)

        assert len(table.rows) == 3
        assert all(row[0] != "Data" for row in table.rows)

    def test_blank_row_between_pages(self):
        """Test a blank row followed by more data does not end the block."""
        matrix = [list(HEADER), list(DATA_ROWS[0]), [], list(DATA_ROWS[1])]
        table = extract_importable_table(matrix)

        assert len(table.rows) == 2

    def test_opening_balance_skipped_and_closing_balance_ends(self):
        """Test balance lines around the transactions."""
        matrix = [
            list(HEADER),
            ["", "Saldo anterior", "", "1.000,00"],
            list(DATA_ROWS[0]),
            list(DATA_ROWS[1]),
            ["", "Saldo final", "", "824,50"],
            list(DATA_ROWS[2]),
        ]
        table = extract_importable_table(matrix)

        assert len(table.rows) == 2
        assert table.rows[0][1] == "Supermercado"

    def test_invalid_rows_end_the_block(self):
        """Test three consecutive non-data rows end the block."""
        matrix = [
            list(HEADER),
            list(DATA_ROWS[0]),
            ["Observação", "sem valor", "", ""],
            ["Outra linha", "qualquer", "", ""],
            ["Mais uma", "linha", "", ""],
            list(DATA_ROWS[1]),
        ]
        table = extract_importable_table(matrix)

        assert len(table.rows) == 1

    def test_useful_columns(self):
        """Test empty columns between data are dropped."""
        matrix = [
            ["Data", "Descrição", "", "Valor"],
            ["10/01/2026", "Padaria", "", "-12,50"],
        ]
        assert find_useful_columns(matrix, 0) == [0, 1, 3]

        table = extract_importable_table(matrix)
        assert table.column_indices == [0, 1, 3]
        assert table.rows[0] == ["10/01/2026", "Padaria", "-12,50"]

    def test_matrix_property(self):
        """Test header followed by rows."""
        table = extract_importable_table([list(HEADER), list(DATA_ROWS[0])])

        assert table.matrix == [HEADER, DATA_ROWS[0]]

    def test_header_not_found(self):
        """Test a matrix without header vocabulary."""
        with pytest.raises(HeaderNotFoundError) as exc_info:
            extract_importable_table([["foo", "bar"], ["1", "2"]])

        assert exc_info.value.error_code == "IMP-201"

    @pytest.mark.parametrize("matrix", [
        [],
        [list(HEADER)],
        [list(HEADER), [], []],
    ])
    def test_empty_matrix(self, matrix):
        """Test matrices without data rows."""
        with pytest.raises(EmptyMatrixError):
            extract_importable_table(matrix)


class TestSerialization:
    """Tests for matrix_to_delimited_string."""

    def test_quoting(self):
        """Test cells containing the delimiter or quotes are quoted."""
        matrix = [["a;b", "c"], ["d", 'e"f']]

        assert matrix_to_delimited_string(matrix) == '"a;b";c\nd;"e""f"'

    def test_native_cells(self):
        """Test dates and floats are rendered as text."""
        matrix = [["Data", "Valor"], [datetime(2026, 1, 10), -150.0]]

        assert matrix_to_delimited_string(matrix, ",") == "Data,Valor\n2026-01-10,-150"
