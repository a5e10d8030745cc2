"""
Standard CSV template.

Files written in the importer's own template skip column inference
entirely. The module also produces the downloadable template and converts
classified statements back into the template format.
"""

import csv
import io
from typing import Iterable, List, Optional

from statement_importer.engine.models import (
    AccountType,
    ColumnMapping,
    CSVAnalysis,
    InternalField,
    ParsedRow,
    RowStatus,
)

TEMPLATE_HEADER = "data,descricao,tipo,valor,categoria,conta"
TEMPLATE_HEADER_CREDIT_CARD = "data,descricao,tipo,valor,categoria"
TEMPLATE_HEADER_PREFIXES = ("data,descricao,tipo,valor", "data,descrição,tipo,valor")
EXPENSE_TYPE = "EXPENSE"

_COMMON_INSTRUCTIONS = [
    "#",
    "# FIELDS:",
    "#   data: YYYY-MM-DD (e.g. 2026-01-15) or DD/MM/YYYY",
    "#   descricao: transaction description",
    "#   tipo: EXPENSE (only expenses are imported)",
    "#   categoria: food, transport, bills, leisure, health, education, shopping, other",
]

TEMPLATE_INSTRUCTIONS = {
    AccountType.BANK_ACCOUNT: [
        "# STANDARD IMPORT TEMPLATE (checking account)",
        *_COMMON_INSTRUCTIONS,
        "#   valor: expense value, negative (e.g. -150.50); positive values are ignored as income",
        "#   conta: account name (optional)",
        "#",
        "# Lines starting with # are ignored",
    ],
    AccountType.CREDIT_CARD: [
        "# STANDARD IMPORT TEMPLATE (credit card)",
        *_COMMON_INSTRUCTIONS,
        "#   valor: purchase value (e.g. 150.50); values with the opposite sign are treated as payments",
        "#",
        "# Lines starting with # are ignored",
    ],
}

TEMPLATE_EXAMPLES = {
    AccountType.BANK_ACCOUNT: [
        "2026-01-16,Supermercado Pão de Açúcar,EXPENSE,-350.50,food,Conta Corrente",
        "2026-01-17,Uber - corrida trabalho,EXPENSE,-25.90,transport,Conta Corrente",
    ],
    AccountType.CREDIT_CARD: [
        "2026-01-16,Supermercado Pão de Açúcar,EXPENSE,350.50,food",
        "2026-01-17,Uber - corrida trabalho,EXPENSE,25.90,transport",
    ],
}


def strip_comments(content: str) -> str:
    """Drop blank lines and ``#`` comment lines."""
    return "\n".join(
        line for line in content.splitlines()
        if line.strip() and not line.lstrip().startswith("#")
    )


def is_standard_format(content: str) -> bool:
    """Whether content uses the standard template header."""
    lines = strip_comments(content).splitlines()
    if not lines:
        return False
    header = "".join(lines[0].lower().split())
    return (
        header in (TEMPLATE_HEADER, TEMPLATE_HEADER_CREDIT_CARD)
        or any(header.startswith(prefix) for prefix in TEMPLATE_HEADER_PREFIXES)
    )


def standard_analysis() -> CSVAnalysis:
    """Fixed column analysis of the standard template."""
    labels = TEMPLATE_HEADER.split(",")
    fields = [
        (0, InternalField.DATE),
        (1, InternalField.DESCRIPTION),
        (3, InternalField.AMOUNT),
        (4, InternalField.CATEGORY),
    ]
    return CSVAnalysis(
        separator=",",
        has_header=True,
        has_in_out_columns=False,
        column_mappings=[
            ColumnMapping(
                source_column=labels[index],
                source_index=index,
                internal_field=internal_field,
                confidence=1.0,
            )
            for index, internal_field in fields
        ],
        date_format_hint=None,
        headers=labels,
        source="standard_template",
    )


def generate_csv_template(account_type: AccountType = AccountType.BANK_ACCOUNT) -> str:
    """Downloadable template with instructions and example rows."""
    account_type = AccountType(account_type)
    header = (
        TEMPLATE_HEADER_CREDIT_CARD if account_type == AccountType.CREDIT_CARD
        else TEMPLATE_HEADER
    )
    return "\n".join(
        TEMPLATE_INSTRUCTIONS[account_type] + [header] + TEMPLATE_EXAMPLES[account_type]
    )


def generate_standard_csv(rows: Iterable[ParsedRow], account_name: Optional[str] = None) -> str:
    """
    Re-emit the OK rows of a classified statement in the template format.

    Amounts keep their (negative) expense sign so the output imports back
    unchanged into either account type.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(TEMPLATE_HEADER.split(","))
    for row in rows:
        if row.status != RowStatus.OK or row.normalized is None:
            continue
        tx = row.normalized
        writer.writerow([
            tx.transaction_date.isoformat(),
            tx.description,
            EXPENSE_TYPE,
            f"{tx.amount:.2f}",
            tx.category,
            account_name or "",
        ])
    return buffer.getvalue().rstrip("\n")


def template_rows(content: str) -> List[List[str]]:
    """Rows of a standard template file, comments removed."""
    reader = csv.reader(io.StringIO(strip_comments(content)))
    return [[cell.strip() for cell in row] for row in reader if any(c.strip() for c in row)]
