"""
Row classification for statement imports.

Decides, for every row of a statement, whether it is an importable expense
(OK), something to ignore (SKIPPED) or a row the user has to fix (ERROR).

Classification is two-phase: single-amount credit card statements need the
dominant sign of the whole file before any row can be judged, so
``classify_rows`` always receives the full row set.
"""

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

import structlog

from statement_importer.engine.categorization import (
    infer_payment_method,
    is_invoice_or_card,
    parse_explicit_transaction_type,
    resolve_category,
)
from statement_importer.engine.dedup import import_hash
from statement_importer.engine.models import (
    INFLOW_FIELDS,
    OUTFLOW_FIELDS,
    AccountType,
    ClassificationResult,
    CSVAnalysis,
    InternalField,
    NormalizedTransaction,
    ParsedRow,
    PolarityDecision,
    RowIssue,
    RowStatus,
)
from statement_importer.engine.normalization import (
    is_amount_like,
    is_date_like,
    normalize_text,
    parse_date,
    parse_localized_number,
)

logger = structlog.get_logger(__name__)

DEFAULT_DESCRIPTION = "Imported transaction"
MAX_DESCRIPTION_LENGTH = 255
MAX_NOTES_LENGTH = 500
POLARITY_SAMPLE_ROWS = 200
POLARITY_AMBIGUITY_THRESHOLD = 0.6

NON_TRANSACTION_PATTERNS = tuple(re.compile(p) for p in (
    r"^agencia\s*[:/-]",
    r"^conta\s*[:/-]",
    r"^extrato\s+(gerado|de|para)",
    r"^periodo\s*[:/-]",
    r"^saldo\s+(anterior|inicial|final)",
    r"^data\s+de\s+(emissao|geracao)",
    r"^cliente\s*[:/-]",
    r"^cpf\s*[:/-]",
    r"^cnpj\s*[:/-]",
    r"^total\s+(do\s+periodo|geral)",
    r"^(resumo|totais|consolidado)",
))

CARD_SUMMARY_PATTERNS = tuple(re.compile(p) for p in (
    r"^total",
    r"^pagamento",
    r"^saldo",
    r"^encargos",
    r"^juros",
    r"^anuidade",
    r"^resumo",
    r"^parcelamento",
    r"^iof",
    r"^multa",
    r"^desconto",
    r"^ajuste",
    r"^estorno",
    r"^fatura\s+(anterior|atual|fechada)",
    r"^limite",
    r"^disponivel",
))

HEADER_CELL_PATTERNS = tuple(re.compile(p) for p in (
    r"^data$",
    r"^descricao$",
    r"^valor(\s*\(?\s*r?\$?\s*\)?)?$",
    r"^entrada\s*\(?\s*r?\$?\s*\)?$",
    r"^saida\s*\(?\s*r?\$?\s*\)?$",
    r"^saldo\s*\(?\s*r?\$?\s*\)?$",
    r"^historico$",
    r"^lancamento$",
    r"^categoria$",
))


@dataclass
class _Amount:
    """Outcome of resolving the amount cells of a row."""
    value: Optional[Decimal] = None
    issue: Optional[RowIssue] = None
    reason: str = ""
    warning: Optional[str] = None


def _cell(cells: Sequence[str], index: Optional[int]) -> str:
    if index is None or index >= len(cells):
        return ""
    return (cells[index] or "").strip()


def _amount_cell(cells: Sequence[str], index: Optional[int]) -> str:
    """Cell text, empty for placeholders without digits ("-", "--")."""
    text = _cell(cells, index)
    return text if any(ch.isdigit() for ch in text) else ""


def is_repeated_header(cells: Sequence[str]) -> bool:
    non_empty = [normalize_text(cell) for cell in cells if cell and cell.strip()]
    if not non_empty:
        return False
    matches = sum(1 for text in non_empty if any(p.match(text) for p in HEADER_CELL_PATTERNS))
    return matches >= 2 and matches >= len(non_empty) / 2


def prefilter_row(cells: Sequence[str], account_type: AccountType) -> Optional[Tuple[RowIssue, str]]:
    """
    Detect rows that are not transactions at all.

    Returns:
        ``(issue, reason)`` for rows to skip, None for candidate transactions.
    """
    non_empty = [cell.strip() for cell in cells if cell and cell.strip()]
    if not non_empty:
        return RowIssue.BLANK_ROW, "Blank row"

    # Matched against the whole line, which starts with the date on real rows
    joined = normalize_text(" ".join(non_empty))
    if any(p.match(joined) for p in NON_TRANSACTION_PATTERNS):
        return RowIssue.STATEMENT_BOILERPLATE, "Statement information line ignored"

    if account_type == AccountType.CREDIT_CARD:
        if any(p.match(joined) for p in CARD_SUMMARY_PATTERNS):
            return RowIssue.CARD_SUMMARY, "Card statement summary line ignored"
        if all(
            parse_localized_number(cell) is not None and not is_date_like(cell)
            for cell in non_empty
        ):
            return RowIssue.CARD_SUMMARY, "Numeric-only summary line ignored"

    if is_repeated_header(cells):
        return RowIssue.HEADER_ROW, "Repeated header row ignored"

    if len(non_empty) == 1 and not any(ch.isdigit() for ch in non_empty[0]):
        return RowIssue.NO_TRANSACTION_DATA, "Line without transaction data ignored"

    return None


def _description(cells: Sequence[str], analysis: CSVAnalysis) -> str:
    desc = _cell(cells, analysis.index_of(InternalField.DESCRIPTION))
    if desc:
        return desc
    for cell in cells:
        text = (cell or "").strip()
        if text and any(ch.isalpha() for ch in text) and not is_date_like(text) \
                and not is_amount_like(text):
            return text
    return ""


def _data_rows(rows: Sequence[Sequence[str]], analysis: CSVAnalysis):
    """Yield ``(row_index, cells)`` with 1-based indices, header excluded."""
    start = 1 if analysis.has_header else 0
    for position in range(start, len(rows)):
        yield position + 1, rows[position]


def _is_single_amount(analysis: CSVAnalysis) -> bool:
    return analysis.index_of(*INFLOW_FIELDS, *OUTFLOW_FIELDS) is None


def compute_polarity(rows: Sequence[Sequence[str]], analysis: CSVAnalysis) -> PolarityDecision:
    """
    Dominant sign of a single-amount credit card statement.

    Votes over up to ``POLARITY_SAMPLE_ROWS`` candidate rows with a nonzero
    amount and a description. Invoice and card payment lines do not vote.
    Ties count as positive purchases.
    """
    amount_index = analysis.index_of(InternalField.AMOUNT)
    positive = negative = examined = 0

    for _, cells in _data_rows(rows, analysis):
        if examined >= POLARITY_SAMPLE_ROWS:
            break
        if prefilter_row(cells, AccountType.CREDIT_CARD) is not None:
            continue
        value = parse_localized_number(_cell(cells, amount_index))
        description = _description(cells, analysis)
        if not value or not description:
            continue
        examined += 1
        if is_invoice_or_card(description):
            continue
        if value > 0:
            positive += 1
        else:
            negative += 1

    votes = positive + negative
    confidence = max(positive, negative) / votes if votes else 0.0
    decision = PolarityDecision(
        purchases_are_positive=positive >= negative,
        positive_count=positive,
        negative_count=negative,
        confidence=round(confidence, 4),
        is_ambiguous=votes == 0 or confidence < POLARITY_AMBIGUITY_THRESHOLD,
    )
    logger.info(
        "polarity_computed",
        purchases_are_positive=decision.purchases_are_positive,
        positive=positive,
        negative=negative,
        confidence=decision.confidence,
    )
    return decision


def _resolve_in_out(cells: Sequence[str], analysis: CSVAnalysis) -> _Amount:
    inflow_text = _amount_cell(cells, analysis.index_of(*INFLOW_FIELDS))
    outflow_text = _amount_cell(cells, analysis.index_of(*OUTFLOW_FIELDS))
    inflow = parse_localized_number(inflow_text) if inflow_text else None
    outflow = parse_localized_number(outflow_text) if outflow_text else None

    if (inflow_text and inflow is None) or (outflow_text and outflow is None):
        bad = outflow_text if outflow_text and outflow is None else inflow_text
        return _Amount(issue=RowIssue.INVALID_AMOUNT, reason=f"Invalid amount: {bad}")

    if outflow:
        warning = None
        if inflow:
            warning = "Both inflow and outflow are filled; outflow value used"
        return _Amount(value=-abs(outflow), warning=warning)
    if inflow:
        return _Amount(issue=RowIssue.INCOME_IGNORED, reason="Income ignored")
    if inflow_text or outflow_text:
        return _Amount(issue=RowIssue.ZERO_AMOUNT, reason="Zero amount ignored")
    return _Amount(issue=RowIssue.AMOUNT_NOT_FOUND, reason="Amount not found")


def _resolve_single(
    cells: Sequence[str],
    analysis: CSVAnalysis,
    account_type: AccountType,
    polarity: Optional[PolarityDecision],
) -> _Amount:
    amount_text = _cell(cells, analysis.index_of(InternalField.AMOUNT))
    if not amount_text:
        return _Amount(issue=RowIssue.AMOUNT_NOT_FOUND, reason="Amount not found")

    value = parse_localized_number(amount_text)
    if value is None:
        return _Amount(issue=RowIssue.INVALID_AMOUNT, reason=f"Invalid amount: {amount_text}")
    if value == 0:
        return _Amount(issue=RowIssue.ZERO_AMOUNT, reason="Zero amount ignored")

    if account_type == AccountType.BANK_ACCOUNT:
        # Sign is authoritative for checking accounts, whatever the type column says
        if value > 0:
            return _Amount(issue=RowIssue.INCOME_IGNORED, reason="Inflow ignored (checking account)")
        return _Amount(value=value)

    explicit = parse_explicit_transaction_type(
        _cell(cells, analysis.index_of(InternalField.TRANSACTION_TYPE))
    )
    if explicit == "expense":
        return _Amount(value=-abs(value))
    if explicit == "income":
        return _Amount(issue=RowIssue.PAYMENT_OR_REVERSAL, reason="Payment or reversal ignored")

    purchases_are_positive = polarity.purchases_are_positive if polarity else True
    if (value > 0) == purchases_are_positive:
        return _Amount(value=-abs(value))
    return _Amount(issue=RowIssue.PAYMENT_OR_REVERSAL, reason="Payment or reversal ignored")


def classify_row(
    row_index: int,
    cells: Sequence[str],
    analysis: CSVAnalysis,
    account_type: AccountType,
    polarity: Optional[PolarityDecision] = None,
    default_category: Optional[str] = None,
) -> ParsedRow:
    """
    Classify one row given the statement-wide polarity decision.

    Args:
        row_index: 1-based position of the row in the statement.
        cells: Row cells.
        analysis: Column analysis of the statement.
        account_type: Account the statement belongs to.
        polarity: Dominant sign decision (credit card, single amount only).
        default_category: Category used when the row names none.

    Returns:
        ParsedRow with status OK, SKIPPED or ERROR.
    """
    raw_line = analysis.separator.join(cells)

    skip = prefilter_row(cells, account_type)
    if skip is not None:
        issue, reason = skip
        return ParsedRow(row_index, raw_line, RowStatus.SKIPPED, reason=reason, issue=issue)

    if _is_single_amount(analysis):
        amount = _resolve_single(cells, analysis, account_type, polarity)
    else:
        amount = _resolve_in_out(cells, analysis)

    if amount.value is None:
        status = RowStatus.ERROR if amount.issue == RowIssue.INVALID_AMOUNT else RowStatus.SKIPPED
        errors = [amount.reason] if status == RowStatus.ERROR else []
        return ParsedRow(row_index, raw_line, status, errors=errors,
                         reason=amount.reason, issue=amount.issue)

    raw_date = _cell(cells, analysis.index_of(InternalField.DATE))
    if not raw_date:
        reason = "Date missing; confirm the transaction date"
        return ParsedRow(row_index, raw_line, RowStatus.ERROR, errors=[reason], reason=reason,
                         issue=RowIssue.INVALID_OR_MISSING_DATE,
                         requires_date_confirmation=True)

    transaction_date = parse_date(raw_date, analysis.date_format_hint)
    if transaction_date is None:
        reason = f"Invalid date: {raw_date}"
        return ParsedRow(row_index, raw_line, RowStatus.ERROR, errors=[reason], reason=reason,
                         issue=RowIssue.INVALID_OR_MISSING_DATE,
                         requires_date_confirmation=True, original_date=raw_date)

    description = (_description(cells, analysis) or DEFAULT_DESCRIPTION)[:MAX_DESCRIPTION_LENGTH]
    notes = _cell(cells, analysis.index_of(InternalField.NOTES))[:MAX_NOTES_LENGTH] or None
    category = resolve_category(
        _cell(cells, analysis.index_of(InternalField.CATEGORY)), description, default_category
    )
    payment_method = infer_payment_method(
        description, account_type, _cell(cells, analysis.index_of(InternalField.PAYMENT_METHOD))
    )

    normalized = NormalizedTransaction(
        description=description,
        amount=amount.value,
        category=category,
        payment_method=payment_method,
        transaction_date=transaction_date,
        import_hash=import_hash(transaction_date, amount.value, description),
        notes=notes,
    )
    return ParsedRow(
        row_index,
        raw_line,
        RowStatus.OK,
        normalized=normalized,
        reason="Expense",
        original_date=raw_date,
        warnings=[amount.warning] if amount.warning else [],
    )


def classify_rows(
    rows: Sequence[Sequence[str]],
    analysis: CSVAnalysis,
    account_type: AccountType,
    default_category: Optional[str] = None,
) -> ClassificationResult:
    """
    Classify every row of a statement.

    Phase one decides the dominant sign for single-amount credit card
    statements; phase two classifies each row with that decision.

    Args:
        rows: All rows of the statement, header first when ``analysis.has_header``.
        analysis: Column analysis of the statement.
        account_type: Account the statement belongs to.
        default_category: Category used when a row names none.

    Returns:
        ClassificationResult with one ParsedRow per data row.
    """
    account_type = AccountType(account_type)
    polarity = None
    warnings: List[str] = []

    if account_type == AccountType.CREDIT_CARD and _is_single_amount(analysis):
        polarity = compute_polarity(rows, analysis)
        if polarity.is_ambiguous and polarity.sample_size:
            message = (
                f"Sign convention is ambiguous ({polarity.positive_count} positive, "
                f"{polarity.negative_count} negative); review skipped payments"
            )
            warnings.append(message)
            logger.warning(
                "polarity_ambiguous",
                positive=polarity.positive_count,
                negative=polarity.negative_count,
                confidence=polarity.confidence,
            )

    parsed = [
        classify_row(row_index, cells, analysis, account_type, polarity, default_category)
        for row_index, cells in _data_rows(rows, analysis)
    ]

    result = ClassificationResult(rows=parsed, polarity=polarity, warnings=warnings)
    summary = result.summary
    logger.info(
        "rows_classified",
        account_type=account_type.value,
        total=summary.total,
        ok=summary.ok,
        skipped=summary.skipped,
        errors=summary.errors,
    )
    return result
