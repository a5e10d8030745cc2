"""
Keyword tables for category and payment method inference.

All tables are read-only. Keywords are stored without diacritics. Category
keywords match anywhere in the normalized description, longest keyword
first, so "mercado livre" wins over "mercado" and "uber eats" over "uber".
Payment method keywords are short ("ted", "doc") and match as whole words.
"""

import re
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from statement_importer.engine.models import AccountType
from statement_importer.engine.normalization import normalize_text

DEFAULT_CATEGORY = "other"
DEFAULT_PAYMENT_METHOD = "pix"
CARD_PAYMENT_METHOD = "card"

CATEGORIES = ("food", "transport", "bills", "leisure", "health", "education", "shopping", "other")
PAYMENT_METHODS = ("pix", "boleto", "card", "cash")

CATEGORY_KEYWORDS: Mapping[str, str] = MappingProxyType({
    "alimentacao": "food", "comida": "food", "mercado": "food",
    "supermercado": "food", "restaurante": "food", "ifood": "food",
    "uber eats": "food", "padaria": "food", "lanchonete": "food",
    "transporte": "transport", "uber": "transport", "99": "transport",
    "combustivel": "transport", "gasolina": "transport", "posto": "transport",
    "estacionamento": "transport", "pedagio": "transport", "metro": "transport",
    "moradia": "bills", "aluguel": "bills", "casa": "bills",
    "condominio": "bills", "contas": "bills", "conta": "bills", "luz": "bills",
    "agua": "bills", "internet": "bills", "telefone": "bills",
    "celular": "bills", "energia": "bills",
    "lazer": "leisure", "entretenimento": "leisure", "diversao": "leisure",
    "cinema": "leisure", "netflix": "leisure", "spotify": "leisure",
    "saude": "health", "farmacia": "health", "drogaria": "health",
    "medico": "health", "hospital": "health",
    "educacao": "education", "curso": "education", "escola": "education",
    "faculdade": "education", "livro": "education", "livraria": "education",
    "compras": "shopping", "roupas": "shopping", "vestuario": "shopping",
    "amazon": "shopping", "mercado livre": "shopping", "magazine": "shopping",
    "food": "food", "transport": "transport", "housing": "bills",
    "entertainment": "leisure", "health": "health", "education": "education",
    "shopping": "shopping", "bills": "bills", "leisure": "leisure",
    "outros": "other", "outro": "other", "other": "other",
    "salario": "other", "renda": "other", "pix recebido": "other",
    "transferencia recebida": "other",
})

PAYMENT_METHOD_KEYWORDS: Mapping[str, str] = MappingProxyType({
    "pix": "pix", "transferencia": "pix", "ted": "pix", "doc": "pix",
    "boleto": "boleto", "bol": "boleto", "cobranca": "boleto",
    "cartao": "card", "card": "card", "credito": "card", "debito": "card",
    "visa": "card", "mastercard": "card", "elo": "card", "compra": "card",
    "dinheiro": "cash", "cash": "cash", "saque": "cash", "especie": "cash",
})

INVOICE_OR_CARD_KEYWORDS: Tuple[str, ...] = (
    "fatura", "cartao", "credito", "credit card", "invoice",
)

EXPLICIT_EXPENSE_VALUES = frozenset({
    "expense", "saida", "debito", "debit", "d", "despesa", "gasto", "outgoing",
})
EXPLICIT_INCOME_VALUES = frozenset({
    "income", "entrada", "credito", "credit", "c", "receita", "incoming",
})


def _compile(table: Mapping[str, str], whole_words: bool) -> Tuple[Tuple[re.Pattern, str], ...]:
    ordered = sorted(table.items(), key=lambda item: len(item[0]), reverse=True)
    if whole_words:
        template = r"(?<![a-z0-9]){}(?![a-z0-9])"
    else:
        template = "{}"
    return tuple(
        (re.compile(template.format(re.escape(keyword))), value)
        for keyword, value in ordered
    )


_CATEGORY_PATTERNS = _compile(CATEGORY_KEYWORDS, whole_words=False)
_PAYMENT_PATTERNS = _compile(PAYMENT_METHOD_KEYWORDS, whole_words=True)


def _lookup(patterns, text: str) -> Optional[str]:
    normalized = normalize_text(text)
    if not normalized:
        return None
    for pattern, value in patterns:
        if pattern.search(normalized):
            return value
    return None


def infer_category(description: str) -> str:
    """Category for a description, ``other`` when nothing matches."""
    return _lookup(_CATEGORY_PATTERNS, description) or DEFAULT_CATEGORY


def resolve_category(raw_category: Optional[str], description: str,
                     default_category: Optional[str] = None) -> str:
    """
    Category for a row: the mapped cell when it names a known category,
    then the caller's default, then inference from the description.
    """
    if raw_category:
        exact = CATEGORY_KEYWORDS.get(normalize_text(raw_category))
        if exact:
            return exact
    if default_category:
        return default_category
    return infer_category(description)


def infer_payment_method(description: str, account_type: AccountType = AccountType.BANK_ACCOUNT,
                         raw_method: Optional[str] = None) -> str:
    """Payment method from the mapped cell or the description."""
    method = _lookup(_PAYMENT_PATTERNS, raw_method or "") or _lookup(_PAYMENT_PATTERNS, description)
    if method:
        return method
    if account_type == AccountType.CREDIT_CARD:
        return CARD_PAYMENT_METHOD
    return DEFAULT_PAYMENT_METHOD


def is_invoice_or_card(text: str) -> bool:
    """Whether text mentions a card invoice (fatura, cartão, credit card...)."""
    normalized = normalize_text(text)
    return any(keyword in normalized for keyword in INVOICE_OR_CARD_KEYWORDS)


def parse_explicit_transaction_type(value: Optional[str]) -> Optional[str]:
    """``"expense"``, ``"income"`` or None for an explicit type cell."""
    normalized = normalize_text(value)
    if normalized in EXPLICIT_EXPENSE_VALUES:
        return "expense"
    if normalized in EXPLICIT_INCOME_VALUES:
        return "income"
    return None
