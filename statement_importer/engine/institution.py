"""
Bank and card inference from statement filenames.

``fatura_nubank_jan.csv`` suggests a Nubank credit card statement,
``extrato-itau.xls`` an Itaú checking account. Aliases are matched as whole
words so short ones ("bb", "nu", "mp") do not fire inside other words.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence, Tuple

from statement_importer.engine.models import AccountType
from statement_importer.engine.normalization import normalize_text

INSTITUTION_ALIASES: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "itau": ("itau", "itau unibanco"),
    "nubank": ("nubank", "nu", "roxinho"),
    "santander": ("santander",),
    "banco do brasil": ("bb", "banco do brasil"),
    "bradesco": ("bradesco",),
    "inter": ("inter", "banco inter"),
    "caixa": ("caixa", "cef", "caixa economica"),
    "picpay": ("picpay",),
    "mercado pago": ("mercadopago", "mercado pago", "mp"),
    "c6": ("c6", "c6 bank", "c6bank"),
    "nexo": ("nexo",),
    "sicoob": ("sicoob",),
    "sicredi": ("sicredi",),
})

CARD_KEYWORDS = ("fatura", "card", "cartao", "credit", "credito")
SEPARATORS = re.compile(r"[_\-.\s]+")


class InstitutionKind(str, Enum):
    ACCOUNT = "account"
    CARD = "card"

    @property
    def account_type(self) -> AccountType:
        return AccountType.CREDIT_CARD if self is InstitutionKind.CARD else AccountType.BANK_ACCOUNT


class MatchConfidence(str, Enum):
    HIGH = "high"
    LOW = "low"
    NONE = "none"


@dataclass
class InferredInstitution:
    kind: InstitutionKind
    name: str


@dataclass
class NamedTarget:
    """A household account or credit card."""
    id: str
    name: str


@dataclass
class InstitutionMatch:
    confidence: MatchConfidence
    account_id: Optional[str] = None
    card_id: Optional[str] = None
    matched_name: Optional[str] = None
    suggested_ids: List[str] = field(default_factory=list)


def _normalize(text: str) -> str:
    return SEPARATORS.sub(" ", normalize_text(text)).strip()


def _contains_words(haystack: str, needle: str) -> bool:
    return f" {needle} " in f" {haystack} "


def infer_institution_from_filename(filename: str) -> Optional[InferredInstitution]:
    """
    Guess the institution and statement kind from a filename.

    Returns:
        InferredInstitution, or None when the name is too short to tell.
    """
    if not filename:
        return None
    normalized = _normalize(PurePath(filename).stem)
    if len(normalized) < 2:
        return None

    is_card = any(keyword in normalized for keyword in CARD_KEYWORDS)
    kind = InstitutionKind.CARD if is_card else InstitutionKind.ACCOUNT

    for canonical, aliases in INSTITUTION_ALIASES.items():
        if any(_contains_words(normalized, alias) for alias in aliases):
            return InferredInstitution(kind=kind, name=canonical)

    first_word = normalized.split()[0]
    if len(first_word) >= 2:
        return InferredInstitution(kind=kind, name=first_word)
    return None


def match_institution_to_household(
    inferred: Optional[InferredInstitution],
    accounts: Sequence[NamedTarget],
    cards: Sequence[NamedTarget],
) -> InstitutionMatch:
    """
    Link an inferred institution to one of the household's accounts or cards.

    One match is high confidence; several are returned as low-confidence
    suggestions and never applied automatically. The HTTP API only receives
    ids, so callers holding the household account list use this directly.
    """
    if inferred is None or not inferred.name:
        return InstitutionMatch(confidence=MatchConfidence.NONE)

    wanted = _normalize(inferred.name)
    candidates = cards if inferred.kind == InstitutionKind.CARD else accounts
    matches = []
    for target in candidates:
        name = _normalize(target.name)
        if name and (wanted in name or name in wanted):
            matches.append(target)

    if len(matches) == 1:
        target = matches[0]
        return InstitutionMatch(
            confidence=MatchConfidence.HIGH,
            account_id=target.id if inferred.kind == InstitutionKind.ACCOUNT else None,
            card_id=target.id if inferred.kind == InstitutionKind.CARD else None,
            matched_name=target.name,
        )
    if matches:
        return InstitutionMatch(
            confidence=MatchConfidence.LOW,
            matched_name=", ".join(target.name for target in matches),
            suggested_ids=[target.id for target in matches],
        )
    return InstitutionMatch(confidence=MatchConfidence.NONE)
