"""
Duplicate detection by content fingerprint.
"""

import hashlib
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Set, Tuple, Union

Number = Union[Decimal, int, float]


def amount_in_cents(amount: Number) -> int:
    """Amount rounded half-up to whole cents."""
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def import_hash(transaction_date: date, amount: Number, description: str) -> str:
    """
    Fingerprint of a transaction.

    Built from ``YYYY-MM-DD|<amount in cents>|<lowercased trimmed description>``
    so the same statement line always yields the same hash.
    """
    key = "|".join((
        transaction_date.isoformat(),
        str(amount_in_cents(amount)),
        (description or "").lower().strip(),
    ))
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class Deduplicator:
    """Tracks known import hashes for one import scope."""

    def __init__(self, existing_hashes: Iterable[str] = ()):
        self._seen: Set[str] = set(existing_hashes)

    @classmethod
    def from_records(cls, records: Iterable[Tuple[date, Number, str]]) -> "Deduplicator":
        """Build from persisted ``(date, amount, description)`` tuples."""
        return cls(import_hash(d, a, desc) for d, a, desc in records)

    def __len__(self) -> int:
        return len(self._seen)

    def is_duplicate(self, hash_value: str) -> bool:
        return hash_value in self._seen
