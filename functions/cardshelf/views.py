"""
Pure filter, sort and pairing functions over a mirror's records.

Nothing here talks to a store; the controllers call these on every render.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from cardshelf.formatting import search_haystack
from cardshelf.models import CardPair, CardRecord, Side, pair_key

ALL_CATEGORIES = "__all__"


@dataclass(frozen=True)
class RecordFilter:
    text: str = ""
    category: str = ALL_CATEGORIES

    @classmethod
    def from_input(
        cls, text: Optional[str] = None, category: Optional[str] = None
    ) -> "RecordFilter":
        return cls(
            text=(text or "").strip().lower(),
            category=category or ALL_CATEGORIES,
        )

    def matches(self, record: CardRecord) -> bool:
        if self.category != ALL_CATEGORIES and record.category != self.category:
            return False
        if not self.text:
            return True
        return self.text in search_haystack(record)


def filter_records(
    records: Iterable[CardRecord], record_filter: RecordFilter
) -> list[CardRecord]:
    return [record for record in records if record_filter.matches(record)]


def _sort_key(category: str, order) -> tuple:
    # Records without a numeric order go last within their category.
    return (category, order is None, order if order is not None else 0)


def sort_records(records: Iterable[CardRecord]) -> list[CardRecord]:
    return sorted(records, key=lambda r: _sort_key(r.category, r.order))


def build_pairs(records: Iterable[CardRecord]) -> list[CardPair]:
    """
    Group records into front/back pairs keyed by (category, order).

    When two records share a category, order and side the one iterated last
    wins; there is no tie-break on timestamps.
    """
    pairs: dict[str, CardPair] = {}
    for record in records:
        if record.order is None:
            continue
        key = pair_key(record.category, record.order)
        pair = pairs.get(key)
        if pair is None:
            pair = CardPair(category=record.category, order=record.order)
            pairs[key] = pair
        if record.side == Side.FRONT.value:
            pair.front = record
        elif record.side == Side.BACK.value:
            pair.back = record
    return sorted(pairs.values(), key=lambda p: _sort_key(p.category, p.order))


def sorted_categories(categories: Iterable[str]) -> list[str]:
    return sorted(set(categories))


def reconcile_category(selected: str, categories: Iterable[str]) -> str:
    """Fall back to all categories when the selection vanished from the mirror."""
    if selected in set(categories):
        return selected
    return ALL_CATEGORIES
