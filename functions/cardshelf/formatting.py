"""
Small formatting helpers shared by the admin and public views.
"""

from __future__ import annotations

import re
from typing import Optional

from cardshelf.models import CardRecord, Number

SLUG_MAX_LENGTH = 60
SLUG_FALLBACK = "category"


def format_order(order: Optional[Number]) -> str:
    if order is None:
        return ""
    if isinstance(order, float) and order.is_integer():
        return str(int(order))
    return str(order)


def search_haystack(record: CardRecord) -> str:
    """Lower-cased ``"<category> <side> <order>"`` used by free-text search."""
    return f"{record.category} {record.side} {format_order(record.order)}".lower()


def slugify(value: Optional[str]) -> str:
    slug = (value or SLUG_FALLBACK).strip().lower()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^a-z0-9\-_.]", "", slug)
    return slug[:SLUG_MAX_LENGTH] or SLUG_FALLBACK


def download_filename(record: CardRecord) -> str:
    return (
        f"{slugify(record.category)}_order-{format_order(record.order)}"
        f"_{record.side}.png"
    )


def cache_busted(url: str, millis: int) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}t={millis}"
