"""
Card template records and the views derived from them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

Number = Union[int, float]


class Side(str, Enum):
    FRONT = "front"
    BACK = "back"


class CreateStage(str, Enum):
    """Stages of the non-atomic create: document, then blob, then path patch."""

    METADATA_ONLY = "METADATA_ONLY"
    IMAGE_UPLOADED = "IMAGE_UPLOADED"
    PATH_LINKED = "PATH_LINKED"


def coerce_order(value: Any) -> Optional[Number]:
    """
    Parse an order value into a finite number, or ``None``.

    Integral values come back as ``int`` so that ``1.0`` and ``1`` pair and
    print the same way.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    if number.is_integer():
        return int(number)
    return number


def _coerce_timestamp(value: Any) -> Optional[float]:
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


@dataclass(frozen=True)
class StoredDocument:
    """A raw document as delivered by a record store snapshot."""

    id: str
    data: dict


@dataclass(frozen=True)
class CardRecord:
    id: str
    category: str
    side: str
    order: Optional[Number]
    storage_path: str = ""
    deleted: bool = False
    created_at: Optional[float] = None
    updated_at: Optional[float] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.storage_path)

    @classmethod
    def from_document(
        cls, doc: StoredDocument, *, strict: bool = False
    ) -> Optional["CardRecord"]:
        """
        Build a record from a stored document.

        Soft-deleted documents yield ``None``. With ``strict`` the document
        must also carry a category, a side and a finite order.
        """
        data = doc.data or {}
        if data.get("deleted"):
            return None
        category = str(data.get("category") or "").strip()
        side = str(data.get("side") or "").strip()
        order = coerce_order(data.get("order"))
        if strict and (not category or not side or order is None):
            return None
        return cls(
            id=doc.id,
            category=category,
            side=side,
            order=order,
            storage_path=str(data.get("storagePath") or ""),
            created_at=_coerce_timestamp(data.get("createdAt")),
            updated_at=_coerce_timestamp(data.get("updatedAt")),
        )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "side": self.side,
            "order": self.order,
            "storage_path": self.storage_path,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class CardPair:
    """Front and back faces sharing a (category, order) key. Never persisted."""

    category: str
    order: Number
    front: Optional[CardRecord] = None
    back: Optional[CardRecord] = None

    @property
    def key(self) -> str:
        return pair_key(self.category, self.order)


def pair_key(category: str, order: Optional[Number]) -> str:
    return f"{category}__{order}"
