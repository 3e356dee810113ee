"""
Public controller: read-only gallery of front/back card pairs.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from fastapi.concurrency import run_in_threadpool

from cardshelf.db import RecordStore
from cardshelf.errors import CardShelfError, NotFoundError, StoreError
from cardshelf.formatting import download_filename
from cardshelf.mirror import LiveMirror
from cardshelf.models import CardPair, CardRecord, Number
from cardshelf.storage import PresignedUrlCache, StorageClient
from cardshelf.views import (
    ALL_CATEGORIES,
    RecordFilter,
    build_pairs,
    filter_records,
    reconcile_category,
    sorted_categories,
)

logger = logging.getLogger(__name__)


@dataclass
class CardSlot:
    label: str
    card: Optional[CardRecord] = None
    image_url: Optional[str] = None

    @property
    def placeholder(self) -> Optional[str]:
        if self.card is None or not self.card.storage_path:
            return f"NO {self.label.upper()}"
        return None


@dataclass
class PairView:
    category: str
    order: Number
    front: CardSlot
    back: CardSlot


@dataclass
class GalleryView:
    pairs: list[PairView]
    categories: list[str]
    selected_category: str


@dataclass
class DownloadLink:
    url: str
    filename: str


@dataclass
class PublicState:
    record_filter: RecordFilter = field(default_factory=RecordFilter)
    # Resolved once per storage path until the signature nears expiry.
    url_cache: PresignedUrlCache = field(default_factory=PresignedUrlCache)


class PublicController:
    def __init__(
        self,
        store: RecordStore,
        storage: StorageClient,
        *,
        url_expires_in: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self._storage = storage
        self._url_expires_in = url_expires_in
        self._clock = clock
        self.state = PublicState()
        self.mirror = LiveMirror(store, strict=True, on_snapshot=self._on_snapshot)

    def start(self) -> None:
        self.mirror.start()

    def stop(self) -> None:
        self.mirror.stop()

    def set_filter(
        self, text: Optional[str] = None, category: Optional[str] = None
    ) -> RecordFilter:
        selected = reconcile_category(
            category or ALL_CATEGORIES, self.mirror.categories
        )
        self.state.record_filter = RecordFilter.from_input(text, selected)
        return self.state.record_filter

    def pairs(self, record_filter: Optional[RecordFilter] = None) -> list[CardPair]:
        record_filter = record_filter or self.state.record_filter
        return build_pairs(filter_records(self.mirror.records, record_filter))

    def render(self, record_filter: Optional[RecordFilter] = None) -> GalleryView:
        """Derive the gallery from the mirror using only cached URLs."""
        record_filter = record_filter or self.state.record_filter
        now = self._clock()
        views = []
        for pair in self.pairs(record_filter):
            views.append(
                PairView(
                    category=pair.category,
                    order=pair.order,
                    front=self._slot("Front", pair.front, now),
                    back=self._slot("Back", pair.back, now),
                )
            )
        return GalleryView(
            pairs=views,
            categories=sorted_categories(self.mirror.categories),
            selected_category=record_filter.category,
        )

    def _slot(self, label: str, card: Optional[CardRecord], now: float) -> CardSlot:
        slot = CardSlot(label=label, card=card)
        if slot.placeholder is None:
            slot.image_url = self.state.url_cache.get(card.storage_path, now)
        return slot

    async def resolve_images(
        self, record_filter: Optional[RecordFilter] = None
    ) -> None:
        """Fetch download URLs for every visible slot not yet in the cache."""
        for pair in self.pairs(record_filter):
            for card in (pair.front, pair.back):
                if card is None or not card.storage_path:
                    continue
                try:
                    await self.download_url(card.storage_path)
                except StoreError:
                    logger.debug("Image for %s not resolvable", card.id, exc_info=True)

    async def download_url(self, storage_path: str) -> str:
        url = self.state.url_cache.get(storage_path, self._clock())
        if url is not None:
            return url
        signed_at = self._clock()
        try:
            url = await run_in_threadpool(
                self._storage.presign_get, storage_path, self._url_expires_in
            )
        except CardShelfError:
            raise
        except Exception as exc:
            raise StoreError(str(exc) or exc.__class__.__name__) from exc
        self.state.url_cache.put(storage_path, url, signed_at, self._url_expires_in)
        return url

    async def download(self, record_id: str) -> DownloadLink:
        card = self.mirror.get(record_id)
        if card is None or not card.storage_path:
            raise NotFoundError(f"No image for card {record_id}")
        url = await self.download_url(card.storage_path)
        return DownloadLink(url=url, filename=download_filename(card))

    def _on_snapshot(self, records, categories) -> None:
        current = self.state.record_filter
        selected = reconcile_category(current.category, categories)
        if selected != current.category:
            self.state.record_filter = RecordFilter(
                text=current.text, category=selected
            )
