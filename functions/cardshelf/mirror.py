"""
Live mirror of the ``card_templates`` collection.

A mirror owns one standing subscription. Every notification replaces the
local copy wholesale: soft-deleted rows are dropped, the category set is
rebuilt and the owner's hook runs before the lock is released.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from cardshelf.db import RecordStore, Unsubscribe
from cardshelf.models import CardRecord, StoredDocument

logger = logging.getLogger(__name__)

SnapshotHook = Callable[[tuple[CardRecord, ...], frozenset], None]


class LiveMirror:
    def __init__(
        self,
        store: RecordStore,
        *,
        strict: bool = False,
        on_snapshot: Optional[SnapshotHook] = None,
    ):
        self._store = store
        self._strict = strict
        self._on_snapshot = on_snapshot
        self._lock = threading.RLock()
        self._active = False
        self._unsubscribe: Optional[Unsubscribe] = None
        self._records: tuple[CardRecord, ...] = ()
        self._categories: frozenset = frozenset()
        self.snapshots_applied = 0

    @property
    def active(self) -> bool:
        return self._active

    @property
    def records(self) -> tuple[CardRecord, ...]:
        with self._lock:
            return self._records

    @property
    def categories(self) -> frozenset:
        with self._lock:
            return self._categories

    def get(self, record_id: str) -> Optional[CardRecord]:
        for record in self.records:
            if record.id == record_id:
                return record
        return None

    def start(self) -> None:
        """Open the subscription. A no-op while one is already open."""
        with self._lock:
            if self._active:
                return
            self._active = True
        try:
            unsubscribe = self._store.subscribe(self._apply)
        except Exception:
            with self._lock:
                self._active = False
            raise
        with self._lock:
            self._unsubscribe = unsubscribe
        logger.info("Mirror subscription opened (strict=%s)", self._strict)

    def stop(self) -> None:
        """Release the subscription and clear the local copy."""
        with self._lock:
            unsubscribe = self._unsubscribe
            self._unsubscribe = None
            was_active = self._active
            self._active = False
            self._records = ()
            self._categories = frozenset()
        if unsubscribe is not None:
            unsubscribe()
        if was_active:
            logger.info("Mirror subscription closed")

    def _apply(self, docs: list[StoredDocument]) -> None:
        records = []
        for doc in docs:
            record = CardRecord.from_document(doc, strict=self._strict)
            if record is not None:
                records.append(record)
        categories = frozenset(r.category for r in records if r.category)
        with self._lock:
            # Late deliveries after stop() must not repopulate the mirror.
            if not self._active:
                return
            self._records = tuple(records)
            self._categories = categories
            self.snapshots_applied += 1
            if self._on_snapshot is not None:
                self._on_snapshot(self._records, self._categories)
