"""
Record store abstraction: in-memory, SQLAlchemy and Firestore implementations.

Every store keeps the ``card_templates`` documents, stamps ``createdAt`` and
``updatedAt`` from its own clock, and pushes the full snapshot (ordered by
``order`` ascending) to each subscriber after every change.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Any, Callable, Dict, Optional, Protocol

from sqlalchemy import Boolean, Column, Float, String, create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from cardshelf.errors import NotFoundError
from cardshelf.models import StoredDocument, coerce_order

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION = "card_templates"

SnapshotListener = Callable[[list[StoredDocument]], None]
Unsubscribe = Callable[[], None]


class RecordStore(Protocol):
    """Interface for the realtime document database."""

    def add(self, fields: dict) -> str:
        ...

    def get(self, record_id: str) -> Optional[dict]:
        ...

    def update(self, record_id: str, fields: dict) -> None:
        ...

    def delete(self, record_id: str) -> None:
        ...

    def subscribe(self, listener: SnapshotListener) -> Unsubscribe:
        ...


def _snapshot_order(doc: StoredDocument) -> tuple:
    order = coerce_order(doc.data.get("order"))
    return (order is None, order if order is not None else 0)


class _ListenerRegistry:
    """Fan-out of full snapshots to subscribers, shared by the local stores."""

    def __init__(self):
        self._listeners: Dict[str, SnapshotListener] = {}
        self._lock = threading.Lock()

    def add(self, listener: SnapshotListener) -> str:
        token = uuid.uuid4().hex
        with self._lock:
            self._listeners[token] = listener
        return token

    def remove(self, token: str) -> None:
        with self._lock:
            self._listeners.pop(token, None)

    def __len__(self) -> int:
        return len(self._listeners)

    def notify(self, snapshot: list[StoredDocument], only: Optional[str] = None):
        with self._lock:
            targets = [
                (token, listener)
                for token, listener in self._listeners.items()
                if only is None or token == only
            ]
        for token, listener in targets:
            try:
                listener(list(snapshot))
            except Exception:
                logger.exception("Snapshot listener %s failed", token)


class InMemoryRecordStore:
    """Simple in-memory store for development and tests."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.docs: Dict[str, dict] = {}
        self._clock = clock
        self._listeners = _ListenerRegistry()

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def snapshot(self) -> list[StoredDocument]:
        docs = [
            StoredDocument(id=doc_id, data=dict(data))
            for doc_id, data in self.docs.items()
        ]
        return sorted(docs, key=_snapshot_order)

    def add(self, fields: dict) -> str:
        now = self._clock()
        record_id = uuid.uuid4().hex
        self.docs[record_id] = {**fields, "createdAt": now, "updatedAt": now}
        self._listeners.notify(self.snapshot())
        return record_id

    def get(self, record_id: str) -> Optional[dict]:
        data = self.docs.get(record_id)
        return dict(data) if data is not None else None

    def update(self, record_id: str, fields: dict) -> None:
        data = self.docs.get(record_id)
        if data is None:
            raise NotFoundError(f"No card template {record_id}")
        data.update(fields)
        data["updatedAt"] = self._clock()
        self._listeners.notify(self.snapshot())

    def delete(self, record_id: str) -> None:
        if self.docs.pop(record_id, None) is not None:
            self._listeners.notify(self.snapshot())

    def subscribe(self, listener: SnapshotListener) -> Unsubscribe:
        token = self._listeners.add(listener)
        self._listeners.notify(self.snapshot(), only=token)
        return lambda: self._listeners.remove(token)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.docs.clear()
        self._listeners.notify(self.snapshot())


class SqlRecordStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).

    Change notifications are emitted in-process after each committed write, so
    subscribers only see writes made through this instance.
    """

    def __init__(self, database_url: str, clock: Callable[[], float] = time.time):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlRecordStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)
        self._clock = clock
        self._listeners = _ListenerRegistry()

    @staticmethod
    def _to_document(row: "CardTemplateRow") -> StoredDocument:
        data: dict[str, Any] = {
            "category": row.category,
            "side": row.side,
            "order": row.order,
            "storagePath": row.storage_path or "",
            "createdAt": row.created_at,
            "updatedAt": row.updated_at,
        }
        if row.deleted:
            data["deleted"] = True
        return StoredDocument(id=row.id, data=data)

    def snapshot(self) -> list[StoredDocument]:
        with self.Session() as session:
            stmt = select(CardTemplateRow).order_by(
                CardTemplateRow.order.asc(), CardTemplateRow.created_at.asc()
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_document(row) for row in rows]

    def add(self, fields: dict) -> str:
        now = self._clock()
        record_id = uuid.uuid4().hex
        with self.Session() as session:
            session.add(
                CardTemplateRow(
                    id=record_id,
                    category=fields.get("category", ""),
                    side=fields.get("side", ""),
                    order=fields.get("order"),
                    storage_path=fields.get("storagePath", ""),
                    deleted=bool(fields.get("deleted", False)),
                    created_at=now,
                    updated_at=now,
                )
            )
            session.commit()
        self._listeners.notify(self.snapshot())
        return record_id

    def get(self, record_id: str) -> Optional[dict]:
        with self.Session() as session:
            row = session.get(CardTemplateRow, record_id)
            if not row:
                return None
            return self._to_document(row).data

    def update(self, record_id: str, fields: dict) -> None:
        with self.Session() as session:
            row = session.get(CardTemplateRow, record_id)
            if not row:
                raise NotFoundError(f"No card template {record_id}")
            for key, attr in _FIELD_COLUMNS.items():
                if key in fields:
                    setattr(row, attr, fields[key])
            row.updated_at = self._clock()
            session.commit()
        self._listeners.notify(self.snapshot())

    def delete(self, record_id: str) -> None:
        with self.Session() as session:
            row = session.get(CardTemplateRow, record_id)
            if not row:
                return
            session.delete(row)
            session.commit()
        self._listeners.notify(self.snapshot())

    def subscribe(self, listener: SnapshotListener) -> Unsubscribe:
        token = self._listeners.add(listener)
        self._listeners.notify(self.snapshot(), only=token)
        return lambda: self._listeners.remove(token)


class FirestoreRecordStore:
    """
    Firestore-backed store. Snapshots arrive on the Firestore watch thread.
    """

    def __init__(self, collection: str = DEFAULT_COLLECTION, client=None):
        from firebase_admin import firestore

        self._client = client or firestore.client()
        self._collection = self._client.collection(collection)

    def add(self, fields: dict) -> str:
        from google.cloud.firestore_v1 import SERVER_TIMESTAMP

        _, doc_ref = self._collection.add(
            {**fields, "createdAt": SERVER_TIMESTAMP, "updatedAt": SERVER_TIMESTAMP}
        )
        return doc_ref.id

    def get(self, record_id: str) -> Optional[dict]:
        snapshot = self._collection.document(record_id).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    def update(self, record_id: str, fields: dict) -> None:
        from google.api_core import exceptions
        from google.cloud.firestore_v1 import SERVER_TIMESTAMP

        try:
            self._collection.document(record_id).update(
                {**fields, "updatedAt": SERVER_TIMESTAMP}
            )
        except exceptions.NotFound as exc:
            raise NotFoundError(f"No card template {record_id}") from exc

    def delete(self, record_id: str) -> None:
        self._collection.document(record_id).delete()

    def subscribe(self, listener: SnapshotListener) -> Unsubscribe:
        query = self._collection.order_by("order")

        def on_snapshot(docs, changes, read_time):
            listener(
                [StoredDocument(id=doc.id, data=doc.to_dict() or {}) for doc in docs]
            )

        watch = query.on_snapshot(on_snapshot)
        return watch.unsubscribe


Base = declarative_base()


class CardTemplateRow(Base):
    __tablename__ = DEFAULT_COLLECTION

    id = Column(String, primary_key=True)
    category = Column(String, nullable=False, index=True)
    side = Column(String, nullable=False)
    order = Column("order", Float, nullable=True, index=True)
    storage_path = Column(String, nullable=False, default="")
    deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


_FIELD_COLUMNS = {
    "category": "category",
    "side": "side",
    "order": "order",
    "storagePath": "storage_path",
    "deleted": "deleted",
}
