"""
Admin controller: signed-in operator editing the card template catalog.

All state lives on the controller instance. Operations are coroutines;
blocking store, storage, auth and image calls run through
``run_in_threadpool`` so the event loop is never held.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from fastapi.concurrency import run_in_threadpool

from cardshelf.auth import AuthClient, AuthSession, friendly_auth_message
from cardshelf.db import RecordStore
from cardshelf.errors import (
    AuthError,
    BusyError,
    CardShelfError,
    CreateFailed,
    NotAuthenticatedError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from cardshelf.formatting import cache_busted
from cardshelf.images import to_png_bytes
from cardshelf.mirror import LiveMirror
from cardshelf.models import CardRecord, CreateStage, Number, Side, coerce_order
from cardshelf.storage import (
    LONG_CACHE_CONTROL,
    PNG_CONTENT_TYPE,
    PresignedUrlCache,
    StorageClient,
    blob_path,
)
from cardshelf.views import (
    ALL_CATEGORIES,
    RecordFilter,
    filter_records,
    reconcile_category,
    sort_records,
    sorted_categories,
)

logger = logging.getLogger(__name__)

SIDES = tuple(side.value for side in Side)


def validate_fields(category: Any, side: Any, order: Any) -> tuple[str, str, Number]:
    """
    Check category, side and order in that order and return them cleaned.

    Raises ``ValidationError`` for the first field that fails.
    """
    category = category.strip() if isinstance(category, str) else ""
    if not category:
        raise ValidationError("category", "Category is required")
    side = side.strip() if isinstance(side, str) else ""
    if side not in SIDES:
        raise ValidationError("side", "Side must be front or back")
    number = coerce_order(order)
    if number is None:
        raise ValidationError("order", "Order must be a number")
    return category, side, number


@dataclass
class AdminRow:
    record: CardRecord
    thumbnail_url: Optional[str] = None


@dataclass
class AdminView:
    rows: list[AdminRow]
    categories: list[str]
    selected_category: str
    total: int


@dataclass
class CreateResult:
    record_id: str
    storage_path: str
    stage: CreateStage


@dataclass
class AdminState:
    session: Optional[AuthSession] = None
    record_filter: RecordFilter = field(default_factory=RecordFilter)
    thumbnail_urls: PresignedUrlCache = field(default_factory=PresignedUrlCache)
    in_flight: set[tuple[str, str]] = field(default_factory=set)


class AdminController:
    def __init__(
        self,
        store: RecordStore,
        storage: StorageClient,
        auth: AuthClient,
        *,
        blob_prefix: str = "templates",
        cache_control: str = LONG_CACHE_CONTROL,
        url_expires_in: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._storage = storage
        self._auth = auth
        self._blob_prefix = blob_prefix
        self._cache_control = cache_control
        self._url_expires_in = url_expires_in
        self._clock = clock
        self.state = AdminState()
        self.mirror = LiveMirror(store, on_snapshot=self._on_snapshot)

    # Session ---------------------------------------------------------------

    @property
    def session(self) -> Optional[AuthSession]:
        return self.state.session

    def require_session(self, id_token: Optional[str] = None) -> AuthSession:
        session = self.state.session
        if session is None:
            raise NotAuthenticatedError()
        if id_token is not None and id_token != session.id_token:
            raise NotAuthenticatedError(
                "Session replaced by a newer sign-in; sign in again"
            )
        return session

    async def authenticate(
        self, email: Optional[str], password: Optional[str]
    ) -> AuthSession:
        email = (email or "").strip()
        password = (password or "").strip()
        if not email or not password:
            raise ValidationError("credentials", "Enter email and password")
        with self._busy("authenticate", ""):
            try:
                session = await run_in_threadpool(self._auth.sign_in, email, password)
            except AuthError as exc:
                logger.info("Sign-in failed for %s: %s", email, exc.code)
                raise AuthError(exc.code, friendly_auth_message(exc)) from exc
        self.state.session = session
        await run_in_threadpool(self.mirror.start)
        logger.info("Operator %s signed in", session.email)
        return session

    async def deauthenticate(self) -> None:
        session = self.state.session
        self.state.session = None
        try:
            if session is not None:
                await run_in_threadpool(self._auth.sign_out, session)
        finally:
            self.mirror.stop()
            self.state.thumbnail_urls.clear()

    # Filtering and rendering ----------------------------------------------

    def set_filter(
        self, text: Optional[str] = None, category: Optional[str] = None
    ) -> RecordFilter:
        selected = reconcile_category(
            category or ALL_CATEGORIES, self.mirror.categories
        )
        self.state.record_filter = RecordFilter.from_input(text, selected)
        return self.state.record_filter

    def visible_records(
        self, record_filter: Optional[RecordFilter] = None
    ) -> list[CardRecord]:
        record_filter = record_filter or self.state.record_filter
        records = filter_records(self.mirror.records, record_filter)
        return sort_records(records)

    def render(self, record_filter: Optional[RecordFilter] = None) -> AdminView:
        """Build the editable list from the mirror. Makes no network calls."""
        record_filter = record_filter or self.state.record_filter
        records = self.visible_records(record_filter)
        now = self._clock()
        rows = [
            AdminRow(
                record=record,
                thumbnail_url=self.state.thumbnail_urls.get(record.storage_path, now),
            )
            for record in records
        ]
        return AdminView(
            rows=rows,
            categories=sorted_categories(self.mirror.categories),
            selected_category=record_filter.category,
            total=len(rows),
        )

    async def hydrate_thumbnails(
        self, record_filter: Optional[RecordFilter] = None
    ) -> None:
        """Resolve a thumbnail URL for every visible record lacking a live one."""
        for record in self.visible_records(record_filter):
            path = record.storage_path
            if not path or self.state.thumbnail_urls.get(path, self._clock()):
                continue
            signed_at = self._clock()
            try:
                url = await run_in_threadpool(
                    self._storage.presign_get, path, self._url_expires_in
                )
            except Exception:
                logger.debug("No thumbnail for %s", path, exc_info=True)
                continue
            self.state.thumbnail_urls.put(path, url, signed_at, self._url_expires_in)

    def _on_snapshot(self, records, categories) -> None:
        current = self.state.record_filter
        selected = reconcile_category(current.category, categories)
        if selected != current.category:
            self.state.record_filter = RecordFilter(
                text=current.text, category=selected
            )

    # Mutations -------------------------------------------------------------

    async def create_record(
        self, category: Any, side: Any, order: Any, image: Optional[bytes]
    ) -> CreateResult:
        """
        Create a record in three non-atomic writes.

        A failure after the document exists raises ``CreateFailed`` with the
        last completed stage; the partial record is left for a later repair.
        """
        self.require_session()
        category, side, order = validate_fields(category, side, order)
        if not image:
            raise ValidationError("image", "Choose an image file")

        with self._busy("create", ""):
            png = await run_in_threadpool(to_png_bytes, image)
            record_id = await self._call(
                self._store.add,
                {
                    "category": category,
                    "side": side,
                    "order": order,
                    "storagePath": "",
                },
            )
            stage = CreateStage.METADATA_ONLY
            path = blob_path(record_id, self._blob_prefix)
            try:
                await self._upload(path, png)
                stage = CreateStage.IMAGE_UPLOADED
                await self._call(self._store.update, record_id, {"storagePath": path})
                stage = CreateStage.PATH_LINKED
            except (StoreError, NotFoundError) as exc:
                logger.warning(
                    "[%s] Create stopped at %s: %s", record_id, stage.value, exc.message
                )
                raise CreateFailed(
                    exc.message, record_id=record_id, stage=stage
                ) from exc

        logger.info("[%s] Created %s/%s order %s", record_id, category, side, order)
        return CreateResult(record_id=record_id, storage_path=path, stage=stage)

    async def update_record(
        self, record_id: str, category: Any, side: Any, order: Any
    ) -> None:
        self.require_session()
        category, side, order = validate_fields(category, side, order)
        with self._busy("save", record_id):
            await self._call(
                self._store.update,
                record_id,
                {"category": category, "side": side, "order": order},
            )
        logger.info("[%s] Saved %s/%s order %s", record_id, category, side, order)

    async def replace_image(self, record_id: str, image: Optional[bytes]) -> str:
        """Upload a new image for a record and return a cache-busted thumbnail URL."""
        self.require_session()
        if not image:
            raise ValidationError("image", "Choose an image file")
        record = self._get(record_id)
        with self._busy("replace_image", record_id):
            png = await run_in_threadpool(to_png_bytes, image)
            path = record.storage_path or blob_path(record_id, self._blob_prefix)
            await self._upload(path, png)
            await self._call(self._store.update, record_id, {"storagePath": path})
            signed_at = self._clock()
            url = await self._call(
                self._storage.presign_get, path, self._url_expires_in
            )
        url = cache_busted(url, int(signed_at * 1000))
        self.state.thumbnail_urls.put(path, url, signed_at, self._url_expires_in)
        logger.info("[%s] Replaced image at %s", record_id, path)
        return url

    async def delete_record(self, record_id: str, confirmed: bool) -> bool:
        """
        Delete the blob (best-effort) and then the document.

        Returns ``False`` without touching anything when not confirmed. The
        row leaves the mirror once the store notifies.
        """
        self.require_session()
        if not confirmed:
            return False
        record = self._get(record_id)
        with self._busy("delete", record_id):
            path = record.storage_path
            if path:
                try:
                    await run_in_threadpool(self._storage.delete, path)
                except Exception:
                    logger.debug(
                        "[%s] Blob %s not removed", record_id, path, exc_info=True
                    )
                self.state.thumbnail_urls.pop(path)
            await self._call(self._store.delete, record_id)
        logger.info("[%s] Deleted", record_id)
        return True

    # Helpers ---------------------------------------------------------------

    def _get(self, record_id: str) -> CardRecord:
        record = self.mirror.get(record_id)
        if record is None:
            raise NotFoundError(f"No card template {record_id}")
        return record

    async def _upload(self, path: str, png: bytes) -> None:
        await self._call(
            self._storage.upload_bytes,
            path,
            png,
            content_type=PNG_CONTENT_TYPE,
            cache_control=self._cache_control,
        )

    async def _call(self, fn, *args, **kwargs):
        try:
            return await run_in_threadpool(fn, *args, **kwargs)
        except CardShelfError:
            raise
        except Exception as exc:
            raise StoreError(str(exc) or exc.__class__.__name__) from exc

    @contextmanager
    def _busy(self, action: str, record_id: str):
        key = (action, record_id)
        if key in self.state.in_flight:
            raise BusyError(f"{action} already running")
        self.state.in_flight.add(key)
        try:
            yield
        finally:
            self.state.in_flight.discard(key)
