"""
HTTP routes for the admin editor and the public gallery.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, Query, UploadFile

from cardshelf.admin import AdminController, AdminRow
from cardshelf.dependencies import get_admin_controller, get_public_controller
from cardshelf.errors import NotAuthenticatedError
from cardshelf.models import CardRecord
from cardshelf.public import CardSlot, PublicController
from cardshelf.schemas import (
    AdminListResponse,
    AdminRowModel,
    CardPairModel,
    CardRecordModel,
    CardSlotModel,
    CreateRecordResponse,
    DeleteRecordResponse,
    DownloadResponse,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    PairsResponse,
    ReplaceImageResponse,
    UpdateRecordRequest,
    UpdateRecordResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _record_model(record: CardRecord) -> CardRecordModel:
    return CardRecordModel(**record.as_dict())


def _row_model(row: AdminRow) -> AdminRowModel:
    return AdminRowModel(
        record=_record_model(row.record), thumbnail_url=row.thumbnail_url
    )


def _slot_model(slot: CardSlot) -> CardSlotModel:
    return CardSlotModel(
        label=slot.label,
        placeholder=slot.placeholder,
        card=_record_model(slot.card) if slot.card else None,
        image_url=slot.image_url,
    )


async def _read_upload(file: Optional[UploadFile]) -> Optional[bytes]:
    if file is None:
        return None
    return await file.read()


def require_admin(
    authorization: Optional[str] = Header(None),
    admin: AdminController = Depends(get_admin_controller),
) -> AdminController:
    """Admin routes need the bearer token handed out at login."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise NotAuthenticatedError()
    admin.require_session(token.strip())
    return admin


# Admin -----------------------------------------------------------------------


@router.post("/admin/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest, admin: AdminController = Depends(get_admin_controller)
):
    session = await admin.authenticate(payload.email, payload.password)
    return LoginResponse(
        uid=session.uid, email=session.email, id_token=session.id_token
    )


@router.post("/admin/logout", response_model=LogoutResponse)
async def logout(admin: AdminController = Depends(require_admin)):
    await admin.deauthenticate()
    return LogoutResponse(status="ok")


@router.get("/admin/records", response_model=AdminListResponse)
async def list_records(
    q: Optional[str] = Query(None, max_length=200),
    category: Optional[str] = Query(None),
    admin: AdminController = Depends(require_admin),
):
    record_filter = admin.set_filter(q, category)
    await admin.hydrate_thumbnails(record_filter)
    view = admin.render(record_filter)
    return AdminListResponse(
        records=[_row_model(row) for row in view.rows],
        categories=view.categories,
        selected_category=view.selected_category,
        total=view.total,
    )


@router.post("/admin/records", response_model=CreateRecordResponse, status_code=201)
async def create_record(
    category: Optional[str] = Form(None),
    side: Optional[str] = Form(None),
    order: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    admin: AdminController = Depends(require_admin),
):
    """
    Upload a new card face. The image is stored as PNG whatever its format.
    """
    image = await _read_upload(file)
    result = await admin.create_record(category, side, order, image)
    return CreateRecordResponse(
        record_id=result.record_id,
        storage_path=result.storage_path,
        stage=result.stage.value,
    )


@router.patch("/admin/records/{record_id}", response_model=UpdateRecordResponse)
async def update_record(
    record_id: str,
    payload: UpdateRecordRequest,
    admin: AdminController = Depends(require_admin),
):
    await admin.update_record(
        record_id, payload.category, payload.side, payload.order
    )
    return UpdateRecordResponse(status="saved")


@router.put(
    "/admin/records/{record_id}/image", response_model=ReplaceImageResponse
)
async def replace_image(
    record_id: str,
    file: Optional[UploadFile] = File(None),
    admin: AdminController = Depends(require_admin),
):
    image = await _read_upload(file)
    url = await admin.replace_image(record_id, image)
    return ReplaceImageResponse(record_id=record_id, thumbnail_url=url)


@router.delete("/admin/records/{record_id}", response_model=DeleteRecordResponse)
async def delete_record(
    record_id: str,
    confirm: bool = Query(False),
    admin: AdminController = Depends(require_admin),
):
    deleted = await admin.delete_record(record_id, confirmed=confirm)
    return DeleteRecordResponse(status="deleted" if deleted else "cancelled")


# Public ----------------------------------------------------------------------


@router.get("/public/pairs", response_model=PairsResponse)
async def list_pairs(
    q: Optional[str] = Query(None, max_length=200),
    category: Optional[str] = Query(None),
    public: PublicController = Depends(get_public_controller),
):
    record_filter = public.set_filter(q, category)
    await public.resolve_images(record_filter)
    view = public.render(record_filter)
    pairs = [
        CardPairModel(
            category=pair.category,
            order=pair.order,
            front=_slot_model(pair.front),
            back=_slot_model(pair.back),
        )
        for pair in view.pairs
    ]
    return PairsResponse(
        pairs=pairs,
        categories=view.categories,
        selected_category=view.selected_category,
    )


@router.get("/public/cards/{record_id}/download", response_model=DownloadResponse)
async def download_card(
    record_id: str, public: PublicController = Depends(get_public_controller)
):
    link = await public.download(record_id)
    return DownloadResponse(url=link.url, filename=link.filename)
