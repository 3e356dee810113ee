"""
Pydantic schemas for the card template API.
"""

from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

OrderValue = Union[int, float]


class LoginRequest(BaseModel):
    email: Optional[str] = Field(None, max_length=320)
    password: Optional[str] = Field(None, max_length=1024)


class LoginResponse(BaseModel):
    uid: str
    email: str
    id_token: str


class LogoutResponse(BaseModel):
    status: Literal["ok"]


class CardRecordModel(BaseModel):
    id: str
    category: str
    side: str
    order: Optional[OrderValue] = None
    storage_path: str = ""
    created_at: Optional[float] = None
    updated_at: Optional[float] = None


class AdminRowModel(BaseModel):
    record: CardRecordModel
    thumbnail_url: Optional[str] = None


class AdminListResponse(BaseModel):
    records: list[AdminRowModel]
    categories: list[str]
    selected_category: str
    total: int


class UpdateRecordRequest(BaseModel):
    # Left loose so field checks report the same messages as create.
    category: Optional[str] = None
    side: Optional[str] = None
    order: Optional[Union[int, float, str]] = None


class CreateRecordResponse(BaseModel):
    record_id: str
    storage_path: str
    stage: str


class UpdateRecordResponse(BaseModel):
    status: Literal["saved"]


class ReplaceImageResponse(BaseModel):
    record_id: str
    thumbnail_url: str


class DeleteRecordResponse(BaseModel):
    status: Literal["deleted", "cancelled"]


class CardSlotModel(BaseModel):
    label: str
    placeholder: Optional[str] = None
    card: Optional[CardRecordModel] = None
    image_url: Optional[str] = None


class CardPairModel(BaseModel):
    category: str
    order: OrderValue
    front: CardSlotModel
    back: CardSlotModel


class PairsResponse(BaseModel):
    pairs: list[CardPairModel]
    categories: list[str]
    selected_category: str


class DownloadResponse(BaseModel):
    url: str
    filename: str


class ErrorResponse(BaseModel):
    detail: str
    field: Optional[str] = None
    stage: Optional[str] = None
    record_id: Optional[str] = None
