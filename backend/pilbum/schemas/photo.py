"""
Pilbum Backend — Photo Schemas
================================

What:  API contract for photos: the full photo record, paginated lists,
       the metadata patch accepted by PATCH /api/photos/{id}, batch delete
       and recovery results.
How:   PhotoResponse reads ORM rows directly (from_attributes) and serializes
       with camelCase keys.
"""

from datetime import datetime
from typing import Annotated, List, Optional
from uuid import UUID

from pydantic import AfterValidator, Field, field_validator

from pilbum.schemas.common import CamelModel, invalid

MAX_BATCH_DELETE = 100


class PhotoResponse(CamelModel):
    id: UUID
    title: str = ""
    description: Optional[str] = ""

    image_url: str
    thumbnail_url: str
    blur_data_url: Optional[str] = None
    width: int
    height: int

    is_live_photo: bool = False
    live_photo_video_url: Optional[str] = None

    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    lens_model: Optional[str] = None
    lens_make: Optional[str] = None
    software: Optional[str] = None

    focal_length: Optional[float] = None
    focal_length_35mm: Optional[float] = Field(default=None, alias="focalLength35mm")
    aperture: Optional[float] = None
    shutter_speed: Optional[str] = None
    exposure_time: Optional[float] = None
    iso: Optional[int] = None
    exposure_bias: Optional[float] = None
    exposure_program: Optional[str] = None
    exposure_mode: Optional[str] = None
    metering_mode: Optional[str] = None
    flash: Optional[str] = None
    white_balance: Optional[str] = None

    color_space: Optional[str] = None
    orientation: Optional[int] = None
    taken_at: Optional[datetime] = None

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None

    original_filename: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    sort_order: int = 0
    is_visible: bool = True
    created_at: datetime
    updated_at: datetime


class PhotoEnvelope(CamelModel):
    photo: PhotoResponse


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class PhotoListResponse(CamelModel):
    photos: List[PhotoResponse]
    pagination: Pagination


def _max_length(limit: int, message: Optional[str] = None):
    def check(v: str) -> str:
        if len(v) > limit:
            raise invalid(message or f"不能超过 {limit} 个字符")
        return v
    return AfterValidator(check)


def _between(low: float, high: float, message: str):
    def check(v: float) -> float:
        if not low <= v <= high:
            raise invalid(message)
        return v
    return AfterValidator(check)


class PhotoUpdate(CamelModel):
    """
    Metadata patch. Fields absent from the body are left untouched; fields
    sent as null clear the stored value (title, sortOrder and isVisible
    cannot be null).
    """

    title: Optional[Annotated[str, _max_length(200, "标题不能超过 200 个字符")]] = None
    description: Optional[Annotated[str, _max_length(2000, "描述不能超过 2000 个字符")]] = None
    sort_order: Optional[int] = None
    is_visible: Optional[bool] = None

    camera_make: Optional[Annotated[str, _max_length(100)]] = None
    camera_model: Optional[Annotated[str, _max_length(100)]] = None
    lens_model: Optional[Annotated[str, _max_length(200)]] = None
    lens_make: Optional[Annotated[str, _max_length(100)]] = None

    focal_length: Optional[float] = None
    aperture: Optional[float] = None
    shutter_speed: Optional[Annotated[str, _max_length(50)]] = None
    iso: Optional[int] = None

    taken_at: Optional[datetime] = None
    latitude: Optional[Annotated[float, _between(-90, 90, "纬度必须在 -90 到 90 之间")]] = None
    longitude: Optional[Annotated[float, _between(-180, 180, "经度必须在 -180 到 180 之间")]] = None
    altitude: Optional[float] = None

    @field_validator("sort_order", mode="before")
    @classmethod
    def sort_order_integer(cls, v):
        if isinstance(v, bool) or (isinstance(v, float) and not v.is_integer()):
            raise invalid("排序必须是整数")
        return v

    def changes(self) -> dict:
        """Snake-case column → value for every field the client sent."""
        data = self.model_dump(include=self.model_fields_set)
        for required in ("title", "sort_order", "is_visible"):
            if required in data and data[required] is None:
                data.pop(required)
        return data


class BatchDeleteRequest(CamelModel):
    ids: List[str] = Field(default_factory=list)

    model_config = {"validate_default": True}

    @field_validator("ids")
    @classmethod
    def validate_ids(cls, v: List[str]) -> List[str]:
        if len(v) < 1:
            raise invalid("至少选择一张照片")
        if len(v) > MAX_BATCH_DELETE:
            raise invalid(f"一次最多删除{MAX_BATCH_DELETE}张")
        for item in v:
            try:
                UUID(item)
            except (ValueError, TypeError, AttributeError):
                raise invalid("无效的照片 ID") from None
        return v

    def uuids(self) -> List[UUID]:
        return [UUID(item) for item in self.ids]


class BatchDeleteResponse(CamelModel):
    success: bool = True
    deleted: int


class RecoveryDetails(CamelModel):
    recovered: List[str]
    errors: List[str]


class RecoveryResponse(CamelModel):
    success: bool = True
    recovered: int
    errors: int
    details: RecoveryDetails
