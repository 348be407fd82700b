from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from mediacdn.core.config import Settings
from mediacdn.db.models import FileRecord


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    version: Optional[str] = None
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class UploadJSONRequest(BaseModel):
    image: str = Field(..., description="Base64 payload or a data URL.")
    filename: str = Field(default="", json_schema_extra={"example": "photo.jpg"})
    force: bool = Field(default=False, description="Overwrite an existing file with the same name.")


class FileUrls(BaseModel):
    image: str
    thumbnail: Optional[str] = None


class FileRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    filename: str
    thumb_filename: str
    file_hash: str
    original_width: int
    original_height: int
    width: int
    height: int
    thumb_width: int
    thumb_height: int
    file_size: int
    thumb_size: int
    extension: str
    mime_type: str
    created_at: datetime
    updated_at: datetime
    urls: FileUrls

    @classmethod
    def from_record(cls, record: FileRecord, settings: Settings) -> "FileRecordResponse":
        urls = FileUrls(
            image=f"{settings.images_url}{record.filename}",
            thumbnail=f"{settings.thumbs_url}{record.thumb_filename}" if record.thumb_filename else None,
        )
        return cls(
            id=record.id,
            filename=record.filename,
            thumb_filename=record.thumb_filename,
            file_hash=record.file_hash,
            original_width=record.original_width,
            original_height=record.original_height,
            width=record.width,
            height=record.height,
            thumb_width=record.thumb_width,
            thumb_height=record.thumb_height,
            file_size=record.file_size,
            thumb_size=record.thumb_size,
            extension=record.extension,
            mime_type=record.mime_type,
            created_at=record.created_at,
            updated_at=record.updated_at,
            urls=urls,
        )


class UploadResponse(BaseModel):
    status: str = Field(default="success")
    message: str = Field(default="File uploaded successfully")
    data: FileRecordResponse


__all__ = [
    "HealthResponse",
    "UploadJSONRequest",
    "FileUrls",
    "FileRecordResponse",
    "UploadResponse",
]
