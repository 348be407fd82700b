from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from mediacdn.core.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FileRecord(Base):
    """One logically distinct stored object: a full-size blob plus an optional thumbnail."""

    __tablename__ = "cdn_files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    filename: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    thumb_filename: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    file_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    original_width: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    original_height: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    width: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    height: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    thumb_width: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    thumb_height: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    thumb_size: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    extension: Mapped[str] = mapped_column(String(16), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def touch(self) -> None:
        self.updated_at = utcnow()

    def __repr__(self) -> str:
        return f"FileRecord(id={self.id!r}, filename={self.filename!r}, file_hash={self.file_hash!r})"


__all__ = ["FileRecord", "utcnow"]
