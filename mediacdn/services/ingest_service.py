from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mediacdn.core.config import Settings
from mediacdn.core.errors import DecodeError, InputError, OrphanedBlobError, StoreError
from mediacdn.core.logging import get_logger
from mediacdn.core.storage import Storage
from mediacdn.db.models import FileRecord, utcnow
from mediacdn.db.repository import FileRecordRepository
from mediacdn.ingest.classifier import ContentInfo, classify
from mediacdn.ingest.content_hash import compute_content_hash
from mediacdn.ingest.filenames import (
    ensure_extension,
    generate_random_filename,
    sanitize_filename,
    suffixed_candidates,
)
from mediacdn.ingest.resolver import Decision, Outcome, resolve
from mediacdn.ingest.transcoder import EncodedImage, ImageTranscoder

MAX_FILENAME_LENGTH = 255


@dataclass(frozen=True, slots=True)
class IngestOptions:
    """Pipeline configuration, fixed at construction time."""

    max_upload_size_bytes: int
    allowed_extensions: frozenset[str]
    thumbnail_extensions: frozenset[str]
    deduplicate_uploads: bool
    normalize_filenames: bool
    conflict_retries: int
    images_namespace: str
    thumbs_namespace: str
    max_image_size: int
    max_thumb_size: int
    jpeg_quality: int
    png_compression: int

    @classmethod
    def from_settings(cls, settings: Settings) -> "IngestOptions":
        return cls(
            max_upload_size_bytes=settings.max_upload_size_bytes,
            allowed_extensions=frozenset(ext.lower() for ext in settings.allowed_extensions),
            thumbnail_extensions=frozenset(ext.lower() for ext in settings.thumbnail_extensions),
            deduplicate_uploads=settings.deduplicate_uploads,
            normalize_filenames=settings.normalize_filenames,
            conflict_retries=settings.ingest_conflict_retries,
            images_namespace=settings.images_namespace,
            thumbs_namespace=settings.thumbs_namespace,
            max_image_size=settings.max_image_size,
            max_thumb_size=settings.max_thumb_size,
            jpeg_quality=settings.jpeg_quality,
            png_compression=settings.png_compression,
        )

    def build_transcoder(self) -> ImageTranscoder:
        return ImageTranscoder(
            max_image_size=self.max_image_size,
            max_thumb_size=self.max_thumb_size,
            jpeg_quality=self.jpeg_quality,
            png_compression=self.png_compression,
        )


@dataclass(frozen=True, slots=True)
class IngestRequest:
    data: bytes
    filename: str = ""
    force: bool = False


@dataclass(slots=True)
class PreparedPayload:
    """The submitted content after classification, resizing and fingerprinting."""

    info: ContentInfo
    data: bytes
    content_hash: str
    original_width: int = 0
    original_height: int = 0
    width: int = 0
    height: int = 0
    thumbnail: Optional[EncodedImage] = None


class IngestService:
    def __init__(self, options: IngestOptions, storage: Storage, session: AsyncSession):
        self.options = options
        self.storage = storage
        self.session = session
        self.repository = FileRecordRepository(session)
        self.transcoder = options.build_transcoder()
        self.logger = get_logger(component="ingest_service")

    @classmethod
    def from_settings(cls, settings: Settings, storage: Storage, session: AsyncSession) -> "IngestService":
        return cls(IngestOptions.from_settings(settings), storage, session)

    async def ingest(self, request: IngestRequest) -> FileRecord:
        """Store ``request.data`` and return the record that now represents it."""
        if not request.data:
            raise InputError("no_file_data", "No file data provided")
        if len(request.data) > self.options.max_upload_size_bytes:
            limit_mb = self.options.max_upload_size_bytes / 1024 / 1024
            raise InputError("upload_too_large", f"File too large. Maximum size is {limit_mb:g}MB")

        info = await asyncio.to_thread(classify, request.data)
        if info.extension.lower() not in self.options.allowed_extensions:
            raise InputError("file_type_not_allowed", f"File type not allowed: {info.mime_type}")

        filename = self.derive_filename(request.filename, info.extension)
        payload = await asyncio.to_thread(self.prepare, request.data, info)
        logger = self.logger.bind(filename=filename, file_hash=payload.content_hash, force=request.force)

        attempt = 0
        while True:
            try:
                return await self._resolve_and_apply(filename, payload, request.force, logger)
            except IntegrityError as exc:
                await self.session.rollback()
                attempt += 1
                if attempt > self.options.conflict_retries:
                    logger.error("ingest_conflict_exhausted", attempts=attempt)
                    raise StoreError("metadata_conflict", "Concurrent ingest kept conflicting") from exc
                logger.warning("ingest_conflict_retry", attempt=attempt)
            except SQLAlchemyError as exc:
                await self.session.rollback()
                logger.error("metadata_store_failed", error=str(exc))
                raise StoreError("metadata_store_failed", str(exc)) from exc

    def derive_filename(self, requested: str | None, extension: str) -> str:
        requested = (requested or "").strip()
        if not requested:
            return generate_random_filename(extension)

        if self.options.normalize_filenames:
            name = sanitize_filename(requested)
            if name is None:
                return generate_random_filename(extension)
        else:
            name = requested
            if name in {".", ".."} or any(sep in name for sep in ("/", "\\", "\x00")):
                raise InputError("invalid_filename", f"Filename cannot be stored as-is: {name!r}")

        name = ensure_extension(name, extension)
        if len(name) > MAX_FILENAME_LENGTH:
            raise InputError("invalid_filename", f"Filename longer than {MAX_FILENAME_LENGTH} characters")
        return name

    def prepare(self, data: bytes, info: ContentInfo) -> PreparedPayload:
        """Resize, fingerprint and thumbnail ``data``; runs in a worker thread."""
        payload = PreparedPayload(info=info, data=data, content_hash="")
        if info.is_image:
            wants_thumbnail = info.extension.lower() in self.options.thumbnail_extensions
            try:
                result = self.transcoder.transcode(data, info.extension, with_thumbnail=wants_thumbnail)
            except DecodeError as exc:
                if wants_thumbnail or exc.reason != "image_decode_failed":
                    raise
                # Formats the decoder cannot rasterise (svg, heic, ...) are stored as submitted.
                self.logger.warning("image_not_rasterisable", mime_type=info.mime_type)
            else:
                payload.data = result.full.data
                payload.original_width = result.original_width
                payload.original_height = result.original_height
                payload.width = result.full.width
                payload.height = result.full.height
                payload.thumbnail = result.thumbnail
        payload.content_hash = compute_content_hash(payload.data)
        return payload

    async def _resolve_and_apply(self, filename: str, payload: PreparedPayload, force: bool, logger) -> FileRecord:
        by_filename = await self.repository.get_by_filename(filename)
        if force and by_filename is not None and by_filename.file_hash != payload.content_hash:
            by_hash = await self.repository.get_by_hash_excluding(payload.content_hash, by_filename.id)
        else:
            by_hash = await self.repository.get_by_hash(payload.content_hash)
        decision = resolve(
            filename=filename,
            content_hash=payload.content_hash,
            force=force,
            deduplicate=self.options.deduplicate_uploads,
            by_filename=by_filename,
            by_hash=by_hash,
        )
        logger.info(
            "ingest_decision",
            outcome=decision.outcome.value,
            target_id=decision.target.id if decision.target is not None else None,
            discard_id=decision.discard.id if decision.discard is not None else None,
        )
        handlers: dict[Outcome, Callable[[Decision, PreparedPayload], Awaitable[FileRecord]]] = {
            Outcome.adopt_existing: self._adopt_existing,
            Outcome.replace_in_place: self._replace_in_place,
            Outcome.update_in_place: self._update_in_place,
            Outcome.rename_and_create: self._create,
            Outcome.create_new: self._create,
        }
        return await handlers[decision.outcome](decision, payload)

    async def _adopt_existing(self, decision: Decision, payload: PreparedPayload) -> FileRecord:
        target = decision.target
        assert isinstance(target, FileRecord)
        stale: list[tuple[str, str]] = []
        if decision.discard is not None:
            assert isinstance(decision.discard, FileRecord)
            stale = self._blobs_of(decision.discard.filename, decision.discard.thumb_filename)
            await self.repository.delete(decision.discard)
        await self.repository.touch(target)
        await self._commit(target, written=())
        await self._delete_stale(stale)
        return target

    async def _create(self, decision: Decision, payload: PreparedPayload) -> FileRecord:
        filename = decision.filename
        if decision.needs_unique_name:
            filename = await self._unique_filename(filename)
        now = utcnow()
        record = FileRecord(filename=filename, created_at=now, updated_at=now)
        self._apply_payload(record, filename, payload)
        await self.repository.add(record)
        written = await self._write_blobs(filename, payload)
        await self._commit(record, written=written)
        return record

    async def _replace_in_place(self, decision: Decision, payload: PreparedPayload) -> FileRecord:
        target = decision.target
        assert isinstance(target, FileRecord)
        return await self._rewrite(target, target.filename, payload)

    async def _update_in_place(self, decision: Decision, payload: PreparedPayload) -> FileRecord:
        target = decision.target
        assert isinstance(target, FileRecord)
        filename = decision.filename
        if decision.needs_unique_name:
            filename = await self._unique_filename(filename, owner_id=target.id)
        return await self._rewrite(target, filename, payload)

    async def _rewrite(self, target: FileRecord, filename: str, payload: PreparedPayload) -> FileRecord:
        """Point ``target`` at freshly written blobs; blobs no longer referenced go after the commit."""
        previous = set(self._blobs_of(target.filename, target.thumb_filename))
        self._apply_payload(target, filename, payload)
        await self.session.flush()
        written = await self._write_blobs(filename, payload)
        current = set(self._blobs_of(target.filename, target.thumb_filename))
        await self._commit(target, written=written)
        await self._delete_stale(sorted(previous - current))
        return target

    def _apply_payload(self, record: FileRecord, filename: str, payload: PreparedPayload) -> None:
        thumbnail = payload.thumbnail
        record.filename = filename
        record.thumb_filename = filename if thumbnail is not None else ""
        record.file_hash = payload.content_hash
        record.original_width = payload.original_width
        record.original_height = payload.original_height
        record.width = payload.width
        record.height = payload.height
        record.thumb_width = thumbnail.width if thumbnail is not None else 0
        record.thumb_height = thumbnail.height if thumbnail is not None else 0
        record.thumb_size = thumbnail.size_bytes if thumbnail is not None else 0
        record.file_size = len(payload.data)
        record.extension = payload.info.extension
        record.mime_type = payload.info.mime_type
        record.touch()

    def _blobs_of(self, filename: str, thumb_filename: str) -> list[tuple[str, str]]:
        blobs = [(self.options.images_namespace, filename)]
        if thumb_filename:
            blobs.append((self.options.thumbs_namespace, thumb_filename))
        return blobs

    async def _unique_filename(self, filename: str, *, owner_id: int | None = None) -> str:
        for candidate in suffixed_candidates(filename):
            holder = await self.repository.get_by_filename(candidate)
            if holder is None or holder.id == owner_id:
                return candidate
        raise AssertionError("unreachable")  # pragma: no cover - candidates are unbounded

    async def _write_blobs(self, filename: str, payload: PreparedPayload) -> tuple[str, ...]:
        written: list[str] = []
        targets = [(self.options.images_namespace, payload.data)]
        if payload.thumbnail is not None:
            targets.append((self.options.thumbs_namespace, payload.thumbnail.data))
        try:
            for namespace, data in targets:
                await asyncio.to_thread(self.storage.write, namespace, filename, data)
                written.append(f"{namespace}/{filename}")
        except (OSError, ValueError) as exc:
            await self.session.rollback()
            if written:
                self.logger.error("orphaned_blob", blobs=written, stage="blob_write", error=str(exc))
                raise OrphanedBlobError("blob_write_failed", filenames=tuple(written), message=str(exc)) from exc
            self.logger.error("blob_write_failed", filename=filename, error=str(exc))
            raise StoreError("blob_write_failed", str(exc)) from exc
        return tuple(written)

    async def _delete_stale(self, blobs: list[tuple[str, str]]) -> None:
        """Remove blobs no committed row refers to any more."""
        for index, (namespace, name) in enumerate(blobs):
            try:
                await asyncio.to_thread(self.storage.delete, namespace, name)
            except (OSError, ValueError) as exc:
                remaining = tuple(f"{ns}/{n}" for ns, n in blobs[index:])
                self.logger.error("orphaned_blob", blobs=remaining, stage="blob_delete", error=str(exc))
                raise OrphanedBlobError("blob_delete_failed", filenames=remaining, message=str(exc)) from exc

    async def _commit(self, record: FileRecord, *, written: tuple[str, ...]) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            if written:
                self.logger.error("orphaned_blob", blobs=written, stage="metadata_commit", error=str(exc))
                raise OrphanedBlobError("metadata_write_failed", filenames=written, message=str(exc)) from exc
            raise StoreError("metadata_write_failed", str(exc)) from exc
        await self.session.refresh(record)


__all__ = ["IngestService", "IngestOptions", "IngestRequest", "PreparedPayload"]
