from __future__ import annotations

import asyncio
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mediacdn.core.errors import DecodeError
from mediacdn.core.logging import get_logger
from mediacdn.core.storage import Storage
from mediacdn.db.models import FileRecord, utcnow
from mediacdn.ingest.classifier import classify
from mediacdn.ingest.transcoder import decode_image, image_size
from mediacdn.services.ingest_service import IngestOptions, IngestService, PreparedPayload


@dataclass(slots=True)
class BackfillSummary:
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    thumbnails_created: int = 0


class BackfillService:
    """Reconcile blobs already sitting in the full-size namespace with the metadata store.

    Files without a record get one, records whose content moved to another
    name follow it, hashes are refreshed unless another filename already
    owns them, and missing thumbnails are generated.
    """

    def __init__(self, options: IngestOptions, storage: Storage, session: AsyncSession):
        self.options = options
        self.storage = storage
        self.session = session
        self.ingest = IngestService(options, storage, session)
        self.repository = self.ingest.repository
        self.logger = get_logger(component="backfill_service")

    async def run(self) -> BackfillSummary:
        summary = BackfillSummary()
        names = await asyncio.to_thread(lambda: list(self.storage.list(self.options.images_namespace)))
        for name in names:
            await self.backfill_file(name, summary)
        self.logger.info(
            "backfill_completed",
            processed=summary.processed,
            created=summary.created,
            updated=summary.updated,
            skipped=summary.skipped,
            thumbnails_created=summary.thumbnails_created,
        )
        return summary

    async def backfill_file(self, filename: str, summary: BackfillSummary) -> None:
        summary.processed += 1
        logger = self.logger.bind(filename=filename)
        data = await asyncio.to_thread(self.storage.read, self.options.images_namespace, filename)
        info = await asyncio.to_thread(classify, data)
        if info.extension.lower() not in self.options.allowed_extensions:
            logger.info("backfill_skipped", reason="file_type_not_allowed", extension=info.extension)
            summary.skipped += 1
            return

        try:
            payload = await asyncio.to_thread(self.ingest.prepare, data, info)
        except DecodeError as exc:
            logger.warning("backfill_skipped", reason=exc.reason)
            summary.skipped += 1
            return

        if payload.data is not data:
            logger.info("backfill_resized", width=payload.width, height=payload.height)
            await asyncio.to_thread(self.storage.write, self.options.images_namespace, filename, payload.data)

        by_filename = await self.repository.get_by_filename(filename)
        by_hash = await self.repository.get_by_hash(payload.content_hash)

        if by_filename is None and by_hash is None:
            await self._create_record(filename, payload, summary, logger)
            return

        if by_filename is None:
            assert by_hash is not None
            logger.info("backfill_content_renamed", record_id=by_hash.id, previous=by_hash.filename)
            record = by_hash
            record.filename = filename
            record.thumb_filename = ""
        else:
            record = by_filename
            elsewhere = await self.repository.count_by_hash_excluding_filename(payload.content_hash, filename)
            if elsewhere:
                logger.warning("backfill_hash_owned_elsewhere", record_id=record.id)
            else:
                record.file_hash = payload.content_hash

        if payload.data is not data:
            record.width = payload.width
            record.height = payload.height
            record.file_size = len(payload.data)
        record.touch()
        await self._ensure_thumbnail(record, payload, summary)
        await self.session.commit()
        summary.updated += 1

    async def _create_record(self, filename: str, payload: PreparedPayload, summary: BackfillSummary, logger) -> None:
        now = utcnow()
        record = FileRecord(
            filename=filename,
            thumb_filename="",
            file_hash=payload.content_hash,
            original_width=payload.original_width,
            original_height=payload.original_height,
            width=payload.width,
            height=payload.height,
            file_size=len(payload.data),
            extension=payload.info.extension,
            mime_type=payload.info.mime_type,
            created_at=now,
            updated_at=now,
        )
        await self._ensure_thumbnail(record, payload, summary)
        self.session.add(record)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.warning("backfill_skipped", reason="duplicate_record")
            summary.skipped += 1
            return
        logger.info("backfill_record_created", record_id=record.id)
        summary.created += 1

    async def _ensure_thumbnail(self, record: FileRecord, payload: PreparedPayload, summary: BackfillSummary) -> None:
        if payload.thumbnail is None:
            return
        namespace = self.options.thumbs_namespace
        if await asyncio.to_thread(self.storage.exists, namespace, record.filename):
            if record.thumb_filename == record.filename:
                return
            existing = await asyncio.to_thread(self.storage.read, namespace, record.filename)
            width, height = image_size(await asyncio.to_thread(decode_image, existing))
            size_bytes = len(existing)
        else:
            thumbnail = payload.thumbnail
            await asyncio.to_thread(self.storage.write, namespace, record.filename, thumbnail.data)
            width, height, size_bytes = thumbnail.width, thumbnail.height, thumbnail.size_bytes
            summary.thumbnails_created += 1
        record.thumb_filename = record.filename
        record.thumb_width = width
        record.thumb_height = height
        record.thumb_size = size_bytes


__all__ = ["BackfillService", "BackfillSummary"]
