from __future__ import annotations

import asyncio

from mediacdn.core.config import get_settings
from mediacdn.core.db import create_engine, create_session_factory
from mediacdn.ingest.content_hash import compute_content_hash
from mediacdn.services.backfill_service import BackfillService, BackfillSummary
from mediacdn.services.ingest_service import IngestOptions
from tests.conftest import decode, encode_image, ingest, list_records


def run_backfill(storage) -> BackfillSummary:
    async def _run():
        settings = get_settings()
        engine = create_engine(settings)
        try:
            async with create_session_factory(engine)() as session:
                service = BackfillService(IngestOptions.from_settings(settings), storage, session)
                return await service.run()
        finally:
            await engine.dispose()

    return asyncio.run(_run())


def test_unknown_files_get_records_and_thumbnails(storage):
    jpeg = encode_image(200, 100, "jpg", seed=1)
    storage.write("img", "a.jpg", jpeg)
    storage.write("img", "b.png", encode_image(50, 50, "png", seed=2))

    summary = run_backfill(storage)

    assert summary == BackfillSummary(processed=2, created=2, updated=0, skipped=0, thumbnails_created=2)
    records = {r.filename: r for r in list_records()}
    assert set(records) == {"a.jpg", "b.png"}
    assert records["a.jpg"].file_hash == compute_content_hash(jpeg)
    assert records["a.jpg"].thumb_filename == "a.jpg"
    assert (records["a.jpg"].thumb_width, records["a.jpg"].thumb_height) == (300, 150)
    assert storage.exists("thumbs", "b.png")


def test_second_run_only_refreshes(storage):
    storage.write("img", "a.jpg", encode_image(120, 80, "jpg"))
    run_backfill(storage)
    first = list_records()[0]

    summary = run_backfill(storage)

    assert summary.created == 0
    assert summary.updated == 1
    assert summary.thumbnails_created == 0
    again = list_records()[0]
    assert again.id == first.id
    assert again.updated_at > first.updated_at


def test_oversized_files_are_resized_in_place(storage):
    storage.write("img", "wide.jpg", encode_image(1400, 700, "jpg"))

    run_backfill(storage)

    stored = storage.read("img", "wide.jpg")
    assert decode(stored).shape[:2] == (350, 700)
    record = list_records()[0]
    assert (record.width, record.height) == (700, 350)
    assert (record.original_width, record.original_height) == (1400, 700)
    assert record.file_hash == compute_content_hash(stored)


def test_renamed_content_moves_its_record(storage):
    data = encode_image(90, 60, "jpg")
    original = ingest(data, "photo.jpg")
    storage.write("img", "moved.jpg", data)
    storage.delete("img", "photo.jpg")

    summary = run_backfill(storage)

    assert summary.updated == 1
    assert summary.thumbnails_created == 1
    records = list_records()
    assert len(records) == 1
    assert records[0].id == original.id
    assert records[0].filename == "moved.jpg"
    assert records[0].thumb_filename == "moved.jpg"
    assert storage.exists("thumbs", "moved.jpg")


def test_hash_owned_by_another_filename_is_kept(storage):
    a = encode_image(70, 70, "jpg", seed=1)
    b = encode_image(70, 70, "jpg", seed=2)
    ingest(a, "a.jpg")
    ingest(b, "b.jpg")
    storage.write("img", "b.jpg", a)

    summary = run_backfill(storage)

    assert summary.processed == 2
    assert summary.skipped == 0
    records = {r.filename: r for r in list_records()}
    assert records["a.jpg"].file_hash == compute_content_hash(a)
    assert records["b.jpg"].file_hash == compute_content_hash(b)


def test_missing_thumbnail_is_regenerated(storage):
    ingest(encode_image(100, 100, "png"), "tile.png")
    storage.delete("thumbs", "tile.png")

    summary = run_backfill(storage)

    assert summary.thumbnails_created == 1
    assert storage.exists("thumbs", "tile.png")


def test_disallowed_files_are_skipped(storage):
    storage.write("img", "notes.txt", b"some notes\n")

    summary = run_backfill(storage)

    assert summary.skipped == 1
    assert list_records() == []
