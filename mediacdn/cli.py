from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .core.config import Settings, get_settings
from .core.db import create_engine, create_schema, create_session_factory
from .core.errors import IngestError, OrphanedBlobError
from .core.logging import configure_logging
from .core.storage import get_storage
from .services.backfill_service import BackfillService, BackfillSummary
from .services.ingest_service import IngestOptions, IngestRequest, IngestService

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    settings = get_settings()
    configure_logging(level=settings.log_level)
    args.func(args, settings)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Media CDN operator CLI")
    subparsers = parser.add_subparsers(dest="command")

    init_parser = subparsers.add_parser("init-db", help="Create the metadata tables")
    init_parser.set_defaults(func=_cmd_init_db)

    ingest_parser = subparsers.add_parser("ingest", help="Run a local file through the ingest pipeline")
    ingest_parser.add_argument("--file", required=True, help="Path to the file to ingest")
    ingest_parser.add_argument("--filename", default=None, help="Requested filename (defaults to the file's name)")
    ingest_parser.add_argument("--force", action="store_true", help="Overwrite an existing file with the same name")
    ingest_parser.set_defaults(func=_cmd_ingest)

    backfill_parser = subparsers.add_parser(
        "backfill",
        help="Create or refresh records for files already present in storage",
    )
    backfill_parser.set_defaults(func=_cmd_backfill)
    return parser


def _cmd_init_db(args: argparse.Namespace, settings: Settings) -> None:
    asyncio.run(_init_db(settings))
    console.print(f"[green]Schema ready at {settings.database_url}[/]")


async def _init_db(settings: Settings) -> None:
    engine = create_engine(settings)
    try:
        await create_schema(engine)
    finally:
        await engine.dispose()


def _cmd_ingest(args: argparse.Namespace, settings: Settings) -> None:
    """Ingest a single local file and print the resulting record.

    Args:
        args: The command-line arguments.
        settings: The active settings.
    """
    path = Path(args.file).expanduser().resolve()
    if not path.is_file():
        console.print(f"[red]File not found: {path}[/]")
        sys.exit(2)

    filename = args.filename if args.filename is not None else path.name
    request = IngestRequest(data=path.read_bytes(), filename=filename, force=args.force)
    try:
        record = asyncio.run(_ingest(settings, request))
    except OrphanedBlobError as exc:
        console.print(f"[red]Ingest failed ({exc.reason}); orphaned blobs: {', '.join(exc.filenames)}[/]")
        sys.exit(4)
    except IngestError as exc:
        console.print(f"[red]Ingest failed:[/] {exc.reason}")
        sys.exit(3)
    console.print_json(data=record)


async def _ingest(settings: Settings, request: IngestRequest) -> dict:
    engine = create_engine(settings)
    try:
        session_factory = create_session_factory(engine)
        async with session_factory() as session:
            service = IngestService.from_settings(settings, get_storage(settings), session)
            record = await service.ingest(request)
            return {
                "id": record.id,
                "filename": record.filename,
                "thumb_filename": record.thumb_filename,
                "file_hash": record.file_hash,
                "width": record.width,
                "height": record.height,
                "file_size": record.file_size,
                "mime_type": record.mime_type,
                "updated_at": record.updated_at.isoformat(),
            }
    finally:
        await engine.dispose()


def _cmd_backfill(args: argparse.Namespace, settings: Settings) -> None:
    summary = asyncio.run(_backfill(settings))

    table = Table(title="Backfill summary")
    table.add_column("Metric")
    table.add_column("Count", justify="right")
    for label, value in asdict(summary).items():
        table.add_row(label.replace("_", " "), str(value))
    console.print(table)


async def _backfill(settings: Settings) -> BackfillSummary:
    engine = create_engine(settings)
    try:
        session_factory = create_session_factory(engine)
        async with session_factory() as session:
            service = BackfillService(IngestOptions.from_settings(settings), get_storage(settings), session)
            return await service.run()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    main()
