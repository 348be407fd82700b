from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mediacdn.db.models import FileRecord


class FileRecordRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_filename(self, filename: str) -> FileRecord | None:
        result = await self.session.execute(select(FileRecord).where(FileRecord.filename == filename))
        return result.scalar_one_or_none()

    async def get_by_hash(self, file_hash: str) -> FileRecord | None:
        stmt = select(FileRecord).where(FileRecord.file_hash == file_hash).order_by(FileRecord.id).limit(1)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get_by_hash_excluding(self, file_hash: str, record_id: int) -> FileRecord | None:
        stmt = (
            select(FileRecord)
            .where(FileRecord.file_hash == file_hash, FileRecord.id != record_id)
            .order_by(FileRecord.id)
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def count_by_hash_excluding_filename(self, file_hash: str, filename: str) -> int:
        stmt = select(func.count()).select_from(FileRecord).where(
            FileRecord.file_hash == file_hash,
            FileRecord.filename != filename,
        )
        return int((await self.session.execute(stmt)).scalar_one())

    async def add(self, record: FileRecord) -> FileRecord:
        self.session.add(record)
        await self.session.flush()  # assigns the surrogate id
        return record

    async def touch(self, record: FileRecord) -> FileRecord:
        record.touch()
        await self.session.flush()
        return record

    async def delete(self, record: FileRecord) -> None:
        await self.session.delete(record)
        await self.session.flush()


__all__ = ["FileRecordRepository"]
