"""Report archive: append-only, most-recent-first history of analyses.

The archive mints record identity (uuid4 id, UTC timestamp) and owns
ordering. Appends are serialized so concurrent pipeline completions never
lose or reorder records. There is no per-record update or delete; clear()
removes everything.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hemoscan.config import settings
from hemoscan.database import async_session_maker
from hemoscan.models.report import ReportRecordRow
from hemoscan.schemas.cbc import CBCSample
from hemoscan.schemas.diagnosis import AugmentedResult
from hemoscan.schemas.report import ReportRecord

logger = logging.getLogger(__name__)


class ArchiveError(RuntimeError):
    """Base class for report archive failures."""


class ArchiveWriteError(ArchiveError):
    """Raised when a completed record cannot be persisted."""


class ArchiveReadError(ArchiveError):
    """Raised when archived reports cannot be loaded."""


class ReportArchive(Protocol):
    """Storage contract consumed by the pipeline and the reports API."""

    async def append(self, sample: CBCSample, result: AugmentedResult) -> ReportRecord: ...

    async def list(self) -> list[ReportRecord]: ...

    async def clear(self) -> int: ...


def _new_record(sample: CBCSample, result: AugmentedResult) -> ReportRecord:
    return ReportRecord(
        id=uuid.uuid4(),
        created_at=datetime.now(timezone.utc),
        sample=sample,
        result=result,
    )


class InMemoryReportArchive:
    """Process-local archive guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._records: list[ReportRecord] = []
        self._lock = asyncio.Lock()

    async def append(self, sample: CBCSample, result: AugmentedResult) -> ReportRecord:
        async with self._lock:
            record = _new_record(sample, result)
            self._records.insert(0, record)
            return record

    async def list(self) -> list[ReportRecord]:
        async with self._lock:
            return list(self._records)

    async def clear(self) -> int:
        async with self._lock:
            removed = len(self._records)
            self._records.clear()
            return removed


def row_to_record(row: ReportRecordRow) -> ReportRecord:
    """Convert a persisted row back into a ReportRecord."""
    return ReportRecord(
        id=row.id,
        created_at=row.created_at,
        sample=CBCSample.model_validate(row.sample),
        result=AugmentedResult.model_validate(row.result),
    )


class SqlReportArchive:
    """Archive persisted in the report_records table.

    Example:
        archive = SqlReportArchive(async_session_maker)
        record = await archive.append(sample, result)
        latest = (await archive.list())[0]
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker
        self._lock = asyncio.Lock()

    async def append(self, sample: CBCSample, result: AugmentedResult) -> ReportRecord:
        """Persist a finalized analysis.

        Raises:
            ArchiveWriteError: If the insert fails.
        """
        record = _new_record(sample, result)
        row = ReportRecordRow(
            id=record.id,
            created_at=record.created_at,
            sample=sample.model_dump(mode="json"),
            result=result.model_dump(mode="json"),
        )
        async with self._lock:
            try:
                async with self._session_maker() as db:
                    db.add(row)
                    await db.commit()
            except SQLAlchemyError as e:
                raise ArchiveWriteError(f"Failed to archive report {record.id}") from e
        return record

    async def list(self) -> list[ReportRecord]:
        """Return archived reports, most recent first.

        Raises:
            ArchiveReadError: If the query fails.
        """
        try:
            async with self._session_maker() as db:
                result = await db.execute(
                    select(ReportRecordRow).order_by(ReportRecordRow.sequence.desc())
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise ArchiveReadError("Failed to load report archive") from e
        return [row_to_record(row) for row in rows]

    async def clear(self) -> int:
        """Delete every archived report.

        Raises:
            ArchiveWriteError: If the delete fails.
        """
        async with self._lock:
            try:
                async with self._session_maker() as db:
                    result = await db.execute(delete(ReportRecordRow))
                    await db.commit()
            except SQLAlchemyError as e:
                raise ArchiveWriteError("Failed to clear report archive") from e
        deleted = result.rowcount or 0
        logger.info("Cleared %d archived reports", deleted)
        return deleted


def build_archive() -> ReportArchive:
    """Return the archive selected by settings.archive_backend."""
    if settings.archive_backend == "database":
        return SqlReportArchive(async_session_maker)
    return InMemoryReportArchive()
