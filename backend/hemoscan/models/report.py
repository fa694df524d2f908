"""Archived screening reports.

Each row owns one immutable (sample, result) pair serialized as JSON.
Rows are only ever inserted or bulk-deleted; sequence orders them by
completion.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, DateTime, Index
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from hemoscan.database import Base


class ReportRecordRow(Base):
    """Persisted ReportRecord."""

    __tablename__ = "report_records"

    # === Ordering ===
    sequence: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=True,
        comment="Monotonic insert order; list() sorts by this descending",
    )

    # === Identity ===
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        unique=True,
        nullable=False,
        default=uuid.uuid4,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # === Content ===
    sample: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    result: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    __table_args__ = (
        Index("idx_report_records_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ReportRecordRow(id={self.id}, sequence={self.sequence})>"
