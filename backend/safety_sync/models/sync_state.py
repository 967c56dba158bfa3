"""Bookkeeping tables written by the sync job: checkpoint and run log."""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from safety_sync.database import Base, JSONType


class SyncCheckpoint(Base):
    """
    Newest upstream event timestamp stored per feed.

    ``last_updated_at`` only ever moves forward; the next run resumes a few
    minutes before it.
    """

    __tablename__ = "sync_checkpoints"

    source: Mapped[str] = mapped_column(String(50), primary_key=True)
    last_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_sync_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    # Rows in the destination table after the run
    record_count: Mapped[int] = mapped_column(Integer, server_default="0", nullable=False)

    def __repr__(self) -> str:
        return f"<SyncCheckpoint {self.source} @ {self.last_updated_at}>"


class SyncRun(Base):
    """
    Summary of a single sync run.

    Shares the ``data_import_batches`` table with the other importers, so
    ``source_type`` / ``source_subtype`` identify which job wrote the row.
    """

    __tablename__ = "data_import_batches"

    id: Mapped[int] = mapped_column(primary_key=True)
    source_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    source_subtype: Mapped[str | None] = mapped_column(String(50))
    batch_reference: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    # 'processing', 'completed', 'partial' or 'failed'
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    records_processed: Mapped[int] = mapped_column(Integer, server_default="0", nullable=False)
    records_failed: Mapped[int] = mapped_column(Integer, server_default="0", nullable=False)
    error_summary: Mapped[dict[str, Any] | None] = mapped_column(JSONType)

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<SyncRun {self.batch_reference}: {self.status}>"
