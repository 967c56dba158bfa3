"""Ingestion service for syncing Lytx safety events to the database."""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import case, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from safety_sync.config import Settings
from safety_sync.models import SafetyEvent, SyncCheckpoint, SyncRun
from safety_sync.services.lytx_client import LytxClient
from safety_sync.services.transform import (
    ReferenceData,
    TransformError,
    parse_datetime,
    transform_event,
)

logger = logging.getLogger(__name__)

SOURCE = "lytx_safety_events"
SOURCE_SUBTYPE = "API"

# Cap on error messages kept in the run summary
MAX_REPORTED_ERRORS = 50

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _dialect_insert(db: AsyncSession):
    """INSERT construct supporting ON CONFLICT for the session's database."""
    dialect = db.get_bind().dialect.name
    try:
        return _INSERTS[dialect]
    except KeyError:
        raise RuntimeError(f"Upserts are not supported on {dialect}") from None


def _payload_datetime(payload: Any) -> datetime | None:
    """Best-effort event timestamp of a record that failed to transform."""
    if not isinstance(payload, dict):
        return None
    value = payload.get("eventDateTime")
    return parse_datetime(value) if isinstance(value, str) else None


@dataclass
class SyncResult:
    """Outcome of one sync run."""

    status: str = "processing"
    processed: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    checkpoint: datetime | None = None
    batch_reference: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    duration_seconds: float = 0.0

    def record_failure(self, message: str) -> None:
        self.failed += 1
        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append(message)


class SafetyEventIngestionService:
    """
    Service for ingesting Lytx safety events into the local database.

    Features:
    - Incremental sync using a checkpoint on the newest event timestamp
    - Upsert keyed by Lytx event ID (re-runs are idempotent)
    - Per-record failure isolation via savepoints; the checkpoint is held
      back so failed records are fetched again on the next run
    - Run log in data_import_batches
    """

    def __init__(
        self,
        settings: Settings,
        client: LytxClient,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.settings = settings
        self.client = client
        self.session_factory = session_factory

    async def get_checkpoint(self, db: AsyncSession, source: str = SOURCE) -> datetime | None:
        """Get last sync checkpoint for a data source."""
        result = await db.execute(
            select(SyncCheckpoint).where(SyncCheckpoint.source == source)
        )
        checkpoint = result.scalar_one_or_none()
        return as_utc(checkpoint.last_updated_at) if checkpoint else None

    async def update_checkpoint(
        self,
        db: AsyncSession,
        last_updated_at: datetime,
        record_count: int,
        source: str = SOURCE,
    ) -> None:
        """
        Advance the sync checkpoint after a successful run.

        The stored timestamp never moves backwards, even when an older
        overlapping run finishes last.
        """
        insert = _dialect_insert(db)
        stmt = insert(SyncCheckpoint).values(
            source=source,
            last_updated_at=last_updated_at,
            last_sync_at=func.now(),
            record_count=record_count,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["source"],
            set_={
                "last_updated_at": case(
                    (
                        SyncCheckpoint.last_updated_at > stmt.excluded.last_updated_at,
                        SyncCheckpoint.last_updated_at,
                    ),
                    else_=stmt.excluded.last_updated_at,
                ),
                "last_sync_at": func.now(),
                "record_count": record_count,
            },
        )
        await db.execute(stmt)
        await db.commit()

    async def upsert_event(self, db: AsyncSession, values: dict[str, Any]) -> None:
        """Insert or update one safety event keyed by event_id."""
        insert = _dialect_insert(db)
        stmt = insert(SafetyEvent).values(**values).on_conflict_do_update(
            index_elements=["event_id"],
            set_={
                **{k: v for k, v in values.items() if k != "event_id"},
                "updated_at": func.now(),
            },
        )
        await db.execute(stmt)

    async def count_events(self, db: AsyncSession) -> int:
        result = await db.execute(select(func.count(SafetyEvent.id)))
        return result.scalar() or 0

    async def start_run(self, db: AsyncSession, batch_reference: str) -> int:
        """Record the start of a run in the run log."""
        run = SyncRun(
            source_type=SOURCE,
            source_subtype=SOURCE_SUBTYPE,
            batch_reference=batch_reference,
            status="processing",
        )
        db.add(run)
        await db.commit()
        return run.id

    async def finish_run(
        self,
        db: AsyncSession,
        run_id: int,
        result: SyncResult,
        error: str | None = None,
    ) -> None:
        """Write final counts and status to the run log."""
        error_summary = None
        if result.errors or error:
            error_summary = {"errors": result.errors, "main_error": error}

        await db.execute(
            update(SyncRun)
            .where(SyncRun.id == run_id)
            .values(
                status=result.status,
                records_processed=result.processed,
                records_failed=result.failed,
                error_summary=error_summary,
                completed_at=datetime.now(UTC),
            )
        )
        await db.commit()

    def window_start(
        self,
        checkpoint: datetime | None,
        now: datetime,
        days_back: int | None = None,
    ) -> datetime:
        """
        Start of the fetch window.

        An explicit ``days_back`` wins; otherwise resume from the checkpoint
        minus a small overlap, or seed with ``initial_days_back`` days.
        """
        if days_back is not None:
            return now - timedelta(days=days_back)
        if checkpoint is None:
            return now - timedelta(days=self.settings.initial_days_back)
        return checkpoint - timedelta(minutes=self.settings.checkpoint_overlap_minutes)

    async def run(self, days_back: int | None = None) -> SyncResult:
        """
        Sync safety events from Lytx.

        Args:
            days_back: Re-sync this many days instead of resuming from the
                checkpoint (used by the daily sweep)

        Returns:
            SyncResult with processed / failed counts

        Raises:
            LytxClientError: API unreachable or key rejected; the run is
                marked failed and the checkpoint is left untouched.
        """
        started = time.monotonic()
        result = SyncResult(
            batch_reference=f"lytx_api_sync_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
        )

        async with self.session_factory() as db:
            run_id = await self.start_run(db, result.batch_reference)

            try:
                await self._sync(db, result, days_back)
            except Exception as e:
                await db.rollback()
                result.status = "failed"
                result.duration_seconds = time.monotonic() - started
                logger.error(f"Safety event sync failed: {e}")
                try:
                    await self.finish_run(db, run_id, result, error=str(e))
                except SQLAlchemyError as log_error:
                    logger.error(f"Could not record failed run {run_id}: {log_error}")
                raise

            result.duration_seconds = time.monotonic() - started
            await self.finish_run(db, run_id, result)

        logger.info(
            f"Safety event sync {result.status}: processed={result.processed} "
            f"failed={result.failed} in {result.duration_seconds:.1f}s"
        )
        return result

    async def _sync(
        self,
        db: AsyncSession,
        result: SyncResult,
        days_back: int | None,
    ) -> None:
        logger.info("Starting safety event sync")

        checkpoint = await self.get_checkpoint(db)
        logger.info(f"Last safety event checkpoint: {checkpoint}")

        now = datetime.now(UTC)
        since = self.window_start(checkpoint, now, days_back)
        logger.info(f"Fetching safety events from {since} to {now}")

        reference = await ReferenceData.load(self.client)
        latest = checkpoint
        # Earliest timestamp among failed records; the checkpoint stays at or before it
        retry_from: datetime | None = None

        def keep_for_retry(event_datetime: datetime | None) -> None:
            nonlocal retry_from
            # Unknown timestamp: hold the checkpoint at the start of this window
            candidate = event_datetime or since
            if retry_from is None or candidate < retry_from:
                retry_from = candidate

        async for page in self.client.iter_safety_event_pages(
            start=since,
            end=now,
            page_size=self.settings.lytx_page_size,
        ):
            for payload in page.records:
                try:
                    values = transform_event(payload, reference)
                except TransformError as e:
                    logger.warning(f"Skipping safety event: {e}")
                    result.record_failure(str(e))
                    keep_for_retry(_payload_datetime(payload))
                    continue
                except Exception as e:
                    logger.exception("Unexpected error transforming safety event")
                    result.record_failure(f"Unexpected transform error: {e!r}")
                    keep_for_retry(_payload_datetime(payload))
                    continue

                try:
                    async with db.begin_nested():
                        await self.upsert_event(db, values)
                except SQLAlchemyError as e:
                    logger.warning(f"Failed to upsert event {values['event_id']}: {e}")
                    result.record_failure(f"Event {values['event_id']} failed: {e}")
                    keep_for_retry(values["event_datetime"])
                    continue

                result.processed += 1
                event_datetime = values["event_datetime"]
                if latest is None or event_datetime > latest:
                    latest = event_datetime

            # Commit each page to avoid long transactions
            await db.commit()
            logger.info(
                f"Committed page {page.page}: processed={result.processed}, "
                f"failed={result.failed}"
            )

        if latest is not None and retry_from is not None:
            # A record that keeps failing pins the window at most initial_days_back deep
            floor = now - timedelta(days=self.settings.initial_days_back)
            held = min(latest, max(retry_from, floor))
            if held < latest:
                logger.info(f"Holding checkpoint at {held} so failed records are fetched again")
            latest = held

        if latest is not None:
            count = await self.count_events(db)
            await self.update_checkpoint(db, latest, count)

        result.checkpoint = latest
        result.status = "completed" if result.failed == 0 else "partial"
