"""Sync health derived from the run log and checkpoint."""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from safety_sync.models import SafetyEvent, SyncCheckpoint, SyncRun
from safety_sync.services.ingestion import SOURCE, as_utc

logger = logging.getLogger(__name__)

# Runs that finished, with or without per-record failures
FINISHED_STATUSES = ("completed", "partial")

MAX_FAILED_RUNS_PER_DAY = 5
STALE_AFTER = timedelta(hours=1)


@dataclass
class SyncHealth:
    """Health of the safety event sync."""

    status: str
    record_count: int = 0
    checkpoint: datetime | None = None
    last_successful_sync: datetime | None = None
    failed_runs_last_24h: int = 0
    recent_runs: list[SyncRun] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


async def get_sync_health(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime | None = None,
    recent_limit: int = 10,
) -> SyncHealth:
    """
    Summarize recent sync activity.

    - unhealthy: the database is unreachable or the run log could not be read
    - degraded: more than 5 failed runs in 24h, or no finished run in the
      last hour
    - healthy: otherwise
    """
    now = now or datetime.now(UTC)

    try:
        async with session_factory() as db:
            checkpoint_row = (
                await db.execute(select(SyncCheckpoint).where(SyncCheckpoint.source == SOURCE))
            ).scalar_one_or_none()

            record_count = (await db.execute(select(func.count(SafetyEvent.id)))).scalar() or 0

            recent_runs = list(
                (
                    await db.execute(
                        select(SyncRun)
                        .where(SyncRun.source_type == SOURCE)
                        .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
                        .limit(recent_limit)
                    )
                ).scalars()
            )

            last_successful = (
                await db.execute(
                    select(func.max(SyncRun.completed_at)).where(
                        SyncRun.source_type == SOURCE,
                        SyncRun.status.in_(FINISHED_STATUSES),
                    )
                )
            ).scalar()

            failed_last_24h = (
                await db.execute(
                    select(func.count(SyncRun.id)).where(
                        SyncRun.source_type == SOURCE,
                        SyncRun.status == "failed",
                        SyncRun.started_at >= now - timedelta(hours=24),
                    )
                )
            ).scalar() or 0
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Sync health check failed: {e}")
        return SyncHealth(status="unhealthy", errors=[str(e)])

    last_successful = as_utc(last_successful)

    status = "healthy"
    if failed_last_24h > MAX_FAILED_RUNS_PER_DAY:
        status = "degraded"
    elif last_successful is None or now - last_successful > STALE_AFTER:
        status = "degraded"

    return SyncHealth(
        status=status,
        record_count=record_count,
        checkpoint=as_utc(checkpoint_row.last_updated_at) if checkpoint_row else None,
        last_successful_sync=last_successful,
        failed_runs_last_24h=failed_last_24h,
        recent_runs=recent_runs,
    )
