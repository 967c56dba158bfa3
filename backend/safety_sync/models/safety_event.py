"""SafetyEvent model for Lytx video safety events."""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, false, func
from sqlalchemy.orm import Mapped, mapped_column

from safety_sync.database import Base, JSONType


class SafetyEvent(Base):
    """
    Safety event pulled from the Lytx Video API.

    Keyed by the Lytx event ID. Derived columns (status label, behaviors,
    depot, carrier) are recomputed from ``raw_data`` on every sync.
    """

    __tablename__ = "lytx_safety_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    # Vehicle / device
    vehicle_id: Mapped[str | None] = mapped_column(String(64))
    vehicle_registration: Mapped[str | None] = mapped_column(String(64))
    device_serial: Mapped[str | None] = mapped_column(String(64))

    # Driver
    driver_name: Mapped[str | None] = mapped_column(String(255), index=True)
    employee_id: Mapped[str | None] = mapped_column(String(64))

    # Fleet grouping
    group_name: Mapped[str | None] = mapped_column(String(255))
    depot: Mapped[str | None] = mapped_column(String(100))
    carrier: Mapped[str | None] = mapped_column(String(100))

    # When
    event_datetime: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    timezone: Mapped[str | None] = mapped_column(String(64))

    # Classification
    score: Mapped[int] = mapped_column(Integer, server_default="0", nullable=False)
    status_id: Mapped[int | None] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    trigger: Mapped[str | None] = mapped_column(String(255))
    behaviors: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)

    # Review
    excluded: Mapped[bool] = mapped_column(Boolean, server_default=false(), nullable=False)
    reviewed_by: Mapped[str | None] = mapped_column(String(255))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)

    # Upstream payload, kept verbatim for auditing
    raw_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)

    # Metadata
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_lytx_event_datetime", event_datetime.desc()),
        Index("idx_lytx_carrier_depot", carrier, depot),
    )

    def __repr__(self) -> str:
        return f"<SafetyEvent {self.event_id}: {self.status}>"
