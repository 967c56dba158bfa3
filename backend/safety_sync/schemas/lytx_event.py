"""Pydantic schemas for Lytx Video API payloads."""

from pydantic import BaseModel, ConfigDict, Field


class LytxModel(BaseModel):
    """Base for Lytx payloads: camelCase aliases, unknown fields ignored."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


class LytxBehavior(LytxModel):
    """Behavior observed in a safety event."""

    id: int | None = None
    name: str | None = None
    description: str | None = None


class LytxNote(LytxModel):
    """Reviewer note attached to a safety event."""

    content: str | None = None
    text: str | None = None
    note: str | None = None


class LytxSafetyEvent(LytxModel):
    """Safety event as returned by /video/safety/events."""

    id: str | None = None
    event_id: str | None = Field(None, alias="eventId")
    vehicle_id: str | None = Field(None, alias="vehicleId")
    driver_id: str | None = Field(None, alias="driverId")
    driver_name: str | None = Field(None, alias="driverName")
    employee_id: str | None = Field(None, alias="employeeId")
    group_id: str | None = Field(None, alias="groupId")
    group_name: str | None = Field(None, alias="groupName")
    device_serial_number: str | None = Field(None, alias="deviceSerialNumber")

    # Kept as text so a bad timestamp is reported by the transformer
    event_date_time: str | None = Field(None, alias="eventDateTime")
    timezone: str | None = None

    score: float | None = None
    status_id: int | None = Field(None, alias="statusId")
    status: str | None = None
    trigger_id: int | None = Field(None, alias="triggerId")
    trigger: str | None = None
    trigger_subtype: str | None = Field(None, alias="triggerSubtype")

    behaviors: list[LytxBehavior] | None = None
    notes: list[LytxNote] | None = None

    reviewed_by: str | None = Field(None, alias="reviewedBy")
    reviewed_date: str | None = Field(None, alias="reviewedDate")
    excluded: bool | None = None

    @property
    def external_id(self) -> str | None:
        """Lytx event ID, falling back to the internal record ID."""
        return self.event_id or self.id


class LytxReferenceItem(LytxModel):
    """Entry of a reference list (statuses, triggers, behaviors)."""

    id: int
    name: str
    description: str | None = None


class LytxVehicle(LytxModel):
    """Vehicle as returned by /vehicles/all."""

    id: str
    vehicle_id: str | None = Field(None, alias="vehicleId")
    name: str | None = None
    serial_number: str | None = Field(None, alias="serialNumber")
    group_name: str | None = Field(None, alias="groupName")
