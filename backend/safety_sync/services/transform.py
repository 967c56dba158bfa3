"""Transformation of Lytx safety events into lytx_safety_events rows."""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any

from pydantic import ValidationError

from safety_sync.schemas import LytxNote, LytxReferenceItem, LytxSafetyEvent, LytxVehicle
from safety_sync.services.lytx_client import LytxClient, LytxClientError

logger = logging.getLogger(__name__)


class TransformError(Exception):
    """A single record could not be turned into a row."""

    pass


class LytxStatus(IntEnum):
    """Lytx event status codes."""

    NEW = 1
    NEEDS_REVIEW = 2
    FACE_TO_FACE = 3
    COACHING_SCHEDULED = 4
    FYI_NOTIFY = 5
    DRIVER_NOTIFIED = 6
    RESOLVED = 7


STATUS_NEW = "New"
STATUS_FACE_TO_FACE = "Face-To-Face"
STATUS_FYI_NOTIFY = "FYI Notify"
STATUS_RESOLVED = "Resolved"

DEFAULT_STATUS_LABEL = STATUS_NEW

STATUS_LABELS: dict[LytxStatus, str] = {
    LytxStatus.NEW: STATUS_NEW,
    LytxStatus.NEEDS_REVIEW: STATUS_NEW,
    LytxStatus.FACE_TO_FACE: STATUS_FACE_TO_FACE,
    LytxStatus.COACHING_SCHEDULED: STATUS_FACE_TO_FACE,
    LytxStatus.FYI_NOTIFY: STATUS_FYI_NOTIFY,
    LytxStatus.DRIVER_NOTIFIED: STATUS_FYI_NOTIFY,
    LytxStatus.RESOLVED: STATUS_RESOLVED,
}

# Checked in order; first keyword hit wins
_STATUS_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("new", "open"), STATUS_NEW),
    (("face", "coaching"), STATUS_FACE_TO_FACE),
    (("fyi", "notify"), STATUS_FYI_NOTIFY),
    (("resolved", "closed"), STATUS_RESOLVED),
]

DEPOTS = (
    "Kewdale",
    "Geraldton",
    "Kalgoorlie",
    "Narrogin",
    "Albany",
    "Bunbury",
    "Fremantle",
    "Perth",
)

CARRIER_STEVEMACS = "Stevemacs"
CARRIER_GSF = "Great Southern Fuels"

UNASSIGNED_DRIVER = "Driver Unassigned"

EVENT_TYPE_COACHABLE = "Coachable"
EVENT_TYPE_DRIVER_TAGGED = "Driver Tagged"

_REGISTRATION_PATTERNS = [
    re.compile(r"\b([0-9][A-Z]{2,3}[0-9]{3})\b"),  # 1GLD510
    re.compile(r"\b([A-Z]{1,4}[0-9]{2,4})\b"),  # ABC123
    re.compile(r"\b([0-9]{1,4}[A-Z]{2,4})\b"),  # 123ABC
]


def map_status(status_id: int | None, status_name: str | None = None) -> str:
    """
    Map a Lytx status to one of the four dashboard labels.

    The numeric code wins when it is part of the known enumeration; the
    status text is only consulted for unknown or missing codes. Never raises.
    """
    if status_id is not None:
        try:
            return STATUS_LABELS[LytxStatus(status_id)]
        except ValueError:
            logger.debug(f"Unknown Lytx status code {status_id}")

    if status_name:
        lowered = status_name.lower()
        for keywords, label in _STATUS_KEYWORDS:
            if any(keyword in lowered for keyword in keywords):
                return label

    return DEFAULT_STATUS_LABEL


def map_group_to_depot(group_name: str | None) -> str | None:
    """Depot named in the Lytx group, or the group name itself."""
    if not group_name:
        return None

    lowered = group_name.lower()
    for depot in DEPOTS:
        if depot.lower() in lowered:
            return depot

    return group_name


def determine_carrier(group_name: str | None) -> str:
    """Stevemacs groups are tagged explicitly; everything else is GSF."""
    lowered = (group_name or "").lower()
    if "stevemacs" in lowered or "smb" in lowered or "kewdale" in lowered:
        return CARRIER_STEVEMACS
    return CARRIER_GSF


def extract_vehicle_registration(vehicle_name: str | None) -> str | None:
    """Pull a registration number out of a free-form vehicle name."""
    if not vehicle_name:
        return None

    for pattern in _REGISTRATION_PATTERNS:
        match = pattern.search(vehicle_name)
        if match:
            return match.group(1)

    return vehicle_name


def map_timezone(timezone: str | None) -> str | None:
    if timezone and ("Australia" in timezone or "Perth" in timezone):
        return "AUW"
    return timezone


def determine_event_type(trigger: str | None) -> str:
    if trigger and "tagged" in trigger.lower():
        return EVENT_TYPE_DRIVER_TAGGED
    return EVENT_TYPE_COACHABLE


def format_notes(notes: list[LytxNote] | None) -> str | None:
    """Join reviewer notes into a single text column."""
    if not notes:
        return None

    parts = [note.content or note.text or note.note for note in notes]
    joined = "; ".join(part for part in parts if part)
    return joined or None


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp into UTC; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        # Offsets near datetime.min/max overflow on conversion
        return parsed.astimezone(UTC)
    except (ValueError, OverflowError):
        return None


@dataclass
class ReferenceData:
    """Lookups from the Lytx reference endpoints, keyed by ID."""

    statuses: dict[int, str] = field(default_factory=dict)
    triggers: dict[int, str] = field(default_factory=dict)
    behaviors: dict[int, str] = field(default_factory=dict)
    vehicles: dict[str, LytxVehicle] = field(default_factory=dict)

    @staticmethod
    def _named(records: list[dict[str, Any]]) -> dict[int, str]:
        names: dict[int, str] = {}
        for record in records:
            try:
                item = LytxReferenceItem.model_validate(record)
            except ValidationError:
                continue
            names[item.id] = item.name
        return names

    @classmethod
    async def load(cls, client: LytxClient) -> "ReferenceData":
        """
        Load reference lookups, best effort.

        A failing endpoint stops the load and leaves the remaining lookups
        empty; the sync falls back to the names embedded in each event.
        """
        reference = cls()

        try:
            reference.statuses = cls._named(await client.fetch_event_statuses())
            reference.triggers = cls._named(await client.fetch_event_triggers())
            reference.behaviors = cls._named(await client.fetch_event_behaviors())

            for record in await client.fetch_vehicles():
                try:
                    vehicle = LytxVehicle.model_validate(record)
                except ValidationError:
                    continue
                reference.vehicles[vehicle.id] = vehicle
                if vehicle.serial_number:
                    reference.vehicles[vehicle.serial_number] = vehicle
        except LytxClientError as e:
            logger.warning(f"Failed to load Lytx reference data, continuing without it: {e}")

        return reference


def transform_event(payload: dict[str, Any], reference: ReferenceData | None = None) -> dict[str, Any]:
    """
    Transform a raw Lytx safety event into lytx_safety_events values.

    Raises:
        TransformError: payload has no identifier, no usable timestamp, or
            fails validation.
    """
    reference = reference or ReferenceData()

    try:
        event = LytxSafetyEvent.model_validate(payload)
    except ValidationError as e:
        raise TransformError(f"Invalid safety event payload: {e.error_count()} errors") from e

    event_id = event.external_id
    if not event_id:
        raise TransformError("Safety event has no eventId or id")

    event_datetime = parse_datetime(event.event_date_time)
    if event_datetime is None:
        raise TransformError(
            f"Event {event_id}: malformed eventDateTime {event.event_date_time!r}"
        )

    vehicle = reference.vehicles.get(event.vehicle_id) if event.vehicle_id else None
    vehicle_name = vehicle.name if vehicle and vehicle.name else event.vehicle_id

    trigger = reference.triggers.get(event.trigger_id) or event.trigger or "Unknown"
    status_name = event.status or reference.statuses.get(event.status_id)

    score = 0
    if event.score is not None and math.isfinite(event.score):
        score = int(round(event.score))

    behaviors = []
    for behavior in event.behaviors or []:
        name = behavior.name or reference.behaviors.get(behavior.id)
        if name:
            behaviors.append(name)

    return {
        "event_id": event_id,
        "vehicle_id": event.vehicle_id,
        "vehicle_registration": extract_vehicle_registration(vehicle_name),
        "device_serial": event.device_serial_number,
        "driver_name": event.driver_name or UNASSIGNED_DRIVER,
        "employee_id": event.employee_id or None,
        "group_name": event.group_name,
        "depot": map_group_to_depot(event.group_name),
        "carrier": determine_carrier(event.group_name),
        "event_datetime": event_datetime,
        "timezone": map_timezone(event.timezone),
        "score": score,
        "status_id": event.status_id,
        "status": map_status(event.status_id, status_name),
        "trigger": trigger,
        "behaviors": behaviors,
        "event_type": determine_event_type(trigger),
        "excluded": bool(event.excluded),
        "reviewed_by": event.reviewed_by,
        "reviewed_at": parse_datetime(event.reviewed_date),
        "notes": format_notes(event.notes),
        "raw_data": payload,
    }
