"""Pydantic schemas for external API payloads."""

from safety_sync.schemas.lytx_event import (
    LytxBehavior,
    LytxNote,
    LytxReferenceItem,
    LytxSafetyEvent,
    LytxVehicle,
)

__all__ = [
    "LytxBehavior",
    "LytxNote",
    "LytxReferenceItem",
    "LytxSafetyEvent",
    "LytxVehicle",
]
