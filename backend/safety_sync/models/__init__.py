"""Database models."""

from safety_sync.models.safety_event import SafetyEvent
from safety_sync.models.sync_state import SyncCheckpoint, SyncRun

__all__ = [
    "SafetyEvent",
    "SyncCheckpoint",
    "SyncRun",
]
