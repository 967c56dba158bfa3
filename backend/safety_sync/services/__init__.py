"""Services for data ingestion."""

from safety_sync.services.ingestion import SafetyEventIngestionService, SyncResult
from safety_sync.services.lytx_client import LytxAuthError, LytxClient, LytxClientError

__all__ = [
    "LytxAuthError",
    "LytxClient",
    "LytxClientError",
    "SafetyEventIngestionService",
    "SyncResult",
]
