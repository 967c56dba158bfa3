"""Lytx Video API client with retry logic and API key auth."""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from safety_sync.config import Settings

logger = logging.getLogger(__name__)


class LytxClientError(Exception):
    """Base exception for Lytx client errors."""

    pass


class LytxAuthError(LytxClientError):
    """API key rejected (401/403). Never retried."""

    pass


@dataclass
class LytxPage:
    """One page of safety events."""

    records: list[dict[str, Any]]
    page: int
    page_size: int
    total_count: int | None = None


def _format_timestamp(value: datetime) -> str:
    """Format a datetime the way the Lytx API expects (UTC, 'Z' suffix)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class LytxClient:
    """
    Client for the Lytx Video Safety API.

    Features:
    - API key auth via the x-apikey header
    - Exponential backoff retry on 429/5xx/network errors
    - Page-based pagination for safety events
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://lytx-api.prod7.lv.lytx.com",
        max_retries: int = 3,
        timeout: float = 30.0,
        max_pages: int = 500,
        backoff_base: float = 1.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.max_retries = max_retries
        self.timeout = timeout
        self.max_pages = max_pages
        self.backoff_base = backoff_base

        self.headers: dict[str, str] = {
            "Accept": "application/json",
            "x-apikey": api_key,
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "LytxClient":
        """Build a client from the process settings."""
        if not settings.lytx_api_key:
            raise ValueError("LYTX_API_KEY is not set")

        return cls(
            api_key=settings.lytx_api_key,
            base_url=settings.lytx_base_url,
            max_retries=settings.lytx_max_retries,
            timeout=settings.lytx_timeout_seconds,
            max_pages=settings.lytx_max_pages,
        )

    async def _request_with_retry(
        self,
        url: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make HTTP request with exponential backoff retry."""
        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, headers=self.headers, params=params)
                    response.raise_for_status()
                    return response.json()

            except httpx.HTTPStatusError as e:
                last_error = e
                status = e.response.status_code
                if status in (401, 403):
                    raise LytxAuthError(
                        f"Lytx rejected the API key (HTTP {status})"
                    ) from e
                elif status == 429:  # Rate limited
                    wait_time = 2**attempt * 10 * self.backoff_base  # 10s, 20s, 40s
                    reason = "Rate limited"
                elif status >= 500:
                    wait_time = 2**attempt * self.backoff_base
                    reason = f"Server error {status}"
                else:
                    raise LytxClientError(f"HTTP error: {e}") from e

            except httpx.RequestError as e:
                last_error = e
                wait_time = 2**attempt * self.backoff_base
                reason = f"Request error: {e}"

            except ValueError as e:
                # Body was not JSON
                raise LytxClientError(f"Invalid JSON from {url}: {e}") from e

            # No wait after the final attempt
            if attempt < self.max_retries - 1:
                logger.warning(f"{reason}, retry in {wait_time}s")
                await asyncio.sleep(wait_time)

        raise LytxClientError(f"Failed after {self.max_retries} retries: {last_error}")

    @staticmethod
    def _unwrap(payload: Any) -> tuple[list[dict[str, Any]], int | None]:
        """
        Normalize the two response shapes the API uses.

        Some endpoints return a bare list, others an envelope of
        ``{"data": [...], "totalCount": n, "page": p, "pageSize": s}``.
        """
        if isinstance(payload, list):
            return payload, None

        if isinstance(payload, dict):
            data = payload.get("data")
            if data is None:
                return [], payload.get("totalCount")
            if not isinstance(data, list):
                raise LytxClientError(f"Unexpected 'data' type: {type(data).__name__}")
            return data, payload.get("totalCount")

        raise LytxClientError(f"Unexpected response type: {type(payload).__name__}")

    async def fetch_safety_events(
        self,
        start: datetime,
        end: datetime,
        page: int = 1,
        page_size: int = 100,
    ) -> LytxPage:
        """
        Fetch one page of safety events.

        Args:
            start: Only events at or after this timestamp
            end: Only events at or before this timestamp
            page: 1-based page number
            page_size: Maximum number of events per page

        Returns:
            The page of raw event records
        """
        url = f"{self.base_url}/video/safety/events"

        params: dict[str, Any] = {
            "page": page,
            "pageSize": page_size,
            "startDate": _format_timestamp(start),
            "endDate": _format_timestamp(end),
        }

        logger.info(f"Fetching safety events: page={page}, pageSize={page_size}")
        payload = await self._request_with_retry(url, params)
        records, total_count = self._unwrap(payload)
        logger.info(f"Fetched {len(records)} safety event records")

        return LytxPage(
            records=records,
            page=page,
            page_size=page_size,
            total_count=total_count,
        )

    async def iter_safety_event_pages(
        self,
        start: datetime,
        end: datetime,
        page_size: int = 100,
    ) -> AsyncIterator[LytxPage]:
        """
        Walk every page of safety events in the window.

        Stops on an empty page, a short page, once ``totalCount`` records
        have been seen, or at the ``max_pages`` safety limit.
        """
        page_number = 1
        seen = 0

        while True:
            page = await self.fetch_safety_events(
                start=start,
                end=end,
                page=page_number,
                page_size=page_size,
            )

            if not page.records:
                break

            yield page
            seen += len(page.records)

            if len(page.records) < page_size:
                break
            if page.total_count is not None and seen >= page.total_count:
                break

            # Safety limit to prevent runaway requests
            if page_number >= self.max_pages:
                logger.warning(f"Reached safety limit of {self.max_pages} pages")
                break

            page_number += 1

    async def _fetch_list(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        payload = await self._request_with_retry(f"{self.base_url}{path}", params)
        records, _ = self._unwrap(payload)
        return records

    async def fetch_event_statuses(self) -> list[dict[str, Any]]:
        """Reference list of event statuses."""
        return await self._fetch_list("/video/safety/events/statuses")

    async def fetch_event_triggers(self) -> list[dict[str, Any]]:
        """Reference list of event triggers."""
        return await self._fetch_list("/video/safety/events/triggers")

    async def fetch_event_behaviors(self) -> list[dict[str, Any]]:
        """Reference list of behaviors."""
        return await self._fetch_list("/video/safety/events/behaviors")

    async def fetch_vehicles(self, limit: int = 1000) -> list[dict[str, Any]]:
        """All vehicles visible to the API key."""
        return await self._fetch_list(
            "/vehicles/all",
            {"page": 1, "limit": limit, "includeSubgroups": "true"},
        )

    async def test_connection(self) -> tuple[bool, str]:
        """Cheap authenticated call to verify the key and base URL."""
        try:
            statuses = await self.fetch_event_statuses()
        except LytxClientError as e:
            return False, str(e)

        return True, f"Connected successfully. Retrieved {len(statuses)} event statuses."
