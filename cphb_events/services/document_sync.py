"""Document sync — mirrors approved events into the SharePoint tracking list.

The list is fed by three HTTP-triggered flows (create, update, delete). The
mirror is secondary: callers treat every failure here as a degraded success
and report it rather than failing the request.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from cphb_events.core.config import Settings, settings as default_settings
from cphb_events.core.dates import to_24_hour
from cphb_events.core.exceptions import UpstreamError
from cphb_events.domain.event import EventRecord
from cphb_events.schemas.common import SyncStatus

logger = logging.getLogger(__name__)

SYSTEM = "document-sync"


class DocumentSyncClient:
    def __init__(self, http_client: httpx.AsyncClient, config: Settings | None = None):
        self._http = http_client
        self._settings = config or default_settings

    def list_item(self, record: EventRecord) -> dict[str, Any]:
        """Project a record onto the list's columns."""
        return {
            "date": record.date,
            "package_id": record.package_id,
            "start_time": to_24_hour(record.start_time),
            "end_time": to_24_hour(record.end_time),
            "event_name": record.event_name,
            "user_email": record.user_email,
            "url": f"{self._settings.event_link_prefix}/{record.package_id}",
            "comments": record.comments,
        }

    async def _send(
        self, operation: str, method: str, url: str, body: dict[str, Any], *, missing_ok: bool = False
    ) -> SyncStatus:
        if not url:
            logger.debug("Document sync %s skipped: no flow URL configured", operation)
            return SyncStatus(status="skipped", message=f"No {operation} flow configured")
        try:
            response = await self._http.request(
                method, url, json=body, timeout=self._settings.http_timeout_seconds
            )
        except httpx.HTTPError as exc:
            raise UpstreamError(SYSTEM, f"Document sync {operation} failed: {exc}") from exc

        if missing_ok and response.status_code == 404:
            logger.info("Document sync %s: item %s already absent", operation, body.get("package_id"))
            return SyncStatus(status="synced", message="Item was not in the list")
        if response.status_code >= 300:
            raise UpstreamError(
                SYSTEM,
                f"Document sync {operation} returned {response.status_code}",
                details={"response": response.text[:500]},
                upstream_status=response.status_code,
            )
        return SyncStatus(status="synced")

    async def create(self, record: EventRecord) -> SyncStatus:
        return await self._send(
            "create", "POST", self._settings.sharepoint_create_url, self.list_item(record)
        )

    async def update(self, record: EventRecord) -> SyncStatus:
        return await self._send(
            "update", "PATCH", self._settings.sharepoint_update_url, self.list_item(record)
        )

    async def delete(self, package_id: int) -> SyncStatus:
        return await self._send(
            "delete",
            "PATCH",
            self._settings.sharepoint_delete_url,
            {"package_id": package_id},
            missing_ok=True,
        )
