"""Workflow client — creates, edits, voids and removes approval packages.

Every call carries two bearer tokens: the user's (who is acting) and the
application's (which form integration is acting). Non-2xx responses, bad
JSON and transport errors are raised as :class:`UpstreamError` tagged
``approval-router``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from cphb_events.core.config import Settings, settings as default_settings
from cphb_events.core.exceptions import UpstreamError
from cphb_events.schemas.workflow import ApprovalPackage, PackageActions, VoidReason
from cphb_events.services.identity import ApplicationTokenProvider

logger = logging.getLogger(__name__)

SYSTEM = "approval-router"
MEDIA_TYPE = "application/vnd.workflow+json;version=1.1"


class WorkflowClient:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        app_tokens: ApplicationTokenProvider,
        config: Settings | None = None,
    ):
        self._http = http_client
        self._app_tokens = app_tokens
        self._settings = config or default_settings

    def _packages_url(self, tools: bool = False) -> str:
        s = self._settings
        section = "tools/" if tools else ""
        return (
            f"{s.workflow_base_url.rstrip('/')}/{s.workflow_env}/api/developer/"
            f"{section}forms/{s.workflow_form_id}/packages"
        )

    async def _headers(self, user_token: str | None, ip: str) -> dict[str, str]:
        app_token = await self._app_tokens.get_token()
        return {
            "Authorization": f"Bearer {user_token or ''}",
            "X-App-Authorization": f"Bearer {app_token}",
            "X-Client-Remote-Addr": ip,
            "Accept": MEDIA_TYPE,
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        url: str,
        *,
        user_token: str | None,
        ip: str,
        json: Any = None,
        params: Any = None,
    ) -> Any:
        headers = await self._headers(user_token, ip)
        try:
            response = await self._http.request(
                method,
                url,
                headers=headers,
                json=json,
                params=params,
                timeout=self._settings.http_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            logger.error("Workflow %s %s failed: %s", method, url, exc)
            raise UpstreamError(SYSTEM, f"Workflow request failed: {exc}") from exc

        if response.status_code >= 300:
            logger.error("Workflow %s %s -> %s %s", method, url, response.status_code, response.text)
            raise UpstreamError(
                SYSTEM,
                f"Workflow returned {response.status_code}",
                details={"response": response.text[:500]},
                upstream_status=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(SYSTEM, "Workflow returned a non-JSON body") from exc

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    async def create_package(
        self, user_token: str | None, ip: str, entry: dict[str, Any]
    ) -> ApprovalPackage:
        """Start routing a new package; Workflow assigns its id."""
        body = {"state": "ROUTING", "subType": None, "emailContent": None, "entry": entry}
        data = await self._request(
            "POST", self._packages_url(), user_token=user_token, ip=ip, json=body
        )
        try:
            package = ApprovalPackage.model_validate(data)
        except ValueError as exc:
            raise UpstreamError(SYSTEM, "Workflow returned an unexpected package") from exc
        logger.info("Created approval package %s", package.id)
        return package

    async def update_package_entry(
        self, user_token: str | None, ip: str, package_id: int, entry: dict[str, Any]
    ) -> None:
        body = {
            "entry": entry,
            "sendDeltaEmail": False,
            "emailContent": {"deltaSummary": None, "packageDetails": None},
        }
        await self._request(
            "PUT",
            f"{self._packages_url(tools=True)}/{package_id}/entry",
            user_token=user_token,
            ip=ip,
            json=body,
        )

    async def void_package(
        self, user_token: str | None, ip: str, package_id: int, reason: VoidReason
    ) -> None:
        await self._request(
            "PUT",
            f"{self._packages_url(tools=True)}/{package_id}",
            user_token=user_token,
            ip=ip,
            json={"id": package_id, "state": "VOID", "voidReason": reason},
        )
        logger.info("Voided approval package %s (%s)", package_id, reason)

    async def remove_package(self, user_token: str | None, ip: str, package_id: int) -> None:
        await self._request(
            "PUT",
            f"{self._packages_url(tools=True)}/{package_id}/remove",
            user_token=user_token,
            ip=ip,
        )
        logger.info("Removed approval package %s", package_id)

    async def get_permissions(
        self, user_token: str | None, ip: str, package_ids: list[int]
    ) -> dict[int, PackageActions]:
        """Actions the user may take on each package, keyed by package id."""
        if not package_ids:
            return {}
        data = await self._request(
            "GET",
            f"{self._packages_url()}/actions",
            user_token=user_token,
            ip=ip,
            params=[("id", package_id) for package_id in package_ids],
        )
        if isinstance(data, dict):
            data = [data]
        permissions: dict[int, PackageActions] = {}
        for raw in data or []:
            actions = PackageActions.model_validate(raw)
            if actions.package_id is not None:
                permissions[actions.package_id] = actions
        return permissions
