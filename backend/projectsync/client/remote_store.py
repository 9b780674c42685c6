"""
Remote Project Store client.

Thin async wrapper over the projectsync HTTP API. Every call is scoped to
the caller identity carried by ``token``; non-2xx responses raise
``RemoteStoreError`` with the status and the server's ``error`` message.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from projectsync.client.tasks import run_in_background
from projectsync.client.types import (
    FileMap,
    Message,
    RemoteProject,
    WorkbenchState,
    file_map_from_dict,
    file_map_to_dict,
)
from projectsync.core.config import settings
from projectsync.core.exceptions import RemoteStoreError

logger = logging.getLogger(__name__)


class RemoteProjectStore:
    """
    Client for the project persistence API.

    Args:
        base_url: Server origin; the API prefix is appended
        token: Bearer token identifying the caller
        client: Pre-built ``httpx.AsyncClient`` (tests pass one with a mock transport)
        timeout: Request timeout in seconds, None for no timeout
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.api_base = f"{self.base_url}{settings.API_PREFIX}"
        self.token = token
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "RemoteProjectStore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, json: Any = None) -> dict:
        url = f"{self.api_base}{path}"
        try:
            resp = await self.client.request(method, url, json=json, headers=self._headers())
        except httpx.HTTPError as e:
            raise RemoteStoreError(f"{method} {path} failed: {e}") from e

        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = None
            message = body.get("error") if isinstance(body, dict) else None
            raise RemoteStoreError(
                message or resp.reason_phrase or f"HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        if not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError as e:
            raise RemoteStoreError(
                f"{method} {path} returned a non-JSON body", status_code=resp.status_code
            ) from e
        if not isinstance(data, dict):
            raise RemoteStoreError(
                f"{method} {path} returned an unexpected body", status_code=resp.status_code
            )
        return data

    @staticmethod
    def _field(data: dict, key: str, path: str):
        try:
            return data[key]
        except KeyError as e:
            raise RemoteStoreError(f"Response from {path} is missing '{key}'") from e

    # =========================================================================
    # Projects
    # =========================================================================

    async def ensure_project(
        self,
        url_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> dict:
        """Create-or-touch the project keyed by ``url_id`` and return it."""
        data = await self._request(
            "POST",
            "/projects",
            json={
                "intent": "create",
                "url_id": url_id,
                "title": title,
                "description": description,
                "metadata": metadata,
            },
        )
        return self._field(data, "project", "/projects")

    async def update_project(
        self,
        project_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> dict:
        data = await self._request(
            "POST",
            "/projects",
            json={
                "intent": "update",
                "project_id": project_id,
                "title": title,
                "description": description,
                "metadata": metadata,
            },
        )
        return self._field(data, "project", "/projects")

    async def delete_project(self, project_id: str) -> bool:
        data = await self._request(
            "POST", "/projects", json={"intent": "delete", "project_id": project_id}
        )
        return bool(data.get("success"))

    async def list_projects(self) -> List[dict]:
        data = await self._request("GET", "/projects")
        return data.get("projects", [])

    async def load_project(self, project_id: str) -> Optional[RemoteProject]:
        """
        Fetch messages, files and workbench state for a project.

        Returns:
            The project, or None when it does not exist for this caller
        """
        try:
            data = await self._request("GET", f"/projects/{project_id}/load")
        except RemoteStoreError as e:
            if e.status_code == 404:
                return None
            raise

        project = self._field(data, "project", "/load")
        workbench = data.get("workbench")
        try:
            return RemoteProject(
                id=str(project["id"]),
                url_id=project["url_id"],
                title=project.get("title") or "",
                description=project.get("description"),
                messages=[Message.from_dict(m) for m in data.get("messages") or []],
                files=file_map_from_dict(data.get("files")),
                workbench=WorkbenchState.from_row(workbench) if workbench else None,
            )
        except (AttributeError, KeyError, TypeError) as e:
            raise RemoteStoreError(f"Malformed project load for {project_id}: {e}") from e

    # =========================================================================
    # Messages, files, workbench
    # =========================================================================

    async def save_messages(self, project_id: str, messages: List[Message]) -> int:
        data = await self._request(
            "POST",
            f"/projects/{project_id}/messages",
            json={"messages": [m.to_sync_dict() for m in messages]},
        )
        return data.get("count", 0)

    async def list_messages(self, project_id: str) -> List[dict]:
        data = await self._request("GET", f"/projects/{project_id}/messages")
        return data.get("messages", [])

    async def save_files(self, project_id: str, files: FileMap) -> int:
        data = await self._request(
            "POST",
            f"/projects/{project_id}/files",
            json={"files": file_map_to_dict(files)},
        )
        return data.get("count", 0)

    async def list_files(self, project_id: str) -> List[dict]:
        data = await self._request("GET", f"/projects/{project_id}/files")
        return data.get("files", [])

    async def save_workbench(self, project_id: str, state: WorkbenchState) -> Optional[dict]:
        data = await self._request(
            "POST", f"/projects/{project_id}/workbench", json=state.to_payload()
        )
        return data.get("workbench")

    async def get_workbench(self, project_id: str) -> Optional[dict]:
        data = await self._request("GET", f"/projects/{project_id}/workbench")
        return data.get("workbench")

    async def sync_user_profile(
        self,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> dict:
        data = await self._request(
            "POST",
            "/user-profile",
            json={
                "email": email,
                "firstName": first_name,
                "lastName": last_name,
                "imageUrl": image_url,
            },
        )
        return self._field(data, "profile", "/user-profile")

    # =========================================================================
    # Unload transport
    # =========================================================================

    def send_beacon(self, path: str, payload: dict) -> bool:
        """
        Queue a best-effort POST without waiting for the response.

        Delivery is unconfirmed: a failure is logged by the background task
        and the payload is lost.

        Returns:
            True if the request was queued
        """
        try:
            run_in_background(self._deliver_beacon(path, payload))
        except RuntimeError as e:
            # no running event loop
            logger.warning(f"Beacon to {path} not queued: {e}")
            return False
        return True

    async def _deliver_beacon(self, path: str, payload: dict) -> None:
        try:
            await self._request("POST", path, json=payload)
        except RemoteStoreError as e:
            logger.warning(f"Beacon to {path} failed: {e}")
