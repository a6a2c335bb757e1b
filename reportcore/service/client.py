"""HTTP client for the remote report/history service.

Errors are split in two families: responses with a status below 500 are
raised as ``KnownError`` (the service put a readable message in the body),
everything else becomes ``UnknownError``.
"""

from __future__ import annotations

import traceback
from typing import Any
from urllib.parse import quote

import httpx

from reportcore.errors import KnownError, UnknownError
from reportcore.model.history import HistoryDataPoint


DEFAULT_TIMEOUT = 30.0


class ServiceClient:
    """Async client for the report service.

    The access token is passed in explicitly; nothing is read from the
    user's home directory.
    """

    def __init__(
        self,
        url: str,
        project: str | None = None,
        access_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        if not url:
            raise ValueError("Service URL is required")
        self.url = url.rstrip("/")
        self.project = project
        headers = {}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self._client = httpx.AsyncClient(
            base_url=self.url,
            headers=headers,
            transport=transport,
            timeout=timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ServiceClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def set_project(self, project: str) -> None:
        self.project = project

    async def download_history(
        self, branch: str, limit: int | None = None,
    ) -> list[HistoryDataPoint]:
        """Download history data points of a branch."""
        project = self._require_project()
        params = {"limit": limit} if limit else None
        data = await self._request(
            "GET",
            f"/projects/{project}/{quote(branch, safe='')}/history",
            params=params,
        )
        return [HistoryDataPoint.from_dict(p) for p in data.get("history", [])]

    async def create_report(
        self,
        report_name: str,
        report_uuid: str | None = None,
        branch: str | None = None,
    ) -> str:
        """Create a remote report record and return its url."""
        project = self._require_project()
        data = await self._request(
            "POST",
            "/reports",
            json={
                "projectUuid": project,
                "reportName": report_name,
                "reportUuid": report_uuid,
                "branch": branch,
            },
        )
        return data["url"]

    async def upload_report_file(
        self, report_uuid: str, key: str, data: bytes,
    ) -> None:
        """Upload one report file under ``key``."""
        self._require_project()
        await self._request(
            "POST",
            f"/reports/{report_uuid}/upload",
            files={"file": (key, data)},
            data={"filename": key},
        )

    async def complete_report(
        self, report_uuid: str, history_point: HistoryDataPoint,
    ) -> dict[str, Any]:
        """Mark a report complete and attach its history point.

        Incomplete reports do not appear in the branch history.
        """
        self._require_project()
        return await self._request(
            "POST",
            f"/reports/{report_uuid}/complete",
            json={"historyPoint": history_point.to_dict()},
        )

    async def delete_report(
        self, report_uuid: str, plugin_id: str = "",
    ) -> dict[str, Any]:
        """Delete a report, or only one plugin's part of it."""
        self._require_project()
        return await self._request(
            "POST",
            f"/reports/{report_uuid}/delete",
            json={"pluginId": plugin_id},
        )

    def _require_project(self) -> str:
        if not self.project:
            raise ValueError("Project is not set")
        return self.project

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, endpoint, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = _error_message(e.response)
            if status < 500:
                raise KnownError(message, status) from e
            raise UnknownError(message, traceback.format_exc()) from e
        except httpx.HTTPError as e:
            raise UnknownError(str(e) or type(e).__name__, traceback.format_exc()) from e

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {"data": data}


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text or response.reason_phrase
