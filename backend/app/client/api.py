"""
HTTP client for the ingestion and reconciliation endpoints.

Every non-2xx response raises ClientRequestError carrying the server's error
code, so callers branch on ``code`` rather than parsing messages.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


class ClientRequestError(Exception):
    """A request failed at the transport level or returned an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class LearnChatClient:
    """
    Async client for the content API.

    Usage:
    ------
    async with LearnChatClient("http://localhost:8000") as client:
        created = await client.ingest_text(workspace_id, "Photosynthesis ...")
        data = await client.get_processed(created["contentId"])

    Pass ``client`` to reuse an existing httpx.AsyncClient (tests pass one
    built on ASGITransport).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        api_prefix: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_prefix = api_prefix if api_prefix is not None else settings.API_V1_PREFIX
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=5.0),
        )

    async def __aenter__(self) -> "LearnChatClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.api_prefix}{path}"
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ClientRequestError(f"{method} {url} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            error = body.get("error", {}) if isinstance(body, dict) else {}
            raise ClientRequestError(
                error.get("message") or f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
                code=error.get("code"),
            )
        return body

    # ========================================
    # Ingestion
    # ========================================

    async def ingest_text(self, workspace_id: str, text: str) -> Dict[str, Any]:
        return await self._request(
            "POST", "/ingest", data={"type": "text", "workspaceId": workspace_id, "text": text}
        )

    async def ingest_youtube(self, workspace_id: str, url: str) -> Dict[str, Any]:
        return await self._request(
            "POST", "/ingest", data={"type": "youtube", "workspaceId": workspace_id, "url": url}
        )

    async def ingest_pdf(self, workspace_id: str, filename: str, data: bytes) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/ingest",
            data={"type": "pdf", "workspaceId": workspace_id},
            files={"file": (filename, data, "application/pdf")},
        )

    # ========================================
    # Reconciliation
    # ========================================

    async def get_processed(self, content_id: str) -> Dict[str, Any]:
        """{"content": {...}, "processed": {...} | None}"""
        return await self._request("GET", f"/content/{content_id}/processed")

    async def trigger_processing(self, content_id: str) -> Dict[str, Any]:
        """POST /process; {"success", "summary", "status"}"""
        return await self._request("POST", "/process", json={"contentId": content_id})

    async def classify(self, content_id: str) -> Dict[str, Any]:
        """{"success", "classification": {"display_title", ...}}"""
        return await self._request("POST", f"/content/{content_id}/classify")

    async def get_chat_messages(self, content_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/content/{content_id}/chat-messages")
