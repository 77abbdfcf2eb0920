"""HTTP client for the remote image catalog."""
import logging
import mimetypes
from typing import Any, Dict, Optional

import httpx

from image_sync.models import Item, Replica
from image_sync.utils.errors import RemoteError, ThrottledError, get_retry_after, with_retry
from image_sync.utils.timestamps import parse_timestamp

from .interfaces import RemoteCatalog, RemotePage

logger = logging.getLogger(__name__)


class RemoteCatalogClient(RemoteCatalog):
    """Remote catalog client for image sync."""

    def __init__(
        self,
        base_url: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 2.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor

    async def __aenter__(self) -> "RemoteCatalogClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def list_items(self, page: int, limit: int) -> RemotePage:
        """
        List one page of catalog records.

        Args:
            page: 1-based page number
            limit: Records per page

        Returns:
            RemotePage with parsed items and pagination info

        Raises:
            RemoteError: For API errors or malformed payloads
        """
        response = await self._request("GET", "/images", params={"page": page, "limit": limit})
        data = self._json(response)
        pagination = data.get("pagination") or {}
        try:
            items = [self._to_item(raw) for raw in data.get("images", [])]
            return RemotePage(
                items=items,
                page=int(pagination.get("page", page)),
                limit=int(pagination.get("limit", limit)),
                total=int(pagination.get("total", len(items))),
                total_pages=int(pagination.get("totalPages", 1)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise RemoteError(f"Malformed catalog page: {exc}") from exc

    async def fetch_bytes(self, item_id: str) -> bytes:
        """Download an image's binary content."""
        response = await self._request("GET", f"/images/{item_id}/file")
        return response.content

    async def create_item(self, data: bytes, display_name: str) -> Item:
        """
        Upload bytes as a new catalog record.

        Args:
            data: File content
            display_name: Name the catalog records as ``originalName``

        Returns:
            The created remote Item

        Raises:
            RemoteError: When the upload is rejected
        """
        mime = mimetypes.guess_type(display_name)[0] or "application/octet-stream"
        response = await self._request(
            "POST",
            "/upload/multiple",
            files={"images": (display_name, data, mime)},
        )
        payload = self._json(response)
        results = payload.get("results") or {}
        created = results.get("success") or []
        if not created:
            failures = results.get("failed") or []
            reason = failures[0].get("error") if failures else "no record returned"
            raise RemoteError(
                f"Upload of {display_name} was rejected: {reason}",
                remote_status=response.status_code,
                detail=response.text,
            )
        try:
            return self._to_item(created[0])
        except (KeyError, TypeError, ValueError) as exc:
            raise RemoteError(f"Malformed upload response for {display_name}: {exc}") from exc

    async def delete_item(self, item_id: str) -> None:
        """Delete a catalog record without the server writing its own delete log."""
        await self._request("DELETE", f"/images/{item_id}", params={"isSyncOperation": "true"})

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        async def send() -> httpx.Response:
            try:
                response = await self.client.request(method, url, **kwargs)
            except httpx.HTTPError as exc:
                raise RemoteError(f"Unable to reach remote catalog: {exc}") from exc
            self._raise_for_status(response)
            return response

        return await with_retry(
            send,
            max_attempts=self.max_retries,
            backoff_factor=self.backoff_factor,
        )

    def _raise_for_status(self, response: httpx.Response) -> None:
        """
        Map error responses from the catalog API.

        Raises:
            ThrottledError: For HTTP 429
            RemoteError: For any other 4xx/5xx
        """
        if not response.is_error:
            return

        if response.status_code == 429:
            retry_after = get_retry_after(response.headers)
            raise ThrottledError("Remote catalog is throttling requests", retry_after=retry_after or 1)

        message = f"Remote catalog returned HTTP {response.status_code}"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error = body.get("error")
            details = body.get("details")
            if error:
                message = f"{message}: {error}"
            if details:
                message = f"{message} ({details})"

        raise RemoteError(message, remote_status=response.status_code, detail=response.text)

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteError(
                "Remote catalog response was not JSON",
                remote_status=response.status_code,
                detail=response.text,
            ) from exc
        if not isinstance(data, dict):
            raise RemoteError("Unexpected response format from remote catalog", remote_status=response.status_code)
        return data

    @staticmethod
    def _to_item(payload: Dict[str, Any]) -> Item:
        logical_name = payload["originalName"]
        return Item(
            logical_name=logical_name,
            storage_name=payload.get("filename") or logical_name,
            size_bytes=int(payload.get("fileSize") or 0),
            modified_at=parse_timestamp(payload.get("lastModified")),
            corrupted=bool(payload.get("isCorrupted", False)),
            source_replica=Replica.REMOTE,
            item_id=str(payload["id"]),
        )
