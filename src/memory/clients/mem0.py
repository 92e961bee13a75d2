"""HTTP client for the mem0 platform memory API."""

import json
import logging
from datetime import datetime
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ...core.config import Settings, settings as default_settings
from ...core.domain.memory import MemoryRecord
from ...core.errors import MemoryServiceError
from ..base import MemoryBackend

logger = logging.getLogger(__name__)


def _parse_record(item: dict[str, Any]) -> MemoryRecord | None:
    text = item.get("memory") or item.get("text") or ""
    if not text or not item.get("id"):
        return None

    created_at = None
    if item.get("created_at"):
        try:
            created_at = datetime.fromisoformat(str(item["created_at"]).replace("Z", "+00:00"))
        except ValueError:
            created_at = None

    return MemoryRecord(
        id=str(item["id"]),
        memory=text,
        metadata=item.get("metadata") or {},
        created_at=created_at,
    )


def _parse_records(payload: Any) -> list[MemoryRecord]:
    # List endpoints answer either a bare list or a paginated {"results": [...]}
    items = payload.get("results", []) if isinstance(payload, dict) else payload or []
    records = [_parse_record(item) for item in items if isinstance(item, dict)]
    return [record for record in records if record is not None]


class Mem0Client(MemoryBackend):
    """mem0 REST client with retry on transient transport errors."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: mem0 API key, defaults to settings
            base_url: API base URL, defaults to settings
            config: Settings to read defaults from
            transport: Optional httpx transport (used by tests)
        """
        config = config or default_settings
        api_key = api_key if api_key is not None else config.mem0_api_key
        if not api_key:
            raise MemoryServiceError("MEM0_API_KEY is required")

        self.client = httpx.AsyncClient(
            base_url=base_url or config.mem0_base_url,
            headers={
                "Authorization": f"Token {api_key}",
                "Content-Type": "application/json",
            },
            timeout=config.memory_request_timeout_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        await self.client.aclose()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.RequestError),
        reraise=True
    )
    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying transport errors."""
        response = await self.client.request(method, path, **kwargs)
        response.raise_for_status()
        return response

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._send(method, path, **kwargs)
        except httpx.HTTPStatusError as e:
            logger.error(
                f"mem0 API error {e.response.status_code} on {method} {path}: {e.response.text}"
            )
            raise MemoryServiceError(
                f"Memory service error: {e.response.status_code}",
                {"status_code": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            logger.error(f"mem0 request failed on {method} {path}: {str(e)}")
            raise MemoryServiceError(f"Memory service unreachable: {str(e)}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise MemoryServiceError("Memory service returned invalid JSON") from e

    async def add(
        self,
        messages: list[dict[str, str]],
        user_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        await self._request(
            "POST",
            "/v1/memories/",
            json={"messages": messages, "user_id": user_id, "metadata": metadata or {}},
        )

    async def search(self, query: str, user_id: str, limit: int = 5) -> list[MemoryRecord]:
        payload = await self._request(
            "POST",
            "/v1/memories/search/",
            json={"query": query, "user_id": user_id, "limit": limit},
        )
        return _parse_records(payload)

    async def get_all(self, user_id: str) -> list[MemoryRecord]:
        payload = await self._request("GET", "/v1/memories/", params={"user_id": user_id})
        return _parse_records(payload)

    async def delete(self, memory_id: str) -> None:
        await self._request("DELETE", f"/v1/memories/{memory_id}/")
