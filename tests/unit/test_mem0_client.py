"""Unit tests for the mem0 REST client, driven by httpx.MockTransport."""

import json
from unittest.mock import patch

import httpx
import pytest
from tenacity import wait_none

from src.core.errors import MemoryServiceError
from src.memory.clients.mem0 import Mem0Client
from tests.fakes import make_settings


def client_for(handler) -> Mem0Client:
    return Mem0Client(config=make_settings(), transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
class TestMem0Client:
    """Test cases for Mem0Client."""

    async def test_add_posts_messages_with_token_auth(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=[{"id": "m1", "event": "ADD"}])

        async with client_for(handler) as client:
            await client.add(
                [{"role": "user", "content": "transcript"}],
                user_id="alice",
                metadata={"source": "chat_session"},
            )

        assert seen["method"] == "POST"
        assert seen["path"] == "/v1/memories/"
        assert seen["auth"] == "Token test-mem0-key"
        assert seen["body"]["user_id"] == "alice"
        assert seen["body"]["metadata"] == {"source": "chat_session"}

    async def test_search_parses_list_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/memories/search/"
            return httpx.Response(200, json=[
                {"id": "1", "memory": "Likes tea", "metadata": {"timestamp": "2024-01-01T00:00:00Z"}},
                {"id": "2", "text": "Lives in Oslo"},
                {"id": "3", "memory": ""},
            ])

        async with client_for(handler) as client:
            records = await client.search("drinks", user_id="alice", limit=3)

        assert [r.memory for r in records] == ["Likes tea", "Lives in Oslo"]
        assert records[0].metadata_timestamp.year == 2024

    async def test_get_all_parses_paginated_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["user_id"] == "alice"
            return httpx.Response(200, json={"results": [
                {"id": "1", "memory": "Name is Alex", "created_at": "2024-03-02T10:00:00Z"},
            ]})

        async with client_for(handler) as client:
            records = await client.get_all("alice")

        assert records[0].id == "1"
        assert records[0].created_at.month == 3

    async def test_delete_uses_entry_path(self) -> None:
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append((request.method, request.url.path))
            return httpx.Response(204)

        async with client_for(handler) as client:
            await client.delete("abc")

        assert paths == [("DELETE", "/v1/memories/abc/")]

    async def test_http_error_raises_memory_service_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"detail": "boom"})

        async with client_for(handler) as client:
            with pytest.raises(MemoryServiceError) as exc_info:
                await client.get_all("alice")

        assert exc_info.value.details["status_code"] == 500

    async def test_transport_errors_are_retried(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            if len(attempts) < 3:
                raise httpx.ConnectError("connection refused")
            return httpx.Response(200, json=[])

        with patch.object(Mem0Client._send.retry, "wait", wait_none()):
            async with client_for(handler) as client:
                assert await client.get_all("alice") == []

        assert len(attempts) == 3

    async def test_persistent_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        with patch.object(Mem0Client._send.retry, "wait", wait_none()):
            async with client_for(handler) as client:
                with pytest.raises(MemoryServiceError):
                    await client.search("q", user_id="alice")


def test_missing_api_key_is_rejected() -> None:
    with pytest.raises(MemoryServiceError):
        Mem0Client(config=make_settings(mem0_api_key=""))
