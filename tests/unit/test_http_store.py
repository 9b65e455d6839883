"""
Unit tests for the HTTP store client.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from shared.errors import StoreError
from shared.logging import get_logger
from shared.retry import RetryError
from shared.store import HttpStoreClient
from shared.store.base import WatchChannel
from shared.trees import service_rules_tree


class TestHttpStoreClient:
    """Test cases for HttpStoreClient."""

    @pytest.fixture
    def requests(self):
        """Requests seen by the mock transport."""
        return []

    @pytest.fixture
    def transport(self, requests):
        """Mock transport answering like a document store."""
        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path == "/missing":
                return httpx.Response(404, text="Not Found")
            if request.method == "GET":
                return httpx.Response(200, json={"a": 1}, headers={"x-oada-rev": "7"})
            return httpx.Response(
                201 if request.method == "POST" else 204,
                headers={"content-location": f"{request.url.path}/abc", "x-oada-rev": "8"}
            )

        return httpx.MockTransport(handler)

    @pytest.fixture
    def client(self, transport):
        """Create client over the mock transport."""
        return HttpStoreClient("http://store.test", token="secret", transport=transport)

    def test_websocket_url_derived(self):
        """Test that the websocket URL defaults to the HTTP URL."""
        client = HttpStoreClient("https://store.test/")

        assert client.ws_url == "wss://store.test"

    @pytest.mark.asyncio
    async def test_get(self, client, requests):
        """Test GET parses the document and headers."""
        response = await client.get("/bookmarks/a")

        assert response.data == {"a": 1}
        assert response.rev == 7
        assert requests[0].headers["authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_put_uses_tree_content_type(self, client, requests):
        """Test that PUT sends the content type the tree assigns."""
        response = await client.put(
            "/bookmarks/services/mailer/rules/actions/notify",
            {"name": "notify"},
            tree=service_rules_tree
        )

        assert response.status == 204
        assert response.location == "/bookmarks/services/mailer/rules/actions/notify/abc"
        assert requests[0].headers["content-type"] == "application/vnd.oada.rules.action.1+json"
        assert json.loads(requests[0].content) == {"name": "notify"}

    @pytest.mark.asyncio
    async def test_put_without_tree_is_json(self, client, requests):
        """Test that PUT falls back to application/json."""
        await client.put("/anything", {"a": 1})

        assert requests[0].headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_post(self, client):
        """Test POST reports the created location."""
        response = await client.post("/list", {"a": 1})

        assert response.status == 201
        assert response.location == "/list/abc"

    @pytest.mark.asyncio
    async def test_error_status_raises(self, client):
        """Test that error responses raise StoreError with the status."""
        with pytest.raises(StoreError) as exc_info:
            await client.get("/missing")

        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self):
        """Test that transport failures are retried before giving up."""
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 2:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={})

        client = HttpStoreClient("http://store.test", transport=httpx.MockTransport(handler))
        with patch("shared.retry.asyncio.sleep", new=AsyncMock()):
            await client.get("/doc")

        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        """Test that repeated transport failures raise RetryError."""
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = HttpStoreClient("http://store.test", transport=httpx.MockTransport(handler))
        with patch("shared.retry.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(RetryError):
                await client.get("/doc")

    @pytest.mark.asyncio
    async def test_unavailable_store_is_retried(self):
        """Test that 503 answers are retried and client errors are not."""
        attempts = []

        def handler(request):
            attempts.append(request.url.path)
            if request.url.path == "/busy" and len(attempts) == 1:
                return httpx.Response(503, text="busy")
            if request.url.path == "/gone":
                return httpx.Response(404, text="gone")
            return httpx.Response(200, json={"ok": True})

        client = HttpStoreClient("http://store.test", transport=httpx.MockTransport(handler))
        with patch("shared.retry.asyncio.sleep", new=AsyncMock()):
            response = await client.get("/busy")
            with pytest.raises(StoreError):
                await client.get("/gone")

        assert response.data == {"ok": True}
        assert attempts == ["/busy", "/busy", "/gone"]

    @pytest.mark.asyncio
    async def test_dispatch_reply(self, client):
        """Test that a reply message resolves the pending request."""
        reply = asyncio.get_running_loop().create_future()
        client._replies["req-1"] = reply

        await client.dispatch({"requestId": "req-1", "status": 200})

        assert reply.result()["status"] == 200

    @pytest.mark.asyncio
    async def test_dispatch_change(self, client):
        """Test that change messages reach the watch callback re-rooted."""
        deltas = []

        async def callback(delta):
            deltas.append(delta)

        channel = WatchChannel("watch-1", callback, get_logger("test"))
        client._channels["watch-1"] = channel

        await client.dispatch({
            "requestId": ["watch-1"],
            "change": [
                {"path": "", "body": {"enabled": False}},
                {"path": "/items/a", "body": {"v": 1}}
            ]
        })
        while channel.unfinished:
            await asyncio.sleep(0)

        assert deltas == [{"enabled": False}, {"items": {"a": {"v": 1}}}]
        await client.close()
