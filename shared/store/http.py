"""
HTTP client for a remote document store.

Document operations go over ``httpx``; watches share one websocket
connection and are multiplexed by request id.
"""

import asyncio
import json
import uuid
from typing import Any, Dict, Mapping, Optional

import httpx
import websockets

from shared.errors import StoreError
from shared.logging import get_logger
from shared.retry import RetryConfig, retry_on_exception
from shared.store.base import StoreConnection, StoreResponse, WatchCallback, WatchChannel
from shared.trees import content_type_for, split_path

STORE_RETRY = RetryConfig(max_attempts=3, base_delay=0.5, max_delay=5.0)


class HttpStoreClient(StoreConnection):
    """Client for communicating with the document store."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        ws_url: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.ws_url = ws_url or self.base_url.replace("http", "ws", 1)
        self.token = token
        self.logger = get_logger("store.http")

        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport
        )

        self._socket = None
        self._reader: Optional[asyncio.Task] = None
        self._channels: Dict[str, WatchChannel] = {}
        self._replies: Dict[str, asyncio.Future] = {}
        self._socket_lock = asyncio.Lock()

    @retry_on_exception((httpx.TransportError, StoreError), config=STORE_RETRY)
    async def _request(self, method: str, path: str, data: Any = None,
                       tree: Optional[Mapping[str, Any]] = None) -> StoreResponse:
        headers = {}
        if data is not None:
            headers["Content-Type"] = content_type_for(tree, path) or "application/json"

        response = await self.client.request(
            method,
            path,
            content=json.dumps(data) if data is not None else None,
            headers=headers
        )

        if response.status_code >= 400:
            self.logger.error(
                "Store request failed",
                method=method,
                path=path,
                status_code=response.status_code,
                body=response.text
            )
            raise StoreError(
                f"{method} {path} failed",
                status=response.status_code,
                details={"path": path, "body": response.text}
            )

        body = None
        if response.content and "json" in response.headers.get("content-type", ""):
            body = response.json()

        return StoreResponse(
            status=response.status_code,
            headers={key.lower(): value for key, value in response.headers.items()},
            data=body
        )

    async def get(self, path: str) -> StoreResponse:
        return await self._request("GET", path)

    async def put(self, path: str, data: Any, tree: Optional[Mapping[str, Any]] = None) -> StoreResponse:
        return await self._request("PUT", path, data, tree)

    async def post(self, path: str, data: Any, tree: Optional[Mapping[str, Any]] = None) -> StoreResponse:
        return await self._request("POST", path, data, tree)

    async def delete(self, path: str) -> StoreResponse:
        return await self._request("DELETE", path)

    async def _connect(self):
        async with self._socket_lock:
            if self._socket is None:
                self._socket = await websockets.connect(self.ws_url)
                self._reader = asyncio.create_task(self._read_loop())
                self.logger.info("Watch socket connected", url=self.ws_url)
        return self._socket

    async def _send(self, message: Dict[str, Any]) -> Dict[str, Any]:
        socket = await self._connect()
        reply = asyncio.get_running_loop().create_future()
        self._replies[message["requestId"]] = reply
        if self.token:
            message.setdefault("headers", {})["authorization"] = f"Bearer {self.token}"
        await socket.send(json.dumps(message))
        return await reply

    async def watch(self, path: str, callback: WatchCallback) -> str:
        request_id = uuid.uuid4().hex
        self._channels[request_id] = WatchChannel(request_id, callback, self.logger)
        reply = await self._send({"requestId": request_id, "method": "watch", "path": path})
        if reply.get("status", 200) >= 400:
            await self._channels.pop(request_id).close()
            raise StoreError(f"Watch on {path} failed", status=reply["status"], details={"path": path})
        self.logger.debug("Watch started", watch_id=request_id, path=path)
        return request_id

    async def unwatch(self, watch_id: str) -> None:
        channel = self._channels.pop(watch_id, None)
        if channel is None:
            return
        await channel.close()
        await self._send({"requestId": watch_id, "method": "unwatch"})
        self.logger.debug("Watch stopped", watch_id=watch_id)

    async def _read_loop(self):
        try:
            async for raw in self._socket:
                await self.dispatch(json.loads(raw))
        except websockets.ConnectionClosed as e:
            self.logger.warning("Watch socket closed", error=str(e))
        finally:
            for reply in self._replies.values():
                if not reply.done():
                    reply.set_exception(StoreError("Watch socket closed", status=503))
            self._replies.clear()
            self._socket = None

    async def dispatch(self, message: Dict[str, Any]) -> None:
        """Route one websocket message to a pending reply or a watch callback."""
        request_ids = message.get("requestId")
        if not isinstance(request_ids, list):
            request_ids = [request_ids]

        if "change" not in message:
            for request_id in request_ids:
                reply = self._replies.pop(request_id, None)
                if reply and not reply.done():
                    reply.set_result(message)
            return

        for request_id in request_ids:
            channel = self._channels.get(request_id)
            if channel is None:
                continue
            for change in message["change"]:
                # Re-root child changes at the watched document
                delta = change.get("body") or {}
                for part in reversed(split_path(change.get("path", ""))):
                    delta = {part: delta}
                channel.push(delta)

    async def close(self) -> None:
        for channel in list(self._channels.values()):
            await channel.close()
        self._channels.clear()
        socket = self._socket
        if self._reader:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
        if socket is not None:
            await socket.close()
        self._socket = None
        await self.client.aclose()


def create_store(config) -> HttpStoreClient:
    """Build the store client described by ``config``."""
    return HttpStoreClient(
        base_url=config.store_url,
        token=config.store_token,
        ws_url=config.store_ws_url,
        timeout=config.store_timeout
    )
