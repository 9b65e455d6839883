"""
Contract for the hierarchical document store.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

# Invoked with a partial delta of the watched document
WatchCallback = Callable[[Dict[str, Any]], Awaitable[None]]


@dataclass
class StoreResponse:
    """Response of a store request."""
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    data: Any = None

    @property
    def location(self) -> Optional[str]:
        """Path of the document the request touched."""
        return self.headers.get("content-location")

    @property
    def rev(self) -> int:
        return int(self.headers.get("x-oada-rev", 0))


class StoreConnection(ABC):
    """Operations the rules services need from a document store."""

    @abstractmethod
    async def get(self, path: str) -> StoreResponse:
        """Read the document at ``path``."""

    @abstractmethod
    async def put(self, path: str, data: Any, tree: Optional[Mapping[str, Any]] = None) -> StoreResponse:
        """Merge ``data`` into the document at ``path``."""

    @abstractmethod
    async def post(self, path: str, data: Any, tree: Optional[Mapping[str, Any]] = None) -> StoreResponse:
        """Append ``data`` as a new child of the list at ``path``."""

    @abstractmethod
    async def delete(self, path: str) -> StoreResponse:
        """Remove the document at ``path``."""

    @abstractmethod
    async def watch(self, path: str, callback: WatchCallback) -> str:
        """Deliver every change under ``path`` to ``callback``; returns a watch id."""

    @abstractmethod
    async def unwatch(self, watch_id: str) -> None:
        """Cancel a watch."""

    async def close(self) -> None:
        """Release connection resources."""


class WatchChannel:
    """Delivers deltas to one watch callback in order, off the producer's task."""

    def __init__(self, watch_id: str, callback: WatchCallback, logger):
        self.watch_id = watch_id
        self.callback = callback
        self.logger = logger
        self.unfinished = 0
        self._active = True
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task = asyncio.create_task(self._run())

    def push(self, delta: Any) -> None:
        self.unfinished += 1
        self._queue.put_nowait(delta)

    async def _run(self) -> None:
        while self._active:
            delta = await self._queue.get()
            try:
                await self.callback(delta)
            except Exception as e:
                self.logger.error(
                    "Watch callback failed",
                    watch_id=self.watch_id,
                    error=str(e),
                    exc_info=True
                )
            finally:
                self.unfinished -= 1

    async def close(self) -> None:
        """Stop delivery; may be called from inside the callback itself."""
        self._active = False
        if self._task is asyncio.current_task():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
