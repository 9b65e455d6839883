"""
Watch a list in the store and report its items.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Set, Union

from shared.errors import StoreError
from shared.logging import get_logger
from shared.store.base import StoreConnection

ItemHandler = Callable[[Any, str], Union[Awaitable[None], None]]
ItemAssertion = Callable[[Any], None]


class ListWatch:
    """
    Turns watch deltas on a list into per-item notifications.

    ``on_add_item`` fires the first time an item key is seen, ``on_item`` on
    every change to an item. With ``resume=False`` the items already in the
    list are reported as new when the watch starts; with ``resume=True`` they
    are remembered and only later changes are reported.
    Without ``on_item`` changes to keys already seen are ignored.
    """

    def __init__(
        self,
        conn: StoreConnection,
        path: str,
        name: str,
        on_add_item: Optional[ItemHandler] = None,
        on_item: Optional[ItemHandler] = None,
        assert_item: Optional[ItemAssertion] = None,
        resume: bool = False,
        on_rejected: Optional[Callable[[str, Exception], None]] = None
    ):
        self.conn = conn
        self.path = path.rstrip("/")
        self.name = name
        self.on_add_item = on_add_item
        self.on_item = on_item
        self.assert_item = assert_item
        self.resume = resume
        self.on_rejected = on_rejected
        self.logger = get_logger("store.list_watch")
        self.watch_id: Optional[str] = None
        self.running = False
        self._seen: Set[str] = set()

    @staticmethod
    async def _await_if_needed(result):
        if asyncio.iscoroutine(result):
            return await result
        return result

    async def start(self) -> None:
        """Start watching the list."""
        if self.running:
            self.logger.warning("List watch already running", name=self.name, path=self.path)
            return

        self.running = True
        self.watch_id = await self.conn.watch(self.path, self._handle_change)

        try:
            response = await self.conn.get(self.path)
            current = response.data if isinstance(response.data, Mapping) else {}
        except StoreError as e:
            if e.status != 404:
                raise
            current = {}

        existing = [key for key in current if not key.startswith("_")]
        self.logger.info(
            "List watch started",
            name=self.name,
            path=self.path,
            existing=len(existing),
            resume=self.resume
        )

        if self.resume:
            self._seen.update(existing)
            return

        for key in existing:
            await self._process(key)

    async def stop(self) -> None:
        """Stop watching; safe to call more than once."""
        if not self.running:
            return
        self.running = False
        watch_id, self.watch_id = self.watch_id, None
        if watch_id is not None:
            await self.conn.unwatch(watch_id)
        self.logger.info("List watch stopped", name=self.name, path=self.path)

    async def _handle_change(self, delta: Dict[str, Any]) -> None:
        if not self.running or not isinstance(delta, Mapping):
            return

        for key, value in delta.items():
            if key.startswith("_"):
                continue
            if value is None:
                # Item removed
                self._seen.discard(key)
                continue
            await self._process(key)
            if not self.running:
                break

    async def _process(self, key: str) -> None:
        is_new = key not in self._seen
        if not is_new and self.on_item is None:
            return
        item_path = f"{self.path}/{key}"

        try:
            response = await self.conn.get(item_path)
            item = response.data
            self._seen.add(key)
            if self.assert_item:
                self.assert_item(item)
        except Exception as e:
            self.logger.warning(
                "Skipping list item",
                name=self.name,
                item=item_path,
                error=str(e)
            )
            if self.on_rejected:
                self.on_rejected(key, e)
            return

        try:
            if is_new and self.on_add_item:
                await self._await_if_needed(self.on_add_item(item, key))
            if self.on_item:
                await self._await_if_needed(self.on_item(item, key))
        except Exception as e:
            self.logger.error(
                "Error handling list item",
                name=self.name,
                item=item_path,
                error=str(e),
                exc_info=True
            )
