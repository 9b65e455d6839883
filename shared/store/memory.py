"""
In-process document store.

Keeps documents in a nested dict and delivers watch deltas through one
``asyncio.Queue`` per watch, so each watcher sees changes in store order.
"""

import asyncio
import copy
import uuid
from typing import Any, Dict, List, Mapping, Optional

from shared.errors import StoreError
from shared.logging import get_logger
from shared.store.base import StoreConnection, StoreResponse, WatchCallback, WatchChannel
from shared.trees import content_type_for, split_path

_MISSING = object()


def _deep_merge(target: Dict[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(value, Mapping) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


class _Watch:
    """A registered watch on a path."""

    def __init__(self, path: str, channel: WatchChannel):
        self.parts = split_path(path)
        self.channel = channel


class InMemoryStore(StoreConnection):
    """Nested-dict implementation of ``StoreConnection``."""

    def __init__(self):
        self.logger = get_logger("store.memory")
        self._root: Dict[str, Any] = {}
        self._rev = 0
        self._watches: Dict[str, _Watch] = {}

    @property
    def revision(self) -> int:
        return self._rev

    def _find(self, parts: List[str]) -> Any:
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return _MISSING
            node = node[part]
        return node

    def _response(self, path: str, data: Any = None, status: int = 200) -> StoreResponse:
        return StoreResponse(
            status=status,
            headers={"content-location": path, "x-oada-rev": str(self._rev)},
            data=data
        )

    async def get(self, path: str) -> StoreResponse:
        node = self._find(split_path(path))
        if node is _MISSING:
            raise StoreError(f"Not found: {path}", status=404, details={"path": path})
        return self._response(path, copy.deepcopy(node))

    async def put(self, path: str, data: Any, tree: Optional[Mapping[str, Any]] = None) -> StoreResponse:
        parts = split_path(path)
        if not parts:
            raise StoreError("Cannot replace the store root", status=400, details={"path": path})

        self._rev += 1
        node = self._root
        for level, part in enumerate(parts[:-1], start=1):
            node = self._ensure(node, part, parts[:level], tree)

        last = parts[-1]
        if isinstance(data, Mapping):
            target = self._ensure(node, last, parts, tree)
            _deep_merge(target, data)
            target["_rev"] = self._rev
        else:
            node[last] = copy.deepcopy(data)

        self._notify(parts, data)
        return self._response("/" + "/".join(parts), status=204)

    def _ensure(self, node: Dict[str, Any], part: str, parts: List[str], tree) -> Dict[str, Any]:
        if not isinstance(node.get(part), dict):
            node[part] = {}
            content_type = content_type_for(tree, "/".join(parts))
            if content_type:
                node[part]["_type"] = content_type
        return node[part]

    async def post(self, path: str, data: Any, tree: Optional[Mapping[str, Any]] = None) -> StoreResponse:
        key = uuid.uuid4().hex
        response = await self.put(f"{path.rstrip('/')}/{key}", data, tree=tree)
        response.status = 201
        return response

    async def delete(self, path: str) -> StoreResponse:
        parts = split_path(path)
        parent = self._find(parts[:-1])
        if not parts or not isinstance(parent, dict) or parts[-1] not in parent:
            raise StoreError(f"Not found: {path}", status=404, details={"path": path})

        self._rev += 1
        del parent[parts[-1]]
        self._notify(parts, None)
        return self._response(path, status=204)

    def _notify(self, parts: List[str], data: Any) -> None:
        """Queue the mutation, re-rooted at each affected watch."""
        for watch in list(self._watches.values()):
            depth = len(watch.parts)
            if parts[:depth] == watch.parts:
                delta = copy.deepcopy(data)
                for part in reversed(parts[depth:]):
                    delta = {part: delta}
            elif watch.parts[:len(parts)] == parts:
                delta = data
                for part in watch.parts[len(parts):]:
                    if not isinstance(delta, Mapping) or part not in delta:
                        delta = _MISSING
                        break
                    delta = delta[part]
                if delta is _MISSING:
                    continue
                delta = copy.deepcopy(delta)
            else:
                continue

            if isinstance(delta, dict):
                delta["_rev"] = self._rev
            watch.channel.push(delta)

    async def watch(self, path: str, callback: WatchCallback) -> str:
        watch_id = uuid.uuid4().hex
        self._watches[watch_id] = _Watch(path, WatchChannel(watch_id, callback, self.logger))
        self.logger.debug("Watch started", watch_id=watch_id, path=path)
        return watch_id

    async def unwatch(self, watch_id: str) -> None:
        watch = self._watches.pop(watch_id, None)
        if watch is None:
            self.logger.debug("Unknown watch", watch_id=watch_id)
            return

        await watch.channel.close()
        self.logger.debug("Watch stopped", watch_id=watch_id)

    async def drain(self) -> None:
        """Wait until every queued delta has been handled."""
        while any(watch.channel.unfinished for watch in list(self._watches.values())):
            await asyncio.sleep(0)

    async def close(self) -> None:
        for watch_id in list(self._watches):
            await self.unwatch(watch_id)
