"""
Document store connections and the list-watch primitive.

- base: the ``StoreConnection`` contract and ``StoreResponse``
- memory: in-process store used for local runs and tests
- http: HTTP/websocket client for a remote store
- list_watch: turns watch deltas on a list into per-item notifications
"""

from shared.store.base import StoreConnection, StoreResponse, WatchCallback
from shared.store.memory import InMemoryStore
from shared.store.http import HttpStoreClient, create_store
from shared.store.list_watch import ListWatch

__all__ = [
    "StoreConnection",
    "StoreResponse",
    "WatchCallback",
    "InMemoryStore",
    "HttpStoreClient",
    "create_store",
    "ListWatch",
]
