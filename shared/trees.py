"""
Namespace layout and content-type trees for rules documents.

Groups the various bits involved in the rules engine::

    <global_root>
     | descriptions of the actions services implement
     /actions
     | descriptions of the conditions services implement
     /conditions
     | registered rules
     /configured
     | "compiled" work to be run by a worker
     /compiled

Every service gets the same layout under ``<services_root>/<service>/rules``.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from shared.logging import get_logger

ACTIONS = "actions"
CONDITIONS = "conditions"
CONFIGURED = "configured"
COMPILED = "compiled"

RULES_SUBTREE: Dict[str, Any] = {
    "_type": "application/vnd.oada.rules.1+json",
    ACTIONS: {
        "_type": "application/vnd.oada.rules.actions.1+json",
        "*": {"_type": "application/vnd.oada.rules.action.1+json"},
    },
    CONDITIONS: {
        "_type": "application/vnd.oada.rules.conditions.1+json",
        "*": {"_type": "application/vnd.oada.rules.condition.1+json"},
    },
    CONFIGURED: {
        "_type": "application/vnd.oada.rules.configured.1+json",
        "*": {"_type": "application/vnd.oada.rule.configured.1+json"},
    },
    COMPILED: {
        "_type": "application/vnd.oada.rules.compiled.1+json",
        "*": {"_type": "application/vnd.oada.rule.compiled.1+json"},
    },
}

rules_tree: Dict[str, Any] = {
    "bookmarks": {
        "_type": "application/vnd.oada.bookmarks.1+json",
        "rules": RULES_SUBTREE,
    },
}

service_rules_tree: Dict[str, Any] = {
    "bookmarks": {
        "_type": "application/vnd.oada.bookmarks.1+json",
        "services": {
            "_type": "application/vnd.oada.services.1+json",
            "*": {
                "_type": "application/vnd.oada.service.1+json",
                "rules": RULES_SUBTREE,
            },
        },
    },
}

logger = get_logger("shared.trees")


@dataclass(frozen=True)
class NamespaceLayout:
    """Where rules documents live in the store."""

    global_root: str = "/bookmarks/rules"
    services_root: str = "/bookmarks/services"

    @classmethod
    def from_config(cls, config) -> "NamespaceLayout":
        return cls(
            global_root=config.global_root.rstrip("/"),
            services_root=config.services_root.rstrip("/"),
        )

    def global_path(self, kind: str, key: Optional[str] = None) -> str:
        path = f"{self.global_root}/{kind}"
        return f"{path}/{key}" if key else path

    def service_root(self, service: str) -> str:
        return f"{self.services_root}/{service}/rules"

    def service_path(self, service: str, kind: str, key: Optional[str] = None) -> str:
        path = f"{self.service_root(service)}/{kind}"
        return f"{path}/{key}" if key else path


DEFAULT_LAYOUT = NamespaceLayout()


def split_path(path: str):
    return [part for part in path.split("/") if part]


def content_type_for(tree: Optional[Mapping[str, Any]], path: str) -> Optional[str]:
    """Look up the ``_type`` a tree assigns to ``path`` (``*`` matches any key)."""
    node = tree
    for part in split_path(path):
        if not isinstance(node, Mapping):
            return None
        node = node.get(part, node.get("*"))
    if isinstance(node, Mapping):
        return node.get("_type")
    return None


async def fill_tree(conn, tree: Mapping[str, Any], path: str) -> None:
    """
    Create ``path`` one level at a time.

    The store rejects creating several missing levels in a single PUT.
    """
    parts = split_path(path)
    for level in range(1, len(parts) + 1):
        await conn.put("/" + "/".join(parts[:level]), {}, tree=tree)
    logger.debug("Tree filled", path=path, levels=len(parts))
