from __future__ import annotations

"""Undo-log model for optimistic tree mutations.

Every handler records the previous value of each location it is about to
change, then applies its optimistic edit. If persistence fails the log is
replayed in reverse against the store; on success it is discarded.

Scope:
- Pure core model (no I/O, no UI).
- Handler-local: a log lives for exactly one mutation and is never shared.

Location keys:
- ``("children", parent_id)`` -> previous ordered child list
- ``("name", node_id)``       -> previous name
- ``("node", node_id)``       -> previous Node, or None if the node did not exist
"""

from dataclasses import dataclass
from typing import Any, List, Set, Tuple
from typing import TYPE_CHECKING

import logging

if TYPE_CHECKING:
    from foldly_tree.core.tree_store import TreeStore

__all__ = ["UndoEntry", "UndoLog"]

logger = logging.getLogger(__name__)

LocationKey = Tuple[str, str]


@dataclass(frozen=True)
class UndoEntry:
    """Single recorded location with the value it held before the mutation."""

    location: LocationKey
    previous: Any


class UndoLog:
    """Ordered record of pre-mutation values for one handler invocation."""

    def __init__(self) -> None:
        self._entries: List[UndoEntry] = []
        self._seen: Set[LocationKey] = set()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def locations(self) -> List[LocationKey]:
        return [e.location for e in self._entries]

    def record_children(self, store: "TreeStore", parent_id: str) -> None:
        self._record(("children", parent_id), list(store.children_of(parent_id)))

    def record_name(self, store: "TreeStore", node_id: str) -> None:
        self._record(("name", node_id), store.get(node_id).name)

    def record_node(self, store: "TreeStore", node_id: str) -> None:
        node = store.find(node_id)
        self._record(("node", node_id), node.clone() if node is not None else None)

    def rollback(self, store: "TreeStore") -> int:
        """Restore every recorded location in reverse order.

        Node entries go first so that the child lists written back after them
        can list every restored node again. Returns the number of entries
        replayed. The log is empty afterwards.
        """
        replayed = 0
        ordered = list(reversed(self._entries))
        ordered.sort(key=lambda e: e.location[0] != "node")
        for entry in ordered:
            store.restore(entry.location, entry.previous)
            replayed += 1
        logger.debug("Undo log replayed %d entr%s", replayed, "y" if replayed == 1 else "ies")
        self.discard()
        return replayed

    def discard(self) -> None:
        self._entries.clear()
        self._seen.clear()

    def _record(self, location: LocationKey, previous: Any) -> None:
        # Only the first value matters: it is the pre-mutation state.
        if location in self._seen:
            return
        self._seen.add(location)
        self._entries.append(UndoEntry(location=location, previous=previous))
