from __future__ import annotations

"""Authoritative in-memory folder/file hierarchy.

The store maps ids to :class:`~foldly_tree.core.models.Node` values under a
single designated root. Child lists are the source of truth for membership and
order; an id -> parent id index is kept alongside every child-list write so that
parent lookups are O(1) instead of a scan over every folder.

Guarantees:
- Every non-root node appears in exactly one parent's child list, exactly once.
- No node is reachable from itself by following child links.
- ``version`` increases on every write; subscribers are called after each write.

Only the mutation service writes to a store, and only from inside an operation
admitted by its :class:`~foldly_tree.core.services.OperationSerializer`.
"""

from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

import logging

from foldly_tree.core.exceptions import ValidationFailure
from foldly_tree.core.models import Node, NodeKind

__all__ = ["TreeStore"]

logger = logging.getLogger(__name__)

StoreListener = Callable[["TreeStore"], None]


class TreeStore:
    """Id -> node mapping plus a designated root id.

    Parameters
    ----------
    root_id : str
        Id of the root folder (a workspace id or a shared-link id).
    root_name : str, default="Root"
        Display name of the root folder.
    """

    def __init__(self, root_id: str, root_name: str = "Root") -> None:
        self._root_id = root_id
        self._nodes: Dict[str, Node] = {root_id: Node(id=root_id, name=root_name, kind=NodeKind.FOLDER)}
        self._parent: Dict[str, str] = {}
        self._version = 0
        self._listeners: List[StoreListener] = []

    # ------------------------------------------------------------------ Reads

    @property
    def root_id(self) -> str:
        return self._root_id

    @property
    def version(self) -> int:
        return self._version

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def ids(self) -> List[str]:
        return list(self._nodes)

    def find(self, node_id: Optional[str]) -> Optional[Node]:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def get(self, node_id: str) -> Node:
        """Return the node for *node_id* or raise :class:`ValidationFailure`."""
        node = self._nodes.get(node_id)
        if node is None:
            raise ValidationFailure(f"Item not found: {node_id}", [node_id])
        return node

    def children_of(self, node_id: str) -> List[str]:
        """Return a copy of the ordered child ids of *node_id*."""
        return list(self.get(node_id).children)

    def parent_of(self, node_id: str) -> Optional[str]:
        """Return the parent id of *node_id*, or None for the root and unknown ids."""
        return self._parent.get(node_id)

    def is_ancestor(self, ancestor_id: str, node_id: str) -> bool:
        """Return True if *ancestor_id* is a strict ancestor of *node_id*."""
        current = self._parent.get(node_id)
        steps = 0
        while current is not None:
            if current == ancestor_id:
                return True
            current = self._parent.get(current)
            steps += 1
            if steps > len(self._nodes):
                # Only reachable if the index is corrupted
                logger.error("Parent chain of %s does not terminate", node_id)
                return False
        return False

    def descendants_of(self, node_id: str) -> List[str]:
        """Return all descendant ids of *node_id* in depth-first display order."""
        result: List[str] = []
        stack = list(reversed(self.get(node_id).children))
        while stack:
            current = stack.pop()
            result.append(current)
            node = self._nodes.get(current)
            if node is not None:
                stack.extend(reversed(node.children))
        return result

    def iter_nodes(self, include_root: bool = False) -> Iterator[Node]:
        """Yield nodes in depth-first display order."""
        if include_root:
            yield self._nodes[self._root_id]
        for node_id in self.descendants_of(self._root_id):
            yield self._nodes[node_id]

    def get_all_items(self, include_root: bool = False) -> List[Node]:
        return list(self.iter_nodes(include_root=include_root))

    def can_move(self, item_ids: Iterable[str], target_id: str) -> Tuple[bool, str]:
        """Check whether *item_ids* may be dropped into *target_id*.

        Returns
        -------
        tuple of (bool, str)
            ``(True, "")`` when allowed, otherwise ``(False, reason)``.
        """
        target = self._nodes.get(target_id)
        if target is None:
            return False, f"Target not found: {target_id}"
        if not target.is_folder:
            return False, "Items can only be moved into folders."
        for item_id in item_ids:
            if item_id not in self._nodes:
                return False, f"Item not found: {item_id}"
            if item_id == self._root_id:
                return False, "The root folder cannot be moved."
            if item_id == target_id:
                return False, "Cannot move an item into itself."
            if self.is_ancestor(item_id, target_id):
                return False, "Cannot move a folder into its own descendant."
        return True, ""

    def validate(self) -> List[str]:
        """Return a list of structural errors; empty when the tree is consistent."""
        errors: List[str] = []
        seen_in: Dict[str, str] = {}
        for parent_id, node in self._nodes.items():
            if node.kind == NodeKind.FILE and node.children:
                errors.append(f"File has children: {parent_id}")
            for child_id in node.children:
                if child_id not in self._nodes:
                    errors.append(f"Unknown child {child_id} under {parent_id}")
                    continue
                if child_id == self._root_id:
                    errors.append(f"Root listed as child of {parent_id}")
                if child_id in seen_in:
                    errors.append(f"Duplicate membership: {child_id} in {seen_in[child_id]} and {parent_id}")
                    continue
                seen_in[child_id] = parent_id
        for node_id in self._nodes:
            if node_id == self._root_id:
                continue
            if node_id not in seen_in:
                errors.append(f"Orphan node: {node_id}")
            elif self._parent.get(node_id) != seen_in[node_id]:
                errors.append(f"Parent index drift for {node_id}")
        reachable = set(self.descendants_of(self._root_id)) if not errors else set()
        if not errors and len(reachable) != len(self._nodes) - 1:
            errors.append("Cycle detected: some nodes are unreachable from the root")
        return errors

    def structure(self) -> Dict[str, Tuple[str, str, Tuple[str, ...], Optional[str]]]:
        """Return a comparable view: id -> (name, kind, children, parent id)."""
        return {
            node_id: (node.name, node.kind.value, tuple(node.children), self._parent.get(node_id))
            for node_id, node in self._nodes.items()
        }

    def copy(self) -> "TreeStore":
        """Return an independent copy. Listeners are not copied."""
        clone = TreeStore(self._root_id)
        clone._nodes = {node_id: node.clone() for node_id, node in self._nodes.items()}
        clone._parent = dict(self._parent)
        clone._version = self._version
        return clone

    # ----------------------------------------------------------------- Writes

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register *listener* for every write. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_children(self, parent_id: str, children: Iterable[str]) -> None:
        """Replace the child list of *parent_id*.

        Every id in *children* must exist and must not currently be listed
        under another parent; callers detach before they attach.
        """
        parent = self.get(parent_id)
        new_children = list(children)
        if new_children and not parent.is_folder:
            raise ValidationFailure(f"Cannot add children to file {parent_id}", [parent_id])
        if len(set(new_children)) != len(new_children):
            raise ValidationFailure(f"Duplicate ids in child list of {parent_id}", new_children)
        for child_id in new_children:
            self.get(child_id)
            if child_id == self._root_id:
                raise ValidationFailure("The root folder cannot be a child", [child_id])
            current = self._parent.get(child_id)
            if current is not None and current != parent_id:
                raise ValidationFailure(
                    f"Item {child_id} is still listed under {current}", [child_id]
                )
            if child_id == parent_id or self.is_ancestor(child_id, parent_id):
                raise ValidationFailure(
                    f"Item {child_id} cannot be placed under its own descendant {parent_id}", [child_id]
                )
        self._write_children(parent, new_children)
        self._touch()

    def insert(self, node: Node, parent_id: str, index: Optional[int] = None) -> None:
        """Add a new node under *parent_id*, at *index* or at the end."""
        if node.id in self._nodes:
            raise ValidationFailure(f"Duplicate id: {node.id}", [node.id])
        parent = self.get(parent_id)
        if not parent.is_folder:
            raise ValidationFailure(f"Cannot add children to file {parent_id}", [parent_id])
        self._nodes[node.id] = node
        children = list(parent.children)
        if index is None or index < 0 or index > len(children):
            children.append(node.id)
        else:
            children.insert(index, node.id)
        self._write_children(parent, children)
        self._touch()

    def remove_subtree(self, node_id: str) -> List[str]:
        """Detach *node_id* from its parent and drop it with all descendants.

        Returns the removed ids, the node itself first.
        """
        if node_id == self._root_id:
            raise ValidationFailure("The root folder cannot be removed", [node_id])
        self.get(node_id)
        removed = [node_id] + self.descendants_of(node_id)
        parent_id = self._parent.get(node_id)
        if parent_id is not None:
            parent = self._nodes[parent_id]
            self._write_children(parent, [c for c in parent.children if c != node_id])
        for removed_id in removed:
            self._nodes.pop(removed_id, None)
            self._parent.pop(removed_id, None)
        self._touch()
        return removed

    def set_name(self, node_id: str, name: str) -> None:
        self.get(node_id).name = name
        self._touch()

    def rekey(self, old_id: str, new_id: str) -> None:
        """Replace a node id in place, keeping its position and children."""
        if old_id == new_id:
            return
        if new_id in self._nodes:
            raise ValidationFailure(f"Duplicate id: {new_id}", [new_id])
        if old_id == self._root_id:
            raise ValidationFailure("The root id cannot be changed", [old_id])
        node = self._nodes.pop(self.get(old_id).id)
        node.id = new_id
        self._nodes[new_id] = node
        parent_id = self._parent.pop(old_id, None)
        if parent_id is not None:
            self._parent[new_id] = parent_id
            parent = self._nodes[parent_id]
            parent.children = [new_id if c == old_id else c for c in parent.children]
        for child_id in node.children:
            self._parent[child_id] = new_id
        self._touch()

    def restore(self, location: Tuple[str, str], previous: Any) -> None:
        """Write back a value recorded by an undo log.

        Used only for rollback: it skips the attach/detach ordering checks of
        :meth:`set_children` because entries are replayed in reverse.
        """
        kind, key = location
        if kind == "children":
            parent = self._nodes.get(key)
            if parent is None:
                logger.warning("Rollback skipped: parent %s no longer exists", key)
                return
            self._write_children(parent, [c for c in previous if c in self._nodes])
        elif kind == "name":
            node = self._nodes.get(key)
            if node is None:
                logger.warning("Rollback skipped: node %s no longer exists", key)
                return
            node.name = previous
        elif kind == "node":
            if previous is None:
                self._nodes.pop(key, None)
                self._parent.pop(key, None)
            else:
                restored = previous.clone()
                self._nodes[key] = restored
                for child_id in restored.children:
                    self._parent[child_id] = key
                owner = next((pid for pid, n in self._nodes.items() if key in n.children), None)
                if owner is not None:
                    self._parent[key] = owner
        else:
            raise ValueError(f"Unknown undo location kind: {kind!r}")
        self._touch()

    # -------------------------------------------------------------- Internals

    def _write_children(self, parent: Node, children: List[str]) -> None:
        for old_child in parent.children:
            if self._parent.get(old_child) == parent.id:
                del self._parent[old_child]
        parent.children = children
        for child_id in children:
            self._parent[child_id] = parent.id

    def _touch(self) -> None:
        self._version += 1
        for listener in list(self._listeners):
            listener(self)
