from __future__ import annotations

"""Build a TreeStore from persisted folder and file rows.

Rows may be plain dicts (as returned by the API layer) or objects exposing the
same names as attributes. Both camelCase and snake_case keys are accepted:

- folders: ``id``, ``name``, ``parentFolderId`` / ``parent_folder_id`` /
  ``parentId``, optional ``sortOrder`` / ``sort_order``
- files: ``id``, ``fileName`` / ``originalName`` / ``name``,
  ``folderId`` / ``folder_id`` / ``parentId``, optional ``sortOrder``

Parentless rows attach to the root. Rows whose parent is unknown also attach
to the root, with a warning, so that the partition invariant always holds.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import logging

from foldly_tree.core.models import Node, NodeKind
from foldly_tree.core.tree_store import TreeStore

__all__ = ["build_tree"]

logger = logging.getLogger(__name__)

_DEFAULT_SORT_ORDER = 999


def _field(row: Any, *names: str) -> Any:
    for name in names:
        if isinstance(row, dict):
            value = row.get(name)
        else:
            value = getattr(row, name, None)
        if value is not None:
            return value
    return None


def _sort_order(row: Any) -> int:
    value = _field(row, "sortOrder", "sort_order")
    try:
        return int(value) if value is not None else _DEFAULT_SORT_ORDER
    except (TypeError, ValueError):
        return _DEFAULT_SORT_ORDER


def build_tree(
    root_id: str,
    root_name: str,
    folders: Sequence[Any] = (),
    files: Sequence[Any] = (),
) -> TreeStore:
    """Populate a new :class:`TreeStore` from folder and file rows.

    Siblings are ordered by sort order, then by their position in the input.
    Folders and files share one ordering, as they do in the persisted
    ``sortOrder`` column.

    Parameters
    ----------
    root_id : str
        Workspace or link id used as the tree root.
    root_name : str
        Display name for the root.
    folders, files : sequence
        Persisted rows.

    Returns
    -------
    TreeStore
        A consistent store; ``validate()`` returns no errors.
    """
    store = TreeStore(root_id, root_name)
    nodes: Dict[str, Node] = {}
    parents: Dict[str, Optional[str]] = {}
    ordering: Dict[str, Tuple[int, int]] = {}
    position = 0

    for row in folders:
        folder_id = _field(row, "id")
        if not folder_id or folder_id == root_id or folder_id in nodes:
            logger.warning("Skipping folder row with missing or duplicate id: %r", folder_id)
            continue
        nodes[folder_id] = Node(
            id=folder_id,
            name=_field(row, "name") or "Untitled folder",
            kind=NodeKind.FOLDER,
            record=row,
        )
        parents[folder_id] = _field(row, "parentFolderId", "parent_folder_id", "parentId", "parent_id")
        ordering[folder_id] = (_sort_order(row), position)
        position += 1

    for row in files:
        file_id = _field(row, "id")
        if not file_id or file_id == root_id or file_id in nodes:
            logger.warning("Skipping file row with missing or duplicate id: %r", file_id)
            continue
        nodes[file_id] = Node(
            id=file_id,
            name=_field(row, "fileName", "originalName", "name") or "Unnamed",
            kind=NodeKind.FILE,
            record=row,
        )
        parents[file_id] = _field(row, "folderId", "folder_id", "parentId", "parent_id")
        ordering[file_id] = (_sort_order(row), position)
        position += 1

    resolved = _resolve_parents(root_id, nodes, parents)

    children_by_parent: Dict[str, List[str]] = {}
    for node_id, parent_id in resolved.items():
        children_by_parent.setdefault(parent_id, []).append(node_id)

    # Insert top-down so every parent exists before its children
    pending: List[str] = [root_id]
    while pending:
        parent_id = pending.pop(0)
        for child_id in sorted(children_by_parent.get(parent_id, []), key=ordering.__getitem__):
            store.insert(nodes[child_id], parent_id)
            if nodes[child_id].is_folder:
                pending.append(child_id)

    logger.info(
        "Tree built: root=%s folders=%d files=%d",
        root_id,
        sum(1 for n in nodes.values() if n.is_folder),
        sum(1 for n in nodes.values() if not n.is_folder),
    )
    return store


def _resolve_parents(
    root_id: str,
    nodes: Dict[str, Node],
    parents: Dict[str, Optional[str]],
) -> Dict[str, str]:
    """Map every node to a folder parent, falling back to the root.

    Unknown parents, file parents and parent cycles all fall back to the root.
    """
    resolved: Dict[str, str] = {}
    for node_id in nodes:
        parent_id = parents.get(node_id)
        if parent_id is None or parent_id == root_id:
            resolved[node_id] = root_id
            continue
        parent = nodes.get(parent_id)
        if parent is None or not parent.is_folder:
            logger.warning("Unknown parent %s for %s, attaching to root", parent_id, node_id)
            resolved[node_id] = root_id
            continue
        resolved[node_id] = parent_id

    # Break cycles: cut the chain at the first repeated ancestor
    for node_id in list(resolved):
        seen = {node_id}
        current = resolved[node_id]
        while current != root_id:
            if current in seen:
                logger.warning("Parent cycle through %s, attaching to root", current)
                resolved[current] = root_id
                break
            seen.add(current)
            current = resolved[current]
    return resolved
