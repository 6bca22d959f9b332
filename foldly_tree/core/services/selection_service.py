from __future__ import annotations

"""Selection state for one tree.

The selection is owned here, not by the store, so it survives view rebuilds.
It only ever holds ids present in the store: the manager subscribes to store
writes and silently prunes ids that disappear (deleted, or re-keyed after a
folder creation).
"""

from typing import Dict, Iterable, List, Optional

import logging

from foldly_tree.core.interfaces import NullTreeView, TreeView
from foldly_tree.core.tree_store import TreeStore

__all__ = ["SelectionManager"]

logger = logging.getLogger(__name__)


class SelectionManager:
    """Track selected node ids of a :class:`TreeStore`.

    Parameters
    ----------
    store : TreeStore
        Tree whose ids may be selected.
    view : TreeView, optional
        Rendering collaborator; ``sync_selection`` is called after
        :meth:`select_all` and :meth:`toggle`.
    include_root : bool, default=False
        Whether :meth:`select_all` selects the root as well.
    """

    def __init__(self, store: TreeStore, view: Optional[TreeView] = None, include_root: bool = False) -> None:
        self._store = store
        self._view = view or NullTreeView()
        self._include_root = include_root
        # dict keeps insertion order; values unused
        self._selected: Dict[str, None] = {}
        self._unsubscribe = store.subscribe(self._on_store_changed)

    def __len__(self) -> int:
        return len(self._selected)

    def is_selected(self, item_id: str) -> bool:
        return item_id in self._selected

    def get_selected_items(self) -> List[str]:
        """Return selected ids in tree display order."""
        if not self._selected:
            return []
        order = [self._store.root_id] + self._store.descendants_of(self._store.root_id)
        return [item_id for item_id in order if item_id in self._selected]

    def set_selection(self, item_ids: Iterable[str]) -> List[str]:
        """Replace the selection. Unknown ids are dropped; returns the kept ids."""
        requested = list(item_ids)
        kept = [i for i in dict.fromkeys(requested) if i in self._store]
        if len(kept) != len(set(requested)):
            logger.debug("Selection ignored %d unknown id(s)", len(set(requested)) - len(kept))
        self._selected = dict.fromkeys(kept)
        return kept

    def toggle(self, item_id: str) -> bool:
        """Flip the selection state of *item_id*; returns the new state."""
        if item_id in self._selected:
            del self._selected[item_id]
            state = False
        elif item_id in self._store:
            self._selected[item_id] = None
            state = True
        else:
            logger.warning("Cannot select unknown item %s", item_id)
            return False
        self._view.sync_selection(self.get_selected_items())
        return state

    def select_all(self) -> List[str]:
        ids = [node.id for node in self._store.iter_nodes(include_root=self._include_root)]
        self._selected = dict.fromkeys(ids)
        self._view.sync_selection(list(ids))
        return ids

    def clear(self) -> None:
        self._selected.clear()

    def prune(self) -> List[str]:
        """Drop ids no longer in the store; returns the dropped ids."""
        stale = [item_id for item_id in self._selected if item_id not in self._store]
        for item_id in stale:
            del self._selected[item_id]
        if stale:
            logger.debug("Selection pruned %d id(s)", len(stale))
        return stale

    def close(self) -> None:
        """Stop following store writes."""
        self._unsubscribe()

    def _on_store_changed(self, store: TreeStore) -> None:
        if self._selected:
            self.prune()
