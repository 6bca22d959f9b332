from __future__ import annotations

"""Per-tree session wiring the engine components together.

A TreeSession owns everything that belongs to one logical tree (a workspace
tree or a shared-link tree): the store, its serializer, the mutation service,
the selection and the staging projection. Two sessions never share a lock or
any mutable state.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from foldly_tree.config import ConfigManager

from .builder import build_tree
from .interfaces import Notifier, PersistenceGateway, QueryCache, TreeView, NullTreeView
from .models import MutationResult, Node, NodeKind
from .models.requests import MutationRequest
from .services import (
    OperationSerializer,
    SelectionManager,
    StagingCollection,
    StagingProjector,
    TreeMutationService,
)
from .tree_store import TreeStore

logger = logging.getLogger(__name__)

__all__ = ["TreeSession"]


class TreeSession:
    """UI-facing entry point for one tree.

    The session exposes the contract the rendering layer relies on
    (``rebuild_tree``, ``add_item``, ``remove_items``, ``get_all_items``,
    ``get_selected_items``/``set_selected_items``) plus :meth:`apply` for
    neutral mutation requests.
    """

    def __init__(
        self,
        store: TreeStore,
        gateway: PersistenceGateway,
        view: Optional[TreeView] = None,
        cache: Optional[QueryCache] = None,
        notifier: Optional[Notifier] = None,
        staging: Optional[StagingCollection] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize the session.

        Args:
            store: Authoritative tree for this session
            gateway: Persistence Gateway used by every mutation
            view: Rendering collaborator
            cache: Query-cache collaborator
            notifier: User notification sink
            staging: Upload pipeline's staging collection (a new empty one if omitted)
            config: ``tree`` configuration section; loaded from ConfigManager if omitted
        """
        if config is None:
            config = ConfigManager().get_tree_config()
        self._config = config
        self._store = store
        self._view = view or NullTreeView()
        self._serializer = OperationSerializer(store.root_id)
        self._mutations = TreeMutationService(
            store,
            gateway,
            serializer=self._serializer,
            view=self._view,
            cache=cache,
            notifier=notifier,
            config=config,
        )
        self._selection = SelectionManager(
            store,
            view=self._view,
            include_root=bool((config.get("selection") or {}).get("include_root", False)),
        )
        self._staging = staging or StagingCollection()
        self._projector = StagingProjector(
            store,
            self._staging,
            folders_first=bool((config.get("staging") or {}).get("folders_first", True)),
        )
        logger.info("TreeSession ready: root=%s items=%d", store.root_id, len(store) - 1)

    @classmethod
    def from_records(
        cls,
        root_id: str,
        root_name: str,
        folders: Sequence[Any],
        files: Sequence[Any],
        gateway: PersistenceGateway,
        **kwargs: Any,
    ) -> "TreeSession":
        """Build the store from persisted rows and open a session on it."""
        return cls(build_tree(root_id, root_name, folders, files), gateway, **kwargs)

    # -------------------------------------------------------------------------
    # Component access
    # -------------------------------------------------------------------------

    @property
    def store(self) -> TreeStore:
        return self._store

    @property
    def serializer(self) -> OperationSerializer:
        return self._serializer

    @property
    def mutations(self) -> TreeMutationService:
        return self._mutations

    @property
    def selection(self) -> SelectionManager:
        return self._selection

    @property
    def staging(self) -> StagingCollection:
        return self._staging

    # -------------------------------------------------------------------------
    # UI contract
    # -------------------------------------------------------------------------

    def rebuild_tree(self) -> None:
        self._view.rebuild_tree()

    async def add_item(
        self,
        name: str,
        parent_id: Optional[str] = None,
        kind: NodeKind = NodeKind.FOLDER,
        item_id: Optional[str] = None,
    ) -> Optional[str]:
        return await self._mutations.add_item(name, parent_id, kind, item_id)

    async def remove_items(self, item_ids: Sequence[str]) -> MutationResult:
        """Drop items locally, without a Persistence Gateway call."""
        return await self._mutations.delete_items(item_ids, persist=False)

    def get_all_items(self) -> List[Node]:
        return self._store.get_all_items()

    def get_selected_items(self) -> List[str]:
        return self._selection.get_selected_items()

    def set_selected_items(self, item_ids: Sequence[str]) -> List[str]:
        return self._selection.set_selection(item_ids)

    def projected_tree(self) -> TreeStore:
        """Store with staged uploads merged in, recomputed only on version change."""
        return self._projector.projection()

    async def apply(self, request: MutationRequest) -> MutationResult:
        return await self._mutations.apply(request)

    def close(self) -> None:
        self._selection.close()
