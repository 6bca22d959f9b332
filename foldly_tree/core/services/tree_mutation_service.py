from __future__ import annotations

"""Service layer for optimistic mutations of a TreeStore.

This module provides a UI-agnostic, testable service that applies user-driven
tree edits (move, reorder, rename, add, create, delete) to the in-memory store,
reconciles each one with the asynchronous Persistence Gateway and rolls back
on failure.

Scope and guarantees:
- Every public coroutine runs its handler through the tree's
  OperationSerializer, so no two handler bodies ever interleave.
- Optimistic edits are recorded in an UndoLog before they are applied; a
  failed gateway call, or any error raised after the edit, replays the log in
  reverse and leaves the store exactly as it was before the mutation began.
- Expected failures (validation, no-op, persistence) never raise; they return
  MutationResult(success=False, ...) and, for persistence failures, emit an
  error notification.

Examples
--------
Basic usage:

    service = TreeMutationService(store, gateway)
    result = await service.move_items(["file-1"], "folder-2")
    if not result.success:
        print(result.message)

"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import asyncio
import logging
import time
import uuid

from foldly_tree.core.exceptions import (
    NoOpDetected,
    PartialBatchFailure,
    PersistenceFailure,
    TreeError,
    ValidationFailure,
)
from foldly_tree.core.interfaces import (
    GatewayResult,
    LoggingNotifier,
    NotificationEvent,
    Notifier,
    NullQueryCache,
    NullTreeView,
    PersistenceGateway,
    QueryCache,
    TreeView,
)
from foldly_tree.core.models import MutationResult, Node, NodeKind
from foldly_tree.core.models.requests import (
    AddRequest,
    CreateFolderRequest,
    DeleteRequest,
    MoveRequest,
    MutationRequest,
    RenameRequest,
    ReorderRequest,
)
from foldly_tree.core.models.undo_log import UndoLog
from foldly_tree.core.services.operation_serializer import OperationSerializer
from foldly_tree.core.tree_store import TreeStore

__all__ = ["TreeMutationService"]

logger = logging.getLogger(__name__)

IdFactory = Callable[[NodeKind], str]


class TreeMutationService:
    """Applies mutation requests to one TreeStore.

    Parameters
    ----------
    store : TreeStore
        The authoritative tree. Only this service writes to it.
    gateway : PersistenceGateway
        Async collaborator that persists each change.
    serializer : OperationSerializer, optional
        Gate shared by every mutation on *store*. A new one is created if omitted.
    view, cache, notifier : optional
        UI, query-cache and notification collaborators.
    config : dict, optional
        The ``tree`` configuration section (see ``tree.yml``).
    id_factory : callable, optional
        Allocates ids for locally created nodes.
    """

    def __init__(
        self,
        store: TreeStore,
        gateway: PersistenceGateway,
        serializer: Optional[OperationSerializer] = None,
        view: Optional[TreeView] = None,
        cache: Optional[QueryCache] = None,
        notifier: Optional[Notifier] = None,
        config: Optional[Dict[str, Any]] = None,
        id_factory: Optional[IdFactory] = None,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._serializer = serializer or OperationSerializer(store.root_id)
        self._view = view or NullTreeView()
        self._cache = cache or NullQueryCache()
        self._notifier = notifier or LoggingNotifier()
        config = config or {}
        mutations = config.get("mutations") or {}
        ids = config.get("ids") or {}
        self._reject_descendant_moves = bool(mutations.get("reject_descendant_moves", True))
        self._prefixes = {
            NodeKind.FOLDER: ids.get("folder_prefix", "folder"),
            NodeKind.FILE: ids.get("file_prefix", "file"),
        }
        self._id_factory = id_factory or self._default_id
        # Undo log of the operation currently holding the serializer gate
        self._undo: Optional[UndoLog] = None

    @property
    def store(self) -> TreeStore:
        return self._store

    @property
    def serializer(self) -> OperationSerializer:
        return self._serializer

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def apply(self, request: MutationRequest) -> MutationResult:
        """Dispatch a neutral mutation request to the matching handler."""
        if isinstance(request, MoveRequest):
            return await self.move_items(request.item_ids, request.target_id, request.insertion_index)
        if isinstance(request, ReorderRequest):
            return await self.reorder_items(request.item_ids, request.parent_id, request.insertion_index)
        if isinstance(request, RenameRequest):
            return await self.rename_item(request.item_id, request.new_name)
        if isinstance(request, AddRequest):
            new_id = await self.add_item(request.name, request.parent_id, request.kind)
            if new_id is None:
                return MutationResult(False, "Parent not found.", {"parent_id": request.parent_id})
            return MutationResult(True, "Added item.", {"item_id": new_id})
        if isinstance(request, CreateFolderRequest):
            return await self.create_folder(request.name, request.parent_id)
        if isinstance(request, DeleteRequest):
            return await self.delete_items(request.item_ids)
        return MutationResult(False, f"Unsupported request '{type(request).__name__}'.")

    async def move_items(
        self,
        item_ids: Sequence[str],
        target_id: Optional[str] = None,
        insertion_index: Optional[int] = None,
    ) -> MutationResult:
        """Drop sibling items onto *target_id* (the root when None).

        The drop is a reorder when the target is the items' current parent and
        a move otherwise.
        """
        ids = list(dict.fromkeys(item_ids or []))
        target = target_id or self._store.root_id
        logger.info("Edit: move_items count=%d target=%s index=%s", len(ids), target, insertion_index)

        async def operation() -> MutationResult:
            if self._reject_descendant_moves and ids:
                allowed, reason = self._store.can_move(ids, target)
                if not allowed:
                    raise ValidationFailure(reason, ids)
            return await self._handle_drop(ids, target, insertion_index)

        return await self._submit("move_items", operation, {"item_ids": ids, "target_id": target})

    async def reorder_items(
        self,
        item_ids: Sequence[str],
        parent_id: str,
        insertion_index: Optional[int],
    ) -> MutationResult:
        """Reorder sibling items within *parent_id*."""
        return await self.move_items(item_ids, parent_id, insertion_index)

    async def rename_item(self, item_id: str, new_name: str) -> MutationResult:
        """Rename a file or folder, reverting the name if persistence fails."""
        logger.info("Edit: rename_item item=%s", item_id)

        async def operation() -> MutationResult:
            return await self._handle_rename(item_id, new_name)

        return await self._submit("rename_item", operation, {"item_id": item_id})

    async def add_item(
        self,
        name: str,
        parent_id: Optional[str] = None,
        kind: NodeKind = NodeKind.FOLDER,
        item_id: Optional[str] = None,
    ) -> Optional[str]:
        """Insert a node at the end of *parent_id* (the root when None).

        Pass *item_id* to insert a server-confirmed record under its own id.
        Returns the node id, or None when the parent does not exist.
        """
        logger.info("Edit: add_item kind=%s parent=%s", kind.value, parent_id)

        async def operation() -> Optional[str]:
            try:
                return self._handle_add(name, parent_id, kind, item_id)
            except Exception as exc:
                logger.error("Edit FAIL: add_item error=%s", exc, exc_info=True)
                self._abort("add_item")
                self._quietly(self._view.rebuild_tree)
                return None
            finally:
                self._undo = None

        return await self._serializer.submit(operation)

    async def create_folder(self, name: str, parent_id: Optional[str] = None) -> MutationResult:
        """Create a folder optimistically and persist it.

        The folder appears under a temporary id first; once the gateway
        returns the server id the node is re-keyed in place.
        """
        logger.info("Edit: create_folder parent=%s", parent_id)

        async def operation() -> MutationResult:
            return await self._handle_create_folder(name, parent_id)

        return await self._submit("create_folder", operation, {"parent_id": parent_id})

    async def delete_items(self, item_ids: Sequence[str], persist: bool = True) -> MutationResult:
        """Remove items (with their subtrees) from the tree.

        With ``persist=False`` only the local store changes, which is what a
        caller wants after the server already confirmed the delete.
        """
        ids = list(dict.fromkeys(item_ids or []))
        logger.info("Edit: delete_items count=%d persist=%s", len(ids), persist)

        async def operation() -> MutationResult:
            return await self._handle_delete(ids, persist)

        return await self._submit("delete_items", operation, {"item_ids": ids})

    # -------------------------------------------------------------------------
    # Move / reorder
    # -------------------------------------------------------------------------

    async def _handle_drop(
        self,
        ids: List[str],
        target_id: str,
        insertion_index: Optional[int],
    ) -> MutationResult:
        if not ids:
            raise ValidationFailure("No items to process.")
        self._store.get(target_id)
        for item_id in ids:
            self._store.get(item_id)

        # Dragged items are siblings: the first one's parent is everyone's parent
        current_parent = self._store.parent_of(ids[0])
        if current_parent is None:
            raise ValidationFailure(f"Current parent not found for {ids[0]}", ids)

        if current_parent == target_id:
            logger.debug("Drop classified as REORDER parent=%s", target_id)
            return await self._reorder(ids, target_id, insertion_index)
        logger.debug("Drop classified as MOVE from=%s to=%s", current_parent, target_id)
        return await self._move(ids, target_id)

    async def _reorder(self, ids: List[str], parent_id: str, insertion_index: Optional[int]) -> MutationResult:
        old_children = self._store.children_of(parent_id)

        if insertion_index is None:
            # Dropped on the parent itself, not between siblings
            if all(item_id in old_children for item_id in ids):
                raise NoOpDetected("No specific drop target; items already in this folder.", ids)
            insertion_index = len(old_children)

        dragged = set(ids)
        remaining = [child for child in old_children if child not in dragged]
        index = max(0, min(insertion_index, len(remaining)))
        new_children = remaining[:index] + ids + remaining[index:]

        if new_children == old_children:
            raise NoOpDetected("No changes detected in reorder operation.", ids)

        undo = self._begin()
        undo.record_children(self._store, parent_id)
        self._store.set_children(parent_id, new_children)
        self._view.rebuild_tree()

        result = await self._call(self._gateway.update_order, parent_id, list(new_children))
        if not result.success:
            reason = result.error or "Failed to update order"
            self._rollback(undo, "reorder", parent_id)
            self._notifier.notify(NotificationEvent.REORDER_ERROR, ids, reason, parent_id=parent_id)
            return MutationResult(False, reason, {"operation": "reorder", "parent_id": parent_id, "item_ids": ids})

        undo.discard()
        self._cache.mark_stale(refetch=False)
        self._notifier.notify(NotificationEvent.REORDER_SUCCESS, ids, "Items reordered", parent_id=parent_id)
        logger.info("Edit OK: reorder parent=%s count=%d", parent_id, len(ids))
        return MutationResult(
            True,
            "Items reordered.",
            {"operation": "reorder", "parent_id": parent_id, "children": list(new_children)},
        )

    async def _move(self, ids: List[str], target_id: str) -> MutationResult:
        undo = self._begin()
        for item_id in ids:
            origin = self._store.parent_of(item_id)
            if origin is None:
                raise ValidationFailure(f"Current parent not found for {item_id}", [item_id])
            undo.record_children(self._store, origin)
            undo.record_children(self._store, target_id)
            self._store.set_children(origin, [c for c in self._store.children_of(origin) if c != item_id])
            self._store.set_children(target_id, self._store.children_of(target_id) + [item_id])
        self._view.rebuild_tree()

        try:
            await self._persist_moves(ids, target_id)
        except PersistenceFailure as exc:
            self._rollback(undo, "move", target_id)
            details: Dict[str, Any] = {"operation": "move", "target_id": target_id, "item_ids": ids}
            if isinstance(exc, PartialBatchFailure):
                details.update({"failed": exc.failed, "total": exc.total})
            self._notifier.notify(NotificationEvent.MOVE_ERROR, ids, str(exc), target_id=target_id)
            return MutationResult(False, str(exc), details)

        undo.discard()
        self._cache.mark_stale(refetch=False)
        message = f"Moved {len(ids)} item{'' if len(ids) == 1 else 's'}"
        self._notifier.notify(NotificationEvent.MOVE_SUCCESS, ids, message, target_id=target_id)
        logger.info("Edit OK: move target=%s count=%d", target_id, len(ids))
        return MutationResult(True, message + ".", {"operation": "move", "target_id": target_id, "item_ids": ids})

    async def _persist_moves(self, ids: List[str], target_id: str) -> None:
        results = await asyncio.gather(
            *(self._call(self._gateway.move_item, item_id, target_id) for item_id in ids)
        )
        failed = [(item_id, r) for item_id, r in zip(ids, results) if not r.success]
        if not failed:
            return
        reason = next((r.error for _, r in failed if r.error), None)
        message = f"Failed to move {len(failed)} of {len(ids)} items"
        if reason:
            message = f"{message}: {reason}"
        failed_ids = [item_id for item_id, _ in failed]
        if len(failed) < len(ids):
            raise PartialBatchFailure(message, failed=len(failed), total=len(ids), item_ids=failed_ids)
        raise PersistenceFailure(message, failed_ids)

    # -------------------------------------------------------------------------
    # Rename
    # -------------------------------------------------------------------------

    async def _handle_rename(self, item_id: str, new_name: str) -> MutationResult:
        node = self._store.get(item_id)
        name = " ".join((new_name or "").split())
        if not name:
            raise ValidationFailure("Name cannot be empty.", [item_id])
        original_name = node.name
        if name == original_name:
            raise NoOpDetected("Name unchanged.", [item_id])

        undo = self._begin()
        undo.record_name(self._store, item_id)
        self._store.set_name(item_id, name)
        self._view.rebuild_tree()

        endpoint = self._gateway.rename_folder if node.is_folder else self._gateway.rename_file
        result = await self._call(endpoint, item_id, name)
        if not result.success:
            reason = result.error or "Failed to rename item"
            self._rollback(undo, "rename", item_id)
            self._notifier.notify(
                NotificationEvent.RENAME_ERROR, [item_id], reason, original_name=original_name
            )
            return MutationResult(
                False, reason, {"item_id": item_id, "original_name": original_name}
            )

        undo.discard()
        self._cache.mark_stale(refetch=False)
        self._notifier.notify(NotificationEvent.RENAME_SUCCESS, [item_id], f"Renamed to '{name}'", new_name=name)
        logger.info("Edit OK: rename item=%s", item_id)
        return MutationResult(True, f"Renamed to '{name}'.", {"item_id": item_id, "new_name": name})

    # -------------------------------------------------------------------------
    # Add / create
    # -------------------------------------------------------------------------

    def _handle_add(
        self,
        name: str,
        parent_id: Optional[str],
        kind: NodeKind,
        item_id: Optional[str],
    ) -> Optional[str]:
        resolved = parent_id or self._store.root_id
        parent = self._store.find(resolved)
        if parent is None or not parent.is_folder:
            logger.error("Edit FAIL: add_item parent_not_found parent=%s", resolved)
            return None
        new_id = item_id or self._id_factory(kind)
        clean_name = " ".join((name or "").split()) or ("New Folder" if kind == NodeKind.FOLDER else "Unnamed")
        if new_id in self._store:
            logger.error("Edit FAIL: add_item duplicate id=%s", new_id)
            return None
        undo = self._begin()
        undo.record_node(self._store, new_id)
        undo.record_children(self._store, resolved)
        self._store.insert(Node(id=new_id, name=clean_name, kind=kind), resolved)
        if resolved != self._store.root_id:
            self._view.expand_item(resolved)
        self._view.rebuild_tree()
        undo.discard()
        logger.info("Edit OK: add_item item=%s parent=%s", new_id, resolved)
        return new_id

    async def _handle_create_folder(self, name: str, parent_id: Optional[str]) -> MutationResult:
        resolved = parent_id or self._store.root_id
        parent = self._store.get(resolved)
        if not parent.is_folder:
            raise ValidationFailure("Folders can only be created inside folders.", [resolved])
        clean_name = " ".join((name or "").split())
        if not clean_name:
            raise ValidationFailure("Name cannot be empty.")

        temp_id = self._id_factory(NodeKind.FOLDER)
        undo = self._begin()
        undo.record_node(self._store, temp_id)
        undo.record_children(self._store, resolved)
        self._store.insert(Node(id=temp_id, name=clean_name, kind=NodeKind.FOLDER), resolved)
        if resolved != self._store.root_id:
            self._view.expand_item(resolved)
        self._view.rebuild_tree()

        result = await self._call(self._gateway.create_folder, clean_name, resolved)
        server_id = _extract_id(result.data) if result.success else None
        if server_id is None:
            reason = result.error or "Failed to create folder"
            self._rollback(undo, "create_folder", temp_id)
            self._notifier.notify(NotificationEvent.CREATE_ERROR, [temp_id], reason, parent_id=resolved)
            return MutationResult(False, reason, {"parent_id": resolved})

        undo.discard()
        try:
            self._store.rekey(temp_id, server_id)
        except ValidationFailure as exc:
            # Server id already present locally: keep the temp node, resync from server
            logger.warning("Edit: create_folder rekey skipped (%s)", exc)
            self._cache.mark_stale(refetch=True)
            server_id = temp_id
        else:
            self._cache.mark_stale(refetch=False)
        self._view.rebuild_tree()
        self._notifier.notify(NotificationEvent.CREATE_SUCCESS, [server_id], f"Created '{clean_name}'")
        logger.info("Edit OK: create_folder item=%s parent=%s", server_id, resolved)
        return MutationResult(True, f"Created '{clean_name}'.", {"item_id": server_id, "parent_id": resolved})

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    async def _handle_delete(self, ids: List[str], persist: bool) -> MutationResult:
        root_id = self._store.root_id
        present = [i for i in ids if i in self._store and i != root_id]
        # Nested selections go away with their ancestor
        roots = [i for i in present if not any(self._store.is_ancestor(o, i) for o in present if o != i)]
        skipped = [i for i in ids if i not in present]
        if not roots:
            logger.info("Edit noop: delete_items deleted=0")
            return MutationResult(False, "No items deleted.", {"requested": ids, "deleted": 0, "skipped": len(skipped)})

        removed: List[str] = []
        for item_id in roots:
            removed.extend(self._store.remove_subtree(item_id))
        self._view.rebuild_tree()
        details = {"requested": ids, "deleted": len(roots), "removed": removed, "skipped": len(skipped)}

        if not persist:
            logger.info("Edit OK: remove_items deleted=%d", len(roots))
            return MutationResult(True, "Removed items.", details)

        result = await self._call(self._gateway.delete_items, list(roots))
        if not result.success:
            reason = result.error or "Failed to delete items"
            # Not restored locally: the refetch brings back whatever the server kept
            logger.warning("Edit FAIL: delete_items error=%s", reason)
            self._cache.mark_stale(refetch=True)
            self._notifier.notify(NotificationEvent.DELETE_ERROR, roots, reason)
            return MutationResult(False, reason, details)

        self._cache.mark_stale(refetch=False)
        message = f"Deleted {len(roots)} item{'' if len(roots) == 1 else 's'}"
        self._notifier.notify(NotificationEvent.DELETE_SUCCESS, roots, message)
        logger.info("Edit OK: delete_items deleted=%d skipped=%d", len(roots), len(skipped))
        return MutationResult(True, message + ".", details)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    async def _submit(
        self,
        label: str,
        operation: Callable[[], Awaitable[MutationResult]],
        details: Dict[str, Any],
    ) -> MutationResult:
        """Run *operation* through the serializer and map errors to results."""

        async def guarded() -> MutationResult:
            try:
                return await operation()
            except NoOpDetected as exc:
                logger.info("Edit noop: %s %s", label, exc)
                return MutationResult(True, str(exc), dict(details, noop=True))
            except ValidationFailure as exc:
                logger.warning("Edit FAIL: %s %s", label, exc)
                self._abort(label)
                return MutationResult(False, str(exc), dict(details, reason="validation"))
            except TreeError as exc:
                logger.warning("Edit FAIL: %s %s", label, exc)
                self._abort(label)
                return MutationResult(False, str(exc), dict(details))
            except Exception as exc:
                logger.error("Edit FAIL: %s error=%s", label, exc, exc_info=True)
                self._abort(label)
                # The local tree may now differ from the server: redraw and resync
                self._quietly(self._view.rebuild_tree)
                self._quietly(self._cache.mark_stale, True)
                return MutationResult(False, f"Unexpected error during {label}.", dict(details, error=str(exc)))
            finally:
                self._undo = None

        return await self._serializer.submit(guarded)

    def _begin(self) -> UndoLog:
        """Open the undo log of the running operation."""
        self._undo = UndoLog()
        return self._undo

    def _abort(self, label: str) -> None:
        """Replay whatever the running operation applied and did not commit."""
        if self._undo is None or not len(self._undo):
            return
        replayed = self._undo.rollback(self._store)
        logger.info("Edit ROLLBACK: %s entries=%d", label, replayed)

    def _quietly(self, action: Callable[..., Any], *args: Any) -> None:
        try:
            action(*args)
        except Exception as exc:
            logger.error("Collaborator call %s failed: %s", getattr(action, "__name__", action), exc, exc_info=True)

    async def _call(self, endpoint: Callable[..., Awaitable[Any]], *args: Any) -> GatewayResult:
        """Await a gateway endpoint; any exception becomes a failed result."""
        try:
            result = await endpoint(*args)
        except Exception as exc:
            logger.warning("Gateway call %s failed: %s", getattr(endpoint, "__name__", endpoint), exc)
            return GatewayResult.fail(str(exc) or exc.__class__.__name__)
        if isinstance(result, GatewayResult):
            return result
        if isinstance(result, dict):
            return GatewayResult(bool(result.get("success")), result.get("error"), result.get("data"))
        if result is None:
            return GatewayResult.ok()
        return GatewayResult.ok(result)

    def _rollback(self, undo: UndoLog, operation: str, key: str) -> None:
        replayed = undo.rollback(self._store)
        logger.info("Edit ROLLBACK: %s key=%s entries=%d", operation, key, replayed)
        self._view.rebuild_tree()
        self._cache.mark_stale(refetch=True)

    def _default_id(self, kind: NodeKind) -> str:
        return f"{self._prefixes[kind]}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def _extract_id(data: Any) -> Optional[str]:
    if isinstance(data, str) and data:
        return data
    if isinstance(data, dict) and data.get("id"):
        return str(data["id"])
    value = getattr(data, "id", None)
    return str(value) if value else None
