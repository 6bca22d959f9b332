from __future__ import annotations

"""Staging collection and projection of staged items onto a tree.

Staged files and folders belong to the upload pipeline, not to the tree. The
pipeline writes them into a :class:`StagingCollection`; :func:`project` reads a
snapshot of it and returns a *new* store in which staged entries appear as
ordinary children tagged ``is_staged``. Neither input is modified.

:class:`StagingProjector` keeps the last projection and recomputes it only
when the store version or the staging version has moved.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

import logging
import time
import uuid

from foldly_tree.core.exceptions import ValidationFailure
from foldly_tree.core.models import Node, NodeKind, StagedFile, StagedFolder, StagingStatus
from foldly_tree.core.tree_store import TreeStore

__all__ = ["StagingCollection", "StagingProjector", "project"]

logger = logging.getLogger(__name__)

STAGED_ID_PREFIX = "staged"

StagedItems = Union[Mapping[str, object], Iterable[object]]


class StagingCollection:
    """Mutable set of staged files and folders owned by the upload pipeline.

    Every write bumps :attr:`version`. Ids generated here carry the
    ``staged-`` prefix so they never collide with persisted ids.
    """

    def __init__(self) -> None:
        self._files: Dict[str, StagedFile] = {}
        self._folders: Dict[str, StagedFolder] = {}
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._files) + len(self._folders)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._files or item_id in self._folders

    def files(self) -> Dict[str, StagedFile]:
        return dict(self._files)

    def folders(self) -> Dict[str, StagedFolder]:
        return dict(self._folders)

    def stage_file(
        self,
        name: str,
        parent_folder_id: Optional[str] = None,
        size: int = 0,
        mime_type: str = "application/octet-stream",
        item_id: Optional[str] = None,
    ) -> StagedFile:
        staged = StagedFile(
            id=item_id or _staged_id(NodeKind.FILE),
            name=name,
            parent_folder_id=parent_folder_id,
            size=size,
            mime_type=mime_type,
        )
        self._add(self._files, staged)
        return staged

    def stage_folder(
        self,
        name: str,
        parent_folder_id: Optional[str] = None,
        item_id: Optional[str] = None,
    ) -> StagedFolder:
        staged = StagedFolder(
            id=item_id or _staged_id(NodeKind.FOLDER),
            name=name,
            parent_folder_id=parent_folder_id,
        )
        self._add(self._folders, staged)
        return staged

    def set_status(self, item_id: str, status: StagingStatus) -> None:
        entry = self._files.get(item_id) or self._folders.get(item_id)
        if entry is None:
            raise ValidationFailure(f"Staged item not found: {item_id}", [item_id])
        if entry.status != status:
            entry.status = status
            self._version += 1

    def remove(self, item_id: str) -> bool:
        """Drop a staged entry, e.g. once its upload is persisted."""
        removed = self._files.pop(item_id, None) or self._folders.pop(item_id, None)
        if removed is None:
            return False
        self._version += 1
        return True

    def clear(self) -> None:
        if self._files or self._folders:
            self._files.clear()
            self._folders.clear()
            self._version += 1

    def _add(self, bucket: Dict, staged) -> None:
        if staged.id in self:
            raise ValidationFailure(f"Duplicate staged id: {staged.id}", [staged.id])
        bucket[staged.id] = staged
        self._version += 1
        logger.debug("Staged %s parent=%s", staged.id, staged.parent_folder_id)


def project(
    store: TreeStore,
    staged_files: StagedItems,
    staged_folders: StagedItems,
    folders_first: bool = True,
) -> TreeStore:
    """Return a copy of *store* with staged entries merged in.

    Staged entries become children of their declared parent, or of the root
    when they have none or the parent is unknown. A staged folder may be the
    parent of other staged entries. Entries whose id is already in the store
    are skipped.

    Parameters
    ----------
    store : TreeStore
        Authoritative tree; not modified.
    staged_files, staged_folders : mapping or iterable
        Staged entries, as a mapping keyed by id or a plain sequence.
    folders_first : bool, default=True
        Append staged folders before staged files under the same parent.

    Returns
    -------
    TreeStore
        Independent store; calling this twice with the same inputs yields
        structurally identical results.
    """
    projected = store.copy()
    folders = _entries(staged_folders)
    files = _entries(staged_files)
    ordered: List[Tuple[object, NodeKind]] = (
        [(f, NodeKind.FOLDER) for f in folders] + [(f, NodeKind.FILE) for f in files]
        if folders_first
        else [(f, NodeKind.FILE) for f in files] + [(f, NodeKind.FOLDER) for f in folders]
    )

    pending: List[Tuple[object, NodeKind]] = []
    seen = set()
    for entry, kind in ordered:
        if entry.id in store or entry.id in seen:
            logger.warning("Staged id %s collides with an existing item, skipping", entry.id)
            continue
        seen.add(entry.id)
        pending.append((entry, kind))

    # Children of staged folders wait until their parent is placed
    while pending:
        waiting = {entry.id for entry, _ in pending}
        deferred = []
        for entry, kind in pending:
            parent_id = entry.parent_folder_id or projected.root_id
            if parent_id not in projected and parent_id in waiting:
                deferred.append((entry, kind))
                continue
            _place(projected, entry, kind, parent_id)
        if deferred and len(deferred) == len(pending):
            entry, kind = deferred.pop(0)
            logger.warning("Staged parent cycle at %s, attaching to root", entry.id)
            _place(projected, entry, kind, projected.root_id)
        pending = deferred
    return projected


class StagingProjector:
    """Cache of ``project(store, staging)`` keyed by both versions."""

    def __init__(self, store: TreeStore, staging: StagingCollection, folders_first: bool = True) -> None:
        self._store = store
        self._staging = staging
        self._folders_first = folders_first
        self._key: Optional[Tuple[int, int]] = None
        self._cached: Optional[TreeStore] = None
        self._runs = 0

    @property
    def staging(self) -> StagingCollection:
        return self._staging

    @property
    def runs(self) -> int:
        """How many times the projection was actually recomputed."""
        return self._runs

    def projection(self) -> TreeStore:
        """Return the projected tree.

        Each call hands out its own copy of the cached projection, so callers
        may write to it without touching the cache.
        """
        key = (self._store.version, self._staging.version)
        if self._cached is None or key != self._key:
            self._cached = project(
                self._store,
                self._staging.files(),
                self._staging.folders(),
                folders_first=self._folders_first,
            )
            self._key = key
            self._runs += 1
            logger.debug("Staging projection rebuilt store_v=%d staging_v=%d", *key)
        return self._cached.copy()

    def invalidate(self) -> None:
        self._cached = None
        self._key = None


def _entries(items: StagedItems) -> List:
    if isinstance(items, Mapping):
        return list(items.values())
    return list(items or [])


def _place(projected: TreeStore, entry, kind: NodeKind, parent_id: str) -> None:
    parent = projected.find(parent_id)
    if parent is None or not parent.is_folder:
        logger.debug("Staged %s has unknown parent %s, attaching to root", entry.id, parent_id)
        parent_id = projected.root_id
    projected.insert(
        Node(
            id=entry.id,
            name=entry.name,
            kind=kind,
            is_staged=True,
            staging_status=entry.status,
            record=entry,
        ),
        parent_id,
    )


def _staged_id(kind: NodeKind) -> str:
    return f"{STAGED_ID_PREFIX}-{kind.value}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"
