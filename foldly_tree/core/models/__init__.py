from __future__ import annotations

"""Shared data structures used across the tree engine core.

This package exposes dataclasses and value objects used by the store, the
services and the session facade. It is intentionally free of UI / I/O code so
that the contained objects can be reused in any context (unit-tests, API
workers, desktop front-ends, etc.).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

__all__ = [
    "NodeKind",
    "Node",
    "StagingStatus",
    "StagedFile",
    "StagedFolder",
    "MutationResult",
]


class NodeKind(str, Enum):
    FILE = "file"
    FOLDER = "folder"


class StagingStatus(str, Enum):
    STAGED = "staged"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Node:
    """A folder or file held by a :class:`~foldly_tree.core.tree_store.TreeStore`.

    Attributes
    ----------
    id
        Opaque identifier, stable for the node's lifetime.
    name
        Display name.
    kind
        ``NodeKind.FILE`` or ``NodeKind.FOLDER``.
    children
        Ordered child ids. Always empty for files. The order is the display order.
    is_staged
        True for nodes projected from the staging collection.
    staging_status
        Upload status of a staged node, None for persisted nodes.
    record
        Raw backing row the node was built from, if any.
    """

    id: str
    name: str
    kind: NodeKind = NodeKind.FOLDER
    children: List[str] = field(default_factory=list)
    is_staged: bool = False
    staging_status: Optional[StagingStatus] = None
    record: Any = None

    @property
    def is_folder(self) -> bool:
        return self.kind == NodeKind.FOLDER

    def clone(self) -> "Node":
        """Return a copy with an independent child list (the record is shared)."""
        return Node(
            id=self.id,
            name=self.name,
            kind=self.kind,
            children=list(self.children),
            is_staged=self.is_staged,
            staging_status=self.staging_status,
            record=self.record,
        )


@dataclass
class StagedFile:
    """A file waiting for upload, owned by the upload pipeline."""

    id: str
    name: str
    parent_folder_id: Optional[str] = None
    status: StagingStatus = StagingStatus.STAGED
    size: int = 0
    mime_type: str = "application/octet-stream"


@dataclass
class StagedFolder:
    """A folder waiting for creation, owned by the upload pipeline."""

    id: str
    name: str
    parent_folder_id: Optional[str] = None
    status: StagingStatus = StagingStatus.STAGED


@dataclass(frozen=True)
class MutationResult:
    """Result of a tree mutation.

    Attributes
    ----------
    success
        Whether the operation completed (or was a harmless no-op).
    message
        Human-readable summary suitable for logs or UI display.
    details
        Optional structured details for diagnostics or caller logic.
    """

    success: bool
    message: str
    details: Optional[Dict[str, Any]] = None
