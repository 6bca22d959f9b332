from __future__ import annotations

"""Neutral mutation requests.

Gesture layers (drag-and-drop, rename fields, toolbars) translate their own
event payloads into one of these frozen values. The serializer and the
handlers only ever see these shapes.

Supported requests:
- ``MoveRequest``:   {"item_ids", "target_id", "insertion_index"}
- ``ReorderRequest``: {"item_ids", "parent_id", "insertion_index"}
- ``RenameRequest``: {"item_id", "new_name"}
- ``AddRequest``:    {"name", "parent_id", "kind"}
- ``CreateFolderRequest``: {"name", "parent_id"}
- ``DeleteRequest``: {"item_ids"}
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from foldly_tree.core.models import NodeKind

__all__ = [
    "MoveRequest",
    "ReorderRequest",
    "RenameRequest",
    "AddRequest",
    "CreateFolderRequest",
    "DeleteRequest",
    "MutationRequest",
]


@dataclass(frozen=True)
class MoveRequest:
    """Drop of sibling items onto a target.

    ``target_id=None`` means the empty canvas area, i.e. the root. The handler
    classifies the drop as a reorder when the target is the items' current
    parent.
    """

    item_ids: Tuple[str, ...]
    target_id: Optional[str] = None
    insertion_index: Optional[int] = None


@dataclass(frozen=True)
class ReorderRequest:
    item_ids: Tuple[str, ...]
    parent_id: str
    insertion_index: int


@dataclass(frozen=True)
class RenameRequest:
    item_id: str
    new_name: str


@dataclass(frozen=True)
class AddRequest:
    name: str
    parent_id: Optional[str] = None
    kind: NodeKind = NodeKind.FOLDER


@dataclass(frozen=True)
class CreateFolderRequest:
    name: str
    parent_id: Optional[str] = None


@dataclass(frozen=True)
class DeleteRequest:
    item_ids: Tuple[str, ...]


MutationRequest = Union[
    MoveRequest,
    ReorderRequest,
    RenameRequest,
    AddRequest,
    CreateFolderRequest,
    DeleteRequest,
]
