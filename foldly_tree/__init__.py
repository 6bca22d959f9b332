"""Top-level package for the Foldly tree mutation and synchronization engine.

Front-ends (workspace view, shared-link view) should only depend on the public
API exposed here rather than importing internal modules directly.
"""

from .core.builder import build_tree  # re-export for convenience
from .core.context import TreeSession
from .core.models import MutationResult, Node, NodeKind
from .core.tree_store import TreeStore

__all__: list[str] = [
    "build_tree",
    "TreeSession",
    "MutationResult",
    "Node",
    "NodeKind",
    "TreeStore",
]
