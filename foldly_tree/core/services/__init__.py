from __future__ import annotations

"""Tree engine services: serialization, mutations, staging and selection."""

from .operation_serializer import OperationSerializer  # noqa: F401
from .tree_mutation_service import TreeMutationService  # noqa: F401
from .staging_service import StagingCollection, StagingProjector, project  # noqa: F401
from .selection_service import SelectionManager  # noqa: F401

__all__: list[str] = [
    "OperationSerializer",
    "TreeMutationService",
    "StagingCollection",
    "StagingProjector",
    "project",
    "SelectionManager",
]
