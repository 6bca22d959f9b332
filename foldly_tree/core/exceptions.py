from __future__ import annotations

"""Tree mutation exception classes.

Handlers raise these internally to abort or roll back an operation. The public
service API converts them into :class:`~foldly_tree.core.models.MutationResult`
values, so none of them ever escapes to the UI collaborator.
"""

from typing import Iterable, List, Optional


class TreeError(Exception):
    """Base exception for all tree mutation errors."""

    def __init__(self, message: str, item_ids: Optional[Iterable[str]] = None,
                 cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.item_ids: List[str] = list(item_ids or [])
        self.cause = cause


class ValidationFailure(TreeError):
    """Raised when a target, parent or item is missing from the Tree Store.

    Raised before anything is applied, so no rollback is needed.
    """
    pass


class NoOpDetected(TreeError):
    """Raised when the computed state equals the current state."""
    pass


class PersistenceFailure(TreeError):
    """Raised when a Persistence Gateway call rejects or reports failure."""
    pass


class PartialBatchFailure(PersistenceFailure):
    """Raised when only some calls of a multi-item batch failed.

    The batch is still rolled back as a whole.
    """

    def __init__(self, message: str, failed: int, total: int,
                 item_ids: Optional[Iterable[str]] = None) -> None:
        super().__init__(message, item_ids)
        self.failed = failed
        self.total = total


__all__ = [
    "TreeError",
    "ValidationFailure",
    "NoOpDetected",
    "PersistenceFailure",
    "PartialBatchFailure",
]
