from __future__ import annotations

"""Collaborator interface definitions.

Defines the contracts between the tree engine and the outside world: the
Persistence Gateway that stores mutations, the tree view that renders the
store, the query cache that mirrors server state, and the notification sink
that informs the user. The core depends only on these protocols.
"""

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any, Iterable, List, Optional, Protocol, Sequence, runtime_checkable

__all__ = [
    "GatewayResult",
    "PersistenceGateway",
    "TreeView",
    "QueryCache",
    "Notifier",
    "NotificationEvent",
    "NullTreeView",
    "NullQueryCache",
    "LoggingNotifier",
]


@dataclass(frozen=True)
class GatewayResult:
    """Outcome of one Persistence Gateway call.

    Attributes
    ----------
    success
        Whether the server accepted the change.
    error
        Human-readable failure reason when ``success`` is False.
    data
        Payload of a successful call, e.g. the new id from ``create_folder``.
    """

    success: bool
    error: Optional[str] = None
    data: Any = None

    @classmethod
    def ok(cls, data: Any = None) -> "GatewayResult":
        return cls(True, None, data)

    @classmethod
    def fail(cls, error: str) -> "GatewayResult":
        return cls(False, error, None)


@runtime_checkable
class PersistenceGateway(Protocol):
    """Async boundary that durably stores tree mutations.

    A raised exception and a ``GatewayResult(success=False)`` are treated the
    same way by the engine. Timeouts are the gateway's responsibility.
    """

    async def update_order(self, parent_id: str, ordered_child_ids: Sequence[str]) -> GatewayResult:
        ...

    async def move_item(self, item_id: str, new_parent_id: str) -> GatewayResult:
        ...

    async def rename_file(self, item_id: str, new_name: str) -> GatewayResult:
        ...

    async def rename_folder(self, item_id: str, new_name: str) -> GatewayResult:
        ...

    async def create_folder(self, name: str, parent_id: str) -> GatewayResult:
        """Create a folder; ``data`` of a successful result is the new id."""
        ...

    async def delete_items(self, item_ids: Sequence[str]) -> GatewayResult:
        ...


@runtime_checkable
class TreeView(Protocol):
    """Rendering collaborator that reads the store after each change."""

    def rebuild_tree(self) -> None:
        """Re-read the store and redraw."""
        ...

    def expand_item(self, item_id: str) -> None:
        ...

    def sync_selection(self, item_ids: List[str]) -> None:
        """Mirror a programmatic selection change into focus/keyboard state."""
        ...


@runtime_checkable
class QueryCache(Protocol):
    """Cache-invalidation collaborator.

    ``refetch=False`` means "stale, don't refetch yet" (after an optimistic
    success); ``refetch=True`` means "stale, refetch now" (after a rollback).
    """

    def mark_stale(self, refetch: bool) -> None:
        ...


class NotificationEvent(str, Enum):
    REORDER_SUCCESS = "reorder-success"
    REORDER_ERROR = "reorder-error"
    MOVE_SUCCESS = "move-success"
    MOVE_ERROR = "move-error"
    RENAME_SUCCESS = "rename-success"
    RENAME_ERROR = "rename-error"
    CREATE_SUCCESS = "create-success"
    CREATE_ERROR = "create-error"
    DELETE_SUCCESS = "delete-success"
    DELETE_ERROR = "delete-error"

    @property
    def is_error(self) -> bool:
        return self.value.endswith("-error")


@runtime_checkable
class Notifier(Protocol):
    """User-facing notification sink (toasts, event bus, etc.)."""

    def notify(
        self,
        event: NotificationEvent,
        item_ids: Iterable[str],
        message: str,
        **details: Any,
    ) -> None:
        ...


class NullTreeView:
    """View used when the engine runs headless."""

    def rebuild_tree(self) -> None:
        pass

    def expand_item(self, item_id: str) -> None:
        pass

    def sync_selection(self, item_ids: List[str]) -> None:
        pass


class NullQueryCache:
    """Cache used when no query cache is attached."""

    def mark_stale(self, refetch: bool) -> None:
        pass


class LoggingNotifier:
    """Notifier that writes events to the log instead of a UI."""

    def __init__(self, logger_name: str = "foldly_tree.notifications") -> None:
        self._logger = logging.getLogger(logger_name)

    def notify(
        self,
        event: NotificationEvent,
        item_ids: Iterable[str],
        message: str,
        **details: Any,
    ) -> None:
        ids = list(item_ids)
        if event.is_error:
            self._logger.warning("%s ids=%s: %s", event.value, ids, message)
        else:
            self._logger.info("%s ids=%s: %s", event.value, ids, message)
