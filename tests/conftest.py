"""Shared fixtures and fakes for the tree engine tests.

The fakes record every call so tests can assert on the exact sequence of
Persistence Gateway, view, cache and notification interactions.
"""

import asyncio
import itertools
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from foldly_tree.config import ConfigManager
from foldly_tree.core.builder import build_tree
from foldly_tree.core.interfaces import GatewayResult
from foldly_tree.core.services import OperationSerializer, TreeMutationService

# Configure test logging
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

TREE_CONFIG: Dict[str, Any] = {
    "mutations": {"reject_descendant_moves": True},
    "ids": {"folder_prefix": "folder", "file_prefix": "file"},
    "staging": {"folders_first": True},
    "selection": {"include_root": False},
}


class FakeGateway:
    """In-memory Persistence Gateway.

    ``outcomes`` maps a method name to what the call should produce: a
    GatewayResult, an exception instance (raised), or a callable receiving
    the call arguments and returning either. Unset methods succeed.
    Every call yields to the event loop once, like a real network round-trip.
    """

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.outcomes: Dict[str, Any] = {}
        self._ids = itertools.count(1)

    async def update_order(self, parent_id, ordered_child_ids):
        return await self._respond("update_order", parent_id, list(ordered_child_ids))

    async def move_item(self, item_id, new_parent_id):
        return await self._respond("move_item", item_id, new_parent_id)

    async def rename_file(self, item_id, new_name):
        return await self._respond("rename_file", item_id, new_name)

    async def rename_folder(self, item_id, new_name):
        return await self._respond("rename_folder", item_id, new_name)

    async def create_folder(self, name, parent_id):
        return await self._respond("create_folder", name, parent_id)

    async def delete_items(self, item_ids):
        return await self._respond("delete_items", list(item_ids))

    def calls_to(self, method: str) -> List[tuple]:
        return [call[1:] for call in self.calls if call[0] == method]

    async def _respond(self, method: str, *args):
        self.calls.append((method,) + args)
        await asyncio.sleep(0)
        outcome = self.outcomes.get(method)
        if callable(outcome):
            outcome = outcome(*args)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            if method == "create_folder":
                return GatewayResult.ok(f"srv-{next(self._ids)}")
            return GatewayResult.ok()
        return outcome


class RecordingView:
    def __init__(self) -> None:
        self.rebuilds = 0
        self.expanded: List[str] = []
        self.synced: List[List[str]] = []

    def rebuild_tree(self) -> None:
        self.rebuilds += 1

    def expand_item(self, item_id: str) -> None:
        self.expanded.append(item_id)

    def sync_selection(self, item_ids: List[str]) -> None:
        self.synced.append(list(item_ids))


class RecordingCache:
    def __init__(self) -> None:
        self.signals: List[bool] = []

    def mark_stale(self, refetch: bool) -> None:
        self.signals.append(refetch)


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: List[tuple] = []

    def notify(self, event, item_ids, message, **details) -> None:
        self.events.append((event.value, list(item_ids), message, details))

    def names(self) -> List[str]:
        return [e[0] for e in self.events]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config layer at a throw-away user directory."""
    monkeypatch.setenv("FOLDLY_CONFIG_DIR", str(tmp_path / "config"))
    ConfigManager.reset()
    yield tmp_path / "config"
    ConfigManager.reset()


@pytest.fixture
def folder_rows():
    return [
        {"id": "P", "name": "Photos", "parentFolderId": None, "sortOrder": 0},
        {"id": "Q", "name": "Quotes", "sortOrder": 1},
        {"id": "F", "name": "Finance", "sortOrder": 2},
        {"id": "G", "name": "Grants", "parentFolderId": "F", "sortOrder": 0},
    ]


@pytest.fixture
def file_rows():
    return [
        {"id": "A", "fileName": "a.png", "folderId": "P", "sortOrder": 0},
        {"id": "B", "fileName": "b.png", "folderId": "P", "sortOrder": 1},
        {"id": "C", "fileName": "c.png", "folderId": "P", "sortOrder": 2},
        {"id": "X", "fileName": "x.pdf", "folderId": "Q", "sortOrder": 0},
    ]


@pytest.fixture
def store(folder_rows, file_rows):
    """ws -> [P -> [A, B, C], Q -> [X], F -> [G]]"""
    return build_tree("ws", "Workspace", folder_rows, file_rows)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def view():
    return RecordingView()


@pytest.fixture
def cache():
    return RecordingCache()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def tree_config():
    return {key: dict(value) for key, value in TREE_CONFIG.items()}


@pytest.fixture
def service(store, gateway, view, cache, notifier, tree_config):
    counter = itertools.count(1)
    return TreeMutationService(
        store,
        gateway,
        serializer=OperationSerializer("ws"),
        view=view,
        cache=cache,
        notifier=notifier,
        config=tree_config,
        id_factory=lambda kind: f"{kind.value}-tmp-{next(counter)}",
    )
