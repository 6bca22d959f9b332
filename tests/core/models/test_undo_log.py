from foldly_tree.core.models import Node, NodeKind
from foldly_tree.core.models.undo_log import UndoLog


def test_rollback_restores_children_in_reverse(store):
    before = store.structure()
    log = UndoLog()
    log.record_children(store, "P")
    log.record_children(store, "Q")
    store.set_children("P", ["B", "C"])
    store.set_children("Q", ["X", "A"])

    assert log.rollback(store) == 2
    assert store.structure() == before
    assert len(log) == 0


def test_only_first_value_per_location_is_kept(store):
    log = UndoLog()
    log.record_name(store, "A")
    store.set_name("A", "first.png")
    log.record_name(store, "A")
    store.set_name("A", "second.png")

    assert log.locations == [("name", "A")]
    log.rollback(store)
    assert store.get("A").name == "a.png"


def test_record_node_of_missing_id_removes_it_on_rollback(store):
    before = store.structure()
    log = UndoLog()
    log.record_node(store, "new")
    log.record_children(store, "ws")
    store.insert(Node(id="new", name="New", kind=NodeKind.FOLDER), "ws")

    log.rollback(store)
    assert "new" not in store
    assert store.structure() == before
    assert store.validate() == []


def test_discard_forgets_entries(store):
    log = UndoLog()
    log.record_children(store, "P")
    store.set_children("P", ["C", "B", "A"])
    log.discard()
    assert log.rollback(store) == 0
    assert store.children_of("P") == ["C", "B", "A"]


def test_removed_node_comes_back_under_its_parent(store):
    before = store.structure()
    log = UndoLog()
    log.record_node(store, "A")
    log.record_children(store, "P")
    store.remove_subtree("A")

    log.rollback(store)
    assert store.structure() == before
    assert store.parent_of("A") == "P"
    assert store.validate() == []


def test_removed_node_restores_whatever_the_recording_order(store):
    before = store.structure()
    log = UndoLog()
    log.record_children(store, "P")
    log.record_node(store, "B")
    store.remove_subtree("B")

    log.rollback(store)
    assert store.children_of("P") == ["A", "B", "C"]
    assert store.parent_of("B") == "P"
    assert store.structure() == before
    assert store.validate() == []
