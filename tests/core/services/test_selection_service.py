import asyncio

from foldly_tree.core.services.selection_service import SelectionManager


def test_set_selection_drops_unknown_ids(store):
    selection = SelectionManager(store)

    kept = selection.set_selection(["A", "ghost", "Q", "A"])

    assert kept == ["A", "Q"]
    assert selection.is_selected("A")
    assert not selection.is_selected("ghost")
    assert len(selection) == 2


def test_selected_items_follow_tree_order(store):
    selection = SelectionManager(store)
    selection.set_selection(["G", "B", "P"])

    assert selection.get_selected_items() == ["P", "B", "G"]


def test_toggle_syncs_view(store, view):
    selection = SelectionManager(store, view=view)

    assert selection.toggle("B") is True
    assert selection.toggle("C") is True
    assert selection.toggle("B") is False
    assert view.synced == [["B"], ["B", "C"], ["C"]]


def test_toggle_unknown_id_is_ignored(store, view):
    selection = SelectionManager(store, view=view)

    assert selection.toggle("ghost") is False
    assert len(selection) == 0
    assert view.synced == []


def test_select_all_and_clear(store, view):
    selection = SelectionManager(store, view=view)

    ids = selection.select_all()
    assert ids == ["P", "A", "B", "C", "Q", "X", "F", "G"]
    assert view.synced == [ids]

    selection.clear()
    assert selection.get_selected_items() == []


def test_select_all_can_include_root(store):
    selection = SelectionManager(store, include_root=True)
    assert selection.select_all()[0] == "ws"


def test_deleted_ids_are_pruned(store):
    selection = SelectionManager(store)
    selection.set_selection(["F", "G", "A"])

    store.remove_subtree("F")

    assert selection.get_selected_items() == ["A"]


def test_selection_survives_moves(service, store):
    selection = SelectionManager(store)
    selection.set_selection(["A"])

    asyncio.run(service.move_items(["A"], "Q"))

    assert selection.is_selected("A")
    assert selection.get_selected_items() == ["A"]


def test_close_stops_pruning(store):
    selection = SelectionManager(store)
    selection.set_selection(["A"])
    selection.close()

    store.remove_subtree("P")
    assert selection.is_selected("A")
    assert selection.prune() == ["A"]
