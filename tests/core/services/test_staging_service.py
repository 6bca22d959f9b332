import pytest

from foldly_tree.core.exceptions import ValidationFailure
from foldly_tree.core.models import NodeKind, StagedFile, StagedFolder, StagingStatus
from foldly_tree.core.services.staging_service import StagingCollection, StagingProjector, project


@pytest.fixture
def staging():
    return StagingCollection()


def test_staged_file_appears_under_its_parent(store, staging):
    before = store.structure()
    staged = staging.stage_file("upload.jpg", parent_folder_id="P", size=2048)

    projected = project(store, staging.files(), staging.folders())

    assert projected.children_of("P") == ["A", "B", "C", staged.id]
    node = projected.get(staged.id)
    assert node.is_staged
    assert node.kind == NodeKind.FILE
    assert node.staging_status == StagingStatus.STAGED
    # Inputs untouched
    assert store.structure() == before
    assert staged.id not in store
    assert len(staging) == 1


def test_project_is_idempotent(store, staging):
    staging.stage_folder("New", item_id="staged-folder-1")
    staging.stage_file("doc.pdf", parent_folder_id="staged-folder-1", item_id="staged-file-1")

    first = project(store, staging.files(), staging.folders())
    second = project(store, staging.files(), staging.folders())

    assert first.structure() == second.structure()
    assert first is not second


def test_parentless_and_unknown_parents_go_to_root(store):
    files = [
        StagedFile(id="s1", name="one.txt"),
        StagedFile(id="s2", name="two.txt", parent_folder_id="ghost"),
        StagedFile(id="s3", name="three.txt", parent_folder_id="A"),  # a file
    ]
    projected = project(store, files, [])

    assert projected.children_of("ws")[-3:] == ["s1", "s2", "s3"]
    assert projected.validate() == []


def test_staged_folder_can_parent_staged_items(store):
    folders = [
        StagedFolder(id="sf-child", name="Child", parent_folder_id="sf-parent"),
        StagedFolder(id="sf-parent", name="Parent", parent_folder_id="Q"),
    ]
    files = [StagedFile(id="s1", name="a.txt", parent_folder_id="sf-child")]

    projected = project(store, files, folders)

    assert projected.children_of("Q") == ["X", "sf-parent"]
    assert projected.children_of("sf-parent") == ["sf-child"]
    assert projected.children_of("sf-child") == ["s1"]
    assert projected.validate() == []


def test_folders_first_ordering(store):
    files = [StagedFile(id="s-file", name="f.txt", parent_folder_id="Q")]
    folders = [StagedFolder(id="s-folder", name="Dir", parent_folder_id="Q")]

    assert project(store, files, folders).children_of("Q") == ["X", "s-folder", "s-file"]
    assert project(store, files, folders, folders_first=False).children_of("Q") == ["X", "s-file", "s-folder"]


def test_colliding_ids_are_skipped(store):
    files = [StagedFile(id="A", name="dup.png", parent_folder_id="Q")]
    projected = project(store, files, [])

    assert projected.children_of("Q") == ["X"]
    assert not projected.get("A").is_staged


def test_staged_parent_cycle_still_projects(store):
    folders = [
        StagedFolder(id="s-a", name="A", parent_folder_id="s-b"),
        StagedFolder(id="s-b", name="B", parent_folder_id="s-a"),
    ]
    projected = project(store, [], folders)

    assert "s-a" in projected and "s-b" in projected
    assert projected.validate() == []


def test_collection_versions_and_status(staging):
    start = staging.version
    staged = staging.stage_file("a.txt")
    assert staged.id.startswith("staged-file-")
    staging.set_status(staged.id, StagingStatus.UPLOADING)
    staging.set_status(staged.id, StagingStatus.UPLOADING)  # unchanged
    assert staging.version == start + 2

    assert staging.remove(staged.id)
    assert not staging.remove(staged.id)
    assert staging.version == start + 3

    with pytest.raises(ValidationFailure):
        staging.set_status("missing", StagingStatus.FAILED)


def test_duplicate_staged_id_is_rejected(staging):
    staging.stage_folder("One", item_id="staged-x")
    with pytest.raises(ValidationFailure):
        staging.stage_file("Two", item_id="staged-x")


def test_projector_recomputes_only_on_version_change(store, staging):
    projector = StagingProjector(store, staging)

    first = projector.projection()
    assert projector.projection().structure() == first.structure()
    assert projector.runs == 1

    staging.stage_file("new.txt", parent_folder_id="P")
    second = projector.projection()
    assert second.structure() != first.structure()
    assert projector.runs == 2

    store.set_name("P", "Pictures")
    third = projector.projection()
    assert third.get("P").name == "Pictures"
    assert projector.runs == 3

    projector.invalidate()
    projector.projection()
    assert projector.runs == 4


def test_writes_to_a_projection_do_not_reach_the_cache(store, staging):
    staged = staging.stage_folder("Drafts", parent_folder_id="P")
    projector = StagingProjector(store, staging)

    handed_out = projector.projection()
    handed_out.set_name(staged.id, "Scribbles")
    handed_out.remove_subtree("A")

    again = projector.projection()
    assert again.get(staged.id).name == "Drafts"
    assert "A" in again
    assert projector.runs == 1
