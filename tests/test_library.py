"""
Integration tests for the Library session.
"""

import pytest
from unittest.mock import patch

from prompt_library.core.errors import FolderDeletionError, FolderNameConflictError, InvalidSnapshotError
from prompt_library.core.folder import DEFAULT_FOLDER_NAME
from prompt_library.core.library import Library
from prompt_library.core.query import PromptQuery, SortOption
from prompt_library.core.records import PromptVersion
from prompt_library.core.storage import FOLDERS, PROMPTS, RecordStore
from prompt_library.core.versions import PromptContent


def unassigned_prompt(id, folder_id=None):
    return PromptVersion(id=id, original_id=id, version=1, title=id, folder_id=folder_id,
                         created_at="2024-01-01T00:00:00+00:00").to_dict()


class TestLoadAll:
    """Test the load-time repair of the dataset."""

    def test_empty_store_gets_default_folder(self, library, store):
        state = library.load_all()

        assert state.prompts == []
        assert [f.name for f in state.folders] == [DEFAULT_FOLDER_NAME]
        assert state.default_folder_id == state.folders[0].id
        assert store.count(FOLDERS) == 1

    def test_load_is_idempotent(self, library, store):
        first = library.load_all()
        second = library.load_all()

        assert first.default_folder_id == second.default_folder_id
        assert store.count(FOLDERS) == 1

    @pytest.mark.parametrize("folder_id", [None, "", "null", "undefined"])
    def test_unassigned_prompts_are_moved_and_persisted(self, library, store, storage_dir, folder_id):
        store.add(PROMPTS, unassigned_prompt("p1", folder_id))

        state = library.load_all()

        assert state.prompts[0].folder_id == state.default_folder_id
        reopened = RecordStore(str(storage_dir))
        assert reopened.get(PROMPTS, "p1")["folderId"] == state.default_folder_id

    def test_moves_are_written_in_one_batch(self, library, store):
        library.load_all()
        for i in range(20):
            store.add(PROMPTS, unassigned_prompt(f"p{i}"))

        with patch("prompt_library.core.storage.atomic_write") as write:
            state = library.load_all()

        assert write.call_count == 1
        assert {p.folder_id for p in state.prompts} == {state.default_folder_id}

    def test_assigned_prompts_are_untouched(self, library, store):
        store.add(FOLDERS, {"id": "work", "name": "Work", "parentId": None})
        store.add(PROMPTS, unassigned_prompt("p1", "work"))

        state = library.load_all()

        assert state.prompts[0].folder_id == "work"


class TestPromptLifecycle:
    """Test prompt operations through the session."""

    def test_create_prompt_defaults_to_default_folder(self, library):
        state = library.load_all()
        content = PromptContent(title="Greeting", text="Hello")

        record = library.create_prompt(content)

        assert record.folder_id == state.default_folder_id
        assert content.folder_id is None

    def test_new_version_inherits_folder(self, library):
        library.load_all()
        work = library.create_folder("Work")
        first = library.create_prompt(PromptContent(title="Draft", folder_id=work.id))

        second = library.create_version(PromptContent(title="Final"), first)

        assert second.folder_id == work.id
        assert [v.version for v in library.get_history(first.original_id)] == [2, 1]

    def test_latest_prompts_and_counts(self, library):
        library.load_all()
        a = library.create_prompt(PromptContent(title="A"))
        library.create_version(PromptContent(title="A2"), a)
        b = library.create_prompt(PromptContent(title="B"))

        latest = {p.original_id: p.title for p in library.latest_prompts()}

        assert latest == {a.original_id: "A2", b.original_id: "B"}
        assert library.version_counts() == {a.original_id: 2, b.original_id: 1}

    def test_usage_and_recent_sort(self, library):
        library.load_all()
        a = library.create_prompt(PromptContent(title="A"))
        b = library.create_prompt(PromptContent(title="B"))
        library.record_usage(a)
        library.record_usage(b)

        page = library.query(PromptQuery(sort=SortOption.RECENTLY_USED))

        assert [p.title for p in page.items] == ["B", "A"]

    def test_delete_prompt_removes_history(self, library):
        library.load_all()
        a = library.create_prompt(PromptContent(title="A"))
        library.create_version(PromptContent(title="A2"), a)

        assert library.delete_prompt(a.original_id) == 2
        assert library.get_history(a.original_id) == []

    def test_tags(self, library):
        library.load_all()
        library.create_prompt(PromptContent(title="A", tags=["x", "y"]))
        library.create_prompt(PromptContent(title="B", tags=["y", "z"]))

        assert library.tags() == ["x", "y", "z"]


class TestFolders:
    """Test folder operations through the session."""

    def test_default_folder_cannot_be_claimed_before_load(self, library):
        with pytest.raises(FolderNameConflictError):
            library.create_folder(DEFAULT_FOLDER_NAME)

        state = library.load_all()
        default = library.folders.get(state.default_folder_id)

        assert not default.is_deletable
        assert not default.is_renamable
        with pytest.raises(FolderDeletionError):
            library.delete_folder(default.id)
        assert [f.id for f in library.folders.get_all()] == [default.id]

    def test_old_version_in_folder_blocks_delete(self, library):
        library.load_all()
        work = library.create_folder("Work")
        home = library.create_folder("Home")
        first = library.create_prompt(PromptContent(title="Draft", folder_id=work.id))
        library.create_version(PromptContent(title="Moved", folder_id=home.id), first)

        assert not library.is_branch_empty(work.id)
        with pytest.raises(FolderDeletionError):
            library.delete_folder(work.id)

    def test_delete_after_emptying(self, library):
        library.load_all()
        a = library.create_folder("A")
        b = library.create_folder("B", parent_id=a.id)
        prompt = library.create_prompt(PromptContent(title="P", folder_id=b.id))

        assert not library.is_branch_empty(a.id)
        with pytest.raises(FolderDeletionError):
            library.delete_folder(b.id)

        library.delete_prompt(prompt.original_id)
        assert library.is_branch_empty(a.id)
        library.delete_folder(b.id)
        library.delete_folder(a.id)

        assert [node.name for node in library.folder_tree()] == []

    def test_views(self, library):
        library.load_all()
        work = library.create_folder("Work")
        library.create_folder("Email", parent_id=work.id)
        library.rename_folder(work.id, "Job")

        assert [node.name for node in library.folder_tree()] == ["Job"]
        assert [f.name for f in library.flat_folders()] == ["Job", "Job / Email", DEFAULT_FOLDER_NAME]


class TestImport:
    """Test import followed by reload."""

    def test_import_reloads_and_repairs(self, library):
        library.load_all()
        snapshot = {
            "folders": [],
            "prompts": [unassigned_prompt("p1")],
        }

        state = library.import_all(snapshot)

        assert [f.name for f in state.folders] == [DEFAULT_FOLDER_NAME]
        assert state.prompts[0].folder_id == state.default_folder_id

    def test_rejected_import_keeps_dataset(self, library):
        library.load_all()
        library.create_prompt(PromptContent(title="Keep me"))

        with pytest.raises(InvalidSnapshotError):
            library.import_all({"folders": "x", "prompts": []})

        assert [p.title for p in library.latest_prompts()] == ["Keep me"]

    def test_backup_option(self, store, ids, clock):
        library = Library(store, id_factory=ids, clock=clock, backup_before_import=True)
        library.load_all()

        library.import_all(library.export_all())

        assert len(store.get_storage_info()["backups"]) == 1
