"""
Library session: one explicit object bundling a record store with the version,
folder and dataset managers.

Every derived view (latest prompts, version counts, folder tree) is computed
from a fresh read of the store rather than from a cache, so a view can never
reflect a stale copy of the data.
"""

import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional

from .dataset import DatasetManager
from .folder import (
    DEFAULT_FOLDER_NAME,
    FolderHierarchyManager,
    FolderNode,
    is_branch_empty,
)
from .query import Page, PromptQuery, all_tags
from .records import Folder, PromptVersion, is_unassigned
from .storage import PROMPTS, RecordStore
from .versions import PromptContent, VersionChainManager, generate_id, utc_now

logger = logging.getLogger(__name__)


@dataclass
class LibraryState:
    """Consistent in-memory view returned by Library.load_all()"""
    prompts: List[PromptVersion]
    folders: List[Folder]
    default_folder_id: str


class Library:
    """
    Entry point for callers (UI, API handlers, scripts).

    Args:
        store: Opened record store
        id_factory: Generator of globally unique ids
        clock: Source of ISO-8601 timestamps
        default_folder_name: Name of the protected root folder
        backup_before_import: Back up both collections before an import
    """

    def __init__(self, store: RecordStore,
                 id_factory: Callable[[], str] = generate_id,
                 clock: Callable[[], str] = utc_now,
                 default_folder_name: str = DEFAULT_FOLDER_NAME,
                 backup_before_import: bool = False):
        self.store = store
        self.versions = VersionChainManager(store, id_factory=id_factory, clock=clock)
        self.folders = FolderHierarchyManager(store, id_factory=id_factory,
                                              default_folder_name=default_folder_name)
        self.dataset = DatasetManager(store, backup_before_import=backup_before_import)

    def load_all(self) -> LibraryState:
        """
        Load the dataset and repair it into a consistent state.

        Ensures the default folder exists and moves every prompt version that
        has no folder into it. The moves are persisted before returning.
        """
        default_folder = self.folders.ensure_default_folder()
        folders = self.folders.get_all()

        prompts = []
        migrated = []
        for prompt in self.versions.get_all():
            if is_unassigned(prompt.folder_id):
                prompt = prompt.copy(folder_id=default_folder.id)
                migrated.append(prompt.to_dict())
            prompts.append(prompt)

        if migrated:
            self.store.put_many(PROMPTS, migrated)
            logger.info(f"Moved {len(migrated)} unassigned prompt versions to '{default_folder.name}'")

        return LibraryState(prompts=prompts, folders=folders, default_folder_id=default_folder.id)

    # Prompt operations

    def create_prompt(self, content: PromptContent) -> PromptVersion:
        """Start a new prompt chain. Prompts without a folder go to the default folder."""
        if is_unassigned(content.folder_id):
            content = replace(content, folder_id=self.folders.ensure_default_folder().id)
        return self.versions.create_version(content)

    def create_version(self, content: PromptContent, previous_version: PromptVersion) -> PromptVersion:
        if is_unassigned(content.folder_id):
            content = replace(content, folder_id=previous_version.folder_id)
        return self.versions.create_version(content, previous_version)

    def record_usage(self, record: PromptVersion) -> PromptVersion:
        return self.versions.record_usage(record)

    def delete_prompt(self, original_id: str) -> int:
        return self.versions.delete_chain(original_id)

    def get_history(self, original_id: str) -> List[PromptVersion]:
        return self.versions.get_chain(original_id)

    # Folder operations

    def create_folder(self, name: str, parent_id: Optional[str] = None) -> Folder:
        return self.folders.create(name, parent_id)

    def rename_folder(self, folder_id: str, new_name: str) -> Folder:
        return self.folders.rename(folder_id, new_name)

    def delete_folder(self, folder_id: str) -> None:
        self.folders.delete(folder_id)

    # Dataset operations

    def export_all(self) -> Dict[str, list]:
        return self.dataset.export_all()

    def import_all(self, snapshot) -> LibraryState:
        """Replace the dataset, then reload it through load_all()."""
        self.dataset.import_all(snapshot)
        return self.load_all()

    # Derived views

    def latest_prompts(self) -> List[PromptVersion]:
        return self.versions.latest_of(self.versions.get_all())

    def version_counts(self) -> Dict[str, int]:
        return self.versions.version_count_of(self.versions.get_all())

    def folder_tree(self, include_default: bool = False) -> List[FolderNode]:
        return self.folders.hierarchy(include_default=include_default)

    def flat_folders(self, include_default: bool = True) -> List[Folder]:
        return self.folders.flattened(include_default=include_default)

    def is_branch_empty(self, folder_id: str) -> bool:
        return is_branch_empty(folder_id, self.versions.get_all(), self.folders.get_all())

    def tags(self) -> List[str]:
        return all_tags(self.latest_prompts())

    def query(self, query: PromptQuery) -> Page:
        return query.apply(self.latest_prompts(), self.folders.get_all())
