"""
Folder Hierarchy for the Prompt Library

This module builds and queries the folder forest and provides the
FolderHierarchyManager, which owns every folder mutation:

- sibling names are unique under case-insensitive comparison
- exactly one default folder exists at the root and can be neither renamed
  nor deleted
- a folder can only be deleted when it has no subfolders and no prompt lives
  anywhere in its branch

The tree helpers never trust the stored data to be acyclic; every traversal
keeps a visited set.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional, Set

from .errors import (
    FolderDeletionError,
    FolderNameConflictError,
    FolderNotFoundError,
    FolderValidationError,
    RecordValidationError,
)
from .records import Folder, PromptVersion
from .storage import FOLDERS, PROMPTS, RecordStore
from .versions import generate_id

logger = logging.getLogger(__name__)

DEFAULT_FOLDER_NAME = "Uncategorized"
PATH_SEPARATOR = " / "


class FolderNode:
    """
    Transient hierarchy node: a folder with its depth and sorted children.

    Never persisted; rebuilt from the full folder list whenever it changes.
    """

    def __init__(self, folder: Folder, level: int, children: Optional[List['FolderNode']] = None):
        self.folder = folder
        self.level = level
        self.children = children or []

    @property
    def id(self) -> str:
        return self.folder.id

    @property
    def name(self) -> str:
        return self.folder.name

    def to_dict(self) -> Dict:
        data = self.folder.to_dict()
        data["level"] = self.level
        data["children"] = [child.to_dict() for child in self.children]
        return data

    def __repr__(self) -> str:
        return f"FolderNode(name='{self.name}', level={self.level}, children={len(self.children)})"


def _sort_key(folder: Folder) -> str:
    return folder.name.lower()


def build_folder_lookup(folders: Iterable[Folder]) -> Dict[str, Folder]:
    """Build a lookup dictionary for folders by ID."""
    return {folder.id: folder for folder in folders}


def get_root_folders(folders: Iterable[Folder]) -> List[Folder]:
    """Get all root-level folders (those without parents)."""
    return [folder for folder in folders if folder.parent_id is None]


def build_folder_hierarchy(folders: List[Folder], parent_id: Optional[str] = None,
                           level: int = 0) -> List[FolderNode]:
    """
    Build the folder tree below ``parent_id``.

    Siblings are ordered by case-insensitive name. Pure function of its input.

    Args:
        folders: Every folder to arrange
        parent_id: Parent whose subtree to build; None builds the whole forest
        level: Depth assigned to the top nodes

    Returns:
        List of FolderNode trees
    """
    children_by_parent: Dict[Optional[str], List[Folder]] = {}
    for folder in folders:
        children_by_parent.setdefault(folder.parent_id, []).append(folder)

    visited: Set[str] = set()

    def build(current_parent: Optional[str], current_level: int) -> List[FolderNode]:
        nodes = []
        for folder in sorted(children_by_parent.get(current_parent, []), key=_sort_key):
            if folder.id in visited:
                logger.warning(f"Folder cycle detected at '{folder.name}', skipping")
                continue
            visited.add(folder.id)
            nodes.append(FolderNode(folder, current_level, build(folder.id, current_level + 1)))
        return nodes

    return build(parent_id, level)


def get_folder_ids_in_branch(folder_id: str, folders: Iterable[Folder]) -> Set[str]:
    """
    Collect a folder's id and the ids of all its descendants.

    Args:
        folder_id: Root of the branch
        folders: All available folders

    Returns:
        Set of folder ids in the branch
    """
    children_by_parent: Dict[str, List[str]] = {}
    for folder in folders:
        if folder.parent_id is not None:
            children_by_parent.setdefault(folder.parent_id, []).append(folder.id)

    branch = {folder_id}
    pending = [folder_id]
    while pending:
        current = pending.pop()
        for child_id in children_by_parent.get(current, []):
            if child_id not in branch:
                branch.add(child_id)
                pending.append(child_id)
    return branch


def is_branch_empty(folder_id: str, prompts: Iterable[PromptVersion], folders: Iterable[Folder]) -> bool:
    """Return True if no prompt lives in the folder or any of its descendants."""
    branch = get_folder_ids_in_branch(folder_id, folders)
    return not any(prompt.folder_id in branch for prompt in prompts)


def flatten_hierarchy(nodes: List[FolderNode], separator: str = PATH_SEPARATOR) -> List[Folder]:
    """
    Flatten a folder tree depth-first for selection lists.

    Each returned folder's name is prefixed with its ancestors' names, e.g.
    ``"Parent / Child"``. Parents always precede their children.
    """
    flat: List[Folder] = []

    def traverse(current: List[FolderNode], prefix: str) -> None:
        for node in current:
            flat.append(node.folder.renamed(f"{prefix}{node.name}"))
            if node.children:
                traverse(node.children, f"{prefix}{node.name}{separator}")

    traverse(nodes, "")
    return flat


def validate_folder_structure(folders: List[Folder]) -> List[str]:
    """
    Validate folder structure for consistency and detect issues.

    Args:
        folders: List of folder objects to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []
    folder_lookup = build_folder_lookup(folders)

    # Check for duplicate names within same parent
    parent_children: Dict[Optional[str], Dict[str, int]] = {}
    for folder in folders:
        names = parent_children.setdefault(folder.parent_id, {})
        names[folder.name.lower()] = names.get(folder.name.lower(), 0) + 1

    for parent_id, name_counts in parent_children.items():
        for name, count in name_counts.items():
            if count > 1:
                parent = folder_lookup.get(parent_id) if parent_id else None
                parent_name = parent.name if parent else "root"
                errors.append(f"Duplicate folder name '{name}' in parent '{parent_name}'")

    # Check for orphaned folders (parent doesn't exist)
    for folder in folders:
        if folder.parent_id and folder.parent_id not in folder_lookup:
            errors.append(f"Folder '{folder.name}' has non-existent parent ID: {folder.parent_id}")

    # Check for circular references
    for folder in folders:
        visited = set()
        current = folder
        while current and current.parent_id and current.id not in visited:
            visited.add(current.id)
            current = folder_lookup.get(current.parent_id)

        if current and current.id in visited:
            errors.append(f"Circular reference detected in folder hierarchy at '{folder.name}'")

    return errors


class FolderHierarchyManager:
    """Store-backed folder operations."""

    def __init__(self, store: RecordStore,
                 id_factory: Callable[[], str] = generate_id,
                 default_folder_name: str = DEFAULT_FOLDER_NAME):
        self._store = store
        self._id_factory = id_factory
        self.default_folder_name = default_folder_name

    def get_all(self) -> List[Folder]:
        return [Folder.from_dict(data) for data in self._store.get_all(FOLDERS)]

    def get(self, folder_id: str) -> Optional[Folder]:
        data = self._store.get(FOLDERS, folder_id)
        return Folder.from_dict(data) if data is not None else None

    def _require(self, folder_id: str) -> Folder:
        folder = self.get(folder_id)
        if folder is None:
            raise FolderNotFoundError(f"Folder '{folder_id}' does not exist")
        return folder

    def children_of(self, parent_id: Optional[str]) -> List[Folder]:
        children = [
            Folder.from_dict(data)
            for data in self._store.get_all_by_index(FOLDERS, "parentId", parent_id)
        ]
        return sorted(children, key=_sort_key)

    def _find_default(self) -> Optional[Folder]:
        for folder in self.children_of(None):
            # Only the protected folder counts; a plain root folder with the
            # same name never takes over the default role
            if (folder.name == self.default_folder_name
                    and not folder.is_deletable and not folder.is_renamable):
                return folder
        return None

    def ensure_default_folder(self) -> Folder:
        """
        Return the default folder, creating it on first use.

        Idempotent: the root is re-read on every call and the folder is only
        added when it is absent.
        """
        default = self._find_default()
        if default is not None:
            return default

        wanted = self.default_folder_name.lower()
        for folder in self.children_of(None):
            if folder.name.lower() == wanted:
                logger.warning(f"Root folder '{folder.name}' ({folder.id}) is not protected and "
                               f"will not be used as the default folder")

        default = Folder(
            id=self._id_factory(),
            name=self.default_folder_name,
            parent_id=None,
            is_deletable=False,
            is_renamable=False,
        )
        self._store.add(FOLDERS, default.to_dict())
        logger.info(f"Created default folder '{default.name}' ({default.id})")
        return default

    def _check_sibling_names(self, name: str, parent_id: Optional[str],
                             exclude_id: Optional[str] = None) -> None:
        wanted = name.lower()
        for sibling in self.children_of(parent_id):
            if sibling.id != exclude_id and sibling.name.lower() == wanted:
                raise FolderNameConflictError(f"A folder named \"{name}\" already exists in this location.")

    @staticmethod
    def _clean_name(name: str) -> str:
        if not isinstance(name, str) or not name.strip():
            raise FolderValidationError("Folder name cannot be empty")
        return name.strip()

    def create(self, name: str, parent_id: Optional[str] = None) -> Folder:
        """
        Create a new, deletable and renamable folder.

        Raises:
            FolderValidationError: If the name is empty
            FolderNotFoundError: If ``parent_id`` does not exist
            FolderNameConflictError: If a sibling already has this name; at the
                root this includes the default folder
        """
        name = self._clean_name(name)
        if parent_id is not None:
            self._require(parent_id)
        else:
            # The default folder reserves its name at the root
            self.ensure_default_folder()
        self._check_sibling_names(name, parent_id)

        try:
            folder = Folder(id=self._id_factory(), name=name, parent_id=parent_id)
        except RecordValidationError as e:
            raise FolderValidationError(str(e)) from e

        self._store.add(FOLDERS, folder.to_dict())
        logger.info(f"Created folder '{folder.name}' ({folder.id})")
        return folder

    def rename(self, folder_id: str, new_name: str) -> Folder:
        """
        Rename a folder.

        Folders that are not renamable are returned unchanged.

        Raises:
            FolderNotFoundError: If the folder does not exist
            FolderValidationError: If the new name is empty
            FolderNameConflictError: If a sibling already has this name; at the
                root this includes the default folder
        """
        folder = self._require(folder_id)
        if not folder.is_renamable:
            logger.info(f"Folder '{folder.name}' is not renamable, ignoring rename")
            return folder

        new_name = self._clean_name(new_name)
        if folder.parent_id is None:
            self.ensure_default_folder()
        self._check_sibling_names(new_name, folder.parent_id, exclude_id=folder.id)

        renamed = folder.renamed(new_name)
        self._store.put(FOLDERS, renamed.to_dict())
        logger.info(f"Renamed folder '{folder.name}' to '{renamed.name}'")
        return renamed

    def delete(self, folder_id: str, prompts: Optional[List[PromptVersion]] = None) -> None:
        """
        Delete a single folder. Subfolders are never deleted along with it.

        Args:
            folder_id: Folder to delete
            prompts: Prompt versions to check the branch against; read from
                the store when omitted

        Raises:
            FolderNotFoundError: If the folder does not exist
            FolderDeletionError: If the folder is protected, has subfolders or
                its branch still holds prompts
        """
        folder = self._require(folder_id)
        if not folder.is_deletable:
            raise FolderDeletionError(f"Folder \"{folder.name}\" cannot be deleted.")
        if self.children_of(folder_id):
            raise FolderDeletionError("Please delete all subfolders before deleting this folder.")

        if prompts is None:
            prompts = [PromptVersion.from_dict(data) for data in self._store.get_all(PROMPTS)]
        if not is_branch_empty(folder_id, prompts, self.get_all()):
            raise FolderDeletionError("Folder is not empty. Please remove or move prompts before deleting.")

        self._store.delete(FOLDERS, folder_id)
        logger.info(f"Deleted folder '{folder.name}' ({folder.id})")

    def hierarchy(self, include_default: bool = False) -> List[FolderNode]:
        """Build the folder tree from a fresh read of the store."""
        folders = self.get_all()
        if not include_default:
            default = self._find_default()
            if default is not None:
                folders = [f for f in folders if f.id != default.id]
        return build_folder_hierarchy(folders)

    def flattened(self, include_default: bool = True) -> List[Folder]:
        return flatten_hierarchy(self.hierarchy(include_default=include_default))
