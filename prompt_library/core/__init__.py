"""
Core System Components for the Prompt Library

This package contains the data structures and operations behind the library:

- records: PromptVersion and Folder record types
- storage: Persistent JSON record store with secondary indices
- versions: Version chain creation, latest-version resolution and chain deletion
- folder: Folder hierarchy building and folder mutations
- dataset: Whole-dataset export and destructive import
- validation: Import snapshot validation
- query: Filtering, sorting and pagination of prompts
- templates: Template variable extraction and filling
- library: Session object tying the above together
"""

from .errors import (
    LibraryError,
    StorageError,
    DuplicateKeyError,
    StorageUnavailableError,
    IntegrityError,
    ChainIntegrityError,
    PartialImportError,
    LibraryValidationError,
    RecordValidationError,
    StaleVersionError,
    InvalidSnapshotError,
    FolderError,
    FolderValidationError,
    FolderNotFoundError,
    FolderNameConflictError,
    FolderDeletionError,
)

from .records import PromptVersion, Folder, UNASSIGNED_FOLDER_ID, is_unassigned

from .storage import RecordStore, PROMPTS, FOLDERS, create_store

from .versions import PromptContent, VersionChainManager, latest_of, version_count_of

from .folder import (
    DEFAULT_FOLDER_NAME,
    FolderNode,
    FolderHierarchyManager,
    build_folder_hierarchy,
    flatten_hierarchy,
    get_folder_ids_in_branch,
    is_branch_empty,
    validate_folder_structure,
)

from .dataset import DatasetManager

from .validation import ValidationResult, parse_snapshot, validate_snapshot_shape

from .query import (
    ALL_PROMPTS,
    PROMPTS_PER_PAGE,
    Page,
    PromptQuery,
    SortOption,
    filter_prompts,
    sort_prompts,
    paginate,
)

from .templates import extract_variables, fill_template

from .library import Library, LibraryState

__all__ = [
    # Exceptions
    "LibraryError",
    "StorageError",
    "DuplicateKeyError",
    "StorageUnavailableError",
    "IntegrityError",
    "ChainIntegrityError",
    "PartialImportError",
    "LibraryValidationError",
    "RecordValidationError",
    "StaleVersionError",
    "InvalidSnapshotError",
    "FolderError",
    "FolderValidationError",
    "FolderNotFoundError",
    "FolderNameConflictError",
    "FolderDeletionError",

    # Records
    "PromptVersion",
    "Folder",
    "UNASSIGNED_FOLDER_ID",
    "is_unassigned",

    # Storage
    "RecordStore",
    "PROMPTS",
    "FOLDERS",
    "create_store",

    # Version chains
    "PromptContent",
    "VersionChainManager",
    "latest_of",
    "version_count_of",

    # Folders
    "DEFAULT_FOLDER_NAME",
    "FolderNode",
    "FolderHierarchyManager",
    "build_folder_hierarchy",
    "flatten_hierarchy",
    "get_folder_ids_in_branch",
    "is_branch_empty",
    "validate_folder_structure",

    # Import/export
    "DatasetManager",
    "ValidationResult",
    "parse_snapshot",
    "validate_snapshot_shape",

    # Queries
    "ALL_PROMPTS",
    "PROMPTS_PER_PAGE",
    "Page",
    "PromptQuery",
    "SortOption",
    "filter_prompts",
    "sort_prompts",
    "paginate",

    # Templates
    "extract_variables",
    "fill_template",

    # Session
    "Library",
    "LibraryState",
]
