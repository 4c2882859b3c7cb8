"""
Exception hierarchy for the Prompt Library core.

Three families are distinguished:

- Validation errors are raised before any write and leave the store untouched.
- Integrity errors come from the storage layer after a write has started; the
  caller must reload state from the store before trusting derived views.
- Storage availability errors mean the store cannot be opened at all.
"""


class LibraryError(Exception):
    """Base exception for all prompt library operations"""
    pass


class StorageError(LibraryError):
    """Base exception for storage operations"""
    pass


class DuplicateKeyError(StorageError):
    """Raised when add() is called with an id that is already stored"""

    def __init__(self, collection: str, key: str):
        super().__init__(f"Record with id '{key}' already exists in '{collection}'")
        self.collection = collection
        self.key = key


class StorageUnavailableError(StorageError):
    """Raised when a collection file is corrupted or written by a newer storage version"""
    pass


class IntegrityError(LibraryError):
    """Base exception for multi-record writes that failed after they started"""
    pass


class ChainIntegrityError(IntegrityError):
    """Raised on version id collisions or a partially failed chain deletion"""
    pass


class PartialImportError(IntegrityError):
    """Raised when insertion fails after the dataset has already been cleared"""
    pass


class LibraryValidationError(LibraryError):
    """Base exception for rejected input; nothing has been written"""
    pass


class RecordValidationError(LibraryValidationError):
    """Raised when a prompt version or folder record is malformed"""
    pass


class InvalidSnapshotError(LibraryValidationError):
    """Raised when an import snapshot does not have the expected shape"""

    def __init__(self, message: str, errors=None):
        super().__init__(message)
        self.errors = list(errors or [])


class FolderError(LibraryValidationError):
    """Base exception for folder-related operations"""
    pass


class FolderValidationError(FolderError):
    """Exception raised when folder validation fails"""
    pass


class FolderNotFoundError(FolderError):
    """Raised when a folder id does not exist"""
    pass


class FolderNameConflictError(FolderError):
    """Raised when a sibling folder already uses the requested name"""
    pass


class FolderDeletionError(FolderError):
    """Raised when a folder is protected, has subfolders or still holds prompts"""
    pass


class StaleVersionError(LibraryValidationError):
    """Raised when a new version is based on a version that is no longer the latest"""
    pass
