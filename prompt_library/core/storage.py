"""
Persistent JSON Record Store for the Prompt Library

This module provides durable key-value storage for the two record collections
(prompt versions and folders), each keyed by ``id`` and carrying secondary
indices so that "all versions of a chain" and "all children of a folder" are
answered without a full scan.

Key Features:
- Thread-safe access through a re-entrant lock; every call is atomic with
  respect to the collection it targets
- One JSON file per collection, rewritten with an atomic temp-file-and-move
- In-memory secondary indices rebuilt on open and maintained on every write
- Timestamped backups of both collection files
- Storage version check on open: newer files are refused, unversioned files
  are defaulted to the current version
"""

import os
import json
import threading
import shutil
import tempfile
import logging
import copy
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from .errors import DuplicateKeyError, StorageError, StorageUnavailableError

logger = logging.getLogger(__name__)

PROMPTS = "prompts"
FOLDERS = "folders"

# Secondary indices per collection; the export file format relies on these names.
COLLECTION_INDEXES: Dict[str, tuple] = {
    PROMPTS: ("originalPromptId", "folderId", "version", "createdAt", "lastUsedAt", "title"),
    FOLDERS: ("parentId", "name"),
}

KEY_PATH = "id"


def atomic_write(filepath: str, data: Dict[str, Any]) -> None:
    """
    Perform atomic file write using temporary file and move operation.

    Args:
        filepath: Target file path
        data: Data to write as JSON

    Raises:
        StorageError: If write operation fails
    """
    # Temporary file in the target directory keeps the move on one filesystem
    temp_dir = os.path.dirname(filepath)
    temp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode='w',
            encoding='utf-8',
            dir=temp_dir,
            delete=False,
            suffix='.tmp'
        ) as temp_file:
            temp_path = temp_file.name
            json.dump(data, temp_file, indent=2, ensure_ascii=False)

        shutil.move(temp_path, filepath)

    except (OSError, TypeError, ValueError) as e:
        if temp_path and os.path.exists(temp_path):
            try:
                os.remove(temp_path)
            except OSError:
                logger.warning(f"Could not remove temporary file {temp_path}")
        raise StorageError(f"Atomic write failed for {filepath}: {e}")


class _Collection:
    """In-memory image of one collection file plus its secondary indices."""

    def __init__(self, name: str, index_fields: tuple):
        self.name = name
        self.index_fields = index_fields
        self.records: Dict[str, Dict[str, Any]] = {}
        self.indexes: Dict[str, Dict[Any, Set[str]]] = {
            field: defaultdict(set) for field in index_fields
        }
        self.created: Optional[str] = None

    def _index_value(self, record: Dict[str, Any], field: str):
        value = record.get(field)
        # Unhashable values cannot be indexed; they are still stored
        try:
            hash(value)
        except TypeError:
            return None
        return value

    def insert(self, record: Dict[str, Any]) -> None:
        key = record[KEY_PATH]
        if key in self.records:
            self.remove(key)
        self.records[key] = record
        for field in self.index_fields:
            self.indexes[field][self._index_value(record, field)].add(key)

    def remove(self, key: str) -> Optional[Dict[str, Any]]:
        record = self.records.pop(key, None)
        if record is None:
            return None
        for field in self.index_fields:
            value = self._index_value(record, field)
            bucket = self.indexes[field].get(value)
            if bucket is not None:
                bucket.discard(key)
                if not bucket:
                    del self.indexes[field][value]
        return record

    def reset(self) -> None:
        self.records.clear()
        for field in self.index_fields:
            self.indexes[field].clear()


class RecordStore:
    """
    Durable record store with one JSON file per collection.

    Records are plain JSON dictionaries keyed by ``id``. The store copies
    records on the way in and out, so callers never hold references into
    stored state.

    Provides:
    - add / put / add_many / put_many / get / get_all / get_all_by_index / delete / clear / count
    - backup of both collection files
    """

    STORAGE_VERSION = 1
    BACKUP_DIR = "backups"

    def __init__(self, storage_path: str):
        """
        Open (or create) the store in the given directory.

        Args:
            storage_path: Directory holding the collection files

        Raises:
            StorageUnavailableError: If a collection file is corrupted or was
                written by a newer storage version
            StorageError: If the storage directory cannot be created
        """
        self._lock = threading.RLock()
        self._storage_dir = os.path.abspath(storage_path)
        self._backup_dir = os.path.join(self._storage_dir, self.BACKUP_DIR)
        self._ensure_directories()

        self._collections: Dict[str, _Collection] = {}
        for name, index_fields in COLLECTION_INDEXES.items():
            self._collections[name] = self._open_collection(name, index_fields)

    @property
    def storage_dir(self) -> str:
        return self._storage_dir

    def _ensure_directories(self) -> None:
        """Create storage directories if they don't exist"""
        try:
            os.makedirs(self._storage_dir, exist_ok=True)
            os.makedirs(self._backup_dir, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create storage directories: {e}")

    def _collection_file(self, name: str) -> str:
        return os.path.join(self._storage_dir, f"{name}.json")

    def _open_collection(self, name: str, index_fields: tuple) -> _Collection:
        collection = _Collection(name, index_fields)
        path = self._collection_file(name)

        if not os.path.exists(path):
            logger.info(f"No '{name}' collection at {path}, starting empty")
            return collection

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageUnavailableError(f"Cannot read collection '{name}' from {path}: {e}")

        if not isinstance(data, dict) or not isinstance(data.get("records"), list):
            raise StorageUnavailableError(f"Collection file {path} is not a valid '{name}' collection")

        version = data.get("version")
        if version is None:
            logger.warning(f"Collection '{name}' has no storage version, assuming {self.STORAGE_VERSION}")
        elif not isinstance(version, int) or version > self.STORAGE_VERSION:
            raise StorageUnavailableError(
                f"Collection '{name}' was written by storage version {version}, "
                f"this library supports up to {self.STORAGE_VERSION}. "
                f"Close other applications using {self._storage_dir} and upgrade."
            )

        for record in data["records"]:
            if not isinstance(record, dict) or not isinstance(record.get(KEY_PATH), str):
                raise StorageUnavailableError(f"Collection '{name}' contains a record without a string id")
            collection.insert(record)

        collection.created = data.get("created")
        logger.debug(f"Opened collection '{name}' with {len(collection.records)} records")
        return collection

    def _persist(self, collection: _Collection) -> None:
        now = datetime.now(timezone.utc).isoformat()
        if collection.created is None:
            collection.created = now
        atomic_write(self._collection_file(collection.name), {
            "version": self.STORAGE_VERSION,
            "created": collection.created,
            "updated": now,
            "records": list(collection.records.values()),
        })

    def _get_collection(self, name: str) -> _Collection:
        try:
            return self._collections[name]
        except KeyError:
            raise StorageError(f"Unknown collection '{name}'")

    def _write(self, collection: _Collection, record: Dict[str, Any]) -> None:
        # Keep memory and disk in step: roll the in-memory image back if the
        # file cannot be written.
        key = record[KEY_PATH]
        previous = collection.records.get(key)
        collection.insert(copy.deepcopy(record))
        try:
            self._persist(collection)
        except StorageError:
            collection.remove(key)
            if previous is not None:
                collection.insert(previous)
            raise

    @staticmethod
    def _key_of(record: Dict[str, Any]) -> str:
        if not isinstance(record, dict):
            raise StorageError("Records must be dictionaries")
        key = record.get(KEY_PATH)
        if not isinstance(key, str) or not key:
            raise StorageError(f"Record is missing a string '{KEY_PATH}'")
        return key

    def add(self, collection: str, record: Dict[str, Any]) -> str:
        """
        Insert a new record.

        Returns:
            The record's id

        Raises:
            DuplicateKeyError: If a record with the same id already exists
        """
        key = self._key_of(record)
        with self._lock:
            target = self._get_collection(collection)
            if key in target.records:
                raise DuplicateKeyError(collection, key)
            self._write(target, record)
        return key

    def put(self, collection: str, record: Dict[str, Any]) -> str:
        """Insert or replace a record. Returns the record's id."""
        key = self._key_of(record)
        with self._lock:
            self._write(self._get_collection(collection), record)
        return key

    def _write_many(self, collection: _Collection, records: List[Dict[str, Any]]) -> None:
        previous = {}
        for record in records:
            key = record[KEY_PATH]
            if key not in previous:
                previous[key] = collection.records.get(key)
            collection.insert(copy.deepcopy(record))
        try:
            self._persist(collection)
        except StorageError:
            for key, record in previous.items():
                collection.remove(key)
                if record is not None:
                    collection.insert(record)
            raise

    def add_many(self, collection: str, records: List[Dict[str, Any]]) -> int:
        """
        Insert a batch of new records with a single write of the collection file.

        Either every record is stored or none is.

        Returns:
            Number of records inserted

        Raises:
            DuplicateKeyError: If any id is already stored or repeats within
                the batch; nothing is written
        """
        keys = [self._key_of(record) for record in records]
        with self._lock:
            target = self._get_collection(collection)
            seen = set()
            for key in keys:
                if key in target.records or key in seen:
                    raise DuplicateKeyError(collection, key)
                seen.add(key)
            if records:
                self._write_many(target, records)
        return len(records)

    def put_many(self, collection: str, records: List[Dict[str, Any]]) -> int:
        """Insert or replace a batch of records with a single write. Returns the count."""
        for record in records:
            self._key_of(record)
        with self._lock:
            target = self._get_collection(collection)
            if records:
                self._write_many(target, records)
        return len(records)

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._get_collection(collection).records.get(key)
            return copy.deepcopy(record) if record is not None else None

    def get_all(self, collection: str) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(list(self._get_collection(collection).records.values()))

    def get_all_by_index(self, collection: str, index: str, value: Any) -> List[Dict[str, Any]]:
        """
        Fetch every record whose indexed field equals ``value``.

        Raises:
            StorageError: If the collection has no such index
        """
        with self._lock:
            target = self._get_collection(collection)
            if index not in target.indexes:
                raise StorageError(f"Collection '{collection}' has no index '{index}'")
            keys = target.indexes[index].get(value, ())
            return [copy.deepcopy(target.records[key]) for key in sorted(keys)]

    def delete(self, collection: str, key: str) -> bool:
        """
        Delete a record by id.

        Returns:
            True if a record was removed, False if none existed
        """
        with self._lock:
            target = self._get_collection(collection)
            removed = target.remove(key)
            if removed is None:
                return False
            try:
                self._persist(target)
            except StorageError:
                target.insert(removed)
                raise
            return True

    def clear(self, collection: str) -> None:
        with self._lock:
            target = self._get_collection(collection)
            previous = list(target.records.values())
            target.reset()
            try:
                self._persist(target)
            except StorageError:
                for record in previous:
                    target.insert(record)
                raise
        logger.info(f"Cleared collection '{collection}'")

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._get_collection(collection).records)

    def backup(self) -> str:
        """
        Create a timestamped copy of every collection file that exists.

        Returns:
            Path to the created backup directory

        Raises:
            StorageError: If backup creation fails
        """
        with self._lock:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
            backup_path = os.path.join(self._backup_dir, f"backup_{timestamp}")
            try:
                os.makedirs(backup_path, exist_ok=True)
                for name in self._collections:
                    source = self._collection_file(name)
                    if os.path.exists(source):
                        shutil.copy2(source, os.path.join(backup_path, os.path.basename(source)))
            except OSError as e:
                raise StorageError(f"Backup creation failed: {e}")

        logger.info(f"Created storage backup: {backup_path}")
        return backup_path

    def get_storage_info(self) -> Dict[str, Any]:
        """Summarise the store location and record counts."""
        with self._lock:
            info = {
                "storage_directory": self._storage_dir,
                "backup_directory": self._backup_dir,
                "version": self.STORAGE_VERSION,
            }
            for name, collection in self._collections.items():
                info[f"{name}_count"] = len(collection.records)

        backups = []
        if os.path.isdir(self._backup_dir):
            backups = sorted(
                (entry for entry in os.listdir(self._backup_dir) if entry.startswith("backup_")),
                reverse=True,
            )
        info["backups"] = backups
        return info


def create_store(storage_path: Optional[str] = None) -> RecordStore:
    """
    Factory function to create a RecordStore.

    Args:
        storage_path: Optional custom storage directory. If None, uses the
            configured storage directory.

    Returns:
        Opened RecordStore instance
    """
    if storage_path is None:
        from ..config import load_config
        storage_path = load_config().storage_dir
    return RecordStore(storage_path)
