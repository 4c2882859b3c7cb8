"""
Dataset Import/Export for the Prompt Library

Export reads every prompt version and folder into one snapshot. Import is a
destructive whole-dataset replace: the snapshot is validated completely, then
both collections are cleared and the folders are inserted before the prompts.
The store offers no multi-record transactions, so a storage failure during
insertion leaves a partial dataset; this is reported, never rolled back.
"""

import json
import logging
import os
from datetime import date
from typing import Any, Dict, Optional

from .errors import InvalidSnapshotError, PartialImportError, StorageError
from .folder import validate_folder_structure
from .storage import FOLDERS, PROMPTS, RecordStore, atomic_write
from .validation import parse_snapshot

logger = logging.getLogger(__name__)

EXPORT_FILENAME_TEMPLATE = "prompt-library-backup-{date}.json"


def default_export_filename(on: Optional[date] = None) -> str:
    return EXPORT_FILENAME_TEMPLATE.format(date=(on or date.today()).isoformat())


class DatasetManager:
    """Whole-dataset snapshot and replace operations over a record store."""

    def __init__(self, store: RecordStore, backup_before_import: bool = False):
        self._store = store
        self._backup_before_import = backup_before_import

    def export_all(self) -> Dict[str, Any]:
        """
        Snapshot every prompt version (all versions of all chains) and folder.

        Returns:
            ``{"prompts": [...], "folders": [...]}`` in the export file format
        """
        snapshot = {
            "prompts": self._store.get_all(PROMPTS),
            "folders": self._store.get_all(FOLDERS),
        }
        logger.info(f"Exported {len(snapshot['prompts'])} prompt versions and {len(snapshot['folders'])} folders")
        return snapshot

    def import_all(self, snapshot: Any) -> Dict[str, int]:
        """
        Replace the entire dataset with a snapshot.

        Args:
            snapshot: Decoded snapshot, as produced by export_all()

        Returns:
            Number of folders and prompt versions imported

        Raises:
            InvalidSnapshotError: If the snapshot is malformed; nothing was written
            StorageError: If the dataset could not be cleared at all
            PartialImportError: If insertion failed after the dataset was cleared
        """
        result, folders, prompts = parse_snapshot(snapshot)
        if not result.is_valid:
            logger.warning(f"Rejected import snapshot: {'; '.join(result.errors)}")
            raise InvalidSnapshotError("Invalid file format.", result.errors)

        for warning in result.warnings + validate_folder_structure(folders):
            logger.warning(f"Import snapshot: {warning}")

        if self._backup_before_import:
            backup_path = self._store.backup()
            logger.info(f"Backed up dataset before import: {backup_path}")

        # A failing first clear leaves the dataset untouched
        self._store.clear(PROMPTS)
        try:
            self._store.clear(FOLDERS)
            self._store.add_many(FOLDERS, [folder.to_dict() for folder in folders])
            self._store.add_many(PROMPTS, [prompt.to_dict() for prompt in prompts])
        except StorageError as e:
            logger.error(f"Import failed after the dataset was modified: {e}")
            raise PartialImportError(f"Import failed partway; the dataset is incomplete: {e}") from e

        logger.info(f"Imported {len(folders)} folders and {len(prompts)} prompt versions")
        return {"folders": len(folders), "prompts": len(prompts)}

    def export_to_file(self, export_path: str) -> str:
        """
        Write a snapshot of the dataset to a JSON file.

        Returns:
            Absolute path of the written file

        Raises:
            StorageError: If the file cannot be written
        """
        export_path = os.path.abspath(export_path)
        export_dir = os.path.dirname(export_path)
        try:
            os.makedirs(export_dir, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Export failed: {e}")

        atomic_write(export_path, self.export_all())
        logger.info(f"Exported dataset to: {export_path}")
        return export_path

    def import_from_file(self, import_path: str) -> Dict[str, int]:
        """
        Replace the dataset with the contents of a JSON snapshot file.

        Raises:
            InvalidSnapshotError: If the file cannot be read or decoded
            PartialImportError: See import_all()
        """
        try:
            with open(import_path, 'r', encoding='utf-8') as f:
                snapshot = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise InvalidSnapshotError(f"Failed to read the import file: {e}", [str(e)]) from e
        return self.import_all(snapshot)
