"""
Record Model for the Prompt Library

Defines the two persisted record types:

- PromptVersion: one immutable-once-created version of a prompt. Versions of the
  same prompt form a chain sharing ``original_id``.
- Folder: a node in the folder forest.

Both convert to and from the JSON dictionaries kept by the record store. The
JSON keys (``originalPromptId``, ``promptText``, ``parentId`` ...) are the export
file format and must not change.
"""

import copy
from typing import Any, Dict, List, Optional

from .errors import RecordValidationError


# Persisted folderId of a prompt that has not been assigned to a folder yet.
UNASSIGNED_FOLDER_ID = None

_UNASSIGNED_PLACEHOLDERS = ("", "None", "null", "undefined")


def is_unassigned(folder_id: Optional[str]) -> bool:
    """Return True if a persisted folderId means "no folder"."""
    return folder_id is UNASSIGNED_FOLDER_ID or folder_id in _UNASSIGNED_PLACEHOLDERS


def _require_string(data: Dict[str, Any], key: str, allow_empty: bool = True) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise RecordValidationError(f"Field '{key}' must be a string")
    if not allow_empty and not value.strip():
        raise RecordValidationError(f"Field '{key}' cannot be empty")
    return value


def _optional_string(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise RecordValidationError(f"Field '{key}' must be a string or null")
    return value


def _require_int(data: Dict[str, Any], key: str, minimum: int) -> int:
    value = data.get(key)
    # bool is an int subclass; a JSON true is not a version number
    if isinstance(value, bool) or not isinstance(value, int):
        raise RecordValidationError(f"Field '{key}' must be an integer")
    if value < minimum:
        raise RecordValidationError(f"Field '{key}' must be >= {minimum}")
    return value


def _optional_bool(data: Dict[str, Any], key: str, default: bool) -> bool:
    if key not in data:
        return default
    value = data[key]
    if not isinstance(value, bool):
        raise RecordValidationError(f"Field '{key}' must be a boolean")
    return value


class PromptVersion:
    """
    A single version of a prompt.

    Only ``last_used_at`` and ``times_used`` change after creation, and only
    through usage recording. Every other field is write-once.
    """

    def __init__(self,
                 id: str,
                 original_id: str,
                 version: int,
                 title: str,
                 description: str = "",
                 text: str = "",
                 tags: Optional[List[str]] = None,
                 folder_id: Optional[str] = UNASSIGNED_FOLDER_ID,
                 created_at: str = "",
                 last_used_at: Optional[str] = None,
                 times_used: int = 0):
        self.id = id
        self.original_id = original_id
        self.version = version
        self.title = title
        self.description = description
        self.text = text
        self.tags = list(tags) if tags else []
        self.folder_id = folder_id
        self.created_at = created_at
        self.last_used_at = last_used_at
        self.times_used = times_used

    @property
    def is_first_version(self) -> bool:
        return self.version == 1

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to the persisted/exported dictionary form.

        Returns:
            Dictionary using the export file's camelCase keys
        """
        return {
            "id": self.id,
            "originalPromptId": self.original_id,
            "version": self.version,
            "title": self.title,
            "description": self.description,
            "promptText": self.text,
            "tags": list(self.tags),
            "folderId": self.folder_id,
            "createdAt": self.created_at,
            "lastUsedAt": self.last_used_at,
            "timesUsed": self.times_used,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PromptVersion':
        """
        Create a PromptVersion from a persisted dictionary.

        Args:
            data: Dictionary in the export file format

        Returns:
            PromptVersion instance

        Raises:
            RecordValidationError: If required fields are missing or mistyped
        """
        if not isinstance(data, dict):
            raise RecordValidationError("Prompt data must be a dictionary")

        tags = data.get("tags", [])
        if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
            raise RecordValidationError("Field 'tags' must be a list of strings")

        return cls(
            id=_require_string(data, "id", allow_empty=False),
            original_id=_require_string(data, "originalPromptId", allow_empty=False),
            version=_require_int(data, "version", minimum=1),
            title=_require_string(data, "title"),
            description=data.get("description") or "",
            text=data.get("promptText") or "",
            tags=tags,
            folder_id=_optional_string(data, "folderId"),
            created_at=_require_string(data, "createdAt"),
            last_used_at=_optional_string(data, "lastUsedAt"),
            times_used=_require_int(data, "timesUsed", minimum=0) if "timesUsed" in data else 0,
        )

    def copy(self, **changes) -> 'PromptVersion':
        """Return a copy of this record with the given attributes replaced."""
        clone = copy.deepcopy(self)
        for name, value in changes.items():
            if not hasattr(clone, name):
                raise AttributeError(f"PromptVersion has no field '{name}'")
            setattr(clone, name, value)
        return clone

    def __eq__(self, other) -> bool:
        if not isinstance(other, PromptVersion):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return (f"PromptVersion(id='{self.id}', original_id='{self.original_id}', "
                f"version={self.version}, title='{self.title}')")


class Folder:
    """
    A folder in the hierarchy.

    ``parent_id`` of None places the folder at the root. The default folder is
    the only one created with both ``is_deletable`` and ``is_renamable`` False.
    """

    def __init__(self, id: str, name: str, parent_id: Optional[str] = None,
                 is_deletable: bool = True, is_renamable: bool = True):
        if not isinstance(id, str) or not id.strip():
            raise RecordValidationError("Folder ID must be a non-empty string")
        if not isinstance(name, str):
            raise RecordValidationError("Folder name must be a string")

        self.id = id
        self.name = name.strip()
        if not self.name:
            raise RecordValidationError("Folder name cannot be empty")

        if parent_id is not None and (not isinstance(parent_id, str) or not parent_id.strip()):
            raise RecordValidationError("Parent ID must be a valid string")
        self.parent_id = parent_id
        self.is_deletable = bool(is_deletable)
        self.is_renamable = bool(is_renamable)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "parentId": self.parent_id,
            "isDeletable": self.is_deletable,
            "isRenamable": self.is_renamable,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Folder':
        """
        Create a Folder from a persisted dictionary.

        Transient hierarchy keys (``children``, ``level``) are ignored if present.

        Raises:
            RecordValidationError: If data is invalid or missing required fields
        """
        if not isinstance(data, dict):
            raise RecordValidationError("Folder data must be a dictionary")

        return cls(
            id=data.get("id"),
            name=data.get("name"),
            parent_id=data.get("parentId"),
            is_deletable=_optional_bool(data, "isDeletable", True),
            is_renamable=_optional_bool(data, "isRenamable", True),
        )

    def renamed(self, new_name: str) -> 'Folder':
        return Folder(self.id, new_name, self.parent_id, self.is_deletable, self.is_renamable)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Folder):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash(self.id)

    def __str__(self) -> str:
        parent_info = f" (parent: {self.parent_id})" if self.parent_id else " (root)"
        return f"Folder({self.name}{parent_info})"

    def __repr__(self) -> str:
        return f"Folder(id='{self.id}', name='{self.name}', parent_id='{self.parent_id}')"
