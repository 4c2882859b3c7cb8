"""
Snapshot Validation for the Prompt Library

Checks an import snapshot before anything is written:

- Shape validation against ``snapshot-schema.json`` with jsonschema
- Record-level parsing of every folder and prompt version
- Duplicate id detection within the snapshot itself
- Version chain consistency checks (reported as warnings)
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

import jsonschema

from .errors import RecordValidationError
from .records import Folder, PromptVersion

logger = logging.getLogger(__name__)

SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "snapshot-schema.json")

_schema_cache: Dict[str, Any] = {}


def _load_schema() -> Dict[str, Any]:
    if "snapshot" not in _schema_cache:
        with open(SCHEMA_PATH, "r", encoding="utf-8") as schema_file:
            _schema_cache["snapshot"] = json.load(schema_file)
    return _schema_cache["snapshot"]


@dataclass
class ValidationResult:
    """
    Result container for validation operations.

    Provides structured feedback about validation success/failure
    with detailed error and warning messages.
    """
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        """Add an error message and mark result as invalid"""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        """Add a warning message"""
        self.warnings.append(message)

    def merge(self, other: 'ValidationResult') -> None:
        """Merge another validation result into this one"""
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        if not other.is_valid:
            self.is_valid = False


def validate_snapshot_shape(snapshot: Any) -> ValidationResult:
    """
    Validate that a snapshot has ``prompts`` and ``folders`` lists of records.

    Example:
        >>> validate_snapshot_shape({"prompts": [], "folders": {}}).is_valid
        False
    """
    result = ValidationResult(is_valid=True)
    validator = jsonschema.Draft7Validator(_load_schema())
    for error in sorted(validator.iter_errors(snapshot), key=lambda e: list(e.path)):
        location = "/".join(str(part) for part in error.path) or "<root>"
        result.add_error(f"{location}: {error.message}")
    return result


def _check_unique_ids(kind: str, records: List[Any], result: ValidationResult) -> None:
    seen = set()
    for record in records:
        if record.id in seen:
            result.add_error(f"Duplicate {kind} id '{record.id}' in snapshot")
        seen.add(record.id)


def validate_version_chains(prompts: List[PromptVersion]) -> ValidationResult:
    """
    Check version-chain invariants.

    Duplicate version numbers within a chain and a first version whose id is
    not the chain id are reported as warnings; such data still loads.
    """
    result = ValidationResult(is_valid=True)
    chains: Dict[str, List[PromptVersion]] = {}
    for prompt in prompts:
        chains.setdefault(prompt.original_id, []).append(prompt)

    for original_id, versions in chains.items():
        numbers = [v.version for v in versions]
        if len(numbers) != len(set(numbers)):
            result.add_warning(f"Chain {original_id} has duplicate version numbers")
        for v in versions:
            if v.version == 1 and v.id != original_id:
                result.add_warning(f"Chain {original_id} has a first version with id {v.id}")
    return result


def parse_snapshot(snapshot: Any) -> Tuple[ValidationResult, List[Folder], List[PromptVersion]]:
    """
    Validate a snapshot and parse its records.

    Args:
        snapshot: Decoded JSON snapshot

    Returns:
        Tuple of (validation result, parsed folders, parsed prompt versions).
        The lists are empty when the result is invalid.
    """
    result = validate_snapshot_shape(snapshot)
    if not result.is_valid:
        return result, [], []

    folders: List[Folder] = []
    prompts: List[PromptVersion] = []

    for index, data in enumerate(snapshot["folders"]):
        try:
            folders.append(Folder.from_dict(data))
        except RecordValidationError as e:
            result.add_error(f"folders/{index}: {e}")

    for index, data in enumerate(snapshot["prompts"]):
        try:
            prompts.append(PromptVersion.from_dict(data))
        except RecordValidationError as e:
            result.add_error(f"prompts/{index}: {e}")

    _check_unique_ids("folder", folders, result)
    _check_unique_ids("prompt", prompts, result)

    if not result.is_valid:
        return result, [], []

    result.merge(validate_version_chains(prompts))
    return result, folders, prompts
