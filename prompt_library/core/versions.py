"""
Version Chains for the Prompt Library

Every edit of a prompt produces a new PromptVersion record; the records sharing
an ``original_id`` form a chain. This module creates versions, resolves the
latest version of each chain, counts versions and deletes whole chains.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from .errors import ChainIntegrityError, DuplicateKeyError, StaleVersionError, StorageError
from .records import PromptVersion, UNASSIGNED_FOLDER_ID
from .storage import PROMPTS, RecordStore

logger = logging.getLogger(__name__)


def generate_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PromptContent:
    """Caller-editable fields of a prompt version"""
    title: str
    description: str = ""
    text: str = ""
    tags: List[str] = field(default_factory=list)
    folder_id: Optional[str] = UNASSIGNED_FOLDER_ID


def _chain_rank(record: PromptVersion):
    return (record.version, record.id)


def latest_of(records: Iterable[PromptVersion]) -> List[PromptVersion]:
    """
    Return one record per chain: the one with the highest version.

    Versions are unique within a chain. If stored data violates that, the
    record with the lexicographically greatest id wins the tie.

    Args:
        records: Any collection of prompt versions

    Returns:
        Latest versions, in order of first appearance of each chain
    """
    latest: Dict[str, PromptVersion] = {}
    for record in records:
        current = latest.get(record.original_id)
        if current is None or _chain_rank(record) > _chain_rank(current):
            latest[record.original_id] = record
    return list(latest.values())


def version_count_of(records: Iterable[PromptVersion]) -> Dict[str, int]:
    """Return the number of versions per ``original_id``."""
    counts: Dict[str, int] = {}
    for record in records:
        counts[record.original_id] = counts.get(record.original_id, 0) + 1
    return counts


class VersionChainManager:
    """
    Creates and deletes prompt versions in a record store.

    The id factory and clock are injectable so tests can be deterministic.
    """

    def __init__(self, store: RecordStore,
                 id_factory: Callable[[], str] = generate_id,
                 clock: Callable[[], str] = utc_now):
        self._store = store
        self._id_factory = id_factory
        self._clock = clock

    latest_of = staticmethod(latest_of)
    version_count_of = staticmethod(version_count_of)

    def get_all(self) -> List[PromptVersion]:
        return [PromptVersion.from_dict(data) for data in self._store.get_all(PROMPTS)]

    def get_chain(self, original_id: str) -> List[PromptVersion]:
        """
        Get every version of a chain, newest first.

        Args:
            original_id: Chain identifier

        Returns:
            List of versions sorted by descending version number
        """
        versions = [
            PromptVersion.from_dict(data)
            for data in self._store.get_all_by_index(PROMPTS, "originalPromptId", original_id)
        ]
        return sorted(versions, key=_chain_rank, reverse=True)

    def get_latest(self, original_id: str) -> Optional[PromptVersion]:
        chain = self.get_chain(original_id)
        return chain[0] if chain else None

    def _require_latest(self, previous_version: PromptVersion) -> None:
        newer = [
            data["version"]
            for data in self._store.get_all_by_index(PROMPTS, "originalPromptId", previous_version.original_id)
            if data["version"] > previous_version.version
        ]
        if newer:
            raise StaleVersionError(
                f"Version {previous_version.version} of prompt {previous_version.original_id} is outdated; "
                f"version {max(newer)} already exists"
            )

    def create_version(self, content: PromptContent,
                       previous_version: Optional[PromptVersion] = None) -> PromptVersion:
        """
        Create and store a new prompt version.

        Without ``previous_version`` a new chain is started (``id ==
        original_id``, version 1). Otherwise the new record continues the
        predecessor's chain with the next version number.

        Raises:
            StaleVersionError: If ``previous_version`` is no longer the latest
                version of its chain; nothing is written
            ChainIntegrityError: If the generated id already exists
        """
        if previous_version is not None:
            self._require_latest(previous_version)

        new_id = self._id_factory()
        if previous_version is not None:
            original_id = previous_version.original_id
            version = previous_version.version + 1
        else:
            original_id = new_id
            version = 1

        record = PromptVersion(
            id=new_id,
            original_id=original_id,
            version=version,
            title=content.title,
            description=content.description,
            text=content.text,
            tags=content.tags,
            folder_id=content.folder_id,
            created_at=self._clock(),
            last_used_at=None,
            times_used=0,
        )

        try:
            self._store.add(PROMPTS, record.to_dict())
        except DuplicateKeyError as e:
            logger.error(f"Version id collision for chain {original_id}: {e}")
            raise ChainIntegrityError(f"Generated version id '{new_id}' is already in use") from e

        logger.info(f"Created version {version} of prompt '{record.title}' (chain {original_id})")
        return record

    def record_usage(self, record: PromptVersion) -> PromptVersion:
        """
        Count one use of a prompt.

        Usage is always attributed to the newest version of the record's
        chain, even if an older version was used.

        Returns:
            The updated latest version
        """
        latest = self.get_latest(record.original_id) or record
        updated = latest.copy(times_used=latest.times_used + 1, last_used_at=self._clock())
        self._store.put(PROMPTS, updated.to_dict())
        logger.debug(f"Recorded usage of chain {updated.original_id} (times used: {updated.times_used})")
        return updated

    def delete_chain(self, original_id: str) -> int:
        """
        Delete every version of a chain.

        Returns:
            Number of versions deleted

        Raises:
            StorageError: If the first deletion fails (nothing was removed)
            ChainIntegrityError: If a deletion fails after others succeeded;
                the chain is then in an indeterminate state and callers must
                reload from the store
        """
        versions = self._store.get_all_by_index(PROMPTS, "originalPromptId", original_id)
        deleted = 0
        for data in versions:
            try:
                self._store.delete(PROMPTS, data["id"])
            except StorageError as e:
                if deleted == 0:
                    raise
                logger.error(f"Chain {original_id} partially deleted ({deleted}/{len(versions)}): {e}")
                raise ChainIntegrityError(
                    f"Deletion of prompt chain {original_id} stopped after {deleted} of "
                    f"{len(versions)} versions; reload before continuing"
                ) from e
            deleted += 1

        logger.info(f"Deleted prompt chain {original_id} ({deleted} versions)")
        return deleted
