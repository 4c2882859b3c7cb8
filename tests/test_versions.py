"""
Unit tests for version chains: creation, latest resolution, counting, usage
recording and chain deletion.
"""

import pytest
from unittest.mock import patch

from prompt_library.core.errors import ChainIntegrityError, StaleVersionError, StorageError
from prompt_library.core.records import PromptVersion
from prompt_library.core.storage import PROMPTS
from prompt_library.core.versions import (
    PromptContent,
    VersionChainManager,
    latest_of,
    version_count_of,
)


def version(id, original_id, number, title="t"):
    return PromptVersion(id=id, original_id=original_id, version=number, title=title,
                         created_at="2024-01-01T00:00:00+00:00", folder_id="f1")


@pytest.fixture
def manager(store, ids, clock):
    return VersionChainManager(store, id_factory=ids, clock=clock)


class TestCreateVersion:
    """Test new chains and continued chains."""

    def test_first_version_starts_chain(self, manager, store):
        record = manager.create_version(PromptContent(title="Draft", text="Hello", tags=["greeting"]))

        assert record.id == record.original_id
        assert record.version == 1
        assert record.times_used == 0
        assert record.last_used_at is None
        assert store.get(PROMPTS, record.id) == record.to_dict()

    def test_next_version_continues_chain(self, manager):
        first = manager.create_version(PromptContent(title="Draft"))
        second = manager.create_version(PromptContent(title="Final"), previous_version=first)

        assert second.original_id == first.original_id
        assert second.version == first.version + 1
        assert second.id != first.id
        assert second.created_at > first.created_at

    def test_usage_is_not_inherited(self, manager):
        first = manager.create_version(PromptContent(title="Draft"))
        used = manager.record_usage(first)
        second = manager.create_version(PromptContent(title="Final"), previous_version=used)

        assert second.times_used == 0
        assert second.last_used_at is None

    def test_id_collision_is_integrity_error(self, store, clock):
        manager = VersionChainManager(store, id_factory=lambda: "same-id", clock=clock)
        manager.create_version(PromptContent(title="One"))

        with pytest.raises(ChainIntegrityError):
            manager.create_version(PromptContent(title="Two"))

        assert store.count(PROMPTS) == 1

    def test_outdated_predecessor_is_rejected(self, manager, store):
        v1 = manager.create_version(PromptContent(title="Draft"))
        manager.create_version(PromptContent(title="Final"), previous_version=v1)

        with pytest.raises(StaleVersionError):
            manager.create_version(PromptContent(title="Stale edit"), previous_version=v1)

        chain = manager.get_chain(v1.original_id)
        assert [v.version for v in chain] == [2, 1]
        assert manager.get_latest(v1.original_id).title == "Final"
        assert store.count(PROMPTS) == 2

    def test_latest_predecessor_still_accepted(self, manager):
        v1 = manager.create_version(PromptContent(title="Draft"))
        v2 = manager.create_version(PromptContent(title="Final"), previous_version=v1)

        v3 = manager.create_version(PromptContent(title="Final 2"), previous_version=v2)

        assert v3.version == 3


class TestLatestAndCounts:
    """Test derivations over all records."""

    def test_latest_of_picks_highest_version(self):
        records = [version("a1", "a", 1), version("a3", "a", 3), version("a2", "a", 2), version("b1", "b", 1)]

        latest = {r.original_id: r for r in latest_of(records)}

        assert len(latest) == 2
        assert latest["a"].id == "a3"
        assert latest["b"].id == "b1"

    def test_latest_of_tie_breaks_on_greatest_id(self):
        records = [version("x-2", "x", 2), version("x-9", "x", 2), version("x-5", "x", 2)]

        assert latest_of(records)[0].id == "x-9"

    def test_latest_of_empty(self):
        assert latest_of([]) == []

    def test_version_count_of(self):
        records = [version("a1", "a", 1), version("a2", "a", 2), version("b1", "b", 1)]

        assert version_count_of(records) == {"a": 2, "b": 1}

    def test_draft_final_scenario(self, manager):
        draft = manager.create_version(PromptContent(title="Draft"))
        manager.create_version(PromptContent(title="Final"), previous_version=draft)
        records = manager.get_all()

        latest = manager.latest_of(records)

        assert len(latest) == 1
        assert latest[0].version == 2
        assert latest[0].title == "Final"
        assert manager.version_count_of(records) == {draft.original_id: 2}

        manager.delete_chain(draft.original_id)

        assert manager.get_chain(draft.original_id) == []


class TestRecordUsage:
    """Test usage counters always land on the latest version."""

    def test_usage_targets_latest_version(self, manager):
        v1 = manager.create_version(PromptContent(title="v1"))
        v2 = manager.create_version(PromptContent(title="v2"), previous_version=v1)

        updated = manager.record_usage(v1)

        assert updated.id == v2.id
        assert updated.times_used == 1
        assert manager.get_chain(v1.original_id)[-1].times_used == 0

    def test_two_uses_add_two(self, manager, clock):
        v1 = manager.create_version(PromptContent(title="v1"))

        manager.record_usage(v1)
        second = manager.record_usage(v1)

        assert second.times_used == 2
        assert second.last_used_at == clock.current.isoformat()
        assert manager.get_latest(v1.original_id) == second


class TestDeleteChain:
    """Test whole-chain deletion."""

    def test_deletes_every_version_only_of_that_chain(self, manager, store):
        a1 = manager.create_version(PromptContent(title="a"))
        manager.create_version(PromptContent(title="a2"), previous_version=a1)
        b1 = manager.create_version(PromptContent(title="b"))

        assert manager.delete_chain(a1.original_id) == 2
        assert [r["id"] for r in store.get_all(PROMPTS)] == [b1.id]

    def test_unknown_chain_deletes_nothing(self, manager):
        assert manager.delete_chain("nope") == 0

    def test_first_failure_propagates_storage_error(self, manager, store):
        a1 = manager.create_version(PromptContent(title="a"))

        with patch.object(store, "delete", side_effect=StorageError("disk full")):
            with pytest.raises(StorageError) as exc_info:
                manager.delete_chain(a1.original_id)

        assert not isinstance(exc_info.value, ChainIntegrityError)

    def test_partial_failure_is_integrity_error(self, manager, store):
        a1 = manager.create_version(PromptContent(title="a"))
        manager.create_version(PromptContent(title="a2"), previous_version=a1)
        real_delete = store.delete
        calls = []

        def flaky_delete(collection, key):
            calls.append(key)
            if len(calls) > 1:
                raise StorageError("disk full")
            return real_delete(collection, key)

        with patch.object(store, "delete", side_effect=flaky_delete):
            with pytest.raises(ChainIntegrityError):
                manager.delete_chain(a1.original_id)

        assert len(manager.get_chain(a1.original_id)) == 1
