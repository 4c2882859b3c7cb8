"""
Test configuration and fixtures for Prompt Library tests.
"""
import itertools
from datetime import datetime, timedelta, timezone

import pytest

from prompt_library.core.library import Library
from prompt_library.core.storage import RecordStore


class SequentialIds:
    """Deterministic id factory: id-0001, id-0002, ..."""

    def __init__(self, prefix: str = "id"):
        self._counter = itertools.count(1)
        self._prefix = prefix

    def __call__(self) -> str:
        return f"{self._prefix}-{next(self._counter):04d}"


class SteppingClock:
    """Deterministic clock advancing one minute per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> str:
        self.current += timedelta(minutes=1)
        return self.current.isoformat()


@pytest.fixture
def storage_dir(tmp_path):
    """Fixture providing a temporary storage directory."""
    return tmp_path / "library"


@pytest.fixture
def store(storage_dir):
    """Fixture providing an empty record store."""
    return RecordStore(str(storage_dir))


@pytest.fixture
def ids():
    return SequentialIds()


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def library(store, ids, clock):
    """Fixture providing a Library session over an empty store."""
    return Library(store, id_factory=ids, clock=clock)
