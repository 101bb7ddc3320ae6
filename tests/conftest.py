from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from quicklinks.eventlog import EventLog
from quicklinks.main import app, get_event_log, get_registry
from quicklinks.registry import LinkRegistry
from quicklinks.storage import MemorySnapshotStore


class StepClock:
    """Each call returns a time one second after the previous one."""

    def __init__(self, start=datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


class BrokenStore(MemorySnapshotStore):
    """Loads fine, refuses every write."""

    def save(self, key, value):
        raise OSError("disk full")

    def delete(self, key):
        raise OSError("disk full")


@pytest.fixture
def store():
    return MemorySnapshotStore()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def event_log(store, clock):
    return EventLog(store, clock=clock)


@pytest.fixture
def registry(store, event_log, clock):
    return LinkRegistry(store, event_log, clock=clock)


@pytest.fixture
def client(registry, event_log):
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_event_log] = lambda: event_log
    yield TestClient(app)
    app.dependency_overrides.clear()


def actions(event_log):
    return [entry.action for entry in event_log.get_all()]
