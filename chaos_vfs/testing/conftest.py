"""
Chaos VFS Test Configuration and Fixtures

Shared fixtures for the repository, chaos managers, worker and Flask API.
Every fixture owns its own in-memory object store, random source and clock,
so no test sees another test's state.
"""

import random
from datetime import datetime, timedelta, timezone

import pytest

from chaos_vfs.storage import MemoryObjectStore


# =============================================================================
# PYTEST MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "statistical: sampling tests with tolerance bands")
    config.addinivalue_line("markers", "api: exercises the Flask app through the test client")


# =============================================================================
# KEY CONSTANTS
# =============================================================================

API_KEY = "test-key"
START_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# DETERMINISTIC RANDOMNESS AND TIME
# =============================================================================

class FixedRandom(random.Random):
    """
    random() always returns the same value.

    0.0 makes every chance branch fire (and choice() pick the first option);
    0.99 makes every chance below 0.99 miss.
    """

    def __init__(self, value: float):
        super().__init__(0)
        self.value = value

    def random(self):
        return self.value


class ScriptedRandom(random.Random):
    """random() replays a script, then falls back to a default value."""

    def __init__(self, values, default: float = 0.99):
        super().__init__(0)
        self.values = list(values)
        self.default = default

    def random(self):
        if self.values:
            return self.values.pop(0)
        return self.default


class FakeClock:
    """Mutable clock; call it for 'now', advance() to travel forward."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


# =============================================================================
# STORAGE FIXTURES
# =============================================================================

@pytest.fixture
def store():
    return MemoryObjectStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository(store):
    from chaos_vfs.metadata import MetadataRepository
    return MetadataRepository(store)


@pytest.fixture
def escalation(store, clock):
    from chaos_vfs.escalation import EscalationController
    return EscalationController(store, clock=clock)


def set_level(store, level: int, clock=None):
    """Persist an escalation record sitting exactly at the start of a level."""
    from chaos_vfs.escalation import EscalationController
    return EscalationController(store, clock=clock).record_interaction(level * 10)


def make_entry(entry_id="file-1", name="report.txt", parent_id=None, folder=False,
               created_at=START_TIME, size=0, chaos=None):
    from chaos_vfs.datashapes import EntryType, FileEntry, to_iso
    return FileEntry(
        id=entry_id,
        name=name,
        type=EntryType.FOLDER if folder else EntryType.FILE,
        parent_id=parent_id,
        size=size,
        mime_type=None if folder else "text/plain",
        created_at=to_iso(created_at),
        modified_at=to_iso(created_at),
        chaos_metadata=chaos,
    )


# =============================================================================
# SERVICE / APP FIXTURES
# =============================================================================

@pytest.fixture
def service_factory(store, clock):
    """Build a VFSService over the shared store with a chosen rng."""
    from chaos_vfs.config import ChaosConfig
    from chaos_vfs.service import VFSService

    def build(rng=None, **kwargs):
        return VFSService(store, chaos_config=ChaosConfig(), rng=rng or FixedRandom(0.99),
                          clock=clock, concurrent_worker=False, **kwargs)

    return build


@pytest.fixture
def app_factory(store, clock):
    """Build a Flask app over the shared store with a chosen rng."""
    from chaos_vfs.api import create_app
    from chaos_vfs.config import TestConfig

    def build(rng=None, **kwargs):
        app = create_app(TestConfig, store=store, rng=rng or FixedRandom(0.99), clock=clock, **kwargs)
        return app

    return build


@pytest.fixture
def app(app_factory):
    return app_factory()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth():
    """Query string carrying the shared key."""
    return {"api_key": API_KEY}
