"""Shared fixtures for the queue controller tests."""

import pytest

import config
from models import SystemState
from store import MemoryBackend, MemoryStateStore


@pytest.fixture(autouse=True)
def four_modules(monkeypatch):
    """Run every test against the default four-module setup."""
    monkeypatch.setattr(config, "MODULE_COUNT", 4)
    monkeypatch.setattr(config, "CALL_HISTORY_LIMIT", 10)


@pytest.fixture
def state():
    return SystemState.default()


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend):
    s = MemoryStateStore(backend, actor_id="reception")
    yield s
    s.close()


@pytest.fixture
def closed_state(state):
    """Snapshot with every module inactive, so issued tickets stay queued."""
    for module in state.modules.values():
        module.active = False
    return state
