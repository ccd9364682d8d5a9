"""Shared fixtures: a small line-shaped sector and strict invariant checks."""

import copy

import pytest

from frontier.helper.world_helpers import load_sector
from frontier.models import RUNTIME_SETTINGS


# 1 -- 2 -- 3 -- 4, 100 units per hop
LINE_SECTOR = {
    "seed": "line-sector",
    "zones": [
        {"id": 1, "x": 0.0, "y": 0.0},
        {"id": 2, "x": 100.0, "y": 0.0},
        {"id": 3, "x": 200.0, "y": 0.0},
        {"id": 4, "x": 300.0, "y": 0.0},
    ],
    "routes": [
        {"a": 1, "b": 2, "distance": 100.0},
        {"a": 2, "b": 3, "distance": 100.0},
        {"a": 3, "b": 4, "distance": 100.0},
    ],
    "revealed": [1, 2],
}


@pytest.fixture(autouse=True)
def strict_invariants(monkeypatch):
    """Any value escaping its bound fails the test instead of being clamped."""
    monkeypatch.setattr(RUNTIME_SETTINGS, "strict_invariants", True)


@pytest.fixture
def make_world():
    def _make(**overrides):
        payload = copy.deepcopy(LINE_SECTOR)
        payload.update(overrides)
        return load_sector(payload)

    return _make
