"""Pressure field: saturation, spreading with hop falloff, decay."""

import pytest

from frontier.context import SimContext
from frontier.pressure import (
    PRESSURE_MAX,
    add_pressure,
    decay_pressure,
    dominant_source,
    read_pressure,
    spread_pressure,
    total_pressure,
)


def test_add_pressure_saturates_at_both_ends(make_world):
    world = make_world()

    assert add_pressure(world.pressure, 1, 250.0) == PRESSURE_MAX
    assert add_pressure(world.pressure, 1, -500.0) == 0.0
    assert add_pressure(world.pressure, 1, 12.5, "faction") == 12.5
    assert total_pressure(world.pressure, 1) == 12.5


def test_spread_pressure_falls_off_per_hop(make_world):
    world = make_world()

    touched = spread_pressure(world, 1, 10.0, hops=2, falloff=0.5)

    assert touched == [2, 3]
    assert read_pressure(world.pressure, 1) == pytest.approx(10.0)
    assert read_pressure(world.pressure, 2) == pytest.approx(5.0)
    assert read_pressure(world.pressure, 3) == pytest.approx(2.5)
    assert read_pressure(world.pressure, 4) == 0.0


def test_decay_runs_per_source(make_world):
    world = make_world()
    add_pressure(world.pressure, 2, 10.0, "pirate")
    add_pressure(world.pressure, 2, 10.0, "faction")
    add_pressure(world.pressure, 3, 0.01, "pirate")

    decay_pressure(world, SimContext(tick=1, dt=1.0, elapsed=1.0))

    assert read_pressure(world.pressure, 2, "pirate") == pytest.approx(9.95)
    assert read_pressure(world.pressure, 2, "faction") == pytest.approx(9.97)
    assert read_pressure(world.pressure, 3, "pirate") == 0.0


def test_dominant_source_prefers_pirate_on_tie(make_world):
    world = make_world()
    assert dominant_source(world.pressure, 1) == "pirate"

    add_pressure(world.pressure, 1, 5.0, "faction")
    assert dominant_source(world.pressure, 1) == "faction"

    add_pressure(world.pressure, 1, 5.0, "pirate")
    assert dominant_source(world.pressure, 1) == "pirate"
