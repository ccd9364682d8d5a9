"""Fog-of-war confidence: decay, floors, refreshes and sensor sweeps."""

import pytest

from frontier.errors import InvalidLayer
from frontier.helper.world_helpers import create_station
from frontier.knowledge import (
    LAYER_FLOOR,
    decay_knowledge,
    effective_layer,
    read_layer,
    refresh_layer,
)
from frontier.models import Layer, StationKind
from frontier.state_utils import snapshot_from_world
from frontier.world import advance_world


def test_revealed_zones_start_with_geography_known(make_world):
    world = make_world()

    assert read_layer(world.knowledge, 1, Layer.GEOGRAPHY).status == "fresh"
    assert read_layer(world.knowledge, 1, Layer.THREATS).status == "unknown"
    assert read_layer(world.knowledge, 3, Layer.EXISTENCE).status == "unknown"
    assert world.knowledge[3][Layer.THREATS].confidence == LAYER_FLOOR[Layer.THREATS]


def test_confidence_never_drops_below_layer_floor(make_world):
    world = make_world()
    for zone_id in world.zones:
        for layer in Layer:
            refresh_layer(world, zone_id, layer, 0.0, world.pressure, force=True)

    decay_knowledge(world, 10_000.0)

    for states in world.knowledge.values():
        for state in states:
            assert state.confidence == LAYER_FLOOR[state.layer]
            assert 0.0 <= state.confidence <= 1.0


def test_zero_dt_leaves_confidence_untouched(make_world):
    world = make_world()
    refresh_layer(world, 2, Layer.STABILITY, 0.0, world.pressure)

    decay_knowledge(world, 0.0)

    assert world.knowledge[2][Layer.STABILITY].confidence == 1.0


def test_geography_goes_stale_below_threshold(make_world):
    world = make_world()

    decay_knowledge(world, 49.0)
    assert read_layer(world.knowledge, 1, Layer.GEOGRAPHY).status == "fresh"

    decay_knowledge(world, 11.0)
    reading = read_layer(world.knowledge, 1, Layer.GEOGRAPHY)
    assert reading.status == "stale"
    assert reading.confidence == pytest.approx(0.4)


@pytest.mark.parametrize("layer", [5, -1, True, "Threats", None])
def test_out_of_range_layer_is_rejected(make_world, layer):
    world = make_world()

    with pytest.raises(InvalidLayer):
        read_layer(world.knowledge, 1, layer)
    with pytest.raises(InvalidLayer):
        refresh_layer(world, 1, layer, 0.0, world.pressure)


def test_refresh_marks_lower_layers_and_respects_cooldown(make_world):
    world = make_world()
    world.pressure.zones[4].pirate = 42.0

    assert refresh_layer(world, 4, Layer.THREATS, 0.0, world.pressure) is True

    states = world.knowledge[4]
    assert all(states[layer].observed for layer in (Layer.EXISTENCE, Layer.GEOGRAPHY, Layer.RESOURCES))
    assert not states[Layer.STABILITY].observed
    assert read_layer(world.knowledge, 4, Layer.THREATS).value == 42.0

    # captured value stays as it was observed
    world.pressure.zones[4].pirate = 0.0
    assert refresh_layer(world, 4, Layer.THREATS, 5.0, world.pressure) is False
    assert read_layer(world.knowledge, 4, Layer.THREATS).value == 42.0

    assert refresh_layer(world, 4, Layer.THREATS, 10.0, world.pressure) is True
    assert read_layer(world.knowledge, 4, Layer.THREATS).value == 0.0


def test_sensor_station_sweeps_threats_in_range(make_world):
    world = make_world()
    create_station(world, StationKind.SENSOR_STATION, 2, operational=True)

    for _ in range(29):
        advance_world(world)
    assert read_layer(world.knowledge, 3, Layer.THREATS).status == "unknown"

    advance_world(world)

    for zone_id in (1, 2, 3):
        reading = read_layer(world.knowledge, zone_id, Layer.THREATS)
        assert reading.status == "fresh"
        assert reading.confidence == 1.0
    assert read_layer(world.knowledge, 4, Layer.THREATS).status == "unknown"


def test_effective_layer_is_the_deepest_observed(make_world):
    world = make_world()

    assert effective_layer(world.knowledge, 1) == Layer.GEOGRAPHY
    assert effective_layer(world.knowledge, 3) is None

    refresh_layer(world, 3, Layer.THREATS, 0.0, world.pressure)
    assert effective_layer(world.knowledge, 3) == Layer.THREATS

    zones = {zone["id"]: zone for zone in snapshot_from_world(world, 1.0)["zones"]}
    assert zones[1]["effective_layer"] == "Geography"
    assert zones[3]["effective_layer"] == "Threats"
    assert zones[4]["effective_layer"] is None
