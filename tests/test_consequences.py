"""Terminal events are applied once and reshape the map."""

import pytest

from frontier.consequences import Consequence, resolve_consequences
from frontier.context import SimContext
from frontier.helper.world_helpers import create_base, create_station
from frontier.models import StationKind, StationOutcome, StationState, ZoneControl
from frontier.pressure import read_pressure


def ctx_for(world):
    return SimContext(tick=world.tick + 1, dt=1.0, elapsed=world.tick + 1.0)


def test_station_consequence_applies_exactly_once(make_world):
    world = make_world()
    station = create_station(world, StationKind.MINING_OUTPOST, 2, operational=True)
    station.ore = 9
    evacuated = Consequence(kind="station", entity_id=station.id, zone_id=2, outcome="Transformed")
    captured = Consequence(kind="station", entity_id=station.id, zone_id=2, outcome="Captured")

    applied = resolve_consequences(world, ctx_for(world), [evacuated, captured])

    assert len(applied) == 1
    assert station.state == StationState.FAILED
    assert station.outcome == StationOutcome.TRANSFORMED
    (derelict,) = world.derelicts.values()
    assert derelict.ore == 9
    assert world.zones[2].control == ZoneControl.NEUTRAL
    assert len(world.diagnostics) == 1


def test_capture_hands_zone_to_pirates(make_world):
    world = make_world()
    station = create_station(world, StationKind.FUEL_DEPOT, 3, operational=True)
    create_station(world, StationKind.SENSOR_STATION, 3, operational=True)

    resolve_consequences(
        world, ctx_for(world), [Consequence(kind="station", entity_id=station.id, zone_id=3, outcome="Captured")]
    )

    assert world.zones[3].control == ZoneControl.PIRATE
    assert not world.derelicts


def test_boss_defeat_breaks_and_redistributes_pressure(make_world):
    world = make_world()
    base = create_base(world, 4, tier=1, boss_kind="Warlord")
    world.pressure.zones[4].pirate = 50.0

    applied = resolve_consequences(
        world, ctx_for(world), [Consequence(kind="boss", entity_id=base.id, zone_id=4, outcome="Defeated")]
    )

    assert len(applied) == 1
    assert not base.boss_alive
    assert base.suppressed_until == pytest.approx(301.0)
    assert read_pressure(world.pressure, 4) == pytest.approx(10.0)
    assert read_pressure(world.pressure, 3) == pytest.approx(20.0)
    assert world.zones[4].control == ZoneControl.NEUTRAL

    again = resolve_consequences(
        world, ctx_for(world), [Consequence(kind="boss", entity_id=base.id, zone_id=4, outcome="Defeated")]
    )
    assert again == []
