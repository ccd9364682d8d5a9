"""Whole-world properties: determinism, save/load, invariants and snapshots."""

import pytest

from frontier.errors import InvariantViolation
from frontier.helper.invariants import enforce_invariants
from frontier.helper.world_helpers import create_station, load_sector_file
from frontier.models import (
    RUNTIME_SETTINGS,
    Command,
    CommandKind,
    FleetRole,
    StationKind,
    StationVerb,
    TaskType,
)
from frontier.savegame import dump_world, load_world, restore_world, save_world
from frontier.state_utils import format_run_clock, snapshot_from_world
from frontier.world import advance_world, replay


def fleet_of(world, role):
    return next(f.id for f in world.fleets.values() if f.role == role)


def station_of(world, kind):
    return next(s.id for s in world.stations.values() if s.kind == kind)


def command_log(world):
    scout = fleet_of(world, FleetRole.SCOUT)
    miner = fleet_of(world, FleetRole.MINING)
    guard = fleet_of(world, FleetRole.SECURITY)
    outpost = station_of(world, StationKind.MINING_OUTPOST)
    return {
        1: [
            Command(kind=CommandKind.CHANGE_INTENT, fleet_id=scout, zone_id=4, task=TaskType.SCOUT),
            Command(kind=CommandKind.CHANGE_INTENT, fleet_id=miner, zone_id=2, task=TaskType.MINE),
        ],
        3: [Command(kind=CommandKind.ASSIGN_ESCORT, fleet_id=guard, target_id=outpost)],
        40: [Command(kind=CommandKind.REFRESH_KNOWLEDGE, zone_id=5, layer=3)],
        90: [
            Command(kind=CommandKind.STATION_VERB, station_id=outpost, verb=StationVerb.DOWNSCALE),
            Command(kind=CommandKind.SET_RISK_TOLERANCE, fleet_id=scout, tier="Aggressive"),
        ],
        200: [Command(kind=CommandKind.BUILD_STATION, zone_id=3, station_kind=StationKind.FUEL_DEPOT)],
    }


def test_replay_is_deterministic():
    runs = []
    for _ in range(2):
        world = load_sector_file(RUNTIME_SETTINGS.sector_path)
        replay(world, command_log(world), 400)
        runs.append(dump_world(world))

    assert runs[0] == runs[1]
    assert runs[0]["world"]["tick"] == 400


def test_save_and_load_resume_identically(tmp_path):
    world = load_sector_file(RUNTIME_SETTINGS.sector_path)
    log = command_log(world)
    replay(world, log, 150)

    path = save_world(world, tmp_path / "run.json")
    resumed = load_world(path)
    assert dump_world(resumed) == dump_world(world)

    replay(world, log, 150)
    replay(resumed, log, 150)
    assert dump_world(resumed) == dump_world(world)


def test_save_records_carry_crisis_badges(make_world):
    world = make_world()
    station = create_station(world, StationKind.MINING_OUTPOST, 2, fuel=7.0, operational=True)
    advance_world(world)

    saved = dump_world(world)
    record = next(r for r in saved["world"]["stations"].values() if r["id"] == station.id)
    assert record["crisis_type"] == "FuelShortage"
    assert record["crisis_stage"] == "Stable"
    assert record["kind"] == "MiningOutpost"

    restored = restore_world(saved)
    assert restored.stations[station.id].fuel == station.fuel


def test_restore_rejects_unknown_version(make_world):
    world = make_world()
    saved = dump_world(world)
    saved["version"] = 99

    with pytest.raises(ValueError):
        restore_world(saved)


def test_invariant_violation_is_fatal_in_strict_mode(make_world):
    world = make_world()
    station = create_station(world, StationKind.FUEL_DEPOT, 1, operational=True)
    station.fuel = -5.0

    with pytest.raises(InvariantViolation):
        enforce_invariants(world)


def test_invariant_violation_is_clamped_and_logged(make_world, monkeypatch):
    monkeypatch.setattr(RUNTIME_SETTINGS, "strict_invariants", False)
    world = make_world()
    station = create_station(world, StationKind.FUEL_DEPOT, 1, operational=True)
    station.fuel = -5.0
    world.knowledge[3][0].confidence = 0.0

    enforce_invariants(world)

    assert station.fuel == 0.0
    assert world.knowledge[3][0].confidence == 0.25
    assert len(world.diagnostics) == 2


def test_tick_summary_and_clock(make_world):
    world = make_world()
    create_station(world, StationKind.MINING_OUTPOST, 2, fuel=0.0, operational=True).integrity = 10.0

    summary = advance_world(world)

    assert summary.tick == world.tick == 1
    assert summary.transitions == {"Operational->Strained": 1}
    assert len(summary.crises_opened) == 1
    assert format_run_clock(0) == "00:00"
    assert format_run_clock(1350) == "22:30"


def test_snapshot_reports_knowledge_and_crises():
    world = load_sector_file(RUNTIME_SETTINGS.sector_path)
    for _ in range(3):
        advance_world(world)

    snap = snapshot_from_world(world, tick_delay=0.1)

    assert snap["tick"] == 3
    assert snap["run_clock"] == "00:03"
    assert len(snap["zones"]) == len(world.zones)
    layers = snap["zones"][0]["knowledge"]
    assert [layer["layer"] for layer in layers] == ["Existence", "Geography", "Resources", "Threats", "Stability"]
    assert {s["kind"] for s in snap["stations"]} == {"FuelDepot", "MiningOutpost", "SensorStation"}
    assert all("crisis_stage" in s for s in snap["stations"])
    assert snap["bases"][0]["boss"]["kind"] == "Warlord"
    assert snap["tick_delay_ms"] == 100
    ore = {zone["id"]: zone["ore_remaining"] for zone in snap["zones"]}
    assert ore[7] == 120.0
    assert ore[1] is None
