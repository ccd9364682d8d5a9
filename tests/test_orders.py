"""Command validation, reason codes, boundary application and the wire format."""

import pytest

from frontier.errors import CommandRejected
from frontier.helper.world_helpers import create_fleet, create_station
from frontier.models import (
    Command,
    CommandKind,
    Derelict,
    FleetRole,
    Layer,
    StationKind,
    StationOutcome,
    StationState,
    StationVerb,
    TaskType,
)
from frontier.orders import CommandQueue, parse_command, screen_payloads, validate_command
from frontier.savegame import dump_world, restore_world
from frontier.world import advance_world


def reason(world, **fields):
    return validate_command(world, Command(**fields)).reason


def test_reason_codes(make_world):
    world = make_world(bases=[{"zone": 4, "tier": 1}])
    miner = create_fleet(world, FleetRole.MINING, 1)
    station = create_station(world, StationKind.MINING_OUTPOST, 2, operational=True)

    assert reason(world, kind=CommandKind.CHANGE_INTENT, fleet_id=999, zone_id=2, task=TaskType.MINE) == "unknown_fleet"
    assert reason(world, kind=CommandKind.CHANGE_INTENT, fleet_id=miner.id, zone_id=99, task=TaskType.MINE) == "unknown_zone"
    assert reason(world, kind=CommandKind.CHANGE_INTENT, fleet_id=miner.id, zone_id=2, task=TaskType.PATROL) == "role_mismatch"
    assert reason(world, kind=CommandKind.ASSIGN_ESCORT, fleet_id=miner.id, target_id=station.id) == "role_mismatch"
    assert reason(world, kind=CommandKind.SET_RISK_TOLERANCE, fleet_id=miner.id, tier="Reckless") == "invalid_tier"
    assert reason(world, kind=CommandKind.SET_PRIORITY_WEIGHTS, fleet_id=miner.id, weights={"safety": -1.0}) == "invalid_weights"
    assert reason(world, kind=CommandKind.SET_PRIORITY_WEIGHTS, fleet_id=miner.id, weights={"speed": 1.0}) == "invalid_weights"
    assert reason(world, kind=CommandKind.STATION_VERB, station_id=station.id, verb=StationVerb.EVACUATE) == "invalid_transition"
    assert reason(world, kind=CommandKind.STATION_VERB, station_id=999, verb=StationVerb.STABILIZE) == "unknown_station"
    assert reason(world, kind=CommandKind.REFRESH_KNOWLEDGE, zone_id=3, layer=7) == "invalid_layer"
    assert reason(world, kind=CommandKind.BUILD_STATION, zone_id=4, station_kind=StationKind.FUEL_DEPOT) == "invalid_transition"
    assert reason(world, kind=CommandKind.RECLAIM_DERELICT, target_id=999) == "unknown_target"
    assert reason(world, kind=CommandKind.DEBUG_SPAWN, zone_id=2, spawn="dragon") == "invalid_command"

    assert validate_command(world, Command(kind=CommandKind.CHANGE_INTENT, fleet_id=miner.id, zone_id=2, task=TaskType.MINE)).accepted


def test_refresh_cooldown_is_enforced_at_the_boundary(make_world):
    world = make_world()
    refresh = Command(kind=CommandKind.REFRESH_KNOWLEDGE, zone_id=3, layer=int(Layer.THREATS))

    first = advance_world(world, [refresh])
    assert first.rejected_commands == []
    assert world.knowledge[3][Layer.THREATS].observed

    second = advance_world(world, [refresh])
    assert len(second.rejected_commands) == 1
    assert "cooldown_active" in second.rejected_commands[0]
    assert "cooldown_active" in world.problems[-1]


def test_manual_refresh_runs_on_the_tick_clock(make_world):
    world = make_world()
    refresh = Command(kind=CommandKind.REFRESH_KNOWLEDGE, zone_id=3, layer=int(Layer.THREATS))

    advance_world(world, [refresh])
    assert world.knowledge[3][Layer.THREATS].last_refresh == pytest.approx(1.0)

    for _ in range(8):
        advance_world(world)
    # the tenth tick starts 9s after the refresh landed
    early = advance_world(world, [refresh])
    assert len(early.rejected_commands) == 1

    on_time = advance_world(world, [refresh])
    assert on_time.rejected_commands == []
    assert world.knowledge[3][Layer.THREATS].last_refresh == pytest.approx(11.0)


def test_rejected_command_leaves_state_untouched(make_world):
    plain = make_world()
    commanded = make_world()
    for world in (plain, commanded):
        create_station(world, StationKind.FUEL_DEPOT, 1, operational=True)

    advance_world(plain)
    advance_world(
        commanded,
        [Command(kind=CommandKind.STATION_VERB, station_id=999, verb=StationVerb.REINFORCE)],
    )

    left, right = dump_world(plain)["world"], dump_world(commanded)["world"]
    for feed in ("events", "problems", "history"):
        left.pop(feed)
        right.pop(feed)
    assert left == right


def test_same_batch_commands_see_earlier_effects(make_world):
    world = make_world()
    station = create_station(world, StationKind.MINING_OUTPOST, 2, operational=True)
    station.state = StationState.FAILING
    evacuate = Command(kind=CommandKind.STATION_VERB, station_id=station.id, verb=StationVerb.EVACUATE)

    summary = advance_world(world, [evacuate, evacuate])

    assert station.evacuating
    assert len(summary.rejected_commands) == 1
    assert "invalid_transition" in summary.rejected_commands[0]


def test_priority_weights_are_normalized(make_world):
    world = make_world()
    fleet = create_fleet(world, FleetRole.SCOUT, 1)

    advance_world(
        world,
        [Command(kind=CommandKind.SET_PRIORITY_WEIGHTS, fleet_id=fleet.id, weights={"safety": 2, "progress": 1, "economy": 1})],
    )

    assert fleet.priority_weights == pytest.approx({"safety": 0.5, "progress": 0.25, "economy": 0.25})


def test_stabilize_relieves_debt_and_patches_integrity(make_world):
    world = make_world()
    station = create_station(world, StationKind.FUEL_DEPOT, 1, operational=True)
    station.maintenance_debt = 45.0
    station.integrity = 60.0

    advance_world(world, [Command(kind=CommandKind.STATION_VERB, station_id=station.id, verb=StationVerb.STABILIZE)])

    assert station.maintenance_debt == pytest.approx(5.0 + 0.5 / 60.0)
    assert station.integrity == pytest.approx(70.0)


def test_reclaim_turns_derelict_into_new_deployment(make_world):
    world = make_world()
    derelict = Derelict(
        id=world.allocate_id(),
        zone_id=3,
        station_kind=StationKind.MINING_OUTPOST,
        source_station_id=0,
        outcome=StationOutcome.TRANSFORMED,
        ore=12,
    )
    world.derelicts[derelict.id] = derelict
    reclaim = Command(kind=CommandKind.RECLAIM_DERELICT, target_id=derelict.id)

    advance_world(world, [reclaim])

    assert derelict.reclaimed
    (station,) = world.stations.values()
    assert station.state == StationState.DEPLOYING
    assert station.zone_id == 3
    assert station.ore == 12
    assert reason(world, kind=CommandKind.RECLAIM_DERELICT, target_id=derelict.id) == "invalid_transition"


def test_command_queue_keeps_only_valid_commands(make_world):
    world = make_world()
    fleet = create_fleet(world, FleetRole.SCOUT, 1)
    queue = CommandQueue()

    good = Command(kind=CommandKind.CHANGE_INTENT, fleet_id=fleet.id, zone_id=3, task=TaskType.SCOUT)
    bad = Command(kind=CommandKind.CHANGE_INTENT, fleet_id=fleet.id, zone_id=3, task=TaskType.MINE)

    assert queue.submit(world, good).accepted
    assert queue.submit(world, bad).reason == "role_mismatch"
    assert len(queue) == 1
    assert queue.drain() == [good]
    assert len(queue) == 0


def test_parse_command_reason_codes():
    with pytest.raises(CommandRejected) as exc:
        parse_command({"kind": "Teleport"})
    assert exc.value.reason == "invalid_command"

    with pytest.raises(CommandRejected) as exc:
        parse_command({"kind": "ChangeIntent", "fleet_id": 1, "task": "Dance"})
    assert exc.value.reason == "invalid_task"

    with pytest.raises(CommandRejected) as exc:
        parse_command({"kind": "SetPriorityWeights", "fleet_id": 1, "weights": [1, 2, 3]})
    assert exc.value.reason == "invalid_weights"

    with pytest.raises(CommandRejected) as exc:
        parse_command({"kind": "ChangeIntent", "fleet_id": "seven"})
    assert exc.value.reason == "invalid_command"

    cmd = parse_command({"kind": "StationVerb", "station_id": "4", "verb": "Reinforce", "source": "player"})
    assert cmd.kind == CommandKind.STATION_VERB
    assert cmd.station_id == 4
    assert cmd.verb == StationVerb.REINFORCE


def test_screen_payloads_against_a_saved_world(make_world):
    world = make_world()
    scout = create_fleet(world, FleetRole.SCOUT, 1)
    committed = restore_world(dump_world(world))
    payloads = [
        {"kind": "ChangeIntent", "fleet_id": scout.id, "zone_id": 3, "task": "Scout"},
        {"kind": "ChangeIntent", "fleet_id": scout.id, "zone_id": 3, "task": "Mine"},
        {"kind": "ChangeIntent", "fleet_id": 999, "zone_id": 3, "task": "Scout"},
        {"kind": "Teleport"},
    ]

    results = screen_payloads(committed, payloads)
    assert [r.reason for r in results] == [None, "role_mismatch", "unknown_fleet", "invalid_command"]
    assert results[0].accepted

    shape_only = screen_payloads(None, payloads)
    assert [r.accepted for r in shape_only] == [True, True, True, False]
