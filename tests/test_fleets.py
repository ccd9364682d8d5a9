"""Fleet decision loop: risk terms, action costs, tie-breaks and outcomes."""

import pytest

from frontier.context import SimContext, freeze_view
from frontier.errors import IntentRequired
from frontier.fleets import (
    RiskBreakdown,
    action_costs,
    decide,
    ensure_path,
    evaluate,
    fuel_risk,
    mine_amount,
    select_action,
    threat_risk,
)
from frontier.helper.world_helpers import create_fleet, load_sector
from frontier.knowledge import read_layer, refresh_layer
from frontier.models import (
    Ambush,
    AutonomyTier,
    Command,
    CommandKind,
    FleetAction,
    FleetRole,
    FleetState,
    Intent,
    Layer,
    RiskTolerance,
    TaskType,
)
from frontier.world import advance_world

# 1 -> 2 -> 4 is shorter than 1 -> 3 -> 4
DIAMOND_SECTOR = {
    "seed": 7,
    "zones": [
        {"id": 1, "x": 0.0, "y": 0.0},
        {"id": 2, "x": 100.0, "y": -50.0},
        {"id": 3, "x": 100.0, "y": 50.0},
        {"id": 4, "x": 200.0, "y": 0.0},
    ],
    "routes": [
        {"a": 1, "b": 2, "distance": 100.0},
        {"a": 2, "b": 4, "distance": 100.0},
        {"a": 1, "b": 3, "distance": 120.0},
        {"a": 3, "b": 4, "distance": 120.0},
    ],
    "revealed": [1],
}


def _tick_context(world):
    tick = world.tick + 1
    return SimContext(tick=tick, dt=world.tick_seconds, elapsed=tick * world.tick_seconds)


def test_fuel_risk_curve():
    assert fuel_risk(0.6) == 0.0
    assert fuel_risk(0.25) == 0.0
    assert fuel_risk(0.15) == pytest.approx(0.2)
    assert fuel_risk(0.0) == pytest.approx(0.5)
    assert fuel_risk(-0.1) == pytest.approx(0.8)


def test_low_confidence_adds_threat_risk():
    assert threat_risk(0.0, 1.0) == 0.0
    assert threat_risk(0.0, 0.0) == pytest.approx(0.3)
    assert threat_risk(100.0, 1.0) == pytest.approx(1.0)
    assert threat_risk(40.0, 0.2) > threat_risk(40.0, 0.9)


def test_equal_costs_resolve_by_precedence():
    costs = {
        FleetAction.ABORT: 0.1,
        FleetAction.DELAY: 0.1,
        FleetAction.CONTINUE: 0.1,
    }
    assert select_action(costs) == FleetAction.CONTINUE
    assert select_action({FleetAction.RETREAT: 0.2, FleetAction.REQUEST_SUPPORT: 0.2}) == FleetAction.REQUEST_SUPPORT

    picks = {select_action(dict(reversed(list(costs.items())))) for _ in range(20)}
    assert picks == {FleetAction.CONTINUE}


def test_zero_risk_safety_only_fleet_continues(make_world):
    world = make_world()
    fleet = create_fleet(world, FleetRole.SECURITY, 1, autonomy=AutonomyTier.STRATEGIC)
    fleet.priority_weights = {"safety": 1.0, "progress": 0.0, "economy": 0.0}
    risk = RiskBreakdown(base=0.0, fuel=0.0, threat=0.0, capability=0.0, zone=0.0, fuel_margin=1.0)

    costs = action_costs(fleet, risk, list(FleetAction))

    assert set(costs.values()) == {0.0}
    assert select_action(costs) == FleetAction.CONTINUE


def test_evaluate_requires_an_intent(make_world):
    world = make_world()
    fleet = create_fleet(world, FleetRole.SCOUT, 1)

    with pytest.raises(IntentRequired):
        evaluate(world, freeze_view(world), _tick_context(world), fleet)


def test_unknown_threats_read_riskier_than_known_quiet(make_world):
    world = make_world()
    fleet = create_fleet(world, FleetRole.SCOUT, 1)
    fleet.intent = Intent(task=TaskType.SCOUT, zone_id=3)
    ensure_path(world, fleet, 3)
    assert fleet.path == [2, 3]

    blind, awareness = evaluate(world, freeze_view(world), _tick_context(world), fleet)
    assert not awareness.known
    assert blind.threat == pytest.approx(0.3)

    for zone_id in (2, 3):
        refresh_layer(world, zone_id, Layer.THREATS, 0.0, world.pressure, force=True)
    informed, awareness = evaluate(world, freeze_view(world), _tick_context(world), fleet)
    assert awareness.known
    assert informed.threat == 0.0
    assert blind.total > informed.total


def test_scout_run_surveys_and_comes_home(make_world):
    world = make_world()
    scout = create_fleet(world, FleetRole.SCOUT, 1)
    order = Command(kind=CommandKind.CHANGE_INTENT, fleet_id=scout.id, zone_id=2, task=TaskType.SCOUT)

    advance_world(world, [order])
    assert scout.state == FleetState.IN_TRANSIT
    assert scout.last_action == FleetAction.CONTINUE

    for _ in range(59):
        advance_world(world)

    assert world.knowledge[2][Layer.STABILITY].observed
    assert read_layer(world.knowledge, 2, Layer.STABILITY).status != "unknown"
    assert "fleet_task_complete" in [event.kind for event in world.history]
    assert scout.zone_id == 1
    assert scout.intent is None
    assert scout.state == FleetState.IDLE
    assert scout.fuel == scout.fuel_capacity


def test_cautious_scout_calls_for_support(make_world):
    world = make_world()
    scout = create_fleet(world, FleetRole.SCOUT, 1, risk_tolerance=RiskTolerance.CAUTIOUS)
    guard = create_fleet(world, FleetRole.SECURITY, 1, autonomy=AutonomyTier.AUTONOMOUS)
    world.pressure.zones[2].pirate = 60.0
    refresh_layer(world, 2, Layer.THREATS, 0.0, world.pressure, force=True)
    scout.intent = Intent(task=TaskType.SCOUT, zone_id=2)

    summary = advance_world(world)
    assert scout.last_action == FleetAction.REQUEST_SUPPORT
    assert summary.decisions == {"RequestSupport": 1}
    assert len(world.support_requests) == 1

    advance_world(world)
    assert guard.intent is not None
    assert guard.intent.task == TaskType.PATROL
    assert guard.intent.zone_id == 1


def test_autonomous_fleet_reroutes_around_known_pressure():
    world = load_sector(DIAMOND_SECTOR)
    fleet = create_fleet(world, FleetRole.SECURITY, 1, autonomy=AutonomyTier.AUTONOMOUS)
    world.pressure.zones[2].pirate = 80.0
    refresh_layer(world, 2, Layer.THREATS, 0.0, world.pressure, force=True)
    fleet.intent = Intent(task=TaskType.PATROL, zone_id=4)

    advance_world(world)

    assert fleet.last_action == FleetAction.REROUTE
    assert fleet.next_zone == 3
    assert fleet.path == [4]


def test_ambush_damages_unguarded_fleet(make_world):
    world = make_world()
    miner = create_fleet(world, FleetRole.MINING, 1)
    world.ambushes.append(Ambush(zone_id=1, route_id=None, group_id=999, strength=30.0, time=0.0))

    advance_world(world)

    assert miner.fuel == pytest.approx(36.0)
    assert miner.state == FleetState.REFUELING
    assert "fleet_damaged" in [event.kind for event in world.history]


def test_security_escort_repels_or_absorbs_ambush(make_world):
    world = make_world()
    miner = create_fleet(world, FleetRole.MINING, 1)
    guard = create_fleet(world, FleetRole.SECURITY, 1)
    world.ambushes.append(Ambush(zone_id=1, route_id=None, group_id=998, strength=30.0, time=0.0))

    advance_world(world)
    assert miner.fuel == miner.fuel_capacity
    assert guard.fuel == guard.fuel_capacity
    assert "ambush_repelled" in [event.kind for event in world.history]

    world.ambushes.append(Ambush(zone_id=1, route_id=None, group_id=997, strength=50.0, time=1.0))
    advance_world(world)
    assert miner.fuel == miner.fuel_capacity
    assert guard.fuel == pytest.approx(36.0)


def test_disabled_fleet_is_abandoned_after_timeout(make_world):
    world = make_world()
    fleet = create_fleet(world, FleetRole.MINING, 3)
    fleet.state = FleetState.DISABLED
    fleet.disabled_since = 0.0

    for _ in range(119):
        advance_world(world)
    assert fleet.id in world.fleets

    summary = advance_world(world)
    assert fleet.id not in world.fleets
    assert [loss.fleet_id for loss in world.lost_fleets] == [fleet.id]
    assert len(summary.consequences) == 1


def test_disabled_fleet_is_towed_back_by_security(make_world):
    world = make_world()
    fleet = create_fleet(world, FleetRole.MINING, 3)
    fleet.state = FleetState.DISABLED
    fleet.fuel = 0.0
    fleet.disabled_since = 0.0
    guard = create_fleet(world, FleetRole.SECURITY, 2)

    for _ in range(5):
        advance_world(world)
    assert fleet.state == FleetState.DISABLED

    guard.zone_id = 3
    advance_world(world)

    assert fleet.state == FleetState.IDLE
    assert fleet.fuel == pytest.approx(11.25)
    assert fleet.disabled_since is None
    assert "fleet_rescued" in [event.kind for event in world.history]

    for _ in range(130):
        advance_world(world)
    assert fleet.id in world.fleets
    assert not world.lost_fleets


def test_mine_amount_is_bounded_by_field_and_hold():
    assert mine_amount(10.0, 0.2, 1.0, 40.0) == pytest.approx(0.2)
    assert mine_amount(0.05, 0.2, 1.0, 40.0) == pytest.approx(0.05)
    assert mine_amount(10.0, 0.2, 1.0, 0.1) == pytest.approx(0.1)
    assert mine_amount(0.0, 0.2, 1.0, 40.0) == 0.0
    assert mine_amount(10.0, 0.2, 0.0, 40.0) == 0.0
    assert mine_amount(10.0, -0.2, 1.0, 40.0) == 0.0


def test_mining_strips_a_finite_field(make_world):
    world = make_world(resource_fields=[{"zone": 2, "capacity": 3.0}])
    refresh_layer(world, 2, Layer.THREATS, 0.0, world.pressure, force=True)
    miner = create_fleet(world, FleetRole.MINING, 2, autonomy=AutonomyTier.MANUAL)
    miner.intent = Intent(task=TaskType.MINE, zone_id=2)
    idle_miner = create_fleet(world, FleetRole.MINING, 1, autonomy=AutonomyTier.MANUAL)
    idle_miner.intent = Intent(task=TaskType.MINE, zone_id=1)

    for _ in range(60):
        advance_world(world)

    assert world.ore_fields[2].remaining == 0.0
    assert world.ore_stockpile == pytest.approx(3.0)
    assert miner.intent is None
    assert miner.cargo == 0.0
    kinds = [event.kind for event in world.history]
    assert kinds.count("ore_field_depleted") == 1
    assert idle_miner.intent is None
    assert any("found no ore left in zone 1" in event.text for event in world.history)


def test_awareness_carries_intel_depth_of_the_target(make_world):
    world = make_world()
    fleet = create_fleet(world, FleetRole.SCOUT, 1)
    fleet.intent = Intent(task=TaskType.SCOUT, zone_id=2)
    ensure_path(world, fleet, 2)

    _, awareness = evaluate(world, freeze_view(world), _tick_context(world), fleet)
    assert awareness.target_layer == Layer.GEOGRAPHY

    fleet.intent = Intent(task=TaskType.SCOUT, zone_id=3)
    fleet.path = []
    ensure_path(world, fleet, 3)
    _, awareness = evaluate(world, freeze_view(world), _tick_context(world), fleet)
    assert awareness.target_layer is None

    advance_world(world)
    assert fleet.awareness.target_layer is None
    assert "target intel none" in fleet.last_report


def test_manual_fleet_only_weighs_continue_or_delay(make_world):
    world = make_world()
    scout = create_fleet(world, FleetRole.SCOUT, 1, autonomy=AutonomyTier.MANUAL, risk_tolerance=RiskTolerance.CAUTIOUS)
    world.pressure.zones[2].pirate = 90.0
    refresh_layer(world, 2, Layer.THREATS, 0.0, world.pressure, force=True)
    scout.intent = Intent(task=TaskType.SCOUT, zone_id=2)
    ensure_path(world, scout, 2)

    decision = decide(world, freeze_view(world), _tick_context(world), scout)
    assert set(decision.costs) == {FleetAction.CONTINUE, FleetAction.DELAY}

    for _ in range(5):
        advance_world(world)
        assert scout.last_action in (FleetAction.CONTINUE, FleetAction.DELAY)
    assert not world.support_requests
    assert scout.intent is not None
