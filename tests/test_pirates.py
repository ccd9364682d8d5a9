"""Pirate epochs, raids and the boss encounter clock."""

import pytest

from frontier.context import SimContext, freeze_view
from frontier.helper.world_helpers import create_base, create_fleet, create_station
from frontier.models import (
    AutonomyTier,
    BossPhase,
    CrisisStage,
    CrisisType,
    Doctrine,
    FleetRole,
    FleetState,
    Intent,
    RiskTolerance,
    StationKind,
    StationState,
    TaskType,
    ZoneControl,
)
from frontier.pirates import (
    advance_pirates,
    base_doctrine,
    effective_radius,
    epoch_for,
)
from frontier.world import advance_world


def drive_pirates(world, ticks):
    """Run only the pirate engine, tick by tick, against a frozen view."""
    for _ in range(ticks):
        tick = world.tick + 1
        ctx = SimContext(tick=tick, dt=world.tick_seconds, elapsed=tick * world.tick_seconds)
        advance_pirates(world, freeze_view(world), ctx)
        world.tick = tick


def spawn_times(world, kind, started_tick):
    return [event.tick - started_tick for event in world.history if event.kind == kind]


@pytest.mark.parametrize(
    "elapsed, epoch",
    [(0.0, 0), (899.0, 0), (900.0, 1), (2399.0, 1), (2400.0, 2), (4500.0, 3), (99_999.0, 3)],
)
def test_epoch_schedule(elapsed, epoch):
    assert epoch_for(elapsed) == epoch


def test_boss_phase_clock(make_world):
    world = make_world()
    base = create_base(world, 4, tier=1, radius=1, boss_kind="Warlord")
    create_fleet(world, FleetRole.SECURITY, 3)

    drive_pirates(world, 240)

    encounter = base.encounter
    assert encounter is not None
    started = encounter.started_tick

    assert spawn_times(world, "pirate_wavea", started) == [20, 40, 60, 80, 100, 120]
    assert spawn_times(world, "pirate_waveb", started) == [120, 165, 210]

    overrun = spawn_times(world, "pirate_overrun", started)
    assert overrun[0] == 180
    assert all(t >= 180 for t in overrun)
    gaps = [b - a for a, b in zip(overrun, overrun[1:])]
    assert gaps == sorted(gaps, reverse=True)

    assert encounter.phase == BossPhase.OVERRUN
    assert world.bosses[base.boss_id].enraged


def test_retreat_raises_notoriety_and_widens_reach(make_world):
    world = make_world()
    base = create_base(world, 4, tier=1, radius=1, boss_kind="Warlord")
    fleet = create_fleet(world, FleetRole.SECURITY, 3)

    drive_pirates(world, 5)
    assert base.encounter is not None

    fleet.zone_id = 1
    drive_pirates(world, 1)

    boss = world.bosses[base.boss_id]
    assert base.encounter is None
    assert boss.notoriety == 10.0
    assert base.radius_bonus_until == pytest.approx(world.elapsed + 330.0)
    assert effective_radius(base, world.elapsed) == 2
    assert base_doctrine(world, base, world.elapsed) == Doctrine.HUNTER
    assert effective_radius(base, world.elapsed + 400.0) == 1


def test_base_raids_nearby_station(make_world):
    world = make_world()
    create_base(world, 4, tier=1)
    station = create_station(world, StationKind.MINING_OUTPOST, 3, operational=True)

    summary = advance_world(world)
    assert summary.pirate_spawns == 1
    (group,) = world.pirate_groups.values()
    assert group.target_kind == "station"
    assert group.target_id == station.id
    assert group.eta == 20.0

    for _ in range(21):
        advance_world(world)

    assert "pirate_raid" in [event.kind for event in world.history]
    assert station.integrity < 100.0
    # one raid raises the early warning but does not strain the station
    assert station.state == StationState.OPERATIONAL
    assert [(c.crisis_type, c.stage) for c in world.crises.values()] == [
        (CrisisType.PIRATE_HARASSMENT, CrisisStage.STABLE)
    ]
    assert not world.pirate_groups


def test_assault_squadron_brings_down_the_boss(make_world):
    world = make_world()
    base = create_base(world, 4, tier=1, radius=1, boss_kind="Warlord")
    squadron = [
        create_fleet(world, FleetRole.SECURITY, 4, autonomy=AutonomyTier.MANUAL, risk_tolerance=RiskTolerance.AGGRESSIVE)
        for _ in range(3)
    ]
    for fleet in squadron:
        fleet.intent = Intent(task=TaskType.ASSAULT, zone_id=4, target_id=base.id)

    advance_world(world)
    assert all(fleet.state == FleetState.EXECUTING for fleet in squadron)
    started = base.encounter.started_tick

    defeated_at = None
    for _ in range(240):
        summary = advance_world(world)
        if any("defeated" in line for line in summary.consequences):
            defeated_at = world.tick - started
            break

    # three hulls chip 3 hit points a second off a 120 point boss once it emerges at 120s
    assert defeated_at is not None
    assert 150 <= defeated_at <= 170
    assert not base.boss_alive
    assert base.encounter is None
    assert world.zones[4].control == ZoneControl.NEUTRAL
    assert "boss_defeated" in [event.kind for event in world.history]

    advance_world(world)
    assert all(fleet.intent is None for fleet in squadron)
