#!/usr/bin/env python3
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from frontier.consequences import Consequence
from frontier.context import SimContext, WorldView, log_event
from frontier.helper.world_helpers import hop_distance
from frontier.models import SIM_CONFIG
from frontier.models import (
    World,
    Fleet,
    FleetRole,
    FleetState,
    TaskType,
    Station,
    StationKind,
    StationState,
    Route,
    PirateBase,
    PirateGroup,
    BossEncounter,
    BossPhase,
    Doctrine,
    WaveKind,
    Raid,
    Ambush,
)
from frontier.models.sim_config import DoctrineProfile
from frontier.pressure import add_pressure, total_pressure

logger = logging.getLogger("frontier.pirates")

_PIRATES = SIM_CONFIG.pirates
_BOSS = _PIRATES.boss

EPOCHS = _PIRATES.epochs
BASE_BUDGET = _PIRATES.base_budget
BUDGET_PER_TIER = _PIRATES.budget_per_tier
BUDGET_REGEN_SECONDS = _PIRATES.budget_regen_seconds
MIN_TARGET_SCORE = _PIRATES.minimum_target_score
TARGET_REACH_HOPS = _PIRATES.target_reach_hops
GROUP_HOP_SECONDS = _PIRATES.group_hop_seconds
RAID_DAMAGE_PER_TIER = _PIRATES.raid_damage_per_tier
RAID_PRESSURE = _PIRATES.raid_pressure
AMBUSH_PRESSURE = _PIRATES.ambush_pressure
ESCORT_DAMAGE_FACTOR = _PIRATES.escort_damage_factor
BASE_PRESSURE_PER_TIER = _PIRATES.base_pressure_per_tier_second

DOCTRINE_PROFILES: Dict[Doctrine, DoctrineProfile] = {
    Doctrine(name): profile for name, profile in _PIRATES.doctrines.items()
}
STATION_VALUE = {StationKind(name): t.value for name, t in SIM_CONFIG.stations.kinds.items()}
ROLE_POWER = {FleetRole(name): t.power for name, t in SIM_CONFIG.fleets.roles.items()}

APPROACH_END = _BOSS.approach_seconds  # 30s
DEFENSE_END = _BOSS.defense_screen_seconds  # 120s
OVERRUN_START = _BOSS.overrun_seconds  # 180s
WAVE_A_INTERVAL = _BOSS.wave_a_interval
WAVE_A_STRENGTH = _BOSS.wave_a_strength
WAVE_B_INTERVAL = _BOSS.wave_b_interval
WAVE_B_STRENGTH = _BOSS.wave_b_strength
OVERRUN_INITIAL_INTERVAL = _BOSS.overrun_initial_interval
OVERRUN_INTERVAL_FACTOR = _BOSS.overrun_interval_factor
OVERRUN_MIN_INTERVAL = _BOSS.overrun_minimum_interval
OVERRUN_STRENGTH_STEP = _BOSS.overrun_strength_step
APPROACH_PRESSURE = _BOSS.approach_pressure_per_second
OVERRUN_PRESSURE = _BOSS.overrun_pressure_per_second
NOTORIETY_STEP = _BOSS.notoriety_step
RADIUS_BONUS_HOPS = _BOSS.radius_bonus_hops
RADIUS_BONUS_BASE = _BOSS.radius_bonus_base_seconds
RADIUS_BONUS_PER_NOTORIETY = _BOSS.radius_bonus_per_notoriety
RADIUS_BONUS_MAX = _BOSS.radius_bonus_max_seconds
AGGRESSIVE_WINDOW = _BOSS.aggressive_window_seconds
BOSS_HP_PER_TIER = _BOSS.hit_points_per_tier

EPSILON = 1e-9
WAVE_A_COUNT = int(math.floor(DEFENSE_END / WAVE_A_INTERVAL + EPSILON))
RAIDABLE_STATES = (StationState.OPERATIONAL, StationState.STRAINED, StationState.FAILING)


@dataclass
class PirateTickResult:
    consequences: List[Consequence] = field(default_factory=list)
    spawns: int = 0


# ---------- Epochs ----------


def epoch_for(elapsed: float) -> int:
    index = 0
    for i, epoch in enumerate(EPOCHS):
        if elapsed + EPSILON >= epoch.starts_at_seconds:
            index = i
    return index


def advance_epoch(world: World, ctx: SimContext) -> None:
    target = max(world.epoch, epoch_for(ctx.elapsed))
    if target != world.epoch:
        world.epoch = target
        name = EPOCHS[target].name
        logger.info("pirate epoch advanced to %s", name)
        log_event(world, ctx, "pirate_epoch", f"Pirate forces have grown into {name}", problem=True)


def max_budget(base: PirateBase) -> int:
    return BASE_BUDGET + BUDGET_PER_TIER * base.tier


def effective_radius(base: PirateBase, now: float) -> int:
    if base.radius_bonus_until is not None and now < base.radius_bonus_until:
        return base.influence_radius + RADIUS_BONUS_HOPS
    return base.influence_radius


def base_doctrine(world: World, base: PirateBase, now: float) -> Doctrine:
    if base.hunter_until is not None and now < base.hunter_until:
        return Doctrine.HUNTER
    return Doctrine(EPOCHS[world.epoch].doctrine)


def boss_phase(t: float) -> BossPhase:
    if t < APPROACH_END - EPSILON:
        return BossPhase.APPROACH
    if t < DEFENSE_END - EPSILON:
        return BossPhase.DEFENSE_SCREEN
    if t < OVERRUN_START - EPSILON:
        return BossPhase.BOSS_EMERGENCE
    return BossPhase.OVERRUN


# ---------- Target scoring ----------


def _security_near(prev: WorldView, zone_id: int) -> List[Fleet]:
    return [
        f
        for f in prev.fleets.values()
        if f.role == FleetRole.SECURITY and f.zone_id == zone_id and f.state != FleetState.DISABLED
    ]


def _escorts_for(prev: WorldView, station: Station) -> List[Fleet]:
    return [
        f
        for f in _security_near(prev, station.zone_id)
        if f.state == FleetState.EXECUTING
        and f.intent is not None
        and f.intent.task == TaskType.ESCORT
        and f.intent.target_id == station.id
    ]


def score_station(prev: WorldView, station: Station, hops: int, profile: DoctrineProfile) -> float:
    value = STATION_VALUE[station.kind] + station.ore * 0.2 + station.fuel * 0.1
    exposure = hops * 10.0
    opportunity = (100.0 - station.integrity) * 0.2 + total_pressure(prev.pressure, station.zone_id) * 0.1
    if station.state in (StationState.STRAINED, StationState.FAILING):
        opportunity += 20.0
    retaliation = 25.0 * len(_security_near(prev, station.zone_id)) + 15.0 * len(_escorts_for(prev, station))
    return (
        value * profile.value
        - exposure * profile.exposure
        + opportunity * profile.opportunity
        - retaliation * profile.retaliation
    )


def score_route(prev: WorldView, route: Route, hops: int, profile: DoctrineProfile) -> float:
    travellers = [
        f for f in prev.fleets.values() if f.route_id == route.id and f.state != FleetState.DISABLED
    ]
    if not travellers:
        return float("-inf")
    guards = [f for f in travellers if f.role == FleetRole.SECURITY]
    value = 15.0 * len(travellers) + route.risk * 10.0
    exposure = hops * 10.0
    opportunity = 10.0 * (len(travellers) - len(guards))
    retaliation = 25.0 * len(guards)
    return (
        value * profile.value * profile.route_bias
        - exposure * profile.exposure
        + opportunity * profile.opportunity
        - retaliation * profile.retaliation
    )


def select_target(
    world: World, prev: WorldView, base: PirateBase, doctrine: Doctrine
) -> Optional[Tuple[str, int, int, float]]:
    """
    Score every reachable station and route; return (kind, id, zone, score)
    for the best one above the minimum, lowest id winning ties.
    """
    profile = DOCTRINE_PROFILES[doctrine]
    candidates: List[Tuple[float, int, str, int]] = []
    for station in prev.stations.values():
        if station.state not in RAIDABLE_STATES:
            continue
        hops = hop_distance(world, base.zone_id, station.zone_id)
        if hops is None or hops > TARGET_REACH_HOPS:
            continue
        candidates.append((score_station(prev, station, hops, profile), station.id, "station", station.zone_id))
    for route in prev.routes.values():
        ends = [hop_distance(world, base.zone_id, z) for z in (route.a, route.b)]
        reachable = [h for h in ends if h is not None]
        if not reachable or min(reachable) > TARGET_REACH_HOPS:
            continue
        near_end = route.a if ends[0] is not None and ends[0] == min(reachable) else route.b
        candidates.append((score_route(prev, route, min(reachable), profile), route.id, "route", near_end))
    viable = [c for c in candidates if c[0] >= MIN_TARGET_SCORE]
    if not viable:
        return None
    score, entity_id, kind, zone_id = min(viable, key=lambda c: (-c[0], c[1]))
    return kind, entity_id, zone_id, score


# ---------- Groups ----------


def spawn_group(
    world: World,
    ctx: SimContext,
    base: PirateBase,
    doctrine: Doctrine,
    target_kind: str,
    target_id: int,
    target_zone_id: int,
    wave: WaveKind = WaveKind.RAID,
    strength: Optional[float] = None,
) -> PirateGroup:
    tier = world.epoch + 1
    profile = DOCTRINE_PROFILES[doctrine]
    notoriety = 0.0
    if base.boss_id is not None and base.boss_id in world.bosses:
        notoriety = world.bosses[base.boss_id].notoriety
    hops = hop_distance(world, base.zone_id, target_zone_id) or 0
    group = PirateGroup(
        id=world.allocate_id(),
        kind=EPOCHS[world.epoch].group_kind,
        doctrine=doctrine,
        tier=tier,
        strength=strength if strength is not None else 10.0 * tier,
        aggression=min(1.0, profile.aggression + notoriety / 200.0),
        target_bias="routes" if profile.route_bias > 1.0 else "stations",
        base_id=base.id,
        zone_id=base.zone_id,
        target_kind=target_kind,
        target_id=target_id,
        target_zone_id=target_zone_id,
        eta=hops * GROUP_HOP_SECONDS,
        wave=wave,
    )
    world.pirate_groups[group.id] = group
    logger.info(
        "base %s launched %s group %s (%s) at %s %s",
        base.id, wave.value, group.id, doctrine.value, target_kind, target_id,
    )
    log_event(
        world,
        ctx,
        f"pirate_{wave.value.lower()}",
        f"{group.kind} {wave.value} group #{group.id} launched from zone {base.zone_id} toward zone {target_zone_id}",
        zones=[base.zone_id, target_zone_id],
        entities=[base.id, group.id],
        problem=wave != WaveKind.RAID,
    )
    return group


def _strike(world: World, prev: WorldView, ctx: SimContext, group: PirateGroup) -> None:
    profile = DOCTRINE_PROFILES[group.doctrine]
    if group.target_kind == "station":
        station = prev.stations.get(group.target_id)
        if station is None or station.state not in RAIDABLE_STATES:
            return
        damage = RAID_DAMAGE_PER_TIER * group.tier * profile.damage * (1.0 + group.aggression * 0.5)
        if _escorts_for(prev, station):
            damage *= ESCORT_DAMAGE_FACTOR
        world.raids.append(Raid(station_id=station.id, group_id=group.id, damage=damage, time=ctx.elapsed))
        add_pressure(world.pressure, station.zone_id, RAID_PRESSURE, "pirate")
        log_event(
            world,
            ctx,
            "pirate_raid",
            f"{group.kind} group #{group.id} raided {station.kind.value} #{station.id} ({damage:.1f} damage)",
            zones=[station.zone_id],
            entities=[group.id, station.id],
            problem=True,
        )
    elif group.target_kind == "route":
        route = prev.routes.get(group.target_id)
        if route is None:
            return
        world.ambushes.append(
            Ambush(zone_id=group.target_zone_id, route_id=route.id, group_id=group.id, strength=group.strength, time=ctx.elapsed)
        )
        for zone_id in (route.a, route.b):
            add_pressure(world.pressure, zone_id, AMBUSH_PRESSURE, "pirate")
    else:
        world.ambushes.append(
            Ambush(zone_id=group.target_zone_id, route_id=None, group_id=group.id, strength=group.strength, time=ctx.elapsed)
        )
        add_pressure(world.pressure, group.target_zone_id, AMBUSH_PRESSURE, "pirate")


def advance_groups(world: World, prev: WorldView, ctx: SimContext) -> None:
    for group_id in sorted(world.pirate_groups):
        group = world.pirate_groups[group_id]
        if group.doctrine_until is not None and ctx.elapsed >= group.doctrine_until - EPSILON:
            group.doctrine = group.home_doctrine or group.doctrine
            group.doctrine_until = None
            group.home_doctrine = None
        group.eta = max(0.0, group.eta - ctx.dt)
        if group.eta <= EPSILON:
            group.zone_id = group.target_zone_id
            _strike(world, prev, ctx, group)
            # strike and scatter back to base
            del world.pirate_groups[group_id]


# ---------- Boss encounters ----------


def _fleets_in_radius(world: World, prev: WorldView, base: PirateBase, radius: int, disabled: bool = False) -> List[Fleet]:
    out = []
    for fleet_id in sorted(prev.fleets):
        fleet = prev.fleets[fleet_id]
        if (fleet.state == FleetState.DISABLED) != disabled:
            continue
        hops = hop_distance(world, base.zone_id, fleet.zone_id)
        if hops is not None and hops <= radius:
            out.append(fleet)
    return out


def register_setback(world: World, ctx: SimContext, base: PirateBase, reason: str) -> None:
    """
    Player retreat or failure near a living boss: notoriety rises, the base
    reaches one hop further for a while and nearby groups turn Hunter.
    Never a terminal loss.
    """
    if base.boss_id is None or base.boss_id not in world.bosses:
        return
    boss = world.bosses[base.boss_id]
    boss.notoriety = min(100.0, boss.notoriety + NOTORIETY_STEP)
    duration = min(RADIUS_BONUS_MAX, RADIUS_BONUS_BASE + RADIUS_BONUS_PER_NOTORIETY * boss.notoriety)
    base.radius_bonus_until = ctx.elapsed + duration
    base.hunter_until = ctx.elapsed + AGGRESSIVE_WINDOW

    reach = base.influence_radius + RADIUS_BONUS_HOPS
    for group_id in sorted(world.pirate_groups):
        group = world.pirate_groups[group_id]
        hops = hop_distance(world, base.zone_id, group.zone_id)
        if hops is None or hops > reach:
            continue
        if group.home_doctrine is None:
            group.home_doctrine = group.doctrine
        group.doctrine = Doctrine.HUNTER
        group.doctrine_until = base.hunter_until
    logger.info("boss %s notoriety %.0f after player %s", boss.id, boss.notoriety, reason)
    log_event(
        world,
        ctx,
        "boss_notoriety",
        f"{boss.kind} grows notorious ({boss.notoriety:.0f}) after player {reason}; influence widened for {duration:.0f}s",
        zones=[base.zone_id],
        entities=[boss.id, base.id],
        problem=True,
    )


def _spawn_wave(
    world: World, ctx: SimContext, base: PirateBase, targets: List[Fleet], wave: WaveKind, strength: float
) -> None:
    zone_id = targets[0].zone_id if targets else base.zone_id
    spawn_group(
        world, ctx, base, base_doctrine(world, base, ctx.elapsed), "zone", zone_id, zone_id,
        wave=wave, strength=strength,
    )


def advance_encounter(
    world: World, prev: WorldView, ctx: SimContext, base: PirateBase, result: PirateTickResult
) -> None:
    radius = effective_radius(base, ctx.elapsed)
    present = _fleets_in_radius(world, prev, base, radius)
    encounter = base.encounter

    if encounter is None:
        if present:
            base.encounter = BossEncounter(started_tick=ctx.tick)
            logger.info("boss encounter at base %s begins", base.id)
            log_event(
                world, ctx, "boss_encounter",
                f"Player forces entered the reach of pirate base #{base.id}; Approach",
                zones=[base.zone_id], entities=[base.id], problem=True,
            )
        return

    if not present:
        base.encounter = None
        register_setback(world, ctx, base, "retreat")
        return

    t = (ctx.tick - encounter.started_tick) * ctx.dt
    phase = boss_phase(t)
    if phase != encounter.phase:
        encounter.phase = phase
        log_event(
            world, ctx, "boss_phase", f"Pirate base #{base.id} encounter: {phase.value}",
            zones=[base.zone_id], entities=[base.id], problem=True,
        )
        if phase == BossPhase.OVERRUN and base.boss_id in world.bosses:
            world.bosses[base.boss_id].enraged = True

    # encounter waves run on the phase clock and never draw on spawn_budget;
    # the budget only limits raids launched outside an encounter
    # WaveA every 20s through the defense screen
    while encounter.wave_a_count < WAVE_A_COUNT and (encounter.wave_a_count + 1) * WAVE_A_INTERVAL <= t + EPSILON:
        encounter.wave_a_count += 1
        _spawn_wave(world, ctx, base, present, WaveKind.WAVE_A, WAVE_A_STRENGTH)
        result.spawns += 1
    # WaveB every 45s from boss emergence onwards
    while DEFENSE_END + encounter.wave_b_count * WAVE_B_INTERVAL <= t + EPSILON:
        encounter.wave_b_count += 1
        _spawn_wave(world, ctx, base, present, WaveKind.WAVE_B, WAVE_B_STRENGTH)
        result.spawns += 1
    # Overrun: shrinking interval, growing strength
    if t >= OVERRUN_START - EPSILON:
        if encounter.next_overrun_at is None:
            encounter.next_overrun_at = OVERRUN_START
        while encounter.next_overrun_at <= t + EPSILON:
            encounter.overrun_count += 1
            strength = WAVE_B_STRENGTH + OVERRUN_STRENGTH_STEP * encounter.overrun_count
            _spawn_wave(world, ctx, base, present, WaveKind.OVERRUN, strength)
            result.spawns += 1
            interval = max(
                OVERRUN_MIN_INTERVAL,
                OVERRUN_INITIAL_INTERVAL * OVERRUN_INTERVAL_FACTOR ** encounter.overrun_count,
            )
            encounter.next_overrun_at += interval
        ramp = 1.0 + (t - OVERRUN_START) / 60.0
        add_pressure(world.pressure, base.zone_id, OVERRUN_PRESSURE * ramp * ctx.dt, "pirate")
    elif phase == BossPhase.APPROACH:
        for zone_id in sorted({f.zone_id for f in present}):
            add_pressure(world.pressure, zone_id, APPROACH_PRESSURE * ctx.dt, "pirate")

    for fleet in _fleets_in_radius(world, prev, base, radius, disabled=True):
        if fleet.id not in encounter.failed_fleets:
            encounter.failed_fleets.append(fleet.id)
            register_setback(world, ctx, base, "failure")

    if phase in (BossPhase.BOSS_EMERGENCE, BossPhase.OVERRUN) and base.boss_id in world.bosses:
        power = 0.0
        for fleet in present:
            if (
                fleet.zone_id == base.zone_id
                and fleet.state == FleetState.EXECUTING
                and fleet.intent is not None
                and fleet.intent.task == TaskType.ASSAULT
            ):
                power += ROLE_POWER[fleet.role]
        encounter.assault_progress += power * ctx.dt
        boss = world.bosses[base.boss_id]
        if encounter.assault_progress >= BOSS_HP_PER_TIER * boss.tier - EPSILON:
            result.consequences.append(
                Consequence(kind="boss", entity_id=base.id, zone_id=base.zone_id, outcome="Defeated")
            )


# ---------- Tick ----------


def _advance_base(world: World, prev: WorldView, ctx: SimContext, base: PirateBase, result: PirateTickResult) -> None:
    if base.spawn_budget < max_budget(base):
        base.budget_cooldown -= ctx.dt
        if base.budget_cooldown <= EPSILON:
            base.spawn_budget += 1
            base.budget_cooldown = BUDGET_REGEN_SECONDS
    else:
        base.budget_cooldown = BUDGET_REGEN_SECONDS
    base.raid_cooldown = max(0.0, base.raid_cooldown - ctx.dt)

    if base.boss_alive:
        advance_encounter(world, prev, ctx, base, result)

    if base.suppressed_until is not None and ctx.elapsed < base.suppressed_until:
        return
    if base.boss_alive:
        add_pressure(world.pressure, base.zone_id, BASE_PRESSURE_PER_TIER * base.tier * ctx.dt, "pirate")

    if base.spawn_budget <= 0 or base.raid_cooldown > EPSILON:
        return
    doctrine = base_doctrine(world, base, ctx.elapsed)
    target = select_target(world, prev, base, doctrine)
    interval = EPOCHS[world.epoch].raid_interval_seconds
    if target is None:
        base.raid_cooldown = interval / 4.0
        return
    kind, entity_id, zone_id, _ = target
    spawn_group(world, ctx, base, doctrine, kind, entity_id, zone_id)
    base.spawn_budget -= 1
    base.raid_cooldown = interval
    result.spawns += 1


def advance_pirates(world: World, prev: WorldView, ctx: SimContext) -> PirateTickResult:
    """
    Epoch clock, group movement and strikes, then per-base budgets,
    boss encounters and new raids. Strikes land as raid/ambush records
    that stations and fleets pick up next tick.
    """
    result = PirateTickResult()
    world.raids = []
    world.ambushes = []
    advance_epoch(world, ctx)
    advance_groups(world, prev, ctx)
    for base_id in sorted(world.bases):
        _advance_base(world, prev, ctx, world.bases[base_id], result)
    return result
