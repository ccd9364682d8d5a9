#!/usr/bin/env python3
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from frontier.context import SimContext, WorldView, log_event
from frontier.helper.modifiers import maintenance_multiplier, richness_multiplier
from frontier.models import SIM_CONFIG
from frontier.models import (
    World,
    Station,
    StationKind,
    StationState,
    CrisisType,
    Intervention,
    Raid,
)
from frontier.pressure import total_pressure

logger = logging.getLogger("frontier.stations")

KIND_TUNING = {StationKind(name): tuning for name, tuning in SIM_CONFIG.stations.kinds.items()}
_LIFECYCLE = SIM_CONFIG.stations.lifecycle

STRAINED_FUEL_RATIO = _LIFECYCLE.strained_fuel_ratio  # 25% of capacity
STRAINED_FUEL_SECONDS = _LIFECYCLE.strained_fuel_seconds
FAILING_FUEL_RATIO = _LIFECYCLE.failing_fuel_ratio  # 10% of capacity
FAILING_FUEL_SECONDS = _LIFECYCLE.failing_fuel_seconds
INTEGRITY_THRESHOLD = _LIFECYCLE.integrity_threshold
MAINTENANCE_THRESHOLD = _LIFECYCLE.maintenance_threshold
MAINTENANCE_PER_MINUTE = _LIFECYCLE.maintenance_per_minute
HARASSMENT_WINDOW = _LIFECYCLE.harassment_window_seconds
RECOVERY_WINDOW = _LIFECYCLE.recovery_window_seconds
RAID_SPIKE_COUNT = _LIFECYCLE.raid_spike_count
STRAINED_MIN_DWELL = _LIFECYCLE.strained_min_dwell_seconds
FAILING_MIN_DWELL = _LIFECYCLE.failing_min_dwell_seconds
FAILING_TIMEOUT = _LIFECYCLE.failing_timeout_seconds
EXPOSURE_RESPONSE = _LIFECYCLE.exposure_response_seconds
EXPOSURE_WEAR_THRESHOLD = _LIFECYCLE.exposure_wear_threshold
EXPOSURE_WEAR_PER_MINUTE = _LIFECYCLE.exposure_wear_per_minute
ORE_SECONDS_PER_UNIT = _LIFECYCLE.ore_seconds_per_unit
DOWNSCALE_FACTOR = SIM_CONFIG.stations.verbs.downscale_factor

EPSILON = 1e-9


@dataclass
class StationReport:
    """Per-tick lifecycle outcome of one station, consumed by the crisis engine."""

    station_id: int
    zone_id: int
    previous: StationState
    state: StationState
    active: List[CrisisType] = field(default_factory=list)  # trigger conditions present now
    cause: Optional[CrisisType] = None  # why it moved into Strained/Failing
    terminal: Optional[str] = None  # "integrity" | "timeout" | "evacuated"


def fuel_ratio(station: Station) -> float:
    if station.fuel_capacity <= 0:
        return 0.0
    return station.fuel / station.fuel_capacity


def burn_per_second(station: Station) -> float:
    rate = KIND_TUNING[station.kind].burn_per_minute / 60.0
    if station.downscaled:
        rate *= DOWNSCALE_FACTOR
    return rate


def is_harassed(station: Station) -> bool:
    return bool(station.raid_times)


def active_conditions(station: Station) -> List[CrisisType]:
    active = []
    if fuel_ratio(station) <= STRAINED_FUEL_RATIO + EPSILON:
        active.append(CrisisType.FUEL_SHORTAGE)
    if is_harassed(station):
        active.append(CrisisType.PIRATE_HARASSMENT)
    if station.maintenance_debt >= MAINTENANCE_THRESHOLD or station.integrity < INTEGRITY_THRESHOLD:
        active.append(CrisisType.MAINTENANCE_FAILURE)
    return active


def _strain_cause(station: Station) -> Optional[CrisisType]:
    if station.low_fuel_seconds >= STRAINED_FUEL_SECONDS - EPSILON:
        return CrisisType.FUEL_SHORTAGE
    if station.harassed_seconds >= HARASSMENT_WINDOW - EPSILON:
        return CrisisType.PIRATE_HARASSMENT
    if station.maintenance_debt >= MAINTENANCE_THRESHOLD or station.integrity < INTEGRITY_THRESHOLD:
        return CrisisType.MAINTENANCE_FAILURE
    return None


def _failing_cause(station: Station) -> Optional[CrisisType]:
    if station.critical_fuel_seconds >= FAILING_FUEL_SECONDS - EPSILON:
        return CrisisType.FUEL_SHORTAGE
    if len(station.raid_times) >= RAID_SPIKE_COUNT:
        return CrisisType.PIRATE_HARASSMENT
    if station.integrity < INTEGRITY_THRESHOLD:
        if is_harassed(station):
            return CrisisType.PIRATE_HARASSMENT
        return CrisisType.MAINTENANCE_FAILURE
    return None


def _recovered(station: Station) -> bool:
    return (
        fuel_ratio(station) > STRAINED_FUEL_RATIO + EPSILON
        and station.calm_seconds >= RECOVERY_WINDOW
        and station.maintenance_debt < MAINTENANCE_THRESHOLD
    )


def _intervention_restores(station: Station) -> bool:
    return (
        station.intervention_pending
        and station.integrity > INTEGRITY_THRESHOLD
        and fuel_ratio(station) > FAILING_FUEL_RATIO
    )


def _terminal_cause(station: Station) -> Optional[str]:
    if station.evacuating:
        return "evacuated"
    if station.integrity <= 0.0:
        return "integrity"
    if station.state_seconds >= FAILING_TIMEOUT - EPSILON:
        return "timeout"
    return None


def _apply_incoming(
    station: Station, raids: List[Raid], deliveries: List[Intervention]
) -> bool:
    """Apply last tick's raids and interventions; returns True if raided."""
    for intervention in deliveries:
        if intervention.kind == "fuel_delivery":
            if station.isolated:
                continue
            station.fuel = min(station.fuel_capacity, station.fuel + intervention.fuel)
        station.intervention_pending = True
    for raid in raids:
        station.integrity = max(0.0, station.integrity - raid.damage)
        station.raid_times.append(raid.time)
    return bool(raids)


def _consume_and_produce(world: World, station: Station, prev: WorldView, dt: float) -> None:
    zone = world.zones[station.zone_id]
    station.fuel = max(0.0, station.fuel - burn_per_second(station) * dt)

    tuning = KIND_TUNING[station.kind]
    if (
        station.state == StationState.OPERATIONAL
        and tuning.ore_capacity > 0
        and not station.downscaled
    ):
        if station.ore >= station.ore_capacity:
            station.ore_progress = 0.0
        else:
            station.ore_progress += dt * richness_multiplier(zone)
            while station.ore_progress >= ORE_SECONDS_PER_UNIT - EPSILON:
                station.ore_progress = max(0.0, station.ore_progress - ORE_SECONDS_PER_UNIT)
                if station.ore < station.ore_capacity:
                    station.ore += 1

    station.maintenance_debt = min(
        100.0,
        station.maintenance_debt
        + MAINTENANCE_PER_MINUTE / 60.0 * dt * maintenance_multiplier(zone),
    )

    target = min(100.0, total_pressure(prev.pressure, station.zone_id))
    step = min(1.0, dt / EXPOSURE_RESPONSE)
    station.pressure_exposure += (target - station.pressure_exposure) * step
    station.pressure_exposure = min(100.0, max(0.0, station.pressure_exposure))
    if station.pressure_exposure > EXPOSURE_WEAR_THRESHOLD:
        excess = (station.pressure_exposure - EXPOSURE_WEAR_THRESHOLD) / (100.0 - EXPOSURE_WEAR_THRESHOLD)
        station.integrity = max(0.0, station.integrity - excess * EXPOSURE_WEAR_PER_MINUTE / 60.0 * dt)


def _update_timers(station: Station, ctx: SimContext, raided: bool) -> None:
    ratio = fuel_ratio(station)
    if ratio <= STRAINED_FUEL_RATIO + EPSILON:
        station.low_fuel_seconds += ctx.dt
    else:
        station.low_fuel_seconds = 0.0
    if ratio <= FAILING_FUEL_RATIO + EPSILON:
        station.critical_fuel_seconds += ctx.dt
    else:
        station.critical_fuel_seconds = 0.0
    if raided:
        station.calm_seconds = 0.0
    else:
        station.calm_seconds += ctx.dt
    horizon = ctx.elapsed - HARASSMENT_WINDOW
    station.raid_times = [t for t in station.raid_times if t > horizon]
    # a lone raid ages out of the window before this reaches a full window
    if station.raid_times:
        station.harassed_seconds += ctx.dt
    else:
        station.harassed_seconds = 0.0
    station.state_seconds += ctx.dt


def _transition(
    world: World,
    ctx: SimContext,
    station: Station,
    state: StationState,
    reason: str,
) -> None:
    previous = station.state
    station.state = state
    station.state_seconds = 0.0
    logger.info("station %s %s -> %s (%s)", station.id, previous.value, state.value, reason)
    log_event(
        world,
        ctx,
        f"station_{state.value.lower()}",
        f"{station.kind.value} #{station.id} {previous.value} -> {state.value}: {reason}",
        zones=[station.zone_id],
        entities=[station.id],
        problem=state != StationState.OPERATIONAL,
    )


def step_station(
    world: World,
    prev: WorldView,
    ctx: SimContext,
    station: Station,
    raids: List[Raid],
    deliveries: List[Intervention],
) -> StationReport:
    previous = station.state
    report = StationReport(
        station_id=station.id, zone_id=station.zone_id, previous=previous, state=previous
    )
    raided = _apply_incoming(station, raids, deliveries)

    if station.state == StationState.DEPLOYING:
        station.build_remaining = max(0.0, station.build_remaining - ctx.dt)
        station.state_seconds += ctx.dt
        tuning = KIND_TUNING[station.kind]
        fuelled = not tuning.requires_fuel or station.fuel >= tuning.minimum_fuel_to_operate
        if station.build_remaining <= EPSILON and fuelled:
            station.build_remaining = 0.0
            _transition(world, ctx, station, StationState.OPERATIONAL, "construction complete")
        station.intervention_pending = False
        report.state = station.state
        return report

    _consume_and_produce(world, station, prev, ctx.dt)
    _update_timers(station, ctx, raided)
    report.active = active_conditions(station)

    if station.state == StationState.OPERATIONAL:
        cause = _strain_cause(station)
        if cause is not None:
            report.cause = cause
            _transition(world, ctx, station, StationState.STRAINED, cause.value)

    elif station.state == StationState.STRAINED:
        if station.state_seconds >= STRAINED_MIN_DWELL - EPSILON:
            cause = _failing_cause(station)
            if cause is not None:
                report.cause = cause
                _transition(world, ctx, station, StationState.FAILING, cause.value)
            elif _recovered(station):
                _transition(world, ctx, station, StationState.OPERATIONAL, "recovered")

    elif station.state == StationState.FAILING:
        if _intervention_restores(station):
            # a pending evacuation is called off; a later failure needs a fresh order
            station.evacuating = False
            _transition(world, ctx, station, StationState.STRAINED, "intervention")
        else:
            if station.intervention_pending and not station.evacuating:
                # an intervention that falls short still restarts the failing timer
                station.state_seconds = 0.0
            if station.state_seconds >= FAILING_MIN_DWELL - EPSILON:
                terminal = _terminal_cause(station)
                if terminal is not None:
                    station.failure_cause = terminal
                    report.terminal = terminal
                    _transition(world, ctx, station, StationState.FAILED, terminal)

    station.intervention_pending = False
    report.state = station.state
    return report


def advance_stations(world: World, prev: WorldView, ctx: SimContext) -> List[StationReport]:
    """
    Run every non-terminal station through one lifecycle step.
    Raids and deliveries recorded during the previous tick land here.
    """
    raids_by_station: Dict[int, List[Raid]] = {}
    for raid in prev.raids:
        raids_by_station.setdefault(raid.station_id, []).append(raid)
    deliveries_by_station: Dict[int, List[Intervention]] = {}
    for intervention in prev.interventions:
        deliveries_by_station.setdefault(intervention.station_id, []).append(intervention)

    reports: List[StationReport] = []
    for station_id in sorted(world.stations):
        station = world.stations[station_id]
        if station.state == StationState.FAILED:
            continue
        reports.append(
            step_station(
                world,
                prev,
                ctx,
                station,
                raids_by_station.get(station_id, []),
                deliveries_by_station.get(station_id, []),
            )
        )
    world.interventions = []
    return reports
