"""
Crisis bookkeeping.

A crisis is opened once per (station, type) when the station shows the
matching trigger, mirrors the station's lifecycle state from then on,
and pushes pressure into its zone (and more faintly into neighbours)
while Strained or Failing. When the station fails, the terminal cause
picks the outcome handed to the consequence resolver.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from frontier.consequences import Consequence
from frontier.context import SimContext, WorldView, log_event
from frontier.models import SIM_CONFIG
from frontier.models import (
    World,
    Crisis,
    CrisisStage,
    CrisisType,
    StationOutcome,
    StationState,
)
from frontier.pressure import add_pressure, dominant_source, spread_pressure
from frontier.stations import StationReport

logger = logging.getLogger("frontier.crisis")

CASCADE_PER_SECOND: Dict[CrisisStage, float] = {
    CrisisStage(name): value for name, value in SIM_CONFIG.crisis.cascade_per_second.items()
}
FACTION_PER_SECOND = SIM_CONFIG.crisis.faction_per_second
NEIGHBOR_FALLOFF = SIM_CONFIG.crisis.neighbor_falloff
CASCADE_HOPS = SIM_CONFIG.crisis.cascade_hops

# crisis types that can open as an early warning while the station still runs
WARNING_TYPES = (CrisisType.FUEL_SHORTAGE, CrisisType.PIRATE_HARASSMENT)
# crisis types that also destabilise the local faction balance
FACTION_TYPES = (CrisisType.FUEL_SHORTAGE, CrisisType.MAINTENANCE_FAILURE)

STAGE_BY_STATE: Dict[StationState, CrisisStage] = {
    StationState.STRAINED: CrisisStage.STRAINED,
    StationState.FAILING: CrisisStage.FAILING,
}


def _integrity_outcome(prev: WorldView, zone_id: int) -> StationOutcome:
    if dominant_source(prev.pressure, zone_id) == "pirate":
        return StationOutcome.CAPTURED
    return StationOutcome.DESTROYED


OUTCOME_BY_TERMINAL = {
    "integrity": _integrity_outcome,
    "timeout": lambda prev, zone_id: StationOutcome.ABANDONED,
    "evacuated": lambda prev, zone_id: StationOutcome.TRANSFORMED,
}


@dataclass
class CrisisTickResult:
    consequences: List[Consequence] = field(default_factory=list)
    opened: List[int] = field(default_factory=list)
    resolved: List[int] = field(default_factory=list)


def open_crises(world: World, station_id: int) -> List[Crisis]:
    return sorted(
        (c for c in world.crises.values() if c.station_id == station_id),
        key=lambda c: c.id,
    )


def _open(world: World, ctx: SimContext, report: StationReport, crisis_type: CrisisType, stage: CrisisStage) -> Crisis:
    crisis = Crisis(
        id=world.allocate_id(),
        crisis_type=crisis_type,
        stage=stage,
        station_id=report.station_id,
        zone_id=report.zone_id,
        opened_at=ctx.elapsed,
        escalated=stage != CrisisStage.STABLE,
    )
    world.crises[crisis.id] = crisis
    logger.info("crisis %s opened: station %s %s %s", crisis.id, report.station_id, crisis_type.value, stage.value)
    log_event(
        world,
        ctx,
        "crisis_opened",
        f"Station #{report.station_id} {crisis_type.value} crisis: {stage.value}",
        zones=[report.zone_id],
        entities=[report.station_id, crisis.id],
        problem=True,
    )
    return crisis


def _set_stage(world: World, ctx: SimContext, crisis: Crisis, stage: CrisisStage) -> None:
    if crisis.stage == stage:
        return
    crisis.stage = stage
    crisis.timer = 0.0
    if stage in (CrisisStage.STRAINED, CrisisStage.FAILING):
        crisis.escalated = True
    if stage == CrisisStage.RESOLVED:
        text = f"Station #{crisis.station_id} {crisis.crisis_type.value} crisis resolved"
    else:
        text = f"Station #{crisis.station_id} {crisis.crisis_type.value} crisis: {stage.value}"
    log_event(world, ctx, "crisis_stage", text, zones=[crisis.zone_id], entities=[crisis.station_id, crisis.id], problem=True)


def _archive(world: World, ctx: SimContext, crisis: Crisis, outcome: Optional[StationOutcome] = None) -> None:
    _set_stage(world, ctx, crisis, CrisisStage.RESOLVED)
    crisis.resolved_at = ctx.elapsed
    crisis.outcome = outcome
    world.crises.pop(crisis.id, None)
    world.crisis_archive.append(crisis)


def _synced_stage(crisis: Crisis, report: StationReport) -> CrisisStage:
    stage = STAGE_BY_STATE.get(report.state)
    if stage is not None:
        return stage
    # station is Operational again
    if crisis.escalated:
        return CrisisStage.RESOLVED
    if crisis.crisis_type in report.active:
        return CrisisStage.STABLE
    return CrisisStage.RESOLVED


def _cascade(world: World, prev: WorldView, ctx: SimContext, crisis: Crisis) -> None:
    rate = CASCADE_PER_SECOND.get(crisis.stage, 0.0)
    if rate <= 0.0:
        return
    station = prev.stations.get(crisis.station_id)
    if station is not None and station.isolated:
        return
    touched = spread_pressure(world, crisis.zone_id, rate * ctx.dt, CASCADE_HOPS, NEIGHBOR_FALLOFF, "pirate")
    if crisis.crisis_type in FACTION_TYPES:
        add_pressure(world.pressure, crisis.zone_id, FACTION_PER_SECOND * ctx.dt, "faction")
    if touched:
        reached = {
            s.id
            for s in prev.stations.values()
            if s.zone_id in touched and s.state != StationState.FAILED and s.id != crisis.station_id
        }
        if not reached.issubset(crisis.affected_ids):
            crisis.affected_ids = sorted(reached.union(crisis.affected_ids))


def advance_crises(
    world: World, prev: WorldView, ctx: SimContext, reports: List[StationReport]
) -> CrisisTickResult:
    result = CrisisTickResult()

    for report in sorted(reports, key=lambda r: r.station_id):
        existing: Dict[CrisisType, Crisis] = {c.crisis_type: c for c in open_crises(world, report.station_id)}

        if report.terminal is not None:
            outcome = OUTCOME_BY_TERMINAL[report.terminal](prev, report.zone_id)
            crisis_ids = []
            for crisis in existing.values():
                crisis_ids.append(crisis.id)
                _archive(world, ctx, crisis, outcome)
                result.resolved.append(crisis.id)
            result.consequences.append(
                Consequence(
                    kind="station",
                    entity_id=report.station_id,
                    zone_id=report.zone_id,
                    outcome=outcome.value,
                    crisis_ids=crisis_ids,
                    detail=report.terminal,
                )
            )
            continue

        to_open: List[Tuple[CrisisType, CrisisStage]] = []
        if report.cause is not None and report.cause not in existing:
            to_open.append((report.cause, STAGE_BY_STATE[report.state]))
        if report.state == StationState.OPERATIONAL:
            for crisis_type in WARNING_TYPES:
                if crisis_type in report.active and crisis_type not in existing:
                    to_open.append((crisis_type, CrisisStage.STABLE))
        for crisis_type, stage in to_open:
            crisis = _open(world, ctx, report, crisis_type, stage)
            result.opened.append(crisis.id)

        for crisis in existing.values():
            stage = _synced_stage(crisis, report)
            if stage == CrisisStage.RESOLVED:
                _archive(world, ctx, crisis)
                result.resolved.append(crisis.id)
            elif stage != crisis.stage:
                _set_stage(world, ctx, crisis, stage)
            else:
                crisis.timer += ctx.dt

    for crisis_id in sorted(world.crises):
        _cascade(world, prev, ctx, world.crises[crisis_id])

    return result
