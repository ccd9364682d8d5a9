from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from frontier.context import SimContext, log_event
from frontier.models import SIM_CONFIG
from frontier.models import (
    World,
    Derelict,
    FleetLoss,
    StationOutcome,
    StationState,
    ZoneControl,
)
from frontier.pressure import add_pressure
from frontier.helper.world_helpers import hop_table

logger = logging.getLogger("frontier.consequences")

_BOSS = SIM_CONFIG.pirates.boss
DEFEAT_REDUCTION = _BOSS.defeat_pressure_reduction
REDISTRIBUTION = _BOSS.redistribution_fraction
DEFEAT_COOLDOWN = _BOSS.defeat_cooldown_seconds


@dataclass
class Consequence:
    """A terminal event waiting for its one irreversible world mutation."""

    kind: str  # "station" | "fleet" | "boss"
    entity_id: int
    zone_id: int
    outcome: str  # StationOutcome value, "Abandoned" (fleet) or "Defeated" (boss)
    crisis_ids: List[int] = field(default_factory=list)
    detail: Optional[str] = None


def _live_player_stations(world: World, zone_id: int) -> bool:
    return any(
        s.zone_id == zone_id and s.state != StationState.FAILED for s in world.stations.values()
    )


def _settle_zone_control(world: World, zone_id: int, outcome: StationOutcome) -> None:
    zone = world.zones[zone_id]
    if outcome == StationOutcome.CAPTURED:
        zone.control = ZoneControl.PIRATE
    elif not _live_player_stations(world, zone_id) and zone.control == ZoneControl.PLAYER:
        zone.control = ZoneControl.NEUTRAL


def _resolve_station(world: World, ctx: SimContext, consequence: Consequence) -> Optional[str]:
    station = world.stations.get(consequence.entity_id)
    if station is None:
        return None
    if station.outcome is not None:
        logger.warning(
            "station %s already resolved as %s; ignoring %s",
            station.id, station.outcome.value, consequence.outcome,
        )
        world.diagnostics.append(f"t={ctx.tick}: duplicate consequence for station {station.id}")
        return None
    outcome = StationOutcome(consequence.outcome)
    station.state = StationState.FAILED
    station.outcome = outcome
    _settle_zone_control(world, station.zone_id, outcome)

    if outcome == StationOutcome.TRANSFORMED:
        derelict = Derelict(
            id=world.allocate_id(),
            zone_id=station.zone_id,
            station_kind=station.kind,
            source_station_id=station.id,
            outcome=outcome,
            ore=station.ore,
            created_at=ctx.elapsed,
        )
        world.derelicts[derelict.id] = derelict
        text = f"{station.kind.value} #{station.id} evacuated; derelict #{derelict.id} left in zone {station.zone_id}"
    elif outcome == StationOutcome.ABANDONED:
        derelict = Derelict(
            id=world.allocate_id(),
            zone_id=station.zone_id,
            station_kind=station.kind,
            source_station_id=station.id,
            outcome=outcome,
            created_at=ctx.elapsed,
        )
        world.derelicts[derelict.id] = derelict
        text = f"{station.kind.value} #{station.id} abandoned; ruins #{derelict.id} remain"
    elif outcome == StationOutcome.CAPTURED:
        text = f"{station.kind.value} #{station.id} captured by pirates; zone {station.zone_id} lost"
    else:
        text = f"{station.kind.value} #{station.id} destroyed"
    logger.info(text)
    log_event(
        world, ctx, f"station_{outcome.value.lower()}", text,
        zones=[station.zone_id], entities=[station.id], problem=True,
    )
    return text


def _resolve_fleet(world: World, ctx: SimContext, consequence: Consequence) -> Optional[str]:
    fleet = world.fleets.pop(consequence.entity_id, None)
    if fleet is None:
        return None
    world.lost_fleets.append(
        FleetLoss(
            fleet_id=fleet.id,
            role=fleet.role,
            zone_id=fleet.zone_id,
            tick=ctx.tick,
            reason=consequence.detail or "abandoned",
        )
    )
    text = f"{fleet.role.value} fleet #{fleet.id} abandoned near zone {fleet.zone_id}"
    logger.info(text)
    log_event(world, ctx, "fleet_abandoned", text, zones=[fleet.zone_id], entities=[fleet.id], problem=True)
    return text


def _resolve_boss(world: World, ctx: SimContext, consequence: Consequence) -> Optional[str]:
    base = world.bases.get(consequence.entity_id)
    if base is None or not base.boss_alive:
        return None
    base.boss_alive = False
    base.encounter = None
    base.suppressed_until = ctx.elapsed + DEFEAT_COOLDOWN

    # displaced pressure moves outwards instead of vanishing
    entry = world.pressure.zones.get(base.zone_id)
    displaced = entry.pirate * DEFEAT_REDUCTION if entry is not None else 0.0
    add_pressure(world.pressure, base.zone_id, -displaced, "pirate")
    neighbours = sorted(z for z, h in hop_table(world).get(base.zone_id, {}).items() if h == 1)
    if neighbours and displaced > 0.0:
        share = displaced * REDISTRIBUTION / len(neighbours)
        for zone_id in neighbours:
            add_pressure(world.pressure, zone_id, share, "pirate")

    world.zones[base.zone_id].control = ZoneControl.NEUTRAL
    text = f"Boss of pirate base #{base.id} defeated; zone {base.zone_id} pressure broken"
    logger.info(text)
    log_event(world, ctx, "boss_defeated", text, zones=[base.zone_id], entities=[base.id], problem=True)
    return text


RESOLVERS = {
    "station": _resolve_station,
    "fleet": _resolve_fleet,
    "boss": _resolve_boss,
}


def resolve_consequences(world: World, ctx: SimContext, consequences: List[Consequence]) -> List[str]:
    """Apply each terminal event exactly once, in the order given."""
    applied: List[str] = []
    for consequence in consequences:
        text = RESOLVERS[consequence.kind](world, ctx, consequence)
        if text is not None:
            applied.append(text)
    return applied
