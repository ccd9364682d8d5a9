from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Dict, List

from frontier.models import SIM_CONFIG
from frontier.models import (
    World,
    Zone,
    Route,
    KnowledgeState,
    PressureField,
    Station,
    Fleet,
    Crisis,
    PirateGroup,
    PirateBase,
    Boss,
    Raid,
    Ambush,
    Intervention,
    Observation,
    SupportRequest,
    HistoricalEvent,
)

logger = logging.getLogger("frontier.world")

EVENT_LIMIT = SIM_CONFIG.simulation.event_limit
PROBLEMS_LIMIT = SIM_CONFIG.simulation.problems_feed_limit


@dataclass(frozen=True)
class SimContext:
    """Explicit run clock handed to every engine for one tick."""

    tick: int  # the tick being produced
    dt: float
    elapsed: float  # simulated seconds at the end of this tick


@dataclass(frozen=True)
class WorldView:
    """
    The committed state at the start of a tick. Engines read other
    subsystems' data from here, never from the world being written.
    """

    tick: int
    elapsed: float
    zones: Dict[int, Zone]
    routes: Dict[int, Route]
    knowledge: Dict[int, List[KnowledgeState]]
    pressure: PressureField
    stations: Dict[int, Station]
    fleets: Dict[int, Fleet]
    crises: Dict[int, Crisis]
    pirate_groups: Dict[int, PirateGroup]
    bases: Dict[int, PirateBase]
    bosses: Dict[int, Boss]
    raids: List[Raid]
    ambushes: List[Ambush]
    interventions: List[Intervention]
    observations: List[Observation]
    support_requests: List[SupportRequest]


def freeze_view(world: World) -> WorldView:
    return WorldView(
        tick=world.tick,
        elapsed=world.elapsed,
        zones=copy.deepcopy(world.zones),
        routes=world.routes,
        knowledge=copy.deepcopy(world.knowledge),
        pressure=copy.deepcopy(world.pressure),
        stations=copy.deepcopy(world.stations),
        fleets=copy.deepcopy(world.fleets),
        crises=copy.deepcopy(world.crises),
        pirate_groups=copy.deepcopy(world.pirate_groups),
        bases=copy.deepcopy(world.bases),
        bosses=copy.deepcopy(world.bosses),
        raids=list(world.raids),
        ambushes=list(world.ambushes),
        interventions=list(world.interventions),
        observations=list(world.observations),
        support_requests=list(world.support_requests),
    )


def log_event(
    world: World,
    ctx: SimContext,
    kind: str,
    text: str,
    zones: List[int] | None = None,
    entities: List[int] | None = None,
    problem: bool = False,
) -> None:
    """Record an event in history, the rolling event list and optionally the problems feed."""
    line = f"t={ctx.tick}: {text}"
    world.events.append(line)
    if len(world.events) > EVENT_LIMIT:
        del world.events[: len(world.events) - EVENT_LIMIT]
    if problem:
        world.problems.append(line)
        if len(world.problems) > PROBLEMS_LIMIT:
            del world.problems[: len(world.problems) - PROBLEMS_LIMIT]
    world.history.append(
        HistoricalEvent(
            tick=ctx.tick,
            kind=kind,
            zones=list(zones or []),
            entities=list(entities or []),
            text=text,
        )
    )
