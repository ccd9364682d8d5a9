#!/usr/bin/env python3
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from frontier.consequences import resolve_consequences
from frontier.context import SimContext, freeze_view
from frontier.crisis import advance_crises
from frontier.fleets import advance_fleets
from frontier.helper.invariants import enforce_invariants
from frontier.knowledge import advance_knowledge
from frontier.models import Command, TickSummary, World
from frontier.orders import apply_commands
from frontier.pirates import advance_pirates
from frontier.pressure import decay_pressure
from frontier.stations import advance_stations

logger = logging.getLogger("frontier.world")


# ---------- Simulation (one fixed tick) ----------


def advance_world(world: World, commands: Optional[List[Command]] = None) -> TickSummary:
    """
    Advance the world by exactly one tick.

    Commands are applied at the boundary, then the committed state is
    frozen into a WorldView and every engine runs once, in a fixed order,
    reading other subsystems only through that view. Returns a
    TickSummary for the caller (worker, tests, replay).
    """
    ctx = SimContext(
        tick=world.tick + 1,
        dt=world.tick_seconds,
        elapsed=(world.tick + 1) * world.tick_seconds,
    )

    rejected = apply_commands(world, ctx, list(commands or []))
    prev = freeze_view(world)

    advance_knowledge(world, prev, ctx)
    decay_pressure(world, ctx)

    reports = advance_stations(world, prev, ctx)
    pirate_result = advance_pirates(world, prev, ctx)
    crisis_result = advance_crises(world, prev, ctx, reports)
    fleet_result = advance_fleets(world, prev, ctx)

    consequences = crisis_result.consequences + pirate_result.consequences + fleet_result.consequences
    applied = resolve_consequences(world, ctx, consequences)

    enforce_invariants(world)
    world.tick = ctx.tick

    transitions: Dict[str, int] = {}
    for report in reports:
        if report.state != report.previous:
            key = f"{report.previous.value}->{report.state.value}"
            transitions[key] = transitions.get(key, 0) + 1

    return TickSummary(
        tick=world.tick,
        transitions=transitions,
        crises_opened=crisis_result.opened,
        crises_resolved=crisis_result.resolved,
        decisions=fleet_result.decisions,
        pirate_spawns=pirate_result.spawns,
        consequences=applied,
        rejected_commands=rejected,
    )


def replay(world: World, command_log: Dict[int, List[Command]], ticks: int) -> List[TickSummary]:
    """
    Run `ticks` ticks, feeding each tick the commands logged for it
    (keyed by the tick being produced).
    """
    summaries = []
    for _ in range(ticks):
        summaries.append(advance_world(world, command_log.get(world.tick + 1, [])))
    return summaries
