#!/usr/bin/env python3
"""
Player and debug commands.

Commands are checked twice: synchronously when submitted (against the
last committed world) and again at the tick boundary, where earlier
commands in the same batch may have changed what is valid. A rejected
command never touches state; it only leaves a line in the problems feed.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, List, Optional

from frontier.context import SimContext, log_event
from frontier.errors import CommandRejected, InvalidLayer
from frontier.fleets import ROLE_TASKS, WEIGHT_KEYS
from frontier.helper.modifiers import pick_modifier
from frontier.helper.world_helpers import create_fleet, create_station, derive_unit, hop_distance
from frontier.knowledge import as_layer, cooldown_remaining, refresh_layer
from frontier.models import SIM_CONFIG
from frontier.models import (
    World,
    Command,
    CommandKind,
    CommandResult,
    Fleet,
    FleetRole,
    FleetState,
    Intent,
    Layer,
    PirateBase,
    RiskTolerance,
    AutonomyTier,
    Station,
    StationKind,
    StationState,
    StationVerb,
    TaskType,
    ZoneControl,
)
from frontier.pirates import base_doctrine, spawn_group

logger = logging.getLogger("frontier.orders")

DEBUG_COMMANDS = SIM_CONFIG.simulation.debug_commands
_VERBS = SIM_CONFIG.stations.verbs
STABILIZE_DEBT_RELIEF = _VERBS.stabilize_debt_relief
STABILIZE_INTEGRITY = _VERBS.stabilize_integrity
REINFORCE_INTEGRITY = _VERBS.reinforce_integrity

STATION_TASKS = (TaskType.ESCORT, TaskType.RESUPPLY)
SPAWN_KINDS = ("pirate_group", "station", "fleet")


# ---------- Lookups ----------


def _fleet(world: World, cmd: Command) -> Fleet:
    fleet = world.fleets.get(cmd.fleet_id) if cmd.fleet_id is not None else None
    if fleet is None:
        raise CommandRejected("unknown_fleet", f"fleet {cmd.fleet_id}")
    return fleet


def _station(world: World, station_id: Optional[int], reason: str = "unknown_station") -> Station:
    station = world.stations.get(station_id) if station_id is not None else None
    if station is None:
        raise CommandRejected(reason, f"station {station_id}")
    return station


def _zone(world: World, cmd: Command) -> int:
    if cmd.zone_id is None or cmd.zone_id not in world.zones:
        raise CommandRejected("unknown_zone", f"zone {cmd.zone_id}")
    return cmd.zone_id


def _live_fleet(world: World, cmd: Command) -> Fleet:
    fleet = _fleet(world, cmd)
    if fleet.state == FleetState.DISABLED:
        raise CommandRejected("invalid_transition", f"fleet {fleet.id} is disabled")
    return fleet


def _intent_for(world: World, cmd: Command, fleet: Fleet) -> Optional[Intent]:
    if cmd.task is None:
        return None
    try:
        task = TaskType(cmd.task)
    except ValueError:
        raise CommandRejected("invalid_task", str(cmd.task)) from None
    if task not in ROLE_TASKS[fleet.role]:
        raise CommandRejected("role_mismatch", f"{fleet.role.value} fleets cannot {task.value}")

    if task in STATION_TASKS:
        station = _station(world, cmd.target_id, "unknown_target")
        if station.state == StationState.FAILED:
            raise CommandRejected("invalid_transition", f"station {station.id} has failed")
        return Intent(task=task, zone_id=station.zone_id, target_id=station.id)
    if task == TaskType.ASSAULT:
        base = world.bases.get(cmd.target_id) if cmd.target_id is not None else None
        if base is None:
            raise CommandRejected("unknown_target", f"base {cmd.target_id}")
        if not base.boss_alive:
            raise CommandRejected("invalid_transition", f"base {base.id} has no boss left")
        return Intent(task=task, zone_id=base.zone_id, target_id=base.id)
    return Intent(task=task, zone_id=_zone(world, cmd))


def _layer(cmd: Command) -> Layer:
    try:
        return as_layer(cmd.layer)
    except InvalidLayer as exc:
        raise CommandRejected("invalid_layer", str(exc)) from None


def _weights(cmd: Command) -> Dict[str, float]:
    raw = cmd.weights or {}
    if not raw or set(raw) - set(WEIGHT_KEYS):
        raise CommandRejected("invalid_weights", f"expected keys {', '.join(WEIGHT_KEYS)}")
    weights = {}
    for key in WEIGHT_KEYS:
        value = raw.get(key, 0.0)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0:
            raise CommandRejected("invalid_weights", f"{key}={value!r}")
        weights[key] = float(value)
    total = sum(weights.values())
    if total <= 0.0:
        raise CommandRejected("invalid_weights", "weights must not all be zero")
    return {key: value / total for key, value in weights.items()}


def _require_debug(cmd: Command) -> None:
    if not DEBUG_COMMANDS:
        raise CommandRejected("debug_disabled", cmd.kind.value)


def _boundary_time(world: World) -> float:
    # commands land at the start of the next tick and share its clock
    return (world.tick + 1) * world.tick_seconds


def _nearest_base(world: World, zone_id: int) -> PirateBase:
    ranked = []
    for base in world.bases.values():
        hops = hop_distance(world, base.zone_id, zone_id)
        if hops is not None:
            ranked.append((hops, base.id))
    if not ranked:
        raise CommandRejected("unknown_target", f"no pirate base can reach zone {zone_id}")
    return world.bases[min(ranked)[1]]


# ---------- Validators ----------


def _check_change_intent(world: World, cmd: Command) -> None:
    _intent_for(world, cmd, _live_fleet(world, cmd))


def _check_risk_tolerance(world: World, cmd: Command) -> None:
    _fleet(world, cmd)
    if cmd.tier not in {t.value for t in RiskTolerance}:
        raise CommandRejected("invalid_tier", str(cmd.tier))


def _check_weights(world: World, cmd: Command) -> None:
    _fleet(world, cmd)
    _weights(cmd)


def _check_escort(world: World, cmd: Command) -> None:
    fleet = _live_fleet(world, cmd)
    if fleet.role != FleetRole.SECURITY:
        raise CommandRejected("role_mismatch", f"fleet {fleet.id} is {fleet.role.value}")
    station = _station(world, cmd.target_id, "unknown_target")
    if station.state == StationState.FAILED:
        raise CommandRejected("invalid_transition", f"station {station.id} has failed")


def _check_autonomy(world: World, cmd: Command) -> None:
    _fleet(world, cmd)
    if cmd.tier not in {t.value for t in AutonomyTier}:
        raise CommandRejected("invalid_tier", str(cmd.tier))


def _check_station_verb(world: World, cmd: Command) -> None:
    station = _station(world, cmd.station_id)
    if cmd.verb is None:
        raise CommandRejected("invalid_command", "missing verb")
    verb = StationVerb(cmd.verb)
    if station.state in (StationState.FAILED, StationState.DEPLOYING):
        raise CommandRejected("invalid_transition", f"station {station.id} is {station.state.value}")
    if verb == StationVerb.EVACUATE:
        if station.state != StationState.FAILING:
            raise CommandRejected("invalid_transition", "only failing stations can be evacuated")
        if station.evacuating:
            raise CommandRejected("invalid_transition", f"station {station.id} is already evacuating")


def _check_refresh(world: World, cmd: Command) -> None:
    zone_id = _zone(world, cmd)
    layer = _layer(cmd)
    remaining = cooldown_remaining(world.knowledge[zone_id][layer], _boundary_time(world))
    if remaining > 0.0:
        raise CommandRejected("cooldown_active", f"{remaining:.1f}s left")


def _check_build_station(world: World, cmd: Command) -> None:
    zone_id = _zone(world, cmd)
    if cmd.station_kind is None:
        raise CommandRejected("invalid_command", "missing station kind")
    if world.zones[zone_id].control == ZoneControl.PIRATE:
        raise CommandRejected("invalid_transition", f"zone {zone_id} is pirate held")


def _check_build_fleet(world: World, cmd: Command) -> None:
    zone_id = _zone(world, cmd)
    if cmd.role is None:
        raise CommandRejected("invalid_command", "missing role")
    if world.zones[zone_id].control == ZoneControl.PIRATE:
        raise CommandRejected("invalid_transition", f"zone {zone_id} is pirate held")


def _check_reclaim(world: World, cmd: Command) -> None:
    derelict = world.derelicts.get(cmd.target_id) if cmd.target_id is not None else None
    if derelict is None:
        raise CommandRejected("unknown_target", f"derelict {cmd.target_id}")
    if derelict.reclaimed:
        raise CommandRejected("invalid_transition", f"derelict {derelict.id} already reclaimed")
    if world.zones[derelict.zone_id].control == ZoneControl.PIRATE:
        raise CommandRejected("invalid_transition", f"zone {derelict.zone_id} is pirate held")


def _check_debug_spawn(world: World, cmd: Command) -> None:
    _require_debug(cmd)
    zone_id = _zone(world, cmd)
    if cmd.spawn not in SPAWN_KINDS:
        raise CommandRejected("invalid_command", f"cannot spawn {cmd.spawn!r}")
    if cmd.spawn == "pirate_group":
        _nearest_base(world, zone_id)


def _check_debug_zone(world: World, cmd: Command) -> None:
    _require_debug(cmd)
    _zone(world, cmd)


VALIDATORS: Dict[CommandKind, Callable[[World, Command], None]] = {
    CommandKind.CHANGE_INTENT: _check_change_intent,
    CommandKind.SET_RISK_TOLERANCE: _check_risk_tolerance,
    CommandKind.SET_PRIORITY_WEIGHTS: _check_weights,
    CommandKind.ASSIGN_ESCORT: _check_escort,
    CommandKind.SET_AUTONOMY_TIER: _check_autonomy,
    CommandKind.STATION_VERB: _check_station_verb,
    CommandKind.REFRESH_KNOWLEDGE: _check_refresh,
    CommandKind.BUILD_STATION: _check_build_station,
    CommandKind.BUILD_FLEET: _check_build_fleet,
    CommandKind.RECLAIM_DERELICT: _check_reclaim,
    CommandKind.DEBUG_SPAWN: _check_debug_spawn,
    CommandKind.DEBUG_REVEAL: _check_debug_zone,
    CommandKind.DEBUG_RANDOMIZE_MODIFIER: _check_debug_zone,
}


def validate_command(world: World, cmd: Command) -> CommandResult:
    validator = VALIDATORS.get(cmd.kind)
    if validator is None:
        return CommandResult(accepted=False, reason="invalid_command", detail=str(cmd.kind))
    try:
        validator(world, cmd)
    except CommandRejected as exc:
        return CommandResult(accepted=False, reason=exc.reason, detail=exc.detail)
    except ValueError as exc:
        # malformed enum values in an otherwise well-shaped command
        return CommandResult(accepted=False, reason="invalid_command", detail=str(exc))
    return CommandResult(accepted=True)


# ---------- Appliers ----------


def _retarget(fleet: Fleet) -> None:
    """Point a fleet at its new intent from wherever it is now."""
    fleet.path = []
    fleet.task_seconds = 0.0
    if fleet.state in (FleetState.DAMAGED, FleetState.REFUELING):
        return
    if fleet.intent is None:
        if fleet.state != FleetState.IDLE:
            fleet.state = FleetState.RETURNING
        return
    fleet.state = FleetState.IN_TRANSIT if fleet.next_zone is not None else FleetState.IDLE


def _apply_change_intent(world: World, ctx: SimContext, cmd: Command) -> str:
    fleet = world.fleets[cmd.fleet_id]
    fleet.intent = _intent_for(world, cmd, fleet)
    _retarget(fleet)
    if fleet.intent is None:
        return f"fleet #{fleet.id} stood down"
    return f"fleet #{fleet.id} assigned {fleet.intent.task.value} at zone {fleet.intent.zone_id}"


def _apply_risk_tolerance(world: World, ctx: SimContext, cmd: Command) -> str:
    fleet = world.fleets[cmd.fleet_id]
    fleet.risk_tolerance = RiskTolerance(cmd.tier)
    return f"fleet #{fleet.id} risk tolerance {fleet.risk_tolerance.value}"


def _apply_weights(world: World, ctx: SimContext, cmd: Command) -> str:
    fleet = world.fleets[cmd.fleet_id]
    fleet.priority_weights = _weights(cmd)
    return f"fleet #{fleet.id} priorities updated"


def _apply_escort(world: World, ctx: SimContext, cmd: Command) -> str:
    fleet = world.fleets[cmd.fleet_id]
    station = world.stations[cmd.target_id]
    fleet.intent = Intent(task=TaskType.ESCORT, zone_id=station.zone_id, target_id=station.id)
    _retarget(fleet)
    return f"Security fleet #{fleet.id} escorting station #{station.id}"


def _apply_autonomy(world: World, ctx: SimContext, cmd: Command) -> str:
    fleet = world.fleets[cmd.fleet_id]
    fleet.autonomy = AutonomyTier(cmd.tier)
    return f"fleet #{fleet.id} autonomy {fleet.autonomy.value}"


def _apply_station_verb(world: World, ctx: SimContext, cmd: Command) -> str:
    station = world.stations[cmd.station_id]
    verb = StationVerb(cmd.verb)
    if verb == StationVerb.STABILIZE:
        station.maintenance_debt = max(0.0, station.maintenance_debt - STABILIZE_DEBT_RELIEF)
        station.integrity = min(100.0, station.integrity + STABILIZE_INTEGRITY)
        station.intervention_pending = True
    elif verb == StationVerb.REINFORCE:
        station.integrity = min(100.0, station.integrity + REINFORCE_INTEGRITY)
        station.intervention_pending = True
    elif verb == StationVerb.DOWNSCALE:
        station.downscaled = not station.downscaled
    elif verb == StationVerb.ISOLATE:
        station.isolated = not station.isolated
    elif verb == StationVerb.EVACUATE:
        station.evacuating = True
    return f"{verb.value} ordered for {station.kind.value} #{station.id}"


def _apply_refresh(world: World, ctx: SimContext, cmd: Command) -> str:
    layer = _layer(cmd)
    refresh_layer(world, cmd.zone_id, layer, ctx.elapsed, world.pressure)
    return f"zone {cmd.zone_id} {layer.name.title()} survey refreshed"


def _apply_build_station(world: World, ctx: SimContext, cmd: Command) -> str:
    station = create_station(world, StationKind(cmd.station_kind), cmd.zone_id)
    return f"{station.kind.value} #{station.id} construction started in zone {station.zone_id}"


def _apply_build_fleet(world: World, ctx: SimContext, cmd: Command) -> str:
    fleet = create_fleet(world, FleetRole(cmd.role), cmd.zone_id)
    return f"{fleet.role.value} fleet #{fleet.id} commissioned in zone {fleet.zone_id}"


def _apply_reclaim(world: World, ctx: SimContext, cmd: Command) -> str:
    derelict = world.derelicts[cmd.target_id]
    derelict.reclaimed = True
    station = create_station(world, derelict.station_kind, derelict.zone_id)
    station.ore = min(station.ore_capacity, derelict.ore)
    return f"derelict #{derelict.id} reclaimed as {station.kind.value} #{station.id}"


def _apply_debug_spawn(world: World, ctx: SimContext, cmd: Command) -> str:
    zone_id = cmd.zone_id
    if cmd.spawn == "station":
        kind = StationKind(cmd.station_kind) if cmd.station_kind else StationKind.MINING_OUTPOST
        station = create_station(world, kind, zone_id, operational=True)
        return f"debug: spawned {kind.value} #{station.id} in zone {zone_id}"
    if cmd.spawn == "fleet":
        role = FleetRole(cmd.role) if cmd.role else FleetRole.SECURITY
        fleet = create_fleet(world, role, zone_id)
        return f"debug: spawned {role.value} fleet #{fleet.id} in zone {zone_id}"
    base = _nearest_base(world, zone_id)
    group = spawn_group(world, ctx, base, base_doctrine(world, base, ctx.elapsed), "zone", zone_id, zone_id)
    return f"debug: spawned pirate group #{group.id} toward zone {zone_id}"


def _apply_debug_reveal(world: World, ctx: SimContext, cmd: Command) -> str:
    for layer in Layer:
        refresh_layer(world, cmd.zone_id, layer, ctx.elapsed, world.pressure, force=True)
    return f"debug: zone {cmd.zone_id} revealed"


def _apply_debug_modifier(world: World, ctx: SimContext, cmd: Command) -> str:
    zone = world.zones[cmd.zone_id]
    zone.modifier = pick_modifier(derive_unit(world.seed, "modifier", world.tick, zone.id))
    label = zone.modifier.value if zone.modifier else "none"
    return f"debug: zone {zone.id} modifier set to {label}"


APPLIERS: Dict[CommandKind, Callable[[World, SimContext, Command], str]] = {
    CommandKind.CHANGE_INTENT: _apply_change_intent,
    CommandKind.SET_RISK_TOLERANCE: _apply_risk_tolerance,
    CommandKind.SET_PRIORITY_WEIGHTS: _apply_weights,
    CommandKind.ASSIGN_ESCORT: _apply_escort,
    CommandKind.SET_AUTONOMY_TIER: _apply_autonomy,
    CommandKind.STATION_VERB: _apply_station_verb,
    CommandKind.REFRESH_KNOWLEDGE: _apply_refresh,
    CommandKind.BUILD_STATION: _apply_build_station,
    CommandKind.BUILD_FLEET: _apply_build_fleet,
    CommandKind.RECLAIM_DERELICT: _apply_reclaim,
    CommandKind.DEBUG_SPAWN: _apply_debug_spawn,
    CommandKind.DEBUG_REVEAL: _apply_debug_reveal,
    CommandKind.DEBUG_RANDOMIZE_MODIFIER: _apply_debug_modifier,
}


def apply_commands(world: World, ctx: SimContext, commands: List[Command]) -> List[str]:
    """
    Apply a batch at the tick boundary, in order. Returns one line per
    command rejected here.
    """
    rejected: List[str] = []
    for cmd in commands:
        result = validate_command(world, cmd)
        label = cmd.kind.value if isinstance(cmd.kind, CommandKind) else str(cmd.kind)
        if not result.accepted:
            line = f"{label} rejected: {result.reason}" + (f" ({result.detail})" if result.detail else "")
            logger.info(line)
            log_event(world, ctx, "command_rejected", line, problem=True)
            rejected.append(line)
            continue
        text = APPLIERS[cmd.kind](world, ctx, cmd)
        logger.info("applied %s: %s", label, text)
        log_event(world, ctx, "command", text, zones=[cmd.zone_id] if cmd.zone_id is not None else [])
    return rejected


class CommandQueue:
    """Ordered buffer between the input side and the tick loop."""

    def __init__(self) -> None:
        self._pending: List[Command] = []

    def __len__(self) -> int:
        return len(self._pending)

    def submit(self, world: World, cmd: Command) -> CommandResult:
        result = validate_command(world, cmd)
        if result.accepted:
            self._pending.append(cmd)
        else:
            logger.info("command %s rejected: %s", cmd.kind, result.reason)
        return result

    def drain(self) -> List[Command]:
        pending, self._pending = self._pending, []
        return pending


# ---------- Wire format ----------


def _optional_int(payload: Dict[str, Any], key: str) -> Optional[int]:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise CommandRejected("invalid_command", f"{key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise CommandRejected("invalid_command", f"{key} must be an integer") from None


def parse_command(payload: Dict[str, Any]) -> Command:
    """Build a Command from its JSON shape; enum fields stay unchecked until validation."""
    try:
        kind = CommandKind(payload.get("kind"))
    except ValueError:
        raise CommandRejected("invalid_command", f"unknown kind {payload.get('kind')!r}") from None
    layer = payload.get("layer")
    weights = payload.get("weights")
    if weights is not None and not isinstance(weights, dict):
        raise CommandRejected("invalid_weights", "weights must be an object")
    task = None
    if payload.get("task"):
        try:
            task = TaskType(payload["task"])
        except ValueError:
            raise CommandRejected("invalid_task", str(payload["task"])) from None
    try:
        return Command(
            kind=kind,
            fleet_id=_optional_int(payload, "fleet_id"),
            station_id=_optional_int(payload, "station_id"),
            zone_id=_optional_int(payload, "zone_id"),
            target_id=_optional_int(payload, "target_id"),
            task=task,
            layer=layer,
            tier=payload.get("tier"),
            weights=weights,
            verb=StationVerb(payload["verb"]) if payload.get("verb") else None,
            station_kind=StationKind(payload["station_kind"]) if payload.get("station_kind") else None,
            role=FleetRole(payload["role"]) if payload.get("role") else None,
            spawn=payload.get("spawn"),
            source=payload.get("source"),
        )
    except ValueError as exc:
        raise CommandRejected("invalid_command", str(exc)) from None


def screen_payloads(world: Optional[World], payloads: List[Dict[str, Any]]) -> List[CommandResult]:
    """
    Check wire payloads against the last committed world, one result per
    payload. Without a world only the shape can be checked; the tick
    boundary repeats the full check either way.
    """
    results: List[CommandResult] = []
    for payload in payloads:
        try:
            cmd = parse_command(payload)
        except CommandRejected as exc:
            results.append(CommandResult(accepted=False, reason=exc.reason, detail=exc.detail))
            continue
        results.append(validate_command(world, cmd) if world is not None else CommandResult(accepted=True))
    return results
