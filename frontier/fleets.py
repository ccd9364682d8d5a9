"""
Fleet decision loop.

Every active fleet runs the same five stages each tick:

    Intent     the player-assigned task, untouched here except by Abort
    Awareness  what the fleet's knowledge says about its path and target
    Evaluation TotalRisk = BaseTaskRisk + FuelRisk + ThreatRisk
                           - CapabilityOffset + ZoneModifierRisk
    Decision   cheapest reachable action, ties to the least disruptive
    Outcome    state deltas plus a one-line report

Awareness reads the knowledge layers, never ground truth, so a stale
Threats reading can make a dangerous trip look safe. Nothing here is
random.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from frontier.consequences import Consequence
from frontier.context import SimContext, WorldView, log_event
from frontier.errors import IntentRequired
from frontier.helper.modifiers import richness_multiplier, zone_modifier_risk
from frontier.helper.world_helpers import find_path, hop_distance, path_distance, route_between
from frontier.knowledge import REFRESH_SOURCES, effective_layer, read_layer
from frontier.models import SIM_CONFIG
from frontier.models import (
    World,
    Fleet,
    FleetRole,
    FleetState,
    FleetAction,
    TaskType,
    RiskTolerance,
    AutonomyTier,
    AwarenessSnapshot,
    Intent,
    Layer,
    CrisisStage,
    StationKind,
    StationState,
    ZoneControl,
    Intervention,
    Observation,
    SupportRequest,
)
from frontier.pressure import add_pressure

logger = logging.getLogger("frontier.fleets")

_FLEETS = SIM_CONFIG.fleets

ROLE_TUNING = {FleetRole(name): tuning for name, tuning in _FLEETS.roles.items()}
ROLE_TASKS = {FleetRole(name): [TaskType(t) for t in tasks] for name, tasks in _FLEETS.role_tasks.items()}
TASK_RISK = {TaskType(name): value for name, value in _FLEETS.task_risk.items()}
CAPABILITY = {
    FleetRole(role): {TaskType(task): value for task, value in offsets.items()}
    for role, offsets in _FLEETS.capability.items()
}
TOLERANCE = {RiskTolerance(name): value for name, value in _FLEETS.tolerance.items()}
ACTION_COSTS = {FleetAction(name): cost for name, cost in _FLEETS.actions.items()}
AUTONOMY_ACTIONS = {
    AutonomyTier(name): [FleetAction(a) for a in actions] for name, actions in _FLEETS.autonomy.items()
}
DEFAULT_WEIGHTS = dict(_FLEETS.default_weights)
WEIGHT_KEYS = ("safety", "progress", "economy")

FUEL_PER_DISTANCE = _FLEETS.fuel_per_distance
COMFORTABLE_MARGIN = _FLEETS.comfortable_fuel_margin
UNCERTAINTY_PENALTY = _FLEETS.threat_uncertainty_penalty
REROUTE_THRESHOLD = _FLEETS.reroute_pressure_threshold
REFUEL_PER_SECOND = _FLEETS.refuel_per_second
DEPOT_REFUEL_PER_SECOND = _FLEETS.depot_refuel_per_second
MINING_PER_SECOND = _FLEETS.mining_per_second
SCOUT_SCAN_SECONDS = _FLEETS.scout_scan_seconds
PATROL_SUPPRESSION = _FLEETS.patrol_suppression_per_second
DISABLED_ABANDON_SECONDS = _FLEETS.disabled_abandon_seconds
RESCUE_FUEL_RATIO = _FLEETS.rescue_fuel_ratio
LOW_FUEL_RATIO = _FLEETS.low_fuel_ratio
CRITICAL_FUEL_RATIO = _FLEETS.critical_fuel_ratio
AMBUSH_FUEL_LOSS = _FLEETS.ambush_fuel_loss

ACTION_PRECEDENCE = {action: index for index, action in enumerate(FleetAction)}
STATION_TASKS = (TaskType.ESCORT, TaskType.RESUPPLY)
COMMITTED_STATES = (FleetState.RETURNING, FleetState.REFUELING, FleetState.DAMAGED)
STAGE_SEVERITY = {CrisisStage.STABLE: 0, CrisisStage.STRAINED: 1, CrisisStage.FAILING: 2, CrisisStage.RESOLVED: -1}
EPSILON = 1e-9


@dataclass
class RiskBreakdown:
    base: float
    fuel: float
    threat: float
    capability: float
    zone: float
    fuel_margin: float

    @property
    def total(self) -> float:
        return max(0.0, self.base + self.fuel + self.threat - self.capability + self.zone)


@dataclass
class Decision:
    action: FleetAction
    costs: Dict[FleetAction, float]
    risk: RiskBreakdown
    awareness: AwarenessSnapshot
    reroute: Optional[List[int]] = None


@dataclass
class FleetTickResult:
    decisions: Dict[str, int] = field(default_factory=dict)
    consequences: List[Consequence] = field(default_factory=list)


# ---------- Risk formulas ----------


def fuel_risk(margin: float) -> float:
    if margin >= COMFORTABLE_MARGIN:
        return 0.0
    if margin >= 0.0:
        return (COMFORTABLE_MARGIN - margin) * 2.0
    return COMFORTABLE_MARGIN * 2.0 + (-margin) * 3.0


def threat_risk(pirate_pressure: float, confidence: float) -> float:
    """Low confidence adds risk on its own, so missing data biases toward caution."""
    confidence = min(1.0, max(0.0, confidence))
    return (pirate_pressure / 100.0) * (0.5 + 0.5 * confidence) + (1.0 - confidence) * UNCERTAINTY_PENALTY


def normalized_weights(weights: Dict[str, float]) -> Dict[str, float]:
    merged = {k: max(0.0, float(weights.get(k, DEFAULT_WEIGHTS[k]))) for k in WEIGHT_KEYS}
    total = sum(merged.values())
    if total <= 0.0:
        return dict(DEFAULT_WEIGHTS)
    return {k: v / total for k, v in merged.items()}


def select_action(costs: Dict[FleetAction, float]) -> FleetAction:
    """Cheapest action; equal costs go to the earlier action in precedence order."""
    return min(costs, key=lambda action: (costs[action], ACTION_PRECEDENCE[action]))


# ---------- Paths and awareness ----------


def destination(fleet: Fleet) -> int:
    if fleet.state in (FleetState.IDLE, FleetState.IN_TRANSIT, FleetState.EXECUTING) and fleet.intent is not None:
        return fleet.intent.zone_id
    return fleet.home_zone_id


def origin(fleet: Fleet) -> int:
    return fleet.next_zone if fleet.next_zone is not None else fleet.zone_id


def ensure_path(world: World, fleet: Fleet, dest: int) -> None:
    start = origin(fleet)
    if fleet.path and fleet.path[-1] == dest:
        return
    if not fleet.path and start == dest:
        return
    fleet.path = find_path(world, start, dest) or []


def route_zones(fleet: Fleet) -> List[int]:
    zones = ([fleet.next_zone] if fleet.next_zone is not None else []) + list(fleet.path)
    return zones or [fleet.zone_id]


def remaining_distance(world: World, fleet: Fleet) -> float:
    distance = 0.0
    if fleet.next_zone is not None and fleet.route_id is not None:
        distance += max(0.0, world.routes[fleet.route_id].distance - fleet.hop_progress)
    return distance + path_distance(world, origin(fleet), fleet.path)


def fuel_required(world: World, fleet: Fleet) -> float:
    """Fuel to reach the current destination and get home from there."""
    dest = destination(fleet)
    outbound = remaining_distance(world, fleet)
    back = 0.0
    if dest != fleet.home_zone_id:
        home_path = find_path(world, dest, fleet.home_zone_id)
        if home_path is not None:
            back = path_distance(world, dest, home_path)
    return (outbound + back) * FUEL_PER_DISTANCE


def _zone_threat(prev: WorldView, zone_id: int) -> Tuple[float, float, bool, bool]:
    reading = read_layer(prev.knowledge, zone_id, Layer.THREATS)
    if reading.status == "unknown":
        return 0.0, 0.0, False, True
    return reading.value or 0.0, reading.confidence, True, reading.status == "stale"


def build_awareness(world: World, prev: WorldView, ctx: SimContext, fleet: Fleet) -> AwarenessSnapshot:
    zones = route_zones(fleet)
    readings: List[Tuple[float, float, float, int]] = []
    known = True
    stale = False
    for zone_id in zones:
        pressure, confidence, zone_known, zone_stale = _zone_threat(prev, zone_id)
        known = known and zone_known
        stale = stale or zone_stale
        readings.append((threat_risk(pressure, confidence), pressure, confidence, zone_id))
    # route_zones never comes back empty; the earliest zone wins a tie
    worst = max(readings, key=lambda reading: reading[0])

    crisis_stage = None
    intent = fleet.intent
    target_layer = effective_layer(prev.knowledge, intent.zone_id) if intent is not None else None
    if intent is not None and intent.task in STATION_TASKS and intent.target_id is not None:
        for crisis in prev.crises.values():
            if crisis.station_id != intent.target_id:
                continue
            if crisis_stage is None or STAGE_SEVERITY[crisis.stage] > STAGE_SEVERITY[crisis_stage]:
                crisis_stage = crisis.stage

    return AwarenessSnapshot(
        taken_at=ctx.elapsed,
        zone_id=worst[3],
        path=zones,
        pirate_pressure=worst[1],
        confidence=worst[2],
        known=known,
        stale=stale,
        crisis_stage=crisis_stage,
        target_layer=target_layer,
    )


def evaluate(world: World, prev: WorldView, ctx: SimContext, fleet: Fleet) -> Tuple[RiskBreakdown, AwarenessSnapshot]:
    if fleet.intent is None:
        raise IntentRequired(fleet.id)
    awareness = build_awareness(world, prev, ctx, fleet)
    margin = (fleet.fuel - fuel_required(world, fleet)) / fleet.fuel_capacity
    task = fleet.intent.task
    risk = RiskBreakdown(
        base=TASK_RISK[task],
        fuel=fuel_risk(margin),
        threat=threat_risk(awareness.pirate_pressure, awareness.confidence),
        capability=CAPABILITY.get(fleet.role, {}).get(task, 0.0),
        zone=zone_modifier_risk(world.zones[fleet.intent.zone_id]),
        fuel_margin=margin,
    )
    if awareness.crisis_stage == CrisisStage.FAILING:
        # a failing target is worth the extra exposure for escorts and tankers
        risk.capability += 0.05
    return risk, awareness


def reroute_candidate(world: World, prev: WorldView, fleet: Fleet) -> Optional[List[int]]:
    if fleet.state not in (FleetState.IDLE, FleetState.IN_TRANSIT) or not fleet.path:
        return None
    dest = destination(fleet)
    start = origin(fleet)
    blocked = []
    for zone_id in fleet.path:
        if zone_id in (dest, start):
            continue
        pressure, confidence, known, _ = _zone_threat(prev, zone_id)
        if known and pressure >= REROUTE_THRESHOLD:
            blocked.append(zone_id)
    if not blocked:
        return None
    alternative = find_path(world, start, dest, blocked)
    if alternative is None or alternative == fleet.path:
        return None
    return alternative


def available_actions(fleet: Fleet, can_reroute: bool) -> List[FleetAction]:
    actions = list(AUTONOMY_ACTIONS[fleet.autonomy])
    if not can_reroute and FleetAction.REROUTE in actions:
        actions.remove(FleetAction.REROUTE)
    return actions


def action_costs(
    fleet: Fleet,
    risk: RiskBreakdown,
    actions: List[FleetAction],
    reroute_risk: Optional[RiskBreakdown] = None,
    reroute_fuel_ratio: float = 0.0,
) -> Dict[FleetAction, float]:
    weights = normalized_weights(fleet.priority_weights)
    tolerance = TOLERANCE[fleet.risk_tolerance]
    costs: Dict[FleetAction, float] = {}
    for action in actions:
        table = ACTION_COSTS[action]
        residual = risk.total * table.risk
        economy = table.economy
        if action == FleetAction.REROUTE and reroute_risk is not None:
            residual = reroute_risk.total * table.risk
            economy = max(0.0, reroute_fuel_ratio)
        cost = (
            weights["safety"] * tolerance * residual
            + weights["progress"] * table.disruption
            + weights["economy"] * economy
        )
        costs[action] = round(cost, 9)
    return costs


def decide(world: World, prev: WorldView, ctx: SimContext, fleet: Fleet) -> Decision:
    risk, awareness = evaluate(world, prev, ctx, fleet)
    alternative = reroute_candidate(world, prev, fleet)
    reroute_risk = None
    extra_fuel = 0.0
    if alternative is not None:
        saved_path = fleet.path
        fleet.path = alternative
        reroute_risk, _ = evaluate(world, prev, ctx, fleet)
        extra = path_distance(world, origin(fleet), alternative) - path_distance(world, origin(fleet), saved_path)
        extra_fuel = extra * FUEL_PER_DISTANCE / fleet.fuel_capacity
        fleet.path = saved_path
    actions = available_actions(fleet, alternative is not None)
    costs = action_costs(fleet, risk, actions, reroute_risk, extra_fuel)
    return Decision(
        action=select_action(costs),
        costs=costs,
        risk=risk,
        awareness=awareness,
        reroute=alternative,
    )


def format_report(fleet: Fleet, decision: Decision) -> str:
    risk = decision.risk
    aware = decision.awareness
    if not aware.known:
        seen = "unknown"
    else:
        seen = f"pressure {aware.pirate_pressure:.0f} @ {aware.confidence:.2f}" + (" stale" if aware.stale else "")
    intel = aware.target_layer.name.title() if aware.target_layer is not None else "none"
    return (
        f"{fleet.role.value} fleet #{fleet.id} {decision.action.value}: risk {risk.total:.2f} "
        f"(task {risk.base:.2f}, fuel {risk.fuel:.2f} margin {risk.fuel_margin:+.2f}, "
        f"threat {risk.threat:.2f} [{seen} zone {aware.zone_id}], "
        f"capability -{risk.capability:.2f}, zone {risk.zone:+.2f}, target intel {intel})"
    )


# ---------- Outcome helpers ----------


def _set_state(fleet: Fleet, state: FleetState) -> None:
    if fleet.state != state:
        fleet.state = state
        fleet.task_seconds = 0.0


def _disable(world: World, ctx: SimContext, fleet: Fleet, reason: str) -> None:
    _set_state(fleet, FleetState.DISABLED)
    fleet.disabled_since = ctx.elapsed
    logger.info("fleet %s disabled: %s", fleet.id, reason)
    log_event(
        world, ctx, "fleet_disabled", f"{fleet.role.value} fleet #{fleet.id} disabled ({reason})",
        zones=[fleet.zone_id], entities=[fleet.id], problem=True,
    )


def _head_home(world: World, fleet: Fleet, state: FleetState = FleetState.RETURNING) -> None:
    _set_state(fleet, state)
    fleet.path = []
    ensure_path(world, fleet, fleet.home_zone_id)


def move(world: World, ctx: SimContext, fleet: Fleet, speed_factor: float = 1.0) -> bool:
    """Advance along the planned path; True once the fleet sits at its destination."""
    if fleet.next_zone is None:
        if not fleet.path:
            return True
        upcoming = fleet.path[0]
        route = route_between(world, fleet.zone_id, upcoming)
        if route is None:
            fleet.path = []
            return False
        fleet.path = fleet.path[1:]
        fleet.next_zone = upcoming
        fleet.route_id = route.id
        fleet.hop_progress = 0.0

    route = world.routes[fleet.route_id]
    step = ROLE_TUNING[fleet.role].speed * speed_factor * ctx.dt
    step = min(step, route.distance - fleet.hop_progress)
    affordable = fleet.fuel / FUEL_PER_DISTANCE
    if step > affordable:
        step = affordable
    fleet.fuel = max(0.0, fleet.fuel - step * FUEL_PER_DISTANCE)
    fleet.hop_progress += step

    if fleet.hop_progress >= route.distance - EPSILON:
        fleet.zone_id = fleet.next_zone
        fleet.next_zone = None
        fleet.route_id = None
        fleet.hop_progress = 0.0
        world.observations.append(
            Observation(zone_id=fleet.zone_id, layer=REFRESH_SOURCES["travel"], source="travel")
        )
        if fleet.fuel <= EPSILON and fleet.path:
            _disable(world, ctx, fleet, "out of fuel")
            return False
        return not fleet.path
    if fleet.fuel <= EPSILON:
        _disable(world, ctx, fleet, "out of fuel")
    return False


def _has_depot(prev: WorldView, zone_id: int) -> bool:
    return any(
        s.kind == StationKind.FUEL_DEPOT
        and s.zone_id == zone_id
        and s.state in (StationState.OPERATIONAL, StationState.STRAINED)
        for s in prev.stations.values()
    )


def _complete_intent(world: World, ctx: SimContext, fleet: Fleet, text: str) -> None:
    log_event(world, ctx, "fleet_task_complete", f"{fleet.role.value} fleet #{fleet.id} {text}", zones=[fleet.zone_id], entities=[fleet.id])
    fleet.intent = None
    _head_home(world, fleet)


# ---------- Task handlers ----------


def _task_scout(world: World, prev: WorldView, ctx: SimContext, fleet: Fleet) -> None:
    world.observations.append(Observation(zone_id=fleet.zone_id, layer=REFRESH_SOURCES["scout"], source="scout"))
    if fleet.task_seconds >= SCOUT_SCAN_SECONDS - EPSILON:
        _complete_intent(world, ctx, fleet, f"finished surveying zone {fleet.zone_id}")


def mine_amount(available: float, rate: float, dt: float, free_capacity: float) -> float:
    """Ore lifted in one step, bounded by what the field holds and the hold can take."""
    if available <= 0.0 or rate <= 0.0 or dt <= 0.0 or free_capacity <= 0.0:
        return 0.0
    return min(rate * dt, available, free_capacity)


def _task_mine(world: World, prev: WorldView, ctx: SimContext, fleet: Fleet) -> None:
    ore_field = world.ore_fields.get(fleet.zone_id)
    if ore_field is None or ore_field.remaining <= EPSILON:
        _complete_intent(world, ctx, fleet, f"found no ore left in zone {fleet.zone_id}")
        return
    capacity = ROLE_TUNING[fleet.role].cargo
    rate = MINING_PER_SECOND * richness_multiplier(world.zones[fleet.zone_id])
    mined = mine_amount(ore_field.remaining, rate, ctx.dt, capacity - fleet.cargo)
    ore_field.remaining = max(0.0, ore_field.remaining - mined)
    fleet.cargo = min(capacity, fleet.cargo + mined)
    if ore_field.remaining <= EPSILON:
        ore_field.remaining = 0.0
        log_event(
            world, ctx, "ore_field_depleted", f"Ore field in zone {fleet.zone_id} is exhausted",
            zones=[fleet.zone_id], entities=[fleet.id], problem=True,
        )
        _complete_intent(world, ctx, fleet, f"stripped the last ore from zone {fleet.zone_id}")
    elif fleet.cargo >= capacity - EPSILON:
        # intent stays; the fleet returns to the field after unloading
        _head_home(world, fleet)


def _task_patrol(world: World, prev: WorldView, ctx: SimContext, fleet: Fleet) -> None:
    power = ROLE_TUNING[fleet.role].power
    add_pressure(world.pressure, fleet.zone_id, -PATROL_SUPPRESSION * power * ctx.dt, "pirate")
    world.observations.append(Observation(zone_id=fleet.zone_id, layer=Layer.THREATS, source="sensor"))


def _task_escort(world: World, prev: WorldView, ctx: SimContext, fleet: Fleet) -> None:
    station = prev.stations.get(fleet.intent.target_id) if fleet.intent.target_id is not None else None
    if station is None or station.state == StationState.FAILED:
        _complete_intent(world, ctx, fleet, "lost its escort charge")
        return
    if fleet.task_seconds <= EPSILON:
        world.interventions.append(Intervention(station_id=station.id, kind="escort", fleet_id=fleet.id))


def _task_resupply(world: World, prev: WorldView, ctx: SimContext, fleet: Fleet) -> None:
    station = prev.stations.get(fleet.intent.target_id) if fleet.intent.target_id is not None else None
    if station is None or station.state == StationState.FAILED or station.isolated:
        _complete_intent(world, ctx, fleet, "could not deliver fuel")
        return
    home_path = find_path(world, fleet.zone_id, fleet.home_zone_id) or []
    reserve = path_distance(world, fleet.zone_id, home_path) * FUEL_PER_DISTANCE * 1.1
    amount = min(max(0.0, fleet.fuel - reserve), station.fuel_capacity - station.fuel)
    if amount > EPSILON:
        fleet.fuel -= amount
        world.interventions.append(
            Intervention(station_id=station.id, kind="fuel_delivery", fuel=amount, fleet_id=fleet.id)
        )
    _complete_intent(world, ctx, fleet, f"delivered {amount:.1f} fuel to station #{station.id}")


def _task_assault(world: World, prev: WorldView, ctx: SimContext, fleet: Fleet) -> None:
    base = prev.bases.get(fleet.intent.target_id) if fleet.intent.target_id is not None else None
    if base is None or not base.boss_alive:
        _complete_intent(world, ctx, fleet, "ended its assault")


TASK_HANDLERS = {
    TaskType.SCOUT: _task_scout,
    TaskType.MINE: _task_mine,
    TaskType.PATROL: _task_patrol,
    TaskType.ESCORT: _task_escort,
    TaskType.RESUPPLY: _task_resupply,
    TaskType.ASSAULT: _task_assault,
}


def _run_task(world: World, prev: WorldView, ctx: SimContext, fleet: Fleet) -> None:
    TASK_HANDLERS[fleet.intent.task](world, prev, ctx, fleet)
    if fleet.state == FleetState.EXECUTING:
        fleet.task_seconds += ctx.dt


# ---------- Strategic re-proposal ----------


def propose_intent(world: World, prev: WorldView, fleet: Fleet, old: Intent) -> Optional[Intent]:
    """Pick the safest-looking alternative target for the same task, if any."""
    if old.task == TaskType.ASSAULT:
        return None

    def believed_pressure(zone_id: int) -> float:
        pressure, _, known, _ = _zone_threat(prev, zone_id)
        return pressure if known else 50.0

    if old.task in STATION_TASKS:
        stations = [
            s
            for s in prev.stations.values()
            if s.id != old.target_id and s.state in (StationState.STRAINED, StationState.FAILING)
        ]
        if not stations:
            return None
        best = min(stations, key=lambda s: (believed_pressure(s.zone_id), s.id))
        return Intent(task=old.task, zone_id=best.zone_id, target_id=best.id)

    zones = []
    for zone_id in sorted(world.zones):
        if zone_id == old.zone_id or world.zones[zone_id].control == ZoneControl.PIRATE:
            continue
        if old.task == TaskType.MINE:
            ore_field = world.ore_fields.get(zone_id)
            if ore_field is None or ore_field.remaining <= EPSILON:
                continue
        hops = hop_distance(world, fleet.zone_id, zone_id)
        if hops is None:
            continue
        zones.append((believed_pressure(zone_id), hops, zone_id))
    if not zones:
        return None
    return Intent(task=old.task, zone_id=min(zones)[2])


# ---------- Per-tick stages ----------


def _apply_ambushes(world: World, prev: WorldView, ctx: SimContext) -> None:
    for ambush in prev.ambushes:
        if ambush.route_id is not None:
            hit = [f for f in world.fleets.values() if f.route_id == ambush.route_id]
        else:
            hit = [f for f in world.fleets.values() if f.zone_id == ambush.zone_id and f.next_zone is None]
        hit = sorted((f for f in hit if f.state != FleetState.DISABLED), key=lambda f: f.id)
        if not hit:
            continue
        guards = [f for f in hit if f.role == FleetRole.SECURITY]
        if guards:
            defence = sum(ROLE_TUNING[g.role].power for g in guards) * 40.0
            if defence >= ambush.strength:
                log_event(
                    world, ctx, "ambush_repelled",
                    f"Security fleet #{guards[0].id} repelled pirate group #{ambush.group_id}",
                    zones=[ambush.zone_id], entities=[guards[0].id, ambush.group_id],
                )
                continue
            hit = guards
        for fleet in hit:
            fleet.fuel = max(0.0, fleet.fuel - fleet.fuel_capacity * AMBUSH_FUEL_LOSS)
            if fleet.state == FleetState.DAMAGED or fleet.fuel <= EPSILON:
                _disable(world, ctx, fleet, f"ambushed by pirate group #{ambush.group_id}")
                continue
            log_event(
                world, ctx, "fleet_damaged",
                f"{fleet.role.value} fleet #{fleet.id} damaged by pirate group #{ambush.group_id}",
                zones=[fleet.zone_id], entities=[fleet.id, ambush.group_id], problem=True,
            )
            if fleet.next_zone is None:
                _head_home(world, fleet, FleetState.DAMAGED)
            else:
                _set_state(fleet, FleetState.DAMAGED)
                fleet.path = []


def _assign_support(world: World, prev: WorldView, ctx: SimContext) -> None:
    taken = set()
    for request in sorted(prev.support_requests, key=lambda r: (r.time, r.fleet_id)):
        requester = world.fleets.get(request.fleet_id)
        if requester is not None:
            requester.support_requested = False
        for fleet_id in sorted(world.fleets):
            fleet = world.fleets[fleet_id]
            if (
                fleet_id in taken
                or fleet.role != FleetRole.SECURITY
                or fleet.intent is not None
                or fleet.state != FleetState.IDLE
                or fleet.autonomy not in (AutonomyTier.AUTONOMOUS, AutonomyTier.STRATEGIC)
            ):
                continue
            taken.add(fleet_id)
            fleet.intent = Intent(task=TaskType.PATROL, zone_id=request.zone_id)
            log_event(
                world, ctx, "support_dispatched",
                f"Security fleet #{fleet.id} answers support call from fleet #{request.fleet_id} in zone {request.zone_id}",
                zones=[request.zone_id], entities=[fleet.id, request.fleet_id], problem=True,
            )
            break
    world.support_requests = []


def _fuel_alerts(world: World, ctx: SimContext, fleet: Fleet) -> None:
    ratio = fleet.fuel / fleet.fuel_capacity
    if ratio <= CRITICAL_FUEL_RATIO and fleet.fuel_alert < 2:
        fleet.fuel_alert = 2
        log_event(world, ctx, "fuel_alert", f"{fleet.role.value} fleet #{fleet.id} fuel critical ({ratio:.0%})",
                  zones=[fleet.zone_id], entities=[fleet.id], problem=True)
    elif ratio <= LOW_FUEL_RATIO and fleet.fuel_alert < 1:
        fleet.fuel_alert = 1
        log_event(world, ctx, "fuel_alert", f"{fleet.role.value} fleet #{fleet.id} fuel low ({ratio:.0%})",
                  zones=[fleet.zone_id], entities=[fleet.id], problem=True)
    elif ratio > LOW_FUEL_RATIO:
        fleet.fuel_alert = 0


def _refuel(world: World, prev: WorldView, ctx: SimContext, fleet: Fleet) -> None:
    rate = DEPOT_REFUEL_PER_SECOND if _has_depot(prev, fleet.zone_id) else REFUEL_PER_SECOND
    fleet.fuel = min(fleet.fuel_capacity, fleet.fuel + rate * ctx.dt)
    if fleet.fuel >= fleet.fuel_capacity - EPSILON:
        fleet.fuel = fleet.fuel_capacity
        _set_state(fleet, FleetState.IDLE)


def _arrive_home(world: World, ctx: SimContext, fleet: Fleet) -> None:
    if fleet.cargo > 0.0:
        world.ore_stockpile += fleet.cargo
        log_event(world, ctx, "ore_delivered", f"Mining fleet #{fleet.id} unloaded {fleet.cargo:.1f} ore",
                  zones=[fleet.zone_id], entities=[fleet.id])
        fleet.cargo = 0.0
    _set_state(fleet, FleetState.REFUELING)


def apply_outcome(world: World, prev: WorldView, ctx: SimContext, fleet: Fleet, decision: Decision) -> None:
    action = decision.action

    if action == FleetAction.REQUEST_SUPPORT and not fleet.support_requested:
        fleet.support_requested = True
        world.support_requests.append(SupportRequest(fleet_id=fleet.id, zone_id=origin(fleet), time=ctx.elapsed))

    if action == FleetAction.ABORT and fleet.intent is not None:
        old = fleet.intent
        fleet.intent = propose_intent(world, prev, fleet, old) if fleet.autonomy == AutonomyTier.STRATEGIC else None
        if fleet.intent is not None:
            log_event(
                world, ctx, "intent_proposed",
                f"{fleet.role.value} fleet #{fleet.id} abandons {old.task.value} at zone {old.zone_id}, proposes zone {fleet.intent.zone_id}",
                zones=[old.zone_id, fleet.intent.zone_id], entities=[fleet.id], problem=True,
            )
            if fleet.state not in COMMITTED_STATES:
                _set_state(fleet, FleetState.IDLE if fleet.next_zone is None else FleetState.IN_TRANSIT)
                fleet.path = []
            return
        if fleet.state not in COMMITTED_STATES:
            _head_home(world, fleet)
        return

    if action == FleetAction.RETREAT and fleet.state not in COMMITTED_STATES:
        if fleet.zone_id != fleet.home_zone_id or fleet.next_zone is not None:
            _head_home(world, fleet)
        return

    if action == FleetAction.REROUTE and decision.reroute is not None:
        fleet.path = list(decision.reroute)

    if action == FleetAction.DELAY:
        return

    if fleet.state == FleetState.IDLE:
        ensure_path(world, fleet, fleet.intent.zone_id)
        if fleet.zone_id == fleet.intent.zone_id:
            _set_state(fleet, FleetState.EXECUTING)
        else:
            _set_state(fleet, FleetState.IN_TRANSIT)
            if move(world, ctx, fleet):
                _set_state(fleet, FleetState.EXECUTING)
    elif fleet.state == FleetState.IN_TRANSIT:
        ensure_path(world, fleet, fleet.intent.zone_id)
        if move(world, ctx, fleet):
            _set_state(fleet, FleetState.EXECUTING)
    elif fleet.state == FleetState.EXECUTING:
        _run_task(world, prev, ctx, fleet)


def _advance_committed(world: World, prev: WorldView, ctx: SimContext, fleet: Fleet, delayed: bool) -> None:
    """Returning, damaged and refuelling fleets finish what they started."""
    if fleet.state == FleetState.REFUELING:
        _refuel(world, prev, ctx, fleet)
        return
    if delayed:
        return
    ensure_path(world, fleet, fleet.home_zone_id)
    factor = 0.5 if fleet.state == FleetState.DAMAGED else 1.0
    if move(world, ctx, fleet, factor) and fleet.state != FleetState.DISABLED:
        _arrive_home(world, ctx, fleet)


def _rescuer(prev: WorldView, fleet: Fleet) -> Optional[Fleet]:
    """A security fleet, or one on a resupply run, holding position in the disabled fleet's zone."""
    for other_id in sorted(prev.fleets):
        other = prev.fleets[other_id]
        if other.id == fleet.id or other.state == FleetState.DISABLED:
            continue
        if other.next_zone is not None or other.zone_id != fleet.zone_id:
            continue
        on_resupply = other.intent is not None and other.intent.task == TaskType.RESUPPLY
        if other.role == FleetRole.SECURITY or on_resupply:
            return other
    return None


def _rescue(world: World, ctx: SimContext, fleet: Fleet, rescuer: Fleet) -> None:
    fleet.fuel = max(fleet.fuel, fleet.fuel_capacity * RESCUE_FUEL_RATIO)
    fleet.next_zone = None
    fleet.route_id = None
    fleet.hop_progress = 0.0
    fleet.path = []
    fleet.disabled_since = None
    _set_state(fleet, FleetState.IDLE)
    logger.info("fleet %s rescued by fleet %s", fleet.id, rescuer.id)
    log_event(
        world, ctx, "fleet_rescued",
        f"{rescuer.role.value} fleet #{rescuer.id} towed {fleet.role.value} fleet #{fleet.id} back into service",
        zones=[fleet.zone_id], entities=[fleet.id, rescuer.id], problem=True,
    )


def step_fleet(world: World, prev: WorldView, ctx: SimContext, fleet: Fleet, result: FleetTickResult) -> None:
    if fleet.state == FleetState.DISABLED:
        rescuer = _rescuer(prev, fleet)
        if rescuer is not None:
            _rescue(world, ctx, fleet, rescuer)
            return
        if fleet.disabled_since is not None and ctx.elapsed - fleet.disabled_since >= DISABLED_ABANDON_SECONDS - EPSILON:
            result.consequences.append(
                Consequence(kind="fleet", entity_id=fleet.id, zone_id=fleet.zone_id, outcome="Abandoned", detail="disabled, never recovered")
            )
        return

    if fleet.intent is None:
        if fleet.state == FleetState.IDLE:
            return
        _advance_committed(world, prev, ctx, fleet, delayed=False)
        if fleet.state == FleetState.EXECUTING:
            _head_home(world, fleet)
        _fuel_alerts(world, ctx, fleet)
        return

    if fleet.state in (FleetState.IDLE, FleetState.IN_TRANSIT):
        ensure_path(world, fleet, fleet.intent.zone_id)
    decision = decide(world, prev, ctx, fleet)
    fleet.awareness = decision.awareness
    report = format_report(fleet, decision)
    if decision.action != FleetAction.CONTINUE and decision.action != fleet.last_action:
        log_event(world, ctx, "fleet_decision", report, zones=[decision.awareness.zone_id], entities=[fleet.id], problem=True)
    fleet.last_action = decision.action
    fleet.last_report = report
    result.decisions[decision.action.value] = result.decisions.get(decision.action.value, 0) + 1

    if fleet.state in COMMITTED_STATES:
        if decision.action == FleetAction.ABORT:
            apply_outcome(world, prev, ctx, fleet, decision)
        _advance_committed(world, prev, ctx, fleet, delayed=decision.action == FleetAction.DELAY)
    else:
        apply_outcome(world, prev, ctx, fleet, decision)
    _fuel_alerts(world, ctx, fleet)


def advance_fleets(world: World, prev: WorldView, ctx: SimContext) -> FleetTickResult:
    """
    Resolve last tick's ambushes and support calls, then run every fleet
    through the decision loop in id order.
    """
    result = FleetTickResult()
    _apply_ambushes(world, prev, ctx)
    _assign_support(world, prev, ctx)
    for fleet_id in sorted(world.fleets):
        step_fleet(world, prev, ctx, world.fleets[fleet_id], result)
    return result
