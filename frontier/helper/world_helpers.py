import hashlib
import json
from pathlib import Path
from typing import Optional, Dict, List, Any, Iterable

import numpy as np

# Shortest paths over the (immutable) route graph
from scipy.sparse import csr_matrix  # type: ignore
from scipy.sparse.csgraph import dijkstra, shortest_path  # type: ignore

# simulation config import
from frontier.models import SIM_CONFIG
from frontier.models import (
    World,
    Zone,
    Route,
    Layer,
    KnowledgeState,
    PressureField,
    ZonePressure,
    ZoneModifier,
    Richness,
    ZoneControl,
    Station,
    StationKind,
    StationState,
    Fleet,
    FleetRole,
    AutonomyTier,
    RiskTolerance,
    FleetState,
    PirateBase,
    Boss,
    OreField,
)

TICK_SECONDS: float = SIM_CONFIG.simulation.tick_seconds
RAW_SECTOR_SEED = SIM_CONFIG.simulation.sector_seed
LAYER_TUNING = {Layer[name.upper()]: tuning for name, tuning in SIM_CONFIG.fog.layers.items()}
STATION_KINDS = SIM_CONFIG.stations.kinds
FLEET_ROLES = SIM_CONFIG.fleets.roles
DEFAULT_WEIGHTS: Dict[str, float] = dict(SIM_CONFIG.fleets.default_weights)
BASE_BUDGET = SIM_CONFIG.pirates.base_budget
BUDGET_PER_TIER = SIM_CONFIG.pirates.budget_per_tier


# ---------- Seeds ----------

SEED_BITS = 48
SEED_MASK = (1 << SEED_BITS) - 1


def normalize_seed(value: Optional[object]) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value & SEED_MASK
    if isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        try:
            return int(cleaned, 0) & SEED_MASK
        except ValueError:
            digest = hashlib.sha256(cleaned.encode("utf-8")).hexdigest()
            return int(digest, 16) & SEED_MASK
    try:
        return int(value) & SEED_MASK  # type: ignore[arg-type]
    except (TypeError, ValueError):
        digest = hashlib.sha256(str(value).encode("utf-8")).hexdigest()
        return int(digest, 16) & SEED_MASK


def derive_unit(seed: Optional[int], *parts: object) -> float:
    """Deterministic value in [0, 1) derived from the run seed and a salt."""
    material = ":".join(str(p) for p in (seed or 0, *parts))
    digest = hashlib.sha256(material.encode("utf-8")).digest()
    return int.from_bytes(digest[:6], "big") / float(1 << 48)


# ---------- Route graph ----------


def _graph(world: World, blocked: Iterable[int] = ()) -> tuple[List[int], csr_matrix]:
    order = sorted(world.zones)
    index = {zone_id: i for i, zone_id in enumerate(order)}
    skip = set(blocked)
    rows: List[int] = []
    cols: List[int] = []
    weights: List[float] = []
    for route in sorted(world.routes.values(), key=lambda r: r.id):
        if route.a in skip or route.b in skip:
            continue
        for a, b in ((route.a, route.b), (route.b, route.a)):
            rows.append(index[a])
            cols.append(index[b])
            weights.append(float(route.distance))
    size = len(order)
    matrix = csr_matrix(
        (np.array(weights, dtype=float), (np.array(rows, dtype=int), np.array(cols, dtype=int))),
        shape=(size, size),
    )
    return order, matrix


def hop_table(world: World) -> Dict[int, Dict[int, int]]:
    """
    Route-hop distances between every pair of connected zones.
    Routes never change after load, so the table is cached on the world.
    """
    cached = getattr(world, "_hop_cache", None)
    if cached is not None:
        return cached
    order, matrix = _graph(world)
    hops = shortest_path(matrix, method="D", directed=False, unweighted=True)
    table: Dict[int, Dict[int, int]] = {}
    for i, a in enumerate(order):
        row: Dict[int, int] = {}
        for j, b in enumerate(order):
            if np.isfinite(hops[i, j]):
                row[b] = int(hops[i, j])
        table[a] = row
    world._hop_cache = table  # type: ignore[attr-defined]
    return table


def hop_distance(world: World, a: int, b: int) -> Optional[int]:
    return hop_table(world).get(a, {}).get(b)


def zones_within(world: World, zone_id: int, hops: int) -> List[int]:
    """Zones within `hops` route hops of zone_id (itself included), sorted."""
    row = hop_table(world).get(zone_id, {})
    return sorted(z for z, h in row.items() if h <= hops)


def find_path(
    world: World, start: int, goal: int, blocked: Iterable[int] = ()
) -> Optional[List[int]]:
    """
    Shortest route-distance path from start to goal, as the list of zones
    to visit after start (goal included). Blocked zones are never entered;
    start and goal cannot be blocked.
    """
    if start == goal:
        return []
    skip = set(blocked) - {start, goal}
    order, matrix = _graph(world, skip)
    index = {zone_id: i for i, zone_id in enumerate(order)}
    dist, predecessors = dijkstra(
        matrix, directed=False, indices=index[start], return_predecessors=True
    )
    if not np.isfinite(dist[index[goal]]):
        return None
    path: List[int] = []
    cursor = index[goal]
    while cursor != index[start]:
        path.append(order[cursor])
        cursor = int(predecessors[cursor])
    path.reverse()
    return path


def route_between(world: World, a: int, b: int) -> Optional[Route]:
    for route in world.routes.values():
        if (route.a == a and route.b == b) or (route.a == b and route.b == a):
            return route
    return None


def path_distance(world: World, start: int, path: List[int]) -> float:
    total = 0.0
    previous = start
    for zone_id in path:
        route = route_between(world, previous, zone_id)
        if route is not None:
            total += route.distance
        previous = zone_id
    return total


# ---------- Entity factories ----------


def create_station(
    world: World,
    kind: StationKind,
    zone_id: int,
    fuel: Optional[float] = None,
    operational: bool = False,
) -> Station:
    tuning = STATION_KINDS[kind.value]
    zone = world.zones[zone_id]
    station = Station(
        id=world.allocate_id(),
        kind=kind,
        zone_id=zone_id,
        x=zone.x,
        y=zone.y,
        state=StationState.OPERATIONAL if operational else StationState.DEPLOYING,
        fuel=tuning.fuel_capacity if fuel is None else min(fuel, tuning.fuel_capacity),
        fuel_capacity=tuning.fuel_capacity,
        build_remaining=0.0 if operational else tuning.build_seconds,
        ore_capacity=tuning.ore_capacity,
        created_at=world.elapsed,
    )
    world.stations[station.id] = station
    if zone.control == ZoneControl.NEUTRAL:
        zone.control = ZoneControl.PLAYER
    return station


def create_fleet(
    world: World,
    role: FleetRole,
    zone_id: int,
    autonomy: AutonomyTier = AutonomyTier.ASSISTED,
    risk_tolerance: RiskTolerance = RiskTolerance.BALANCED,
) -> Fleet:
    tuning = FLEET_ROLES[role.value]
    fleet = Fleet(
        id=world.allocate_id(),
        role=role,
        zone_id=zone_id,
        home_zone_id=zone_id,
        fuel=tuning.fuel_capacity,
        fuel_capacity=tuning.fuel_capacity,
        state=FleetState.IDLE,
        risk_tolerance=risk_tolerance,
        priority_weights=dict(DEFAULT_WEIGHTS),
        autonomy=autonomy,
    )
    world.fleets[fleet.id] = fleet
    return fleet


def create_base(
    world: World, zone_id: int, tier: int, radius: int = 1, boss_kind: Optional[str] = None
) -> PirateBase:
    base = PirateBase(
        id=world.allocate_id(),
        tier=tier,
        zone_id=zone_id,
        influence_radius=radius,
        spawn_budget=BASE_BUDGET + BUDGET_PER_TIER * tier,
    )
    if boss_kind is not None:
        boss = Boss(id=world.allocate_id(), kind=boss_kind, tier=tier, base_id=base.id)
        world.bosses[boss.id] = boss
        base.boss_id = boss.id
    else:
        base.boss_alive = False
    world.bases[base.id] = base
    world.zones[zone_id].control = ZoneControl.PIRATE
    return base


def initial_knowledge(zone_id: int, revealed: bool) -> List[KnowledgeState]:
    states = []
    for layer in Layer:
        seen = revealed and layer <= Layer.GEOGRAPHY
        states.append(
            KnowledgeState(
                zone_id=zone_id,
                layer=layer,
                confidence=1.0 if seen else LAYER_TUNING[layer].floor,
                observed=seen,
            )
        )
    return states


# ---------- Loading a world-generation snapshot ----------


def load_sector(payload: Dict[str, Any], seed: Optional[object] = None) -> World:
    """
    Build a fresh World from a world-generation snapshot: zones, routes,
    modifiers, resource richness and ore fields, plus optional starting
    stations, fleets and pirate bases. The graph itself is never generated here.
    """
    zones: Dict[int, Zone] = {}
    for raw in payload["zones"]:
        modifier = raw.get("modifier")
        zones[int(raw["id"])] = Zone(
            id=int(raw["id"]),
            x=float(raw["x"]),
            y=float(raw["y"]),
            modifier=ZoneModifier(modifier) if modifier else None,
            richness=Richness(raw.get("richness", Richness.MEDIUM.value)),
        )

    routes: Dict[int, Route] = {}
    next_id = max(zones) + 1 if zones else 1
    for raw in payload.get("routes", []):
        a, b = int(raw["a"]), int(raw["b"])
        if a not in zones or b not in zones or a == b:
            raise ValueError(f"route {a}-{b} references an unknown zone")
        route_id = int(raw["id"]) if "id" in raw else next_id
        next_id = max(next_id, route_id) + 1
        routes[route_id] = Route(
            id=route_id,
            a=a,
            b=b,
            distance=float(raw["distance"]),
            risk=float(raw.get("risk", 0.0)),
        )
        zones[a].neighbors.append(b)
        zones[b].neighbors.append(a)
    for zone in zones.values():
        zone.neighbors = sorted(set(zone.neighbors))

    revealed = {int(z) for z in payload.get("revealed", [])}
    effective_seed = normalize_seed(seed if seed is not None else payload.get("seed", RAW_SECTOR_SEED))

    world = World(
        tick=0,
        tick_seconds=TICK_SECONDS,
        zones=zones,
        routes=routes,
        knowledge={z: initial_knowledge(z, z in revealed) for z in sorted(zones)},
        pressure=PressureField(zones={z: ZonePressure() for z in sorted(zones)}),
        seed=effective_seed,
        next_entity_id=next_id,
    )

    for raw in payload.get("resource_fields", []):
        zone_id = int(raw["zone"])
        if zone_id not in zones:
            raise ValueError(f"resource field references unknown zone {zone_id}")
        capacity = float(raw["capacity"])
        world.ore_fields[zone_id] = OreField(zone_id=zone_id, capacity=capacity, remaining=capacity)

    for raw in payload.get("bases", []):
        boss = raw.get("boss")
        create_base(
            world,
            int(raw["zone"]),
            int(raw.get("tier", 1)),
            int(raw.get("radius", 1)),
            boss.get("kind", "Warlord") if boss else None,
        )
    for raw in payload.get("stations", []):
        create_station(
            world,
            StationKind(raw["kind"]),
            int(raw["zone"]),
            fuel=raw.get("fuel"),
            operational=raw.get("state", "Operational") == StationState.OPERATIONAL.value,
        )
    for raw in payload.get("fleets", []):
        create_fleet(
            world,
            FleetRole(raw["role"]),
            int(raw["zone"]),
            AutonomyTier(raw.get("autonomy", AutonomyTier.ASSISTED.value)),
            RiskTolerance(raw.get("risk_tolerance", RiskTolerance.BALANCED.value)),
        )
    return world


def load_sector_file(path: str | Path, seed: Optional[object] = None) -> World:
    return load_sector(json.loads(Path(path).read_text(encoding="utf-8")), seed)
