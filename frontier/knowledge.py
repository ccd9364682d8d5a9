"""
Fog of war: per-zone, per-layer confidence.

Every (zone, layer) pair decays towards its layer floor and is restored
to 1.0 by a refresh (travel, scout scan, sensor sweep, manual request).
A refresh captures what the layer showed at that moment, so fleets that
read knowledge see the world as it was when it was last observed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from frontier.context import SimContext, WorldView
from frontier.errors import InvalidLayer
from frontier.helper.modifiers import decay_multiplier, richness_multiplier
from frontier.helper.world_helpers import zones_within
from frontier.models import SIM_CONFIG
from frontier.models import (
    World,
    Zone,
    Layer,
    KnowledgeState,
    PressureField,
    StationKind,
    StationState,
)
from frontier.pressure import read_pressure

logger = logging.getLogger("frontier.knowledge")

LAYER_DECAY: Dict[Layer, float] = {
    Layer[name.upper()]: tuning.decay_per_second for name, tuning in SIM_CONFIG.fog.layers.items()
}
LAYER_FLOOR: Dict[Layer, float] = {
    Layer[name.upper()]: tuning.floor for name, tuning in SIM_CONFIG.fog.layers.items()
}
STALE_THRESHOLD = SIM_CONFIG.fog.stale_threshold
REFRESH_COOLDOWN = SIM_CONFIG.fog.refresh_cooldown_seconds
SENSOR_INTERVAL = SIM_CONFIG.fog.sensor_interval_seconds
REFRESH_SOURCES: Dict[str, Layer] = {
    source: Layer[name.upper()] for source, name in SIM_CONFIG.fog.refresh_layers.items()
}
SENSOR_KINDS = {StationKind.SENSOR_STATION}
SENSOR_RANGE = {
    StationKind(name): tuning.sensor_range for name, tuning in SIM_CONFIG.stations.kinds.items()
}


@dataclass
class LayerReading:
    status: str  # "unknown" | "stale" | "fresh"
    confidence: float
    value: Optional[float] = None


def as_layer(value: object) -> Layer:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidLayer(value)
    if value < Layer.EXISTENCE or value > Layer.STABILITY:
        raise InvalidLayer(value)
    return Layer(value)


def knowledge_state(knowledge: Dict[int, List[KnowledgeState]], zone_id: int, layer: object) -> KnowledgeState:
    return knowledge[zone_id][as_layer(layer)]


def effective_layer(knowledge: Dict[int, List[KnowledgeState]], zone_id: int) -> Optional[Layer]:
    """Highest layer ever observed for the zone, or None when nothing was."""
    best: Optional[Layer] = None
    for state in knowledge[zone_id]:
        if state.observed:
            best = state.layer
    return best


def read_layer(knowledge: Dict[int, List[KnowledgeState]], zone_id: int, layer: object) -> LayerReading:
    state = knowledge_state(knowledge, zone_id, layer)
    if not state.observed:
        return LayerReading(status="unknown", confidence=state.confidence)
    status = "fresh" if state.confidence >= STALE_THRESHOLD else "stale"
    return LayerReading(status=status, confidence=state.confidence, value=state.observed_value)


def cooldown_remaining(state: KnowledgeState, now: float) -> float:
    if state.last_refresh is None:
        return 0.0
    return max(0.0, REFRESH_COOLDOWN - (now - state.last_refresh))


def observed_value(zone: Zone, layer: Layer, pressure: PressureField) -> Optional[float]:
    if layer == Layer.THREATS:
        return read_pressure(pressure, zone.id, "pirate")
    if layer == Layer.STABILITY:
        return read_pressure(pressure, zone.id, "faction")
    if layer == Layer.RESOURCES:
        return richness_multiplier(zone)
    return None


def refresh_layer(
    world: World,
    zone_id: int,
    layer: object,
    now: float,
    pressure: PressureField,
    force: bool = False,
) -> bool:
    """
    Set the layer to full confidence and mark every lower layer observed.
    Returns False (and changes nothing) while the layer is on cooldown,
    unless forced.
    """
    target = as_layer(layer)
    states = world.knowledge[zone_id]
    state = states[target]
    if not force and cooldown_remaining(state, now) > 0.0:
        return False
    state.confidence = 1.0
    state.observed = True
    state.last_refresh = now
    state.observed_value = observed_value(world.zones[zone_id], target, pressure)
    for lower in states[:target]:
        lower.observed = True
    return True


def decay_knowledge(world: World, dt: float) -> None:
    if dt <= 0.0:
        return
    for zone_id in sorted(world.knowledge):
        multiplier = decay_multiplier(world.zones[zone_id])
        for state in world.knowledge[zone_id]:
            floor = LAYER_FLOOR[state.layer]
            state.confidence = max(floor, state.confidence - LAYER_DECAY[state.layer] * multiplier * dt)
            if state.confidence < floor:
                state.confidence = floor


def _sensor_sweep_due(created_at: float, ctx: SimContext) -> bool:
    before = int((ctx.elapsed - ctx.dt - created_at) // SENSOR_INTERVAL)
    after = int((ctx.elapsed - created_at) // SENSOR_INTERVAL)
    return after > before and ctx.elapsed > created_at


def advance_knowledge(world: World, prev: WorldView, ctx: SimContext) -> int:
    """
    Decay every layer, then apply last tick's observations and sensor
    sweeps against the committed pressure field. Returns refresh count.
    """
    decay_knowledge(world, ctx.dt)

    refreshed = 0
    for obs in prev.observations:
        if obs.zone_id in world.knowledge and refresh_layer(
            world, obs.zone_id, obs.layer, ctx.elapsed, prev.pressure
        ):
            refreshed += 1

    sensor_layer = REFRESH_SOURCES["sensor"]
    for station_id in sorted(prev.stations):
        station = prev.stations[station_id]
        if station.kind not in SENSOR_KINDS:
            continue
        if station.state not in (StationState.OPERATIONAL, StationState.STRAINED):
            continue
        if not _sensor_sweep_due(station.created_at, ctx):
            continue
        for zone_id in zones_within(world, station.zone_id, SENSOR_RANGE[station.kind]):
            if refresh_layer(world, zone_id, sensor_layer, ctx.elapsed, prev.pressure):
                refreshed += 1
    world.observations = []
    return refreshed
