from __future__ import annotations

from typing import Dict, List

from frontier.helper.world_helpers import hop_table
from frontier.models import SIM_CONFIG, World, PressureField, ZonePressure
from frontier.context import SimContext

PRESSURE_MAX = SIM_CONFIG.pressure.maximum
PRESSURE_DECAY: Dict[str, float] = dict(SIM_CONFIG.pressure.decay_per_second)
SOURCES = ("pirate", "faction")


def zone_pressure(field: PressureField, zone_id: int) -> ZonePressure:
    return field.zones.setdefault(zone_id, ZonePressure())


def read_pressure(field: PressureField, zone_id: int, source: str = "pirate") -> float:
    entry = field.zones.get(zone_id)
    if entry is None:
        return 0.0
    return getattr(entry, source)


def total_pressure(field: PressureField, zone_id: int) -> float:
    entry = field.zones.get(zone_id)
    if entry is None:
        return 0.0
    return entry.pirate + entry.faction


def dominant_source(field: PressureField, zone_id: int) -> str:
    """Pirate wins ties."""
    entry = field.zones.get(zone_id)
    if entry is None or entry.pirate >= entry.faction:
        return "pirate"
    return "faction"


def add_pressure(field: PressureField, zone_id: int, amount: float, source: str = "pirate") -> float:
    """Add (or with a negative amount, relieve) pressure; saturates at [0, max]."""
    entry = zone_pressure(field, zone_id)
    value = min(PRESSURE_MAX, max(0.0, getattr(entry, source) + amount))
    setattr(entry, source, value)
    return value


def spread_pressure(
    world: World,
    zone_id: int,
    amount: float,
    hops: int,
    falloff: float,
    source: str = "pirate",
) -> List[int]:
    """
    Write `amount` into zone_id and amount * falloff**h into every zone h
    hops away (h <= hops). Returns the touched neighbour zones.
    """
    add_pressure(world.pressure, zone_id, amount, source)
    touched = []
    for other, distance in sorted(hop_table(world).get(zone_id, {}).items()):
        if 0 < distance <= hops:
            add_pressure(world.pressure, other, amount * falloff**distance, source)
            touched.append(other)
    return touched


def decay_pressure(world: World, ctx: SimContext) -> None:
    for zone_id in sorted(world.pressure.zones):
        entry = world.pressure.zones[zone_id]
        for source in SOURCES:
            value = getattr(entry, source)
            if value > 0.0:
                setattr(entry, source, max(0.0, value - PRESSURE_DECAY.get(source, 0.0) * ctx.dt))
