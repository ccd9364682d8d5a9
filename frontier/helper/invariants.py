from __future__ import annotations

import logging
import math

from frontier.errors import InvariantViolation
from frontier.models import RUNTIME_SETTINGS, SIM_CONFIG, World, Layer

logger = logging.getLogger("frontier.invariants")

PRESSURE_MAX = SIM_CONFIG.pressure.maximum
LAYER_FLOORS = {
    Layer[name.upper()]: tuning.floor for name, tuning in SIM_CONFIG.fog.layers.items()
}
EPSILON = 1e-9


def clamp_checked(world: World, value: float, low: float, high: float, what: str) -> float:
    """
    Clamp a value that should already be within [low, high].
    An out-of-range value is a defect: it is logged, recorded in
    world.diagnostics and, with strict invariants enabled, raised.
    """
    if not math.isnan(value) and low - EPSILON <= value <= high + EPSILON:
        return min(high, max(low, value))
    message = f"t={world.tick}: {what}={value!r} outside [{low}, {high}]"
    logger.warning("invariant violation: %s", message)
    world.diagnostics.append(message)
    if RUNTIME_SETTINGS.strict_invariants:
        raise InvariantViolation(message)
    if math.isnan(value):
        return low
    return min(high, max(low, value))


def enforce_invariants(world: World) -> None:
    for zone_id, states in world.knowledge.items():
        for state in states:
            state.confidence = clamp_checked(
                world,
                state.confidence,
                LAYER_FLOORS[state.layer],
                1.0,
                f"zone {zone_id} {state.layer.name.lower()} confidence",
            )

    for zone_id, pressure in world.pressure.zones.items():
        pressure.pirate = clamp_checked(
            world, pressure.pirate, 0.0, PRESSURE_MAX, f"zone {zone_id} pirate pressure"
        )
        pressure.faction = clamp_checked(
            world, pressure.faction, 0.0, PRESSURE_MAX, f"zone {zone_id} faction pressure"
        )

    for station in world.stations.values():
        label = f"station {station.id}"
        station.fuel = clamp_checked(world, station.fuel, 0.0, station.fuel_capacity, f"{label} fuel")
        station.integrity = clamp_checked(world, station.integrity, 0.0, 100.0, f"{label} integrity")
        station.pressure_exposure = clamp_checked(
            world, station.pressure_exposure, 0.0, 100.0, f"{label} exposure"
        )
        station.maintenance_debt = clamp_checked(
            world, station.maintenance_debt, 0.0, 100.0, f"{label} maintenance debt"
        )

    for fleet in world.fleets.values():
        fleet.fuel = clamp_checked(world, fleet.fuel, 0.0, fleet.fuel_capacity, f"fleet {fleet.id} fuel")

    for boss in world.bosses.values():
        boss.notoriety = clamp_checked(world, boss.notoriety, 0.0, 100.0, f"boss {boss.id} notoriety")

    for zone_id, ore_field in world.ore_fields.items():
        ore_field.remaining = clamp_checked(
            world, ore_field.remaining, 0.0, ore_field.capacity, f"zone {zone_id} ore field"
        )
