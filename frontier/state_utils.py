#!/usr/bin/env python3
"""
Helpers for building public-facing snapshots from the in-memory world.
"""
from __future__ import annotations

from typing import Dict, Optional

from frontier.crisis import open_crises
from frontier.knowledge import effective_layer, read_layer
from frontier.models import World, Layer, StationState


def format_run_clock(elapsed: float) -> str:
    minutes, seconds = divmod(int(elapsed), 60)
    return f"{minutes:02d}:{seconds:02d}"


def compute_zone_status(world: World) -> dict[int, dict]:
    """
    Per-zone summary for the map: stations by lifecycle state, pirate
    groups present or inbound, control flag and ground-truth pressure.
    """
    stations_at: dict[int, dict[str, int]] = {}
    for st in world.stations.values():
        counts = stations_at.setdefault(st.zone_id, {})
        counts[st.state.value] = counts.get(st.state.value, 0) + 1

    pirates_at: dict[int, int] = {}
    inbound_at: dict[int, int] = {}
    for group in world.pirate_groups.values():
        pirates_at[group.zone_id] = pirates_at.get(group.zone_id, 0) + 1
        inbound_at[group.target_zone_id] = inbound_at.get(group.target_zone_id, 0) + 1

    status: dict[int, dict] = {}
    for zone_id, zone in world.zones.items():
        pressure = world.pressure.zones.get(zone_id)
        counts = stations_at.get(zone_id, {})
        status[zone_id] = {
            "control": zone.control.value,
            "stations": counts,
            "failing": counts.get(StationState.FAILING.value, 0) + counts.get(StationState.STRAINED.value, 0),
            "pirate_groups": pirates_at.get(zone_id, 0),
            "pirates_inbound": inbound_at.get(zone_id, 0),
            "has_base": any(b.zone_id == zone_id for b in world.bases.values()),
            "pirate_pressure": pressure.pirate if pressure else 0.0,
            "faction_pressure": pressure.faction if pressure else 0.0,
        }
    return status


def _crisis_fields(world: World, station_id: int) -> Dict[str, Optional[str]]:
    crises = open_crises(world, station_id)
    if not crises:
        return {"crisis_type": None, "crisis_stage": None}
    # most recent crisis wins the station badge
    latest = crises[-1]
    return {"crisis_type": latest.crisis_type.value, "crisis_stage": latest.stage.value}


def snapshot_from_world(world: World, tick_delay: float) -> dict:
    """
    Generate a snapshot payload suitable for API/WebSocket consumers.
    Knowledge is reported as the player sees it; pressure is ground truth
    for the debug overlay.
    """
    zone_status = compute_zone_status(world)

    zones_payload = []
    for zone in world.zones.values():
        layers = []
        for layer in Layer:
            reading = read_layer(world.knowledge, zone.id, layer)
            layers.append(
                {
                    "layer": layer.name.title(),
                    "status": reading.status,
                    "confidence": round(reading.confidence, 4),
                    "value": reading.value,
                }
            )
        known = effective_layer(world.knowledge, zone.id)
        ore_field = world.ore_fields.get(zone.id)
        zones_payload.append(
            {
                "id": zone.id,
                "x": zone.x,
                "y": zone.y,
                "modifier": zone.modifier.value if zone.modifier else None,
                "richness": zone.richness.value,
                "neighbors": zone.neighbors,
                "knowledge": layers,
                "effective_layer": known.name.title() if known is not None else None,
                "ore_remaining": ore_field.remaining if ore_field is not None else None,
                **zone_status[zone.id],
            }
        )

    stations_payload = []
    for st in world.stations.values():
        stations_payload.append(
            {
                "id": st.id,
                "kind": st.kind.value,
                "zone_id": st.zone_id,
                "x": st.x,
                "y": st.y,
                "state": st.state.value,
                "fuel": st.fuel,
                "fuel_capacity": st.fuel_capacity,
                "build_remaining": st.build_remaining,
                "integrity": st.integrity,
                "pressure_exposure": st.pressure_exposure,
                "maintenance_debt": st.maintenance_debt,
                "ore": st.ore,
                "downscaled": st.downscaled,
                "isolated": st.isolated,
                "outcome": st.outcome.value if st.outcome else None,
                **_crisis_fields(world, st.id),
            }
        )

    fleets_payload = []
    for fl in world.fleets.values():
        fleets_payload.append(
            {
                "id": fl.id,
                "role": fl.role.value,
                "state": fl.state.value,
                "zone_id": fl.zone_id,
                "next_zone": fl.next_zone,
                "hop_progress": fl.hop_progress,
                "fuel": fl.fuel,
                "fuel_capacity": fl.fuel_capacity,
                "autonomy": fl.autonomy.value,
                "risk_tolerance": fl.risk_tolerance.value,
                "intent": (
                    {"task": fl.intent.task.value, "zone_id": fl.intent.zone_id, "target_id": fl.intent.target_id}
                    if fl.intent
                    else None
                ),
                "last_action": fl.last_action.value if fl.last_action else None,
                "report": fl.last_report,
            }
        )

    crises_payload = [
        {
            "id": c.id,
            "type": c.crisis_type.value,
            "stage": c.stage.value,
            "station_id": c.station_id,
            "zone_id": c.zone_id,
            "timer": c.timer,
            "affected_ids": c.affected_ids,
        }
        for c in world.crises.values()
    ]

    bases_payload = []
    for base in world.bases.values():
        boss = world.bosses.get(base.boss_id) if base.boss_id is not None else None
        bases_payload.append(
            {
                "id": base.id,
                "zone_id": base.zone_id,
                "tier": base.tier,
                "boss_alive": base.boss_alive,
                "influence_radius": base.influence_radius,
                "spawn_budget": base.spawn_budget,
                "encounter_phase": base.encounter.phase.value if base.encounter else None,
                "boss": (
                    {"id": boss.id, "kind": boss.kind, "enraged": boss.enraged, "notoriety": boss.notoriety}
                    if boss
                    else None
                ),
            }
        )

    history_tail = [
        {
            "tick": ev.tick,
            "kind": ev.kind,
            "zones": ev.zones,
            "entities": ev.entities,
            "text": ev.text,
        }
        for ev in world.history[-40:]
    ]

    snapshot = {
        "tick_delay": tick_delay,
        "tick_delay_ms": int(tick_delay * 1000),
        "tick": world.tick,
        "elapsed": world.elapsed,
        "run_clock": format_run_clock(world.elapsed),
        "seed": world.seed,
        "epoch": world.epoch,
        "ore_stockpile": world.ore_stockpile,
        "zones": zones_payload,
        "routes": [[r.id, r.a, r.b, r.distance] for r in world.routes.values()],
        "stations": stations_payload,
        "fleets": fleets_payload,
        "crises": crises_payload,
        "bases": bases_payload,
        "derelicts": [
            {"id": d.id, "zone_id": d.zone_id, "kind": d.station_kind.value, "reclaimed": d.reclaimed}
            for d in world.derelicts.values()
        ],
        "events": world.events[-30:],
        "problems": world.problems[-30:],
        "history_tail": history_tail,
    }
    return snapshot
