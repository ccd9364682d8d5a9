import json
from pathlib import Path
from pydantic import BaseModel, PositiveInt, PositiveFloat, NonNegativeFloat
from pydantic import Field  # type: ignore
from typing import Annotated, List, Dict, Optional

# # NOTE: Each service imports this module in its own process. The loaded config
# # lives in-process only; it is not shared across services or persisted.

Ratio = Annotated[float, Field(ge=0, le=1)]


class SimulationModifiers(BaseModel):
    tick_seconds: PositiveFloat
    tick_delay: PositiveFloat
    lease_ttl_ms: PositiveInt
    event_limit: PositiveInt
    problems_feed_limit: PositiveInt
    debug_commands: bool
    sector_seed: int | None


class LayerTuning(BaseModel):
    decay_per_second: NonNegativeFloat
    floor: Ratio


class FogModifiers(BaseModel):
    layers: Dict[str, LayerTuning]
    stale_threshold: Ratio
    refresh_cooldown_seconds: NonNegativeFloat
    sensor_interval_seconds: PositiveFloat
    refresh_layers: Dict[str, str]


class PressureModifiers(BaseModel):
    maximum: PositiveFloat
    decay_per_second: Dict[str, NonNegativeFloat]


class ModifierEffect(BaseModel):
    fuel_risk: float
    confidence_risk: float
    pirate_risk: float
    decay_multiplier: PositiveFloat
    maintenance_multiplier: PositiveFloat
    richness: Optional[str] = None


class StationKindTuning(BaseModel):
    build_seconds: NonNegativeFloat
    fuel_capacity: PositiveFloat
    burn_per_minute: NonNegativeFloat
    minimum_fuel_to_operate: NonNegativeFloat
    requires_fuel: bool
    ore_capacity: Annotated[int, Field(ge=0)]
    value: NonNegativeFloat
    sensor_range: Annotated[int, Field(ge=0)]


class LifecycleModifiers(BaseModel):
    strained_fuel_ratio: Ratio
    strained_fuel_seconds: PositiveFloat
    failing_fuel_ratio: Ratio
    failing_fuel_seconds: PositiveFloat
    integrity_threshold: PositiveFloat
    maintenance_threshold: PositiveFloat
    maintenance_per_minute: NonNegativeFloat
    harassment_window_seconds: PositiveFloat
    recovery_window_seconds: PositiveFloat
    raid_spike_count: PositiveInt
    strained_min_dwell_seconds: PositiveFloat
    failing_min_dwell_seconds: PositiveFloat
    failing_timeout_seconds: PositiveFloat
    exposure_response_seconds: PositiveFloat
    exposure_wear_threshold: NonNegativeFloat
    exposure_wear_per_minute: NonNegativeFloat
    ore_seconds_per_unit: PositiveFloat


class StationVerbTuning(BaseModel):
    stabilize_debt_relief: NonNegativeFloat
    stabilize_integrity: NonNegativeFloat
    reinforce_integrity: NonNegativeFloat
    downscale_factor: Ratio


class StationModifiers(BaseModel):
    kinds: Dict[str, StationKindTuning]
    lifecycle: LifecycleModifiers
    richness: Dict[str, PositiveFloat]
    verbs: StationVerbTuning


class CrisisModifiers(BaseModel):
    cascade_per_second: Dict[str, NonNegativeFloat]
    faction_per_second: NonNegativeFloat
    neighbor_falloff: Ratio
    cascade_hops: Annotated[int, Field(ge=0)]


class EpochTuning(BaseModel):
    name: Annotated[str, Field(min_length=1)]
    starts_at_seconds: NonNegativeFloat
    group_kind: Annotated[str, Field(min_length=1)]
    doctrine: str
    raid_interval_seconds: PositiveFloat


class DoctrineProfile(BaseModel):
    value: NonNegativeFloat
    exposure: NonNegativeFloat
    opportunity: NonNegativeFloat
    retaliation: NonNegativeFloat
    damage: PositiveFloat
    route_bias: NonNegativeFloat
    aggression: Ratio


class BossModifiers(BaseModel):
    approach_seconds: PositiveFloat
    defense_screen_seconds: PositiveFloat
    overrun_seconds: PositiveFloat
    wave_a_interval: PositiveFloat
    wave_a_strength: PositiveFloat
    wave_b_interval: PositiveFloat
    wave_b_strength: PositiveFloat
    overrun_initial_interval: PositiveFloat
    overrun_interval_factor: Annotated[float, Field(gt=0, le=1)]
    overrun_minimum_interval: PositiveFloat
    overrun_strength_step: PositiveFloat
    approach_pressure_per_second: NonNegativeFloat
    overrun_pressure_per_second: NonNegativeFloat
    notoriety_step: PositiveFloat
    radius_bonus_hops: PositiveInt
    radius_bonus_base_seconds: PositiveFloat
    radius_bonus_per_notoriety: NonNegativeFloat
    radius_bonus_max_seconds: PositiveFloat
    aggressive_window_seconds: PositiveFloat
    hit_points_per_tier: PositiveFloat
    defeat_pressure_reduction: Ratio
    redistribution_fraction: Ratio
    defeat_cooldown_seconds: PositiveFloat


class PirateModifiers(BaseModel):
    epochs: Annotated[List[EpochTuning], Field(min_length=1)]
    base_budget: Annotated[int, Field(ge=0)]
    budget_per_tier: Annotated[int, Field(ge=0)]
    budget_regen_seconds: PositiveFloat
    minimum_target_score: float
    target_reach_hops: PositiveInt
    group_hop_seconds: PositiveFloat
    raid_damage_per_tier: PositiveFloat
    raid_pressure: NonNegativeFloat
    ambush_pressure: NonNegativeFloat
    escort_damage_factor: Ratio
    base_pressure_per_tier_second: NonNegativeFloat
    doctrines: Dict[str, DoctrineProfile]
    boss: BossModifiers


class RoleTuning(BaseModel):
    fuel_capacity: PositiveFloat
    speed: PositiveFloat
    power: NonNegativeFloat
    cargo: NonNegativeFloat


class ActionCost(BaseModel):
    risk: NonNegativeFloat
    disruption: NonNegativeFloat
    economy: NonNegativeFloat


class FleetModifiers(BaseModel):
    roles: Dict[str, RoleTuning]
    role_tasks: Dict[str, List[str]]
    task_risk: Dict[str, NonNegativeFloat]
    capability: Dict[str, Dict[str, NonNegativeFloat]]
    tolerance: Dict[str, PositiveFloat]
    actions: Dict[str, ActionCost]
    autonomy: Dict[str, List[str]]
    default_weights: Dict[str, NonNegativeFloat]
    fuel_per_distance: PositiveFloat
    comfortable_fuel_margin: Ratio
    threat_uncertainty_penalty: NonNegativeFloat
    reroute_pressure_threshold: NonNegativeFloat
    refuel_per_second: PositiveFloat
    depot_refuel_per_second: PositiveFloat
    mining_per_second: PositiveFloat
    scout_scan_seconds: PositiveFloat
    patrol_suppression_per_second: NonNegativeFloat
    disabled_abandon_seconds: PositiveFloat
    rescue_fuel_ratio: Ratio
    low_fuel_ratio: Ratio
    critical_fuel_ratio: Ratio
    ambush_fuel_loss: Ratio


class SimulationSettings(BaseModel):
    simulation: SimulationModifiers
    fog: FogModifiers
    pressure: PressureModifiers
    modifiers: Dict[str, ModifierEffect]
    stations: StationModifiers
    crisis: CrisisModifiers
    pirates: PirateModifiers
    fleets: FleetModifiers

    @classmethod
    def load_json(cls, path: str | Path) -> "SimulationSettings":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.model_validate(data)


_BASE_DIR = Path(__file__).resolve().parents[1]
_CONFIG_PATH = _BASE_DIR / "config" / "sim_config.json"

SIM_CONFIG = SimulationSettings.model_validate_json(
    _CONFIG_PATH.read_text(encoding="utf-8")
)
