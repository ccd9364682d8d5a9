from frontier.helper.world_helpers import (
    normalize_seed,
    derive_unit,
    hop_table,
    hop_distance,
    zones_within,
    find_path,
    route_between,
    path_distance,
    create_station,
    create_fleet,
    create_base,
    load_sector,
    load_sector_file,
)
from frontier.helper.modifiers import (
    modifier_effect,
    zone_modifier_risk,
    decay_multiplier,
    maintenance_multiplier,
    effective_richness,
    richness_multiplier,
    pick_modifier,
)
from frontier.helper.invariants import clamp_checked, enforce_invariants


__all__ = [
    "normalize_seed",
    "derive_unit",
    "hop_table",
    "hop_distance",
    "zones_within",
    "find_path",
    "route_between",
    "path_distance",
    "create_station",
    "create_fleet",
    "create_base",
    "load_sector",
    "load_sector_file",
    "modifier_effect",
    "zone_modifier_risk",
    "decay_multiplier",
    "maintenance_multiplier",
    "effective_richness",
    "richness_multiplier",
    "pick_modifier",
    "clamp_checked",
    "enforce_invariants",
]
