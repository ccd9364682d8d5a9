"""
Static per-zone bias data.

Every modifier tag maps to one ModifierEffect row; zones without a
modifier read the neutral row. Risk and decay formulas only go through
the lookups below.
"""
from __future__ import annotations

from typing import Dict, Optional

from frontier.models import SIM_CONFIG, ZoneModifier, Richness, Zone
from frontier.models.sim_config import ModifierEffect

NEUTRAL_EFFECT = ModifierEffect(
    fuel_risk=0.0,
    confidence_risk=0.0,
    pirate_risk=0.0,
    decay_multiplier=1.0,
    maintenance_multiplier=1.0,
)

MODIFIER_TABLE: Dict[ZoneModifier, ModifierEffect] = {
    ZoneModifier(name): effect for name, effect in SIM_CONFIG.modifiers.items()
}
RICHNESS_MULTIPLIERS: Dict[Richness, float] = {
    Richness(name): value for name, value in SIM_CONFIG.stations.richness.items()
}

# every tag needs a row
_missing = set(ZoneModifier) - set(MODIFIER_TABLE)
if _missing:
    raise ValueError(f"sim_config.json has no modifier rows for {sorted(m.value for m in _missing)}")


def modifier_effect(modifier: Optional[ZoneModifier]) -> ModifierEffect:
    if modifier is None:
        return NEUTRAL_EFFECT
    return MODIFIER_TABLE[modifier]


def zone_modifier_risk(zone: Zone) -> float:
    effect = modifier_effect(zone.modifier)
    return effect.fuel_risk + effect.confidence_risk + effect.pirate_risk


def decay_multiplier(zone: Zone) -> float:
    return modifier_effect(zone.modifier).decay_multiplier


def maintenance_multiplier(zone: Zone) -> float:
    return modifier_effect(zone.modifier).maintenance_multiplier


def effective_richness(zone: Zone) -> Richness:
    override = modifier_effect(zone.modifier).richness
    return Richness(override) if override else zone.richness


def richness_multiplier(zone: Zone) -> float:
    return RICHNESS_MULTIPLIERS[effective_richness(zone)]


def pick_modifier(roll: float) -> Optional[ZoneModifier]:
    """Map a unit roll to a modifier; the lowest 35% leave the zone plain."""
    if roll < 0.35:
        return None
    options = list(ZoneModifier)
    slot = int((roll - 0.35) / 0.65 * len(options))
    return options[min(slot, len(options) - 1)]
