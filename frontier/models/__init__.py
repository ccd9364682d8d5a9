from .sim_config import SIM_CONFIG
from .runtime_config import RUNTIME_SETTINGS, REDIS_SETTINGS
from .world_config import (
    ZoneModifier,
    Richness,
    ZoneControl,
    Layer,
    StationKind,
    StationState,
    StationOutcome,
    StationVerb,
    CrisisType,
    CrisisStage,
    FleetRole,
    TaskType,
    RiskTolerance,
    AutonomyTier,
    FleetState,
    FleetAction,
    Doctrine,
    WaveKind,
    BossPhase,
    CommandKind,
    Zone,
    Route,
    KnowledgeState,
    ZonePressure,
    PressureField,
    Station,
    Intent,
    AwarenessSnapshot,
    Fleet,
    Crisis,
    PirateGroup,
    BossEncounter,
    PirateBase,
    Boss,
    Derelict,
    OreField,
    Raid,
    Ambush,
    Intervention,
    Observation,
    SupportRequest,
    FleetLoss,
    HistoricalEvent,
    World,
    Command,
    CommandResult,
    TickSummary,
)

__all__ = [
    "SIM_CONFIG",
    "RUNTIME_SETTINGS",
    "REDIS_SETTINGS",
    "ZoneModifier",
    "Richness",
    "ZoneControl",
    "Layer",
    "StationKind",
    "StationState",
    "StationOutcome",
    "StationVerb",
    "CrisisType",
    "CrisisStage",
    "FleetRole",
    "TaskType",
    "RiskTolerance",
    "AutonomyTier",
    "FleetState",
    "FleetAction",
    "Doctrine",
    "WaveKind",
    "BossPhase",
    "CommandKind",
    "Zone",
    "Route",
    "KnowledgeState",
    "ZonePressure",
    "PressureField",
    "Station",
    "Intent",
    "AwarenessSnapshot",
    "Fleet",
    "Crisis",
    "PirateGroup",
    "BossEncounter",
    "PirateBase",
    "Boss",
    "Derelict",
    "OreField",
    "Raid",
    "Ambush",
    "Intervention",
    "Observation",
    "SupportRequest",
    "FleetLoss",
    "HistoricalEvent",
    "World",
    "Command",
    "CommandResult",
    "TickSummary",
]
