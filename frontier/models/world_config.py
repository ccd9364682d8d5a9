from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional, List, Dict


class ZoneModifier(str, Enum):
    HIGH_RADIATION = "HighRadiation"
    NEBULA_INTERFERENCE = "NebulaInterference"
    RICH_ORE_VEINS = "RichOreVeins"
    DEPLETED_RESOURCES = "DepletedResources"
    SENSOR_NOISE = "SensorNoise"
    CLEAR_SIGNALS = "ClearSignals"


class Richness(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ZoneControl(str, Enum):
    PLAYER = "player"
    PIRATE = "pirate"
    NEUTRAL = "neutral"


class Layer(IntEnum):
    EXISTENCE = 0
    GEOGRAPHY = 1
    RESOURCES = 2
    THREATS = 3
    STABILITY = 4


class StationKind(str, Enum):
    MINING_OUTPOST = "MiningOutpost"
    FUEL_DEPOT = "FuelDepot"
    SENSOR_STATION = "SensorStation"


class StationState(str, Enum):
    DEPLOYING = "Deploying"
    OPERATIONAL = "Operational"
    STRAINED = "Strained"
    FAILING = "Failing"
    FAILED = "Failed"


class StationOutcome(str, Enum):
    ABANDONED = "Abandoned"
    CAPTURED = "Captured"
    DESTROYED = "Destroyed"
    TRANSFORMED = "Transformed"


class StationVerb(str, Enum):
    STABILIZE = "Stabilize"
    REINFORCE = "Reinforce"
    DOWNSCALE = "Downscale"
    EVACUATE = "Evacuate"
    ISOLATE = "Isolate"


class CrisisType(str, Enum):
    FUEL_SHORTAGE = "FuelShortage"
    PIRATE_HARASSMENT = "PirateHarassment"
    MAINTENANCE_FAILURE = "MaintenanceFailure"


class CrisisStage(str, Enum):
    STABLE = "Stable"
    STRAINED = "Strained"
    FAILING = "Failing"
    RESOLVED = "Resolved"


class FleetRole(str, Enum):
    SCOUT = "Scout"
    MINING = "Mining"
    SECURITY = "Security"


class TaskType(str, Enum):
    SCOUT = "Scout"
    MINE = "Mine"
    PATROL = "Patrol"
    ESCORT = "Escort"
    RESUPPLY = "Resupply"
    ASSAULT = "Assault"


class RiskTolerance(str, Enum):
    CAUTIOUS = "Cautious"
    BALANCED = "Balanced"
    AGGRESSIVE = "Aggressive"
    DESPERATE = "Desperate"


class AutonomyTier(str, Enum):
    MANUAL = "Manual"
    ASSISTED = "Assisted"
    AUTONOMOUS = "Autonomous"
    STRATEGIC = "Strategic"


class FleetState(str, Enum):
    IDLE = "Idle"
    IN_TRANSIT = "InTransit"
    EXECUTING = "Executing"
    RETURNING = "Returning"
    REFUELING = "Refueling"
    DAMAGED = "Damaged"
    DISABLED = "Disabled"


class FleetAction(str, Enum):
    # declaration order is the tie-break precedence
    CONTINUE = "Continue"
    DELAY = "Delay"
    REROUTE = "Reroute"
    REQUEST_SUPPORT = "RequestSupport"
    RETREAT = "Retreat"
    ABORT = "Abort"


class Doctrine(str, Enum):
    OPPORTUNIST = "Opportunist"
    RAIDER = "Raider"
    BLOCKADE = "Blockade"
    HUNTER = "Hunter"


class WaveKind(str, Enum):
    RAID = "Raid"
    WAVE_A = "WaveA"
    WAVE_B = "WaveB"
    OVERRUN = "Overrun"


class BossPhase(str, Enum):
    APPROACH = "Approach"
    DEFENSE_SCREEN = "DefenseScreen"
    BOSS_EMERGENCE = "BossEmergence"
    OVERRUN = "Overrun"


class CommandKind(str, Enum):
    CHANGE_INTENT = "ChangeIntent"
    SET_RISK_TOLERANCE = "SetRiskTolerance"
    SET_PRIORITY_WEIGHTS = "SetPriorityWeights"
    ASSIGN_ESCORT = "AssignEscort"
    SET_AUTONOMY_TIER = "SetAutonomyTier"
    STATION_VERB = "StationVerb"
    REFRESH_KNOWLEDGE = "RefreshKnowledge"
    BUILD_STATION = "BuildStation"
    BUILD_FLEET = "BuildFleet"
    RECLAIM_DERELICT = "ReclaimDerelict"
    DEBUG_SPAWN = "DebugSpawn"
    DEBUG_REVEAL = "DebugReveal"
    DEBUG_RANDOMIZE_MODIFIER = "DebugRandomizeModifier"


@dataclass
class Zone:
    id: int
    x: float
    y: float
    modifier: Optional[ZoneModifier] = None
    richness: Richness = Richness.MEDIUM
    neighbors: List[int] = field(default_factory=list)
    control: ZoneControl = ZoneControl.NEUTRAL


@dataclass
class Route:
    id: int
    a: int
    b: int
    distance: float
    risk: float = 0.0


@dataclass
class KnowledgeState:
    zone_id: int
    layer: Layer
    confidence: float
    observed: bool = False
    last_refresh: Optional[float] = None  # elapsed seconds
    observed_value: Optional[float] = None  # ground truth captured on refresh


@dataclass
class ZonePressure:
    pirate: float = 0.0
    faction: float = 0.0


@dataclass
class PressureField:
    zones: Dict[int, ZonePressure] = field(default_factory=dict)


@dataclass
class Station:
    id: int
    kind: StationKind
    zone_id: int
    x: float
    y: float
    state: StationState
    fuel: float
    fuel_capacity: float
    build_remaining: float = 0.0
    integrity: float = 100.0
    pressure_exposure: float = 0.0
    maintenance_debt: float = 0.0
    ore: int = 0
    ore_capacity: int = 0
    ore_progress: float = 0.0  # seconds towards the next ore unit
    state_seconds: float = 0.0  # dwell time in the current state
    low_fuel_seconds: float = 0.0
    critical_fuel_seconds: float = 0.0
    calm_seconds: float = 0.0  # seconds since the last raid
    harassed_seconds: float = 0.0  # unbroken time with a raid inside the harassment window
    raid_times: List[float] = field(default_factory=list)
    downscaled: bool = False
    isolated: bool = False
    evacuating: bool = False
    intervention_pending: bool = False
    outcome: Optional[StationOutcome] = None
    failure_cause: Optional[str] = None
    created_at: float = 0.0


@dataclass
class Intent:
    task: TaskType
    zone_id: int
    target_id: Optional[int] = None  # station or base id for targeted tasks


@dataclass
class AwarenessSnapshot:
    """What a fleet believes about its path and target, possibly stale."""

    taken_at: float
    zone_id: int
    path: List[int]
    pirate_pressure: float
    confidence: float
    known: bool
    stale: bool
    crisis_stage: Optional[CrisisStage] = None
    target_layer: Optional[Layer] = None  # deepest layer ever observed at the intent zone


@dataclass
class Fleet:
    id: int
    role: FleetRole
    zone_id: int
    home_zone_id: int
    fuel: float
    fuel_capacity: float
    state: FleetState = FleetState.IDLE
    intent: Optional[Intent] = None
    risk_tolerance: RiskTolerance = RiskTolerance.BALANCED
    priority_weights: Dict[str, float] = field(default_factory=dict)
    autonomy: AutonomyTier = AutonomyTier.ASSISTED
    awareness: Optional[AwarenessSnapshot] = None
    path: List[int] = field(default_factory=list)  # zones still to visit
    next_zone: Optional[int] = None  # set while between zones
    route_id: Optional[int] = None
    hop_progress: float = 0.0  # distance covered on the current hop
    task_seconds: float = 0.0
    cargo: float = 0.0
    disabled_since: Optional[float] = None
    support_requested: bool = False
    fuel_alert: int = 0  # 0 none, 1 low, 2 critical
    last_action: Optional[FleetAction] = None
    last_report: Optional[str] = None


@dataclass
class Crisis:
    id: int
    crisis_type: CrisisType
    stage: CrisisStage
    station_id: int
    zone_id: int
    opened_at: float
    timer: float = 0.0  # seconds spent in the current stage
    escalated: bool = False  # reached Strained at least once
    affected_ids: List[int] = field(default_factory=list)
    resolved_at: Optional[float] = None
    outcome: Optional[StationOutcome] = None


@dataclass
class PirateGroup:
    id: int
    kind: str
    doctrine: Doctrine
    tier: int
    strength: float
    aggression: float
    target_bias: str  # "stations" | "routes"
    base_id: int
    zone_id: int
    target_kind: str  # "station" | "route" | "zone"
    target_id: int
    target_zone_id: int
    eta: float
    wave: WaveKind = WaveKind.RAID
    doctrine_until: Optional[float] = None
    home_doctrine: Optional[Doctrine] = None


@dataclass
class BossEncounter:
    started_tick: int
    phase: BossPhase = BossPhase.APPROACH
    wave_a_count: int = 0
    wave_b_count: int = 0
    overrun_count: int = 0
    next_overrun_at: Optional[float] = None  # encounter seconds
    assault_progress: float = 0.0
    failed_fleets: List[int] = field(default_factory=list)


@dataclass
class PirateBase:
    id: int
    tier: int
    zone_id: int
    boss_id: Optional[int] = None
    boss_alive: bool = True
    influence_radius: int = 1
    radius_bonus_until: Optional[float] = None
    hunter_until: Optional[float] = None
    spawn_budget: int = 0
    budget_cooldown: float = 0.0
    raid_cooldown: float = 0.0
    suppressed_until: Optional[float] = None
    encounter: Optional[BossEncounter] = None


@dataclass
class Boss:
    id: int
    kind: str
    tier: int
    base_id: int
    enraged: bool = False
    notoriety: float = 0.0


@dataclass
class Derelict:
    id: int
    zone_id: int
    station_kind: StationKind
    source_station_id: int
    outcome: StationOutcome
    ore: int = 0
    created_at: float = 0.0
    reclaimed: bool = False


@dataclass
class OreField:
    """A finite ore deposit placed by world generation; fleets mine it down."""

    zone_id: int
    capacity: float
    remaining: float


@dataclass
class Raid:
    station_id: int
    group_id: int
    damage: float
    time: float


@dataclass
class Ambush:
    zone_id: int
    route_id: Optional[int]
    group_id: int
    strength: float
    time: float


@dataclass
class Intervention:
    station_id: int
    kind: str  # "fuel_delivery" | "escort" | "presence"
    fuel: float = 0.0
    fleet_id: Optional[int] = None


@dataclass
class Observation:
    zone_id: int
    layer: Layer
    source: str  # "travel" | "scout" | "sensor"


@dataclass
class SupportRequest:
    fleet_id: int
    zone_id: int
    time: float


@dataclass
class FleetLoss:
    fleet_id: int
    role: FleetRole
    zone_id: int
    tick: int
    reason: str


@dataclass
class HistoricalEvent:
    tick: int
    kind: str  # "station_strained", "crisis_opened", "boss_wave", ...
    zones: List[int]
    entities: List[int]
    text: str


@dataclass
class World:
    tick: int
    tick_seconds: float
    zones: Dict[int, Zone]
    routes: Dict[int, Route]
    knowledge: Dict[int, List[KnowledgeState]]
    pressure: PressureField
    seed: Optional[int] = None
    stations: Dict[int, Station] = field(default_factory=dict)
    fleets: Dict[int, Fleet] = field(default_factory=dict)
    crises: Dict[int, Crisis] = field(default_factory=dict)
    crisis_archive: List[Crisis] = field(default_factory=list)
    pirate_groups: Dict[int, PirateGroup] = field(default_factory=dict)
    bases: Dict[int, PirateBase] = field(default_factory=dict)
    bosses: Dict[int, Boss] = field(default_factory=dict)
    derelicts: Dict[int, Derelict] = field(default_factory=dict)
    ore_fields: Dict[int, OreField] = field(default_factory=dict)  # keyed by zone id
    lost_fleets: List[FleetLoss] = field(default_factory=list)
    epoch: int = 0
    next_entity_id: int = 1
    ore_stockpile: float = 0.0

    # Cross-subsystem records, consumed by their owning engine next tick
    raids: List[Raid] = field(default_factory=list)
    ambushes: List[Ambush] = field(default_factory=list)
    interventions: List[Intervention] = field(default_factory=list)
    observations: List[Observation] = field(default_factory=list)
    support_requests: List[SupportRequest] = field(default_factory=list)

    events: List[str] = field(default_factory=list)
    problems: List[str] = field(default_factory=list)
    history: List[HistoricalEvent] = field(default_factory=list)
    diagnostics: List[str] = field(default_factory=list)

    @property
    def elapsed(self) -> float:
        return self.tick * self.tick_seconds

    def allocate_id(self) -> int:
        entity_id = self.next_entity_id
        self.next_entity_id += 1
        return entity_id


@dataclass
class Command:
    """A player or debug command, applied at the next tick boundary."""

    kind: CommandKind
    fleet_id: Optional[int] = None
    station_id: Optional[int] = None
    zone_id: Optional[int] = None
    target_id: Optional[int] = None
    task: Optional[TaskType] = None
    layer: Optional[int] = None
    tier: Optional[str] = None  # RiskTolerance or AutonomyTier value
    weights: Optional[Dict[str, float]] = None
    verb: Optional[StationVerb] = None
    station_kind: Optional[StationKind] = None
    role: Optional[FleetRole] = None
    spawn: Optional[str] = None  # "pirate_group" | "station" | "fleet"
    source: Optional[str] = None  # "player" | "debug" (set by API)


@dataclass
class CommandResult:
    accepted: bool
    reason: Optional[str] = None
    detail: Optional[str] = None


@dataclass
class TickSummary:
    """Aggregated outcome of a single tick."""

    tick: int
    transitions: Dict[str, int]
    crises_opened: List[int]
    crises_resolved: List[int]
    decisions: Dict[str, int]
    pirate_spawns: int
    consequences: List[str]
    rejected_commands: List[str]
