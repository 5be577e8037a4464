"""
PediSim: Kernel Data Dictionary
===============================
Defines the entire state space of the clinical-outcome kernel.
It includes Inputs (orders from the learner), Patient State (what the
engine transforms), and Outputs (results, nurse evaluations, audit events).

NO LOGIC is implemented here beyond input validation. The engines in
physiology.py, deterioration.py and safety.py operate on these records.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from constants import VERSION


class CriticalConditionError(ValueError):
    """Raised when a scenario describes a patient outside what the kernel can simulate."""
    pass


class DataTypeError(TypeError):
    """Raised when inputs are wrong python types (str instead of float)."""
    pass


# --- 1. ENUMS (Closed clinical vocabularies) ---

class Rhythm(Enum):
    SINUS = "SINUS"
    SINUS_TACH = "SINUS_TACH"
    SINUS_BRADY = "SINUS_BRADY"
    SVT = "SVT"
    ATRIAL_FLUTTER = "ATRIAL_FLUTTER"
    ATRIAL_FIB = "ATRIAL_FIB"
    VTACH_PULSE = "VTACH_PULSE"
    VTACH_PULSELESS = "VTACH_PULSELESS"
    VFIB = "VFIB"
    ASYSTOLE = "ASYSTOLE"
    PEA = "PEA"


class Stability(Enum):
    STABLE = "stable"
    COMPENSATED = "compensated"
    DECOMPENSATED = "decompensated"
    SHOCK = "shock"


class MentalStatus(Enum):
    """AVPU scale"""
    ALERT = "alert"
    VERBAL = "verbal"
    PAIN = "pain"
    UNRESPONSIVE = "unresponsive"


class Perfusion(Enum):
    ADEQUATE = "adequate"
    DELAYED = "delayed"
    POOR = "poor"
    ABSENT = "absent"


class TransientType(Enum):
    ADENOSINE_EFFECT = "ADENOSINE_EFFECT"
    POST_CARDIOVERSION = "POST_CARDIOVERSION"
    VAGAL_RESPONSE = "VAGAL_RESPONSE"


class InterventionType(Enum):
    VAGAL_ICE = "VAGAL_ICE"
    VAGAL_VALSALVA = "VAGAL_VALSALVA"
    ADENOSINE = "ADENOSINE"
    ADENOSINE_2 = "ADENOSINE_2"
    AMIODARONE = "AMIODARONE"
    PROCAINAMIDE = "PROCAINAMIDE"
    CARDIOVERSION_SYNC = "CARDIOVERSION_SYNC"
    DEFIBRILLATION = "DEFIBRILLATION"
    EPINEPHRINE = "EPINEPHRINE"
    ATROPINE = "ATROPINE"
    ESTABLISH_IV = "ESTABLISH_IV"
    ESTABLISH_IO = "ESTABLISH_IO"
    SEDATION = "SEDATION"
    INTUBATION = "INTUBATION"
    START_CPR = "START_CPR"
    STOP_CPR = "STOP_CPR"


class Route(Enum):
    IV = "IV"
    IO = "IO"
    ETT = "ETT"
    EXTERNAL = "EXTERNAL"


class InterventionOutcome(Enum):
    CONVERTED = "CONVERTED"                        # Rhythm converted to target
    TRANSIENT_RESPONSE = "TRANSIENT_RESPONSE"      # e.g. asystole during adenosine
    NO_EFFECT = "NO_EFFECT"
    PARTIAL_RESPONSE = "PARTIAL_RESPONSE"
    ADVERSE_EFFECT = "ADVERSE_EFFECT"
    PREREQUISITE_MISSING = "PREREQUISITE_MISSING"  # Never attempted (no IV, not sedated)
    CONTRAINDICATED = "CONTRAINDICATED"            # Dangerous for this patient


class EventType(Enum):
    RHYTHM_CHANGE = "RHYTHM_CHANGE"
    VITALS_CHANGE = "VITALS_CHANGE"
    STABILITY_CHANGE = "STABILITY_CHANGE"
    INTERVENTION_ATTEMPTED = "INTERVENTION_ATTEMPTED"
    INTERVENTION_EXECUTED = "INTERVENTION_EXECUTED"
    TRANSIENT_START = "TRANSIENT_START"
    TRANSIENT_END = "TRANSIENT_END"
    DETERIORATION = "DETERIORATION"
    ALARM_TRIGGERED = "ALARM_TRIGGERED"
    ALARM_RESOLVED = "ALARM_RESOLVED"


class NurseAction(Enum):
    CONFIRM = "confirm"
    NOTE = "note"
    QUESTION = "question"
    WARN = "warn"
    CAP = "cap"
    REFUSE = "refuse"


class NurseReason(Enum):
    # Adenosine
    THIRD_DOSE = "third_dose"
    DANGEROUS_OVERDOSE = "dangerous_overdose"
    OVER_MAX = "over_max"
    HIGH_DOSE = "high_dose"
    VERY_LOW = "very_low"
    LOW_DOSE = "low_dose"
    # Cardioversion
    WRONG_RHYTHM = "wrong_rhythm"
    NOT_SHOCKABLE = "not_shockable"
    NOT_SEDATED = "not_sedated"
    OVER_DEVICE_MAX = "over_device_max"
    DANGEROUS_ENERGY = "dangerous_energy"
    HIGH_ENERGY = "high_energy"
    UPPER_LIMIT = "upper_limit"
    LOW_ENERGY = "low_energy"


class DeteriorationStage(Enum):
    COMPENSATED = "compensated"
    EARLY_STRESS = "early_stress"
    MODERATE_STRESS = "moderate_stress"
    DECOMPENSATING = "decompensating"
    CRITICAL = "critical"


class RecoveryPhase(Enum):
    IMMEDIATE = "immediate"         # 0-2s: junctional escape
    EARLY = "early"                 # 2-5s: sinus bradycardia
    TRANSITIONAL = "transitional"   # 5-10s: approaching normal
    STABLE = "stable"


class Demeanor(Enum):
    """Finer-grained than AVPU; what the learner sees at the bedside."""
    ALERT = "alert"
    ANXIOUS = "anxious"
    IRRITABLE = "irritable"
    LETHARGIC = "lethargic"
    UNRESPONSIVE = "unresponsive"


class SkinColor(Enum):
    PINK = "pink"
    PALE = "pale"
    MOTTLED = "mottled"
    GRAY = "gray"


class PulseQuality(Enum):
    BOUNDING = "bounding"
    STRONG = "strong"
    NORMAL = "normal"
    WEAK = "weak"
    THREADY = "thready"
    ABSENT = "absent"


class TemperatureZone(Enum):
    WARM = "warm"
    COOL = "cool"
    COLD = "cold"


class CoolTo(Enum):
    NORMAL = "normal"
    FINGERTIPS = "fingertips"
    HANDS = "hands"
    WRISTS = "wrists"
    ELBOWS = "elbows"
    KNEES = "knees"


class Mottling(Enum):
    NONE = "none"
    PERIPHERAL = "peripheral"
    CENTRAL = "central"
    GENERALIZED = "generalized"


class ClinicalObservation(Enum):
    HANDS_COOL = "perfusion_hands_cool"
    WRISTS_COOL = "perfusion_wrists_cool"
    MOTTLING = "perfusion_mottling"
    PULSE_WEAK = "perfusion_pulse_weak"
    PULSE_THREADY = "perfusion_pulse_thready"
    RECOVERING = "perfusion_recovering"


class Difficulty(Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


# --- 2. PATIENT STATE (What the engine transforms) ---

@dataclass(frozen=True)
class PatientProfile:
    """
    Immutable identity. Never changes after scenario start.
    """
    name: str
    age: float               # years
    weight: float            # kg - CRITICAL: every dose and energy scales from this
    sex: str                 # 'M' or 'F'
    chief_complaint: str
    history: str = ""

    def __post_init__(self):
        for attr in ("age", "weight"):
            val = getattr(self, attr)
            if isinstance(val, bool) or not isinstance(val, (int, float)):
                raise DataTypeError(f"Field '{attr}' must be numeric, got {type(val)}")

        if self.sex not in ("M", "F"):
            raise ValueError("Sex must be 'M' or 'F'")
        if not (0 <= self.age <= 18):
            raise ValueError(f"Invalid age: {self.age} (pediatric range 0-18 years)")
        if not (0.5 <= self.weight <= 150.0):
            raise ValueError(f"Invalid weight: {self.weight}")


@dataclass(frozen=True)
class Vitals:
    heart_rate: int
    systolic_bp: int
    diastolic_bp: int
    respiratory_rate: int
    spo2: int
    temperature: float = 98.6    # Fahrenheit
    capillary_refill: float = 2.0  # seconds


@dataclass(frozen=True)
class TransientState:
    """
    A temporary physiological excursion with a known cause.
    While active, PatientState.rhythm shows the excursion, not the
    underlying rhythm; previous_* is what a failed resolution restores.
    """
    type: TransientType
    start_time: int          # ms from sim start
    duration: int            # ms
    previous_rhythm: Rhythm
    previous_hr: int


@dataclass(frozen=True)
class PatientState:
    profile: PatientProfile

    rhythm: Rhythm
    vitals: Vitals
    mental_status: MentalStatus = MentalStatus.ALERT
    perfusion: Perfusion = Perfusion.ADEQUATE
    stability: Stability = Stability.STABLE

    # Clinical flags
    iv_access: bool = False
    io_access: bool = False
    sedated: bool = False
    intubated: bool = False

    # Deterioration tracking
    time_in_current_rhythm: int = 0   # ms
    deterioration_stage: int = 0      # 0 = none, 1-3 = progressive

    transient_state: Optional[TransientState] = None

    def __post_init__(self):
        if not (0 <= self.deterioration_stage <= 3):
            raise ValueError(f"Invalid deterioration stage: {self.deterioration_stage}")

    @property
    def has_vascular_access(self) -> bool:
        return self.iv_access or self.io_access


# --- 3. INPUT LAYER (What the learner orders) ---

@dataclass(frozen=True)
class InterventionRequest:
    type: InterventionType
    timestamp: int                      # ms from sim start
    dose: Optional[float] = None        # mg or J depending on intervention
    route: Optional[Route] = None
    verbalization: Optional[str] = None # what the learner said - audit only
    attempt: int = 1                    # shock attempt number (energy escalation)


@dataclass(frozen=True)
class InterventionFlags:
    """Supportive measures that soften untreated deterioration."""
    oxygen_applied: bool = False
    iv_fluids_given: bool = False
    position_optimized: bool = False


# --- 4. OUTPUT LAYER (Results, evaluations, audit) ---

@dataclass(frozen=True)
class SimulationEvent:
    timestamp: int
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """The flat {timestamp, type, data} record downstream debrief consumes."""
        return {"timestamp": self.timestamp, "type": self.type.value, "data": dict(self.data)}


@dataclass
class InterventionResult:
    success: bool
    executed: bool                      # False = refused before trying
    outcome: InterventionOutcome
    reason: Optional[str] = None
    # Partial delta: only the PatientState fields that changed
    new_state: Dict[str, Any] = field(default_factory=dict)
    events: List[SimulationEvent] = field(default_factory=list)
    dose_accuracy: Optional[float] = None


@dataclass
class PendingConversionResult(InterventionResult):
    """
    Transient response whose true outcome is decided now but revealed later.
    The caller hands `pending_conversion` to resolve_transient_state once the
    transient duration has elapsed.
    """
    dose_accuracy: float = 1.0
    pending_conversion: bool = False


@dataclass(frozen=True)
class DoseCalculation:
    drug: str
    weight_based_dose: float    # mg/kg or J/kg actually used
    calculated_dose: float      # for this patient, capped
    max_dose: float
    unit: str
    route: str                  # e.g. "IV/IO"
    notes: str = ""


@dataclass(frozen=True)
class DoseAccuracy:
    accuracy: float             # given / correct
    correct: float
    given: float
    feedback: str


@dataclass(frozen=True)
class NurseEvaluation:
    allow: bool
    action: NurseAction
    message: str
    reason: Optional[NurseReason] = None
    actual_dose: Optional[float] = None   # set when capping
    needs_confirmation: bool = False


# --- 5. DETERIORATION MODEL OUTPUTS ---

@dataclass(frozen=True)
class MonitorVitals:
    """Vitals as the deterioration/recovery model produces them."""
    hr: int
    spo2: int
    systolic: int
    diastolic: int
    rr: int
    cap_refill: float
    demeanor: Demeanor
    skin_color: SkinColor

    def to_vitals(self, temperature: float = 98.6) -> Vitals:
        return Vitals(
            heart_rate=self.hr,
            systolic_bp=self.systolic,
            diastolic_bp=self.diastolic,
            respiratory_rate=self.rr,
            spo2=self.spo2,
            temperature=temperature,
            capillary_refill=self.cap_refill,
        )


@dataclass(frozen=True)
class ExtremityTemperature:
    hands: TemperatureZone
    wrists: TemperatureZone
    elbows: TemperatureZone


@dataclass(frozen=True)
class PerfusionAssessment:
    pulse_quality: PulseQuality
    extremity_temp: ExtremityTemperature
    cool_to: CoolTo
    mottling: Mottling
    cap_refill: float
    skin_color: SkinColor


@dataclass(frozen=True)
class ProceduralEffect:
    """Transient monitor disturbance from a painful procedure."""
    spo2_delta: int
    hr_delta: int
    duration_ms: int
    has_artifact: bool
    artifact_severity: Optional[str] = None   # 'mild' | 'moderate' | 'severe'


# --- 6. SCENARIOS ---

@dataclass(frozen=True)
class SuccessCriteria:
    must_convert: bool = True
    max_time_ms: Optional[int] = None
    required_steps: Tuple[InterventionType, ...] = ()


@dataclass(frozen=True)
class ScenarioDefinition:
    id: str
    name: str
    description: str
    difficulty: Difficulty
    initial_state: PatientState
    expected_interventions: Tuple[InterventionType, ...]
    ideal_time_ms: int
    acceptable_time_ms: int
    deterioration_enabled: bool
    deterioration_delay_ms: int
    success_criteria: SuccessCriteria


@dataclass
class AuditLog:
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    action: str = "scenario_load"
    inputs_hash: int = 0
    model_version: str = VERSION


@dataclass
class ScenarioLoadResult:
    """Standardized response format for API/UI."""
    success: bool
    state: Optional[PatientState]
    errors: List[str]
    scenario_id: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    audit_log: Optional[AuditLog] = None
