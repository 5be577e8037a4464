from dataclasses import dataclass
from typing import Optional, Tuple

VERSION = "1.0.0"
PROTOCOL_VERSION = "PALS 2020"


@dataclass(frozen=True)
class DrugProtocol:
    name: str
    indication: str
    dose_per_kg: float          # mg/kg
    max_dose: float             # mg, single dose ceiling
    unit: str
    routes: Tuple[str, ...]
    notes: str
    # Escalating drugs (adenosine) scale dose/kg on the second push
    second_dose_multiplier: Optional[float] = None


@dataclass(frozen=True)
class EnergyProtocol:
    name: str
    indication: str
    initial_j_per_kg: float
    max_j_per_kg: float         # used from the second attempt on
    max_j: float                # device ceiling
    notes: str


class DRUG_LIBRARY:
    """
    The PALS drug table.
    Keys are the identifiers callers order by (e.g. "ADENOSINE").
    """
    SPECS = {
        "ADENOSINE": DrugProtocol(
            name="Adenosine",
            indication="SVT",
            dose_per_kg=0.1, max_dose=6.0, unit="mg",
            routes=("IV", "IO"),
            notes="Rapid IV push followed by immediate 5-10mL NS flush. Use proximal IV site.",
            second_dose_multiplier=2.0,  # 0.2 mg/kg on the second push
        ),
        "ADENOSINE_2": DrugProtocol(
            name="Adenosine (2nd dose)",
            indication="SVT refractory to first dose",
            dose_per_kg=0.2, max_dose=12.0, unit="mg",
            routes=("IV", "IO"),
            notes="Rapid IV push followed by immediate 10-20mL NS flush.",
        ),
        "AMIODARONE": DrugProtocol(
            name="Amiodarone",
            indication="VF/pVT, SVT, VT with pulse",
            dose_per_kg=5.0, max_dose=300.0, unit="mg",
            routes=("IV", "IO"),
            notes="For VF/pVT: rapid bolus. For perfusing rhythms: load over 20-60 min.",
        ),
        "EPINEPHRINE": DrugProtocol(
            name="Epinephrine",
            indication="Cardiac arrest, bradycardia, anaphylaxis",
            dose_per_kg=0.01, max_dose=1.0, unit="mg",  # 0.1 mL/kg of 1:10,000
            routes=("IV", "IO", "ETT"),
            notes="IV/IO: 0.01 mg/kg (1:10,000). ETT: 0.1 mg/kg (1:1,000). Repeat q3-5min.",
        ),
        "ATROPINE": DrugProtocol(
            name="Atropine",
            indication="Symptomatic bradycardia (vagal origin)",
            dose_per_kg=0.02, max_dose=0.5, unit="mg",
            routes=("IV", "IO", "ETT"),
            notes="Minimum dose 0.1mg to avoid paradoxical bradycardia.",
        ),
        "LIDOCAINE": DrugProtocol(
            name="Lidocaine",
            indication="VF/pVT (alternative to amiodarone)",
            dose_per_kg=1.0, max_dose=100.0, unit="mg",
            routes=("IV", "IO"),
            notes="Bolus followed by infusion 20-50 mcg/kg/min.",
        ),
        "PROCAINAMIDE": DrugProtocol(
            name="Procainamide",
            indication="SVT, VT with pulse (especially WPW)",
            dose_per_kg=15.0, max_dose=1000.0, unit="mg",
            routes=("IV", "IO"),
            notes="Load over 30-60 min. Monitor for hypotension, QRS widening.",
        ),
        "MIDAZOLAM": DrugProtocol(
            name="Midazolam",
            indication="Sedation for cardioversion",
            dose_per_kg=0.1, max_dose=5.0, unit="mg",
            routes=("IV", "IO"),
            notes="Titrate to effect. Have flumazenil available.",
        ),
        "KETAMINE": DrugProtocol(
            name="Ketamine",
            indication="Sedation for cardioversion (preserves hemodynamics)",
            dose_per_kg=1.5, max_dose=100.0, unit="mg",
            routes=("IV", "IO"),
            notes="Good choice for hemodynamically unstable patients.",
        ),
        "FENTANYL": DrugProtocol(
            name="Fentanyl",
            indication="Analgesia/sedation",
            dose_per_kg=0.001, max_dose=0.05, unit="mg",  # 1 mcg/kg, 50 mcg ceiling
            routes=("IV", "IO"),
            notes="Actually dosed in mcg. 1-2 mcg/kg.",
        ),
    }

    @staticmethod
    def get(drug: str) -> Optional[DrugProtocol]:
        return DRUG_LIBRARY.SPECS.get(drug)


class ENERGY_LIBRARY:
    SPECS = {
        "CARDIOVERSION_SYNC": EnergyProtocol(
            name="Synchronized Cardioversion",
            indication="SVT, VT with pulse, A-fib/flutter with instability",
            initial_j_per_kg=0.5, max_j_per_kg=2.0, max_j=200.0,
            notes="Start 0.5-1 J/kg. May increase to 2 J/kg if needed.",
        ),
        "DEFIBRILLATION": EnergyProtocol(
            name="Defibrillation",
            indication="VF, pulseless VT",
            initial_j_per_kg=2.0, max_j_per_kg=4.0, max_j=360.0,  # biphasic
            notes="Initial 2 J/kg, subsequent 4 J/kg. Maximize to device max.",
        ),
    }

    @staticmethod
    def get(kind: str) -> Optional[EnergyProtocol]:
        return ENERGY_LIBRARY.SPECS.get(kind)


class SUCCESS_RATES:
    # Literature base rates at a correct dose
    VAGAL = 0.25                # 15-30% in children
    ADENOSINE_FIRST = 0.60
    ADENOSINE_SECOND = 0.80
    CARDIOVERSION = 0.92
    IV_ACCESS = 0.85            # first attempt, pediatric
    IO_ACCESS = 0.95


class NURSE_THRESHOLDS:
    ADENOSINE_OVERDOSE_FACTOR = 1.5     # x max dose -> refuse
    ADENOSINE_HIGH_MG_KG_FIRST = 0.18
    ADENOSINE_HIGH_MG_KG_SECOND = 0.35
    ADENOSINE_VERY_LOW_FRACTION = 0.3
    ADENOSINE_LOW_FRACTION = 0.7
    ADENOSINE_MAX_DOSES = 2

    CARDIOVERSION_TARGET_J_KG_FIRST = 0.5
    CARDIOVERSION_TARGET_J_KG_REPEAT = 1.0
    CARDIOVERSION_DANGEROUS_J_KG = 4.0
    CARDIOVERSION_HIGH_J_KG = 2.5
    CARDIOVERSION_UPPER_J_KG = 2.0
    CARDIOVERSION_VERY_LOW_FRACTION = 0.3
    CARDIOVERSION_LOW_FRACTION = 0.6


class DEVICE_LIMITS:
    PEDIATRIC_PAD_MAX_J = 200


class TRANSIENT_TIMING:
    ADENOSINE_ASYSTOLE_MIN_MS = 3000
    ADENOSINE_ASYSTOLE_SPREAD_MS = 4000     # 3-7 s total
    RHYTHM_CHANGE_DELAY_MS = 100            # shock -> rhythm change on the monitor


class POST_CONVERSION_HR:
    # Uniform bands: base + [0, spread)
    SINUS_BASE = 85
    SINUS_SPREAD = 20
    CARDIOVERSION_BASE = 80
    CARDIOVERSION_SPREAD = 25
    REVERT_DROP_SPREAD = 10     # failed adenosine: prior HR - [0, 10)


class DETERIORATION_TIMING:
    MINUTE_MS = 60 * 1000
    # Five-stage SVT model (upper bound of each stage)
    COMPENSATED_MS = 2 * MINUTE_MS
    EARLY_STRESS_MS = 5 * MINUTE_MS
    MODERATE_STRESS_MS = 8 * MINUTE_MS
    DECOMPENSATING_MS = 12 * MINUTE_MS
    TRANSITION_WINDOW = 0.7     # last 30% of a stage blends toward the next
    TRANSITION_REACH = 0.3      # ...by at most 30% of the gap

    # Discrete PatientState staging (0-3)
    STAGE_1_MS = 5 * MINUTE_MS
    STAGE_2_MS = 10 * MINUTE_MS
    STAGE_3_MS = 15 * MINUTE_MS


class RECOVERY_TIMING:
    JUNCTIONAL_MS = 2000
    BRADYCARDIA_MS = 5000
    APPROACH_MS = 10000
    FULL_RECOVERY_MS = 30000
    PERFUSION_RECOVERY_MS = 60000
    JUNCTIONAL_HR = 55
    BRADYCARDIA_HR = 70
    DEFAULT_TARGET_HR = 90


class ASYSTOLE_DECAY:
    START_SPO2 = 97
    SPO2_DROP_PER_SEC = 3
    SPO2_FLOOR = 70
