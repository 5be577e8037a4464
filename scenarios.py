"""
Scenario definitions and the safe factory that builds a starting PatientState.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from models import (
    AuditLog, CriticalConditionError, DataTypeError, Difficulty, InterventionType,
    MentalStatus, PatientProfile, PatientState, Perfusion, Rhythm, ScenarioDefinition,
    ScenarioLoadResult, Stability, SuccessCriteria, Vitals,
)

logger = logging.getLogger("pedisim.scenarios")

ARREST_RHYTHMS = (Rhythm.VFIB, Rhythm.VTACH_PULSELESS, Rhythm.PEA, Rhythm.ASYSTOLE)
TYPICAL_SVT_MIN_HR = 180


def build_patient_state(profile: PatientProfile, rhythm: Rhythm, hr: int,
                        bp: Tuple[int, int], stable: bool,
                        mental_status: MentalStatus = MentalStatus.ALERT,
                        perfusion: Perfusion = Perfusion.ADEQUATE,
                        deterioration_stage: int = 0,
                        iv_access: bool = False) -> PatientState:
    """Starting state: no access, not sedated, clock at zero in the presenting rhythm."""
    return PatientState(
        profile=profile,
        rhythm=rhythm,
        vitals=Vitals(
            heart_rate=hr,
            systolic_bp=bp[0],
            diastolic_bp=bp[1],
            respiratory_rate=26,
            spo2=97 if stable else 93,
            temperature=98.6,
            capillary_refill=2.0 if stable else 4.0,
        ),
        mental_status=mental_status,
        perfusion=perfusion,
        stability=Stability.STABLE if stable else Stability.DECOMPENSATED,
        iv_access=iv_access,
        deterioration_stage=deterioration_stage,
    )


def _lily(chief_complaint: str, history: str) -> PatientProfile:
    return PatientProfile(name="Lily Henderson", age=5, weight=18.5, sex="F",
                          chief_complaint=chief_complaint, history=history)


SCENARIOS: Dict[str, ScenarioDefinition] = {
    "SVT_STABLE": ScenarioDefinition(
        id="SVT_STABLE",
        name="Stable SVT",
        description="5-year-old with sudden onset palpitations during play. Hemodynamically stable SVT.",
        difficulty=Difficulty.BEGINNER,
        initial_state=build_patient_state(
            _lily("Chest feels like a drum", "Playing tag, sudden onset"),
            Rhythm.SVT, 220, (92, 64), stable=True),
        expected_interventions=(InterventionType.VAGAL_ICE, InterventionType.ADENOSINE,
                                InterventionType.ADENOSINE_2, InterventionType.CARDIOVERSION_SYNC),
        ideal_time_ms=180000,        # 3 min
        acceptable_time_ms=300000,
        deterioration_enabled=True,
        deterioration_delay_ms=300000,
        success_criteria=SuccessCriteria(must_convert=True, max_time_ms=600000),
    ),
    "SVT_UNSTABLE": ScenarioDefinition(
        id="SVT_UNSTABLE",
        name="Unstable SVT",
        description="5-year-old with SVT and signs of shock. Requires immediate cardioversion.",
        difficulty=Difficulty.INTERMEDIATE,
        initial_state=build_patient_state(
            _lily("Chest hurts, feels dizzy", "SVT for ~20 minutes before arrival"),
            Rhythm.SVT, 240, (70, 45), stable=False,
            mental_status=MentalStatus.VERBAL, perfusion=Perfusion.POOR),
        expected_interventions=(InterventionType.SEDATION, InterventionType.CARDIOVERSION_SYNC),
        ideal_time_ms=120000,
        acceptable_time_ms=180000,
        deterioration_enabled=True,
        deterioration_delay_ms=60000,
        success_criteria=SuccessCriteria(must_convert=True, max_time_ms=300000),
    ),
    "SVT_DETERIORATING": ScenarioDefinition(
        id="SVT_DETERIORATING",
        name="Deteriorating SVT",
        description="Stable SVT that becomes unstable if not treated promptly.",
        difficulty=Difficulty.ADVANCED,
        initial_state=build_patient_state(
            _lily("Heart racing", "Noted tachycardia 10 minutes ago"),
            Rhythm.SVT, 225, (88, 58), stable=True,
            deterioration_stage=1),  # already slightly compromised
        expected_interventions=(InterventionType.VAGAL_ICE, InterventionType.ADENOSINE,
                                InterventionType.CARDIOVERSION_SYNC),
        ideal_time_ms=240000,
        acceptable_time_ms=360000,
        deterioration_enabled=True,
        deterioration_delay_ms=120000,
        success_criteria=SuccessCriteria(must_convert=True, max_time_ms=480000),
    ),
}


def create_initial_state(data: Dict[str, Any]) -> ScenarioLoadResult:
    """
    SAFE FACTORY: builds a starting PatientState from loose (API/UI) input.
    Validation failures come back in `errors`; this never raises.
    """
    warnings = []
    try:
        # 1. Profile (validates types and ranges)
        profile = PatientProfile(
            name=data["name"],
            age=data["age"],
            weight=data["weight"],
            sex=data["sex"],
            chief_complaint=data.get("chief_complaint", ""),
            history=data.get("history", ""),
        )

        # 2. Presenting rhythm
        rhythm = Rhythm(data.get("rhythm", Rhythm.SVT.value))
        if rhythm in ARREST_RHYTHMS:
            raise CriticalConditionError(f"{rhythm.value} is an arrest rhythm; cannot start a session in it")

        for field_name in ("hr", "systolic", "diastolic", "deterioration_stage"):
            val = data.get(field_name, 0)
            if isinstance(val, bool) or not isinstance(val, int):
                raise DataTypeError(f"Field '{field_name}' must be an integer, got {type(val)}")

        hr = data["hr"]
        if rhythm == Rhythm.SVT and hr < TYPICAL_SVT_MIN_HR:
            warnings.append(f"HR {hr} is below the usual pediatric SVT range (>{TYPICAL_SVT_MIN_HR})")

        state = build_patient_state(
            profile,
            rhythm,
            hr,
            (data["systolic"], data["diastolic"]),
            stable=bool(data.get("stable", True)),
            mental_status=MentalStatus(data.get("mental_status", MentalStatus.ALERT.value)),
            perfusion=Perfusion(data.get("perfusion", Perfusion.ADEQUATE.value)),
            deterioration_stage=data.get("deterioration_stage", 0),
            iv_access=bool(data.get("iv_access", False)),
        )

        return ScenarioLoadResult(
            success=True,
            state=state,
            errors=[],
            warnings=warnings,
            audit_log=AuditLog(action="create_initial_state", inputs_hash=hash(str(data))),
        )

    except KeyError as e:
        return ScenarioLoadResult(success=False, state=None, errors=[f"Missing field: {e.args[0]}"])
    except (CriticalConditionError, ValueError, DataTypeError) as e:
        return ScenarioLoadResult(success=False, state=None, errors=[str(e)])
    except Exception as e:
        logger.exception("create_initial_state failed on unexpected input")
        return ScenarioLoadResult(success=False, state=None, errors=[f"System Error: {str(e)}"])


def load_scenario(scenario_id: str) -> ScenarioLoadResult:
    scenario: Optional[ScenarioDefinition] = SCENARIOS.get(scenario_id)
    if scenario is None:
        logger.warning(f"Unknown scenario requested: {scenario_id}")
        return ScenarioLoadResult(
            success=False,
            state=None,
            errors=[f"Unknown scenario '{scenario_id}'. Available: {', '.join(SCENARIOS)}"],
            scenario_id=scenario_id,
        )

    logger.info(f"Loaded scenario {scenario_id}")
    return ScenarioLoadResult(
        success=True,
        state=scenario.initial_state,
        errors=[],
        scenario_id=scenario_id,
        audit_log=AuditLog(action="scenario_load", inputs_hash=hash(scenario_id)),
    )
