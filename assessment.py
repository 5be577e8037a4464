"""
Bedside Assessment
Physical exam findings that change with deterioration ("look at the
patient, not just the monitor"), and the transient monitor disturbance
caused by painful procedures.
"""
from typing import Dict, List, Optional

from constants import RECOVERY_TIMING
from models import (
    ClinicalObservation, CoolTo, DeteriorationStage, ExtremityTemperature,
    Mottling, PerfusionAssessment, ProceduralEffect, PulseQuality, SkinColor,
    TemperatureZone,
)
from random_source import RandomSource

WARM, COOL, COLD = TemperatureZone.WARM, TemperatureZone.COOL, TemperatureZone.COLD


def _exam(pulse, hands, wrists, elbows, cool_to, mottling, cap_refill, skin) -> PerfusionAssessment:
    return PerfusionAssessment(
        pulse_quality=pulse,
        extremity_temp=ExtremityTemperature(hands=hands, wrists=wrists, elbows=elbows),
        cool_to=cool_to,
        mottling=mottling,
        cap_refill=cap_refill,
        skin_color=skin,
    )


PERFUSION_BY_STAGE: Dict[DeteriorationStage, PerfusionAssessment] = {
    DeteriorationStage.COMPENSATED: _exam(
        PulseQuality.STRONG, WARM, WARM, WARM, CoolTo.NORMAL, Mottling.NONE, 2.0, SkinColor.PINK),
    DeteriorationStage.EARLY_STRESS: _exam(
        PulseQuality.NORMAL, COOL, WARM, WARM, CoolTo.HANDS, Mottling.NONE, 2.5, SkinColor.PALE),
    DeteriorationStage.MODERATE_STRESS: _exam(
        PulseQuality.WEAK, COOL, COOL, WARM, CoolTo.WRISTS, Mottling.PERIPHERAL, 3.5, SkinColor.PALE),
    DeteriorationStage.DECOMPENSATING: _exam(
        PulseQuality.THREADY, COLD, COOL, COOL, CoolTo.ELBOWS, Mottling.CENTRAL, 4.5, SkinColor.MOTTLED),
    DeteriorationStage.CRITICAL: _exam(
        PulseQuality.THREADY, COLD, COLD, COLD, CoolTo.KNEES, Mottling.GENERALIZED, 6.0, SkinColor.GRAY),
}

ASYSTOLE_PERFUSION = _exam(
    PulseQuality.ABSENT, COLD, COLD, COOL, CoolTo.ELBOWS, Mottling.GENERALIZED, 6.0, SkinColor.GRAY)

# Post-conversion exam by fraction of the 60 s recovery window
_RECOVERY_STEPS = [
    (0.2, _exam(PulseQuality.WEAK, COOL, COOL, WARM, CoolTo.WRISTS, Mottling.PERIPHERAL, 3.5, SkinColor.PALE)),
    (0.5, _exam(PulseQuality.NORMAL, COOL, WARM, WARM, CoolTo.HANDS, Mottling.NONE, 2.5, SkinColor.PALE)),
]
_RECOVERED = PERFUSION_BY_STAGE[DeteriorationStage.COMPENSATED]


def recovery_perfusion(time_after_conversion_ms: float) -> PerfusionAssessment:
    progress = min(1.0, time_after_conversion_ms / RECOVERY_TIMING.PERFUSION_RECOVERY_MS)
    for upper, exam in _RECOVERY_STEPS:
        if progress < upper:
            return exam
    return _RECOVERED


def calculate_perfusion(stage: DeteriorationStage, is_asystole: bool = False,
                        is_converted: bool = False,
                        time_after_conversion_ms: Optional[float] = None) -> PerfusionAssessment:
    """Asystole overrides everything; a converted patient follows the recovery course."""
    if is_asystole:
        return ASYSTOLE_PERFUSION
    if is_converted and time_after_conversion_ms is not None:
        return recovery_perfusion(time_after_conversion_ms)
    return PERFUSION_BY_STAGE[stage]


def get_perfusion_status(assessment: PerfusionAssessment) -> Dict[str, str]:
    """Overall label and severity (good | concerning | poor | critical)."""
    if assessment.pulse_quality == PulseQuality.ABSENT:
        return {"label": "NO PERFUSION", "severity": "critical"}
    if assessment.pulse_quality == PulseQuality.THREADY or assessment.mottling == Mottling.GENERALIZED:
        return {"label": "CRITICAL", "severity": "critical"}
    if assessment.pulse_quality == PulseQuality.WEAK or assessment.mottling != Mottling.NONE:
        return {"label": "POOR", "severity": "poor"}
    if assessment.cool_to != CoolTo.NORMAL or assessment.cap_refill > 2.5:
        return {"label": "DELAYED", "severity": "concerning"}
    return {"label": "ADEQUATE", "severity": "good"}


def describe_cap_refill(seconds: float) -> str:
    if seconds <= 2: return "Brisk (<2s)"
    if seconds <= 3: return "Slightly delayed (2-3s)"
    if seconds <= 4: return "Delayed (3-4s)"
    if seconds <= 5: return "Significantly delayed (4-5s)"
    return "Severely delayed (>5s)"


def detect_perfusion_changes(previous: Optional[PerfusionAssessment],
                             current: PerfusionAssessment) -> List[ClinicalObservation]:
    """Findings worth calling out, comparing two consecutive exams."""
    triggers: List[ClinicalObservation] = []
    if previous is None:
        return triggers

    if previous.extremity_temp.hands == WARM and current.extremity_temp.hands != WARM:
        triggers.append(ClinicalObservation.HANDS_COOL)

    if previous.cool_to == CoolTo.HANDS and current.cool_to == CoolTo.WRISTS:
        triggers.append(ClinicalObservation.WRISTS_COOL)

    if previous.mottling == Mottling.NONE and current.mottling != Mottling.NONE:
        triggers.append(ClinicalObservation.MOTTLING)

    if previous.pulse_quality == PulseQuality.NORMAL and current.pulse_quality == PulseQuality.WEAK:
        triggers.append(ClinicalObservation.PULSE_WEAK)

    if previous.pulse_quality == PulseQuality.WEAK and current.pulse_quality == PulseQuality.THREADY:
        triggers.append(ClinicalObservation.PULSE_THREADY)

    if previous.pulse_quality == PulseQuality.WEAK and current.pulse_quality == PulseQuality.STRONG:
        triggers.append(ClinicalObservation.RECOVERING)

    return triggers


# --- PROCEDURAL EFFECTS ---
# Crying, breath-holding and struggling during painful procedures.
# Draw order per effect: SpO2, then HR, then duration.

def iv_insertion_effects(attempt: int, rng: RandomSource) -> ProceduralEffect:
    """-3 to -8 SpO2 (x1.5 on retries, the child is now terrified), +5 to +15 HR, 8-12 s."""
    multiplier = 1.0 if attempt == 1 else 1.5
    spo2_drop = int((3 + rng.uniform() * 5) * multiplier)
    hr_rise = int(5 + rng.uniform() * 10)
    duration = int(8000 + rng.uniform() * 4000)
    return ProceduralEffect(
        spo2_delta=-spo2_drop,
        hr_delta=hr_rise,
        duration_ms=duration,
        has_artifact=True,
        artifact_severity="mild" if attempt == 1 else "moderate",
    )


def io_insertion_effects(rng: RandomSource) -> ProceduralEffect:
    """Drilling: -8 to -15 SpO2, +10 to +25 HR, ~10 s."""
    return ProceduralEffect(
        spo2_delta=-int(8 + rng.uniform() * 7),
        hr_delta=int(10 + rng.uniform() * 15),
        duration_ms=10000,
        has_artifact=True,
        artifact_severity="severe",
    )


def sedation_effects(rng: RandomSource) -> ProceduralEffect:
    """Mild respiratory depression; HR eases as anxiety goes. 45 s onset."""
    return ProceduralEffect(
        spo2_delta=-int(1 + rng.uniform() * 2),
        hr_delta=-int(5 + rng.uniform() * 10),
        duration_ms=45000,
        has_artifact=False,
    )
