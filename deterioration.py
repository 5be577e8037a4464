"""
Deterioration Model
===================
Progressive compensation failure in pediatric SVT. Children compensate
well at first, then decompensate quickly once reserves are exhausted.

Two views of the same process:
  * calculate_*_vitals(): continuous monitor values for a given elapsed time.
  * step_deterioration(): discrete staging of a PatientState (0-3), the
    version the engine's state reducer consumes.
"""
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from clinical_math import lerp, round_int
from constants import ASYSTOLE_DECAY, DETERIORATION_TIMING, RECOVERY_TIMING
from models import (
    DeteriorationStage, Demeanor, EventType, InterventionFlags, MentalStatus,
    MonitorVitals, PatientState, Perfusion, RecoveryPhase, Rhythm,
    SimulationEvent, SkinColor, Stability,
)
from physiology import apply_state_change
from random_source import RandomSource

logger = logging.getLogger("pedisim.deterioration")

# Healthy 5-year-old (18.5 kg)
BASELINE_VITALS = MonitorVitals(
    hr=90, spo2=98, systolic=95, diastolic=60, rr=22, cap_refill=2.0,
    demeanor=Demeanor.ALERT, skin_color=SkinColor.PINK,
)

# (stage, upper bound in ms, vitals). Ordered; the last stage never ends.
SVT_STAGES: List[Tuple[DeteriorationStage, float, MonitorVitals]] = [
    (DeteriorationStage.COMPENSATED, DETERIORATION_TIMING.COMPENSATED_MS,
     MonitorVitals(220, 97, 95, 60, 26, 2.0, Demeanor.ANXIOUS, SkinColor.PINK)),
    (DeteriorationStage.EARLY_STRESS, DETERIORATION_TIMING.EARLY_STRESS_MS,
     MonitorVitals(220, 95, 88, 56, 30, 2.5, Demeanor.ANXIOUS, SkinColor.PALE)),
    (DeteriorationStage.MODERATE_STRESS, DETERIORATION_TIMING.MODERATE_STRESS_MS,
     MonitorVitals(220, 93, 82, 52, 34, 3.0, Demeanor.IRRITABLE, SkinColor.PALE)),
    (DeteriorationStage.DECOMPENSATING, DETERIORATION_TIMING.DECOMPENSATING_MS,
     MonitorVitals(220, 90, 72, 45, 40, 4.0, Demeanor.LETHARGIC, SkinColor.MOTTLED)),
    (DeteriorationStage.CRITICAL, float("inf"),
     MonitorVitals(220, 85, 60, 35, 45, 5.0, Demeanor.UNRESPONSIVE, SkinColor.GRAY)),
]

_STAGE_INDEX = {stage: i for i, (stage, _, _) in enumerate(SVT_STAGES)}


def get_deterioration_stage(elapsed_ms: float) -> DeteriorationStage:
    for stage, max_ms, _ in SVT_STAGES:
        if elapsed_ms < max_ms:
            return stage
    return DeteriorationStage.CRITICAL


def stage_vitals(stage: DeteriorationStage) -> MonitorVitals:
    return SVT_STAGES[_STAGE_INDEX[stage]][2]


def calculate_deterioration_vitals(elapsed_ms: float, rng: RandomSource,
                                   interventions: Optional[InterventionFlags] = None) -> MonitorVitals:
    """
    Monitor vitals after `elapsed_ms` of untreated SVT.

    In the last 30% of a stage SpO2, BP and RR move toward the next stage,
    but only 30% of the way: the full step happens when the threshold is
    crossed. Supportive care then shifts the numbers, and a +/-1 jitter
    is drawn for SpO2 and RR (in that order).
    """
    flags = interventions or InterventionFlags()
    stage = get_deterioration_stage(elapsed_ms)
    index = _STAGE_INDEX[stage]
    _, stage_end, base = SVT_STAGES[index]

    # 1. Progress through the current stage
    if index > 0:
        stage_start = SVT_STAGES[index - 1][1]
        duration = stage_end - stage_start
        progress = (elapsed_ms - stage_start) / duration if duration > 0 else 1.0
    else:
        progress = elapsed_ms / stage_end

    spo2, systolic, diastolic, rr = base.spo2, base.systolic, base.diastolic, base.rr

    # 2. Blend toward the next stage
    if index < len(SVT_STAGES) - 1 and progress > DETERIORATION_TIMING.TRANSITION_WINDOW:
        nxt = SVT_STAGES[index + 1][2]
        t = (progress - DETERIORATION_TIMING.TRANSITION_WINDOW) / (1 - DETERIORATION_TIMING.TRANSITION_WINDOW)
        t *= DETERIORATION_TIMING.TRANSITION_REACH
        spo2 = round_int(lerp(spo2, nxt.spo2, t))
        systolic = round_int(lerp(systolic, nxt.systolic, t))
        diastolic = round_int(lerp(diastolic, nxt.diastolic, t))
        rr = round_int(lerp(rr, nxt.rr, t))

    # 3. Supportive care
    if flags.oxygen_applied:
        spo2 = min(99, spo2 + 3)
    if flags.iv_fluids_given:
        systolic = min(95, systolic + 8)
        diastolic = min(60, diastolic + 5)
    if flags.position_optimized:
        spo2 = min(99, spo2 + 1)

    # 4. Jitter
    spo2 = max(80, min(100, spo2 + rng.randint(-1, 1)))
    rr = max(20, rr + rng.randint(-1, 1))

    return replace(base, spo2=spo2, systolic=systolic, diastolic=diastolic, rr=rr)


def calculate_asystole_vitals(elapsed_ms: float) -> MonitorVitals:
    """Apneic, pulseless; SpO2 falls ~3% per whole second down to a floor of 70."""
    seconds = int(elapsed_ms // 1000)
    return MonitorVitals(
        hr=0,
        spo2=max(ASYSTOLE_DECAY.SPO2_FLOOR, ASYSTOLE_DECAY.START_SPO2 - seconds * ASYSTOLE_DECAY.SPO2_DROP_PER_SEC),
        systolic=0,
        diastolic=0,
        rr=0,
        cap_refill=5.0,
        demeanor=Demeanor.UNRESPONSIVE,
        skin_color=SkinColor.GRAY,
    )


def get_recovery_phase(elapsed_ms: float) -> RecoveryPhase:
    if elapsed_ms < RECOVERY_TIMING.JUNCTIONAL_MS:
        return RecoveryPhase.IMMEDIATE
    if elapsed_ms < RECOVERY_TIMING.BRADYCARDIA_MS:
        return RecoveryPhase.EARLY
    if elapsed_ms < RECOVERY_TIMING.APPROACH_MS:
        return RecoveryPhase.TRANSITIONAL
    return RecoveryPhase.STABLE


def calculate_recovery_vitals(elapsed_ms: float, rng: RandomSource,
                              target_hr: int = RECOVERY_TIMING.DEFAULT_TARGET_HR) -> MonitorVitals:
    """
    Post-conversion recovery.
      0-2s   junctional escape, HR 0 -> 55
      2-5s   sinus bradycardia, 55 -> 70
      5-10s  approaching normal, 70 -> target
      10s+   target +/- 2 (the only phase that draws)
    Everything else normalizes linearly over 30 s.
    """
    phase = get_recovery_phase(elapsed_ms)
    if phase == RecoveryPhase.IMMEDIATE:
        hr = lerp(0, RECOVERY_TIMING.JUNCTIONAL_HR, elapsed_ms / RECOVERY_TIMING.JUNCTIONAL_MS)
    elif phase == RecoveryPhase.EARLY:
        hr = lerp(RECOVERY_TIMING.JUNCTIONAL_HR, RECOVERY_TIMING.BRADYCARDIA_HR,
                  (elapsed_ms - RECOVERY_TIMING.JUNCTIONAL_MS)
                  / (RECOVERY_TIMING.BRADYCARDIA_MS - RECOVERY_TIMING.JUNCTIONAL_MS))
    elif phase == RecoveryPhase.TRANSITIONAL:
        hr = lerp(RECOVERY_TIMING.BRADYCARDIA_HR, target_hr,
                  (elapsed_ms - RECOVERY_TIMING.BRADYCARDIA_MS)
                  / (RECOVERY_TIMING.APPROACH_MS - RECOVERY_TIMING.BRADYCARDIA_MS))
    else:
        hr = target_hr + rng.randint(-2, 2)

    progress = min(1.0, elapsed_ms / RECOVERY_TIMING.FULL_RECOVERY_MS)

    if progress < 0.3:
        demeanor = Demeanor.LETHARGIC
    elif progress < 0.7:
        demeanor = Demeanor.ANXIOUS
    else:
        demeanor = Demeanor.ALERT

    return MonitorVitals(
        hr=round_int(hr),
        spo2=round_int(lerp(94, 98, progress)),
        systolic=round_int(lerp(85, 95, progress)),
        diastolic=round_int(lerp(52, 60, progress)),
        rr=round_int(lerp(28, 22, progress)),
        cap_refill=lerp(3.0, 2.0, progress),
        demeanor=demeanor,
        skin_color=SkinColor.PALE if progress < 0.5 else SkinColor.PINK,
    )


# --- DISCRETE STAGING ---

def step_deterioration(state: PatientState, elapsed_ms: int,
                       timestamp: int = 0) -> Optional[Tuple[Dict[str, Any], SimulationEvent]]:
    """
    Advances the PatientState stage by at most one step.
    Only untreated SVT deteriorates; the stage never goes backwards.
    Returns (delta, DETERIORATION event), or None when nothing changes.
    """
    if state.rhythm != Rhythm.SVT:
        return None

    time_in_svt = state.time_in_current_rhythm + elapsed_ms
    vitals = state.vitals
    current = state.deterioration_stage

    if time_in_svt > DETERIORATION_TIMING.STAGE_1_MS and current < 1:
        delta = {
            "deterioration_stage": 1,
            "stability": Stability.COMPENSATED,
            "vitals": replace(vitals, systolic_bp=vitals.systolic_bp - 10),
            "mental_status": MentalStatus.ALERT,   # still alert, but symptomatic
        }
    elif time_in_svt > DETERIORATION_TIMING.STAGE_2_MS and current < 2:
        delta = {
            "deterioration_stage": 2,
            "stability": Stability.DECOMPENSATED,
            "vitals": replace(vitals, systolic_bp=vitals.systolic_bp - 20, capillary_refill=4.0),
            "mental_status": MentalStatus.VERBAL,
            "perfusion": Perfusion.DELAYED,
        }
    elif time_in_svt > DETERIORATION_TIMING.STAGE_3_MS and current < 3:
        delta = {
            "deterioration_stage": 3,
            "stability": Stability.SHOCK,
            "vitals": replace(vitals, systolic_bp=60, diastolic_bp=35, capillary_refill=6.0, spo2=90),
            "mental_status": MentalStatus.PAIN,
            "perfusion": Perfusion.POOR,
        }
    else:
        return None

    logger.info(f"SVT deterioration: stage {current} -> {delta['deterioration_stage']} "
                f"after {time_in_svt // 1000}s")
    event = SimulationEvent(
        timestamp=timestamp,
        type=EventType.DETERIORATION,
        data={
            "from_stage": current,
            "to_stage": delta["deterioration_stage"],
            "stability": delta["stability"].value,
            "time_in_rhythm": time_in_svt,
        },
    )
    return delta, event


def advance_time(state: PatientState, elapsed_ms: int,
                 timestamp: int = 0) -> Tuple[PatientState, List[SimulationEvent]]:
    """Applies one deterioration step and accrues time in the current rhythm."""
    events: List[SimulationEvent] = []
    step = step_deterioration(state, elapsed_ms, timestamp)
    if step is not None:
        delta, event = step
        state = apply_state_change(state, delta)
        events.append(event)
    return replace(state, time_in_current_rhythm=state.time_in_current_rhythm + elapsed_ms), events
