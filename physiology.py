"""
PediSim Intervention Engine
Deterministic clinical outcome calculations for interventions.

Given a PatientState, an InterventionRequest and the session's RandomSource,
the engine decides what happens and returns an InterventionResult holding a
partial state delta plus the audit events. The engine never mutates state:
apply_result() is the only way a result becomes the next PatientState.
"""
import logging
from dataclasses import fields, replace
from typing import Any, Dict, List, Tuple

from constants import POST_CONVERSION_HR, SUCCESS_RATES, TRANSIENT_TIMING
from doses import evaluate_dose_accuracy
from models import (
    EventType, InterventionOutcome, InterventionRequest, InterventionResult,
    InterventionType, PatientState, PendingConversionResult, Rhythm,
    SimulationEvent, TransientState, TransientType,
)
from random_source import RandomSource
from safety import adenosine_success_probability, cardioversion_success_probability

logger = logging.getLogger("pedisim.physiology")

ADENOSINE_RESPONSIVE = (Rhythm.SVT, Rhythm.ATRIAL_FLUTTER)
SYNC_SHOCKABLE = (Rhythm.SVT, Rhythm.ATRIAL_FLUTTER, Rhythm.ATRIAL_FIB, Rhythm.VTACH_PULSE)
PULSELESS = (Rhythm.VFIB, Rhythm.VTACH_PULSELESS)

_STATE_FIELDS = {f.name for f in fields(PatientState)}


class InterventionEngine:

    # --- 1. SHARED RESULT SHAPES ---

    @staticmethod
    def _executed(request: InterventionRequest, **data) -> SimulationEvent:
        return SimulationEvent(
            timestamp=request.timestamp,
            type=EventType.INTERVENTION_EXECUTED,
            data={"intervention": request.type.value, **data},
        )

    @staticmethod
    def _blocked(request: InterventionRequest, blocked: str, reason: str) -> InterventionResult:
        """Prerequisite missing: the order is never attempted."""
        return InterventionResult(
            success=False,
            executed=False,
            outcome=InterventionOutcome.PREREQUISITE_MISSING,
            reason=reason,
            events=[SimulationEvent(
                timestamp=request.timestamp,
                type=EventType.INTERVENTION_ATTEMPTED,
                data={"intervention": request.type.value, "blocked": blocked},
            )],
        )

    @staticmethod
    def _inert(request: InterventionRequest, reason: str, label: str = "NO_EFFECT") -> InterventionResult:
        """Attempted, but the rhythm does not respond to it."""
        return InterventionResult(
            success=False,
            executed=True,
            outcome=InterventionOutcome.NO_EFFECT,
            reason=reason,
            events=[InterventionEngine._executed(request, outcome=label)],
        )

    @staticmethod
    def _sinus_hr(rng: RandomSource, base: int, spread: int) -> int:
        # Uniform over [base, base + spread)
        return rng.randint(base, base + spread - 1)

    # --- 2. PROCESSORS ---

    @staticmethod
    def _process_vagal(state: PatientState, request: InterventionRequest,
                       rng: RandomSource) -> InterventionResult:
        if state.rhythm != Rhythm.SVT:
            return InterventionEngine._inert(request, "Vagal maneuvers only effective for SVT")

        # ~15-30% in children
        if not rng.chance(SUCCESS_RATES.VAGAL):
            return InterventionResult(
                success=False,
                executed=True,
                outcome=InterventionOutcome.NO_EFFECT,
                events=[InterventionEngine._executed(request, outcome="NO_EFFECT")],
            )

        hr = InterventionEngine._sinus_hr(rng, POST_CONVERSION_HR.SINUS_BASE, POST_CONVERSION_HR.SINUS_SPREAD)
        return InterventionResult(
            success=True,
            executed=True,
            outcome=InterventionOutcome.CONVERTED,
            new_state={
                "rhythm": Rhythm.SINUS,
                "vitals": replace(state.vitals, heart_rate=hr),
                "time_in_current_rhythm": 0,
            },
            events=[SimulationEvent(
                timestamp=request.timestamp,
                type=EventType.RHYTHM_CHANGE,
                data={"from": Rhythm.SVT.value, "to": Rhythm.SINUS.value, "mechanism": "vagal_conversion"},
            )],
        )

    @staticmethod
    def _process_adenosine(state: PatientState, request: InterventionRequest,
                           rng: RandomSource) -> InterventionResult:
        """
        Adenosine ALWAYS produces transient asystole, whatever the dose.
        Whether the rhythm converts is decided now and carried in the
        PendingConversionResult until the transient is resolved.
        """
        if not state.has_vascular_access:
            return InterventionEngine._blocked(request, "NO_ACCESS", "No IV/IO access established")

        if state.rhythm not in ADENOSINE_RESPONSIVE:
            return InterventionEngine._inert(request, "Adenosine not indicated for this rhythm")

        is_second = request.type == InterventionType.ADENOSINE_2
        dose = request.dose or 0.0
        weight = state.profile.weight
        accuracy = evaluate_dose_accuracy(request.type, dose, weight).accuracy

        # 1. Duration of the pause (3-7 s)
        duration = TRANSIENT_TIMING.ADENOSINE_ASYSTOLE_MIN_MS + rng.randint(
            0, TRANSIENT_TIMING.ADENOSINE_ASYSTOLE_SPREAD_MS - 1)

        # 2. The hidden outcome
        will_convert = rng.chance(adenosine_success_probability(dose, is_second, weight))

        transient = TransientState(
            type=TransientType.ADENOSINE_EFFECT,
            start_time=request.timestamp,
            duration=duration,
            previous_rhythm=state.rhythm,
            previous_hr=state.vitals.heart_rate,
        )
        logger.info(f"Adenosine {dose:g}mg: transient asystole for {duration}ms")

        return PendingConversionResult(
            success=will_convert,
            executed=True,
            outcome=InterventionOutcome.TRANSIENT_RESPONSE,
            new_state={
                "transient_state": transient,
                "rhythm": Rhythm.ASYSTOLE,
                "vitals": replace(state.vitals, heart_rate=0),
            },
            events=[SimulationEvent(
                timestamp=request.timestamp,
                type=EventType.TRANSIENT_START,
                data={
                    "type": TransientType.ADENOSINE_EFFECT.value,
                    "duration": duration,
                    "dose": dose,
                    "dose_accuracy": accuracy,
                },
            )],
            dose_accuracy=accuracy,
            pending_conversion=will_convert,
        )

    @staticmethod
    def _process_cardioversion(state: PatientState, request: InterventionRequest,
                               rng: RandomSource) -> InterventionResult:
        if not state.sedated:
            return InterventionEngine._blocked(
                request, "NOT_SEDATED", "Patient must be sedated before cardioversion")

        if state.rhythm not in SYNC_SHOCKABLE:
            return InterventionEngine._inert(
                request, "Rhythm not appropriate for synchronized cardioversion", label="NOT_INDICATED")

        energy = request.dose or 0.0
        weight = state.profile.weight
        accuracy = evaluate_dose_accuracy(InterventionType.CARDIOVERSION_SYNC, energy, weight).accuracy

        success = rng.chance(cardioversion_success_probability(energy, request.attempt, weight))

        events = [InterventionEngine._executed(
            request, energy=energy, energy_accuracy=accuracy, attempt=request.attempt, success=success)]

        if not success:
            return InterventionResult(
                success=False,
                executed=True,
                outcome=InterventionOutcome.NO_EFFECT,
                events=events,
                dose_accuracy=accuracy,
            )

        hr = InterventionEngine._sinus_hr(
            rng, POST_CONVERSION_HR.CARDIOVERSION_BASE, POST_CONVERSION_HR.CARDIOVERSION_SPREAD)
        events.append(SimulationEvent(
            timestamp=request.timestamp + TRANSIENT_TIMING.RHYTHM_CHANGE_DELAY_MS,
            type=EventType.RHYTHM_CHANGE,
            data={"from": state.rhythm.value, "to": Rhythm.SINUS.value, "mechanism": "cardioversion"},
        ))
        return InterventionResult(
            success=True,
            executed=True,
            outcome=InterventionOutcome.CONVERTED,
            new_state={
                "rhythm": Rhythm.SINUS,
                "vitals": replace(state.vitals, heart_rate=hr),
                "time_in_current_rhythm": 0,
            },
            events=events,
            dose_accuracy=accuracy,
        )

    @staticmethod
    def _process_access(state: PatientState, request: InterventionRequest,
                        rng: RandomSource) -> InterventionResult:
        is_iv = request.type == InterventionType.ESTABLISH_IV
        label = "IV" if is_iv else "IO"
        flag = "iv_access" if is_iv else "io_access"

        if getattr(state, flag):
            return InterventionResult(
                success=True,
                executed=False,
                outcome=InterventionOutcome.NO_EFFECT,
                reason=f"{label} access already established",
            )

        success = rng.chance(SUCCESS_RATES.IV_ACCESS if is_iv else SUCCESS_RATES.IO_ACCESS)
        return InterventionResult(
            success=success,
            executed=True,
            outcome=InterventionOutcome.CONVERTED if success else InterventionOutcome.NO_EFFECT,
            new_state={flag: True} if success else {},
            events=[InterventionEngine._executed(request, success=success)],
        )

    @staticmethod
    def _process_sedation(state: PatientState, request: InterventionRequest,
                          rng: RandomSource) -> InterventionResult:
        if not state.has_vascular_access:
            return InterventionEngine._blocked(request, "NO_ACCESS", "No IV/IO access for sedation")

        return InterventionResult(
            success=True,
            executed=True,
            outcome=InterventionOutcome.CONVERTED,
            new_state={"sedated": True},
            events=[InterventionEngine._executed(request, drug=request.verbalization or "midazolam")],
        )

    @staticmethod
    def _process_defibrillation(state: PatientState, request: InterventionRequest,
                                rng: RandomSource) -> InterventionResult:
        # Unsynchronized shock on a perfusing rhythm risks R-on-T
        if state.rhythm not in PULSELESS:
            return InterventionResult(
                success=False,
                executed=False,
                outcome=InterventionOutcome.CONTRAINDICATED,
                reason="Unsynchronized shock contraindicated in a perfusing rhythm",
                events=[SimulationEvent(
                    timestamp=request.timestamp,
                    type=EventType.INTERVENTION_ATTEMPTED,
                    data={"intervention": request.type.value, "blocked": "PERFUSING_RHYTHM"},
                )],
            )
        return InterventionEngine._not_modelled(state, request, rng)

    @staticmethod
    def _not_modelled(state: PatientState, request: InterventionRequest,
                      rng: RandomSource) -> InterventionResult:
        return InterventionResult(
            success=False,
            executed=False,
            outcome=InterventionOutcome.NO_EFFECT,
            reason=f"Intervention {request.type.value} not modelled",
        )

    # --- 3. ENTRY POINTS ---

    @staticmethod
    def process_intervention(state: PatientState, request: InterventionRequest,
                             rng: RandomSource) -> InterventionResult:
        """Routes a request to its handler. Never raises for an unsupported type."""
        kind = request.type

        if kind in (InterventionType.VAGAL_ICE, InterventionType.VAGAL_VALSALVA):
            handler = InterventionEngine._process_vagal
        elif kind in (InterventionType.ADENOSINE, InterventionType.ADENOSINE_2):
            handler = InterventionEngine._process_adenosine
        elif kind == InterventionType.CARDIOVERSION_SYNC:
            handler = InterventionEngine._process_cardioversion
        elif kind in (InterventionType.ESTABLISH_IV, InterventionType.ESTABLISH_IO):
            handler = InterventionEngine._process_access
        elif kind == InterventionType.SEDATION:
            handler = InterventionEngine._process_sedation
        elif kind == InterventionType.DEFIBRILLATION:
            handler = InterventionEngine._process_defibrillation
        else:
            handler = InterventionEngine._not_modelled

        result = handler(state, request, rng)
        logger.debug(f"{kind.value} at {request.timestamp}ms -> {result.outcome.value}")
        return result

    @staticmethod
    def resolve_transient_state(state: PatientState, will_convert: bool,
                                rng: RandomSource) -> Dict[str, Any]:
        """
        Ends the active transient and returns the state delta.
        Called when the transient duration elapses, or earlier to force it.
        """
        transient = state.transient_state
        if transient is None:
            return {}

        if transient.type != TransientType.ADENOSINE_EFFECT:
            return {"transient_state": None}

        if will_convert:
            hr = InterventionEngine._sinus_hr(rng, POST_CONVERSION_HR.SINUS_BASE, POST_CONVERSION_HR.SINUS_SPREAD)
            logger.info(f"Adenosine transient resolved: converted to SINUS at {hr} bpm")
            return {
                "transient_state": None,
                "rhythm": Rhythm.SINUS,
                "vitals": replace(state.vitals, heart_rate=hr),
                "time_in_current_rhythm": 0,
            }

        # Back to the underlying rhythm, slightly slower
        hr = transient.previous_hr - rng.randint(0, POST_CONVERSION_HR.REVERT_DROP_SPREAD - 1)
        logger.info(f"Adenosine transient resolved: reverted to {transient.previous_rhythm.value}")
        return {
            "transient_state": None,
            "rhythm": transient.previous_rhythm,
            "vitals": replace(state.vitals, heart_rate=hr),
        }


process_intervention = InterventionEngine.process_intervention
resolve_transient_state = InterventionEngine.resolve_transient_state


# --- 4. REDUCERS ---

def apply_state_change(state: PatientState, delta: Dict[str, Any]) -> PatientState:
    """
    Merges a partial delta into a new PatientState.
    A dict under "vitals" is merged field-by-field onto the current vitals.
    """
    if not delta:
        return state

    changes = dict(delta)
    vitals = changes.get("vitals")
    if isinstance(vitals, dict):
        changes["vitals"] = replace(state.vitals, **vitals)

    unknown = set(changes) - _STATE_FIELDS
    if unknown:
        raise ValueError(f"Unknown PatientState fields in delta: {sorted(unknown)}")

    return replace(state, **changes)


def apply_result(state: PatientState, result: InterventionResult) -> PatientState:
    return apply_state_change(state, result.new_state)


def end_transient(state: PatientState, will_convert: bool, rng: RandomSource,
                  timestamp: int) -> Tuple[PatientState, List[SimulationEvent]]:
    """
    Resolves the active transient and applies it, returning the new state
    with TRANSIENT_END (and RHYTHM_CHANGE, when the rhythm moved) events.
    """
    transient = state.transient_state
    delta = resolve_transient_state(state, will_convert, rng)
    new_state = apply_state_change(state, delta)

    events: List[SimulationEvent] = []
    if transient is not None:
        events.append(SimulationEvent(
            timestamp=timestamp,
            type=EventType.TRANSIENT_END,
            data={"type": transient.type.value, "converted": bool(will_convert)},
        ))
        if new_state.rhythm != state.rhythm:
            events.append(SimulationEvent(
                timestamp=timestamp,
                type=EventType.RHYTHM_CHANGE,
                data={"from": state.rhythm.value, "to": new_state.rhythm.value,
                      "mechanism": transient.type.value.lower()},
            ))
    return new_state, events
