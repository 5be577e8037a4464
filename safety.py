# safety.py
"""
Nurse safety net. Orders are screened here before the engine sees them.

Each order type has an ordered rule table; the first rule whose condition
holds produces the evaluation, and the table's fallback confirms the order.
Nothing here mutates patient state.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from constants import DEVICE_LIMITS, DRUG_LIBRARY, NURSE_THRESHOLDS, SUCCESS_RATES
from models import NurseAction, NurseEvaluation, NurseReason, Rhythm

logger = logging.getLogger("pedisim.safety")


# --- 1. ORDER CONTEXT (derived once, read by every rule) ---

@dataclass(frozen=True)
class AdenosineOrder:
    dose: float
    prior_count: int
    weight: float

    @property
    def is_second_dose(self) -> bool:
        return self.prior_count > 0

    @property
    def target_dose(self) -> float:
        per_kg = DRUG_LIBRARY.get("ADENOSINE").dose_per_kg
        if self.is_second_dose:
            per_kg *= DRUG_LIBRARY.get("ADENOSINE").second_dose_multiplier
        return self.weight * per_kg

    @property
    def max_dose(self) -> float:
        key = "ADENOSINE_2" if self.is_second_dose else "ADENOSINE"
        return DRUG_LIBRARY.get(key).max_dose

    @property
    def mg_per_kg(self) -> float:
        return self.dose / self.weight if self.weight > 0 else float("inf")


@dataclass(frozen=True)
class CardioversionOrder:
    energy: float
    attempt: int
    weight: float
    rhythm: Rhythm
    sedated: bool

    @property
    def target_energy(self) -> float:
        if self.attempt == 1:
            return self.weight * NURSE_THRESHOLDS.CARDIOVERSION_TARGET_J_KG_FIRST
        return self.weight * NURSE_THRESHOLDS.CARDIOVERSION_TARGET_J_KG_REPEAT

    @property
    def max_safe_energy(self) -> float:
        return self.weight * NURSE_THRESHOLDS.CARDIOVERSION_UPPER_J_KG

    @property
    def j_per_kg(self) -> float:
        return self.energy / self.weight if self.weight > 0 else float("inf")


@dataclass(frozen=True)
class NurseRule:
    """condition -> response. Tables are evaluated top to bottom."""
    reason: NurseReason
    applies: Callable[[object], bool]
    respond: Callable[[object], NurseEvaluation]


def _refuse(reason: NurseReason, message: str) -> NurseEvaluation:
    return NurseEvaluation(allow=False, action=NurseAction.REFUSE, reason=reason, message=message)


# --- 2. ADENOSINE RULES ---

ADENOSINE_RULES: List[NurseRule] = [
    NurseRule(
        NurseReason.THIRD_DOSE,
        lambda o: o.prior_count >= NURSE_THRESHOLDS.ADENOSINE_MAX_DOSES,
        lambda o: _refuse(
            NurseReason.THIRD_DOSE,
            "Doctor, we've already given two doses of adenosine. PALS recommends synchronized "
            "cardioversion at this point. Want me to get the pads ready?",
        ),
    ),
    NurseRule(
        NurseReason.DANGEROUS_OVERDOSE,
        lambda o: o.dose > o.max_dose * NURSE_THRESHOLDS.ADENOSINE_OVERDOSE_FACTOR,
        lambda o: _refuse(
            NurseReason.DANGEROUS_OVERDOSE,
            f"Doctor, {o.dose:g}mg is significantly over the max dose of {o.max_dose:g}mg. "
            f"That could cause prolonged heart block. Did you mean {o.target_dose:.1f}mg?",
        ),
    ),
    NurseRule(
        NurseReason.OVER_MAX,
        lambda o: o.dose > o.max_dose,
        lambda o: NurseEvaluation(
            allow=True, action=NurseAction.CAP, reason=NurseReason.OVER_MAX,
            actual_dose=o.max_dose,
            message=f"Doctor, max dose is {o.max_dose:g}mg. I'll give {o.max_dose:g}mg. Pushing now with flush...",
        ),
    ),
    NurseRule(
        NurseReason.HIGH_DOSE,
        lambda o: o.mg_per_kg > (NURSE_THRESHOLDS.ADENOSINE_HIGH_MG_KG_SECOND if o.is_second_dose
                                 else NURSE_THRESHOLDS.ADENOSINE_HIGH_MG_KG_FIRST),
        lambda o: NurseEvaluation(
            allow=True, action=NurseAction.QUESTION, reason=NurseReason.HIGH_DOSE,
            needs_confirmation=True,
            message=f"{o.dose:g}mg? That's {o.mg_per_kg:.2f}mg/kg - a bit high. Confirming you want {o.dose:g}mg?",
        ),
    ),
    NurseRule(
        NurseReason.VERY_LOW,
        lambda o: o.dose < o.target_dose * NURSE_THRESHOLDS.ADENOSINE_VERY_LOW_FRACTION,
        lambda o: NurseEvaluation(
            allow=True, action=NurseAction.QUESTION, reason=NurseReason.VERY_LOW,
            needs_confirmation=True,
            message=(
                f"{o.dose:g}mg? That's only {o.mg_per_kg:.2f}mg/kg - probably won't be effective. "
                f"Standard {'second' if o.is_second_dose else 'first'} dose is {o.target_dose:.1f}mg. "
                f"Want me to draw up {o.target_dose:.1f}mg instead?"
            ),
        ),
    ),
    NurseRule(
        NurseReason.LOW_DOSE,
        lambda o: o.dose < o.target_dose * NURSE_THRESHOLDS.ADENOSINE_LOW_FRACTION,
        lambda o: NurseEvaluation(
            allow=True, action=NurseAction.NOTE, reason=NurseReason.LOW_DOSE,
            message=f"{o.dose:g}mg - that's a bit under the {o.target_dose:.1f}mg we'd usually give, "
                    f"but pushing it now with flush...",
        ),
    ),
]


def _confirm_adenosine(o: AdenosineOrder) -> NurseEvaluation:
    return NurseEvaluation(
        allow=True, action=NurseAction.CONFIRM,
        message=f"{o.dose:g}mg adenosine IV push... flush going in now.",
    )


# --- 3. CARDIOVERSION RULES ---

CARDIOVERSION_RULES: List[NurseRule] = [
    NurseRule(
        NurseReason.WRONG_RHYTHM,
        lambda o: o.rhythm == Rhythm.SINUS,
        lambda o: _refuse(
            NurseReason.WRONG_RHYTHM,
            "Doctor, the patient is in sinus rhythm now. We don't need to cardiovert - they've converted!",
        ),
    ),
    NurseRule(
        NurseReason.NOT_SHOCKABLE,
        lambda o: o.rhythm == Rhythm.ASYSTOLE,
        lambda o: _refuse(
            NurseReason.NOT_SHOCKABLE,
            "Doctor, asystole isn't a shockable rhythm. We need to wait for this to resolve "
            "or start CPR if it doesn't.",
        ),
    ),
    NurseRule(
        NurseReason.NOT_SEDATED,
        lambda o: not o.sedated,
        lambda o: _refuse(
            NurseReason.NOT_SEDATED,
            "Doctor, the patient isn't sedated. I can't shock an awake child - that would be traumatic. "
            "Want me to draw up midazolam first?",
        ),
    ),
    NurseRule(
        NurseReason.OVER_DEVICE_MAX,
        lambda o: o.energy > DEVICE_LIMITS.PEDIATRIC_PAD_MAX_J,
        lambda o: _refuse(
            NurseReason.OVER_DEVICE_MAX,
            f"Doctor, {o.energy:g}J is above the device maximum. Our defibrillator maxes out at "
            f"{DEVICE_LIMITS.PEDIATRIC_PAD_MAX_J}J for pediatric pads.",
        ),
    ),
    NurseRule(
        NurseReason.DANGEROUS_ENERGY,
        lambda o: o.j_per_kg > NURSE_THRESHOLDS.CARDIOVERSION_DANGEROUS_J_KG,
        lambda o: _refuse(
            NurseReason.DANGEROUS_ENERGY,
            f"Doctor, {o.energy:g}J is {o.j_per_kg:.1f} J/kg - that's way too high for a child this size "
            f"and could cause myocardial damage. Max recommended is 2 J/kg which is "
            f"{o.max_safe_energy:.0f}J. Did you mean {o.target_energy:.0f}J?",
        ),
    ),
    NurseRule(
        NurseReason.HIGH_ENERGY,
        lambda o: o.j_per_kg > NURSE_THRESHOLDS.CARDIOVERSION_HIGH_J_KG,
        lambda o: NurseEvaluation(
            allow=True, action=NurseAction.WARN, reason=NurseReason.HIGH_ENERGY,
            needs_confirmation=True,
            message=f"Doctor, {o.energy:g}J is {o.j_per_kg:.1f} J/kg - that's above the recommended max "
                    f"of 2 J/kg. Are you sure? I'd recommend {o.max_safe_energy:.0f}J or less.",
        ),
    ),
    NurseRule(
        NurseReason.UPPER_LIMIT,
        lambda o: o.j_per_kg > NURSE_THRESHOLDS.CARDIOVERSION_UPPER_J_KG,
        lambda o: NurseEvaluation(
            allow=True, action=NurseAction.NOTE, reason=NurseReason.UPPER_LIMIT,
            message=f"{o.energy:g}J - that's {o.j_per_kg:.1f} J/kg, at the upper limit but acceptable. Charging...",
        ),
    ),
    NurseRule(
        NurseReason.VERY_LOW,
        lambda o: o.energy < o.target_energy * NURSE_THRESHOLDS.CARDIOVERSION_VERY_LOW_FRACTION,
        lambda o: NurseEvaluation(
            allow=True, action=NurseAction.QUESTION, reason=NurseReason.VERY_LOW,
            needs_confirmation=True,
            message=f"{o.energy:g}J? That's only {o.j_per_kg:.2f} J/kg - might not be enough energy to convert. "
                    f"Standard initial is {o.target_energy:.0f}J. Want me to set it higher?",
        ),
    ),
    NurseRule(
        NurseReason.LOW_ENERGY,
        lambda o: o.energy < o.target_energy * NURSE_THRESHOLDS.CARDIOVERSION_LOW_FRACTION,
        lambda o: NurseEvaluation(
            allow=True, action=NurseAction.NOTE, reason=NurseReason.LOW_ENERGY,
            message=f"{o.energy:g}J - on the low side but let's try it. Charging...",
        ),
    ),
]


def _confirm_cardioversion(o: CardioversionOrder) -> NurseEvaluation:
    escalation = " Increasing from last attempt." if o.attempt > 1 else ""
    return NurseEvaluation(
        allow=True, action=NurseAction.CONFIRM,
        message=f"{o.energy:g}J synchronized cardioversion.{escalation} Charging... everyone stand clear!",
    )


class NurseSafetyValidator:
    @staticmethod
    def run_rules(rules: List[NurseRule], order,
                  fallback: Callable[[object], NurseEvaluation]) -> NurseEvaluation:
        """First matching rule wins; the fallback answers when none apply."""
        for rule in rules:
            if rule.applies(order):
                return rule.respond(order)
        return fallback(order)

    @staticmethod
    def _log(kind: str, order, evaluation: NurseEvaluation) -> None:
        reason = evaluation.reason.value if evaluation.reason else None
        logger.debug(f"{kind} order {order} -> {evaluation.action.value} ({reason})")
        if not evaluation.allow:
            logger.info(f"Nurse refused {kind} order: {reason}")

    @staticmethod
    def evaluate_adenosine_order(dose: float, prior_count: int, weight: float) -> NurseEvaluation:
        """
        Screens an adenosine push.
        prior_count is the number of doses already given (0 = this is the first).
        """
        order = AdenosineOrder(dose=dose, prior_count=prior_count, weight=weight)
        evaluation = NurseSafetyValidator.run_rules(ADENOSINE_RULES, order, _confirm_adenosine)
        NurseSafetyValidator._log("adenosine", order, evaluation)
        return evaluation

    @staticmethod
    def evaluate_cardioversion_order(energy: float, attempt: int, weight: float,
                                     rhythm: Union[Rhythm, str], sedated: bool) -> NurseEvaluation:
        """Screens a synchronized shock. Rhythm checks run before sedation and energy checks."""
        order = CardioversionOrder(energy=energy, attempt=attempt, weight=weight,
                                   rhythm=Rhythm(rhythm), sedated=sedated)
        evaluation = NurseSafetyValidator.run_rules(CARDIOVERSION_RULES, order, _confirm_cardioversion)
        NurseSafetyValidator._log("cardioversion", order, evaluation)
        return evaluation


evaluate_adenosine_order = NurseSafetyValidator.evaluate_adenosine_order
evaluate_cardioversion_order = NurseSafetyValidator.evaluate_cardioversion_order


# --- 4. DOSE-RESPONSE CURVES ---

def adenosine_success_probability(dose: float, is_second_dose: bool, weight: float) -> float:
    """Conversion probability for an adenosine push, scaled off the literature base rate."""
    order = AdenosineOrder(dose=dose, prior_count=1 if is_second_dose else 0, weight=weight)
    base = SUCCESS_RATES.ADENOSINE_SECOND if is_second_dose else SUCCESS_RATES.ADENOSINE_FIRST

    target = order.target_dose
    ratio = min(dose, order.max_dose) / target if target > 0 else 0.0

    if ratio < 0.3: return base * 0.05      # Severely underdosed
    if ratio < 0.5: return base * 0.15
    if ratio < 0.7: return base * 0.40
    if ratio < 0.85: return base * 0.70
    if ratio <= 1.15: return base
    if ratio <= 1.5: return base * 0.95
    if ratio <= 2.0: return base * 0.85
    return base * 0.75


def cardioversion_success_probability(energy: float, attempt: int, weight: float) -> float:
    order = CardioversionOrder(energy=energy, attempt=attempt, weight=weight,
                               rhythm=Rhythm.SVT, sedated=True)
    target = order.target_energy
    ratio = energy / target if target > 0 else 0.0

    if ratio < 0.3: return 0.10
    if ratio < 0.5: return 0.30
    if ratio < 0.7: return 0.55
    if ratio < 0.85: return 0.75
    if ratio <= 2.5: return SUCCESS_RATES.CARDIOVERSION
    if ratio <= 4.0: return 0.90
    return 0.85


_CATCH_DESCRIPTIONS = {
    NurseReason.THIRD_DOSE: "Third adenosine - exceeds PALS protocol",
    NurseReason.DANGEROUS_OVERDOSE: "Dangerous overdose prevented",
    NurseReason.NOT_SEDATED: "Patient not sedated for cardioversion",
    NurseReason.WRONG_RHYTHM: "Wrong rhythm for cardioversion",
    NurseReason.NOT_SHOCKABLE: "Asystole is not shockable",
    NurseReason.OVER_DEVICE_MAX: "Exceeds device maximum",
    NurseReason.DANGEROUS_ENERGY: "Dangerous energy level",
}


def describe_nurse_catch(reason: Optional[Union[NurseReason, str]]) -> str:
    """Short audit label for a nurse intervention; unknown reasons echo back as-is."""
    if reason is None:
        return ""
    try:
        reason = NurseReason(getattr(reason, "value", reason))
    except ValueError:
        return str(reason)
    return _CATCH_DESCRIPTIONS.get(reason, reason.value)
