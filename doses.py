"""
PALS Dose Calculator
Weight-based drug doses and shock energies (PALS 2020), plus the
accuracy grading the debrief uses. Pure lookups: unknown identifiers
return None rather than raising.
"""
import logging
from typing import Dict, Optional, Union

from clinical_math import round_half_up, round_int
from constants import DRUG_LIBRARY, ENERGY_LIBRARY
from models import DoseAccuracy, DoseCalculation, InterventionType

logger = logging.getLogger("pedisim.doses")

# Interventions graded against a reference dose: (library key, second dose?, unit)
_GRADED = {
    "ADENOSINE": ("ADENOSINE", False, "mg"),
    "ADENOSINE_2": ("ADENOSINE", True, "mg"),
    "CARDIOVERSION_SYNC": ("CARDIOVERSION_SYNC", False, "J"),
    "DEFIBRILLATION": ("DEFIBRILLATION", False, "J"),
    "EPINEPHRINE": ("EPINEPHRINE", False, "mg"),
}


def _key(identifier: Union[str, InterventionType]) -> str:
    return getattr(identifier, "value", identifier)


def calculate_drug_dose(drug: Union[str, InterventionType], weight_kg: float,
                        is_second_dose: bool = False) -> Optional[DoseCalculation]:
    """
    Calculates a single weight-based dose, capped at the protocol maximum.
    The second push of an escalating drug (adenosine) uses the scaled
    dose/kg and the paired "<DRUG>_2" ceiling.
    """
    name = _key(drug)
    protocol = DRUG_LIBRARY.get(name)
    if protocol is None:
        logger.debug(f"No protocol for drug '{name}'")
        return None

    dose_per_kg = protocol.dose_per_kg
    max_dose = protocol.max_dose

    if is_second_dose and protocol.second_dose_multiplier:
        dose_per_kg *= protocol.second_dose_multiplier
        paired = DRUG_LIBRARY.get(f"{name}_2")
        max_dose = paired.max_dose if paired else max_dose * protocol.second_dose_multiplier

    dose = min(weight_kg * dose_per_kg, max_dose)

    return DoseCalculation(
        drug=protocol.name,
        weight_based_dose=dose_per_kg,
        calculated_dose=round_half_up(dose, 2),
        max_dose=max_dose,
        unit=protocol.unit,
        route="/".join(protocol.routes),
        notes=protocol.notes,
    )


def calculate_energy(kind: Union[str, InterventionType], weight_kg: float,
                     attempt: int = 1) -> Optional[DoseCalculation]:
    """Shock energy in whole joules. Attempt 1 uses the initial J/kg, later attempts escalate."""
    name = _key(kind)
    protocol = ENERGY_LIBRARY.get(name)
    if protocol is None:
        logger.debug(f"No energy protocol for '{name}'")
        return None

    j_per_kg = protocol.initial_j_per_kg if attempt == 1 else protocol.max_j_per_kg
    joules = min(weight_kg * j_per_kg, protocol.max_j)

    return DoseCalculation(
        drug=protocol.name,
        weight_based_dose=j_per_kg,
        calculated_dose=float(round_int(joules)),
        max_dose=protocol.max_j,
        unit="J",
        route="EXTERNAL",
        notes=protocol.notes,
    )


def evaluate_dose_accuracy(intervention: Union[str, InterventionType], given: float,
                           weight_kg: float) -> DoseAccuracy:
    """
    Grades a given dose against the reference for this weight.
    accuracy = given / correct; interventions without a reference dose
    get the neutral accuracy=1, correct=0.
    """
    graded = _GRADED.get(_key(intervention))
    if graded is None:
        return DoseAccuracy(accuracy=1.0, correct=0.0, given=given, feedback="Not a dosed intervention")

    library_key, is_second, unit = graded
    if unit == "J":
        calc = calculate_energy(library_key, weight_kg)
    else:
        calc = calculate_drug_dose(library_key, weight_kg, is_second)
    correct = calc.calculated_dose if calc else 0.0

    accuracy = given / correct if correct > 0 else 0.0

    if 0.9 <= accuracy <= 1.1:
        feedback = "Correct dose"
    elif 0.8 <= accuracy <= 1.2:
        feedback = "Acceptable dose (within 20%)"
    elif accuracy < 0.8:
        feedback = f"Underdosed: gave {given:g}{unit}, correct is {correct:g}{unit}"
    else:
        feedback = f"Overdosed: gave {given:g}{unit}, correct is {correct:g}{unit}"

    return DoseAccuracy(accuracy=accuracy, correct=correct, given=given, feedback=feedback)


def get_all_dose_calculations(weight_kg: float) -> Dict[str, DoseCalculation]:
    """The bedside dosing card: every drug plus both shock energies."""
    card = {}
    for drug in DRUG_LIBRARY.SPECS:
        calc = calculate_drug_dose(drug, weight_kg)
        if calc:
            card[drug] = calc

    cardio = calculate_energy("CARDIOVERSION_SYNC", weight_kg)
    if cardio:
        card["CARDIOVERSION"] = cardio

    defib = calculate_energy("DEFIBRILLATION", weight_kg)
    if defib:
        card["DEFIBRILLATION"] = defib

    return card


def format_dose_accuracy(given: float, correct: float) -> Dict[str, str]:
    """
    Display label for a dose ratio ("20% under" rather than "80% accurate").
    Severity: correct | under | over | severe_under | severe_over.
    """
    if correct <= 0:
        return {"text": "no reference dose", "severity": "unknown"}

    ratio = given / correct

    if 0.9 <= ratio <= 1.1:
        return {"text": "✓ correct", "severity": "correct"}
    if 0.7 <= ratio < 0.9:
        return {"text": f"↓ {round_int((1 - ratio) * 100)}% under", "severity": "under"}
    if 1.1 < ratio <= 1.3:
        return {"text": f"↑ {round_int((ratio - 1) * 100)}% over", "severity": "over"}
    if ratio < 0.7:
        return {"text": f"↓↓ {round_int((1 - ratio) * 100)}% under", "severity": "severe_under"}
    return {"text": f"↑↑ {ratio:.1f}x overdose", "severity": "severe_over"}
