# debug_calibration.py
from dataclasses import replace

from doses import calculate_drug_dose, calculate_energy
from models import InterventionRequest, InterventionType, Rhythm
from physiology import process_intervention
from random_source import RandomSource
from scenarios import SCENARIOS

TRIALS = 10000
SEED = 20201

# (label, intervention, sedated/access setup, expected success band %)
CASES = [
    ("Vagal (ice)", InterventionType.VAGAL_ICE, None, (15, 35)),
    ("Adenosine 1st", InterventionType.ADENOSINE, "ADENOSINE", (45, 75)),
    ("Adenosine 2nd", InterventionType.ADENOSINE_2, "ADENOSINE_2", (65, 95)),
    ("Sync cardioversion", InterventionType.CARDIOVERSION_SYNC, "CARDIOVERSION_SYNC", (80, 99)),
]


def run_debug():
    print("\n========================================")
    print("   PEDISIM SUCCESS-RATE CALIBRATOR")
    print("========================================")

    # 1. THE REFERENCE PATIENT (18.5 kg, stable SVT, IV in, sedated)
    base = SCENARIOS["SVT_STABLE"].initial_state
    state = replace(base, iv_access=True, sedated=True)
    weight = state.profile.weight
    print(f"\n[PATIENT] {state.profile.name}, {weight}kg, {state.rhythm.value} @ {state.vitals.heart_rate}")

    # 2. REFERENCE DOSES
    first = calculate_drug_dose("ADENOSINE", weight).calculated_dose
    second = calculate_drug_dose("ADENOSINE", weight, is_second_dose=True).calculated_dose
    joules = calculate_energy("CARDIOVERSION_SYNC", weight).calculated_dose
    doses = {"ADENOSINE": first, "ADENOSINE_2": second, "CARDIOVERSION_SYNC": joules}
    print(f" > Adenosine:     {first}mg / {second}mg")
    print(f" > Cardioversion: {joules:g}J")

    # 3. SEEDED TRIALS
    print(f"\n--- {TRIALS} TRIALS PER INTERVENTION (seed {SEED}) ---")
    failures = []
    for label, kind, dose_key, (low, high) in CASES:
        rng = RandomSource(SEED)
        request = InterventionRequest(type=kind, timestamp=0, dose=doses.get(dose_key))
        successes = sum(process_intervention(state, request, rng).success for _ in range(TRIALS))
        rate = 100.0 * successes / TRIALS
        ok = low <= rate <= high
        print(f" {'✅' if ok else '❌'} {label:<20} {rate:5.1f}%  (expected {low}-{high}%)")
        if not ok:
            failures.append(label)

    # 4. ADENOSINE NEVER SKIPS THE PAUSE
    rng = RandomSource(SEED)
    request = InterventionRequest(type=InterventionType.ADENOSINE, timestamp=0, dose=first)
    rhythms = {process_intervention(state, request, rng).new_state["rhythm"] for _ in range(1000)}
    if rhythms == {Rhythm.ASYSTOLE}:
        print(" ✅ Adenosine transient asystole on every push")
    else:
        print(f" ❌ Adenosine produced {sorted(r.value for r in rhythms)}")
        failures.append("Adenosine transient")

    if failures:
        print("\n❌ DIAGNOSIS: out of band -> " + ", ".join(failures))
        print("   Check SUCCESS_RATES in constants.py and the dose-response curves in safety.py.")
    else:
        print("\n✅ SUCCESS: Kernel is Calibrated.")


if __name__ == "__main__":
    run_debug()
