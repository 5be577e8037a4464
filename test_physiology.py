import unittest
from dataclasses import FrozenInstanceError, replace

from models import (
    EventType, InterventionOutcome, InterventionRequest, InterventionType,
    PatientProfile, PatientState, PendingConversionResult, Rhythm, TransientState,
    TransientType, Vitals,
)
from physiology import (
    apply_result, apply_state_change, end_transient, process_intervention,
    resolve_transient_state,
)
from random_source import RandomSource


class TestInterventionEngine(unittest.TestCase):
    """
    Outcome engine: prerequisites, rhythm gating and the transient lifecycle.
    Run with: python -m unittest test_physiology.py
    """

    def setUp(self):
        self.profile = PatientProfile(name="Test Child", age=5, weight=18.5, sex="F",
                                      chief_complaint="Palpitations")
        self.state = PatientState(
            profile=self.profile,
            rhythm=Rhythm.SVT,
            vitals=Vitals(heart_rate=220, systolic_bp=92, diastolic_bp=64,
                          respiratory_rate=26, spo2=97),
            iv_access=True,
        )
        self.rng = RandomSource(1234)

    def order(self, kind, dose=None, timestamp=1000, **kwargs):
        return InterventionRequest(type=kind, timestamp=timestamp, dose=dose, **kwargs)

    def in_transient(self, previous_hr=220):
        return replace(
            self.state,
            rhythm=Rhythm.ASYSTOLE,
            vitals=replace(self.state.vitals, heart_rate=0),
            transient_state=TransientState(
                type=TransientType.ADENOSINE_EFFECT, start_time=1000, duration=5000,
                previous_rhythm=Rhythm.SVT, previous_hr=previous_hr),
        )

    # --- ADENOSINE ---

    def test_01_adenosine_needs_access(self):
        print("\nTEST 1: Adenosine Without Access")
        no_access = replace(self.state, iv_access=False)
        result = process_intervention(no_access, self.order(InterventionType.ADENOSINE, 1.85), self.rng)

        self.assertEqual(result.outcome, InterventionOutcome.PREREQUISITE_MISSING)
        self.assertFalse(result.executed)
        self.assertEqual(result.new_state, {})
        self.assertEqual(result.events[0].type, EventType.INTERVENTION_ATTEMPTED)
        self.assertEqual(result.events[0].data["blocked"], "NO_ACCESS")

    def test_02_adenosine_always_transient_asystole(self):
        """[PHYSIOLOGY] Every push gives transient asystole, whatever the dose"""
        print("\nTEST 2: Adenosine Transient Asystole")
        for seed in range(200):
            for dose in (0.2, 1.85, 5.0):
                rng = RandomSource(seed)
                result = process_intervention(self.state, self.order(InterventionType.ADENOSINE, dose), rng)
                self.assertIsInstance(result, PendingConversionResult)
                self.assertEqual(result.outcome, InterventionOutcome.TRANSIENT_RESPONSE)
                self.assertEqual(result.new_state["rhythm"], Rhythm.ASYSTOLE)
                self.assertEqual(result.new_state["vitals"].heart_rate, 0)
                self.assertEqual(result.pending_conversion, result.success)

                transient = result.new_state["transient_state"]
                self.assertTrue(3000 <= transient.duration < 7000)
                self.assertEqual(transient.previous_rhythm, Rhythm.SVT)
                self.assertEqual(transient.previous_hr, 220)
                self.assertEqual(transient.start_time, 1000)
        print(f"  > last duration {transient.duration}ms, accuracy {result.dose_accuracy:.2f}")

    def test_03_adenosine_event_payload(self):
        result = process_intervention(self.state, self.order(InterventionType.ADENOSINE, 1.85), self.rng)
        event = result.events[0]
        self.assertEqual(event.type, EventType.TRANSIENT_START)
        self.assertEqual(event.data["type"], "ADENOSINE_EFFECT")
        self.assertEqual(event.data["dose"], 1.85)
        self.assertEqual(event.data["dose_accuracy"], 1.0)
        self.assertEqual(result.dose_accuracy, 1.0)
        self.assertEqual(event.to_dict()["type"], "TRANSIENT_START")

    def test_04_adenosine_wrong_rhythm(self):
        sinus = replace(self.state, rhythm=Rhythm.SINUS_TACH)
        result = process_intervention(sinus, self.order(InterventionType.ADENOSINE, 1.85), self.rng)
        self.assertEqual(result.outcome, InterventionOutcome.NO_EFFECT)
        self.assertTrue(result.executed)
        self.assertEqual(result.new_state, {})

        flutter = replace(self.state, rhythm=Rhythm.ATRIAL_FLUTTER)
        result = process_intervention(flutter, self.order(InterventionType.ADENOSINE_2, 3.7), self.rng)
        self.assertEqual(result.outcome, InterventionOutcome.TRANSIENT_RESPONSE)

    # --- CARDIOVERSION ---

    def test_05_cardioversion_needs_sedation(self):
        result = process_intervention(self.state, self.order(InterventionType.CARDIOVERSION_SYNC, 9), self.rng)
        self.assertEqual(result.outcome, InterventionOutcome.PREREQUISITE_MISSING)
        self.assertFalse(result.executed)
        self.assertEqual(result.events[0].data["blocked"], "NOT_SEDATED")

    def test_06_cardioversion_rhythm_gate(self):
        sedated_sinus = replace(self.state, sedated=True, rhythm=Rhythm.SINUS)
        result = process_intervention(sedated_sinus, self.order(InterventionType.CARDIOVERSION_SYNC, 9), self.rng)
        self.assertEqual(result.outcome, InterventionOutcome.NO_EFFECT)
        self.assertTrue(result.executed)
        self.assertEqual(result.events[0].data["outcome"], "NOT_INDICATED")

    def test_07_cardioversion_success_shape(self):
        print("\nTEST 7: Cardioversion Conversion")
        sedated = replace(self.state, sedated=True)
        request = self.order(InterventionType.CARDIOVERSION_SYNC, 9, timestamp=5000)
        conversions = 0
        for seed in range(50):
            result = process_intervention(sedated, request, RandomSource(seed))
            if not result.success:
                self.assertEqual(result.outcome, InterventionOutcome.NO_EFFECT)
                self.assertEqual(result.new_state, {})
                continue
            conversions += 1
            self.assertEqual(result.outcome, InterventionOutcome.CONVERTED)
            self.assertEqual(result.new_state["rhythm"], Rhythm.SINUS)
            self.assertTrue(80 <= result.new_state["vitals"].heart_rate < 105)
            self.assertEqual(result.new_state["time_in_current_rhythm"], 0)
            change = result.events[-1]
            self.assertEqual(change.type, EventType.RHYTHM_CHANGE)
            self.assertEqual(change.timestamp, 5100)
        print(f"  > {conversions}/50 converted")
        self.assertGreater(conversions, 0)

    # --- VAGAL / ACCESS / SEDATION / OTHER ---

    def test_08_vagal(self):
        sinus = replace(self.state, rhythm=Rhythm.SINUS)
        self.assertEqual(
            process_intervention(sinus, self.order(InterventionType.VAGAL_ICE), self.rng).outcome,
            InterventionOutcome.NO_EFFECT)

        for seed in range(100):
            result = process_intervention(self.state, self.order(InterventionType.VAGAL_VALSALVA), RandomSource(seed))
            if result.success:
                self.assertEqual(result.new_state["rhythm"], Rhythm.SINUS)
                self.assertTrue(85 <= result.new_state["vitals"].heart_rate < 105)
                self.assertEqual(result.events[0].data["mechanism"], "vagal_conversion")
            else:
                self.assertTrue(result.executed)
                self.assertEqual(result.new_state, {})

    def test_09_access(self):
        already = process_intervention(self.state, self.order(InterventionType.ESTABLISH_IV), self.rng)
        self.assertTrue(already.success)
        self.assertFalse(already.executed)
        self.assertEqual(already.outcome, InterventionOutcome.NO_EFFECT)

        result = process_intervention(self.state, self.order(InterventionType.ESTABLISH_IO), self.rng)
        self.assertTrue(result.executed)
        if result.success:
            self.assertEqual(result.outcome, InterventionOutcome.CONVERTED)
            self.assertEqual(result.new_state, {"io_access": True})
        else:
            self.assertEqual(result.new_state, {})

    def test_10_sedation(self):
        blocked = process_intervention(replace(self.state, iv_access=False),
                                       self.order(InterventionType.SEDATION), self.rng)
        self.assertEqual(blocked.outcome, InterventionOutcome.PREREQUISITE_MISSING)

        result = process_intervention(self.state, self.order(InterventionType.SEDATION), self.rng)
        self.assertTrue(result.success)
        self.assertEqual(result.new_state, {"sedated": True})
        self.assertEqual(result.events[0].data["drug"], "midazolam")

        ketamine = process_intervention(
            self.state, self.order(InterventionType.SEDATION, verbalization="ketamine"), self.rng)
        self.assertEqual(ketamine.events[0].data["drug"], "ketamine")

    def test_11_defibrillation_on_perfusing_rhythm(self):
        result = process_intervention(self.state, self.order(InterventionType.DEFIBRILLATION, 37), self.rng)
        self.assertEqual(result.outcome, InterventionOutcome.CONTRAINDICATED)
        self.assertFalse(result.executed)

        vfib = replace(self.state, rhythm=Rhythm.VFIB)
        result = process_intervention(vfib, self.order(InterventionType.DEFIBRILLATION, 37), self.rng)
        self.assertEqual(result.outcome, InterventionOutcome.NO_EFFECT)
        self.assertIn("not modelled", result.reason)

    def test_12_unmodelled_interventions_are_inert(self):
        for kind in (InterventionType.AMIODARONE, InterventionType.PROCAINAMIDE, InterventionType.EPINEPHRINE,
                     InterventionType.ATROPINE, InterventionType.INTUBATION, InterventionType.START_CPR,
                     InterventionType.STOP_CPR):
            result = process_intervention(self.state, self.order(kind, 1.0), self.rng)
            self.assertEqual(result.outcome, InterventionOutcome.NO_EFFECT)
            self.assertFalse(result.executed)
            self.assertEqual(result.events, [])

    # --- TRANSIENT RESOLUTION ---

    def test_13_resolve_without_transient(self):
        self.assertEqual(resolve_transient_state(self.state, True, self.rng), {})

    def test_14_resolution_depends_only_on_will_convert(self):
        """[KERNEL] True always restores SINUS, False always restores the prior rhythm"""
        print("\nTEST 14: Transient Classification")
        state = self.in_transient()
        for seed in range(300):
            converted = resolve_transient_state(state, True, RandomSource(seed))
            self.assertEqual(converted["rhythm"], Rhythm.SINUS)
            self.assertIsNone(converted["transient_state"])
            self.assertEqual(converted["time_in_current_rhythm"], 0)
            self.assertTrue(85 <= converted["vitals"].heart_rate < 105)

            reverted = resolve_transient_state(state, False, RandomSource(seed))
            self.assertEqual(reverted["rhythm"], Rhythm.SVT)
            self.assertIsNone(reverted["transient_state"])
            self.assertTrue(211 <= reverted["vitals"].heart_rate <= 220)
            self.assertNotIn("time_in_current_rhythm", reverted)

    def test_15_other_transients_just_clear(self):
        state = replace(self.in_transient(), transient_state=TransientState(
            type=TransientType.POST_CARDIOVERSION, start_time=0, duration=1000,
            previous_rhythm=Rhythm.SVT, previous_hr=220))
        self.assertEqual(resolve_transient_state(state, True, self.rng), {"transient_state": None})

    def test_16_end_transient_events(self):
        new_state, events = end_transient(self.in_transient(), True, self.rng, timestamp=6000)
        self.assertEqual(new_state.rhythm, Rhythm.SINUS)
        self.assertIsNone(new_state.transient_state)
        self.assertEqual([e.type for e in events], [EventType.TRANSIENT_END, EventType.RHYTHM_CHANGE])
        self.assertEqual(events[1].data["from"], "ASYSTOLE")
        self.assertEqual(events[1].data["to"], "SINUS")

        same_state, events = end_transient(self.state, True, self.rng, timestamp=6000)
        self.assertIs(same_state, self.state)
        self.assertEqual(events, [])

    # --- REDUCERS ---

    def test_17_apply_result_is_pure(self):
        result = process_intervention(self.state, self.order(InterventionType.ADENOSINE, 1.85), self.rng)
        new_state = apply_result(self.state, result)

        self.assertEqual(self.state.rhythm, Rhythm.SVT)
        self.assertIsNone(self.state.transient_state)
        self.assertEqual(new_state.rhythm, Rhythm.ASYSTOLE)
        self.assertEqual(new_state.vitals.heart_rate, 0)
        self.assertEqual(new_state.vitals.systolic_bp, 92)
        self.assertIsNotNone(new_state.transient_state)
        with self.assertRaises(FrozenInstanceError):
            new_state.rhythm = Rhythm.SINUS

    def test_18_apply_state_change_merges_vitals(self):
        new_state = apply_state_change(self.state, {"vitals": {"spo2": 90}, "sedated": True})
        self.assertEqual(new_state.vitals.spo2, 90)
        self.assertEqual(new_state.vitals.heart_rate, 220)
        self.assertTrue(new_state.sedated)
        self.assertIs(apply_state_change(self.state, {}), self.state)
        with self.assertRaises(ValueError):
            apply_state_change(self.state, {"heart_rate": 100})

    def test_19_seeded_runs_are_reproducible(self):
        def run(seed):
            rng = RandomSource(seed)
            state = replace(self.state, sedated=True)
            out = []
            for kind, dose in ((InterventionType.VAGAL_ICE, None), (InterventionType.ADENOSINE, 1.85),
                               (InterventionType.CARDIOVERSION_SYNC, 9)):
                result = process_intervention(state, self.order(kind, dose), rng)
                out.append((result.success, result.outcome, [e.to_dict() for e in result.events]))
            return out
        self.assertEqual(run(99), run(99))


class TestSuccessRates(unittest.TestCase):
    """10,000 seeded trials per intervention on one RandomSource."""

    TRIALS = 10000

    def setUp(self):
        self.state = PatientState(
            profile=PatientProfile(name="Test Child", age=5, weight=18.5, sex="M", chief_complaint="SVT"),
            rhythm=Rhythm.SVT,
            vitals=Vitals(heart_rate=220, systolic_bp=92, diastolic_bp=64, respiratory_rate=26, spo2=97),
            iv_access=True,
            sedated=True,
        )

    def rate(self, kind, dose=None):
        rng = RandomSource(2020)
        request = InterventionRequest(type=kind, timestamp=0, dose=dose)
        hits = sum(process_intervention(self.state, request, rng).success for _ in range(self.TRIALS))
        return 100.0 * hits / self.TRIALS

    def test_01_vagal_band(self):
        rate = self.rate(InterventionType.VAGAL_ICE)
        print(f"\nVagal: {rate:.1f}%")
        self.assertTrue(15 <= rate <= 35)

    def test_02_adenosine_bands(self):
        first = self.rate(InterventionType.ADENOSINE, 1.85)
        second = self.rate(InterventionType.ADENOSINE_2, 3.7)
        print(f"\nAdenosine: {first:.1f}% / {second:.1f}%")
        self.assertTrue(45 <= first <= 75)
        self.assertTrue(65 <= second <= 95)

    def test_03_cardioversion_band(self):
        rate = self.rate(InterventionType.CARDIOVERSION_SYNC, 9)
        print(f"\nCardioversion: {rate:.1f}%")
        self.assertTrue(80 <= rate <= 99)


if __name__ == '__main__':
    unittest.main()
