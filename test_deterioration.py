import unittest
from dataclasses import replace

from deterioration import (
    advance_time, calculate_asystole_vitals, calculate_deterioration_vitals,
    calculate_recovery_vitals, get_deterioration_stage, get_recovery_phase,
    stage_vitals, step_deterioration,
)
from models import (
    DeteriorationStage, Demeanor, EventType, InterventionFlags, MentalStatus,
    PatientProfile, PatientState, Perfusion, RecoveryPhase, Rhythm, SkinColor,
    Stability, Vitals,
)
from random_source import RandomSource

MINUTE = 60 * 1000


class TestDeteriorationCurve(unittest.TestCase):
    """
    Untreated SVT over time.
    Run with: python -m unittest test_deterioration.py
    """

    def setUp(self):
        self.rng = RandomSource(2024)

    def test_01_stage_boundaries(self):
        print("\nTEST 1: Stage Boundaries")
        cases = [
            (0, DeteriorationStage.COMPENSATED),
            (2 * MINUTE - 1, DeteriorationStage.COMPENSATED),
            (2 * MINUTE, DeteriorationStage.EARLY_STRESS),
            (5 * MINUTE, DeteriorationStage.MODERATE_STRESS),
            (8 * MINUTE, DeteriorationStage.DECOMPENSATING),
            (12 * MINUTE, DeteriorationStage.CRITICAL),
            (60 * MINUTE, DeteriorationStage.CRITICAL),
        ]
        for elapsed, expected in cases:
            self.assertEqual(get_deterioration_stage(elapsed), expected, f"{elapsed}ms")

    def test_02_partial_blend_then_step(self):
        """[MODEL] The blend only reaches 30% of the gap; the rest lands at the threshold"""
        print("\nTEST 2: Transition Asymmetry")
        before = calculate_deterioration_vitals(2 * MINUTE - 1, self.rng)
        after = calculate_deterioration_vitals(2 * MINUTE, self.rng)
        print(f"  > systolic {before.systolic} -> {after.systolic}")

        self.assertEqual(before.systolic, 93)
        self.assertEqual(before.diastolic, 59)
        self.assertEqual(after.systolic, 88)
        self.assertEqual(after.diastolic, 56)

    def test_03_no_blend_early_in_stage(self):
        vitals = calculate_deterioration_vitals(30 * 1000, self.rng)
        base = stage_vitals(DeteriorationStage.COMPENSATED)
        self.assertEqual(vitals.systolic, base.systolic)
        self.assertEqual(vitals.diastolic, base.diastolic)
        self.assertEqual(vitals.hr, 220)
        self.assertEqual(vitals.demeanor, Demeanor.ANXIOUS)

    def test_04_systolic_never_rises(self):
        previous = None
        for second in range(0, 15 * 60, 5):
            systolic = calculate_deterioration_vitals(second * 1000, self.rng).systolic
            if previous is not None:
                self.assertLessEqual(systolic, previous, f"t={second}s")
            previous = systolic

    def test_05_supportive_care(self):
        print("\nTEST 5: Supportive Care")
        care = InterventionFlags(oxygen_applied=True, iv_fluids_given=True, position_optimized=True)
        late = calculate_deterioration_vitals(13 * MINUTE, self.rng, care)
        self.assertEqual(late.systolic, 68)
        self.assertEqual(late.diastolic, 40)
        self.assertTrue(88 <= late.spo2 <= 90)

        # Fluids never push BP above the healthy baseline
        early = calculate_deterioration_vitals(0, self.rng, InterventionFlags(iv_fluids_given=True))
        self.assertEqual(early.systolic, 95)
        self.assertEqual(early.diastolic, 60)

    def test_06_jitter_bounds(self):
        for seed in range(100):
            rng = RandomSource(seed)
            vitals = calculate_deterioration_vitals(13 * MINUTE, rng)
            self.assertTrue(84 <= vitals.spo2 <= 86)
            self.assertTrue(44 <= vitals.rr <= 46)

        oxygenated = calculate_deterioration_vitals(
            0, self.rng, InterventionFlags(oxygen_applied=True, position_optimized=True))
        self.assertLessEqual(oxygenated.spo2, 100)

    def test_07_seeded_vitals_reproducible(self):
        a = [calculate_deterioration_vitals(t * 1000, RandomSource(9)) for t in range(0, 900, 30)]
        b = [calculate_deterioration_vitals(t * 1000, RandomSource(9)) for t in range(0, 900, 30)]
        self.assertEqual(a, b)


class TestAsystoleAndRecovery(unittest.TestCase):

    def setUp(self):
        self.rng = RandomSource(77)

    def test_01_asystole_spo2_decay(self):
        print("\nTEST 1: Asystole SpO2 Decay")
        for elapsed, spo2 in ((0, 97), (1500, 94), (5000, 82), (10000, 70), (60000, 70)):
            vitals = calculate_asystole_vitals(elapsed)
            self.assertEqual(vitals.spo2, spo2, f"{elapsed}ms")
            self.assertEqual(vitals.hr, 0)
            self.assertEqual(vitals.systolic, 0)
            self.assertEqual(vitals.rr, 0)
        self.assertEqual(calculate_asystole_vitals(0).skin_color, SkinColor.GRAY)

    def test_02_recovery_phases(self):
        self.assertEqual(get_recovery_phase(0), RecoveryPhase.IMMEDIATE)
        self.assertEqual(get_recovery_phase(2000), RecoveryPhase.EARLY)
        self.assertEqual(get_recovery_phase(5000), RecoveryPhase.TRANSITIONAL)
        self.assertEqual(get_recovery_phase(10000), RecoveryPhase.STABLE)

    def test_03_recovery_heart_rate(self):
        print("\nTEST 3: Recovery Heart Rate")
        self.assertEqual(calculate_recovery_vitals(0, self.rng).hr, 0)
        self.assertEqual(calculate_recovery_vitals(1000, self.rng).hr, 28)
        self.assertEqual(calculate_recovery_vitals(2000, self.rng).hr, 55)
        self.assertEqual(calculate_recovery_vitals(5000, self.rng).hr, 70)
        self.assertEqual(calculate_recovery_vitals(7500, self.rng).hr, 80)
        self.assertEqual(calculate_recovery_vitals(7500, self.rng, target_hr=110).hr, 90)
        for _ in range(200):
            self.assertTrue(88 <= calculate_recovery_vitals(20000, self.rng).hr <= 92)

    def test_04_recovery_normalizes(self):
        start = calculate_recovery_vitals(0, self.rng)
        self.assertEqual((start.spo2, start.systolic, start.diastolic, start.rr), (94, 85, 52, 28))
        self.assertEqual(start.demeanor, Demeanor.LETHARGIC)
        self.assertEqual(start.skin_color, SkinColor.PALE)

        halfway = calculate_recovery_vitals(15000, self.rng)
        self.assertEqual((halfway.spo2, halfway.systolic, halfway.diastolic, halfway.rr), (96, 90, 56, 25))
        self.assertEqual(halfway.demeanor, Demeanor.ANXIOUS)
        self.assertEqual(halfway.skin_color, SkinColor.PINK)

        done = calculate_recovery_vitals(45000, self.rng)
        self.assertEqual((done.spo2, done.systolic, done.diastolic, done.rr), (98, 95, 60, 22))
        self.assertEqual(done.cap_refill, 2.0)
        self.assertEqual(done.demeanor, Demeanor.ALERT)

    def test_05_only_stable_phase_draws(self):
        a, b = RandomSource(1), RandomSource(1)
        calculate_recovery_vitals(3000, a)
        self.assertEqual(a.uniform(), b.uniform())


class TestStateStaging(unittest.TestCase):

    def setUp(self):
        self.state = PatientState(
            profile=PatientProfile(name="Test Child", age=5, weight=18.5, sex="M", chief_complaint="SVT"),
            rhythm=Rhythm.SVT,
            vitals=Vitals(heart_rate=225, systolic_bp=92, diastolic_bp=64, respiratory_rate=26, spo2=97),
        )

    def test_01_thresholds_are_strict(self):
        self.assertIsNone(step_deterioration(self.state, 5 * MINUTE))
        delta, event = step_deterioration(self.state, 5 * MINUTE + 1, timestamp=300001)
        self.assertEqual(delta["deterioration_stage"], 1)
        self.assertEqual(delta["stability"], Stability.COMPENSATED)
        self.assertEqual(delta["vitals"].systolic_bp, 82)
        self.assertEqual(event.type, EventType.DETERIORATION)
        self.assertEqual(event.timestamp, 300001)
        self.assertEqual(event.data["from_stage"], 0)
        self.assertEqual(event.data["to_stage"], 1)

    def test_02_one_stage_per_step(self):
        delta, _ = step_deterioration(self.state, 30 * MINUTE)
        self.assertEqual(delta["deterioration_stage"], 1)

    def test_03_later_stages(self):
        stage_1 = replace(self.state, deterioration_stage=1, time_in_current_rhythm=10 * MINUTE)
        delta, event = step_deterioration(stage_1, 1)
        self.assertEqual(delta["deterioration_stage"], 2)
        self.assertEqual(delta["mental_status"], MentalStatus.VERBAL)
        self.assertEqual(delta["perfusion"], Perfusion.DELAYED)
        self.assertEqual(delta["vitals"].capillary_refill, 4.0)
        self.assertEqual(event.data["stability"], "decompensated")

        stage_2 = replace(self.state, deterioration_stage=2, time_in_current_rhythm=15 * MINUTE)
        delta, _ = step_deterioration(stage_2, 1)
        self.assertEqual(delta["stability"], Stability.SHOCK)
        self.assertEqual(delta["vitals"].systolic_bp, 60)
        self.assertEqual(delta["vitals"].spo2, 90)
        self.assertEqual(delta["perfusion"], Perfusion.POOR)

        stage_3 = replace(stage_2, deterioration_stage=3, time_in_current_rhythm=40 * MINUTE)
        self.assertIsNone(step_deterioration(stage_3, MINUTE))

    def test_04_only_svt_deteriorates(self):
        for rhythm in (Rhythm.SINUS, Rhythm.ATRIAL_FLUTTER, Rhythm.ASYSTOLE):
            self.assertIsNone(step_deterioration(replace(self.state, rhythm=rhythm), 60 * MINUTE))

    def test_05_untreated_twenty_minutes(self):
        print("\nTEST 5: Twenty Untreated Minutes")
        state, events = self.state, []
        for minute in range(1, 21):
            state, new_events = advance_time(state, MINUTE, timestamp=minute * MINUTE)
            events.extend(new_events)

        print(f"  > stage {state.deterioration_stage}, {state.stability.value}, BP {state.vitals.systolic_bp}")
        self.assertEqual(state.deterioration_stage, 3)
        self.assertEqual(state.stability, Stability.SHOCK)
        self.assertEqual(state.mental_status, MentalStatus.PAIN)
        self.assertEqual(state.time_in_current_rhythm, 20 * MINUTE)
        self.assertEqual([e.data["to_stage"] for e in events], [1, 2, 3])
        self.assertEqual([e.timestamp for e in events], [6 * MINUTE, 11 * MINUTE, 16 * MINUTE])
        self.assertEqual(self.state.deterioration_stage, 0)

    def test_06_advance_time_accrues_for_any_rhythm(self):
        sinus = replace(self.state, rhythm=Rhythm.SINUS)
        state, events = advance_time(sinus, 30 * 1000)
        self.assertEqual(events, [])
        self.assertEqual(state.time_in_current_rhythm, 30 * 1000)


if __name__ == '__main__':
    unittest.main()
