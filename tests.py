#!/usr/bin/env python3
"""
ROUND ENGINE — Unit Test Suite

Run: python tests.py
     python tests.py -v               # verbose
     python tests.py TestRng          # run specific class

Test categories:
  TestRng            — golden Mulberry32 outputs, chance/pick/randint edges
  TestTuning         — pydantic validation of both tuning tables
  TestOutcomeEngine  — golden rounds, derived fields, input validation
  TestMathModel      — weight normalisation, exact RTP, calibration
  TestCli            — JSON / table output of tools.engine_cli
"""

import io
import json
import sys
import unittest
from contextlib import redirect_stdout
from dataclasses import FrozenInstanceError
from fractions import Fraction
from pathlib import Path

from pydantic import ValidationError

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from round_engine import (
    DeterministicRng, HazardEngine, InvalidArgument, OutcomeEngine, OutcomeEvent,
    RoundResolution, RunType, Side, get_engine,
)
from round_engine.math_model import (
    calibrate_rare_multiplier, event_probabilities, planes_hit_probability, rtp_proof,
    theoretical_rtp, win_probability,
)
from round_engine.tuning import HazardTuning, TowerTuning

# Mulberry32 reference outputs
SEED_1_U32 = [
    2693262067, 11749833, 2265367787, 4213581821,
    4159151403, 1207330352, 2632122864, 3095568220,
]
SEED_0_U32 = [1144304738, 1416247, 958946056]


# ============================================================
# Deterministic RNG
# ============================================================

class TestRng(unittest.TestCase):

    def test_golden_sequence_seed_1(self):
        rng = DeterministicRng(1)
        self.assertEqual([rng.next_u32() for _ in SEED_1_U32], SEED_1_U32)

    def test_golden_sequence_seed_0(self):
        rng = DeterministicRng(0)
        self.assertEqual([rng.next_u32() for _ in SEED_0_U32], SEED_0_U32)

    def test_next_is_u32_over_two_pow_32(self):
        rng = DeterministicRng(1)
        self.assertEqual(rng.next(), SEED_1_U32[0] / 2**32)
        self.assertAlmostEqual(DeterministicRng(1).next(), 0.6270739405881613, places=15)

    def test_two_instances_agree_for_10k_draws(self):
        a, b = DeterministicRng(0xC0FFEE), DeterministicRng(0xC0FFEE)
        for _ in range(10_000):
            self.assertEqual(a.next(), b.next())

    def test_outputs_in_unit_interval(self):
        rng = DeterministicRng(0xFFFFFFFF)
        for _ in range(5_000):
            x = rng.next()
            self.assertGreaterEqual(x, 0.0)
            self.assertLess(x, 1.0)

    def test_state_advances_by_fixed_increment(self):
        rng = DeterministicRng(1)
        for _ in range(3):
            rng.next()
        self.assertEqual(rng.state, (1 + 3 * 0x6D2B79F5) & 0xFFFFFFFF)
        self.assertEqual(rng.seed, 1)

    def test_chance_degenerate_probabilities_still_consume_a_draw(self):
        rng = DeterministicRng(7)
        self.assertFalse(rng.chance(0.0))
        self.assertFalse(rng.chance(-1.0))
        self.assertTrue(rng.chance(1.0))
        self.assertTrue(rng.chance(2.5))
        ref = DeterministicRng(7)
        for _ in range(4):
            ref.next()
        self.assertEqual(rng.next(), ref.next())

    def test_pick_and_randint(self):
        rng = DeterministicRng(1)
        # first draw 0.627… → index 1 of 3, then 0.0027… → lo
        self.assertEqual(rng.pick(["a", "b", "c"]), "b")
        self.assertEqual(rng.randint(5, 9), 5)
        for _ in range(1000):
            self.assertIn(rng.randint(1, 6), range(1, 7))

    def test_pick_empty_raises(self):
        with self.assertRaises(InvalidArgument):
            DeterministicRng(1).pick([])

    def test_randint_inverted_bounds_raise(self):
        with self.assertRaises(InvalidArgument):
            DeterministicRng(1).randint(3, 2)

    def test_seed_validation(self):
        for bad in (-1, 2**32, 1.5, "1", True):
            with self.assertRaises(InvalidArgument, msg=repr(bad)):
                DeterministicRng(bad)

    def test_seed_hex_and_random_seed(self):
        self.assertEqual(DeterministicRng(0x5EEDC0DE).seed_hex, "5EEDC0DE")
        self.assertEqual(DeterministicRng(1).seed_hex, "00000001")
        rng = DeterministicRng()
        self.assertTrue(0 <= rng.seed <= 0xFFFFFFFF)
        self.assertEqual(len(rng.seed_hex), 8)


# ============================================================
# Tuning tables
# ============================================================

class TestTuning(unittest.TestCase):

    def test_default_weights(self):
        w = TowerTuning().weights()
        self.assertAlmostEqual(w[OutcomeEvent.HIT_A], 0.45)
        self.assertAlmostEqual(w[OutcomeEvent.HIT_B], 0.45)
        self.assertAlmostEqual(w[OutcomeEvent.MISS], 0.05)
        self.assertAlmostEqual(TowerTuning().effective_rare_probability, 0.185)

    def test_rare_probability_capped_at_one(self):
        self.assertEqual(TowerTuning(base_rare=0.5, rare_multiplier=4).effective_rare_probability, 1.0)

    def test_payout_multiple(self):
        self.assertEqual(TowerTuning().payout_multiple, 2.0)

    def test_tower_tuning_rejects_bad_values(self):
        with self.assertRaises(ValidationError):
            TowerTuning(hit_multiplier=0)
        with self.assertRaises(ValidationError):
            TowerTuning(base_rare=1.5)
        with self.assertRaises(ValidationError):
            TowerTuning(base_hit_a=0, base_hit_b=0, base_miss=0)

    def test_tables_reject_non_finite_values(self):
        for bad in (float("inf"), float("-inf"), float("nan")):
            with self.assertRaises(ValidationError):
                TowerTuning(hit_multiplier=bad)
            with self.assertRaises(ValidationError):
                TowerTuning(rare_multiplier=bad)
            with self.assertRaises(ValidationError):
                HazardTuning(cashout_step=bad)
            with self.assertRaises(ValidationError):
                HazardTuning(growth_rate={
                    RunType.SHORT: 0.06, RunType.MEDIUM: bad, RunType.LONG: 0.015,
                })
            with self.assertRaises(ValidationError):
                HazardTuning(base_probability={
                    RunType.SHORT: bad, RunType.MEDIUM: 0.14, RunType.LONG: 0.08,
                })

    def test_tables_are_immutable(self):
        with self.assertRaises(ValidationError):
            TowerTuning().hit_multiplier = 2.0
        with self.assertRaises(ValidationError):
            HazardTuning().p_max = 0.9

    def test_hazard_tuning_rejects_bad_values(self):
        with self.assertRaises(ValidationError):
            HazardTuning(p_min=0.5, p_max=0.3)
        with self.assertRaises(ValidationError):
            HazardTuning(mercy_factor=1.2)
        with self.assertRaises(ValidationError):
            HazardTuning(correction_factor=0.9)
        with self.assertRaises(ValidationError):
            HazardTuning(run_type_bounds=(0.8, 0.3))
        with self.assertRaises(ValidationError):
            HazardTuning(base_probability={RunType.SHORT: 0.2, RunType.MEDIUM: 0.1})

    def test_run_type_partition(self):
        t = HazardTuning()
        self.assertIs(t.run_type_for(0.0), RunType.SHORT)
        self.assertIs(t.run_type_for(0.2999), RunType.SHORT)
        self.assertIs(t.run_type_for(0.30), RunType.MEDIUM)
        self.assertIs(t.run_type_for(0.7999), RunType.MEDIUM)
        self.assertIs(t.run_type_for(0.80), RunType.LONG)
        self.assertIs(t.run_type_for(0.9999), RunType.LONG)

    def test_cashout_ladder(self):
        t = HazardTuning()
        self.assertEqual(t.payout_multiplier(0), 1.0)
        self.assertEqual(t.payout_multiplier(1), 1.1)
        self.assertEqual(t.payout_multiplier(3), 1.331)

    def test_cashout_value_is_whole_cents(self):
        t = HazardTuning()
        self.assertEqual(t.cashout_value(0), 10.0)
        self.assertEqual(t.cashout_value(3), 13.31)
        self.assertEqual(t.cashout_value(4), 14.64)    # 14.641
        self.assertEqual(t.cashout_value(6), 17.72)    # 17.716

    def test_json_reload(self):
        t = HazardTuning(mercy_factor=0.85)
        again = HazardTuning.model_validate_json(t.model_dump_json())
        self.assertEqual(again, t)
        self.assertEqual(again.base_probability[RunType.LONG], 0.08)


# ============================================================
# Discrete outcome engine
# ============================================================

class TestOutcomeEngine(unittest.TestCase):

    def test_golden_round_seed_1(self):
        engine = OutcomeEngine(DeterministicRng(0x00000001), TowerTuning.design_brief())
        resolution = engine.resolve_round("A")
        expected = RoundResolution(
            selected_side=Side.A,
            first_event=OutcomeEvent.HIT_A,
            second_event_triggered=False,
            second_event=None,
            rare_event_triggered=False,
            rare_event_target=None,
        )
        self.assertEqual(resolution, expected)
        self.assertEqual(resolution.destroyed, {Side.A: True, Side.B: False})
        self.assertFalse(resolution.selected_side_wins)

    def test_golden_follow_up_rounds_seed_1(self):
        engine = OutcomeEngine(DeterministicRng(1), TowerTuning.design_brief())
        engine.resolve_round("A")
        second = engine.resolve_round(Side.A)
        self.assertIs(second.first_event, OutcomeEvent.MISS)
        self.assertFalse(second.second_event_triggered)
        self.assertFalse(second.rare_event_triggered)
        self.assertTrue(second.selected_side_wins)
        third = engine.resolve_round(Side.B)
        self.assertIs(third.first_event, OutcomeEvent.HIT_B)
        self.assertFalse(third.selected_side_wins)
        self.assertEqual(engine.rng.state, (1 + 7 * 0x6D2B79F5) & 0xFFFFFFFF)

    def test_golden_rare_collapse(self):
        rng = DeterministicRng(1)
        rng.next()
        resolution = OutcomeEngine(rng, TowerTuning.design_brief()).resolve_round("B")
        self.assertTrue(resolution.rare_event_triggered)
        self.assertIs(resolution.rare_event_target, Side.B)
        self.assertIs(resolution.first_event, OutcomeEvent.MISS)
        self.assertFalse(resolution.second_event_triggered)
        self.assertEqual(resolution.destroyed, {Side.A: False, Side.B: True})
        self.assertEqual(resolution.survives, {Side.A: True, Side.B: False})
        self.assertFalse(resolution.selected_side_wins)

    def test_derived_fields_are_pure_functions_of_draws(self):
        engine = OutcomeEngine(DeterministicRng(99))
        for i in range(2_000):
            r = engine.resolve_round(Side.A if i % 2 else Side.B)
            named = {e.target for e in r.events} | {r.rare_event_target}
            for side in Side:
                self.assertEqual(r.destroyed[side], side in named)
            self.assertEqual(r.selected_side_wins, not r.destroyed[r.selected_side])
            if r.second_event_triggered:
                self.assertIs(r.first_event, OutcomeEvent.MISS)

    def test_resolution_is_immutable(self):
        r = OutcomeEngine(DeterministicRng(1)).resolve_round("A")
        with self.assertRaises(FrozenInstanceError):
            r.first_event = OutcomeEvent.MISS
        r.destroyed[Side.A] = False
        self.assertTrue(r.destroyed[Side.A])

    def test_resolution_rejects_inconsistent_records(self):
        with self.assertRaises(ValueError):
            RoundResolution(Side.A, OutcomeEvent.MISS, second_event_triggered=True)
        with self.assertRaises(ValueError):
            RoundResolution(Side.A, OutcomeEvent.MISS, rare_event_target=Side.B)

    def test_invalid_side(self):
        engine = OutcomeEngine(DeterministicRng(1))
        for bad in ("C", "a", None, 0):
            with self.assertRaises(InvalidArgument):
                engine.resolve_round(bad)
        # No draw consumed on rejected input
        self.assertEqual(engine.rng.state, 1)

    def test_to_dict(self):
        payload = OutcomeEngine(DeterministicRng(1), TowerTuning.design_brief()).resolve_round("A").to_dict()
        self.assertEqual(payload["first_event"], "hitA")
        self.assertEqual(payload["destroyed"], {"A": True, "B": False})
        self.assertFalse(payload["selected_side_wins"])
        json.dumps(payload)

    def test_registry(self):
        self.assertIsInstance(get_engine("towers", DeterministicRng(1)), OutcomeEngine)
        self.assertIsInstance(get_engine("HAZARD", DeterministicRng(1)), HazardEngine)
        with self.assertRaises(InvalidArgument):
            get_engine("plinko", DeterministicRng(1))


# ============================================================
# Analytic model
# ============================================================

class TestMathModel(unittest.TestCase):

    def test_weights_normalise_exactly(self):
        tables = [
            TowerTuning(),
            TowerTuning.design_brief(),
            TowerTuning(hit_multiplier=0.37, miss_multiplier=3.3),
            TowerTuning(base_hit_a=0.1, base_hit_b=0.7, base_miss=0.9, miss_multiplier=0.01),
        ]
        for t in tables:
            probs = event_probabilities(t, exact=True)
            self.assertEqual(sum(probs.values()), Fraction(1))
            self.assertAlmostEqual(sum(event_probabilities(t).values()), 1.0, places=12)

    def test_default_table_hits_target(self):
        self.assertAlmostEqual(theoretical_rtp(TowerTuning()), 0.9507382271, places=8)

    def test_design_brief_table_overpays(self):
        # 2 × (1 − 0.4545) × (1 − 0.07)
        self.assertAlmostEqual(theoretical_rtp(TowerTuning.design_brief()), 1.01463, places=8)

    def test_win_probability_symmetric_sides(self):
        t = TowerTuning()
        self.assertAlmostEqual(win_probability(t, Side.A), win_probability(t, Side.B))
        lopsided = TowerTuning(base_hit_a=0.6, base_hit_b=0.2)
        self.assertGreater(planes_hit_probability(lopsided, Side.A),
                           planes_hit_probability(lopsided, Side.B))

    def test_proof_reports_overlap(self):
        proof = rtp_proof(TowerTuning())
        self.assertEqual(proof["probability_sum_check"], "PASS")
        self.assertEqual(proof["rtp_check"], "PASS")
        self.assertGreater(proof["overlap"], 0)
        self.assertAlmostEqual(
            proof["p_loss_additive"] - proof["p_loss"],
            proof["p_planes_hit_selected"] * proof["p_rare_hits_selected"],
            places=8,
        )

    def test_calibrate_rare_multiplier(self):
        t = TowerTuning()
        m = calibrate_rare_multiplier(t)
        self.assertAlmostEqual(m, 3.728186, places=5)
        tuned = t.model_copy(update={"rare_multiplier": m})
        self.assertAlmostEqual(theoretical_rtp(tuned), 0.95, places=9)

    def test_calibrate_unreachable_target(self):
        with self.assertRaises(InvalidArgument):
            calibrate_rare_multiplier(TowerTuning(), target_rtp=1.2)
        with self.assertRaises(InvalidArgument):
            calibrate_rare_multiplier(TowerTuning(base_rare=0))


# ============================================================
# CLI
# ============================================================

class TestCli(unittest.TestCase):

    def _run(self, *argv):
        from tools.engine_cli import main
        buf = io.StringIO()
        with redirect_stdout(buf):
            code = main(list(argv))
        return code, buf.getvalue()

    def test_proof_json(self):
        code, out = self._run("proof", "--json", "--calibrate")
        self.assertEqual(code, 0)
        payload = json.loads(out)
        self.assertEqual(payload["probability_sum_check"], "PASS")
        self.assertIn("calibrated_rare_multiplier", payload)

    def test_towers_json(self):
        code, out = self._run("towers", "--trials", "2000", "--seed", "0x1", "--json")
        self.assertEqual(code, 0)
        payload = json.loads(out)
        self.assertEqual(payload["trials"], 2000)
        self.assertEqual(payload["seeds"], ["00000001"])
        self.assertIn("theoretical_rtp", payload)

    def test_hazard_json(self):
        code, out = self._run("hazard", "--trials", "500", "--cashout-after", "2", "--json")
        self.assertEqual(code, 0)
        payload = json.loads(out)
        self.assertEqual(payload["cashout_after"], 2)
        self.assertEqual(sum(payload["run_type_counts"].values()), 500)

    def test_table_output(self):
        code, out = self._run("towers", "--trials", "500")
        self.assertEqual(code, 0)
        self.assertIn("Effective RTP", out)

    def test_dump_and_reload_config(self):
        import tempfile
        code, out = self._run("hazard", "--dump-config")
        self.assertEqual(code, 0)
        self.assertEqual(HazardTuning.model_validate_json(out), HazardTuning())

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "tuning.json"
            path.write_text(TowerTuning.design_brief().model_dump_json())
            code, out = self._run("proof", "--json", "--tuning", str(path))
        self.assertEqual(json.loads(out)["rtp_check"], "FAIL")


if __name__ == "__main__":
    unittest.main()
