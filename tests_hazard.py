#!/usr/bin/env python3
"""
Tests for the incremental hazard engine

Validates:
1. Run type partition is driven by one RNG draw per round
2. Hazard curve: base + growth × step, clamped to [p_min, p_max]
3. Mercy / correction factors after three-round streaks
4. Clamp band holds for every run type, step and streak state
5. Streak counters are mutually exclusive
6. Lifecycle misuse raises ContractViolation
7. Seeded danger verdicts are reproducible
"""

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from round_engine import (
    ContractViolation, DeterministicRng, HazardEngine, HazardTuning, InvalidArgument, RunType,
)
from round_engine.math_model import base_hazard, hazard_survival_probability

# r values that land in each run-type bucket
RUN_TYPE_DRAW = {RunType.SHORT: 0.10, RunType.MEDIUM: 0.50, RunType.LONG: 0.90}


class ScriptedRng:
    """Stand-in RNG that replays fixed values in a loop."""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    def next(self):
        value = self.values[self.calls % len(self.values)]
        self.calls += 1
        return value

    def chance(self, p):
        return self.next() < p


def _engine_with(run_type, losses=0, wins=0, tuning=None):
    engine = HazardEngine(ScriptedRng(RUN_TYPE_DRAW[run_type]), tuning)
    for _ in range(losses):
        engine.start_round()
        engine.on_round_lost()
    for _ in range(wins):
        engine.start_round()
        engine.on_round_won()
    engine.start_round()
    assert engine.run_type is run_type
    return engine


# ============================================================
# Run type
# ============================================================

def test_start_round_rolls_run_type_from_one_draw():
    rng = ScriptedRng(0.29, 0.30, 0.79, 0.80)
    engine = HazardEngine(rng)
    seen = []
    for _ in range(4):
        seen.append(engine.start_round())
        engine.on_round_won()
    assert seen == [RunType.SHORT, RunType.MEDIUM, RunType.MEDIUM, RunType.LONG]
    assert rng.calls == 4
    assert engine.round_number == 4


def test_seeded_round_is_reproducible():
    # seed 1: 0.627… → medium, then 0.0027… < 0.14 → danger on the first step
    engine = HazardEngine(DeterministicRng(1))
    assert engine.start_round() is RunType.MEDIUM
    assert engine.is_danger(0) is True
    engine.on_round_lost()

    assert HazardEngine(DeterministicRng(0)).start_round() is RunType.SHORT


def test_two_engines_same_seed_same_verdicts():
    verdicts = []
    for _ in range(2):
        engine = HazardEngine(DeterministicRng(0xBEEF))
        run = []
        for _ in range(200):
            engine.start_round()
            step = 0
            while step < 8 and not engine.is_danger(step):
                step += 1
            run.append((engine.run_type, step))
            if step < 8:
                engine.on_round_lost()
            else:
                engine.on_round_won()
        verdicts.append(run)
    assert verdicts[0] == verdicts[1]


# ============================================================
# Hazard curve
# ============================================================

def test_medium_curve_and_clamp():
    engine = _engine_with(RunType.MEDIUM)
    assert engine.hazard_probability(0) == pytest.approx(0.14)
    assert engine.hazard_probability(5) == pytest.approx(0.29)
    # raw 0.44 exceeds p_max
    assert engine.hazard_probability(10) == 0.30


def test_curve_grows_within_round():
    for run_type in RunType:
        engine = _engine_with(run_type)
        probs = [engine.hazard_probability(i) for i in range(20)]
        assert probs == sorted(probs)


def test_base_hazard_matches_engine_without_streaks():
    tuning = HazardTuning()
    for run_type in RunType:
        engine = _engine_with(run_type)
        for step in (0, 1, 3, 7, 15):
            assert engine.hazard_probability(step) == base_hazard(tuning, run_type, step)


def test_floor_applies_when_raw_value_is_low():
    tuning = HazardTuning(base_probability={
        RunType.SHORT: 0.01, RunType.MEDIUM: 0.01, RunType.LONG: 0.01,
    })
    engine = _engine_with(RunType.LONG, tuning=tuning)
    assert engine.hazard_probability(0) == 0.04


def test_mercy_after_three_losses():
    for run_type in RunType:
        plain = _engine_with(run_type)
        mercy = _engine_with(run_type, losses=3)
        assert mercy.consecutive_losses == 3
        assert mercy.hazard_probability(0) < plain.hazard_probability(0)
        assert mercy.hazard_probability(0) >= 0.04
    assert _engine_with(RunType.MEDIUM, losses=3).hazard_probability(0) == pytest.approx(0.112)


def test_mercy_never_below_floor():
    tuning = HazardTuning(base_probability={
        RunType.SHORT: 0.045, RunType.MEDIUM: 0.045, RunType.LONG: 0.045,
    })
    engine = _engine_with(RunType.LONG, losses=5, tuning=tuning)
    assert engine.hazard_probability(0) == 0.04


def test_mercy_invisible_when_raw_value_already_above_ceiling():
    # Multiply-then-clamp: 0.44 × 0.8 = 0.352 still clamps to 0.30, so the
    # mercy factor has no effect this deep into a medium round.
    plain = _engine_with(RunType.MEDIUM)
    mercy = _engine_with(RunType.MEDIUM, losses=3)
    assert plain.hazard_probability(10) == mercy.hazard_probability(10) == 0.30


def test_correction_after_three_wins():
    for run_type in (RunType.MEDIUM, RunType.LONG):
        plain = _engine_with(run_type)
        corrected = _engine_with(run_type, wins=3)
        assert corrected.consecutive_wins == 3
        assert corrected.hazard_probability(0) > plain.hazard_probability(0)
        assert corrected.hazard_probability(0) <= 0.30
    assert _engine_with(RunType.MEDIUM, wins=3).hazard_probability(5) == 0.30


def test_two_losses_are_not_a_streak():
    plain = _engine_with(RunType.MEDIUM)
    assert _engine_with(RunType.MEDIUM, losses=2).hazard_probability(0) == plain.hazard_probability(0)


def test_clamp_band_over_all_states():
    tuning = HazardTuning()
    streaks = [(0, 0), (3, 0), (12, 0), (0, 3), (0, 12), (1, 0), (0, 2)]
    for run_type in RunType:
        for losses, wins in streaks:
            engine = _engine_with(run_type, losses=losses, wins=wins)
            for step in range(1001):
                p = engine.hazard_probability(step)
                assert tuning.p_min <= p <= tuning.p_max


def test_is_danger_uses_hazard_probability():
    engine = HazardEngine(ScriptedRng(0.5, 0.139, 0.141))
    engine.start_round()
    assert engine.is_danger(0) is True
    assert engine.is_danger(0) is False


# ============================================================
# Session counters and lifecycle
# ============================================================

def test_streak_exclusivity():
    engine = HazardEngine(DeterministicRng(3))
    assert engine.consecutive_wins == 0 and engine.consecutive_losses == 0
    coin = DeterministicRng(4)
    for _ in range(500):
        engine.start_round()
        if coin.chance(0.5):
            engine.on_round_won()
        else:
            engine.on_round_lost()
        assert (engine.consecutive_wins > 0) != (engine.consecutive_losses > 0)


def test_streak_counters_reset_on_opposite_verdict():
    engine = _engine_with(RunType.MEDIUM, losses=4)
    engine.on_round_won()
    assert engine.consecutive_wins == 1
    assert engine.consecutive_losses == 0


def test_state_snapshot():
    engine = _engine_with(RunType.LONG, wins=2)
    state = engine.state
    assert state.run_type is RunType.LONG
    assert state.consecutive_wins == 2
    assert state.round_number == 3
    assert state.round_active is True
    assert state.to_dict()["run_type"] == "long"


def test_settle_without_round_raises():
    engine = HazardEngine(DeterministicRng(1))
    with pytest.raises(ContractViolation):
        engine.on_round_won()
    with pytest.raises(ContractViolation):
        engine.on_round_lost()


def test_settle_twice_raises():
    engine = HazardEngine(DeterministicRng(1))
    engine.start_round()
    engine.on_round_lost()
    with pytest.raises(ContractViolation):
        engine.on_round_won()
    assert engine.consecutive_losses == 1
    assert engine.consecutive_wins == 0


def test_start_twice_raises():
    engine = HazardEngine(DeterministicRng(1))
    engine.start_round()
    with pytest.raises(ContractViolation):
        engine.start_round()


def test_query_before_first_round_raises():
    with pytest.raises(ContractViolation):
        HazardEngine(DeterministicRng(1)).hazard_probability(0)


def test_query_between_rounds_raises():
    engine = _engine_with(RunType.MEDIUM)
    engine.on_round_lost()
    assert engine.round_active is False
    calls = engine.rng.calls
    with pytest.raises(ContractViolation):
        engine.hazard_probability(0)
    with pytest.raises(ContractViolation):
        engine.is_danger(0)
    assert engine.rng.calls == calls
    engine.start_round()
    assert engine.hazard_probability(0) == pytest.approx(0.14)


def test_negative_or_non_int_step_raises():
    engine = _engine_with(RunType.MEDIUM)
    for bad in (-1, 1.5, "2", True):
        with pytest.raises(InvalidArgument):
            engine.hazard_probability(bad)
        with pytest.raises(InvalidArgument):
            engine.is_danger(bad)


def test_survival_probability_decreases_with_steps():
    tuning = HazardTuning()
    for run_type in RunType:
        survival = [hazard_survival_probability(tuning, run_type, n) for n in range(8)]
        assert survival[0] == 1.0
        assert survival == sorted(survival, reverse=True)
    assert hazard_survival_probability(tuning, RunType.MEDIUM, 3) == pytest.approx(0.86 * 0.83 * 0.80)
    with pytest.raises(InvalidArgument):
        hazard_survival_probability(tuning, RunType.SHORT, -1)
