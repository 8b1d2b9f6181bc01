#!/usr/bin/env python3
"""
Tests for the simulation harness

Validates:
1. Same seed → identical results; results are write-once
2. Event counts include second planes; rates derive from counts
3. Effective RTP converges on the analytic target (200k rounds)
4. Hazard runs honour the cash-out policy and ladder
5. merge_results sums counts and re-derives rates
6. Argument validation
"""

import pickle
import sys
from dataclasses import FrozenInstanceError
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from round_engine import (
    HazardTuning, InvalidArgument, TowerTuning, merge_results, simulate, simulate_hazard,
    simulate_many,
)
from round_engine.math_model import hazard_rtp_without_streaks, theoretical_rtp

FIXED_SEED = 0x5EEDC0DE


# ============================================================
# Discrete mode
# ============================================================

def test_simulation_is_deterministic():
    assert simulate(5_000, FIXED_SEED) == simulate(5_000, FIXED_SEED)
    assert simulate(5_000, 1) != simulate(5_000, 2)


def test_results_are_write_once():
    result = simulate(100, 1)
    with pytest.raises(FrozenInstanceError):
        result.wins = 0
    hits = result.event_counts["hitA"]
    with pytest.raises(TypeError):
        result.event_counts["hitA"] = 0
    assert result.event_counts["hitA"] == hits
    hazard = simulate_hazard(100, 1, 2)
    with pytest.raises(TypeError):
        hazard.run_type_counts["short"] = 0
    with pytest.raises(TypeError):
        hazard.danger_steps[0] = 0


def test_results_survive_pickling():
    result = simulate(100, 1)
    again = pickle.loads(pickle.dumps(result))
    assert again == result
    with pytest.raises(TypeError):
        again.event_counts["miss"] = 0


def test_counts_are_consistent():
    result = simulate(20_000, 11)
    counts = result.event_counts
    # every round draws one first plane, plus one more per second plane
    assert sum(counts.values()) == result.trials + result.second_count
    assert set(counts) == {"hitA", "hitB", "miss"}
    assert 0 < result.wins < result.trials
    assert result.win_rate == result.wins / result.trials
    assert result.effective_rtp == result.win_rate * 2.0
    assert result.rare_frequency == result.rare_count / result.trials


def test_frequencies_track_tuning():
    result = simulate(50_000, 5)
    freq = result.event_frequency
    # first-plane shares 0.45 / 0.45 / 0.0526, second planes add ~0.5%
    assert freq["hitA"] == pytest.approx(0.476, abs=0.01)
    assert freq["hitB"] == pytest.approx(0.476, abs=0.01)
    assert result.rare_frequency == pytest.approx(0.185, abs=0.01)
    assert result.second_frequency == pytest.approx(0.0526 * 0.10, abs=0.003)


def test_rtp_converges_on_target():
    tuning = TowerTuning()
    result = simulate(200_000, FIXED_SEED, tuning)
    assert abs(result.effective_rtp - tuning.target_rtp) <= 0.01
    assert abs(result.effective_rtp - theoretical_rtp(tuning)) <= 0.01


def test_design_brief_table_lands_on_exact_model_not_additive_estimate():
    tuning = TowerTuning.design_brief()
    result = simulate(100_000, FIXED_SEED, tuning)
    assert result.effective_rtp == pytest.approx(theoretical_rtp(tuning), abs=0.015)
    assert result.effective_rtp > 1.0


def test_payout_multiple_follows_tuning():
    tuning = TowerTuning(payout_on_win=30.0)
    result = simulate(1_000, 1, tuning)
    assert result.payout_multiple == 3.0
    assert result.effective_rtp == pytest.approx(result.win_rate * 3.0)


def test_summary_and_dict():
    result = simulate(1_000, 1)
    assert "Rounds:      1,000" in result.summary()
    payload = result.to_dict()
    assert payload["mode"] == "towers"
    assert payload["seeds"] == ["00000001"]


# ============================================================
# Hazard mode
# ============================================================

def test_hazard_cashout_zero_always_returns_stake():
    result = simulate_hazard(1_000, 9, cashout_after=0)
    assert result.wins == 1_000
    assert result.effective_rtp == 1.0
    assert result.danger_steps == {}


def test_hazard_counts_are_consistent():
    result = simulate_hazard(20_000, 9, cashout_after=4)
    assert sum(result.run_type_counts.values()) == 20_000
    assert result.wins + sum(result.danger_steps.values()) == 20_000
    assert set(result.danger_steps) <= {0, 1, 2, 3}
    assert result.total_staked == 200_000.0
    # 10 × 1.4641 = 14.641 pays out as 14.64
    assert result.total_returned == pytest.approx(result.wins * 14.64)


def test_hazard_payout_is_rounded_to_cents():
    result = simulate_hazard(2_000, 3, cashout_after=6)
    assert result.wins > 0
    assert result.total_returned == pytest.approx(result.wins * 17.72)


def test_hazard_run_type_shares():
    result = simulate_hazard(50_000, 21, cashout_after=1)
    shares = {k: v / result.trials for k, v in result.run_type_counts.items()}
    assert shares["short"] == pytest.approx(0.30, abs=0.01)
    assert shares["medium"] == pytest.approx(0.50, abs=0.01)
    assert shares["long"] == pytest.approx(0.20, abs=0.01)


def test_hazard_rtp_near_streakless_model():
    tuning = HazardTuning()
    result = simulate_hazard(50_000, FIXED_SEED, cashout_after=3, tuning=tuning)
    assert hazard_rtp_without_streaks(tuning, 3) == pytest.approx(0.724, abs=0.001)
    assert result.effective_rtp == pytest.approx(hazard_rtp_without_streaks(tuning, 3), abs=0.03)


def test_hazard_deterministic():
    assert simulate_hazard(3_000, 4, 5) == simulate_hazard(3_000, 4, 5)


# ============================================================
# Merging independent runs
# ============================================================

def test_merge_sums_counts_and_rederives_rates():
    a = simulate(3_000, 101)
    b = simulate(1_000, 202)
    merged = merge_results([a, b])
    assert merged.trials == 4_000
    assert merged.wins == a.wins + b.wins
    assert merged.win_rate == (a.wins + b.wins) / 4_000
    assert merged.event_counts["miss"] == a.event_counts["miss"] + b.event_counts["miss"]
    assert merged.seeds == (101, 202)


def test_simulate_many_in_process_matches_merge():
    seeds = [7, 8, 9]
    expected = merge_results([simulate(2_000, s) for s in seeds])
    assert simulate_many(2_000, seeds, workers=1) == expected


def test_simulate_many_process_pool_matches_merge():
    seeds = [7, 8]
    expected = merge_results([simulate(1_000, s) for s in seeds])
    assert simulate_many(1_000, seeds, workers=2) == expected


def test_merge_hazard_results():
    a = simulate_hazard(1_000, 1, 2)
    b = simulate_hazard(1_000, 2, 2)
    merged = merge_results([a, b])
    assert merged.trials == 2_000
    assert merged.total_returned == pytest.approx(a.total_returned + b.total_returned)
    assert merged.effective_rtp == pytest.approx(
        (a.total_returned + b.total_returned) / (a.total_staked + b.total_staked)
    )


def test_merge_rejects_mixed_inputs():
    with pytest.raises(InvalidArgument):
        merge_results([])
    with pytest.raises(InvalidArgument):
        merge_results([simulate(10, 1), simulate_hazard(10, 1)])
    with pytest.raises(InvalidArgument):
        merge_results([simulate(10, 1), simulate(10, 1, TowerTuning(payout_on_win=30.0))])
    with pytest.raises(InvalidArgument):
        merge_results([simulate_hazard(10, 1, 2), simulate_hazard(10, 1, 3)])


# ============================================================
# Validation
# ============================================================

@pytest.mark.parametrize("trials", [0, -5, 2.5, True])
def test_bad_trial_counts(trials):
    with pytest.raises(InvalidArgument):
        simulate(trials, 1)
    with pytest.raises(InvalidArgument):
        simulate_hazard(trials, 1)


def test_bad_seed_and_cashout():
    with pytest.raises(InvalidArgument):
        simulate(10, -1)
    with pytest.raises(InvalidArgument):
        simulate_hazard(10, 1, cashout_after=-1)
