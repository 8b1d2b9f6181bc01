"""
ROUND ENGINE — Analytic Model

Closed-form probabilities for both engines, derived straight from the tuning
tables. The simulation harness is the empirical check on these numbers.

Discrete mode, for a selected side S:
    P(planes hit S) = P(hit S) + P(miss) × P(second) × P(hit S)
    P(rare hits S)  = P(rare) / 2
    P(win)          = (1 − P(planes hit S)) × (1 − P(rare hits S))
    RTP             = P(win) × payout / stake

The rare draw is independent of the planes, so the two loss paths overlap;
summing them instead of multiplying the survivals overstates P(loss) by
P(planes hit S) × P(rare hits S). ``rtp_proof`` reports both figures.
"""

from __future__ import annotations

import math
from fractions import Fraction
from typing import Optional

from round_engine.errors import InvalidArgument
from round_engine.models import EVENT_ORDER, OutcomeEvent, RunType, Side
from round_engine.tuning import HazardTuning, TowerTuning


# ═══════════════════════════════════════════════════════════════
# Discrete mode
# ═══════════════════════════════════════════════════════════════

def event_probabilities(tuning: TowerTuning, exact: bool = False) -> dict:
    """Normalised probability of each first-plane event.

    With ``exact=True`` the values are Fractions of the float weights and sum
    to exactly 1.
    """
    weights = tuning.weights()
    if exact:
        fw = {e: Fraction(weights[e]) for e in EVENT_ORDER}
        total = sum(fw.values())
        return {e: fw[e] / total for e in EVENT_ORDER}
    total = tuning.total_weight
    return {e: weights[e] / total for e in EVENT_ORDER}


def planes_hit_probability(tuning: TowerTuning, side: Side) -> float:
    probs = event_probabilities(tuning)
    p_hit = probs[OutcomeEvent.HIT_A if side is Side.A else OutcomeEvent.HIT_B]
    return p_hit + probs[OutcomeEvent.MISS] * tuning.base_second_on_miss * p_hit


def win_probability(tuning: TowerTuning, side: Side = Side.A) -> float:
    rare_on_side = tuning.effective_rare_probability / 2
    return (1.0 - planes_hit_probability(tuning, side)) * (1.0 - rare_on_side)


def theoretical_rtp(tuning: TowerTuning) -> float:
    """RTP for a player choosing either side with equal probability."""
    p_win = (win_probability(tuning, Side.A) + win_probability(tuning, Side.B)) / 2
    return p_win * tuning.payout_multiple


def calibrate_rare_multiplier(tuning: TowerTuning, target_rtp: Optional[float] = None) -> float:
    """Rare multiplier that puts ``theoretical_rtp`` exactly on target."""
    target = tuning.target_rtp if target_rtp is None else target_rtp
    if tuning.base_rare <= 0:
        raise InvalidArgument("cannot calibrate with base_rare = 0")
    survive = (
        (1.0 - planes_hit_probability(tuning, Side.A))
        + (1.0 - planes_hit_probability(tuning, Side.B))
    ) / 2
    wanted_win = target / tuning.payout_multiple
    rare = 2.0 * (1.0 - wanted_win / survive)
    if not 0.0 <= rare <= 1.0:
        raise InvalidArgument(
            f"target RTP {target} unreachable by the rare event alone "
            f"(needs P(rare)={rare:.4f})"
        )
    return rare / tuning.base_rare


def rtp_proof(tuning: TowerTuning) -> dict:
    probs = event_probabilities(tuning)
    exact = event_probabilities(tuning, exact=True)
    planes = planes_hit_probability(tuning, Side.A)
    rare_side = tuning.effective_rare_probability / 2
    loss = 1.0 - win_probability(tuning, Side.A)
    additive_loss = planes + rare_side
    rtp = theoretical_rtp(tuning)
    prob_sum = sum(exact.values())
    return {
        "tuning": tuning.model_dump(mode="json"),
        "event_probabilities": {e.value: round(p, 10) for e, p in probs.items()},
        "probability_sum": float(prob_sum),
        "probability_sum_check": "PASS" if prob_sum == 1 else "FAIL",
        "effective_rare_probability": round(tuning.effective_rare_probability, 10),
        "p_planes_hit_selected": round(planes, 10),
        "p_rare_hits_selected": round(rare_side, 10),
        "p_loss": round(loss, 10),
        "p_loss_additive": round(additive_loss, 10),
        "overlap": round(additive_loss - loss, 10),
        "payout_multiple": tuning.payout_multiple,
        "theoretical_rtp": round(rtp, 8),
        "target_rtp": tuning.target_rtp,
        "rtp_check": "PASS" if abs(rtp - tuning.target_rtp) <= 0.01 else "FAIL",
    }


# ═══════════════════════════════════════════════════════════════
# Hazard mode (streak modulation ignored)
# ═══════════════════════════════════════════════════════════════

def base_hazard(tuning: HazardTuning, run_type: RunType, step_index: int) -> float:
    return tuning.clamp(
        tuning.base_probability[run_type] + tuning.growth_rate[run_type] * step_index
    )


def hazard_survival_probability(tuning: HazardTuning, run_type: RunType, steps: int) -> float:
    """P(no danger over the first ``steps`` steps) for one run type."""
    if steps < 0:
        raise InvalidArgument(f"steps must be >= 0, got {steps}")
    return math.prod(1.0 - base_hazard(tuning, run_type, i) for i in range(steps))


def hazard_rtp_without_streaks(tuning: HazardTuning, cashout_after: int) -> float:
    """RTP of always cashing out after ``cashout_after`` safe steps, no streak effects."""
    shares = tuning.run_type_share()
    survive = sum(
        share * hazard_survival_probability(tuning, rt, cashout_after)
        for rt, share in shares.items()
    )
    return survive * tuning.cashout_value(cashout_after) / tuning.stake
