"""
ROUND ENGINE — Simulation Harness

Drives either engine for N rounds through its public API only and
aggregates win rate, effective RTP and event frequencies. Doubles as the
empirical regression check for ``round_engine.math_model``.

Usage:
    from round_engine.simulation import simulate, simulate_hazard
    result = simulate(200_000, seed=0x5EEDC0DE)
    print(result.summary())

    hazard = simulate_hazard(100_000, seed=7, cashout_after=3)
    print(hazard.to_dict())

Independent seeds can run in parallel; combine them with ``merge_results``,
which sums counts and re-derives rates rather than averaging them.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Sequence

from round_engine.errors import InvalidArgument
from round_engine.hazard import HazardEngine
from round_engine.models import EVENT_ORDER, RunType, Side
from round_engine.rng import DeterministicRng
from round_engine.towers import OutcomeEngine
from round_engine.tuning import HazardTuning, TowerTuning

logger = logging.getLogger("round_engine.simulation")

DEFAULT_SEED = 0x5EEDC0DE


# ═══════════════════════════════════════════════════════════════
# Result Records
# ═══════════════════════════════════════════════════════════════

class _FrozenCounts:
    """Count mappings are exposed read-only so derived rates cannot drift."""

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, dict):
                object.__setattr__(self, f.name, MappingProxyType(dict(value)))

    def __reduce__(self):
        # mappingproxy does not pickle; process pools ship plain dicts
        values = [getattr(self, f.name) for f in fields(self)]
        return type(self), tuple(dict(v) if isinstance(v, MappingProxyType) else v for v in values)


@dataclass(frozen=True)
class SimulationResults(_FrozenCounts):
    """Aggregate counts over a discrete-mode run. Rates are derived."""
    trials: int
    wins: int
    event_counts: Mapping = field(default_factory=dict)   # event value → every draw, second planes included
    rare_count: int = 0
    second_count: int = 0
    payout_multiple: float = 2.0
    seeds: tuple = ()

    @property
    def win_rate(self) -> float:
        return self.wins / self.trials

    @property
    def effective_rtp(self) -> float:
        return self.win_rate * self.payout_multiple

    @property
    def event_frequency(self) -> dict:
        return {k: v / self.trials for k, v in self.event_counts.items()}

    @property
    def rare_frequency(self) -> float:
        return self.rare_count / self.trials

    @property
    def second_frequency(self) -> float:
        return self.second_count / self.trials

    def summary(self) -> str:
        lines = [
            "═══ Simulation: towers ═══",
            f"  Rounds:      {self.trials:,}",
            f"  Win Rate:    {self.win_rate*100:.3f}%",
            f"  RTP:         {self.effective_rtp*100:.3f}%",
        ]
        for name, freq in self.event_frequency.items():
            lines.append(f"  {name:<12} {freq*100:.3f}%")
        lines.append(f"  Second:      {self.second_frequency*100:.3f}%")
        lines.append(f"  Rare:        {self.rare_frequency*100:.3f}%")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "mode": "towers",
            "trials": self.trials,
            "wins": self.wins,
            "win_rate": round(self.win_rate, 6),
            "effective_rtp": round(self.effective_rtp, 6),
            "payout_multiple": self.payout_multiple,
            "event_counts": dict(self.event_counts),
            "event_frequency": {k: round(v, 6) for k, v in self.event_frequency.items()},
            "second_count": self.second_count,
            "second_frequency": round(self.second_frequency, 6),
            "rare_count": self.rare_count,
            "rare_frequency": round(self.rare_frequency, 6),
            "seeds": [f"{s:08X}" for s in self.seeds],
        }


@dataclass(frozen=True)
class HazardSimulationResults(_FrozenCounts):
    """Aggregate counts over a hazard-mode run with a fixed cash-out policy."""
    trials: int
    wins: int
    cashout_after: int
    total_staked: float
    total_returned: float
    run_type_counts: Mapping = field(default_factory=dict)
    danger_steps: Mapping = field(default_factory=dict)   # step index → rounds lost there
    seeds: tuple = ()

    @property
    def win_rate(self) -> float:
        return self.wins / self.trials

    @property
    def effective_rtp(self) -> float:
        return self.total_returned / self.total_staked

    def to_dict(self) -> dict:
        return {
            "mode": "hazard",
            "trials": self.trials,
            "wins": self.wins,
            "cashout_after": self.cashout_after,
            "win_rate": round(self.win_rate, 6),
            "effective_rtp": round(self.effective_rtp, 6),
            "total_staked": round(self.total_staked, 2),
            "total_returned": round(self.total_returned, 2),
            "run_type_counts": dict(self.run_type_counts),
            "danger_steps": {str(k): v for k, v in sorted(self.danger_steps.items())},
            "seeds": [f"{s:08X}" for s in self.seeds],
        }


# ═══════════════════════════════════════════════════════════════
# Runners
# ═══════════════════════════════════════════════════════════════

def _check_trials(trials: int) -> None:
    if isinstance(trials, bool) or not isinstance(trials, int) or trials <= 0:
        raise InvalidArgument(f"trials must be a positive int, got {trials!r}")


def simulate(trials: int, seed: int = DEFAULT_SEED,
             tuning: Optional[TowerTuning] = None) -> SimulationResults:
    """Run ``trials`` discrete rounds; the selected side is a fair coin per round."""
    _check_trials(trials)
    started = time.time()
    rng = DeterministicRng(seed)
    engine = OutcomeEngine(rng, tuning)

    wins = 0
    rare = 0
    second = 0
    counts = {e: 0 for e in EVENT_ORDER}

    for _ in range(trials):
        picked = Side.A if rng.chance(0.5) else Side.B
        resolution = engine.resolve_round(picked)
        if resolution.selected_side_wins:
            wins += 1
        if resolution.rare_event_triggered:
            rare += 1
        if resolution.second_event_triggered:
            second += 1
        for event in resolution.events:
            counts[event] += 1

    result = SimulationResults(
        trials=trials,
        wins=wins,
        event_counts={e.value: n for e, n in counts.items()},
        rare_count=rare,
        second_count=second,
        payout_multiple=engine.tuning.payout_multiple,
        seeds=(seed,),
    )
    logger.info(
        "towers simulation seed=%s trials=%d rtp=%.4f (%.2fs)",
        rng.seed_hex, trials, result.effective_rtp, time.time() - started,
    )
    return result


def simulate_hazard(trials: int, seed: int = DEFAULT_SEED, cashout_after: int = 3,
                    tuning: Optional[HazardTuning] = None) -> HazardSimulationResults:
    """Run ``trials`` hazard rounds, cashing out after ``cashout_after`` safe steps."""
    _check_trials(trials)
    if isinstance(cashout_after, bool) or not isinstance(cashout_after, int) or cashout_after < 0:
        raise InvalidArgument(f"cashout_after must be a non-negative int, got {cashout_after!r}")
    started = time.time()
    engine = HazardEngine(DeterministicRng(seed), tuning)
    t = engine.tuning
    win_payout = t.cashout_value(cashout_after)

    wins = 0
    returned = 0.0
    run_types = {rt: 0 for rt in RunType}
    danger_steps: dict[int, int] = {}

    for _ in range(trials):
        run_types[engine.start_round()] += 1
        lost_at = None
        for step in range(cashout_after):
            if engine.is_danger(step):
                lost_at = step
                break
        if lost_at is None:
            wins += 1
            returned += win_payout
            engine.on_round_won()
        else:
            danger_steps[lost_at] = danger_steps.get(lost_at, 0) + 1
            engine.on_round_lost()

    result = HazardSimulationResults(
        trials=trials,
        wins=wins,
        cashout_after=cashout_after,
        total_staked=t.stake * trials,
        total_returned=returned,
        run_type_counts={rt.value: n for rt, n in run_types.items()},
        danger_steps=danger_steps,
        seeds=(seed,),
    )
    logger.info(
        "hazard simulation seed=%08X trials=%d cashout_after=%d rtp=%.4f (%.2fs)",
        seed, trials, cashout_after, result.effective_rtp, time.time() - started,
    )
    return result


# ═══════════════════════════════════════════════════════════════
# Combining independent runs
# ═══════════════════════════════════════════════════════════════

def _sum_dicts(dicts: Iterable[Mapping]) -> dict:
    total: dict = {}
    for d in dicts:
        for k, v in d.items():
            total[k] = total.get(k, 0) + v
    return total


def merge_results(results: Sequence):
    """Combine runs from independent seeds by summing counts."""
    if not results:
        raise InvalidArgument("merge_results() needs at least one result")
    first = results[0]
    if any(type(r) is not type(first) for r in results):
        raise InvalidArgument("cannot merge towers and hazard results together")
    seeds = tuple(s for r in results for s in r.seeds)

    if isinstance(first, SimulationResults):
        if any(r.payout_multiple != first.payout_multiple for r in results):
            raise InvalidArgument("cannot merge runs with different payout multiples")
        return SimulationResults(
            trials=sum(r.trials for r in results),
            wins=sum(r.wins for r in results),
            event_counts=_sum_dicts(r.event_counts for r in results),
            rare_count=sum(r.rare_count for r in results),
            second_count=sum(r.second_count for r in results),
            payout_multiple=first.payout_multiple,
            seeds=seeds,
        )

    if any(r.cashout_after != first.cashout_after for r in results):
        raise InvalidArgument("cannot merge hazard runs with different cash-out policies")
    return HazardSimulationResults(
        trials=sum(r.trials for r in results),
        wins=sum(r.wins for r in results),
        cashout_after=first.cashout_after,
        total_staked=sum(r.total_staked for r in results),
        total_returned=sum(r.total_returned for r in results),
        run_type_counts=_sum_dicts(r.run_type_counts for r in results),
        danger_steps=_sum_dicts(r.danger_steps for r in results),
        seeds=seeds,
    )


def simulate_many(trials: int, seeds: Sequence[int], tuning: Optional[TowerTuning] = None,
                  workers: Optional[int] = None) -> SimulationResults:
    """Discrete simulation across independent seeds, one engine per seed.

    ``workers=1`` runs in-process; otherwise seeds fan out to a process pool.
    """
    if not seeds:
        raise InvalidArgument("simulate_many() needs at least one seed")
    if workers == 1:
        return merge_results([simulate(trials, s, tuning) for s in seeds])

    ordered = [None] * len(seeds)
    with ProcessPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(simulate, trials, s, tuning): i for i, s in enumerate(seeds)}
        for future in as_completed(futures):
            ordered[futures[future]] = future.result()
    return merge_results(ordered)
