"""
ROUND ENGINE — Incremental Hazard Engine

Step-by-step danger model: each round draws a run type, then every step the
caller asks for a danger verdict. The hazard grows with the step index and is
nudged by the session's win/loss streak, always re-clamped to the safety band.

Lifecycle per round (caller-enforced, one round in flight per engine):
    engine.start_round()
    engine.is_danger(0), engine.is_danger(1), ...   # until danger or cash-out
    engine.on_round_lost()  |  engine.on_round_won()   # exactly one
"""

from __future__ import annotations

import logging
from typing import Optional

from round_engine.errors import ContractViolation, InvalidArgument
from round_engine.models import HazardState, RunType
from round_engine.rng import DeterministicRng
from round_engine.tuning import HazardTuning

logger = logging.getLogger("round_engine.hazard")


class HazardEngine:
    """Hazard model bound to one RNG; streak counters are session-scoped."""

    def __init__(self, rng: DeterministicRng, tuning: Optional[HazardTuning] = None):
        self.rng = rng
        self.tuning = tuning if tuning is not None else HazardTuning()
        self._run_type = RunType.MEDIUM
        self._consecutive_losses = 0
        self._consecutive_wins = 0
        self._round_number = 0
        self._round_active = False

    # ── Read-only state ───────────────────────────────────────

    @property
    def run_type(self) -> RunType:
        return self._run_type

    @property
    def consecutive_losses(self) -> int:
        return self._consecutive_losses

    @property
    def consecutive_wins(self) -> int:
        return self._consecutive_wins

    @property
    def round_number(self) -> int:
        return self._round_number

    @property
    def round_active(self) -> bool:
        return self._round_active

    @property
    def state(self) -> HazardState:
        return HazardState(
            run_type=self._run_type,
            consecutive_losses=self._consecutive_losses,
            consecutive_wins=self._consecutive_wins,
            round_number=self._round_number,
            round_active=self._round_active,
        )

    # ── Round lifecycle ───────────────────────────────────────

    def start_round(self) -> RunType:
        """Roll this round's run type. Streak counters carry over."""
        if self._round_active:
            self._violation(f"round {self._round_number} started again before it was settled")
        self._round_number += 1
        self._run_type = self.tuning.run_type_for(self.rng.next())
        self._round_active = True
        logger.debug(
            "round %d start run_type=%s losses=%d wins=%d",
            self._round_number, self._run_type.value,
            self._consecutive_losses, self._consecutive_wins,
        )
        return self._run_type

    def on_round_lost(self) -> None:
        self._settle("lost")
        self._consecutive_losses += 1
        self._consecutive_wins = 0

    def on_round_won(self) -> None:
        self._settle("won")
        self._consecutive_wins += 1
        self._consecutive_losses = 0

    # ── Per-step hazard ───────────────────────────────────────

    def hazard_probability(self, step_index: int) -> float:
        """Danger probability for zero-based ``step_index`` of the current round."""
        self._check_step(step_index)
        t = self.tuning
        p = t.base_probability[self._run_type] + t.growth_rate[self._run_type] * step_index

        # Multiply then clamp: when the raw value is already above p_max the
        # mercy factor can be invisible.
        if self._consecutive_losses >= t.mercy_after_losses:
            p *= t.mercy_factor
        elif self._consecutive_wins >= t.correction_after_wins:
            p *= t.correction_factor

        return t.clamp(p)

    def is_danger(self, step_index: int) -> bool:
        return self.rng.chance(self.hazard_probability(step_index))

    # ── Internals ─────────────────────────────────────────────

    def _check_step(self, step_index: int) -> None:
        if isinstance(step_index, bool) or not isinstance(step_index, int):
            raise InvalidArgument(f"step_index must be an int, got {type(step_index).__name__}")
        if step_index < 0:
            raise InvalidArgument(f"step_index must be >= 0, got {step_index}")
        if not self._round_active:
            self._violation(f"hazard queried outside a round (last round {self._round_number})")

    def _settle(self, verdict: str) -> None:
        if not self._round_active:
            self._violation(f"round marked {verdict} with no active round")
        self._round_active = False
        logger.debug("round %d %s run_type=%s", self._round_number, verdict, self._run_type.value)

    def _violation(self, message: str) -> None:
        logger.error("contract violation: %s", message)
        raise ContractViolation(message)
