"""
ROUND ENGINE — Discrete Outcome Engine

Resolves one twin-tower round: an independent rare collapse, a weighted
first plane (hit A / hit B / miss) and, only after a miss, a possible
second plane. The caller renders whatever comes back.

Draw order is fixed (rare → rare side → first plane → second trigger →
second plane) so a seed reproduces the same rounds in any port.

Usage:
    from round_engine import DeterministicRng, OutcomeEngine
    engine = OutcomeEngine(DeterministicRng(seed))
    resolution = engine.resolve_round("A")
    if resolution.selected_side_wins: ...
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from round_engine.errors import InvalidArgument
from round_engine.models import OutcomeEvent, RoundResolution, Side
from round_engine.rng import DeterministicRng
from round_engine.tuning import TowerTuning

logger = logging.getLogger("round_engine.towers")


def coerce_side(value: Union[Side, str]) -> Side:
    """Accept a Side or its string value ("A"/"B")."""
    if isinstance(value, Side):
        return value
    if isinstance(value, str):
        try:
            return Side(value)
        except ValueError:
            pass
    raise InvalidArgument(f"selected side must be one of {[s.value for s in Side]}, got {value!r}")


class OutcomeEngine:
    """Discrete multi-event model bound to one RNG.

    Not safe for concurrent use: every resolution advances the shared RNG.
    """

    def __init__(self, rng: DeterministicRng, tuning: Optional[TowerTuning] = None):
        self.rng = rng
        self.tuning = tuning if tuning is not None else TowerTuning()
        # Weights are fixed per table; compute the cumulative cut points once.
        weights = self.tuning.weights()
        self._cut_hit_a = weights[OutcomeEvent.HIT_A]
        self._cut_hit_b = self._cut_hit_a + weights[OutcomeEvent.HIT_B]
        self._total_weight = self._cut_hit_b + weights[OutcomeEvent.MISS]

    def resolve_round(self, selected_side: Union[Side, str]) -> RoundResolution:
        side = coerce_side(selected_side)
        t = self.tuning

        rare_triggered = self.rng.chance(t.effective_rare_probability)
        rare_target = self._random_side() if rare_triggered else None

        first = self._roll_event()
        second_triggered = first is OutcomeEvent.MISS and self.rng.chance(t.base_second_on_miss)
        second = self._roll_event() if second_triggered else None

        resolution = RoundResolution(
            selected_side=side,
            first_event=first,
            second_event_triggered=second_triggered,
            second_event=second,
            rare_event_triggered=rare_triggered,
            rare_event_target=rare_target,
        )
        logger.debug(
            "round resolved side=%s first=%s second=%s rare=%s wins=%s",
            side.value, first.value, second.value if second else None,
            rare_target.value if rare_target else None, resolution.selected_side_wins,
        )
        return resolution

    def _roll_event(self) -> OutcomeEvent:
        r = self.rng.next() * self._total_weight
        if r < self._cut_hit_a:
            return OutcomeEvent.HIT_A
        if r < self._cut_hit_b:
            return OutcomeEvent.HIT_B
        return OutcomeEvent.MISS

    def _random_side(self) -> Side:
        return Side.A if self.rng.chance(0.5) else Side.B
