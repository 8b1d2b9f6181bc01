"""Value types shared by the engines and the simulation harness."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Side(str, Enum):
    A = "A"
    B = "B"

    @property
    def other(self) -> "Side":
        return Side.B if self is Side.A else Side.A


class OutcomeEvent(str, Enum):
    HIT_A = "hitA"
    HIT_B = "hitB"
    MISS = "miss"

    @property
    def target(self) -> Optional[Side]:
        """Side this event destroys, or None for a miss."""
        if self is OutcomeEvent.HIT_A:
            return Side.A
        if self is OutcomeEvent.HIT_B:
            return Side.B
        return None


# Fixed draw order; the weighted pick walks cumulative weights in this order.
EVENT_ORDER = (OutcomeEvent.HIT_A, OutcomeEvent.HIT_B, OutcomeEvent.MISS)


class RunType(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


@dataclass(frozen=True)
class RoundResolution:
    """Complete record of one discrete round.

    Only the raw draws are stored; ``destroyed``, ``survives`` and
    ``selected_side_wins`` are recomputed from them on every access.
    """
    selected_side: Side
    first_event: OutcomeEvent
    second_event_triggered: bool = False
    second_event: Optional[OutcomeEvent] = None
    rare_event_triggered: bool = False
    rare_event_target: Optional[Side] = None

    def __post_init__(self):
        if self.second_event_triggered != (self.second_event is not None):
            raise ValueError("second_event must be present exactly when triggered")
        if self.rare_event_triggered != (self.rare_event_target is not None):
            raise ValueError("rare_event_target must be present exactly when triggered")

    @property
    def events(self) -> tuple[OutcomeEvent, ...]:
        if self.second_event is None:
            return (self.first_event,)
        return (self.first_event, self.second_event)

    @property
    def destroyed(self) -> dict[Side, bool]:
        hit = {event.target for event in self.events}
        if self.rare_event_target is not None:
            hit.add(self.rare_event_target)
        return {side: side in hit for side in Side}

    @property
    def survives(self) -> dict[Side, bool]:
        return {side: not gone for side, gone in self.destroyed.items()}

    @property
    def selected_side_wins(self) -> bool:
        return not self.destroyed[self.selected_side]

    def to_dict(self) -> dict:
        return {
            "selected_side": self.selected_side.value,
            "first_event": self.first_event.value,
            "second_event_triggered": self.second_event_triggered,
            "second_event": self.second_event.value if self.second_event else None,
            "rare_event_triggered": self.rare_event_triggered,
            "rare_event_target": self.rare_event_target.value if self.rare_event_target else None,
            "destroyed": {side.value: gone for side, gone in self.destroyed.items()},
            "survives": {side.value: ok for side, ok in self.survives.items()},
            "selected_side_wins": self.selected_side_wins,
        }


@dataclass(frozen=True)
class HazardState:
    """Snapshot of a hazard engine's session counters."""
    run_type: RunType
    consecutive_losses: int
    consecutive_wins: int
    round_number: int
    round_active: bool

    def to_dict(self) -> dict:
        return {
            "run_type": self.run_type.value,
            "consecutive_losses": self.consecutive_losses,
            "consecutive_wins": self.consecutive_wins,
            "round_number": self.round_number,
            "round_active": self.round_active,
        }
