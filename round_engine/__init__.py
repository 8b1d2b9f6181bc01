"""
ROUND ENGINE — Seeded round-outcome engines

Deterministic engines that decide what happens in each play of a wager game
while holding long-run return-to-player at a configured target.

Usage:
    from round_engine import DeterministicRng, get_engine
    engine = get_engine("towers", DeterministicRng(seed))
    resolution = engine.resolve_round("A")
"""

from round_engine.errors import ContractViolation, EngineError, InvalidArgument
from round_engine.hazard import HazardEngine
from round_engine.models import HazardState, OutcomeEvent, RoundResolution, RunType, Side
from round_engine.rng import DeterministicRng
from round_engine.simulation import (
    HazardSimulationResults, SimulationResults, merge_results, simulate, simulate_hazard,
    simulate_many,
)
from round_engine.towers import OutcomeEngine
from round_engine.tuning import HazardTuning, TowerTuning

ENGINES = {
    "towers": OutcomeEngine,
    "hazard": HazardEngine,
}

ENGINE_TYPES = list(ENGINES.keys())


def get_engine(kind: str, rng: DeterministicRng, tuning=None):
    """Build the engine for ``kind`` bound to ``rng``."""
    cls = ENGINES.get(kind.lower())
    if cls is None:
        raise InvalidArgument(f"Unknown engine type: {kind}. Available: {ENGINE_TYPES}")
    return cls(rng, tuning)


__all__ = [
    "ContractViolation",
    "DeterministicRng",
    "ENGINES",
    "ENGINE_TYPES",
    "EngineError",
    "HazardEngine",
    "HazardSimulationResults",
    "HazardState",
    "HazardTuning",
    "InvalidArgument",
    "OutcomeEngine",
    "OutcomeEvent",
    "RoundResolution",
    "RunType",
    "Side",
    "SimulationResults",
    "TowerTuning",
    "get_engine",
    "merge_results",
    "simulate",
    "simulate_hazard",
    "simulate_many",
]
