"""
ROUND ENGINE — Tuning Tables

Every constant the RTP derivation depends on lives in one of two immutable
pydantic models, so the whole table can be printed, diffed, reloaded from
JSON and checked against the analytic model in ``round_engine.math_model``.

Effective first-event weights with the default TowerTuning:
    hitA = 0.4 × 1.125 = 0.45
    hitB = 0.4 × 1.125 = 0.45
    miss = 0.2 × 0.25  = 0.05     (total 0.95, normalised by the draw)
    rare = 0.05 × 3.7  = 0.185

    P(win) = (1 − P(planes hit selected)) × (1 − P(rare) / 2) ≈ 0.4754
    RTP    = P(win) × 2 ≈ 0.9507

Usage:
    from round_engine.tuning import TowerTuning, HazardTuning
    tuning = TowerTuning(rare_multiplier=3.5)
    print(tuning.model_dump_json(indent=2))
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from round_engine.models import OutcomeEvent, RunType


# ═══════════════════════════════════════════════════════════════
# Discrete mode
# ═══════════════════════════════════════════════════════════════

class TowerTuning(BaseModel):
    """Base design-brief probabilities plus the multipliers that move them to target RTP."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    # Base probabilities from the design brief
    base_hit_a: float = Field(0.4, ge=0.0)
    base_hit_b: float = Field(0.4, ge=0.0)
    base_miss: float = Field(0.2, ge=0.0)
    base_rare: float = Field(0.05, ge=0.0, le=1.0)
    base_second_on_miss: float = Field(0.10, ge=0.0, le=1.0)  # never tuned

    # Tuning multipliers
    hit_multiplier: float = Field(1.125, gt=0.0)
    miss_multiplier: float = Field(0.25, gt=0.0)
    rare_multiplier: float = Field(3.7, ge=0.0)

    # Economics
    stake: float = Field(10.0, gt=0.0)
    payout_on_win: float = Field(20.0, gt=0.0)
    target_rtp: float = Field(0.95, gt=0.0, le=1.5)

    @model_validator(mode="after")
    def _check_total_weight(self):
        if self.base_hit_a + self.base_hit_b + self.base_miss <= 0:
            raise ValueError("first-event base weights must not all be zero")
        return self

    @classmethod
    def design_brief(cls) -> "TowerTuning":
        """Table used by the pinned golden scenario (miss 0.5, rare 2.8)."""
        return cls(miss_multiplier=0.5, rare_multiplier=2.8)

    @property
    def payout_multiple(self) -> float:
        return self.payout_on_win / self.stake

    @property
    def effective_rare_probability(self) -> float:
        return min(1.0, self.base_rare * self.rare_multiplier)

    def weights(self) -> dict[OutcomeEvent, float]:
        return {
            OutcomeEvent.HIT_A: self.base_hit_a * self.hit_multiplier,
            OutcomeEvent.HIT_B: self.base_hit_b * self.hit_multiplier,
            OutcomeEvent.MISS: self.base_miss * self.miss_multiplier,
        }

    @property
    def total_weight(self) -> float:
        w = self.weights()
        return w[OutcomeEvent.HIT_A] + w[OutcomeEvent.HIT_B] + w[OutcomeEvent.MISS]


# ═══════════════════════════════════════════════════════════════
# Incremental hazard mode
# ═══════════════════════════════════════════════════════════════

class HazardTuning(BaseModel):
    """Per-run-type hazard curve, streak modulation and the safety clamp."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    base_probability: dict[RunType, float] = Field(default_factory=lambda: {
        RunType.SHORT: 0.25,
        RunType.MEDIUM: 0.14,
        RunType.LONG: 0.08,
    })
    growth_rate: dict[RunType, float] = Field(default_factory=lambda: {
        RunType.SHORT: 0.06,
        RunType.MEDIUM: 0.03,
        RunType.LONG: 0.015,
    })
    # r < 0.30 → short, r < 0.80 → medium, otherwise long
    run_type_bounds: tuple[float, float] = (0.30, 0.80)

    mercy_after_losses: int = Field(3, ge=1)
    mercy_factor: float = Field(0.80, gt=0.0, lt=1.0)
    correction_after_wins: int = Field(3, ge=1)
    correction_factor: float = Field(1.10, gt=1.0)

    p_min: float = Field(0.04, ge=0.0, le=1.0)
    p_max: float = Field(0.30, ge=0.0, le=1.0)

    # Cash-out ladder: multiplier = cashout_step ** safe_steps
    cashout_step: float = Field(1.1, gt=1.0)
    stake: float = Field(10.0, gt=0.0)

    @field_validator("base_probability", "growth_rate")
    @classmethod
    def _cover_every_run_type(cls, v):
        missing = [rt.value for rt in RunType if rt not in v]
        if missing:
            raise ValueError(f"missing run types: {missing}")
        if any(x < 0 for x in v.values()):
            raise ValueError("values must be non-negative")
        return v

    @field_validator("run_type_bounds")
    @classmethod
    def _bounds_partition_unit_interval(cls, v):
        lo, hi = v
        if not 0.0 < lo < hi < 1.0:
            raise ValueError(f"run_type_bounds must satisfy 0 < lo < hi < 1, got {v}")
        return v

    @model_validator(mode="after")
    def _check_clamp_band(self):
        if self.p_min > self.p_max:
            raise ValueError(f"p_min ({self.p_min}) exceeds p_max ({self.p_max})")
        return self

    def run_type_for(self, r: float) -> RunType:
        lo, hi = self.run_type_bounds
        if r < lo:
            return RunType.SHORT
        if r < hi:
            return RunType.MEDIUM
        return RunType.LONG

    def run_type_share(self) -> dict[RunType, float]:
        lo, hi = self.run_type_bounds
        return {RunType.SHORT: lo, RunType.MEDIUM: hi - lo, RunType.LONG: 1.0 - hi}

    def clamp(self, p: float) -> float:
        return min(self.p_max, max(self.p_min, p))

    def payout_multiplier(self, safe_steps: int) -> float:
        return round(self.cashout_step ** safe_steps, 4)

    def cashout_value(self, safe_steps: int) -> float:
        """Amount paid for cashing out after ``safe_steps``, in whole cents."""
        return round(self.stake * self.payout_multiplier(safe_steps), 2)
