#!/usr/bin/env python3
"""
ROUND ENGINE — Calibration CLI

Usage:
    python -m tools.engine_cli towers --trials 200000 --seed 0x5EEDC0DE
    python -m tools.engine_cli hazard --cashout-after 4 --json
    python -m tools.engine_cli proof
    python -m tools.engine_cli proof --tuning my_table.json --calibrate
    python -m tools.engine_cli towers --dump-config
"""

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.table import Table

from config.settings import EngineConfig, configure_logging
from round_engine.math_model import (
    calibrate_rare_multiplier, hazard_rtp_without_streaks, rtp_proof, theoretical_rtp,
)
from round_engine.simulation import simulate, simulate_hazard
from round_engine.tuning import HazardTuning, TowerTuning

logger = logging.getLogger("round_engine.cli")


def _seed(value: str) -> int:
    try:
        return int(value, 0)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"seed must be decimal or 0x-hex, got {value!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Simulate and audit the round engines")
    parser.add_argument("mode", choices=["towers", "hazard", "proof"])
    parser.add_argument("--trials", type=int, default=EngineConfig.SIMULATION_TRIALS)
    parser.add_argument("--seed", type=_seed, default=EngineConfig.DEFAULT_SEED,
                        help="Simulation seed (decimal or 0x-prefixed hex)")
    parser.add_argument("--cashout-after", type=int, default=EngineConfig.HAZARD_CASHOUT_AFTER,
                        help="Hazard mode: safe steps before cashing out")
    parser.add_argument("--tuning", type=Path, default=None,
                        help="JSON tuning table to load instead of the defaults")
    parser.add_argument("--calibrate", action="store_true",
                        help="Proof mode: solve the rare multiplier for the target RTP")
    parser.add_argument("--dump-config", action="store_true")
    parser.add_argument("--json", action="store_true", help="Emit JSON instead of tables")
    parser.add_argument("--log-level", default=None)
    return parser


def _load_tuning(mode: str, path):
    model = HazardTuning if mode == "hazard" else TowerTuning
    if path is None:
        return model()
    return model.model_validate_json(path.read_text())


def _stats_table(title: str, rows) -> Table:
    table = Table(title=title)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for name, value in rows:
        table.add_row(name, value)
    return table


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    console = Console()
    tuning = _load_tuning(args.mode, args.tuning)

    if args.dump_config:
        print(tuning.model_dump_json(indent=2))
        return 0

    if args.mode == "proof":
        proof = rtp_proof(tuning)
        if args.calibrate:
            proof["calibrated_rare_multiplier"] = round(calibrate_rare_multiplier(tuning), 6)
        if args.json:
            print(json.dumps(proof, indent=2))
        else:
            rows = [(k, str(v)) for k, v in proof.items() if k not in ("tuning", "event_probabilities")]
            rows[:0] = [(f"P({k})", f"{v:.6f}") for k, v in proof["event_probabilities"].items()]
            console.print(_stats_table("RTP proof — towers", rows))
        return 0 if proof["probability_sum_check"] == "PASS" else 1

    logger.info("running %s simulation: trials=%d seed=%08X", args.mode, args.trials, args.seed)

    if args.mode == "towers":
        result = simulate(args.trials, args.seed, tuning)
        payload = result.to_dict()
        payload["theoretical_rtp"] = round(theoretical_rtp(tuning), 6)
        rows = [
            ("Rounds", f"{result.trials:,}"),
            ("Seed", f"{args.seed:08X}"),
            ("Win rate", f"{result.win_rate*100:.3f}%"),
            ("Effective RTP", f"{result.effective_rtp*100:.3f}%"),
            ("Theoretical RTP", f"{payload['theoretical_rtp']*100:.3f}%"),
        ]
        rows += [(f"{k} / round", f"{v*100:.3f}%") for k, v in result.event_frequency.items()]
        rows += [
            ("Second plane", f"{result.second_frequency*100:.3f}%"),
            ("Rare collapse", f"{result.rare_frequency*100:.3f}%"),
        ]
    else:
        result = simulate_hazard(args.trials, args.seed, args.cashout_after, tuning)
        payload = result.to_dict()
        payload["rtp_without_streaks"] = round(
            hazard_rtp_without_streaks(tuning, args.cashout_after), 6
        )
        rows = [
            ("Rounds", f"{result.trials:,}"),
            ("Seed", f"{args.seed:08X}"),
            ("Cash out after", str(result.cashout_after)),
            ("Win rate", f"{result.win_rate*100:.3f}%"),
            ("Effective RTP", f"{result.effective_rtp*100:.3f}%"),
            ("RTP without streaks", f"{payload['rtp_without_streaks']*100:.3f}%"),
        ]
        rows += [(f"{k} runs", f"{v:,}") for k, v in result.run_type_counts.items()]

    if args.json:
        print(json.dumps(payload, indent=2))
    else:
        console.print(_stats_table(f"Simulation — {args.mode}", rows))
    return 0


if __name__ == "__main__":
    sys.exit(main())
