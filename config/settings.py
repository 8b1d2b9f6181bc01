"""
Round Engine - Process Settings

Environment-driven defaults for the operator CLI and offline calibration.
Engines themselves never read the environment; they take a seed and a
tuning table from their caller.
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: str) -> int:
    # Accepts decimal or 0x-prefixed hex, like the CLI --seed flag
    return int(os.getenv(name, default), 0)


class EngineConfig:
    DEFAULT_SEED = _int_env("ROUND_ENGINE_SEED", "0x5EEDC0DE")
    SIMULATION_TRIALS = _int_env("ROUND_ENGINE_TRIALS", "200000")
    HAZARD_CASHOUT_AFTER = _int_env("ROUND_ENGINE_CASHOUT_AFTER", "3")
    LOG_LEVEL = os.getenv("ROUND_ENGINE_LOG_LEVEL", "WARNING").upper()


def configure_logging(level: str = None) -> logging.Logger:
    """Attach a single stream handler to the round_engine logger tree."""
    logger = logging.getLogger("round_engine")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] %(levelname)s %(message)s", datefmt="%H:%M:%S")
        )
        logger.addHandler(handler)
    logger.setLevel((level or EngineConfig.LOG_LEVEL).upper())
    return logger
