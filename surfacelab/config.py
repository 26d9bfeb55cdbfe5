"""
Configuration & Constants
=========================
Central registry for the numerical tolerances and defaults used by the
kernel and the front end.

Exports:
    WEIGHT_EPSILON (float): Weight sums at or below this are degenerate.
    NORMAL_EPSILON (float): Squared cross-product length treated as zero.
    KNOT_EPSILON (float): Knot differences treated as zero in refinement.
    G0_TOLERANCE (float): World-unit distance for coincident boundaries.
    LOG_LEVEL (int): Level passed to setup_logging() by the front end.
"""
import logging
import os
from typing import Tuple

# --- Numerics ---

WEIGHT_EPSILON: float = 1e-10
NORMAL_EPSILON: float = 1e-10
KNOT_EPSILON: float = 1e-10
G0_TOLERANCE: float = 1e-4

UP_VECTOR: Tuple[float, float, float] = (0.0, 1.0, 0.0)

# --- Defaults ---

DEFAULT_DEGREE: int = 3
DEFAULT_SAMPLES: int = 24
DEFAULT_SURFACE_COLOR: Tuple[float, float, float, float] = (0.4, 0.6, 0.9, 0.75)
DEFAULT_GROUP_NAME: str = "Polysurface"


def _level_from_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else default


LOG_LEVEL: int = _level_from_env("SURFACELAB_LOG_LEVEL", logging.INFO)
