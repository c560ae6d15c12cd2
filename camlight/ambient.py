"""
Ambient light level from the Mac's built-in light sensor (IORegistry).
Desktop Macs have no sensor; callers get a neutral level instead of an error.
"""
from __future__ import annotations

import logging
import re
import subprocess

# Sensor sources, tried in order: modern ALS first, then older LMU controllers
SENSOR_QUERIES = (
    (["/usr/sbin/ioreg", "-r", "-k", "ALSSensor"], re.compile(r'"ALSSensor" = (\d+)')),
    (["/usr/sbin/ioreg", "-r", "-c", "AppleLMUController"], re.compile(r'"lux" = (\d+)')),
)
NEUTRAL_LEVEL = 50
# Lux at or above this maps to 100
LUX_SATURATION = 500.0

logger = logging.getLogger(__name__)


def scale_lux(lux: float) -> int:
    """Map a raw lux reading onto 0..100."""
    return max(0, min(100, int(lux / LUX_SATURATION * 100)))


def _read_lux() -> int | None:
    for cmd, pattern in SENSOR_QUERIES:
        try:
            out = subprocess.run(cmd, capture_output=True, text=True, timeout=5)
        except (FileNotFoundError, subprocess.TimeoutExpired):
            continue
        if out.returncode != 0 or not out.stdout:
            continue
        match = pattern.search(out.stdout)
        if match:
            return int(match.group(1))
    return None


def read_ambient_level() -> int:
    """
    Return the ambient light level on a 0..100 scale (0 = dark).
    Falls back to NEUTRAL_LEVEL when no sensor reading is available.
    """
    lux = _read_lux()
    if lux is None:
        logger.debug("Ambient light sensor not found, using mid-range level %d", NEUTRAL_LEVEL)
        return NEUTRAL_LEVEL
    level = scale_lux(lux)
    logger.debug("Ambient light: %d lux (scaled: %d/100)", lux, level)
    return level
