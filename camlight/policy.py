"""
Brightness and colour temperature policy.

Temperature follows the local time of day (warmer mornings and evenings,
cooler working hours). Brightness is inversely proportional to ambient
light: a dark room gets more light, a bright room only a subtle fill.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from camlight.ambient import read_ambient_level
from camlight.config import Config
from camlight.light_client import LightCommand

# (start_hour, end_hour, band); half-open, anything else is "night"
TIME_BANDS = (
    (5, 9, "early_morning"),
    (9, 17, "midday"),
    (17, 21, "evening"),
)
NIGHT = "night"

logger = logging.getLogger(__name__)


def time_band(hour: int) -> str:
    for start, end, band in TIME_BANDS:
        if start <= hour < end:
            return band
    return NIGHT


def temperature_for_time(now: datetime, config: Config) -> int:
    """Colour temperature (mireds) for the given local time."""
    schedule = config.auto_temperature
    if not schedule.enabled:
        return config.light.temperature
    band = time_band(now.hour)
    temp = getattr(schedule, band)
    logger.debug("Time: %d:xx - Using %s temperature: %d mireds", now.hour, band, temp)
    return temp


def brightness_for_ambient(ambient_level: int, config: Config) -> int:
    """Brightness (0..100) for an ambient level (0..100), clamped to the configured range."""
    bounds = config.auto_brightness
    if not bounds.enabled:
        return config.light.brightness
    result = int(bounds.max - (ambient_level / 100.0) * (bounds.max - bounds.min))
    brightness = max(bounds.min, min(bounds.max, result))
    logger.debug("Calculated brightness: %d%% (ambient: %d/100)", brightness, ambient_level)
    return brightness


def command_for(
    on: bool,
    config: Config,
    now: datetime | None = None,
    brightness: int | None = None,
    read_ambient: Callable[[], int] = read_ambient_level,
) -> LightCommand:
    """
    Build the command for an on/off transition. The ambient sensor is only
    read when auto brightness is enabled and no brightness is given.
    """
    if now is None:
        now = datetime.now()
    if brightness is None:
        if config.auto_brightness.enabled:
            brightness = brightness_for_ambient(read_ambient(), config)
        else:
            brightness = config.light.brightness
    return LightCommand(
        on=on,
        brightness=brightness,
        temperature=temperature_for_time(now, config),
    )
