"""
Load and validate config.yaml with defaults.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

DEFAULT_BRIGHTNESS = 43
DEFAULT_TEMPERATURE = 290

# Time-of-day temperature table (mireds)
DEFAULT_TEMP_EARLY_MORNING = 200
DEFAULT_TEMP_MIDDAY = 280
DEFAULT_TEMP_EVENING = 220
DEFAULT_TEMP_NIGHT = 180

DEFAULT_BRIGHTNESS_MIN = 15
DEFAULT_BRIGHTNESS_MAX = 100

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1

# Elgato API limits
BRIGHTNESS_RANGE = (0, 100)
TEMPERATURE_RANGE = (143, 344)


class ConfigError(ValueError):
    """Configuration value out of range or of the wrong type."""


@dataclass(frozen=True)
class LightConfig:
    host: str = ""
    brightness: int = DEFAULT_BRIGHTNESS
    temperature: int = DEFAULT_TEMPERATURE


@dataclass(frozen=True)
class TemperatureSchedule:
    """Colour temperature per time-of-day band; `enabled` False means use LightConfig.temperature."""
    enabled: bool = True
    early_morning: int = DEFAULT_TEMP_EARLY_MORNING
    midday: int = DEFAULT_TEMP_MIDDAY
    evening: int = DEFAULT_TEMP_EVENING
    night: int = DEFAULT_TEMP_NIGHT


@dataclass(frozen=True)
class BrightnessRange:
    """Ambient-driven brightness bounds; `enabled` False means use LightConfig.brightness."""
    enabled: bool = True
    min: int = DEFAULT_BRIGHTNESS_MIN
    max: int = DEFAULT_BRIGHTNESS_MAX


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = DEFAULT_MAX_RETRIES
    delay: float = DEFAULT_RETRY_DELAY


@dataclass(frozen=True)
class Config:
    light: LightConfig
    auto_temperature: TemperatureSchedule
    auto_brightness: BrightnessRange
    retry: RetryConfig
    debug: bool = False

    @classmethod
    def load(cls, path: str | Path | None = None) -> Config:
        if path is None:
            path = _default_config_path()
            if not path.is_file():
                # No config file anywhere: run on built-in defaults
                return cls.from_dict({})
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        if not isinstance(data, dict):
            raise ConfigError(f"config must be a mapping, got {type(data).__name__}")

        def section(name: str) -> dict[str, Any]:
            value = data.get(name) or {}
            if not isinstance(value, dict):
                raise ConfigError(f"{name} must be a mapping, got {value!r}")
            return value

        light_data = section("light")
        temp_data = section("auto_temperature")
        bright_data = section("auto_brightness")
        retry_data = section("retry")
        logging_data = section("logging")

        def in_range(section: str, key: str, raw: Any, default: int, bounds: tuple[int, int]) -> int:
            value = default if raw is None else raw
            lo, hi = bounds
            if not isinstance(value, int) or isinstance(value, bool):
                raise ConfigError(f"{section}.{key} must be an integer, got {value!r}")
            if value < lo or value > hi:
                raise ConfigError(f"{section}.{key} must be between {lo} and {hi} (got: {value})")
            return value

        def flag(section: str, key: str, raw: Any, default: bool) -> bool:
            if raw is None:
                return default
            if not isinstance(raw, bool):
                raise ConfigError(f"{section}.{key} must be true or false, got {raw!r}")
            return raw

        host = light_data.get("host") or ""
        if not isinstance(host, str):
            raise ConfigError(f"light.host must be a string, got {host!r}")

        light = LightConfig(
            host=host.strip(),
            brightness=in_range("light", "brightness", light_data.get("brightness"), DEFAULT_BRIGHTNESS, BRIGHTNESS_RANGE),
            temperature=in_range("light", "temperature", light_data.get("temperature"), DEFAULT_TEMPERATURE, TEMPERATURE_RANGE),
        )

        schedule = TemperatureSchedule(
            enabled=flag("auto_temperature", "enabled", temp_data.get("enabled"), True),
            early_morning=in_range("auto_temperature", "early_morning", temp_data.get("early_morning"), DEFAULT_TEMP_EARLY_MORNING, TEMPERATURE_RANGE),
            midday=in_range("auto_temperature", "midday", temp_data.get("midday"), DEFAULT_TEMP_MIDDAY, TEMPERATURE_RANGE),
            evening=in_range("auto_temperature", "evening", temp_data.get("evening"), DEFAULT_TEMP_EVENING, TEMPERATURE_RANGE),
            night=in_range("auto_temperature", "night", temp_data.get("night"), DEFAULT_TEMP_NIGHT, TEMPERATURE_RANGE),
        )

        brightness = BrightnessRange(
            enabled=flag("auto_brightness", "enabled", bright_data.get("enabled"), True),
            min=in_range("auto_brightness", "min", bright_data.get("min"), DEFAULT_BRIGHTNESS_MIN, BRIGHTNESS_RANGE),
            max=in_range("auto_brightness", "max", bright_data.get("max"), DEFAULT_BRIGHTNESS_MAX, BRIGHTNESS_RANGE),
        )
        if brightness.min > brightness.max:
            raise ConfigError(
                f"auto_brightness.min ({brightness.min}) must not exceed auto_brightness.max ({brightness.max})"
            )

        max_retries = retry_data.get("max_retries", DEFAULT_MAX_RETRIES)
        if not isinstance(max_retries, int) or isinstance(max_retries, bool) or max_retries < 1:
            raise ConfigError(f"retry.max_retries must be a positive integer, got {max_retries!r}")
        delay = retry_data.get("delay", DEFAULT_RETRY_DELAY)
        if not isinstance(delay, (int, float)) or isinstance(delay, bool) or delay < 0:
            raise ConfigError(f"retry.delay must be a non-negative number, got {delay!r}")

        return cls(
            light=light,
            auto_temperature=schedule,
            auto_brightness=brightness,
            retry=RetryConfig(max_retries=max_retries, delay=delay),
            debug=flag("logging", "debug", logging_data.get("debug"), False),
        )


def _default_config_path() -> Path:
    for candidate in (Path.cwd(), Path(__file__).resolve().parent.parent):
        p = candidate / "config.yaml"
        if p.is_file():
            return p
    return Path.cwd() / "config.yaml"
