"""
Camera detection via macOS log stream (ControlCenter frame publisher events).

  Camera OFF: "Frame publisher cameras changed to [:]"
  Camera ON:  "Frame publisher cameras changed to [com.google.Chrome: [\"UUID\"]]"

Works for built-in and external cameras; the log stream is idle (no polling)
while nothing changes.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Callable

from camlight.config import Config
from camlight.discovery import HostNotFoundError
from camlight.light_client import ElgatoLight, LightUnreachableError
from camlight.policy import command_for

LOG_PREDICATE = (
    'subsystem == "com.apple.controlcenter" and '
    'eventMessage contains "Frame publisher cameras"'
)
CAMERAS_CHANGED = "Frame publisher cameras changed to"
CAMERAS_EMPTY = CAMERAS_CHANGED + " [:"
# log stream prints these before the first event
HEADER_PREFIXES = ("Filtering", "Timestamp", "---")

logger = logging.getLogger(__name__)


class CameraEvent(Enum):
    IRRELEVANT = "irrelevant"
    CAMERA_ON = "camera_on"
    CAMERA_OFF = "camera_off"


class MonitorState(Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    TERMINATED = "terminated"


class StreamTerminatedError(Exception):
    """The log stream ended; the supervisor is expected to restart us."""


def classify_line(line: str) -> CameraEvent:
    if not line or line.startswith(HEADER_PREFIXES):
        return CameraEvent.IRRELEVANT
    if CAMERAS_EMPTY in line:
        return CameraEvent.CAMERA_OFF
    if CAMERAS_CHANGED in line:
        return CameraEvent.CAMERA_ON
    return CameraEvent.IRRELEVANT


async def stream_log_lines() -> AsyncIterator[str]:
    """
    Run `log stream` with the frame-publisher predicate and yield each line.
    Returns when the subprocess closes its stdout.
    """
    # Full path: a shell function or alias named "log" must not shadow it
    cmd = [
        "/usr/bin/log", "stream",
        "--predicate", LOG_PREDICATE,
    ]
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
    )
    try:
        assert proc.stdout is not None
        while True:
            line = await proc.stdout.readline()
            if not line:
                break
            yield line.decode("utf-8", errors="replace").rstrip("\r\n")
    finally:
        try:
            proc.terminate()
            await asyncio.wait_for(proc.wait(), timeout=2.0)
        except ProcessLookupError:
            pass
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()


class CameraMonitor:
    """
    Maps camera transitions to light commands. Lines are handled one at a
    time, in order, each awaiting its light command (retries included) before
    the next line is read. There is no debounce: every qualifying line sends
    a command, even if the camera state did not change.
    """

    def __init__(
        self,
        config: Config,
        light: ElgatoLight,
        lines: Callable[[], AsyncIterator[str]] = stream_log_lines,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._config = config
        self._light = light
        self._lines = lines
        self._clock = clock
        self._state = MonitorState.IDLE

    @property
    def state(self) -> MonitorState:
        return self._state

    def log_features(self) -> None:
        schedule = self._config.auto_temperature
        if schedule.enabled:
            logger.info("Auto temperature adjustment ENABLED")
            logger.info("  Early morning (5-8am): %d mireds", schedule.early_morning)
            logger.info("  Midday (9am-4pm): %d mireds", schedule.midday)
            logger.info("  Evening (5-8pm): %d mireds", schedule.evening)
            logger.info("  Night (9pm-4am): %d mireds", schedule.night)
        else:
            logger.info("Fixed temperature: %d mireds", self._config.light.temperature)
        bounds = self._config.auto_brightness
        if bounds.enabled:
            logger.info("Auto brightness adjustment ENABLED (range: %d-%d%%)", bounds.min, bounds.max)
        else:
            logger.info("Fixed brightness: %d%%", self._config.light.brightness)

    async def handle_line(self, line: str) -> CameraEvent:
        """Classify one line and send the matching light command, if any."""
        event = classify_line(line)
        if event is CameraEvent.IRRELEVANT:
            logger.debug("Event: %s", line)
            return event

        on = event is CameraEvent.CAMERA_ON
        logger.info("Camera %s (event) -> Light %s", "ON" if on else "OFF", "ON" if on else "OFF")
        command = command_for(on, self._config, now=self._clock())
        try:
            await self._light.send_command(command)
        except (HostNotFoundError, LightUnreachableError) as e:
            # Keep tracking the camera; the next event tries again
            logger.error("Light command failed: %s", e)
        return event

    async def run(self) -> None:
        """
        Stream and handle camera events until the stream ends, which raises
        StreamTerminatedError. Cancellation (signal) propagates to the caller.
        """
        logger.info("Starting camera monitor (event-based detection)...")
        self.log_features()
        stream = self._lines()
        self._state = MonitorState.STREAMING
        logger.info("Listening for camera events...")
        try:
            async for line in stream:
                await self.handle_line(line)
        finally:
            self._state = MonitorState.TERMINATED
        raise StreamTerminatedError("Log stream exited unexpectedly")
