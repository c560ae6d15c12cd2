"""
HTTP client for the Elgato Key Light API (port 9123): PUT/GET /elgato/lights
with bounded retries, plus accessory-info probing (requests).
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

import requests

from camlight.config import Config
from camlight.discovery import ACCESSORY_INFO_PATH, LIGHT_PORT, HostResolver
from camlight.utils import QUIET

LIGHTS_PATH = "/elgato/lights"
# (connect, read) timeouts in seconds. The read timeout bounds each socket
# read, not the whole request; REQUEST_DEADLINE caps one attempt end to end.
REQUEST_TIMEOUT = (5, 10)
REQUEST_DEADLINE = 10

logger = logging.getLogger(__name__)


class LightUnreachableError(Exception):
    """All attempts to reach the light failed."""


@dataclass(frozen=True)
class LightCommand:
    on: bool
    brightness: int
    temperature: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "lights": [
                {
                    "brightness": self.brightness,
                    "temperature": self.temperature,
                    "on": 1 if self.on else 0,
                }
            ],
            "numberOfLights": 1,
        }

    def to_json(self) -> str:
        """Compact wire form, e.g. {"lights":[{...}],"numberOfLights":1}."""
        return json.dumps(self.to_payload(), separators=(",", ":"))


def fetch_display_name(host: str, session: requests.Session | None = None) -> str | None:
    """Best-effort displayName from accessory-info; None on any failure."""
    url = f"http://{host}:{LIGHT_PORT}{ACCESSORY_INFO_PATH}"
    try:
        response = (session or requests).get(url, timeout=(2, 2))
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    return data.get("displayName") or None


class ElgatoLight:
    """
    Client for one Elgato light. The host is resolved on every request, so a
    cache refresh or rediscovery is picked up without restarting.
    """

    def __init__(
        self,
        config: Config,
        resolver: HostResolver,
        session: requests.Session | None = None,
    ) -> None:
        self._retry = config.retry
        self._resolver = resolver
        self._session = session or requests.Session()

    async def request(self, method: str, endpoint: str, body: str | None = None) -> str:
        """
        Send a request, retrying on non-2xx or network errors. Returns the
        response body. Raises HostNotFoundError or LightUnreachableError.
        """
        host = await self._resolver.resolve()
        url = f"http://{host}:{LIGHT_PORT}{endpoint}"
        headers = {"Content-Type": "application/json"} if body is not None else None
        max_retries = self._retry.max_retries

        for attempt in range(1, max_retries + 1):
            try:
                response = await asyncio.wait_for(
                    asyncio.to_thread(
                        self._session.request,
                        method,
                        url,
                        data=body,
                        headers=headers,
                        timeout=REQUEST_TIMEOUT,
                    ),
                    timeout=REQUEST_DEADLINE,
                )
                if 200 <= response.status_code < 300:
                    return response.text
                reason = f"HTTP {response.status_code}"
            except requests.RequestException as e:
                reason = str(e) or type(e).__name__
            except asyncio.TimeoutError:
                reason = f"no response within {REQUEST_DEADLINE}s"
            logger.info(
                "Request failed (attempt %d/%d): %s", attempt, max_retries, reason, extra=QUIET
            )
            if attempt < max_retries:
                await asyncio.sleep(self._retry.delay)

        logger.warning("Failed to reach light at %s after %d attempts", url, max_retries)
        raise LightUnreachableError(url)

    async def send_command(self, command: LightCommand, quiet: bool = False) -> None:
        """PUT the command; logs the new state unless quiet."""
        state = "on" if command.on else "off"
        try:
            await self.request("PUT", LIGHTS_PATH, command.to_json())
        except LightUnreachableError:
            logger.warning("Failed to turn light %s", state)
            raise
        if quiet:
            return
        if command.on:
            logger.info(
                "Light turned on (brightness: %d%%, temperature: %d mireds)",
                command.brightness,
                command.temperature,
            )
        else:
            logger.info("Light turned off")

    async def get_status(self) -> str:
        return await self.request("GET", LIGHTS_PATH)

    async def get_accessory_info(self) -> dict[str, Any]:
        text = await self.request("GET", ACCESSORY_INFO_PATH)
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}
