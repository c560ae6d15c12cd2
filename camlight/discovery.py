"""
Locate the Elgato light on the LAN: configured host, 24h hostname cache,
then live discovery (dns-sd browse, PTR query, /24 subnet scan).
"""
from __future__ import annotations

import asyncio
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Awaitable, Callable, Protocol

import requests

from camlight.config import Config

SERVICE_TYPE = "_elg._tcp"
LIGHT_PORT = 9123
ACCESSORY_INFO_PATH = "/elgato/accessory-info"

CACHE_FILE = Path("/tmp/camlight-light-host.cache")
CACHE_MAX_AGE = 86400  # lights rarely move

# Per-step windows (seconds); dns-sd never exits on its own
AUTO_DISCOVERY_WINDOW = 3.0
RESOLVE_WINDOW = 2.0
PTR_WINDOW = 3.0
REVERSE_LOOKUP_WINDOW = 2.0
COMMAND_WINDOW = 2.0

SCAN_BATCH_SIZE = 50
SCAN_TIMEOUT = (0.3, 0.5)  # (connect, read)

# "15:12:14.670  Add  2  14 local.  _elg._tcp.  Elgato Key Light Air 664D"
BROWSE_ADD_RE = re.compile(r"Add\s+\d+\s+\d+\s+local\.\s+_elg\._tcp\.\s+(.+)$")
REACHED_AT_RE = re.compile(r"can be reached at (\S+)")
# Bare "<name>.local" host, not the "_tcp.local" tail of a service name
LOCAL_HOST_RE = re.compile(r"(?<![\w.-])[A-Za-z0-9][A-Za-z0-9-]*\.local\b")
PTR_INSTANCE_RE = re.compile(r"([A-Za-z0-9._-]+)\._elg\._tcp\.local")
IPV4_RE = re.compile(r"^(\d+\.\d+\.\d+)\.\d+$")

logger = logging.getLogger(__name__)


class HostNotFoundError(Exception):
    """No light host could be resolved by any strategy."""


class HostCache(Protocol):
    def load(self) -> tuple[str, float] | None:
        """Return (host, age_seconds) or None if nothing is cached."""
        ...

    def store(self, host: str) -> None:
        ...


class FileHostCache:
    """Single-line hostname file; the file mtime is the discovery time."""

    def __init__(self, path: str | Path = CACHE_FILE, clock: Callable[[], float] = time.time) -> None:
        self.path = Path(path)
        self._clock = clock

    def load(self) -> tuple[str, float] | None:
        try:
            mtime = self.path.stat().st_mtime
            host = self.path.read_text().strip()
        except OSError:
            return None
        return host, self._clock() - mtime

    def store(self, host: str) -> None:
        self.path.write_text(host + "\n")


async def collect_output(cmd: list[str], window: float) -> list[str]:
    """
    Run cmd and collect its stdout lines for at most `window` seconds, then
    terminate it. Returns whatever was read; a missing binary yields [].
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except FileNotFoundError:
        logger.debug("%s not available", cmd[0])
        return []
    loop = asyncio.get_running_loop()
    deadline = loop.time() + window
    lines: list[str] = []
    try:
        assert proc.stdout is not None
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                raw = await asyncio.wait_for(proc.stdout.readline(), timeout=remaining)
            except asyncio.TimeoutError:
                break
            if not raw:
                break
            lines.append(raw.decode("utf-8", errors="replace").rstrip("\r\n"))
    finally:
        if proc.returncode is None:
            try:
                proc.terminate()
                await asyncio.wait_for(proc.wait(), timeout=2.0)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()
    return lines


def parse_browse_output(lines: list[str]) -> list[str]:
    """Instance names from `dns-sd -B` Add lines."""
    names = []
    for line in lines:
        m = BROWSE_ADD_RE.search(line)
        if m and m.group(1).strip():
            names.append(m.group(1).strip())
    return names


def parse_resolve_output(lines: list[str]) -> str | None:
    """Hostname from `dns-sd -L` output, without trailing dot or port."""
    text = "\n".join(lines)
    m = REACHED_AT_RE.search(text)
    if m:
        host = m.group(1).split(":", 1)[0].rstrip(".")
        if host:
            return host
    m = LOCAL_HOST_RE.search(text)
    return m.group(0) if m else None


def parse_ptr_output(lines: list[str]) -> list[str]:
    """Service instance names from `dns-sd -Q ... PTR` output."""
    instances = []
    for line in lines:
        m = PTR_INSTANCE_RE.search(line)
        if m:
            instances.append(m.group(1))
    return instances


async def resolve_instance(name: str) -> str | None:
    lines = await collect_output(["dns-sd", "-L", name, SERVICE_TYPE, "local"], RESOLVE_WINDOW)
    return parse_resolve_output(lines)


async def browse_services(window: float) -> list[str]:
    """Browse for _elg._tcp instances and resolve each to a hostname."""
    lines = await collect_output(["dns-sd", "-B", SERVICE_TYPE, "local"], window)
    hosts = []
    for name in parse_browse_output(lines):
        host = await resolve_instance(name)
        if host:
            hosts.append(host)
    return hosts


async def query_ptr_records() -> list[str]:
    lines = await collect_output(["dns-sd", "-Q", f"{SERVICE_TYPE}.local", "PTR"], PTR_WINDOW)
    hosts = []
    for instance in parse_ptr_output(lines):
        host = await resolve_instance(instance)
        if host:
            hosts.append(host)
    return hosts


async def local_ipv4() -> str | None:
    """Address of the active interface: en0, en1, then the default route's interface."""
    for iface in ("en0", "en1"):
        out = await collect_output(["ipconfig", "getifaddr", iface], COMMAND_WINDOW)
        if out and out[0].strip():
            return out[0].strip()
    route = await collect_output(["route", "get", "default"], COMMAND_WINDOW)
    for line in route:
        key, _, value = line.strip().partition(":")
        if key == "interface" and value.strip():
            out = await collect_output(["ipconfig", "getifaddr", value.strip()], COMMAND_WINDOW)
            if out and out[0].strip():
                return out[0].strip()
    return None


async def reverse_lookup(ip: str) -> str | None:
    """mDNS reverse lookup of ip; None if the responder has no name."""
    out = await collect_output(
        ["dig", "+short", "-x", ip, "@224.0.0.251", "-p", "5353"], REVERSE_LOOKUP_WINDOW
    )
    for line in out:
        name = line.strip().rstrip(".")
        if name and not name.startswith(";"):
            return name
    return None


def probe_light(ip: str, session: requests.Session | None = None) -> bool:
    """True if ip answers the accessory-info endpoint."""
    url = f"http://{ip}:{LIGHT_PORT}{ACCESSORY_INFO_PATH}"
    try:
        response = (session or requests).get(url, timeout=SCAN_TIMEOUT)
    except requests.RequestException:
        return False
    return response.ok


async def scan_subnet(local_ip: str | None = None) -> list[str]:
    """
    Probe every host of the local /24 on the light port, SCAN_BATCH_SIZE at a
    time. Assumes a single active interface; best effort on other topologies.
    """
    if local_ip is None:
        local_ip = await local_ipv4()
    m = IPV4_RE.match(local_ip or "")
    if not m:
        logger.debug("No usable local IPv4 address for subnet scan (%r)", local_ip)
        return []
    subnet = m.group(1)
    loop = asyncio.get_running_loop()
    responders: list[str] = []
    with ThreadPoolExecutor(max_workers=SCAN_BATCH_SIZE) as pool:
        for start in range(1, 255, SCAN_BATCH_SIZE):
            batch = [f"{subnet}.{i}" for i in range(start, min(start + SCAN_BATCH_SIZE, 255))]
            results = await asyncio.gather(
                *(loop.run_in_executor(pool, probe_light, ip) for ip in batch)
            )
            responders.extend(ip for ip, ok in zip(batch, results) if ok)
    hosts = []
    for ip in responders:
        hosts.append(await reverse_lookup(ip) or ip)
    return hosts


async def discover_lights(window: float = AUTO_DISCOVERY_WINDOW) -> list[str]:
    """
    Run discovery strategies in order until one finds something.
    Returns sorted, de-duplicated hostnames (possibly empty).
    """
    logger.info("Searching for Elgato lights (%.0fs window)...", window)
    logger.debug("Trying service browse...")
    hosts = await browse_services(window)
    if not hosts:
        logger.debug("Trying PTR query...")
        hosts = await query_ptr_records()
    if not hosts:
        logger.debug("Trying network scan on port %d...", LIGHT_PORT)
        hosts = await scan_subnet()
    return sorted({h for h in hosts if h})


class HostResolver:
    """Resolve the light host: configured override, then cache, then live discovery."""

    def __init__(
        self,
        config: Config,
        cache: HostCache | None = None,
        discover: Callable[[float], Awaitable[list[str]]] = discover_lights,
    ) -> None:
        self._config = config
        self._cache = cache if cache is not None else FileHostCache()
        self._discover = discover

    async def resolve(self) -> str:
        if self._config.light.host:
            return self._config.light.host

        cached = self._cache.load()
        if cached is not None:
            host, age = cached
            if host and age < CACHE_MAX_AGE:
                logger.debug("Using cached light hostname: %s", host)
                return host

        logger.debug("Discovering light (no cache or expired)...")
        hosts = await self._discover(AUTO_DISCOVERY_WINDOW)
        if not hosts:
            logger.debug("Failed to discover light")
            raise HostNotFoundError(
                "Could not find Elgato light. Run 'camlight discover' or set light.host in config.yaml."
            )
        host = hosts[0]
        try:
            self._cache.store(host)
        except OSError as e:
            logger.warning("Could not cache light hostname %s: %s", host, e)
            return host
        logger.debug("Discovered and cached: %s", host)
        return host
