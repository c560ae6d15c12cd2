"""
camlight: turn an Elgato Key Light on and off with the Mac's camera.
Run with: python -m camlight <command>
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from camlight.config import Config, ConfigError
from camlight.discovery import HostNotFoundError, HostResolver, discover_lights
from camlight.light_client import ElgatoLight, LightUnreachableError, fetch_display_name
from camlight.monitor import CameraMonitor, StreamTerminatedError
from camlight.policy import command_for
from camlight.utils import LOG_FILE, configure_logging

DISCOVER_WINDOW = 5.0

logger = logging.getLogger("camlight")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="camlight",
        description="Automatic Elgato Key Light control based on camera state.",
        epilog=f"Log file: {LOG_FILE}",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    sub = parser.add_subparsers(dest="command", required=True, metavar="command")
    sub.add_parser("discover", help="Find Elgato lights on your network")
    sub.add_parser("test", help="Test connection to the configured light")
    on = sub.add_parser("on", help="Turn the light on manually")
    on.add_argument(
        "--brightness",
        type=int,
        choices=range(0, 101),
        metavar="0-100",
        help="Override the computed brightness",
    )
    sub.add_parser("off", help="Turn the light off manually")
    sub.add_parser("status", help="Get current light status")
    sub.add_parser("monitor", help="Run the camera monitor (for launchd)")
    return parser


async def cmd_discover() -> int:
    hosts = await discover_lights(DISCOVER_WINDOW)
    if not hosts:
        print()
        print("No Elgato lights found on the network.")
        print()
        print("Troubleshooting tips:")
        print("  1. Ensure your light is powered on and connected to the same network")
        print("  2. Try the Elgato Control Center app to verify connectivity")
        print("  3. Manually find the IP in Control Center, then run:")
        print("     dig -x <IP> @224.0.0.251 -p 5353")
        print("  4. Or set light.host to the IP address directly in config.yaml")
        return 1
    print()
    print(f"Found {len(hosts)} light(s):")
    for host in hosts:
        print(f"  - {host}")
        name = await asyncio.to_thread(fetch_display_name, host)
        if name:
            print(f"    Display name: {name}")
    print()
    print("To use a specific light, set in config.yaml:")
    print("  light:")
    print(f'    host: "{hosts[0]}"')
    return 0


async def print_status(light: ElgatoLight) -> None:
    body = await light.get_status()
    print("Light status:")
    try:
        print(json.dumps(json.loads(body), indent=4))
    except json.JSONDecodeError:
        print(body)


async def cmd_test(resolver: HostResolver, light: ElgatoLight) -> int:
    print("Testing connection to Elgato light...")
    try:
        host = await resolver.resolve()
    except HostNotFoundError:
        print("FAILED: Could not find light")
        return 1
    print(f"Found light: {host}")

    for label, probe in (
        ("Testing API connection... ", light.get_accessory_info),
        ("Testing light control... ", light.get_status),
    ):
        print(label, end="", flush=True)
        try:
            await probe()
        except LightUnreachableError:
            print("FAILED")
            return 1
        print("OK")

    print()
    print("All tests passed!")
    await print_status(light)
    return 0


async def cmd_monitor(config: Config, light: ElgatoLight) -> int:
    monitor = CameraMonitor(config, light)
    task = asyncio.current_task()
    loop = asyncio.get_running_loop()
    signals = (signal.SIGTERM, signal.SIGINT) if task is not None else ()
    for sig in signals:
        loop.add_signal_handler(sig, task.cancel)
    try:
        await monitor.run()
    except asyncio.CancelledError:
        logger.info("Monitor shutting down...")
        return 0
    except StreamTerminatedError as e:
        logger.error("%s", e)
        return 1
    finally:
        for sig in signals:
            loop.remove_signal_handler(sig)
    return 0


async def run(
    command: str,
    config_path: Path | None = None,
    brightness: int | None = None,
) -> int:
    try:
        config = Config.load(config_path)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    configure_logging(config.debug)

    if command == "discover":
        return await cmd_discover()

    resolver = HostResolver(config)
    light = ElgatoLight(config, resolver)
    try:
        if command == "test":
            return await cmd_test(resolver, light)
        if command == "monitor":
            return await cmd_monitor(config, light)
        if command == "status":
            await print_status(light)
            return 0
        if command in ("on", "off"):
            await light.send_command(command_for(command == "on", config, brightness=brightness))
            return 0
    except HostNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except LightUnreachableError:
        return 1
    raise ValueError(f"Unknown command: {command}")


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    kwargs = {"config_path": args.config}
    if args.command == "on" and args.brightness is not None:
        kwargs["brightness"] = args.brightness
    try:
        code = asyncio.run(run(args.command, **kwargs))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
        sys.exit(0)
    sys.exit(code)


if __name__ == "__main__":
    main()
