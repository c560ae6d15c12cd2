"""Unit tests for the Elgato HTTP client: payload and retries."""
import asyncio
import json
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import requests

from camlight.config import Config
from camlight.discovery import HostNotFoundError, HostResolver
from camlight.light_client import (
    REQUEST_TIMEOUT,
    ElgatoLight,
    LightCommand,
    LightUnreachableError,
    fetch_display_name,
)


def response(status: int, text: str = "") -> MagicMock:
    r = MagicMock()
    r.status_code = status
    r.text = text
    return r


def make_light(config: Config, *responses) -> tuple[ElgatoLight, MagicMock]:
    session = MagicMock()
    session.request.side_effect = list(responses)
    return ElgatoLight(config, HostResolver(config), session=session), session


def test_command_serializes_exactly() -> None:
    cmd = LightCommand(on=True, brightness=50, temperature=250)
    assert cmd.to_json() == '{"lights":[{"brightness":50,"temperature":250,"on":1}],"numberOfLights":1}'


def test_command_off_serializes_on_as_zero() -> None:
    cmd = LightCommand(on=False, brightness=43, temperature=290)
    assert json.loads(cmd.to_json())["lights"][0]["on"] == 0


def test_command_serialization_is_stable() -> None:
    cmd = LightCommand(on=True, brightness=57, temperature=180)
    assert cmd.to_json() == cmd.to_json()
    assert LightCommand(on=True, brightness=57, temperature=180).to_json() == cmd.to_json()


@pytest.mark.asyncio
async def test_send_command_success(host_config: Config, caplog: pytest.LogCaptureFixture) -> None:
    light, session = make_light(host_config, response(200, "{}"))
    cmd = LightCommand(on=True, brightness=50, temperature=250)

    with caplog.at_level(logging.INFO, logger="camlight"):
        await light.send_command(cmd)

    session.request.assert_called_once_with(
        "PUT",
        "http://key-light.local:9123/elgato/lights",
        data=cmd.to_json(),
        headers={"Content-Type": "application/json"},
        timeout=REQUEST_TIMEOUT,
    )
    assert "Light turned on (brightness: 50%, temperature: 250 mireds)" in caplog.text


@pytest.mark.asyncio
async def test_send_command_off_logs(host_config: Config, caplog: pytest.LogCaptureFixture) -> None:
    light, _ = make_light(host_config, response(200))
    with caplog.at_level(logging.INFO, logger="camlight"):
        await light.send_command(LightCommand(on=False, brightness=43, temperature=290))
    assert "Light turned off" in caplog.text


@pytest.mark.asyncio
async def test_send_command_quiet(host_config: Config, caplog: pytest.LogCaptureFixture) -> None:
    light, _ = make_light(host_config, response(200))
    with caplog.at_level(logging.INFO, logger="camlight"):
        await light.send_command(LightCommand(on=True, brightness=50, temperature=250), quiet=True)
    assert "Light turned" not in caplog.text


@pytest.mark.asyncio
async def test_same_command_twice_same_request(host_config: Config) -> None:
    light, session = make_light(host_config, response(200), response(200))
    cmd = LightCommand(on=True, brightness=50, temperature=250)
    await light.send_command(cmd)
    await light.send_command(cmd)
    first, second = session.request.call_args_list
    assert first == second


@pytest.mark.asyncio
async def test_three_failures_exhaust_retries(host_config: Config, caplog: pytest.LogCaptureFixture) -> None:
    light, session = make_light(host_config, response(500), response(500), response(500))

    with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        with caplog.at_level(logging.INFO, logger="camlight"):
            with pytest.raises(LightUnreachableError):
                await light.send_command(LightCommand(on=True, brightness=50, temperature=250))

    assert session.request.call_count == 3
    assert mock_sleep.await_count == 2
    mock_sleep.assert_awaited_with(1)
    failed = [r for r in caplog.records if "Failed to reach light" in r.getMessage()]
    assert len(failed) == 1
    assert "after 3 attempts" in failed[0].getMessage()
    attempts = [r for r in caplog.records if r.getMessage().startswith("Request failed")]
    assert [r.getMessage() for r in attempts] == [
        "Request failed (attempt 1/3): HTTP 500",
        "Request failed (attempt 2/3): HTTP 500",
        "Request failed (attempt 3/3): HTTP 500",
    ]
    assert all(getattr(r, "quiet", False) for r in attempts)


@pytest.mark.asyncio
async def test_network_error_then_success(host_config: Config) -> None:
    light, session = make_light(
        host_config, requests.ConnectionError("refused"), response(204, "")
    )
    with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        body = await light.request("GET", "/elgato/lights")
    assert body == ""
    assert session.request.call_count == 2
    mock_sleep.assert_awaited_once_with(1)


@pytest.mark.asyncio
async def test_custom_retry_settings() -> None:
    config = Config.from_dict({"light": {"host": "10.0.0.9"}, "retry": {"max_retries": 1, "delay": 0}})
    light, session = make_light(config, response(503))
    with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        with pytest.raises(LightUnreachableError):
            await light.get_status()
    assert session.request.call_count == 1
    mock_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_status_returns_body(host_config: Config) -> None:
    body = '{"numberOfLights":1,"lights":[{"on":1,"brightness":57,"temperature":180}]}'
    light, session = make_light(host_config, response(200, body))
    assert await light.get_status() == body
    args, kwargs = session.request.call_args
    assert args == ("GET", "http://key-light.local:9123/elgato/lights")
    assert kwargs["data"] is None
    assert kwargs["headers"] is None


@pytest.mark.asyncio
async def test_get_accessory_info(host_config: Config) -> None:
    light, _ = make_light(host_config, response(200, '{"displayName": "Desk Light"}'))
    assert await light.get_accessory_info() == {"displayName": "Desk Light"}


@pytest.mark.asyncio
async def test_unresolvable_host_fails_fast(memory_cache) -> None:
    config = Config.from_dict({})
    resolver = HostResolver(config, cache=memory_cache, discover=AsyncMock(return_value=[]))
    session = MagicMock()
    light = ElgatoLight(config, resolver, session=session)
    with pytest.raises(HostNotFoundError):
        await light.send_command(LightCommand(on=True, brightness=50, temperature=250))
    session.request.assert_not_called()


def test_fetch_display_name() -> None:
    session = MagicMock()
    session.get.return_value.json.return_value = {"displayName": "Key Light Air"}
    assert fetch_display_name("key-light.local", session) == "Key Light Air"
    session.get.assert_called_once_with(
        "http://key-light.local:9123/elgato/accessory-info", timeout=(2, 2)
    )


def test_fetch_display_name_failure() -> None:
    session = MagicMock()
    session.get.side_effect = requests.Timeout()
    assert fetch_display_name("key-light.local", session) is None


@pytest.mark.parametrize("body", [["not", "a", "dict"], "Key Light", 42, None])
def test_fetch_display_name_non_object_body(body) -> None:
    session = MagicMock()
    session.get.return_value.json.return_value = body
    assert fetch_display_name("10.0.0.2", session) is None


@pytest.mark.asyncio
async def test_attempt_deadline_counts_as_failure(host_config: Config) -> None:
    light, session = make_light(host_config, response(200, "{}"))
    real_sleep = asyncio.sleep
    with (
        patch("camlight.light_client.REQUEST_DEADLINE", 0.01),
        patch("camlight.light_client.asyncio.to_thread", new_callable=MagicMock, side_effect=lambda *a, **kw: real_sleep(1)),
        patch("camlight.light_client.asyncio.sleep", new_callable=AsyncMock),
    ):
        with pytest.raises(LightUnreachableError):
            await light.get_status()
    session.request.assert_not_called()
