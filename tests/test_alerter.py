from __future__ import annotations

import json
import logging

import httpx
import pytest

from statuswatch.config import NotificationConfig
from statuswatch.services.alerter import AlerterService, Notification, StatusChange, should_notify

from .conftest import make_monitor

START = 1_700_000_000


def _recording_transport(status_code: int = 200) -> tuple[httpx.MockTransport, list[dict]]:
    sent: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(status_code, json={"ok": status_code < 400})

    return httpx.MockTransport(handler), sent


def _config(**overrides) -> NotificationConfig:
    fields = {
        "apprise_api_server": "http://apprise.test/notify",
        "recipient_url": "tgram://token/chat",
        "time_zone": "Etc/GMT",
        "grace_period": 0,
    }
    fields.update(overrides)
    return NotificationConfig(**fields)


@pytest.mark.parametrize(
    ("is_up", "duration", "grace", "expected"),
    [
        (False, 0, 0, True),
        (True, 0, 0, True),
        (False, 120, 5, False),
        (False, 269, 5, False),
        (False, 270, 5, True),
        (False, 360, 5, True),
        (True, 120, 5, False),
        (True, 300, 5, False),
        (True, 329, 5, False),
        (True, 330, 5, True),
        (True, 360, 5, True),
    ],
)
def test_should_notify_grace_period(is_up: bool, duration: int, grace: int, expected: bool) -> None:
    assert should_notify("web", is_up, START, START + duration, grace) is expected


def test_should_notify_skip_list_always_suppresses() -> None:
    assert should_notify("web", False, START, START + 3600, 0, ["web"]) is False
    assert should_notify("web", True, START, START + 3600, 5, {"web"}) is False
    assert should_notify("api", False, START, START, 0, ["web"]) is True


def test_format_templates() -> None:
    alerter = AlerterService(_config(time_zone="Etc/GMT-2"))
    monitor = make_monitor(name="Website")

    first = alerter.format_status_change(monitor, False, START, START, "refused")
    assert first.title == "🔴 Website is currently down."
    assert "Issue: refused" in first.body

    still = alerter.format_status_change(monitor, False, START, START + 360, "")
    assert still.title == "🔴 Website is still down."
    assert "(6 minutes)" in still.body
    assert "Issue: unspecified" in still.body
    # 1_700_000_000 is 2023-11-14 22:13 UTC, shown as 11/15, 00:13 in GMT+2
    assert "since 11/15, 00:13" in still.body

    recovered = alerter.format_status_change(monitor, True, START, START + 600, "OK")
    assert recovered.title == "✅ Website is up!"
    assert recovered.body == "The service is up again after being down for 10 minutes."
    assert recovered.severity == "success"


def test_unknown_time_zone_falls_back_to_utc() -> None:
    alerter = AlerterService(_config(time_zone="Not/AZone"))
    body = alerter.format_status_change(make_monitor(), False, START, START, "x").body
    assert "11/14, 22:13" in body


@pytest.mark.asyncio
async def test_send_posts_payload_to_gateway() -> None:
    transport, sent = _recording_transport()
    alerter = AlerterService(_config(), transport=transport)

    assert await alerter.send(Notification(title="t", body="b")) is True
    assert sent == [{
        "urls": "tgram://token/chat",
        "title": "t",
        "body": "b",
        "type": "warning",
        "format": "text",
    }]


@pytest.mark.asyncio
async def test_send_failures_are_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    alerter = AlerterService(_config(), transport=httpx.MockTransport(handler))
    with caplog.at_level(logging.ERROR):
        assert await alerter.send(Notification(title="t", body="b")) is False
    assert "Error calling apprise server" in caplog.text

    transport, _ = _recording_transport(status_code=500)
    assert await AlerterService(_config(), transport=transport).send(Notification(title="t", body="b")) is False


@pytest.mark.asyncio
async def test_send_skipped_without_gateway() -> None:
    transport, sent = _recording_transport()
    alerter = AlerterService(_config(apprise_api_server=None), transport=transport)
    assert await alerter.send(Notification(title="t", body="b")) is False
    assert sent == []


@pytest.mark.asyncio
async def test_notify_without_config_does_nothing() -> None:
    alerter = AlerterService(None)
    event = StatusChange(make_monitor(), False, START, START, "down")
    assert await alerter.notify(event) is False


@pytest.mark.asyncio
async def test_six_minute_outage_sends_one_down_and_one_up() -> None:
    transport, sent = _recording_transport()
    alerter = AlerterService(_config(grace_period=5), transport=transport)
    monitor = make_monitor()

    # Offered every minute while the monitor stays down
    for minute in range(0, 7):
        await alerter.notify(StatusChange(monitor, False, START, START + minute * 60, "down"))
    down_titles = [n["title"] for n in sent]
    assert down_titles == ["🔴 Web is still down."]

    await alerter.notify(StatusChange(monitor, True, START, START + 6 * 60, "OK"))
    assert len(sent) == 2
    assert sent[1]["title"] == "✅ Web is up!"


@pytest.mark.asyncio
async def test_two_minute_outage_sends_nothing() -> None:
    transport, sent = _recording_transport()
    alerter = AlerterService(_config(grace_period=5), transport=transport)
    monitor = make_monitor()

    for minute in range(0, 3):
        assert await alerter.notify(StatusChange(monitor, False, START, START + minute * 60, "down")) is False
    assert await alerter.notify(StatusChange(monitor, True, START, START + 2 * 60, "OK")) is False
    assert sent == []


@pytest.mark.asyncio
async def test_without_grace_down_is_sent_immediately_once() -> None:
    transport, sent = _recording_transport()
    alerter = AlerterService(_config(grace_period=0), transport=transport)
    monitor = make_monitor()

    await alerter.notify(StatusChange(monitor, False, START, START, "down"))
    await alerter.notify(StatusChange(monitor, False, START, START + 60, "down"))
    await alerter.notify(StatusChange(monitor, True, START, START + 120, "OK"))

    assert [n["title"] for n in sent] == ["🔴 Web is currently down.", "✅ Web is up!"]


@pytest.mark.asyncio
async def test_without_grace_outage_from_before_restart_is_not_announced() -> None:
    transport, sent = _recording_transport()
    # Fresh alerter with no memory of the outage that started ten minutes ago
    alerter = AlerterService(_config(grace_period=0), transport=transport)
    monitor = make_monitor()

    assert await alerter.notify(StatusChange(monitor, False, START - 600, START, "down")) is False
    assert sent == []

    assert await alerter.notify(StatusChange(monitor, True, START - 600, START + 60, "OK")) is True
    assert [n["title"] for n in sent] == ["✅ Web is up!"]
