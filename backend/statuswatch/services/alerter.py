"""Alerter service - grace-period gate and notification gateway client.

Notifications are best-effort: delivery failures are logged and dropped,
never retried, and never affect incident bookkeeping.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, Set, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from ..config import NotificationConfig
from ..schemas.monitor import MonitorSpec

logger = logging.getLogger(__name__)

# Absorbs scheduler jitter when comparing outage length against the grace period
GRACE_TOLERANCE_SECONDS = 30

# Gateway requests must not hold up the monitoring cycle
GATEWAY_TIMEOUT_SECONDS = 5


@dataclass
class StatusChange:
    """A monitor went down, is still down, or recovered."""
    monitor: MonitorSpec
    is_up: bool
    incident_start: int  # epoch seconds
    now: int  # epoch seconds
    reason: str

    @property
    def down_duration(self) -> int:
        return self.now - self.incident_start


@dataclass
class Notification:
    title: str
    body: str
    severity: str = "warning"  # Apprise notification type


def should_notify(
    monitor_id: str,
    is_up: bool,
    incident_start: int,
    now: int,
    grace_period_minutes: int = 0,
    skip_monitor_ids: Iterable[str] = (),
) -> bool:
    """Decide whether a status change is worth a notification.

    A recovery needs one more minute of outage than a down notice, so a
    recovery is only announced when the matching down notice went out.
    """
    if monitor_id in set(skip_monitor_ids):
        return False

    if grace_period_minutes <= 0:
        return True

    down_duration = now - incident_start
    if is_up:
        return down_duration >= (grace_period_minutes + 1) * 60 - GRACE_TOLERANCE_SECONDS
    return down_duration >= grace_period_minutes * 60 - GRACE_TOLERANCE_SECONDS


class AlerterService:
    """Service for gating, formatting and sending status-change notifications."""

    def __init__(
        self,
        config: Optional[NotificationConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport
        self._tz = self._load_timezone(config.time_zone if config else "Etc/GMT")
        # (monitor_id, incident_start) of outages whose down notice was sent
        self._down_notified: Set[Tuple[str, int]] = set()

    @staticmethod
    def _load_timezone(name: str):
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown time zone {name!r}, using UTC")
            return timezone.utc

    def _format_time(self, epoch_seconds: int) -> str:
        moment = datetime.fromtimestamp(epoch_seconds, tz=self._tz)
        return f"{moment.month}/{moment:%d}, {moment:%H:%M}"

    def format_status_change(
        self,
        monitor: MonitorSpec,
        is_up: bool,
        incident_start: int,
        now: int,
        reason: str,
    ) -> Notification:
        """Build the title and body for a status change."""
        minutes = round((now - incident_start) / 60)
        reason = reason or "unspecified"

        if is_up:
            return Notification(
                title=f"✅ {monitor.name} is up!",
                body=f"The service is up again after being down for {minutes} minutes.",
                severity="success",
            )
        if now == incident_start:
            return Notification(
                title=f"🔴 {monitor.name} is currently down.",
                body=f"Service is unavailable at {self._format_time(now)}. Issue: {reason}",
            )
        return Notification(
            title=f"🔴 {monitor.name} is still down.",
            body=(
                f"Service is unavailable since {self._format_time(incident_start)} "
                f"({minutes} minutes). Issue: {reason}"
            ),
        )

    async def notify(self, event: StatusChange) -> bool:
        """Gate, format and send a status change.

        Down notices are sent at most once per outage. Without a grace period
        only the transition itself is announced; with one, repeated still-down
        events only matter until the grace period has been met.

        Returns True if a notification was handed to the gateway.
        """
        if self.config is None:
            return False

        monitor = event.monitor
        outage = (monitor.id, event.incident_start)

        if event.is_up:
            self._down_notified.discard(outage)
        elif outage in self._down_notified:
            return False
        elif self.config.grace_period <= 0 and event.now != event.incident_start:
            # Without a grace period the down notice belongs to the transition itself
            return False

        if not should_notify(
            monitor.id,
            event.is_up,
            event.incident_start,
            event.now,
            self.config.grace_period,
            self.config.skip_notification_ids,
        ):
            logger.debug(
                f"Notification suppressed for {monitor.name}: "
                f"{'UP' if event.is_up else 'DOWN'} after {event.down_duration}s "
                f"(grace period {self.config.grace_period}m)"
            )
            return False

        if not event.is_up:
            self._down_notified.add(outage)

        notification = self.format_status_change(
            monitor, event.is_up, event.incident_start, event.now, event.reason
        )
        await self.send(notification)
        return True

    async def send(self, notification: Notification) -> bool:
        """POST a notification to the gateway."""
        if not self.config or not self.config.apprise_api_server or not self.config.recipient_url:
            logger.info("Apprise API server or recipient URL not set, skipping notification")
            return False

        payload = {
            "urls": self.config.recipient_url,
            "title": notification.title,
            "body": notification.body,
            "type": notification.severity,
            "format": "text",
        }
        logger.info(f"Sending notification: {notification.title} - {notification.body}")

        try:
            async with httpx.AsyncClient(
                timeout=GATEWAY_TIMEOUT_SECONDS,
                transport=self._transport,
            ) as client:
                response = await client.post(self.config.apprise_api_server, json=payload)
        except Exception as e:
            logger.error(f"Error calling apprise server: {e}")
            return False

        if response.status_code >= 400:
            logger.warning(
                f"Error calling apprise server, code: {response.status_code}, response: {response.text}"
            )
            return False

        logger.info(f"Notification sent successfully, code: {response.status_code}")
        return True
