"""Emergency alert delivery channels.

Architecture
~~~~~~~~~~~~
* **NotificationHandler**: one delivery channel.  A channel receives the
  alert together with the contact it is addressed to, and may decline an
  alert through ``should_handle``.
* **LogHandler**: writes the alert to the structured log.
* **WebhookHandler**: POSTs alert, contact and SMS-style text as JSON.
  Physical delivery (SMS, push) is whatever sits behind the webhook.
* **NotificationDispatcher**: sends one alert over all applicable channels
  concurrently and reports which succeeded.
* **create_dispatcher()**: channel set derived from settings.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx
import structlog

if TYPE_CHECKING:
    from neurofit_monitor.config import Settings
    from neurofit_monitor.models import AlertRecord, EmergencyContact

logger = structlog.get_logger(__name__)


def _fmt(value: float | None, spec: str = "") -> str:
    return "n/a" if value is None else format(value, spec)


def format_alert_text(
    alert: AlertRecord,
    contact: EmergencyContact | None = None,
    user_name: str = "Unknown",
) -> str:
    """Human-readable alert body for SMS-style channels."""
    lines = [
        "NEUROFIT EMERGENCY ALERT",
        "",
        f"User: {user_name}",
        f"Alert: {alert.message}",
        f"Severity: {alert.severity.value}",
        f"Time: {alert.timestamp.strftime('%Y-%m-%d %H:%M:%S')} UTC",
    ]
    if contact is not None:
        lines.append(f"To: {contact.name}")

    if alert.vitals is not None:
        v = alert.vitals
        lines += [
            "",
            "Vital Signs:",
            f"- Heart Rate: {_fmt(v.heart_rate, '.0f')} BPM",
            f"- SpO2: {_fmt(v.spo2, '.1f')}%",
            f"- Stress Index: {_fmt(v.stress_index, '.1f')}",
        ]

    if alert.location is not None:
        loc = alert.location
        lines += [
            "",
            "Location:",
            f"- Lat: {loc.latitude:.6f}",
            f"- Lng: {loc.longitude:.6f}",
            f"- Map: https://maps.google.com/?q={loc.latitude},{loc.longitude}",
        ]

    lines += ["", "This is an automated alert from NeuroFit Band."]
    return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """Per-channel outcome of delivering one alert."""

    alert_id: str | None
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def all_ok(self) -> bool:
        return not self.failed

    @property
    def delivered(self) -> bool:
        """At least one channel took the alert and none failed."""
        return self.all_ok and bool(self.sent)


# ── Channels ──────────────────────────────────────────────────


class NotificationHandler(ABC):
    """Base class for delivery channels; subclasses implement :meth:`send`."""

    name: str = "base"

    @abstractmethod
    async def send(self, alert: AlertRecord, contact: EmergencyContact) -> bool:
        """Deliver *alert* to *contact*; ``True`` when the channel accepted it."""

    def should_handle(self, alert: AlertRecord, contact: EmergencyContact) -> bool:  # noqa: ARG002
        return True


class LogHandler(NotificationHandler):
    name = "log"

    async def send(self, alert: AlertRecord, contact: EmergencyContact) -> bool:
        logger.info(
            "notification.log",
            alert_id=alert.id,
            kind=alert.kind.value,
            severity=alert.severity.value,
            message=alert.message,
            contact=contact.name,
        )
        return True


class WebhookHandler(NotificationHandler):
    """POST the alert as JSON.

    The contact's own ``endpoint`` wins over the configured default URL;
    with neither, the channel declines the alert.
    """

    name = "webhook"

    def __init__(
        self,
        url: str = "",
        *,
        timeout: float = 10.0,
        user_name: str = "Unknown",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._user_name = user_name
        self._transport = transport

    def target_for(self, contact: EmergencyContact) -> str:
        return contact.endpoint or self._url

    def should_handle(self, alert: AlertRecord, contact: EmergencyContact) -> bool:  # noqa: ARG002
        return bool(self.target_for(contact))

    async def send(self, alert: AlertRecord, contact: EmergencyContact) -> bool:
        url = self.target_for(contact)
        if not url:
            logger.warning("notification.webhook_no_target", alert_id=alert.id)
            return False
        payload = {
            "alert": alert.model_dump(mode="json"),
            "contact": contact.model_dump(mode="json"),
            "text": format_alert_text(alert, contact, self._user_name),
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(url, json=payload)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("notification.webhook_failed", url=url, alert_id=alert.id, error=str(exc))
            return False
        logger.info("notification.webhook_sent", url=url, alert_id=alert.id, status=resp.status_code)
        return True


# ── Dispatcher ────────────────────────────────────────────────


class NotificationDispatcher:
    """Sends one alert over every applicable channel at the same time.

    A channel that raises or returns ``False`` is reported as failed; the
    other channels are unaffected.  Without an explicit *handlers* list the
    dispatcher starts with a :class:`LogHandler`.
    """

    def __init__(self, *, handlers: list[NotificationHandler] | None = None) -> None:
        self._handlers: list[NotificationHandler] = (
            list(handlers) if handlers is not None else [LogHandler()]
        )

    def add_handler(self, handler: NotificationHandler) -> None:
        if handler.name in self.handler_names:
            raise ValueError(f"a handler named {handler.name!r} is already registered")
        self._handlers.append(handler)

    def remove_handler(self, name: str) -> bool:
        remaining = [h for h in self._handlers if h.name != name]
        removed = len(remaining) != len(self._handlers)
        self._handlers = remaining
        return removed

    @property
    def handler_names(self) -> list[str]:
        return [h.name for h in self._handlers]

    async def dispatch(self, alert: AlertRecord, contact: EmergencyContact) -> DispatchResult:
        active = [h for h in self._handlers if h.should_handle(alert, contact)]
        skipped = [h.name for h in self._handlers if h not in active]

        outcomes = await asyncio.gather(*(self._deliver(h, alert, contact) for h in active))
        sent = [h.name for h, ok in zip(active, outcomes) if ok]
        failed = [h.name for h, ok in zip(active, outcomes) if not ok]

        if failed:
            logger.warning("notification.channels_failed", alert_id=alert.id, failed=failed, sent=sent)
        return DispatchResult(alert_id=alert.id, sent=sent, failed=failed, skipped=skipped)

    @staticmethod
    async def _deliver(handler: NotificationHandler, alert: AlertRecord, contact: EmergencyContact) -> bool:
        try:
            return bool(await handler.send(alert, contact))
        except Exception:
            logger.exception("notification.handler_raised", handler=handler.name, alert_id=alert.id)
            return False


def create_dispatcher(settings: Settings) -> NotificationDispatcher:
    """Log channel plus a webhook channel.

    The webhook is always registered so that a contact endpoint set at
    runtime is honoured; it declines alerts while neither the contact nor
    ``settings.webhook_url`` provides a target.
    """
    return NotificationDispatcher(
        handlers=[
            LogHandler(),
            WebhookHandler(
                settings.webhook_url,
                timeout=settings.dispatch_timeout_seconds,
                user_name=settings.user_display_name,
            ),
        ]
    )
