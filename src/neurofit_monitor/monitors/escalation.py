"""Alert escalation: cooldown window, alert history and dispatch outcome.

State machine over a single timer::

    Idle ──alert dispatched──▶ Cooldown ──window elapsed──▶ Idle

While in cooldown every condition (and every manual alert) is suppressed
outright: no history entry, no dispatch.  Test alerts bypass the window and
never touch the clock.  The check-then-update of the clock happens under an
:class:`asyncio.Lock`, so concurrent evaluations start at most one cooldown.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

import structlog

from neurofit_monitor.models import (
    AlertKind,
    AlertRecord,
    ConditionKind,
    EmergencyCondition,
    EmergencyContact,
    LocationFix,
    Reading,
    Severity,
    VitalsSnapshot,
)
from neurofit_monitor.notifications.handlers import NotificationDispatcher

logger = structlog.get_logger(__name__)

DEFAULT_COOLDOWN = timedelta(minutes=5)

MANUAL_MESSAGE = "Manual emergency alert triggered by user"
TEST_MESSAGE = "This is a test emergency alert"

LocationProvider = Callable[[], LocationFix | None]
Clock = Callable[[], datetime]


class EscalationStatus(str, Enum):
    DISPATCHED = "dispatched"
    FAILED = "failed"
    SUPPRESSED = "suppressed"
    MONITORING_DISABLED = "monitoring_disabled"
    CONFIGURATION_ERROR = "configuration_error"


@dataclass(frozen=True, slots=True)
class EscalationResult:
    """What happened to one alert request.

    ``record`` is set only when an alert entered the history
    (``dispatched`` or ``failed``).
    """

    status: EscalationStatus
    record: AlertRecord | None = None
    detail: str | None = None

    @property
    def escalated(self) -> bool:
        return self.record is not None


def _fmt(value: float | None, spec: str) -> str:
    return "n/a" if value is None else format(value, spec)


def condition_message(condition: EmergencyCondition) -> str:
    """Alert text for *condition*; a vital the reading lacks shows as ``n/a``."""
    r = condition.reading
    if condition.kind == ConditionKind.HIGH_STRESS:
        return f"High stress level detected: {_fmt(r.stress_index, '.1f')}"
    if condition.kind == ConditionKind.ABNORMAL_HEART_RATE:
        return f"Abnormal heart rate: {_fmt(r.heart_rate, 'g')} BPM"
    return f"Low oxygen saturation: {_fmt(r.spo2, '.1f')}%"


class AlertEscalationController:
    """Decides whether an alert is escalated and records the outcome.

    Parameters
    ----------
    dispatcher
        Delivery fan-out; called with the record and the active contact.
    contact
        Destination.  Without one, escalation reports a configuration error.
    cooldown
        Minimum gap between two cooldown-governed alerts.
    location_provider
        Optional callable returning the best-known location fix.
    clock
        Returns "now" as a naive UTC datetime.
    dispatch_timeout
        Seconds before an in-flight dispatch counts as failed.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        *,
        contact: EmergencyContact | None = None,
        cooldown: timedelta | float = DEFAULT_COOLDOWN,
        location_provider: LocationProvider | None = None,
        clock: Clock = datetime.utcnow,
        dispatch_timeout: float = 10.0,
        enabled: bool = True,
    ) -> None:
        self._dispatcher = dispatcher
        self._contact = contact
        self._cooldown = cooldown if isinstance(cooldown, timedelta) else timedelta(seconds=cooldown)
        self._location_provider = location_provider
        self._clock = clock
        self._dispatch_timeout = dispatch_timeout
        self._enabled = enabled

        self._lock = asyncio.Lock()
        self._history: deque[AlertRecord] = deque()
        self._last_alert_time: datetime | None = None
        self._last_vitals: VitalsSnapshot | None = None
        self._location: LocationFix | None = None

    # ── Configuration ─────────────────────────────────────────

    @property
    def contact(self) -> EmergencyContact | None:
        return self._contact

    def set_contact(self, contact: EmergencyContact | None) -> None:
        self._contact = contact
        logger.info("escalation.contact_updated", configured=contact is not None)

    @property
    def monitoring_enabled(self) -> bool:
        return self._enabled

    def set_monitoring(self, enabled: bool) -> None:
        self._enabled = enabled
        logger.info("escalation.monitoring_toggled", enabled=enabled)

    @property
    def cooldown(self) -> timedelta:
        return self._cooldown

    # ── Observed state ────────────────────────────────────────

    def observe(self, reading: Reading) -> None:
        """Remember the latest vitals for manual and test alerts."""
        if reading.has_vitals:
            self._last_vitals = reading.vitals()

    @property
    def last_vitals(self) -> VitalsSnapshot | None:
        return self._last_vitals

    def set_location(self, fix: LocationFix | None) -> None:
        self._location = fix

    def current_location(self) -> LocationFix | None:
        if self._location_provider is not None:
            try:
                fix = self._location_provider()
                if fix is not None:
                    return fix
            except Exception as exc:
                logger.warning("escalation.location_unavailable", error=str(exc))
        return self._location

    @property
    def history(self) -> list[AlertRecord]:
        """Alert records, newest first."""
        return list(self._history)

    @property
    def last_alert_time(self) -> datetime | None:
        return self._last_alert_time

    def in_cooldown(self, now: datetime | None = None) -> bool:
        if self._last_alert_time is None:
            return False
        return (now or self._clock()) - self._last_alert_time < self._cooldown

    def cooldown_remaining(self, now: datetime | None = None) -> timedelta:
        if self._last_alert_time is None:
            return timedelta(0)
        remaining = self._last_alert_time + self._cooldown - (now or self._clock())
        return max(remaining, timedelta(0))

    # ── Escalation ────────────────────────────────────────────

    async def handle_condition(self, condition: EmergencyCondition) -> EscalationResult:
        """Escalate a threshold breach, honouring monitoring and cooldown."""
        self.observe(condition.reading)
        if not self._enabled:
            logger.debug("escalation.monitoring_disabled", kind=condition.kind.value)
            return EscalationResult(EscalationStatus.MONITORING_DISABLED)
        return await self._escalate(
            AlertKind(condition.kind.value),
            condition.severity,
            condition_message(condition),
            condition.reading.vitals(),
        )

    async def trigger_manual_alert(self, vitals: VitalsSnapshot | None = None) -> EscalationResult:
        """User-initiated alert.  Vitals default to the last observed ones."""
        return await self._escalate(
            AlertKind.MANUAL,
            Severity.CRITICAL,
            MANUAL_MESSAGE,
            vitals if vitals is not None else self._last_vitals,
        )

    async def send_test_alert(self) -> EscalationResult:
        """Verify the delivery path without touching the cooldown clock."""
        return await self._escalate(
            AlertKind.TEST,
            Severity.LOW,
            TEST_MESSAGE,
            self._last_vitals,
            governed=False,
        )

    async def _escalate(
        self,
        kind: AlertKind,
        severity: Severity,
        message: str,
        vitals: VitalsSnapshot | None,
        *,
        governed: bool = True,
    ) -> EscalationResult:
        async with self._lock:
            contact = self._contact
            if contact is None:
                logger.error("escalation.no_contact", kind=kind.value)
                return EscalationResult(
                    EscalationStatus.CONFIGURATION_ERROR,
                    detail="no emergency contact configured",
                )

            now = self._clock()
            if governed and self.in_cooldown(now):
                logger.info(
                    "escalation.suppressed",
                    kind=kind.value,
                    remaining_s=round(self.cooldown_remaining(now).total_seconds(), 1),
                )
                return EscalationResult(EscalationStatus.SUPPRESSED)

            record = AlertRecord(
                kind=kind,
                severity=severity,
                message=message,
                timestamp=now,
                vitals=vitals,
                location=self.current_location(),
            )
            if governed:
                self._last_alert_time = now
            self._history.appendleft(record)

        logger.warning(
            "escalation.alert_raised",
            alert_id=record.id,
            kind=kind.value,
            severity=severity.value,
            message=message,
        )
        await self._dispatch(record, contact)
        status = EscalationStatus.DISPATCHED if record.sent else EscalationStatus.FAILED
        return EscalationResult(status, record, record.dispatch_error)

    async def _dispatch(self, record: AlertRecord, contact: EmergencyContact) -> None:
        try:
            result = await asyncio.wait_for(
                self._dispatcher.dispatch(record, contact),
                timeout=self._dispatch_timeout,
            )
        except asyncio.TimeoutError:
            record.sent = False
            record.dispatch_error = f"dispatch timed out after {self._dispatch_timeout:g}s"
        except Exception as exc:
            logger.exception("escalation.dispatch_error", alert_id=record.id)
            record.sent = False
            record.dispatch_error = str(exc) or type(exc).__name__
        else:
            record.sent = result.delivered
            if not result.sent and not result.failed:
                record.dispatch_error = "no delivery channel accepted the alert"
            elif result.failed:
                record.dispatch_error = f"failed channels: {', '.join(result.failed)}"

        if record.sent:
            logger.info("escalation.dispatched", alert_id=record.id)
        else:
            logger.error("escalation.dispatch_failed", alert_id=record.id, error=record.dispatch_error)
