"""Monitoring session: the single object collaborators talk to.

A session owns one classifier (with its model state), one threshold engine
and one escalation controller, all passed in explicitly.  Results destined
for long-term history go to an optional sink as fire-and-forget tasks; a
failing sink is logged and never changes what the caller gets back.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Coroutine, Protocol

import structlog
from pydantic import ValidationError

from neurofit_monitor.classification.classifier import MoodClassifier, TrendSummary
from neurofit_monitor.classification.model import ModelState
from neurofit_monitor.classification.network import NetworkConfig
from neurofit_monitor.classification.persistence import FileParameterStore, ParameterStore
from neurofit_monitor.classification.recommendations import Recommendation, get_recommendations
from neurofit_monitor.config import Settings
from neurofit_monitor.exceptions import ConfigurationError
from neurofit_monitor.models import (
    AlertRecord,
    ClassificationResult,
    EmergencyCondition,
    EmergencyContact,
    LocationFix,
    MoodLabel,
    Reading,
    VitalsSnapshot,
)
from neurofit_monitor.monitors.escalation import (
    AlertEscalationController,
    EscalationResult,
    LocationProvider,
)
from neurofit_monitor.monitors.thresholds import ThresholdEngine, ThresholdProfile
from neurofit_monitor.notifications.handlers import NotificationDispatcher, create_dispatcher
from neurofit_monitor.storage.repository import AlertRepository, ClassificationRepository

logger = structlog.get_logger(__name__)


class HistorySink(Protocol):
    """Append-only destination for classifications and alerts."""

    async def save_classification(self, result: ClassificationResult, reading: Reading) -> None: ...

    async def save_alert(self, record: AlertRecord) -> None: ...


class RepositorySink:
    """:class:`HistorySink` backed by the SQLAlchemy repositories."""

    def __init__(self) -> None:
        self._classifications = ClassificationRepository()
        self._alerts = AlertRepository()

    async def save_classification(self, result: ClassificationResult, reading: Reading) -> None:
        await self._classifications.save(result, reading)

    async def save_alert(self, record: AlertRecord) -> None:
        await self._alerts.save(record)


@dataclass
class ReadingOutcome:
    """Everything one reading produced."""

    classification: ClassificationResult
    conditions: list[EmergencyCondition] = field(default_factory=list)
    escalations: list[EscalationResult] = field(default_factory=list)

    @property
    def alerts(self) -> list[AlertRecord]:
        return [e.record for e in self.escalations if e.record is not None]


class MonitoringSession:
    """Classification and emergency escalation for one reading stream."""

    def __init__(
        self,
        classifier: MoodClassifier,
        engine: ThresholdEngine,
        controller: AlertEscalationController,
        *,
        sink: HistorySink | None = None,
    ) -> None:
        self._classifier = classifier
        self._engine = engine
        self._controller = controller
        self._sink = sink
        self._tasks: set[asyncio.Task] = set()

    # ── Accessors ─────────────────────────────────────────────

    @property
    def classifier(self) -> MoodClassifier:
        return self._classifier

    @property
    def engine(self) -> ThresholdEngine:
        return self._engine

    @property
    def controller(self) -> AlertEscalationController:
        return self._controller

    @property
    def model(self) -> ModelState | None:
        return self._classifier.model

    # ── Lifecycle ─────────────────────────────────────────────

    def start(self, *, wait: bool = False, bootstrap: bool = True) -> None:
        """Restore or bootstrap the statistical model."""
        if self.model is not None:
            self.model.start(wait=wait, bootstrap=bootstrap)

    async def flush(self) -> None:
        """Wait for outstanding history writes."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.flush()
        if self.model is not None:
            self.model.close()

    # ── Core operations ───────────────────────────────────────

    def classify(self, reading: Reading) -> ClassificationResult:
        self._controller.observe(reading)
        return self._classifier.classify(reading)

    def evaluate_emergency(self, reading: Reading) -> list[EmergencyCondition]:
        return self._engine.evaluate(reading)

    async def handle_condition(self, condition: EmergencyCondition) -> EscalationResult:
        result = await self._controller.handle_condition(condition)
        self._record_alert(result)
        return result

    async def trigger_manual_alert(self, vitals: VitalsSnapshot | None = None) -> EscalationResult:
        result = await self._controller.trigger_manual_alert(vitals)
        self._record_alert(result)
        return result

    async def send_test_alert(self) -> EscalationResult:
        result = await self._controller.send_test_alert()
        self._record_alert(result)
        return result

    async def process_reading(self, reading: Reading) -> ReadingOutcome:
        """Classify *reading*, evaluate its vitals and escalate any breach."""
        classification = self.classify(reading)
        if self._sink is not None:
            self._spawn(self._sink.save_classification(classification, reading), "classification")

        conditions = self.evaluate_emergency(reading)
        escalations = [await self.handle_condition(c) for c in conditions]
        return ReadingOutcome(classification, conditions, escalations)

    def add_correction(self, reading: Reading, label: MoodLabel | str) -> bool:
        return self._classifier.add_correction(reading, label)

    def get_trends(self, window: str | timedelta = "24h") -> TrendSummary:
        return self._classifier.get_trends(window)

    def recommendations(self) -> list[Recommendation]:
        latest = self._classifier.latest()
        if latest is None:
            return []
        return get_recommendations(latest.label, latest.stress_level)

    def is_ready(self) -> bool:
        return self.model is not None and self.model.is_ready()

    def is_training(self) -> bool:
        return self.model is not None and self.model.is_training()

    # ── Runtime configuration ─────────────────────────────────

    def set_profile(self, name: str) -> ThresholdProfile:
        return self._engine.set_profile(name)

    def set_contact(self, contact: EmergencyContact | None) -> None:
        self._controller.set_contact(contact)

    def set_monitoring(self, enabled: bool) -> None:
        self._controller.set_monitoring(enabled)

    def set_location(self, fix: LocationFix | None) -> None:
        self._controller.set_location(fix)

    def alert_history(self) -> list[AlertRecord]:
        return self._controller.history

    def status(self) -> dict[str, Any]:
        ctrl = self._controller
        return {
            "model_ready": self.is_ready(),
            "model_training": self.is_training(),
            "threshold_profile": self._engine.profile.name,
            "monitoring_enabled": ctrl.monitoring_enabled,
            "contact_configured": ctrl.contact is not None,
            "in_cooldown": ctrl.in_cooldown(),
            "cooldown_remaining_seconds": ctrl.cooldown_remaining().total_seconds(),
            "last_alert_time": ctrl.last_alert_time.isoformat() if ctrl.last_alert_time else None,
            "alerts": len(ctrl.history),
            "classifications": len(self._classifier.history),
        }

    # ── Internals ─────────────────────────────────────────────

    def _record_alert(self, result: EscalationResult) -> None:
        if self._sink is not None and result.record is not None:
            self._spawn(self._sink.save_alert(result.record), "alert")

    def _spawn(self, coro: Coroutine[Any, Any, None], what: str) -> None:
        task = asyncio.create_task(self._guarded(coro, what))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _guarded(coro: Coroutine[Any, Any, None], what: str) -> None:
        try:
            await coro
        except Exception as exc:
            logger.error("session.sink_failed", record=what, error=str(exc))


# ── Factory ───────────────────────────────────────────────────


def contact_from_settings(settings: Settings) -> EmergencyContact | None:
    """Emergency contact configured through the environment, if any."""
    if not settings.emergency_contact_name:
        return None
    try:
        return EmergencyContact(
            name=settings.emergency_contact_name,
            phone=settings.emergency_contact_phone or None,
            endpoint=settings.emergency_contact_endpoint or None,
        )
    except ValidationError as exc:
        raise ConfigurationError(f"invalid emergency contact: {exc}") from exc


def create_session(
    settings: Settings,
    *,
    store: ParameterStore | None = None,
    dispatcher: NotificationDispatcher | None = None,
    sink: HistorySink | None = None,
    location_provider: LocationProvider | None = None,
) -> MonitoringSession:
    """Wire a :class:`MonitoringSession` from application settings."""
    model = ModelState(
        store if store is not None else FileParameterStore(settings.model_dir),
        model_id=settings.model_id,
        config=NetworkConfig(
            learning_rate=settings.model_learning_rate,
            batch_size=settings.model_batch_size,
            epochs=settings.model_epochs,
        ),
        synthetic_samples=settings.model_synthetic_samples,
        retrain_every=settings.model_retrain_every,
        min_training_samples=settings.model_min_training_samples,
        seed=settings.model_random_seed,
    )
    controller = AlertEscalationController(
        dispatcher or create_dispatcher(settings),
        contact=contact_from_settings(settings),
        cooldown=settings.alert_cooldown_seconds,
        location_provider=location_provider,
        dispatch_timeout=settings.dispatch_timeout_seconds,
        enabled=settings.monitoring_enabled,
    )
    return MonitoringSession(
        MoodClassifier(model, history_size=settings.history_size),
        ThresholdEngine(settings.threshold_profile),
        controller,
        sink=sink,
    )
