"""Tests for the monitoring session and its wiring helpers."""

import pytest

from neurofit_monitor.classification import InMemoryParameterStore, MoodClassifier
from neurofit_monitor.config import Settings
from neurofit_monitor.exceptions import ConfigurationError, UnknownProfileError
from neurofit_monitor.models import AlertKind, ConditionKind, MoodLabel, Reading
from neurofit_monitor.monitors.escalation import EscalationStatus
from neurofit_monitor.monitors.thresholds import ThresholdEngine
from neurofit_monitor.notifications import NotificationDispatcher
from neurofit_monitor.session import (
    MonitoringSession,
    RepositorySink,
    contact_from_settings,
    create_session,
)
from neurofit_monitor.storage.database import dispose_engine, init_db
from neurofit_monitor.storage.repository import AlertRepository, ClassificationRepository


class RecordingSink:
    def __init__(self):
        self.classifications = []
        self.alerts = []

    async def save_classification(self, result, reading):
        self.classifications.append((result, reading))

    async def save_alert(self, record):
        self.alerts.append(record)


class FailingSink:
    async def save_classification(self, result, reading):
        raise OSError("disk full")

    async def save_alert(self, record):
        raise OSError("disk full")


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def session(controller, sink):
    return MonitoringSession(MoodClassifier(), ThresholdEngine(), controller, sink=sink)


class TestProcessReading:
    async def test_normal_reading(self, session, sink, calm_reading):
        outcome = await session.process_reading(calm_reading)
        await session.flush()
        assert outcome.classification.label == MoodLabel.CALM
        assert outcome.conditions == []
        assert outcome.alerts == []
        assert sink.classifications == [(outcome.classification, calm_reading)]
        assert sink.alerts == []

    async def test_breach_is_escalated_and_recorded(self, session, sink, tachycardia_reading):
        outcome = await session.process_reading(tachycardia_reading)
        await session.flush()
        assert [c.kind for c in outcome.conditions] == [ConditionKind.ABNORMAL_HEART_RATE]
        assert outcome.escalations[0].status == EscalationStatus.DISPATCHED
        assert sink.alerts == outcome.alerts
        assert session.alert_history() == outcome.alerts

    async def test_second_breach_is_suppressed(self, session, sink, tachycardia_reading):
        await session.process_reading(tachycardia_reading)
        outcome = await session.process_reading(tachycardia_reading)
        await session.flush()
        assert outcome.escalations[0].status == EscalationStatus.SUPPRESSED
        assert outcome.alerts == []
        assert len(sink.alerts) == 1
        assert len(sink.classifications) == 2

    async def test_failing_sink_does_not_leak(self, controller, tachycardia_reading):
        session = MonitoringSession(MoodClassifier(), ThresholdEngine(), controller, sink=FailingSink())
        outcome = await session.process_reading(tachycardia_reading)
        await session.flush()
        assert outcome.alerts[0].sent is True

    async def test_classify_remembers_vitals(self, session, tachycardia_reading):
        session.classify(tachycardia_reading)
        result = await session.trigger_manual_alert()
        assert result.record.vitals.heart_rate == 150


class TestAlerts:
    async def test_manual_and_test_alerts_are_recorded(self, session, sink):
        manual = await session.trigger_manual_alert()
        test = await session.send_test_alert()
        await session.flush()
        assert [a.kind for a in sink.alerts] == [AlertKind.MANUAL, AlertKind.TEST]
        assert session.alert_history() == [test.record, manual.record]

    async def test_configuration_error_is_not_recorded(self, session, sink):
        session.set_contact(None)
        result = await session.send_test_alert()
        await session.flush()
        assert result.status == EscalationStatus.CONFIGURATION_ERROR
        assert sink.alerts == []


class TestSessionState:
    async def test_recommendations_follow_latest_result(self, session, calm_reading):
        assert session.recommendations() == []
        session.classify(calm_reading)
        recs = session.recommendations()
        assert [r.type for r in recs] == ["maintenance"]

    async def test_profile(self, session):
        assert session.set_profile("critical").name == "critical"
        with pytest.raises(UnknownProfileError):
            session.set_profile("mild")

    async def test_status(self, session, clock, tachycardia_reading):
        await session.process_reading(tachycardia_reading)
        clock.advance(100)
        status = session.status()
        assert status["model_ready"] is False
        assert status["threshold_profile"] == "high"
        assert status["contact_configured"] is True
        assert status["in_cooldown"] is True
        assert status["cooldown_remaining_seconds"] == 200.0
        assert status["alerts"] == 1
        assert status["classifications"] == 1

    async def test_monitoring_toggle(self, session, tachycardia_reading):
        session.set_monitoring(False)
        outcome = await session.process_reading(tachycardia_reading)
        assert outcome.escalations[0].status == EscalationStatus.MONITORING_DISABLED
        assert session.status()["monitoring_enabled"] is False


class TestWiring:
    def test_contact_from_settings(self):
        contact = contact_from_settings(Settings(emergency_contact_name="Kim", emergency_contact_phone="+44 20 7946 0958"))
        assert contact.name == "Kim"
        assert contact.phone == "+442079460958"

    def test_no_contact_configured(self):
        assert contact_from_settings(Settings(emergency_contact_name="")) is None

    def test_invalid_contact(self):
        with pytest.raises(ConfigurationError):
            contact_from_settings(Settings(emergency_contact_name="Kim", emergency_contact_phone="call me"))

    async def test_create_session(self):
        settings = Settings(threshold_profile="extreme", alert_cooldown_seconds=60, history_size=5)
        session = create_session(
            settings, store=InMemoryParameterStore(), dispatcher=NotificationDispatcher(),
        )
        try:
            session.start(bootstrap=False)
            assert session.model is not None
            assert not session.is_ready()
            assert session.engine.profile.name == "extreme"
            assert session.controller.cooldown.total_seconds() == 60
            assert session.controller.contact.name == "Test Contact"
            result = session.classify(Reading(heart_rate=70))
            assert result.method.value == "rule-based"
        finally:
            await session.close()


class TestRepositorySink:
    async def test_history_is_persisted(self, controller, tachycardia_reading):
        await init_db()
        try:
            classifications = ClassificationRepository()
            alerts = AlertRepository()
            before = await classifications.count()

            session = MonitoringSession(MoodClassifier(), ThresholdEngine(), controller, sink=RepositorySink())
            outcome = await session.process_reading(tachycardia_reading)
            await session.flush()

            assert await classifications.count() == before + 1
            stored = {row.id: row for row in await alerts.get_latest(100)}
            row = stored[outcome.alerts[0].id]
            assert row.kind == "abnormal_heart_rate"
            assert row.heart_rate == 150
            assert row.sent is True
        finally:
            await dispose_engine()
