"""Shared pytest fixtures."""

from __future__ import annotations

import os
import tempfile
from datetime import datetime, timedelta

# Settings are read once per process; point them at a throwaway data dir
# before anything imports neurofit_monitor.config.
_TMP = tempfile.mkdtemp(prefix="neurofit-tests-")
os.environ.setdefault("NEUROFIT_DATA_DIR", _TMP)
os.environ.setdefault("NEUROFIT_DATABASE_URL", f"sqlite+aiosqlite:///{_TMP}/neurofit-test.db")
os.environ.setdefault("NEUROFIT_MODEL_DIR", os.path.join(_TMP, "models"))
os.environ.setdefault("NEUROFIT_MODEL_BOOTSTRAP_ON_START", "false")
os.environ.setdefault("NEUROFIT_EMERGENCY_CONTACT_NAME", "Test Contact")
os.environ.setdefault("NEUROFIT_EMERGENCY_CONTACT_PHONE", "+15550001111")

import pytest  # noqa: E402

from neurofit_monitor.classification.model import ModelState  # noqa: E402
from neurofit_monitor.classification.network import NetworkConfig  # noqa: E402
from neurofit_monitor.classification.persistence import InMemoryParameterStore  # noqa: E402
from neurofit_monitor.models import EmergencyContact, Reading  # noqa: E402
from neurofit_monitor.monitors.escalation import AlertEscalationController  # noqa: E402
from neurofit_monitor.notifications.handlers import NotificationDispatcher  # noqa: E402


class FakeClock:
    """Manually advanced clock for cooldown tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def calm_reading() -> Reading:
    return Reading(alpha=0.65, beta=0.18, theta=0.3, heart_rate=63)


@pytest.fixture
def tachycardia_reading() -> Reading:
    return Reading(heart_rate=150, spo2=99, stress_index=10)


@pytest.fixture
def critical_stress_reading() -> Reading:
    return Reading(heart_rate=80, spo2=98, stress_index=97)


@pytest.fixture
def contact() -> EmergencyContact:
    return EmergencyContact(name="Jordan Doe", phone="+1 (555) 010-2030")


@pytest.fixture
def dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()


@pytest.fixture
def controller(dispatcher, contact, clock) -> AlertEscalationController:
    return AlertEscalationController(dispatcher, contact=contact, clock=clock)


@pytest.fixture(scope="module")
def trained_model():
    """Small bootstrapped model shared by a test module (treat as read-only)."""
    model = ModelState(
        InMemoryParameterStore(),
        config=NetworkConfig(epochs=8),
        synthetic_samples=600,
        seed=11,
    )
    model.start(wait=True)
    yield model
    model.close()
