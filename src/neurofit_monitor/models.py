"""Shared Pydantic models used across the monitoring core."""

from __future__ import annotations

import math
import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

# ── Enums ─────────────────────────────────────────────────────


class MoodLabel(str, Enum):
    """Closed set of mood classes, in model output order."""

    CALM = "Calm"
    FOCUSED = "Focused"
    STRESSED = "Stressed"
    ANXIOUS = "Anxious"
    EXCITED = "Excited"
    TIRED = "Tired"


MOOD_LABELS: tuple[MoodLabel, ...] = tuple(MoodLabel)


class ClassificationMethod(str, Enum):
    """Which classifier variant produced a result."""

    STATISTICAL = "statistical"
    RULE_BASED = "rule-based"


class Severity(str, Enum):
    """Escalation tier of an alert."""

    LOW = "low"
    HIGH = "high"
    CRITICAL = "critical"


class ConditionKind(str, Enum):
    """Vital-sign conditions raised by the threshold engine."""

    HIGH_STRESS = "high_stress"
    ABNORMAL_HEART_RATE = "abnormal_heart_rate"
    LOW_OXYGEN = "low_oxygen"


class AlertKind(str, Enum):
    """Everything that can end up in the alert history."""

    HIGH_STRESS = "high_stress"
    ABNORMAL_HEART_RATE = "abnormal_heart_rate"
    LOW_OXYGEN = "low_oxygen"
    MANUAL = "manual"
    TEST = "test"


# ── Readings ──────────────────────────────────────────────────

_BAND_FIELDS = ("alpha", "beta", "theta", "delta", "gamma")
_SCORE_FIELDS = ("attention", "meditation")
_VITAL_FIELDS = ("heart_rate", "spo2", "stress_index")


def _coerce_number(value: Any) -> float | None:
    """Turn anything into a finite float, or ``None`` when that is impossible."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


_DATETIME = TypeAdapter(datetime)


def _coerce_timestamp(value: Any) -> datetime:
    """Naive-UTC datetime from an ISO string, epoch number or datetime.

    Anything unparseable becomes the current time.
    """
    if value is None:
        return datetime.utcnow()
    try:
        parsed = _DATETIME.validate_python(value)
    except ValidationError:
        return datetime.utcnow()
    if parsed.tzinfo is not None:
        return parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class VitalsSnapshot(BaseModel):
    """Cardiovascular vitals captured at a point in time."""

    heart_rate: float | None = None
    spo2: float | None = None
    stress_index: float | None = None


class Reading(BaseModel):
    """A decoded sensor frame: EEG band powers plus vitals.

    Malformed fields never raise: non-numeric or non-finite values are
    treated as missing and an unparseable timestamp becomes the arrival
    time.  Band powers are clamped to [0, 1] and the auxiliary attention /
    meditation scores to [0, 100].
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=datetime.utcnow)

    # ── EEG band powers (fractions)
    alpha: float | None = None
    beta: float | None = None
    theta: float | None = None
    delta: float | None = None
    gamma: float | None = None

    # ── Vitals
    heart_rate: float | None = None
    spo2: float | None = None
    stress_index: float | None = None

    # ── Vendor auxiliary scores (0-100)
    attention: float | None = None
    meditation: float | None = None

    @field_validator(*_BAND_FIELDS, mode="before")
    @classmethod
    def _clamp_band(cls, value: Any) -> float | None:
        number = _coerce_number(value)
        if number is None:
            return None
        return min(max(number, 0.0), 1.0)

    @field_validator(*_SCORE_FIELDS, mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> float | None:
        number = _coerce_number(value)
        if number is None:
            return None
        return min(max(number, 0.0), 100.0)

    @field_validator(*_VITAL_FIELDS, mode="before")
    @classmethod
    def _finite_vital(cls, value: Any) -> float | None:
        return _coerce_number(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _naive_utc(cls, value: Any) -> datetime:
        return _coerce_timestamp(value)

    def band(self, name: str) -> float:
        """Band power with missing values read as 0.0."""
        value = getattr(self, name)
        return 0.0 if value is None else value

    def vitals(self) -> VitalsSnapshot:
        return VitalsSnapshot(
            heart_rate=self.heart_rate,
            spo2=self.spo2,
            stress_index=self.stress_index,
        )

    @property
    def has_vitals(self) -> bool:
        return any(getattr(self, f) is not None for f in _VITAL_FIELDS)


# ── Classification ────────────────────────────────────────────


class ClassificationResult(BaseModel):
    """Mood estimate plus derived wellness metrics for one reading."""

    label: MoodLabel
    confidence: float = Field(ge=0.0, le=1.0)
    probabilities: list[float]
    stress_level: float = Field(ge=0.0, le=100.0)
    focus_level: float = Field(ge=0.0, le=100.0)
    relaxation_level: float = Field(ge=0.0, le=100.0)
    method: ClassificationMethod
    features: list[float] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    def probability_of(self, label: MoodLabel) -> float:
        return self.probabilities[MOOD_LABELS.index(label)]


# ── Emergency ─────────────────────────────────────────────────


class EmergencyCondition(BaseModel):
    """A threshold breach detected on a single reading."""

    kind: ConditionKind
    severity: Severity
    reading: Reading


class LocationFix(BaseModel):
    """Best-known device location."""

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    accuracy: float | None = None  # metres
    timestamp: datetime = Field(default_factory=datetime.utcnow)


_PHONE_RE = re.compile(r"^[+]?[1-9]\d{0,15}$")


class EmergencyContact(BaseModel):
    """Destination for emergency alerts: a phone number and/or an endpoint."""

    name: str = Field(min_length=1)
    phone: str | None = None
    endpoint: str | None = None

    @field_validator("phone")
    @classmethod
    def _valid_phone(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        compact = re.sub(r"[\s\-()]", "", value)
        if not _PHONE_RE.match(compact):
            raise ValueError(f"invalid phone number: {value!r}")
        return compact

    @model_validator(mode="after")
    def _has_destination(self) -> EmergencyContact:
        if not self.phone and not self.endpoint:
            raise ValueError("an emergency contact needs a phone number or an endpoint")
        return self


class AlertRecord(BaseModel):
    """One escalated alert and its delivery outcome."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: AlertKind
    severity: Severity
    message: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    vitals: VitalsSnapshot | None = None
    location: LocationFix | None = None
    sent: bool = False
    dispatch_error: str | None = None
