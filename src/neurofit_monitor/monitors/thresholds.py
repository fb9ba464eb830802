"""Emergency threshold engine: vital signs against a severity-tiered profile."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from neurofit_monitor.exceptions import UnknownProfileError
from neurofit_monitor.models import ConditionKind, EmergencyCondition, Reading, Severity

logger = structlog.get_logger(__name__)

# Stress above this is critical whichever profile is active.
STRESS_CRITICAL_CEILING = 95.0


@dataclass(frozen=True, slots=True)
class ThresholdProfile:
    """Named bounds for stress, heart rate and oxygen saturation."""

    name: str
    stress: float
    heart_rate_min: float
    heart_rate_max: float
    spo2_min: float
    stress_critical: float = STRESS_CRITICAL_CEILING


PROFILES: dict[str, ThresholdProfile] = {
    "high": ThresholdProfile("high", stress=80, heart_rate_min=45, heart_rate_max=130, spo2_min=88),
    "critical": ThresholdProfile("critical", stress=90, heart_rate_min=40, heart_rate_max=140, spo2_min=85),
    "extreme": ThresholdProfile("extreme", stress=95, heart_rate_min=35, heart_rate_max=150, spo2_min=80),
}


def get_profile(name: str) -> ThresholdProfile:
    try:
        return PROFILES[name.strip().lower()]
    except KeyError:
        raise UnknownProfileError(name) from None


class ThresholdEngine:
    """Stateless apart from the active profile.

    Each vital is checked independently, so a single reading can raise
    several conditions.  Vitals missing from the reading are skipped.
    """

    def __init__(self, profile: ThresholdProfile | str = "high") -> None:
        self._profile = get_profile(profile) if isinstance(profile, str) else profile

    @property
    def profile(self) -> ThresholdProfile:
        return self._profile

    def set_profile(self, profile: ThresholdProfile | str) -> ThresholdProfile:
        self._profile = get_profile(profile) if isinstance(profile, str) else profile
        logger.info("thresholds.profile_changed", profile=self._profile.name)
        return self._profile

    def evaluate(self, reading: Reading) -> list[EmergencyCondition]:
        p = self._profile
        conditions: list[EmergencyCondition] = []

        if reading.stress_index is not None and reading.stress_index > p.stress:
            severity = Severity.CRITICAL if reading.stress_index > p.stress_critical else Severity.HIGH
            conditions.append(EmergencyCondition(
                kind=ConditionKind.HIGH_STRESS, severity=severity, reading=reading,
            ))

        hr = reading.heart_rate
        if hr is not None and (hr < p.heart_rate_min or hr > p.heart_rate_max):
            conditions.append(EmergencyCondition(
                kind=ConditionKind.ABNORMAL_HEART_RATE, severity=Severity.HIGH, reading=reading,
            ))

        if reading.spo2 is not None and reading.spo2 < p.spo2_min:
            conditions.append(EmergencyCondition(
                kind=ConditionKind.LOW_OXYGEN, severity=Severity.CRITICAL, reading=reading,
            ))

        for c in conditions:
            logger.info(
                "thresholds.condition_raised",
                kind=c.kind.value,
                severity=c.severity.value,
                profile=p.name,
            )
        return conditions
