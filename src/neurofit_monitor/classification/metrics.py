"""Derived wellness metrics: stress, focus and relaxation scores (0-100)."""

from __future__ import annotations

from dataclasses import dataclass

from neurofit_monitor.models import Reading


@dataclass(frozen=True, slots=True)
class DerivedMetrics:
    stress: float
    focus: float
    relaxation: float


def _clamp(score: float) -> float:
    return min(max(score, 0.0), 100.0)


def stress_level(reading: Reading) -> float:
    """Additive stress score from band powers and (when present) vitals."""
    alpha, beta, gamma = reading.band("alpha"), reading.band("beta"), reading.band("gamma")
    score = 0.0

    if beta > 0.5:
        score += (beta - 0.5) * 100
    if alpha < 0.3:
        score += (0.3 - alpha) * 50
    if gamma > 0.3:
        score += (gamma - 0.3) * 80

    if reading.heart_rate is not None and reading.heart_rate > 90:
        score += (reading.heart_rate - 90) * 2
    if reading.stress_index is not None:
        score += reading.stress_index * 0.5
    if reading.spo2 is not None and reading.spo2 < 96:
        score += (96 - reading.spo2) * 10

    return _clamp(score)


def focus_level(reading: Reading) -> float:
    beta, theta, gamma = reading.band("beta"), reading.band("theta"), reading.band("gamma")
    score = 0.0

    # Mid-band beta tracks sustained attention
    if 0.3 < beta < 0.7:
        score += 60
    if theta < 0.3:
        score += 30
    if 0.2 < gamma < 0.4:
        score += 20

    if reading.attention is not None:
        score = (score + reading.attention) / 2

    return _clamp(score)


def relaxation_level(reading: Reading) -> float:
    alpha, beta, gamma = reading.band("alpha"), reading.band("beta"), reading.band("gamma")
    score = 0.0

    if alpha > 0.4:
        score += alpha * 80
    if beta < 0.4:
        score += (0.4 - beta) * 50
    if gamma < 0.2:
        score += (0.2 - gamma) * 40

    if reading.meditation is not None:
        score = (score + reading.meditation) / 2

    return _clamp(score)


def compute_metrics(reading: Reading) -> DerivedMetrics:
    """All three scores for *reading*."""
    return DerivedMetrics(
        stress=stress_level(reading),
        focus=focus_level(reading),
        relaxation=relaxation_level(reading),
    )
