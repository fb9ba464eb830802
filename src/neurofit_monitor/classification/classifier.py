"""Mood classifier façade: statistical path with a rule-based fallback.

Both paths produce the same :class:`ClassificationResult` shape; the
``method`` field records which one ran.  Classification never raises: an
untrained or failing network degrades to :func:`classify_by_rules`.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime, timedelta

import numpy as np
import structlog
from pydantic import BaseModel, Field

from neurofit_monitor.classification.features import normalize_reading
from neurofit_monitor.classification.metrics import DerivedMetrics, compute_metrics
from neurofit_monitor.classification.model import ModelState
from neurofit_monitor.classification.rules import classify_by_rules, rule_probabilities
from neurofit_monitor.models import (
    MOOD_LABELS,
    ClassificationMethod,
    ClassificationResult,
    MoodLabel,
    Reading,
)

logger = structlog.get_logger(__name__)

TREND_WINDOWS: dict[str, timedelta] = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
}
DEFAULT_TREND_WINDOW = "24h"


class TrendSummary(BaseModel):
    """Label distribution and average scores over a time window."""

    window: str
    total: int
    distribution: dict[str, int]
    average_metrics: dict[str, float]
    methods: dict[str, int] = Field(default_factory=dict)


def parse_label(value: MoodLabel | str) -> MoodLabel | None:
    """Resolve a label by value or name, case-insensitively."""
    if isinstance(value, MoodLabel):
        return value
    text = str(value).strip().lower()
    for label in MOOD_LABELS:
        if text in (label.value.lower(), label.name.lower()):
            return label
    return None


class MoodClassifier:
    """Classifies readings and keeps the most recent results.

    Parameters
    ----------
    model
        Statistical model state.  ``None`` runs rule-based only.
    history_size
        Number of results retained for :meth:`get_trends`.
    """

    def __init__(self, model: ModelState | None = None, *, history_size: int = 100) -> None:
        self._model = model
        self._history: deque[ClassificationResult] = deque(maxlen=history_size)

    @property
    def model(self) -> ModelState | None:
        return self._model

    # ── Classification ────────────────────────────────────────

    def classify(self, reading: Reading) -> ClassificationResult:
        metrics = compute_metrics(reading)
        if self._model is not None:
            features = self._model.normalize(reading)
        else:
            features = normalize_reading(reading)

        result: ClassificationResult | None = None
        if self._model is not None and self._model.is_ready():
            try:
                probs = self._model.predict_proba(features)
                result = self._statistical(reading, metrics, features, probs)
            except Exception as exc:
                logger.warning("classifier.inference_failed", error=str(exc))
        else:
            logger.debug("classifier.model_not_ready")

        if result is None:
            result = self._rule_based(reading, metrics, features)

        self._history.append(result)
        return result

    def _statistical(
        self,
        reading: Reading,
        metrics: DerivedMetrics,
        features: np.ndarray,
        probs: np.ndarray,
    ) -> ClassificationResult:
        if probs.shape != (len(MOOD_LABELS),) or not np.all(np.isfinite(probs)):
            raise ValueError(f"unusable probability vector {probs!r}")
        best = int(np.argmax(probs))
        return ClassificationResult(
            label=MOOD_LABELS[best],
            confidence=float(probs[best]),
            probabilities=[float(p) for p in probs],
            stress_level=metrics.stress,
            focus_level=metrics.focus,
            relaxation_level=metrics.relaxation,
            method=ClassificationMethod.STATISTICAL,
            features=[float(v) for v in features],
            timestamp=reading.timestamp,
        )

    def _rule_based(
        self,
        reading: Reading,
        metrics: DerivedMetrics,
        features: np.ndarray,
    ) -> ClassificationResult:
        decision = classify_by_rules(reading, metrics)
        return ClassificationResult(
            label=decision.label,
            confidence=decision.confidence,
            probabilities=rule_probabilities(decision.label, decision.confidence),
            stress_level=metrics.stress,
            focus_level=metrics.focus,
            relaxation_level=metrics.relaxation,
            method=ClassificationMethod.RULE_BASED,
            features=[float(v) for v in features],
            timestamp=reading.timestamp,
        )

    # ── Corrections ───────────────────────────────────────────

    def add_correction(self, reading: Reading, label: MoodLabel | str) -> bool:
        """Add *reading* with its true *label* to the training corpus."""
        mood = parse_label(label)
        if mood is None:
            logger.warning("classifier.correction_rejected", label=str(label))
            return False
        if self._model is None:
            logger.warning("classifier.correction_without_model", label=mood.value)
            return False
        self._model.add_sample(self._model.normalize(reading), mood)
        logger.info("classifier.correction_added", label=mood.value, total=self._model.correction_count)
        return True

    # ── History & trends ──────────────────────────────────────

    @property
    def history(self) -> list[ClassificationResult]:
        return list(self._history)

    def latest(self) -> ClassificationResult | None:
        return self._history[-1] if self._history else None

    def clear_history(self) -> None:
        self._history.clear()

    def get_trends(
        self,
        window: str | timedelta = DEFAULT_TREND_WINDOW,
        now: datetime | None = None,
    ) -> TrendSummary:
        """Summarise results newer than *window*.

        Accepts ``"1h"``, ``"24h"``, ``"7d"`` or a :class:`timedelta`;
        unknown strings fall back to 24 hours.
        """
        if isinstance(window, timedelta):
            span, name = window, f"{int(window.total_seconds())}s"
        else:
            name = window if window in TREND_WINDOWS else DEFAULT_TREND_WINDOW
            span = TREND_WINDOWS[name]
        since = (now or datetime.utcnow()) - span

        recent = [r for r in self._history if r.timestamp >= since]
        distribution = {label.value: 0 for label in MOOD_LABELS}
        methods = {m.value: 0 for m in ClassificationMethod}
        for r in recent:
            distribution[r.label.value] += 1
            methods[r.method.value] += 1

        n = len(recent)
        averages = {
            "stress": sum(r.stress_level for r in recent) / n if n else 0.0,
            "focus": sum(r.focus_level for r in recent) / n if n else 0.0,
            "relaxation": sum(r.relaxation_level for r in recent) / n if n else 0.0,
        }
        return TrendSummary(
            window=name,
            total=n,
            distribution=distribution,
            average_metrics=averages,
            methods=methods,
        )
