"""Tests for the mood classifier façade and trend summaries."""

from datetime import datetime, timedelta

import numpy as np
import pytest

from neurofit_monitor.classification import MoodClassifier
from neurofit_monitor.classification.classifier import parse_label
from neurofit_monitor.classification.features import normalize_reading
from neurofit_monitor.classification.model import ModelState
from neurofit_monitor.models import MOOD_LABELS, ClassificationMethod, MoodLabel, Reading


class StubModel:
    """Pretends to be ready and returns whatever ``probs`` says."""

    def __init__(self, probs=None, error=None):
        self.probs = probs
        self.error = error
        self.samples = []

    def is_ready(self):
        return True

    def normalize(self, reading):
        return normalize_reading(reading)

    def predict_proba(self, features):
        if self.error is not None:
            raise self.error
        return self.probs


NOW = datetime(2024, 6, 1, 12, 0, 0)


class TestClassify:
    def test_rule_based_without_model(self, calm_reading):
        classifier = MoodClassifier()
        result = classifier.classify(calm_reading)
        assert result.method == ClassificationMethod.RULE_BASED
        assert result.label == MoodLabel.CALM
        assert result.confidence == pytest.approx(0.85)
        assert sum(result.probabilities) == pytest.approx(1.0)
        assert result.relaxation_level == pytest.approx(71.0)
        assert result.timestamp == calm_reading.timestamp
        assert len(result.features) == 8

    def test_untrained_model_falls_back(self, calm_reading):
        model = ModelState()
        try:
            result = MoodClassifier(model).classify(calm_reading)
        finally:
            model.close()
        assert result.method == ClassificationMethod.RULE_BASED

    def test_statistical_with_trained_model(self, trained_model, calm_reading):
        result = MoodClassifier(trained_model).classify(calm_reading)
        assert result.method == ClassificationMethod.STATISTICAL
        assert len(result.probabilities) == len(MOOD_LABELS)
        assert sum(result.probabilities) == pytest.approx(1.0, abs=1e-6)
        assert result.confidence == pytest.approx(max(result.probabilities))
        assert result.label == MOOD_LABELS[int(np.argmax(result.probabilities))]

    def test_statistical_path_uses_model_probabilities(self, calm_reading):
        probs = np.array([0.05, 0.05, 0.6, 0.1, 0.1, 0.1])
        result = MoodClassifier(StubModel(probs)).classify(calm_reading)
        assert result.method == ClassificationMethod.STATISTICAL
        assert result.label == MoodLabel.STRESSED
        assert result.confidence == pytest.approx(0.6)
        assert result.probability_of(MoodLabel.STRESSED) == pytest.approx(0.6)
        # Derived metrics come from the reading, not the network
        assert result.stress_level == 0.0

    def test_inference_error_falls_back(self, calm_reading):
        result = MoodClassifier(StubModel(error=RuntimeError("cuda gone"))).classify(calm_reading)
        assert result.method == ClassificationMethod.RULE_BASED
        assert result.label == MoodLabel.CALM

    @pytest.mark.parametrize(
        "probs",
        [
            np.array([np.nan, 0.2, 0.2, 0.2, 0.2, 0.2]),
            np.array([0.5, 0.5]),
        ],
    )
    def test_unusable_probabilities_fall_back(self, calm_reading, probs):
        result = MoodClassifier(StubModel(probs)).classify(calm_reading)
        assert result.method == ClassificationMethod.RULE_BASED

    def test_history_is_bounded(self):
        classifier = MoodClassifier(history_size=3)
        readings = [Reading(heart_rate=60 + i) for i in range(5)]
        for r in readings:
            classifier.classify(r)
        assert len(classifier.history) == 3
        assert classifier.latest().timestamp == readings[-1].timestamp

        classifier.clear_history()
        assert classifier.history == []
        assert classifier.latest() is None


class TestTrends:
    @pytest.fixture
    def classifier(self, calm_reading):
        classifier = MoodClassifier()
        stressed = Reading(alpha=0.1, beta=0.9, gamma=0.5, heart_rate=120, stress_index=80)
        for age, reading in [
            (timedelta(minutes=30), stressed),
            (timedelta(hours=2), calm_reading),
            (timedelta(days=3), calm_reading),
            (timedelta(days=10), calm_reading),
        ]:
            classifier.classify(reading.model_copy(update={"timestamp": NOW - age}))
        return classifier

    @pytest.mark.parametrize(("window", "total"), [("1h", 1), ("24h", 2), ("7d", 3)])
    def test_windows(self, classifier, window, total):
        trends = classifier.get_trends(window, now=NOW)
        assert trends.window == window
        assert trends.total == total

    def test_distribution(self, classifier):
        trends = classifier.get_trends("24h", now=NOW)
        assert set(trends.distribution) == {label.value for label in MOOD_LABELS}
        assert trends.distribution["Stressed"] == 1
        assert trends.distribution["Calm"] == 1
        assert trends.methods == {"statistical": 0, "rule-based": 2}
        assert trends.average_metrics["stress"] == pytest.approx(50.0)

    def test_unknown_window_defaults_to_a_day(self, classifier):
        trends = classifier.get_trends("fortnight", now=NOW)
        assert trends.window == "24h"
        assert trends.total == 2

    def test_timedelta_window(self, classifier):
        trends = classifier.get_trends(timedelta(hours=3), now=NOW)
        assert trends.window == "10800s"
        assert trends.total == 2

    def test_empty(self):
        trends = MoodClassifier().get_trends("1h", now=NOW)
        assert trends.total == 0
        assert trends.average_metrics == {"stress": 0.0, "focus": 0.0, "relaxation": 0.0}


class TestCorrections:
    @pytest.mark.parametrize("text", ["Stressed", "stressed", "STRESSED", " Stressed "])
    def test_parse_label(self, text):
        assert parse_label(text) == MoodLabel.STRESSED

    def test_parse_unknown_label(self):
        assert parse_label("Happy") is None

    def test_correction_is_added(self, calm_reading):
        model = ModelState(min_training_samples=10_000)
        try:
            classifier = MoodClassifier(model)
            assert classifier.add_correction(calm_reading, "tired") is True
            assert model.correction_count == 1
            assert model.corpus_size == 1
        finally:
            model.close()

    def test_unknown_label_is_rejected(self, calm_reading):
        model = ModelState()
        try:
            assert MoodClassifier(model).add_correction(calm_reading, "Happy") is False
            assert model.corpus_size == 0
        finally:
            model.close()

    def test_correction_without_model(self, calm_reading):
        assert MoodClassifier().add_correction(calm_reading, MoodLabel.CALM) is False
