"""Tests for feature normalisation and the synthetic corpus."""

import math
from datetime import datetime

import numpy as np
import pytest

from neurofit_monitor.classification.features import (
    CLIP_SIGMA,
    FEATURE_COUNT,
    FEATURE_NAMES,
    FEATURE_STATS,
    normalize_matrix,
    normalize_reading,
    normalize_values,
    stats_from_dict,
    stats_to_dict,
)
from neurofit_monitor.classification.synthetic import (
    CLASS_DISTRIBUTIONS,
    class_means,
    generate_corpus,
    sample_class,
)
from neurofit_monitor.models import MOOD_LABELS, MoodLabel, Reading


class TestNormalizer:
    def test_vector_shape_and_order(self, calm_reading):
        vec = normalize_reading(calm_reading)
        assert vec.shape == (FEATURE_COUNT,)
        assert vec.dtype == np.float32
        assert FEATURE_NAMES[0] == "alpha"
        assert vec[0] == pytest.approx((0.65 - 0.30) / 0.15, abs=1e-5)
        assert vec[FEATURE_NAMES.index("heart_rate")] == pytest.approx((63 - 75) / 15, abs=1e-5)

    def test_missing_fields_use_defaults(self):
        vec = normalize_reading(Reading())
        expected = [(s.default - s.mean) / s.std for s in FEATURE_STATS]
        assert vec.tolist() == pytest.approx(expected, abs=1e-5)
        # Vitals default to their reference value, so they read as neutral
        assert vec[FEATURE_NAMES.index("heart_rate")] == 0.0
        assert vec[FEATURE_NAMES.index("spo2")] == 0.0
        assert vec[FEATURE_NAMES.index("stress_index")] == 0.0

    @pytest.mark.parametrize(
        "reading",
        [
            Reading(heart_rate=1e6, spo2=-50, stress_index=1e9),
            Reading(alpha=5, beta=-3, theta=1, delta=1, gamma=1),
            Reading(heart_rate=0, spo2=0, stress_index=-100),
            Reading(alpha=1, beta=1, theta=1, delta=1, gamma=1, heart_rate=180, spo2=100, stress_index=100),
        ],
    )
    def test_outputs_are_clipped(self, reading):
        vec = normalize_reading(reading)
        assert np.all(vec <= CLIP_SIGMA)
        assert np.all(vec >= -CLIP_SIGMA)

    @pytest.mark.parametrize(
        "field, value, expected",
        [
            ("heart_rate", 30.0, -3.0),
            ("heart_rate", 39.0, (39.0 - 75.0) / 15.0),
            ("heart_rate", 200.0, 3.0),
            ("stress_index", -20.0, -2.5),
        ],
    )
    def test_out_of_range_values_are_not_clamped_first(self, field, value, expected):
        idx = FEATURE_NAMES.index(field)
        assert normalize_reading(Reading(**{field: value}))[idx] == pytest.approx(expected, abs=1e-5)
        row = np.full((1, FEATURE_COUNT), np.nan)
        row[0, idx] = value
        assert normalize_matrix(row)[0, idx] == pytest.approx(expected, abs=1e-5)

    def test_malformed_values_are_treated_as_missing(self):
        reading = Reading(heart_rate=float("nan"), spo2="n/a", stress_index=float("inf"))
        assert reading.heart_rate is None
        assert reading.spo2 is None
        assert reading.stress_index is None
        vec = normalize_reading(reading)
        assert np.all(np.isfinite(vec))

    def test_malformed_timestamp_becomes_arrival_time(self):
        before = datetime.utcnow()
        reading = Reading(timestamp="not-a-date", heart_rate=70)
        assert before <= reading.timestamp <= datetime.utcnow()
        assert reading.heart_rate == 70
        assert Reading(timestamp=None).timestamp.tzinfo is None

    def test_aware_timestamp_is_stored_as_naive_utc(self):
        reading = Reading(timestamp="2024-06-01T14:00:00+02:00")
        assert reading.timestamp == datetime(2024, 6, 1, 12, 0, 0)

    def test_mapping_input(self):
        vec = normalize_values({"heart_rate": 90})
        assert vec[FEATURE_NAMES.index("heart_rate")] == pytest.approx(1.0)
        # Absent keys behave like missing fields
        assert vec[FEATURE_NAMES.index("spo2")] == 0.0

    def test_matrix_matches_row_by_row(self):
        raw = np.array([
            [0.6, 0.2, 0.3, 0.2, 0.1, 65.0, 98.5, 20.0],
            [0.1, 0.9, 0.1, 0.05, 0.6, 170.0, 86.0, 95.0],
            [np.nan, 0.3, 0.2, 0.1, 0.1, np.inf, 97.0, 30.0],
        ])
        matrix = normalize_matrix(raw)
        for row, expected in zip(raw, matrix):
            values = {
                name: (None if not math.isfinite(v) else float(v))
                for name, v in zip(FEATURE_NAMES, row)
            }
            assert normalize_values(values).tolist() == pytest.approx(expected.tolist(), abs=1e-5)

    def test_stats_round_trip(self):
        assert stats_from_dict(stats_to_dict()) == FEATURE_STATS


class TestSyntheticCorpus:
    def test_class_balanced(self):
        corpus = generate_corpus(600, rng=np.random.default_rng(0))
        assert len(corpus) == 600
        counts = np.bincount(corpus.targets, minlength=len(MOOD_LABELS))
        assert counts.tolist() == [100] * len(MOOD_LABELS)

    def test_remainder_goes_to_first_classes(self):
        corpus = generate_corpus(602, rng=np.random.default_rng(0))
        counts = np.bincount(corpus.targets, minlength=len(MOOD_LABELS))
        assert counts.tolist() == [101, 101, 100, 100, 100, 100]

    def test_features_are_normalised(self):
        corpus = generate_corpus(300, rng=np.random.default_rng(1))
        assert corpus.features.shape == (300, FEATURE_COUNT)
        assert corpus.features.dtype == np.float32
        assert np.all(np.abs(corpus.features) <= CLIP_SIGMA)

    def test_samples_stay_in_plausible_range(self):
        corpus = generate_corpus(1200, rng=np.random.default_rng(3))
        for i, stat in enumerate(FEATURE_STATS):
            assert corpus.raw[:, i].min() >= stat.lower
            assert corpus.raw[:, i].max() <= stat.upper

    def test_seeded_generation_is_reproducible(self):
        a = generate_corpus(120, rng=np.random.default_rng(5))
        b = generate_corpus(120, rng=np.random.default_rng(5))
        assert np.array_equal(a.features, b.features)
        assert np.array_equal(a.targets, b.targets)

    @pytest.mark.parametrize("label", list(MoodLabel))
    def test_sample_means_match_class_distribution(self, label):
        raw = sample_class(label, 5000, np.random.default_rng(42))
        for i, (mean, std) in enumerate(CLASS_DISTRIBUTIONS[label]):
            assert abs(raw[:, i].mean() - mean) < 0.1 * std

    @pytest.mark.parametrize("label", [MoodLabel.CALM, MoodLabel.FOCUSED, MoodLabel.TIRED])
    def test_normalised_class_mean_agrees_with_samples(self, label):
        # Heart rate for these classes sits well inside the clipping range
        hr = FEATURE_NAMES.index("heart_rate")
        raw = sample_class(label, 5000, np.random.default_rng(7))
        sample_mean = normalize_matrix(raw)[:, hr].mean()
        at_class_mean = normalize_values(class_means(label))[hr]
        assert sample_mean == pytest.approx(at_class_mean, abs=0.05)
