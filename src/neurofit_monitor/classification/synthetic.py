"""Synthetic training corpus: class-conditional Gaussian biometric samples.

Used to bootstrap the statistical classifier when no trained parameters can
be restored.  Each mood class draws every feature from its own normal
distribution ``(mean, std)``; samples are then normalised with the same
statistics table used at inference time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

import numpy as np

from neurofit_monitor.classification.features import (
    FEATURE_NAMES,
    FEATURE_STATS,
    FeatureStat,
    normalize_matrix,
)
from neurofit_monitor.models import MOOD_LABELS, MoodLabel

# (mean, std) per feature, in FEATURE_NAMES order:
# alpha, beta, theta, delta, gamma, heart_rate, spo2, stress_index
CLASS_DISTRIBUTIONS: Mapping[MoodLabel, tuple[tuple[float, float], ...]] = {
    MoodLabel.CALM: (
        (0.60, 0.10), (0.20, 0.05), (0.30, 0.08), (0.20, 0.05), (0.10, 0.03),
        (65.0, 8.0), (98.5, 1.0), (20.0, 10.0),
    ),
    MoodLabel.FOCUSED: (
        (0.40, 0.10), (0.50, 0.10), (0.20, 0.05), (0.10, 0.03), (0.30, 0.08),
        (75.0, 10.0), (98.0, 1.5), (35.0, 15.0),
    ),
    MoodLabel.STRESSED: (
        (0.20, 0.08), (0.70, 0.10), (0.15, 0.05), (0.10, 0.03), (0.40, 0.10),
        (90.0, 15.0), (97.0, 2.0), (75.0, 15.0),
    ),
    MoodLabel.ANXIOUS: (
        (0.15, 0.05), (0.80, 0.10), (0.25, 0.08), (0.10, 0.03), (0.50, 0.12),
        (95.0, 20.0), (96.5, 2.5), (85.0, 12.0),
    ),
    MoodLabel.EXCITED: (
        (0.30, 0.10), (0.60, 0.12), (0.20, 0.06), (0.08, 0.02), (0.40, 0.10),
        (85.0, 12.0), (98.0, 1.5), (45.0, 20.0),
    ),
    MoodLabel.TIRED: (
        (0.50, 0.12), (0.15, 0.05), (0.60, 0.15), (0.40, 0.10), (0.05, 0.02),
        (60.0, 8.0), (97.5, 2.0), (25.0, 12.0),
    ),
}


@dataclass
class SyntheticCorpus:
    """Raw and normalised samples with integer class targets."""

    raw: np.ndarray  # (n, features) float64
    features: np.ndarray  # (n, features) float32, normalised
    targets: np.ndarray  # (n,) int64 index into MOOD_LABELS

    def __len__(self) -> int:
        return len(self.targets)


def class_means(label: MoodLabel) -> dict[str, float]:
    """Distribution centre for *label* as a ``{feature: value}`` mapping."""
    return {name: mean for name, (mean, _) in zip(FEATURE_NAMES, CLASS_DISTRIBUTIONS[label])}


def sample_class(
    label: MoodLabel,
    n: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw *n* raw samples for one class."""
    params = np.array(CLASS_DISTRIBUTIONS[label])
    return rng.normal(loc=params[:, 0], scale=params[:, 1], size=(n, len(params)))


def generate_corpus(
    total: int = 1000,
    *,
    rng: np.random.Generator | None = None,
    labels: Sequence[MoodLabel] = MOOD_LABELS,
    stats: Sequence[FeatureStat] = FEATURE_STATS,
) -> SyntheticCorpus:
    """Generate a class-balanced corpus of roughly *total* samples.

    Every class gets ``total // len(labels)`` samples; the remainder is
    handed out one by one from the first class onward.  Rows come back
    shuffled.  Samples are clipped to each feature's plausible
    ``[lower, upper]`` range from *stats*.
    """
    rng = rng or np.random.default_rng()
    per_class, remainder = divmod(total, len(labels))

    raws: list[np.ndarray] = []
    targets: list[np.ndarray] = []
    for i, label in enumerate(labels):
        n = per_class + (1 if i < remainder else 0)
        if n == 0:
            continue
        raws.append(sample_class(label, n, rng))
        targets.append(np.full(n, MOOD_LABELS.index(label), dtype=np.int64))

    raw = np.concatenate(raws)
    raw = np.clip(raw, [s.lower for s in stats], [s.upper for s in stats])
    y = np.concatenate(targets)
    order = rng.permutation(len(y))
    raw, y = raw[order], y[order]

    return SyntheticCorpus(raw=raw, features=normalize_matrix(raw, stats), targets=y)
