"""Feature normalisation: raw readings to fixed-length z-scored vectors.

Every tracked feature carries a population mean / standard deviation, the
physically plausible range synthetic samples are kept inside, and the value
substituted when a reading does not report it.  Band powers default to
``0.0`` (no activity in the band); vitals default to their resting reference
so that a missing vital looks neutral to the classifier rather than alarming.

Real readings are not clamped to that range: only the z-score is clipped,
so a 30 BPM heart rate still reaches -3.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping, Sequence

import numpy as np

from neurofit_monitor.models import Reading

# Output bound in standard deviations.
CLIP_SIGMA = 3.0


@dataclass(frozen=True, slots=True)
class FeatureStat:
    """Normalisation statistics for one tracked feature."""

    name: str
    mean: float
    std: float
    lower: float
    upper: float
    default: float

    def normalize(self, value: float | None) -> float:
        if value is None or not math.isfinite(value):
            value = self.default
        z = (value - self.mean) / self.std
        return max(-CLIP_SIGMA, min(CLIP_SIGMA, z))


FEATURE_STATS: tuple[FeatureStat, ...] = (
    FeatureStat("alpha", mean=0.30, std=0.15, lower=0.0, upper=1.0, default=0.0),
    FeatureStat("beta", mean=0.25, std=0.12, lower=0.0, upper=1.0, default=0.0),
    FeatureStat("theta", mean=0.20, std=0.10, lower=0.0, upper=1.0, default=0.0),
    FeatureStat("delta", mean=0.15, std=0.08, lower=0.0, upper=1.0, default=0.0),
    FeatureStat("gamma", mean=0.10, std=0.05, lower=0.0, upper=1.0, default=0.0),
    FeatureStat("heart_rate", mean=75.0, std=15.0, lower=40.0, upper=180.0, default=75.0),
    FeatureStat("spo2", mean=98.0, std=2.0, lower=85.0, upper=100.0, default=98.0),
    FeatureStat("stress_index", mean=30.0, std=20.0, lower=0.0, upper=100.0, default=30.0),
)

FEATURE_NAMES: tuple[str, ...] = tuple(s.name for s in FEATURE_STATS)
FEATURE_COUNT = len(FEATURE_STATS)


def normalize_values(
    raw: Mapping[str, float | None],
    stats: Sequence[FeatureStat] = FEATURE_STATS,
) -> np.ndarray:
    """Normalise a ``{feature: value}`` mapping in table order.

    Keys absent from *raw* are treated as missing.
    """
    return np.array([s.normalize(raw.get(s.name)) for s in stats], dtype=np.float32)


def normalize_reading(
    reading: Reading,
    stats: Sequence[FeatureStat] = FEATURE_STATS,
) -> np.ndarray:
    """Return the :data:`FEATURE_COUNT`-long feature vector for *reading*."""
    return normalize_values({s.name: getattr(reading, s.name, None) for s in stats}, stats)


def normalize_matrix(
    raw: np.ndarray,
    stats: Sequence[FeatureStat] = FEATURE_STATS,
) -> np.ndarray:
    """Vectorised normalisation of an ``(n, features)`` array of raw values."""
    means = np.array([s.mean for s in stats])
    stds = np.array([s.std for s in stats])
    defaults = np.array([s.default for s in stats])

    values = np.where(np.isfinite(raw), raw, defaults)
    z = (values - means) / stds
    return np.clip(z, -CLIP_SIGMA, CLIP_SIGMA).astype(np.float32)


def stats_to_dict(stats: Sequence[FeatureStat] = FEATURE_STATS) -> dict[str, dict[str, float]]:
    """Serialisable form of the statistics table (stored in checkpoints)."""
    return {
        s.name: {
            "mean": s.mean,
            "std": s.std,
            "lower": s.lower,
            "upper": s.upper,
            "default": s.default,
        }
        for s in stats
    }


def stats_from_dict(data: Mapping[str, Mapping[str, float]]) -> tuple[FeatureStat, ...]:
    return tuple(
        FeatureStat(
            name,
            mean=float(v["mean"]),
            std=float(v["std"]),
            lower=float(v["lower"]),
            upper=float(v["upper"]),
            default=float(v["default"]),
        )
        for name, v in data.items()
    )
