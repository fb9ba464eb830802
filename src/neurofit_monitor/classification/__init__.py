"""Mood classification: feature normalisation, derived metrics and models.

Architecture
------------
1. **Features** (`features.py`): per-feature z-scoring with clipping and
   documented defaults for missing values.
2. **Derived metrics** (`metrics.py`): stress / focus / relaxation scores.
3. **Rule-based classifier** (`rules.py`): deterministic fallback cascade.
4. **Statistical classifier** (`network.py`, `synthetic.py`, `model.py`,
   `persistence.py`): PyTorch feed-forward network bootstrapped from a
   synthetic corpus, retrained from user corrections, checkpointed through
   a parameter store.
5. **Façade** (`classifier.py`): picks the statistical path when a trained
   snapshot is available and falls back to the rules otherwise.
"""

from neurofit_monitor.classification.classifier import MoodClassifier, TrendSummary
from neurofit_monitor.classification.metrics import DerivedMetrics, compute_metrics
from neurofit_monitor.classification.model import ModelState, TrainingReport
from neurofit_monitor.classification.persistence import (
    FileParameterStore,
    InMemoryParameterStore,
    ParameterStore,
)
from neurofit_monitor.classification.recommendations import Recommendation, get_recommendations

__all__ = [
    "DerivedMetrics",
    "FileParameterStore",
    "InMemoryParameterStore",
    "ModelState",
    "MoodClassifier",
    "ParameterStore",
    "Recommendation",
    "TrainingReport",
    "TrendSummary",
    "compute_metrics",
    "get_recommendations",
]
