"""Rule-based mood classifier: the deterministic fallback path.

Branches are evaluated in priority order and the first match wins:

===========  =====================================================  ==========
Branch       Condition                                              Confidence
===========  =====================================================  ==========
stressed     stress > 80                                            0.80
anxious      stress > 70 and beta > 0.7                             0.75
focused      focus > 70 and beta > 0.5                              0.80
calm         relaxation > 70                                        0.85
tired        theta > 0.5 and delta > 0.3                            0.70
excited      beta > 0.6 and heart rate > 85                         0.65
default      (none of the above)                                    0.70 Calm
===========  =====================================================  ==========
"""

from __future__ import annotations

from dataclasses import dataclass

from neurofit_monitor.classification.metrics import DerivedMetrics, compute_metrics
from neurofit_monitor.models import MOOD_LABELS, MoodLabel, Reading

STRESSED_CONFIDENCE = 0.80
ANXIOUS_CONFIDENCE = 0.75
FOCUSED_CONFIDENCE = 0.80
CALM_CONFIDENCE = 0.85
TIRED_CONFIDENCE = 0.70
EXCITED_CONFIDENCE = 0.65
DEFAULT_CONFIDENCE = 0.70


@dataclass(frozen=True, slots=True)
class RuleDecision:
    label: MoodLabel
    confidence: float
    branch: str


def classify_by_rules(reading: Reading, metrics: DerivedMetrics | None = None) -> RuleDecision:
    """Run the threshold cascade on *reading*.

    *metrics* may be passed in when the caller has already computed them.
    """
    m = metrics or compute_metrics(reading)
    beta = reading.band("beta")

    if m.stress > 80:
        return RuleDecision(MoodLabel.STRESSED, STRESSED_CONFIDENCE, "stressed")
    if m.stress > 70 and beta > 0.7:
        return RuleDecision(MoodLabel.ANXIOUS, ANXIOUS_CONFIDENCE, "anxious")
    if m.focus > 70 and beta > 0.5:
        return RuleDecision(MoodLabel.FOCUSED, FOCUSED_CONFIDENCE, "focused")
    if m.relaxation > 70:
        return RuleDecision(MoodLabel.CALM, CALM_CONFIDENCE, "calm")
    if reading.band("theta") > 0.5 and reading.band("delta") > 0.3:
        return RuleDecision(MoodLabel.TIRED, TIRED_CONFIDENCE, "tired")
    if beta > 0.6 and reading.heart_rate is not None and reading.heart_rate > 85:
        return RuleDecision(MoodLabel.EXCITED, EXCITED_CONFIDENCE, "excited")
    return RuleDecision(MoodLabel.CALM, DEFAULT_CONFIDENCE, "default")


def rule_probabilities(label: MoodLabel, confidence: float) -> list[float]:
    """Spread the residual mass evenly over the non-chosen labels."""
    rest = (1.0 - confidence) / (len(MOOD_LABELS) - 1)
    return [confidence if lbl is label else rest for lbl in MOOD_LABELS]
