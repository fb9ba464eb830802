"""Per-mood wellness suggestions."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from neurofit_monitor.models import MoodLabel

SEVERE_STRESS_LEVEL = 80.0
LATE_EVENING_HOUR = 20


class Recommendation(BaseModel):
    type: str
    title: str
    description: str
    action: str | None = None
    priority: str = "medium"  # low | medium | high


def get_recommendations(
    mood: MoodLabel,
    stress_level: float = 0.0,
    now: datetime | None = None,
) -> list[Recommendation]:
    """Suggestions for the current *mood*.

    ``Excited`` has no suggestions.  Severe stress adds a break reminder;
    tiredness after 20:00 adds a sleep suggestion.
    """
    now = now or datetime.now()
    recs: list[Recommendation] = []

    if mood == MoodLabel.STRESSED:
        recs.append(Recommendation(
            type="meditation",
            title="Try Deep Breathing",
            description="A 10-minute breathing exercise can help reduce stress levels",
            action="start_meditation",
            priority="high",
        ))
        if stress_level > SEVERE_STRESS_LEVEL:
            recs.append(Recommendation(
                type="break",
                title="Take a Break",
                description="Consider taking a short walk or stepping away from stressful activities",
                priority="high",
            ))

    elif mood == MoodLabel.ANXIOUS:
        recs.append(Recommendation(
            type="meditation",
            title="Calming Meditation",
            description="Try an anxiety-relief meditation session",
            action="start_meditation",
            priority="high",
        ))
        recs.append(Recommendation(
            type="breathing",
            title="4-7-8 Breathing",
            description="This breathing technique can help calm anxiety",
            action="breathing_exercise",
            priority="medium",
        ))

    elif mood == MoodLabel.TIRED:
        recs.append(Recommendation(
            type="energy",
            title="Energy Boost",
            description="Try some light exercise or a short walk",
            priority="medium",
        ))
        if now.hour > LATE_EVENING_HOUR:
            recs.append(Recommendation(
                type="sleep",
                title="Sleep Preparation",
                description="Consider starting your bedtime routine",
                action="start_meditation",
                priority="high",
            ))

    elif mood == MoodLabel.FOCUSED:
        recs.append(Recommendation(
            type="productivity",
            title="Maintain Focus",
            description="Great time for deep work or challenging tasks",
            priority="low",
        ))

    elif mood == MoodLabel.CALM:
        recs.append(Recommendation(
            type="maintenance",
            title="Maintain Balance",
            description="You're in a great state - keep it up!",
            priority="low",
        ))

    return recs
