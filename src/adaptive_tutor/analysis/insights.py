"""Learner analytics derived from memory, patterns and session transcripts."""

from collections import Counter
from datetime import datetime

from pydantic import BaseModel, Field

from adaptive_tutor.models.analysis import ConversationMemoryEntry, Intent
from adaptive_tutor.models.session import ChatMessage, MessageKind, MessageRole

DEEP_LEARNING_INTENTS = frozenset({
    Intent.DEEP_EXPLANATION,
    Intent.CONCEPTUAL_UNDERSTANDING,
    Intent.PROBLEM_SOLVING,
})
VELOCITY_INTENTS = frozenset({Intent.DEEP_EXPLANATION, Intent.CONCEPTUAL_UNDERSTANDING})
TREND_WINDOW = 10
VELOCITY_WINDOW = 5


class ProgressAnalysis(BaseModel):
    subject: str
    overall_mastery: float = 0.0
    progress_trend: str = "insufficient_data"
    knowledge_gaps: list[str] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    recommended_topics: list[str] = Field(default_factory=list)
    learning_velocity: float = 0.0
    engagement_level: float = 0.5
    next_milestone: str = ""


def engagement_score(messages: list[ChatMessage]) -> float:
    """Score a transcript by volume, questions asked, quizzes and correct answers."""
    if not messages:
        return 0.0
    score = min(len(messages) * 0.05, 0.3)
    score += 0.1 * sum(1 for m in messages if m.role == MessageRole.USER and "?" in m.content)
    score += 0.15 * sum(1 for m in messages if m.kind == MessageKind.QUIZ)
    score += 0.2 * sum(1 for m in messages if m.is_correct)
    return min(score, 1.0)


def progress_trend(entries: list[ConversationMemoryEntry]) -> str:
    """Compare question complexity in the older and newer half of recent memory."""
    recent = entries[-TREND_WINDOW:]
    if len(recent) < 3:
        return "insufficient_data"
    scores = [entry.analysis.complexity.base_score for entry in recent]
    half = len(scores) // 2
    early = sum(scores[:half])
    late = sum(scores[half:])
    if late > early * 1.2:
        return "improving"
    if late < early * 0.8:
        return "declining"
    return "stable"


def learning_velocity(entries: list[ConversationMemoryEntry]) -> float:
    """Share of recent messages that engaged with concepts in depth."""
    if len(entries) < 2:
        return 0.0
    recent = entries[-VELOCITY_WINDOW:]
    engaged = sum(1 for entry in recent if entry.analysis.intent in VELOCITY_INTENTS)
    return engaged / len(recent)


def timing_engagement(
    entries: list[ConversationMemoryEntry],
    last_interaction: datetime | None,
    now: datetime | None = None,
) -> float:
    """Engagement from how recently and how steadily the learner interacts."""
    if last_interaction is None:
        return 0.0
    if len(entries) < 2:
        return 0.5

    now = now or datetime.now()
    idle_minutes = (now - last_interaction).total_seconds() / 60
    if idle_minutes > 24 * 60:
        recency = 0.3
    elif idle_minutes > 6 * 60:
        recency = 0.6
    elif idle_minutes > 30:
        recency = 0.8
    else:
        recency = 1.0

    gaps = [
        (curr.timestamp - prev.timestamp).total_seconds() / 60
        for prev, curr in zip(entries, entries[1:])
    ]
    average_gap = sum(gaps) / len(gaps)
    if average_gap < 2:
        base = 0.9
    elif average_gap < 10:
        base = 0.6
    else:
        base = 0.3
    return base * recency


def intent_engagement(preferred_intents: Counter[Intent]) -> float:
    """Share of answered messages that asked for deep learning; 0.5 with no data."""
    total = sum(preferred_intents.values())
    if total == 0:
        return 0.5
    deep = sum(count for intent, count in preferred_intents.items() if intent in DEEP_LEARNING_INTENTS)
    return deep / total


def current_engagement(
    preferred_intents: Counter[Intent],
    entries: list[ConversationMemoryEntry],
    last_interaction: datetime | None,
    now: datetime | None = None,
) -> float:
    return (intent_engagement(preferred_intents) + timing_engagement(entries, last_interaction, now)) / 2


def next_milestone(mastery: float) -> str:
    if mastery < 0.25:
        return "Complete 5 basic concepts"
    if mastery < 0.5:
        return "Achieve 50% subject mastery"
    if mastery < 0.75:
        return "Master intermediate topics"
    if mastery < 0.9:
        return "Complete advanced concepts"
    return "Achieve expert level (95%+)"
