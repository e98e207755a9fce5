"""Learning profile model for tracking mastery and rewards across sessions."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


def xp_for_level(level: int) -> int:
    """XP needed to advance past the given level."""
    return round(100 * 1.5 ** (level - 1))


def title_for_level(level: int) -> str:
    if level >= 50:
        return "Grandmaster"
    elif level >= 40:
        return "Master"
    elif level >= 30:
        return "Expert"
    elif level >= 20:
        return "Advanced"
    elif level >= 10:
        return "Intermediate"
    elif level >= 5:
        return "Novice"
    else:
        return "Beginner"


def _clamp(value: float) -> float:
    return round(max(0.0, min(1.0, value)), 6)


class LearningProfile(BaseModel):
    user_id: str
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    subject_mastery: dict[str, float] = Field(default_factory=dict)
    concept_attempts: dict[str, int] = Field(default_factory=dict)
    concept_mastery: dict[str, float] = Field(default_factory=dict)
    completed_concepts: list[str] = Field(default_factory=list)
    struggling_concepts: list[str] = Field(default_factory=list)
    xp: int = Field(default=0, ge=0)
    current_streak: int = 0
    last_activity: datetime = Field(default_factory=datetime.now)
    unlocked_badges: list[str] = Field(default_factory=list)
    preferences: dict[str, Any] = Field(default_factory=dict)
    messages_sent: int = 0
    perfect_quizzes: int = 0
    total_sessions: int = 0

    @property
    def level(self) -> int:
        level = 1
        remaining = self.xp
        while remaining >= xp_for_level(level):
            remaining -= xp_for_level(level)
            level += 1
        return level

    @property
    def title(self) -> str:
        return title_for_level(self.level)

    @property
    def overall_mastery(self) -> float:
        """Mean subject mastery, 0.0 when nothing has been studied."""
        if not self.subject_mastery:
            return 0.0
        return sum(self.subject_mastery.values()) / len(self.subject_mastery)

    def mastery_for(self, subject: str) -> float:
        return self.subject_mastery.get(subject, 0.0)

    def adjust_subject_mastery(self, subject: str, delta: float) -> float:
        """Apply a mastery delta to a subject, clamped to [0, 1]."""
        current = self.subject_mastery.get(subject, 0.3)
        self.subject_mastery[subject] = _clamp(current + delta)
        return self.subject_mastery[subject]

    def adjust_concept_mastery(self, concept_id: str, delta: float) -> float:
        """Apply a mastery delta to a concept, clamped to [0, 1]."""
        current = self.concept_mastery.get(concept_id, 0.3)
        self.concept_mastery[concept_id] = _clamp(current + delta)
        return self.concept_mastery[concept_id]

    def record_attempt(self, concept_id: str) -> int:
        self.concept_attempts[concept_id] = self.concept_attempts.get(concept_id, 0) + 1
        return self.concept_attempts[concept_id]

    def mark_completed(self, concept_id: str) -> None:
        if concept_id not in self.completed_concepts:
            self.completed_concepts.append(concept_id)
        if concept_id in self.struggling_concepts:
            self.struggling_concepts.remove(concept_id)

    def mark_struggling(self, concept_id: str) -> None:
        if concept_id not in self.struggling_concepts:
            self.struggling_concepts.append(concept_id)

    def unlock_badge(self, badge_id: str) -> bool:
        """Add a badge; returns False when it was already unlocked."""
        if badge_id in self.unlocked_badges:
            return False
        self.unlocked_badges.append(badge_id)
        return True
