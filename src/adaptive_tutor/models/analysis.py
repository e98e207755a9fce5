"""Message signal models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Intent(StrEnum):
    """What kind of help a learner message asks for."""

    GENERAL = "general"
    QUESTION = "question"
    DEEP_EXPLANATION = "deep_explanation"
    QUICK_CLARIFICATION = "quick_clarification"
    PROBLEM_SOLVING = "problem_solving"
    CONCEPTUAL_UNDERSTANDING = "conceptual_understanding"
    APPLICATION_REQUEST = "application_request"
    CONFUSION_SIGNAL = "confusion_signal"
    CONFUSION = "confusion"
    VALIDATION_SEEKING = "validation_seeking"
    PROGRESS_INQUIRY = "progress_inquiry"
    PROGRESS_CHECK = "progress_check"
    QUIZ_REQUEST = "quiz_request"
    HINT_REQUEST = "hint_request"


class Emotion(StrEnum):
    NEUTRAL = "neutral"
    FRUSTRATED = "frustrated"
    EXCITED = "excited"
    CURIOUS = "curious"
    CONFIDENT = "confident"
    UNCERTAIN = "uncertain"


class Complexity(StrEnum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"

    @property
    def base_score(self) -> float:
        """Numeric weight used by difficulty adaptation."""
        return {"simple": 1.0, "medium": 2.0, "complex": 3.0}[self.value]


class LearningStyle(StrEnum):
    VISUAL = "visual"
    AUDITORY = "auditory"
    KINESTHETIC = "kinesthetic"
    ANALYTICAL = "analytical"
    MIXED = "mixed"


class Analysis(BaseModel):
    """Signals extracted from a single learner message."""

    model_config = ConfigDict(frozen=True)

    intent: Intent = Intent.GENERAL
    confidence: float = 0.0
    emotion: Emotion = Emotion.NEUTRAL
    complexity: Complexity = Complexity.SIMPLE
    learning_style: LearningStyle = LearningStyle.MIXED
    sub_topics: list[str] = Field(default_factory=list)


class ConversationMemoryEntry(BaseModel):
    """A message and its analysis, kept in the per-user memory buffer."""

    message: str
    analysis: Analysis
    timestamp: datetime = Field(default_factory=datetime.now)
