"""Tutoring session data models."""

import uuid
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from adaptive_tutor.models.analysis import Analysis, Intent
from adaptive_tutor.models.response import ResponseConfig


class SessionStatus(StrEnum):
    """Session lifecycle states."""

    CREATED = "created"
    ACTIVE = "active"
    ENDED = "ended"


class DifficultyTier(StrEnum):
    BEGINNER = "beginner"
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class MessageKind(StrEnum):
    TEXT = "text"
    WELCOME = "welcome"
    ANSWER = "answer"
    QUIZ = "quiz"
    QUIZ_ANSWER = "quiz_answer"
    QUIZ_RESULT = "quiz_result"
    HINT = "hint"
    CONFUSION_HELP = "confusion_help"
    PROGRESS_REPORT = "progress_report"
    ERROR = "error"


class ReplyStatus(StrEnum):
    OK = "ok"
    NO_SUCH_SESSION = "no_such_session"
    GENERATION_FAILED = "generation_failed"


class SessionContext(BaseModel):
    """Ephemeral accumulator for one tutoring session."""

    session_id: str
    subject: str
    difficulty: str
    created_at: datetime = Field(default_factory=datetime.now)
    topics_discussed: list[str] = Field(default_factory=list)
    concepts_explored: list[str] = Field(default_factory=list)
    difficulty_trace: list[str] = Field(default_factory=list)
    progress: float = 0.0
    adaptive_adjustments: int = 0
    hint_level: int = 0
    last_question: str | None = None


class ChatMessage(BaseModel):
    """A single message in the tutoring transcript."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    session_id: str
    user_id: str
    role: MessageRole
    content: str
    kind: MessageKind = MessageKind.TEXT
    timestamp: datetime = Field(default_factory=datetime.now)
    intent: Intent | None = None
    hint_level: int | None = None
    is_correct: bool | None = None
    # Set on bank quizzes so the answer can be graded later.
    quiz_concept_id: str | None = None
    quiz_item_id: str | None = None
    correct_index: int | None = None


class TutorSession(BaseModel):
    """Lifecycle record of a tutoring session."""

    session_id: str
    user_id: str
    subject: str
    difficulty: DifficultyTier = DifficultyTier.MEDIUM
    status: SessionStatus = SessionStatus.CREATED
    started_at: datetime = Field(default_factory=datetime.now)
    ended_at: datetime | None = None
    messages: list[ChatMessage] = Field(default_factory=list)
    start_mastery: float = 0.0
    start_xp: int = 0
    recent_sessions_count: int = 0

    def add_message(self, message: ChatMessage) -> ChatMessage:
        self.messages.append(message)
        return message

    @property
    def user_messages(self) -> list[ChatMessage]:
        return [m for m in self.messages if m.role == MessageRole.USER]

    @property
    def assistant_messages(self) -> list[ChatMessage]:
        return [m for m in self.messages if m.role == MessageRole.ASSISTANT]

    @property
    def duration_seconds(self) -> float:
        """Session duration in seconds (uses current time if session is still active)."""
        if self.ended_at is None:
            return (datetime.now() - self.started_at).total_seconds()
        return (self.ended_at - self.started_at).total_seconds()


class SessionMetrics(BaseModel):
    total_messages: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    quizzes_taken: int = 0
    hints_used: int = 0
    correct_answers: int = 0
    duration_minutes: int = 0
    engagement_score: float = 0.0
    topics_discussed: int = 0
    concepts_explored: int = 0
    difficulty_progression: list[str] = Field(default_factory=list)
    learning_path_progress: float = 0.0
    adaptive_adjustments: int = 0
    context_complexity: float = 0.0
    mastery_gain: float = 0.0
    final_mastery: float = 0.0
    xp_earned: int = 0


class SessionSummary(BaseModel):
    """Result of ending a session; ``found`` is False for unknown session ids."""

    session_id: str
    found: bool = True
    user_id: str | None = None
    subject: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    metrics: SessionMetrics = Field(default_factory=SessionMetrics)


class Reply(BaseModel):
    """Outcome of a message or quiz answer sent to a session."""

    session_id: str
    status: ReplyStatus = ReplyStatus.OK
    message: ChatMessage | None = None
    analysis: Analysis | None = None
    response_config: ResponseConfig | None = None
    from_cache: bool = False
    xp_awarded: int = 0
    new_badges: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == ReplyStatus.OK
