"""Rule-based signal extraction from learner messages."""

import re
from collections import Counter, deque
from datetime import datetime

import structlog

from adaptive_tutor.models.analysis import (
    Analysis,
    Complexity,
    ConversationMemoryEntry,
    Emotion,
    Intent,
    LearningStyle,
)
from adaptive_tutor.models.session import SessionContext

logger = structlog.get_logger()

# Evaluation order matters: on equal confidence the earlier intent wins.
INTENT_PATTERNS: list[tuple[Intent, list[str], float]] = [
    (
        Intent.DEEP_EXPLANATION,
        [
            r"explain (in detail|thoroughly|completely)",
            r"how does .* work exactly",
            r"break down",
            r"walk me through",
        ],
        0.9,
    ),
    (
        Intent.QUICK_CLARIFICATION,
        [r"what (is|does|means?)", r"define", r"meaning of", r"quickly explain"],
        0.85,
    ),
    (
        Intent.PROBLEM_SOLVING,
        [r"how (do|can) i (solve|fix|calculate)", r"step by step", r"show me how"],
        0.9,
    ),
    (
        Intent.CONCEPTUAL_UNDERSTANDING,
        [r"why (is|does|do)", r"what causes", r"relationship between", r"difference between"],
        0.8,
    ),
    (
        Intent.APPLICATION_REQUEST,
        [r"example of", r"real world", r"practical use", r"applied to"],
        0.85,
    ),
    (
        Intent.CONFUSION_SIGNAL,
        [r"don't understand", r"confused", r"lost", r"unclear", r"what do you mean"],
        0.95,
    ),
    (
        Intent.CONFUSION,
        [r"don't understand", r"confused", r"explain", r"what do you mean"],
        0.9,
    ),
    (
        Intent.VALIDATION_SEEKING,
        [
            r"is this (right|correct)",
            r"am i (right|correct)",
            r"does this make sense",
            r"true or false",
        ],
        0.9,
    ),
    (
        Intent.PROGRESS_INQUIRY,
        [r"how am i doing", r"my progress", r"performance", r"improvement"],
        0.9,
    ),
    (Intent.PROGRESS_CHECK, [r"progress", r"score", r"how am i doing"], 0.85),
    (Intent.QUIZ_REQUEST, [r"quiz", r"test", r"question"], 0.8),
    (Intent.HINT_REQUEST, [r"hint", r"help", r"stuck"], 0.8),
]

_COMPILED_INTENTS = [
    (intent, [re.compile(p, re.IGNORECASE) for p in patterns], confidence)
    for intent, patterns, confidence in INTENT_PATTERNS
]

EMOTION_KEYWORDS: list[tuple[Emotion, list[str]]] = [
    (
        Emotion.FRUSTRATED,
        ["frustrated", "stuck", "hard", "difficult", "can't", "impossible", "hate"],
    ),
    (
        Emotion.EXCITED,
        ["excited", "awesome", "amazing", "love", "great", "fantastic", "cool"],
    ),
    (
        Emotion.CURIOUS,
        ["interesting", "wonder", "curious", "want to learn", "tell me more"],
    ),
    (Emotion.CONFIDENT, ["easy", "got it", "understand", "makes sense", "clear"]),
    (Emotion.UNCERTAIN, ["maybe", "think", "guess", "not sure", "probably"]),
]

LEARNING_STYLE_CUES: list[tuple[LearningStyle, list[str]]] = [
    (LearningStyle.VISUAL, ["show", "see", "picture", "diagram", "chart", "graph"]),
    (LearningStyle.AUDITORY, ["explain", "tell", "describe", "sound", "hear"]),
    (LearningStyle.KINESTHETIC, ["practice", "try", "do", "hands-on", "example"]),
    (LearningStyle.ANALYTICAL, ["why", "how", "because", "reason", "logic", "proof"]),
]

TOPIC_KEYWORDS: dict[str, list[str]] = {
    "mathematics": ["math", "algebra", "geometry", "calculus", "equation", "formula"],
    "science": ["biology", "chemistry", "physics", "experiment", "hypothesis"],
    "history": ["history", "historical", "war", "civilization", "empire"],
    "literature": ["literature", "poetry", "novel", "author", "character"],
    "programming": ["code", "programming", "algorithm", "function", "variable"],
}


def classify_intent(message: str) -> tuple[Intent, float]:
    """Return the highest-confidence intent matching the message."""
    lowered = message.lower().strip()
    best_intent = Intent.GENERAL
    best_confidence = 0.0
    for intent, patterns, confidence in _COMPILED_INTENTS:
        for pattern in patterns:
            if pattern.search(lowered) and confidence > best_confidence:
                best_confidence = confidence
                best_intent = intent
    return best_intent, best_confidence


def detect_emotion(message: str) -> Emotion:
    lowered = message.lower()
    for emotion, keywords in EMOTION_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return emotion
    return Emotion.NEUTRAL


def assess_complexity(message: str) -> Complexity:
    """Classify by length and word count.

    Short messages are ``simple`` only without a question mark, so "What is x?"
    is ``medium``.
    """
    if len(message) < 20 and "?" not in message:
        return Complexity.SIMPLE
    if len(message) < 100 and len(message.split(" ")) < 15:
        return Complexity.MEDIUM
    return Complexity.COMPLEX


def detect_learning_style(message: str) -> LearningStyle:
    lowered = message.lower().strip()
    detected = [
        style for style, cues in LEARNING_STYLE_CUES if any(cue in lowered for cue in cues)
    ]
    return detected[0] if detected else LearningStyle.MIXED


def extract_topics(message: str) -> list[str]:
    """Academic topic areas mentioned in the message."""
    lowered = message.lower()
    return [
        topic
        for topic, keywords in TOPIC_KEYWORDS.items()
        if any(keyword in lowered for keyword in keywords)
    ]


class SignalAnalyzer:
    """Classifies learner messages and keeps a bounded per-user memory.

    Args:
        memory_size: Number of recent entries kept per user.
    """

    def __init__(self, memory_size: int = 20) -> None:
        self.memory_size = memory_size
        self._memory: dict[str, deque[ConversationMemoryEntry]] = {}
        self._last_interaction: dict[str, datetime] = {}
        self._intent_counts: dict[str, Counter[Intent]] = {}
        self._emotion_counts: dict[str, Counter[Emotion]] = {}

    def analyze(
        self,
        message: str,
        user_id: str,
        context: SessionContext | None = None,
        now: datetime | None = None,
    ) -> Analysis:
        """Classify a message and record it in the user's memory.

        Args:
            message: Raw learner text; any string, including empty.
            user_id: Owner of the memory buffer.
            context: Current session context, used only for logging.
            now: Interaction time; defaults to the current time.

        Returns:
            Analysis for this message.
        """
        intent, confidence = classify_intent(message)
        analysis = Analysis(
            intent=intent,
            confidence=confidence,
            emotion=detect_emotion(message),
            complexity=assess_complexity(message),
            learning_style=detect_learning_style(message),
            sub_topics=extract_topics(message),
        )

        timestamp = now or datetime.now()
        memory = self._memory.setdefault(user_id, deque(maxlen=self.memory_size))
        memory.append(ConversationMemoryEntry(message=message, analysis=analysis, timestamp=timestamp))
        self._last_interaction[user_id] = timestamp
        self._intent_counts.setdefault(user_id, Counter())[intent] += 1
        self._emotion_counts.setdefault(user_id, Counter())[analysis.emotion] += 1

        logger.debug(
            "message_analyzed",
            user_id=user_id,
            session_id=context.session_id if context else None,
            intent=intent.value,
            confidence=confidence,
            emotion=analysis.emotion.value,
            complexity=analysis.complexity.value,
        )
        return analysis

    def memory(self, user_id: str) -> list[ConversationMemoryEntry]:
        """Memory entries for a user, oldest first."""
        return list(self._memory.get(user_id, ()))

    def recent(self, user_id: str, count: int) -> list[ConversationMemoryEntry]:
        """The ``count`` most recent memory entries, oldest first."""
        entries = self.memory(user_id)
        return entries[-count:] if count > 0 else []

    def last_interaction(self, user_id: str) -> datetime | None:
        return self._last_interaction.get(user_id)

    def intent_counts(self, user_id: str) -> Counter[Intent]:
        return Counter(self._intent_counts.get(user_id, Counter()))

    def dominant_emotion(self, user_id: str) -> Emotion:
        counts = self._emotion_counts.get(user_id)
        if not counts:
            return Emotion.NEUTRAL
        return counts.most_common(1)[0][0]
