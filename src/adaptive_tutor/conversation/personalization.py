"""Response configuration built from learner signals and history."""

from collections import Counter

import structlog

from adaptive_tutor.analysis.signals import SignalAnalyzer, extract_topics
from adaptive_tutor.conversation.adaptation import DifficultyAdaptationEngine
from adaptive_tutor.models.analysis import Analysis, Complexity, Emotion, Intent, LearningStyle
from adaptive_tutor.models.response import Encouragement, ResponseConfig, ResponseStructure
from adaptive_tutor.models.session import DifficultyTier

logger = structlog.get_logger()

PREFERENCE_WINDOW = 5
MAX_FOLLOW_UPS = 3
MAX_TOPIC_FOLLOW_UPS = 2
MAX_STORED_TOPIC_FOLLOW_UPS = 10
PREFERRED_INTENT_THRESHOLD = 2
CONCISE_RESPONSE_CHARS = 100

TONES: dict[Emotion, str] = {
    Emotion.FRUSTRATED: "patient and encouraging",
    Emotion.EXCITED: "enthusiastic and supportive",
    Emotion.UNCERTAIN: "reassuring and clear",
    Emotion.CONFIDENT: "collaborative and challenging",
}
DEFAULT_TONE = "warm and professional"

ENCOURAGEMENT: dict[Emotion, Encouragement] = {
    Emotion.FRUSTRATED: Encouragement.HIGH,
    Emotion.UNCERTAIN: Encouragement.MEDIUM,
    Emotion.CONFIDENT: Encouragement.LOW,
}

STRUCTURES: dict[Intent, ResponseStructure] = {
    Intent.DEEP_EXPLANATION: ResponseStructure.STRUCTURED_DETAILED,
    Intent.QUICK_CLARIFICATION: ResponseStructure.CONCISE_DIRECT,
    Intent.PROBLEM_SOLVING: ResponseStructure.STEP_BY_STEP,
    Intent.CONFUSION_SIGNAL: ResponseStructure.SIMPLIFIED_BREAKDOWN,
}

INTENT_FOLLOW_UPS: dict[Intent, list[str]] = {
    Intent.QUICK_CLARIFICATION: [
        "Would you like a deeper explanation?",
        "Want to see how this applies in practice?",
        "Should we try a related example?",
    ],
    Intent.DEEP_EXPLANATION: [
        "Would you like to test your understanding with a quiz?",
        "Want to see how this connects to other concepts?",
        "Ready to try a practice problem?",
    ],
    Intent.PROBLEM_SOLVING: [
        "Want to try a similar problem?",
        "Should we explore a harder variation?",
        "Would you like to see alternative methods?",
    ],
    Intent.CONFUSION_SIGNAL: [
        "Would a different explanation help?",
        "Should we try a simpler example?",
        "Want me to break this down further?",
    ],
}

TOPIC_FOLLOW_UP_TEMPLATES: dict[Intent, list[str]] = {
    Intent.DEEP_EXPLANATION: [
        "Want to explore the deeper principles behind {topic}?",
        "Should we examine the theoretical foundations of {topic}?",
    ],
    Intent.APPLICATION_REQUEST: [
        "How might you apply {topic} in real-world scenarios?",
        "Want to see practical examples of {topic}?",
    ],
    Intent.PROBLEM_SOLVING: [
        "Ready for some {topic} practice problems?",
        "Should we work through a challenging {topic} example?",
    ],
}


def preferred_complexity(labels: list[Complexity]) -> Complexity:
    """Most frequent label; ties go to the label seen first."""
    if not labels:
        return Complexity.MEDIUM
    return Counter(labels).most_common(1)[0][0]


def apply_difficulty(config: ResponseConfig, tier: DifficultyTier) -> ResponseConfig:
    """Override complexity, examples and structure for the recommended tier."""
    match tier:
        case DifficultyTier.BEGINNER:
            return config.model_copy(update={
                "complexity": Complexity.SIMPLE,
                "include_examples": True,
                "encouragement": Encouragement.HIGH,
                "structure": ResponseStructure.SIMPLIFIED_BREAKDOWN,
            })
        case DifficultyTier.EASY:
            return config.model_copy(update={
                "complexity": Complexity.SIMPLE,
                "include_examples": True,
            })
        case DifficultyTier.HARD:
            return config.model_copy(update={
                "complexity": Complexity.COMPLEX,
                "include_examples": False,
                "structure": ResponseStructure.STRUCTURED_DETAILED,
            })
        case DifficultyTier.MEDIUM:
            return config


class PersonalizationEngine:
    """Builds a ResponseConfig for each answered message.

    Also learns per-user response preferences (which intents a learner keeps
    coming back to, whether answers tend to be short or long) and grows a
    per-topic list of follow-up suggestions from them.
    """

    def __init__(
        self,
        analyzer: SignalAnalyzer,
        adaptation: DifficultyAdaptationEngine,
    ) -> None:
        self.analyzer = analyzer
        self.adaptation = adaptation
        self._preferred_intents: dict[str, Counter[Intent]] = {}
        self._response_lengths: dict[str, Counter[str]] = {}
        self._topic_follow_ups: dict[str, dict[str, list[str]]] = {}

    def build(self, message: str, user_id: str, analysis: Analysis) -> ResponseConfig:
        recent = self.analyzer.recent(user_id, PREFERENCE_WINDOW)
        config = ResponseConfig(
            tone=TONES.get(analysis.emotion, DEFAULT_TONE),
            complexity=preferred_complexity([entry.analysis.complexity for entry in recent]),
            include_examples=(
                analysis.learning_style in (LearningStyle.VISUAL, LearningStyle.KINESTHETIC)
                or analysis.intent == Intent.APPLICATION_REQUEST
            ),
            use_analogies=self.is_conceptual_learner(user_id),
            encouragement=ENCOURAGEMENT.get(analysis.emotion, Encouragement.MEDIUM),
            structure=STRUCTURES.get(analysis.intent, ResponseStructure.BALANCED),
            follow_ups=self.follow_ups(message, user_id, analysis),
        )
        tier = self.adaptation.recommend_difficulty(user_id)
        config = apply_difficulty(config, tier)
        logger.debug(
            "response_config_built",
            user_id=user_id,
            tier=tier.value,
            complexity=config.complexity.value,
            structure=config.structure.value,
        )
        return config

    def follow_ups(self, message: str, user_id: str, analysis: Analysis) -> list[str]:
        """Topic-based suggestions first, then intent-based, at most three."""
        suggestions = self._topic_based_follow_ups(message, user_id)
        suggestions.extend(INTENT_FOLLOW_UPS.get(analysis.intent, []))
        return suggestions[:MAX_FOLLOW_UPS]

    def _topic_based_follow_ups(self, message: str, user_id: str) -> list[str]:
        topics = extract_topics(message)
        stored = self._topic_follow_ups.setdefault(user_id, {})
        suggestions: list[str] = []
        for topic in topics:
            suggestions.extend(stored.get(topic, [])[:MAX_TOPIC_FOLLOW_UPS])

        preferred = self._preferred_intents.get(user_id, Counter())
        for topic in topics:
            topic_list = stored.setdefault(topic, [])
            for intent, templates in TOPIC_FOLLOW_UP_TEMPLATES.items():
                if preferred[intent] > PREFERRED_INTENT_THRESHOLD:
                    topic_list.extend(t.format(topic=topic) for t in templates)
            del topic_list[MAX_STORED_TOPIC_FOLLOW_UPS:]

        return suggestions[:MAX_TOPIC_FOLLOW_UPS]

    def record_interaction(self, user_id: str, analysis: Analysis, response: str) -> None:
        """Learn from an answered message."""
        self._preferred_intents.setdefault(user_id, Counter())[analysis.intent] += 1
        length_key = "concise" if len(response) < CONCISE_RESPONSE_CHARS else "detailed"
        self._response_lengths.setdefault(user_id, Counter())[length_key] += 1

    def is_conceptual_learner(self, user_id: str) -> bool:
        preferred = self._preferred_intents.get(user_id, Counter())
        return preferred[Intent.CONCEPTUAL_UNDERSTANDING] > PREFERRED_INTENT_THRESHOLD

    def preferred_intents(self, user_id: str) -> Counter[Intent]:
        return Counter(self._preferred_intents.get(user_id, Counter()))

    def learning_patterns(self, user_id: str) -> dict:
        lengths = self._response_lengths.get(user_id, Counter())
        return {
            "preferred_intents": {k.value: v for k, v in self.preferred_intents(user_id).items()},
            "prefers_concise": lengths["concise"],
            "prefers_detailed": lengths["detailed"],
            "conceptual_learner": self.is_conceptual_learner(user_id),
        }
