"""Difficulty adaptation from a rolling performance window."""

from collections import deque
from collections.abc import Awaitable, Callable
from statistics import fmean

import structlog

from adaptive_tutor.models.analysis import Analysis, Intent
from adaptive_tutor.models.session import DifficultyTier

logger = structlog.get_logger()

DEEP_INTENTS = frozenset({Intent.DEEP_EXPLANATION, Intent.PROBLEM_SOLVING})
DEEP_MULTIPLIER = 1.2
QUICK_MULTIPLIER = 0.8
FAILURE_MULTIPLIER = 0.5
TREND_MIN_HISTORY = 6
TREND_WINDOW = 3

TierChangeCallback = Callable[[str, DifficultyTier, DifficultyTier], Awaitable[None]]


def performance_score(analysis: Analysis, was_successful: bool) -> float:
    """Score one interaction from its complexity, outcome and intent."""
    score = analysis.complexity.base_score
    if not was_successful:
        score *= FAILURE_MULTIPLIER
    if analysis.intent in DEEP_INTENTS:
        score *= DEEP_MULTIPLIER
    elif analysis.intent == Intent.QUICK_CLARIFICATION:
        score *= QUICK_MULTIPLIER
    return score


def classify_history(history: list[float]) -> DifficultyTier:
    """Map a score history to a tier; the first matching rule wins."""
    if not history:
        return DifficultyTier.MEDIUM

    mean = fmean(history)
    trend = 0.0
    if len(history) >= TREND_MIN_HISTORY:
        recent = history[-TREND_WINDOW:]
        prior = history[:-TREND_WINDOW]
        trend = fmean(recent) - fmean(prior)

    if mean >= 2.5 and trend >= 0:
        return DifficultyTier.HARD
    elif mean >= 1.8:
        return DifficultyTier.MEDIUM
    elif mean >= 1.0:
        return DifficultyTier.EASY
    else:
        return DifficultyTier.BEGINNER


def is_successful_response(response: str) -> bool:
    """A generated answer counts as a success unless empty or apologetic."""
    return bool(response) and "error" not in response and "sorry" not in response


class DifficultyAdaptationEngine:
    """Tracks per-user performance scores and recommends a difficulty tier.

    Registered callbacks fire when a user's recommended tier changes, the
    same way level changes are announced to listeners.

    Args:
        history_size: Scores kept per user; older scores are dropped first.
    """

    def __init__(self, history_size: int = 10) -> None:
        self.history_size = history_size
        self._histories: dict[str, deque[float]] = {}
        self._last_tier: dict[str, DifficultyTier] = {}
        self._tier_change_callbacks: list[TierChangeCallback] = []

    def on_tier_change(self, callback: TierChangeCallback) -> None:
        """Register a callback for tier changes.

        Args:
            callback: Async callable(user_id, old_tier, new_tier).
        """
        self._tier_change_callbacks.append(callback)

    def record_outcome(self, user_id: str, analysis: Analysis, was_successful: bool) -> float:
        """Append the interaction's performance score to the user's history."""
        score = performance_score(analysis, was_successful)
        history = self._histories.setdefault(user_id, deque(maxlen=self.history_size))
        history.append(score)
        logger.debug(
            "performance_recorded",
            user_id=user_id,
            score=round(score, 3),
            history_len=len(history),
        )
        return score

    def history(self, user_id: str) -> list[float]:
        """Copy of the user's score history, oldest first."""
        return list(self._histories.get(user_id, ()))

    def recommend_difficulty(self, user_id: str) -> DifficultyTier:
        return classify_history(self.history(user_id))

    async def refresh(self, user_id: str) -> DifficultyTier:
        """Recompute the tier and notify listeners when it changed."""
        new_tier = self.recommend_difficulty(user_id)
        old_tier = self._last_tier.get(user_id, DifficultyTier.MEDIUM)
        self._last_tier[user_id] = new_tier
        if new_tier != old_tier:
            logger.info(
                "difficulty_tier_changed",
                user_id=user_id,
                old_tier=old_tier.value,
                new_tier=new_tier.value,
            )
            for callback in self._tier_change_callbacks:
                await callback(user_id, old_tier, new_tier)
        return new_tier
