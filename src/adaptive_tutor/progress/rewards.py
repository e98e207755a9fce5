"""XP awards, streak upkeep and badge rules."""

from datetime import datetime
from enum import StrEnum

import structlog

from adaptive_tutor.models.learning_profile import LearningProfile

logger = structlog.get_logger()

QUIZ_CORRECT_DELTA = 0.1
QUIZ_WRONG_DELTA = -0.05
CONCEPT_COMPLETION_MASTERY = 0.8


class XpReason(StrEnum):
    MESSAGE_SENT = "message_sent"
    QUIZ_CORRECT = "quiz_correct"
    QUIZ_ATTEMPT = "quiz_attempt"
    SESSION_STARTED = "session_started"

    @property
    def points(self) -> int:
        return XP_AWARDS[self]


XP_AWARDS: dict[XpReason, int] = {
    XpReason.MESSAGE_SENT: 5,
    XpReason.QUIZ_CORRECT: 15,
    XpReason.QUIZ_ATTEMPT: 5,
    XpReason.SESSION_STARTED: 10,
}


class Badge(StrEnum):
    """Achievements; once unlocked they are never revoked."""

    FIRST_SESSION = "first_session"
    STREAK_3 = "streak_3"
    STREAK_7 = "streak_7"
    POINTS_100 = "points_100"
    POINTS_500 = "points_500"
    CONCEPTS_10 = "concepts_10"
    PERFECT_QUIZ = "perfect_quiz"

    @property
    def display_name(self) -> str:
        return BADGE_NAMES[self]


BADGE_NAMES: dict[Badge, str] = {
    Badge.FIRST_SESSION: "First Session",
    Badge.STREAK_3: "3 Day Streak",
    Badge.STREAK_7: "7 Day Streak",
    Badge.POINTS_100: "100 Points",
    Badge.POINTS_500: "500 Points",
    Badge.CONCEPTS_10: "10 Concepts Mastered",
    Badge.PERFECT_QUIZ: "Perfect Quiz",
}


def badge_earned(badge: Badge, profile: LearningProfile) -> bool:
    match badge:
        case Badge.FIRST_SESSION:
            return profile.messages_sent >= 1
        case Badge.STREAK_3:
            return profile.current_streak >= 3
        case Badge.STREAK_7:
            return profile.current_streak >= 7
        case Badge.POINTS_100:
            return profile.xp >= 100
        case Badge.POINTS_500:
            return profile.xp >= 500
        case Badge.CONCEPTS_10:
            return len(profile.completed_concepts) >= 10
        case Badge.PERFECT_QUIZ:
            return profile.perfect_quizzes >= 1


def check_badges(profile: LearningProfile) -> list[Badge]:
    """Unlock every badge whose rule now holds; returns the newly unlocked ones."""
    unlocked = []
    for badge in Badge:
        if badge.value in profile.unlocked_badges:
            continue
        if badge_earned(badge, profile) and profile.unlock_badge(badge.value):
            unlocked.append(badge)
            logger.info("badge_unlocked", user_id=profile.user_id, badge=badge.value)
    return unlocked


def award_xp(profile: LearningProfile, reason: XpReason) -> list[Badge]:
    """Add the reason's XP, touch last activity and run the badge rules."""
    old_level = profile.level
    profile.xp += reason.points
    profile.last_activity = datetime.now()
    if profile.level > old_level:
        logger.info(
            "level_up",
            user_id=profile.user_id,
            new_level=profile.level,
            total_xp=profile.xp,
            title=profile.title,
        )
    logger.debug("xp_awarded", user_id=profile.user_id, points=reason.points, reason=reason.value)
    return check_badges(profile)


def update_streak(profile: LearningProfile, now: datetime | None = None) -> list[Badge]:
    """Advance or reset the daily streak from the last activity time.

    One day since the last activity extends the streak, a longer gap resets
    it to 1, and same-day activity leaves it unchanged.
    """
    now = now or datetime.now()
    days = (now - profile.last_activity).days
    if days == 1:
        profile.current_streak += 1
        profile.last_activity = now
        logger.info("streak_extended", user_id=profile.user_id, streak=profile.current_streak)
        return check_badges(profile)
    if days > 1:
        profile.current_streak = 1
        profile.last_activity = now
        logger.info("streak_reset", user_id=profile.user_id)
    return []


def apply_quiz_result(profile: LearningProfile, concept_id: str, subject: str | None, correct: bool) -> bool:
    """Update mastery and attempts for a quiz answer.

    Returns:
        True when this was a correct answer on the first attempt.
    """
    first_attempt = profile.concept_attempts.get(concept_id, 0) == 0
    delta = QUIZ_CORRECT_DELTA if correct else QUIZ_WRONG_DELTA
    mastery = profile.adjust_concept_mastery(concept_id, delta)
    if subject is not None:
        profile.adjust_subject_mastery(subject, delta)
    profile.record_attempt(concept_id)

    if correct:
        if mastery >= CONCEPT_COMPLETION_MASTERY:
            profile.mark_completed(concept_id)
        if first_attempt:
            profile.perfect_quizzes += 1
            return True
    else:
        profile.mark_struggling(concept_id)
    return False
