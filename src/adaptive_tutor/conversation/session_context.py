"""Per-session ephemeral learning context."""

import structlog

from adaptive_tutor.models.session import SessionContext

logger = structlog.get_logger()

MAX_PROGRESS = 100.0
MAX_COMPLEXITY = 10.0


class SessionContextManager:
    """Owns the SessionContext of every running session, keyed by session id."""

    def __init__(self) -> None:
        self._contexts: dict[str, SessionContext] = {}

    def create(self, session_id: str, subject: str, difficulty: str) -> SessionContext:
        """Start a context whose difficulty trace is seeded with ``difficulty``."""
        context = SessionContext(
            session_id=session_id,
            subject=subject,
            difficulty=difficulty,
            difficulty_trace=[difficulty],
        )
        self._contexts[session_id] = context
        return context

    def get(self, session_id: str) -> SessionContext | None:
        return self._contexts.get(session_id)

    def discard(self, session_id: str) -> SessionContext | None:
        return self._contexts.pop(session_id, None)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._contexts

    def update(
        self,
        session_id: str,
        *,
        new_topic: str | None = None,
        new_concept: str | None = None,
        difficulty_change: str | None = None,
        progress_delta: float | None = None,
        adaptive_adjustment: bool = False,
    ) -> bool:
        """Fold one interaction into the session context.

        Topics and concepts keep insertion order without duplicates, the
        difficulty trace only grows when the value changes, progress stays in
        [0, 100] and the adjustment counter grows by one per flagged call.

        Returns:
            False when the session id is unknown.
        """
        context = self._contexts.get(session_id)
        if context is None:
            return False

        if new_topic is not None and new_topic not in context.topics_discussed:
            context.topics_discussed.append(new_topic)
        if new_concept is not None and new_concept not in context.concepts_explored:
            context.concepts_explored.append(new_concept)
        if difficulty_change is not None:
            trace = context.difficulty_trace
            if not trace or trace[-1] != difficulty_change:
                trace.append(difficulty_change)
                logger.info(
                    "session_difficulty_changed",
                    session_id=session_id,
                    difficulty=difficulty_change,
                )
            context.difficulty = difficulty_change
        if progress_delta is not None:
            context.progress = max(0.0, min(MAX_PROGRESS, context.progress + progress_delta))
        if adaptive_adjustment:
            context.adaptive_adjustments += 1
        return True

    def complexity_score(self, session_id: str) -> float:
        """Weighted size of the session context, clamped to [0, 10]; 0 if unknown."""
        context = self._contexts.get(session_id)
        if context is None:
            return 0.0
        return complexity_of(context)


def complexity_of(context: SessionContext) -> float:
    score = (
        0.5 * len(context.topics_discussed)
        + 0.3 * len(context.concepts_explored)
        + 0.2 * len(context.difficulty_trace)
        + 0.1 * context.adaptive_adjustments
    )
    return max(0.0, min(MAX_COMPLEXITY, score))
