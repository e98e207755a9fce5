"""Exception types raised across the tutoring engine."""


class TutorError(Exception):
    """Base class for tutoring engine errors."""


class GenerationError(TutorError):
    """The external generation call failed (timeout, network, quota)."""


class PersistenceError(TutorError):
    """A persistence gateway call failed. Logged, never surfaced to callers."""
