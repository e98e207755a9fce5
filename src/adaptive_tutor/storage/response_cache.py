"""Shared cache of generated answers for frequently asked questions."""

import hashlib
import re
import threading

import structlog

from adaptive_tutor.models.analysis import Analysis, Complexity, Intent

logger = structlog.get_logger()

CACHEABLE_INTENTS = frozenset({Intent.QUICK_CLARIFICATION, Intent.VALIDATION_SEEKING})
MAX_CACHEABLE_CHARS = 200
PERSONAL_MARKERS = ("you", "your")

_WHITESPACE = re.compile(r"\s+")


def normalize_message(message: str) -> str:
    return _WHITESPACE.sub(" ", message.lower().strip())


def make_key(subject: str, analysis: Analysis, message: str) -> str:
    """Key an answer by subject, intent, complexity and normalized message."""
    digest = hashlib.md5(normalize_message(message).encode()).hexdigest()
    return f"{subject}_{analysis.intent.value}_{analysis.complexity.value}_{digest}"


def is_readable(analysis: Analysis) -> bool:
    """Whether a cached answer may be served for this message."""
    if analysis.intent in CACHEABLE_INTENTS:
        return True
    return analysis.intent == Intent.QUESTION and analysis.complexity == Complexity.SIMPLE


def is_storable(analysis: Analysis, answer: str) -> bool:
    """Short, impersonal answers to cacheable intents only."""
    if analysis.intent not in CACHEABLE_INTENTS:
        return False
    if len(answer) >= MAX_CACHEABLE_CHARS:
        return False
    return not any(marker in answer for marker in PERSONAL_MARKERS)


class ResponseCache:
    """Bounded answer cache with insertion-order eviction.

    Reads are plain dict lookups. Writes take a short lock. Reading an entry
    does not refresh it, and re-storing an existing key keeps its original
    position.

    Args:
        max_entries: Capacity; the oldest-inserted entries are evicted first.
    """

    def __init__(self, max_entries: int = 100) -> None:
        self.max_entries = max_entries
        self._entries: dict[str, str] = {}
        self._write_lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> str | None:
        answer = self._entries.get(key)
        if answer is None:
            self._misses += 1
        else:
            self._hits += 1
        return answer

    def put(self, key: str, answer: str) -> None:
        with self._write_lock:
            self._entries[key] = answer
            overflow = len(self._entries) - self.max_entries
            if overflow > 0:
                for old_key in list(self._entries)[:overflow]:
                    del self._entries[old_key]
                logger.debug("response_cache_evicted", evicted=overflow, size=len(self._entries))

    def keys(self) -> list[str]:
        """Keys in insertion order, oldest first."""
        return list(self._entries)

    def clear(self) -> None:
        with self._write_lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total else 0.0,
        }
