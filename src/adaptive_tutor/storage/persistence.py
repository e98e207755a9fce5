"""Persistence gateway contract and a JSON-file implementation.

Documents are stored as JSON with fcntl.flock for readers and an atomic
temp-file + os.replace for writers.
"""

import asyncio
import fcntl
import json
import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Protocol

import structlog
from pydantic import ValidationError

from adaptive_tutor.errors import PersistenceError
from adaptive_tutor.models.learning_profile import LearningProfile
from adaptive_tutor.models.session import ChatMessage, SessionMetrics, SessionSummary, TutorSession

logger = structlog.get_logger()


class PersistenceGateway(Protocol):
    """Document store used by the tutor. Implementations raise PersistenceError."""

    async def load_profile(self, user_id: str) -> LearningProfile | None: ...

    async def save_profile(self, profile: LearningProfile) -> None: ...

    async def save_message(self, message: ChatMessage) -> None: ...

    async def save_session(
        self, session: TutorSession, metrics: SessionMetrics | None = None
    ) -> None: ...

    async def load_recent_sessions(self, user_id: str, since_days: int) -> list[SessionSummary]: ...


def _atomic_write_json(path: Path, data: dict) -> None:
    with tempfile.NamedTemporaryFile("w", dir=path.parent, delete=False, suffix=".tmp") as tmp:
        json.dump(data, tmp, default=str)
    os.replace(tmp.name, path)


def _read_json(path: Path) -> dict:
    with open(path) as f:
        fcntl.flock(f, fcntl.LOCK_SH)
        data = json.load(f)
        fcntl.flock(f, fcntl.LOCK_UN)
    return data


def _session_summary(data: dict, user_id: str, cutoff: datetime) -> SessionSummary | None:
    """Summary of a stored session record, or None when it belongs elsewhere or is too old."""
    if data.get("user_id") != user_id:
        return None
    started_at = datetime.fromisoformat(str(data["started_at"]))
    if started_at < cutoff:
        return None
    return SessionSummary(
        session_id=data["session_id"],
        user_id=user_id,
        subject=data.get("subject"),
        started_at=started_at,
        ended_at=data.get("ended_at"),
        metrics=SessionMetrics(**(data.get("metrics") or {})),
    )


class JsonFileGateway:
    """Stores profiles, sessions and per-session message logs as JSON files.

    Args:
        profiles_dir: One ``<user_id>.json`` per learner.
        sessions_dir: One ``<session_id>.json`` per session.
        messages_dir: One ``<session_id>.json`` message log per session.
    """

    def __init__(self, profiles_dir: Path, sessions_dir: Path, messages_dir: Path) -> None:
        self.profiles_dir = profiles_dir
        self.sessions_dir = sessions_dir
        self.messages_dir = messages_dir
        for d in (profiles_dir, sessions_dir, messages_dir):
            d.mkdir(parents=True, exist_ok=True)

    def profile_path(self, user_id: str) -> Path:
        return self.profiles_dir / f"{user_id}.json"

    def session_path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.json"

    def messages_path(self, session_id: str) -> Path:
        return self.messages_dir / f"{session_id}.json"

    # Blocking implementations, run in a worker thread by the async methods.

    def _load_profile(self, user_id: str) -> LearningProfile | None:
        path = self.profile_path(user_id)
        if not path.exists():
            return None
        return LearningProfile(**_read_json(path))

    def _save_profile(self, profile: LearningProfile) -> None:
        profile.updated_at = datetime.now()
        _atomic_write_json(self.profile_path(profile.user_id), profile.model_dump(mode="json"))

    def _save_message(self, message: ChatMessage) -> None:
        path = self.messages_path(message.session_id)
        lock_path = path.with_suffix(".lock")
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            data = json.loads(path.read_text()) if path.exists() else {"messages": []}
            data["messages"].append(message.model_dump(mode="json"))
            _atomic_write_json(path, data)

    def _save_session(self, session: TutorSession, metrics: SessionMetrics | None) -> None:
        data = session.model_dump(mode="json", exclude={"messages"})
        data["message_ids"] = [m.id for m in session.messages]
        data["metrics"] = metrics.model_dump(mode="json") if metrics else None
        _atomic_write_json(self.session_path(session.session_id), data)

    def _load_recent_sessions(self, user_id: str, since_days: int) -> list[SessionSummary]:
        cutoff = datetime.now() - timedelta(days=since_days)
        summaries = []
        for path in self.sessions_dir.glob("*.json"):
            try:
                summary = _session_summary(_read_json(path), user_id, cutoff)
            except (OSError, ValueError, KeyError, TypeError, AttributeError, ValidationError) as e:
                logger.warning("session_file_skipped", path=str(path), error=str(e))
                continue
            if summary is not None:
                summaries.append(summary)
        summaries.sort(key=lambda s: s.started_at, reverse=True)
        return summaries

    async def _run(self, operation: str, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
            raise PersistenceError(f"{operation} failed: {e}") from e

    async def load_profile(self, user_id: str) -> LearningProfile | None:
        return await self._run("load_profile", self._load_profile, user_id)

    async def save_profile(self, profile: LearningProfile) -> None:
        await self._run("save_profile", self._save_profile, profile)

    async def save_message(self, message: ChatMessage) -> None:
        await self._run("save_message", self._save_message, message)

    async def save_session(self, session: TutorSession, metrics: SessionMetrics | None = None) -> None:
        await self._run("save_session", self._save_session, session, metrics)

    async def load_recent_sessions(self, user_id: str, since_days: int) -> list[SessionSummary]:
        return await self._run("load_recent_sessions", self._load_recent_sessions, user_id, since_days)

    def read_messages(self, session_id: str) -> list[ChatMessage]:
        """Stored message log of a session, oldest first."""
        path = self.messages_path(session_id)
        if not path.exists():
            return []
        return [ChatMessage(**m) for m in _read_json(path)["messages"]]
