"""In-memory learning profile store backed by a persistence gateway."""

import asyncio
import contextlib
from collections.abc import AsyncIterator

import structlog

from adaptive_tutor.errors import PersistenceError
from adaptive_tutor.models.learning_profile import LearningProfile
from adaptive_tutor.storage.persistence import PersistenceGateway

logger = structlog.get_logger()


class LearningProfileStore:
    """Owns one LearningProfile and one asyncio.Lock per user.

    Profiles are loaded from the gateway on first access and created with
    defaults when missing or unreadable. After that the in-memory copy is
    authoritative.

    Args:
        gateway: Optional store to load profiles from.
    """

    def __init__(self, gateway: PersistenceGateway | None = None) -> None:
        self.gateway = gateway
        self._profiles: dict[str, LearningProfile] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, user_id: str) -> asyncio.Lock:
        """The lock serializing mutations of this user's state."""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    @contextlib.asynccontextmanager
    async def locked(self, user_id: str) -> AsyncIterator[LearningProfile]:
        """Hold the user's lock and yield their profile for mutation."""
        async with self.lock(user_id):
            yield await self._load(user_id)

    async def get(self, user_id: str) -> LearningProfile:
        async with self.lock(user_id):
            return await self._load(user_id)

    def peek(self, user_id: str) -> LearningProfile | None:
        """Cached profile without loading."""
        return self._profiles.get(user_id)

    async def _load(self, user_id: str) -> LearningProfile:
        profile = self._profiles.get(user_id)
        if profile is not None:
            return profile

        loaded = None
        if self.gateway is not None:
            try:
                loaded = await self.gateway.load_profile(user_id)
            except PersistenceError as e:
                logger.warning("profile_load_failed", user_id=user_id, error=str(e))
        if loaded is None:
            loaded = LearningProfile(user_id=user_id)
            logger.info("profile_created", user_id=user_id)
        self._profiles[user_id] = loaded
        return loaded
