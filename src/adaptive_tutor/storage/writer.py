"""Background consumer that applies persistence events off the request path."""

import asyncio
from dataclasses import dataclass

import structlog

from adaptive_tutor.errors import PersistenceError
from adaptive_tutor.models.learning_profile import LearningProfile
from adaptive_tutor.models.session import ChatMessage, SessionMetrics, TutorSession
from adaptive_tutor.storage.persistence import PersistenceGateway

logger = structlog.get_logger()


@dataclass(frozen=True)
class SaveProfile:
    profile: LearningProfile


@dataclass(frozen=True)
class SaveMessage:
    message: ChatMessage


@dataclass(frozen=True)
class SaveSession:
    session: TutorSession
    metrics: SessionMetrics | None = None


PersistenceEvent = SaveProfile | SaveMessage | SaveSession


class PersistenceWorker:
    """Drains a queue of persistence events into a gateway.

    Callers enqueue snapshots and never wait for the write. Gateway failures
    are logged and dropped; in-memory state stays authoritative.

    Args:
        gateway: Destination store.
    """

    def __init__(self, gateway: PersistenceGateway) -> None:
        self.gateway = gateway
        self._queue: asyncio.Queue[PersistenceEvent] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())
            logger.info("persistence_worker_started")

    def save_profile(self, profile: LearningProfile) -> None:
        self._queue.put_nowait(SaveProfile(profile.model_copy(deep=True)))

    def save_message(self, message: ChatMessage) -> None:
        self._queue.put_nowait(SaveMessage(message.model_copy(deep=True)))

    def save_session(self, session: TutorSession, metrics: SessionMetrics | None = None) -> None:
        self._queue.put_nowait(SaveSession(session.model_copy(deep=True), metrics))

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def flush(self) -> None:
        """Wait until every queued event has been applied or dropped."""
        if not self.running:
            self.start()
        await self._queue.join()

    async def stop(self) -> None:
        """Flush outstanding events and stop the consumer task."""
        if self._task is None:
            return
        await self.flush()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("persistence_worker_stopped", failures=self.failures)

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._apply(event)
            except PersistenceError as e:
                self.failures += 1
                logger.warning("persistence_failed", event_type=type(event).__name__, error=str(e))
            except Exception:
                self.failures += 1
                logger.exception("persistence_failed", event_type=type(event).__name__)
            finally:
                self._queue.task_done()

    async def _apply(self, event: PersistenceEvent) -> None:
        match event:
            case SaveProfile(profile=profile):
                await self.gateway.save_profile(profile)
            case SaveMessage(message=message):
                await self.gateway.save_message(message)
            case SaveSession(session=session, metrics=metrics):
                await self.gateway.save_session(session, metrics)
