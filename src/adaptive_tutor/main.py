"""Logging setup and wiring of the tutoring engine from settings."""

import logging
import os

import structlog

from adaptive_tutor.analysis.signals import SignalAnalyzer
from adaptive_tutor.config import Settings, get_settings
from adaptive_tutor.conversation.adaptation import DifficultyAdaptationEngine
from adaptive_tutor.generation.client import Generator, OpenAIGenerator, RetryingGenerator
from adaptive_tutor.knowledge.graph import KnowledgeGraph
from adaptive_tutor.storage.persistence import JsonFileGateway, PersistenceGateway
from adaptive_tutor.storage.response_cache import ResponseCache
from adaptive_tutor.tutor.orchestrator import TutoringOrchestrator


def configure_logging() -> None:
    """Configure structlog based on the ENV environment variable."""
    is_production = os.getenv("ENV", "development").lower() == "production"

    if is_production:
        # Production: JSON format for machine parsing
        renderer = structlog.processors.JSONRenderer()
        level = logging.INFO
    else:
        # Development: console format for human readability
        renderer = structlog.dev.ConsoleRenderer()
        level = logging.DEBUG

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_generator(settings: Settings) -> Generator:
    return RetryingGenerator(
        OpenAIGenerator(
            api_key=settings.openai_api_key,
            model=settings.generation_model,
            temperature=settings.generation_temperature,
        ),
        timeout=settings.generation_timeout_seconds,
        max_attempts=settings.generation_max_attempts,
        backoff=settings.generation_backoff_seconds,
    )


def build_orchestrator(
    settings: Settings | None = None,
    generator: Generator | None = None,
    gateway: PersistenceGateway | None = None,
) -> TutoringOrchestrator:
    """Assemble an orchestrator with the configured stores and bounds."""
    settings = settings or get_settings()
    if gateway is None:
        gateway = JsonFileGateway(
            profiles_dir=settings.profiles_dir,
            sessions_dir=settings.sessions_dir,
            messages_dir=settings.messages_dir,
        )
    return TutoringOrchestrator(
        generator=generator or build_generator(settings),
        graph=KnowledgeGraph.from_yaml(settings.graph_path),
        gateway=gateway,
        analyzer=SignalAnalyzer(memory_size=settings.memory_max_entries),
        adaptation=DifficultyAdaptationEngine(history_size=settings.difficulty_history_size),
        cache=ResponseCache(max_entries=settings.cache_max_entries),
        recent_sessions_days=settings.recent_sessions_days,
    )
