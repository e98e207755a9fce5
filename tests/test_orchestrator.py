"""Tests for the tutoring orchestrator flow."""

import asyncio
import random
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from adaptive_tutor.conversation.prompts import APOLOGY
from adaptive_tutor.errors import GenerationError, PersistenceError
from adaptive_tutor.knowledge.graph import KnowledgeGraph
from adaptive_tutor.models.analysis import Intent
from adaptive_tutor.models.session import DifficultyTier, MessageKind, ReplyStatus, SessionStatus
from adaptive_tutor.storage.persistence import JsonFileGateway
from adaptive_tutor.storage.response_cache import ResponseCache
from adaptive_tutor.tutor.orchestrator import Handler, TutoringOrchestrator, route_intent

GRAPH_YAML = Path(__file__).resolve().parent.parent / "config" / "knowledge" / "graph.yaml"
ANSWER = "Here is a short answer."
DEEP_QUESTION = (
    "Can you explain in detail how the quadratic formula is derived by completing the square "
    "for a general equation with any coefficients?"
)


@pytest.fixture
def graph():
    return KnowledgeGraph.from_yaml(GRAPH_YAML)


@pytest.fixture
def generator():
    mock = AsyncMock()
    mock.generate.return_value = ANSWER
    return mock


@pytest.fixture
def tutor(generator, graph):
    return TutoringOrchestrator(generator, graph, rng=random.Random(0))


def _json_gateway(tmp_path):
    return JsonFileGateway(
        profiles_dir=tmp_path / "profiles",
        sessions_dir=tmp_path / "sessions",
        messages_dir=tmp_path / "messages",
    )


class TestRouting:
    def test_every_intent_has_a_handler(self):
        for intent in Intent:
            assert isinstance(route_intent(intent), Handler)

    def test_progress_inquiry_gets_a_report(self):
        assert route_intent(Intent.PROGRESS_INQUIRY) == Handler.PROGRESS_REPORT
        assert route_intent(Intent.CONFUSION_SIGNAL) == Handler.HANDLE_CONFUSION
        assert route_intent(Intent.GENERAL) == Handler.GENERAL_RESPONSE


class TestSessionLifecycle:
    async def test_start_session(self, tutor):
        session_id = await tutor.start_session("u1", "Mathematics")
        assert session_id.startswith("session_")
        session = tutor.get_session(session_id)
        assert session.status == SessionStatus.CREATED
        messages = tutor.get_session_messages(session_id)
        assert len(messages) == 1
        assert messages[0].kind == MessageKind.WELCOME
        assert "Let's start your Mathematics journey!" in messages[0].content
        profile = await tutor.profiles.get("u1")
        assert profile.xp == 10
        assert profile.total_sessions == 1

    async def test_first_message_activates_session(self, tutor):
        session_id = await tutor.start_session("u1", "Mathematics")
        reply = await tutor.send_message(session_id, "What is x?")
        assert reply.ok
        assert reply.analysis.intent == Intent.QUICK_CLARIFICATION
        assert reply.message.kind == MessageKind.ANSWER
        assert reply.message.content == ANSWER
        assert reply.xp_awarded == 5
        assert tutor.get_session(session_id).status == SessionStatus.ACTIVE

    async def test_first_session_badge_unlocked_once(self, tutor):
        session_id = await tutor.start_session("u1", "Mathematics")
        first = await tutor.send_message(session_id, "hello there")
        second = await tutor.send_message(session_id, "hello again")
        assert "first_session" in first.new_badges
        assert "first_session" not in second.new_badges
        profile = await tutor.profiles.get("u1")
        assert profile.unlocked_badges.count("first_session") == 1
        assert profile.messages_sent == 2
        assert profile.xp == 20

    async def test_unknown_session(self, tutor):
        reply = await tutor.send_message("session_missing", "hi")
        assert reply.status == ReplyStatus.NO_SUCH_SESSION
        assert reply.message is None
        quiz = await tutor.submit_quiz_answer("session_missing", "math_algebra_basics", "A", 0)
        assert quiz.status == ReplyStatus.NO_SUCH_SESSION
        summary = await tutor.end_session("session_missing")
        assert summary.found is False

    async def test_end_session_metrics(self, tutor):
        session_id = await tutor.start_session("u1", "Mathematics")
        await tutor.send_message(session_id, "What is x?")
        await tutor.submit_quiz_answer(session_id, "math_algebra_basics", "A", 0)

        summary = await tutor.end_session(session_id)
        metrics = summary.metrics
        assert summary.found
        assert metrics.total_messages == 5
        assert metrics.user_messages == 2
        assert metrics.assistant_messages == 3
        assert metrics.correct_answers == 1
        assert metrics.topics_discussed == 1
        assert metrics.concepts_explored == 1
        assert metrics.difficulty_progression == ["medium", "easy"]
        assert metrics.learning_path_progress == 5.0
        assert metrics.mastery_gain == pytest.approx(0.4)
        assert metrics.xp_earned == 30
        assert 0.0 < metrics.engagement_score <= 1.0

        assert session_id not in tutor.contexts
        reply = await tutor.send_message(session_id, "hello")
        assert reply.status == ReplyStatus.NO_SUCH_SESSION

    async def test_session_ended_while_generating(self, tutor, generator):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_generate(prompt):
            started.set()
            await release.wait()
            return ANSWER

        generator.generate.side_effect = slow_generate
        session_id = await tutor.start_session("u1", "Mathematics")
        pending = asyncio.create_task(tutor.send_message(session_id, "hello there"))
        await started.wait()
        summary = await tutor.end_session(session_id)
        release.set()
        reply = await pending

        assert reply.status == ReplyStatus.NO_SUCH_SESSION
        assert reply.message is None
        assert summary.metrics.xp_earned == 10
        profile = await tutor.profiles.get("u1")
        assert profile.xp == 10
        assert profile.messages_sent == 0
        assert session_id not in tutor.contexts


class TestAnswering:
    async def test_injected_empty_cache_is_used(self, generator, graph):
        cache = ResponseCache(max_entries=7)
        tutor = TutoringOrchestrator(generator, graph, cache=cache)
        assert tutor.cache is cache

        session_id = await tutor.start_session("u1", "Mathematics")
        await tutor.send_message(session_id, "What is x?")
        assert len(cache) == 1

    async def test_cached_answer_served_across_sessions(self, tutor, generator):
        first_session = await tutor.start_session("u1", "Mathematics")
        second_session = await tutor.start_session("u2", "Mathematics")
        first = await tutor.send_message(first_session, "What is x?")
        second = await tutor.send_message(second_session, "what  is X?")
        assert first.from_cache is False
        assert second.from_cache is True
        assert second.message.content == first.message.content
        assert generator.generate.await_count == 1

    async def test_personal_answers_are_not_cached(self, tutor, generator):
        generator.generate.return_value = "Here is your answer."
        session_id = await tutor.start_session("u1", "Mathematics")
        await tutor.send_message(session_id, "What is x?")
        reply = await tutor.send_message(session_id, "What is x?")
        assert reply.from_cache is False
        assert generator.generate.await_count == 2

    async def test_generation_failure_returns_apology(self, tutor, generator):
        generator.generate.side_effect = GenerationError("down")
        session_id = await tutor.start_session("u1", "Mathematics")
        reply = await tutor.send_message(session_id, "What is x?")

        assert reply.status == ReplyStatus.GENERATION_FAILED
        assert reply.message.content == APOLOGY
        assert reply.message.kind == MessageKind.ERROR
        profile = await tutor.profiles.get("u1")
        assert profile.xp == 10
        assert profile.messages_sent == 0
        assert tutor.adaptation.history("u1") == []
        assert tutor.contexts.get(session_id).topics_discussed == []
        assert len(tutor.get_session_messages(session_id)) == 3

    async def test_tier_change_updates_difficulty_trace(self, tutor):
        session_id = await tutor.start_session("u1", "Mathematics")
        reply = await tutor.send_message(session_id, DEEP_QUESTION)
        assert reply.analysis.intent == Intent.DEEP_EXPLANATION
        assert tutor.get_recommended_difficulty("u1") == DifficultyTier.HARD
        context = tutor.contexts.get(session_id)
        assert context.difficulty_trace == ["medium", "hard"]
        assert context.difficulty == "hard"

    async def test_general_message_uses_generator(self, tutor, generator):
        session_id = await tutor.start_session("u1", "Mathematics")
        reply = await tutor.send_message(session_id, "hello there")
        assert reply.message.kind == MessageKind.TEXT
        prompt = generator.generate.await_args.args[0]
        assert 'Student says: "hello there"' in prompt


class TestQuizzes:
    async def test_quiz_from_bank(self, tutor, generator):
        session_id = await tutor.start_session("u1", "Mathematics")
        reply = await tutor.send_message(session_id, "Give me a quiz")
        assert reply.message.kind == MessageKind.QUIZ
        assert reply.message.content.startswith("📝 **Quick Quiz Time!**")
        assert "Algebra Basics" in reply.message.content
        generator.generate.assert_not_awaited()
        context = tutor.contexts.get(session_id)
        assert context.concepts_explored == ["math_algebra_basics"]
        assert context.progress == 10.0

    async def test_bank_quiz_message_can_be_graded(self, tutor, graph):
        session_id = await tutor.start_session("u1", "Mathematics")
        quiz = (await tutor.send_message(session_id, "Give me a quiz")).message
        bank = {item.id: item for item in graph.quizzes_for("math_algebra_basics")}
        assert quiz.quiz_concept_id == "math_algebra_basics"
        assert quiz.quiz_item_id in bank
        assert quiz.correct_index == bank[quiz.quiz_item_id].correct_index

        reply = await tutor.submit_quiz_answer(
            session_id, quiz.quiz_concept_id, "ABCD"[quiz.correct_index], quiz.correct_index
        )
        assert reply.message.is_correct is True

    async def test_dynamic_quiz_without_bank(self, tutor, generator):
        session_id = await tutor.start_session("u1", "History")
        reply = await tutor.send_message(session_id, "Give me a quiz")
        assert reply.message.kind == MessageKind.QUIZ
        prompt = generator.generate.await_args.args[0]
        assert "Create a multiple-choice quiz question for History at medium level" in prompt
        assert reply.message.quiz_item_id is None
        assert reply.message.correct_index is None

    async def test_correct_answer(self, tutor):
        session_id = await tutor.start_session("u1", "Mathematics")
        reply = await tutor.submit_quiz_answer(
            session_id, "math_algebra_basics", "a", 0, explanation="Subtract then divide."
        )
        assert reply.ok
        assert reply.message.is_correct is True
        assert "Subtract then divide." in reply.message.content
        assert reply.xp_awarded == 15
        assert "perfect_quiz" in reply.new_badges

        profile = await tutor.profiles.get("u1")
        assert profile.concept_mastery["math_algebra_basics"] == 0.4
        assert profile.subject_mastery["Mathematics"] == 0.4
        assert profile.xp == 25

    async def test_wrong_answer(self, tutor):
        session_id = await tutor.start_session("u1", "Mathematics")
        reply = await tutor.submit_quiz_answer(session_id, "math_algebra_basics", "C", 0)
        assert reply.message.is_correct is False
        assert "The correct answer was **A**" in reply.message.content
        assert reply.xp_awarded == 5
        profile = await tutor.profiles.get("u1")
        assert profile.concept_mastery["math_algebra_basics"] == 0.25
        assert "math_algebra_basics" in profile.struggling_concepts

    async def test_invalid_letter_is_wrong(self, tutor):
        session_id = await tutor.start_session("u1", "Mathematics")
        reply = await tutor.submit_quiz_answer(session_id, "math_algebra_basics", "Z", 0)
        assert reply.message.is_correct is False


class TestOtherHandlers:
    async def test_hint_levels_escalate(self, tutor, generator):
        session_id = await tutor.start_session("u1", "Mathematics")
        first = await tutor.send_message(session_id, "I need a hint")
        second = await tutor.send_message(session_id, "another hint please")
        assert first.message.content.startswith("💡 **Hint 1:**")
        assert second.message.content.startswith("💡 **Hint 2:**")
        assert second.message.hint_level == 1
        assert tutor.contexts.get(session_id).adaptive_adjustments == 2

    async def test_progress_report(self, tutor, generator):
        session_id = await tutor.start_session("u1", "Mathematics")
        reply = await tutor.send_message(session_id, "How am I doing?")
        assert reply.message.kind == MessageKind.PROGRESS_REPORT
        assert "Your Progress in Mathematics" in reply.message.content
        generator.generate.assert_not_awaited()

    async def test_confusion_marks_struggling_concept(self, tutor):
        session_id = await tutor.start_session("u1", "Mathematics")
        reply = await tutor.send_message(session_id, "I'm confused")
        assert reply.message.kind == MessageKind.CONFUSION_HELP
        profile = await tutor.profiles.get("u1")
        assert profile.struggling_concepts == ["math_algebra_basics"]
        assert tutor.contexts.get(session_id).adaptive_adjustments == 1


class TestAnalytics:
    async def test_next_concept_and_analytics(self, tutor):
        assert await tutor.get_next_concept("u1", "Mathematics") == "math_algebra_basics"
        assert await tutor.get_next_concept("u1", "History") is None

        session_id = await tutor.start_session("u1", "Mathematics")
        await tutor.send_message(session_id, "What is x?")
        analytics = await tutor.get_user_analytics("u1")
        assert analytics["total_points"] == 15
        assert analytics["level"] == 1
        assert analytics["learning_patterns"]["preferred_intents"] == {"quick_clarification": 1}

    async def test_progress_analysis(self, tutor):
        session_id = await tutor.start_session("u1", "Mathematics")
        await tutor.submit_quiz_answer(session_id, "math_algebra_basics", "B", 0)
        analysis = await tutor.get_progress_analysis("u1", "Mathematics")
        assert analysis.knowledge_gaps == ["Algebra Basics"]
        assert analysis.recommended_topics == ["Algebra Basics"]
        assert analysis.progress_trend == "insufficient_data"
        assert analysis.next_milestone == "Achieve 50% subject mastery"


class TestConcurrencyAndPersistence:
    async def test_concurrent_messages_for_one_user(self, tutor):
        first = await tutor.start_session("u1", "Mathematics")
        second = await tutor.start_session("u1", "Science")
        await asyncio.gather(*(
            tutor.send_message(first if i % 2 else second, f"hello number {i}") for i in range(10)
        ))
        profile = await tutor.profiles.get("u1")
        assert profile.messages_sent == 10
        assert profile.xp == 70

    async def test_state_survives_restart(self, tmp_path, generator, graph):
        tutor = TutoringOrchestrator(generator, graph, _json_gateway(tmp_path))
        session_id = await tutor.start_session("u1", "Mathematics")
        await tutor.send_message(session_id, "hello there")
        await tutor.end_session(session_id)
        await tutor.aclose()

        gateway = _json_gateway(tmp_path)
        assert len(gateway.read_messages(session_id)) == 3
        restarted = TutoringOrchestrator(generator, graph, gateway)
        profile = await restarted.profiles.get("u1")
        assert "first_session" in profile.unlocked_badges
        assert profile.xp == 15

        new_session = await restarted.start_session("u1", "Mathematics")
        welcome = restarted.get_session_messages(new_session)[0].content
        assert "Continuing from earlier today" in welcome
        await restarted.aclose()

    async def test_stray_session_file_does_not_block_start(self, tmp_path, generator, graph):
        gateway = _json_gateway(tmp_path)
        (gateway.sessions_dir / "stray.json").write_text('{"user_id": "u1"}')
        tutor = TutoringOrchestrator(generator, graph, gateway)

        session_id = await tutor.start_session("u1", "Mathematics")
        assert tutor.get_session(session_id).recent_sessions_count == 0
        await tutor.end_session(session_id)
        await tutor.aclose()

        restarted = TutoringOrchestrator(generator, graph, gateway)
        new_session = await restarted.start_session("u1", "Mathematics")
        assert restarted.get_session(new_session).recent_sessions_count == 1
        await restarted.aclose()

    async def test_persistence_failures_are_not_fatal(self, generator, graph):
        gateway = AsyncMock()
        for name in ["load_profile", "save_profile", "save_message", "save_session", "load_recent_sessions"]:
            getattr(gateway, name).side_effect = PersistenceError("offline")
        tutor = TutoringOrchestrator(generator, graph, gateway)

        session_id = await tutor.start_session("u1", "Mathematics")
        reply = await tutor.send_message(session_id, "hello there")
        assert reply.ok
        await tutor.aclose()
        assert tutor.writer.failures > 0
