"""Tests for prompt builders and reply templates."""

import random
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from adaptive_tutor.analysis import insights
from adaptive_tutor.conversation import prompts
from adaptive_tutor.knowledge.graph import KnowledgeGraph
from adaptive_tutor.models.analysis import Analysis, Complexity, ConversationMemoryEntry, Intent
from adaptive_tutor.models.learning_profile import LearningProfile
from adaptive_tutor.models.response import ResponseConfig
from adaptive_tutor.models.session import ChatMessage, MessageKind, MessageRole, SessionSummary

GRAPH_YAML = Path(__file__).resolve().parent.parent / "config" / "knowledge" / "graph.yaml"


def _msg(role, content, kind=MessageKind.TEXT, is_correct=None):
    return ChatMessage(
        session_id="s1", user_id="u1", role=role, content=content, kind=kind, is_correct=is_correct
    )


class TestPrompts:
    def test_answer_prompt_contains_context(self):
        profile = LearningProfile(user_id="u1", subject_mastery={"Mathematics": 0.42})
        analysis = Analysis(intent=Intent.DEEP_EXPLANATION, complexity=Complexity.COMPLEX)
        config = ResponseConfig(include_examples=True, use_analogies=True, follow_ups=["Ready?"])
        history = [_msg(MessageRole.USER, f"q{i}") for i in range(5)]

        prompt = prompts.build_answer_prompt("Why?", "Mathematics", profile, analysis, config, history)
        assert "Subject mastery: 42%" in prompt
        assert "Provide 2-3 concrete examples" in prompt
        assert "Use an analogy" in prompt
        assert "Ready?" in prompt
        assert "Student: q1" not in prompt
        assert "Student: q4" in prompt

    def test_empty_history(self):
        assert prompts.format_history([]) == "(no previous messages)"

    def test_hint_prompt_levels(self):
        assert prompts.HINT_INSTRUCTIONS[0] in prompts.build_hint_prompt("2x = 4", 0)
        assert prompts.HINT_INSTRUCTIONS[-1] in prompts.build_hint_prompt("2x = 4", 9)

    def test_confusion_prompt_quotes_last_tutor_message(self):
        history = [_msg(MessageRole.ASSISTANT, "old"), _msg(MessageRole.ASSISTANT, "latest")]
        assert 'Previous explanation: "latest"' in prompts.build_confusion_prompt("huh", history)


class TestTemplates:
    def test_quiz_result_correct(self):
        text = prompts.format_quiz_result(True, 0, None, random.Random(1))
        assert text.startswith("✅ **Correct!**")
        assert "Great job understanding this concept!" in text

    def test_quiz_result_wrong(self):
        text = prompts.format_quiz_result(False, 3, "Because.")
        assert "The correct answer was **D**" in text
        assert "Because." in text

    def test_progress_report(self):
        graph = KnowledgeGraph.from_yaml(GRAPH_YAML)
        profile = LearningProfile(
            user_id="u1",
            subject_mastery={"Mathematics": 0.65},
            completed_concepts=["math_algebra_basics"],
            struggling_concepts=["math_linear_equations"],
        )
        text = prompts.progress_report(profile, "Mathematics", graph)
        assert text.startswith("💪")
        assert "Concepts Completed:** 1/3" in text
        assert "• Linear Equations" in text

    def test_welcome_for_returning_learner(self):
        now = datetime(2026, 3, 10, 12, 0)
        profile = LearningProfile(
            user_id="u1", messages_sent=3, last_activity=now - timedelta(hours=1), current_streak=4
        )
        recent = [SessionSummary(session_id="s0", subject="Science", started_at=now - timedelta(days=1))]
        text = prompts.welcome_message(profile, "Mathematics", recent, now=now)
        assert text.startswith("Welcome back!")
        assert "I remember our Science discussion from yesterday" in text
        assert "4 day streak" in text


class TestInsights:
    def test_engagement_score(self):
        messages = [
            _msg(MessageRole.USER, "what?"),
            _msg(MessageRole.ASSISTANT, "quiz", kind=MessageKind.QUIZ),
            _msg(MessageRole.ASSISTANT, "yes", kind=MessageKind.QUIZ_RESULT, is_correct=True),
        ]
        # 3 * 0.05 + 0.1 + 0.15 + 0.2
        assert insights.engagement_score(messages) == pytest.approx(0.6)
        assert insights.engagement_score([]) == 0.0

    def test_progress_trend(self):
        def entries(complexities):
            return [
                ConversationMemoryEntry(message="m", analysis=Analysis(complexity=c)) for c in complexities
            ]

        simple, complex_ = Complexity.SIMPLE, Complexity.COMPLEX
        assert insights.progress_trend(entries([simple, simple])) == "insufficient_data"
        assert insights.progress_trend(entries([simple, simple, complex_, complex_])) == "improving"
        assert insights.progress_trend(entries([complex_, complex_, simple, simple])) == "declining"
        assert insights.progress_trend(entries([simple] * 4)) == "stable"

    def test_next_milestone(self):
        assert insights.next_milestone(0.1) == "Complete 5 basic concepts"
        assert insights.next_milestone(0.95) == "Achieve expert level (95%+)"
