"""Tests for rule-based message signal extraction."""

from datetime import datetime, timedelta

from adaptive_tutor.analysis.signals import (
    SignalAnalyzer,
    assess_complexity,
    classify_intent,
    detect_emotion,
    detect_learning_style,
    extract_topics,
)
from adaptive_tutor.models.analysis import Complexity, Emotion, Intent, LearningStyle


class TestClassifyIntent:
    def test_short_question_is_quick_clarification(self):
        intent, confidence = classify_intent("What is x?")
        assert intent == Intent.QUICK_CLARIFICATION
        assert confidence == 0.85

    def test_quiz_words_map_to_quiz_request(self):
        for message in ["Give me a quiz", "can we do a test", "ask me a question"]:
            intent, confidence = classify_intent(message)
            assert intent == Intent.QUIZ_REQUEST
            assert confidence == 0.8

    def test_equal_confidence_keeps_earlier_intent(self):
        intent, _ = classify_intent("I need a hint for this quiz")
        assert intent == Intent.QUIZ_REQUEST

    def test_highest_confidence_wins(self):
        intent, confidence = classify_intent("I'm confused")
        assert intent == Intent.CONFUSION_SIGNAL
        assert confidence == 0.95

    def test_deep_explanation_beats_generic_explain(self):
        intent, confidence = classify_intent("Explain in detail the water cycle")
        assert intent == Intent.DEEP_EXPLANATION
        assert confidence == 0.9

    def test_progress_inquiry(self):
        intent, _ = classify_intent("How am I doing?")
        assert intent == Intent.PROGRESS_INQUIRY

    def test_case_insensitive(self):
        intent, _ = classify_intent("WALK ME THROUGH fractions")
        assert intent == Intent.DEEP_EXPLANATION

    def test_no_match_is_general(self):
        assert classify_intent("hello there") == (Intent.GENERAL, 0.0)
        assert classify_intent("") == (Intent.GENERAL, 0.0)


class TestDetectEmotion:
    def test_frustrated(self):
        assert detect_emotion("This is so hard") == Emotion.FRUSTRATED

    def test_first_table_entry_wins(self):
        assert detect_emotion("I love it but it's hard") == Emotion.FRUSTRATED

    def test_uncertain(self):
        assert detect_emotion("I'm not sure") == Emotion.UNCERTAIN

    def test_neutral(self):
        assert detect_emotion("What is x?") == Emotion.NEUTRAL


class TestAssessComplexity:
    def test_short_without_question_mark_is_simple(self):
        assert assess_complexity("Hello there") == Complexity.SIMPLE
        assert assess_complexity("") == Complexity.SIMPLE

    def test_short_question_is_medium(self):
        assert assess_complexity("What is x?") == Complexity.MEDIUM

    def test_many_words_is_complex(self):
        message = "a b c d e f g h i j k l m n o p"
        assert len(message) < 100
        assert assess_complexity(message) == Complexity.COMPLEX

    def test_long_message_is_complex(self):
        assert assess_complexity("x" * 120) == Complexity.COMPLEX


class TestLearningStyleAndTopics:
    def test_visual(self):
        assert detect_learning_style("Can you show me a diagram") == LearningStyle.VISUAL

    def test_analytical(self):
        assert detect_learning_style("why is the sky blue") == LearningStyle.ANALYTICAL

    def test_mixed_when_no_cue(self):
        assert detect_learning_style("") == LearningStyle.MIXED

    def test_topics(self):
        assert extract_topics("algebra equation") == ["mathematics"]
        assert extract_topics("physics and poetry") == ["science", "literature"]
        assert extract_topics("nothing here") == []


class TestSignalAnalyzer:
    def test_analyze_spec_example(self):
        analyzer = SignalAnalyzer()
        analysis = analyzer.analyze("What is x?", "u1")
        assert analysis.complexity == Complexity.MEDIUM
        assert analysis.intent == Intent.QUICK_CLARIFICATION
        assert analysis.emotion == Emotion.NEUTRAL

    def test_empty_message_is_valid(self):
        analyzer = SignalAnalyzer()
        analysis = analyzer.analyze("", "u1")
        assert analysis.intent == Intent.GENERAL
        assert analysis.confidence == 0.0
        assert analysis.complexity == Complexity.SIMPLE
        assert len(analyzer.memory("u1")) == 1

    def test_memory_is_bounded_oldest_dropped(self):
        analyzer = SignalAnalyzer(memory_size=20)
        for i in range(25):
            analyzer.analyze(f"message {i}", "u1")
        memory = analyzer.memory("u1")
        assert len(memory) == 20
        assert memory[0].message == "message 5"
        assert memory[-1].message == "message 24"

    def test_memory_is_per_user(self):
        analyzer = SignalAnalyzer()
        analyzer.analyze("hi", "u1")
        assert analyzer.memory("u2") == []
        assert analyzer.last_interaction("u2") is None

    def test_recent(self):
        analyzer = SignalAnalyzer()
        for i in range(7):
            analyzer.analyze(f"m{i}", "u1")
        assert [e.message for e in analyzer.recent("u1", 3)] == ["m4", "m5", "m6"]
        assert analyzer.recent("u1", 0) == []

    def test_last_interaction_and_counts(self):
        analyzer = SignalAnalyzer()
        now = datetime(2026, 3, 1, 12, 0)
        analyzer.analyze("This is hard", "u1", now=now - timedelta(minutes=5))
        analyzer.analyze("Give me a quiz", "u1", now=now)
        assert analyzer.last_interaction("u1") == now
        assert analyzer.intent_counts("u1")[Intent.QUIZ_REQUEST] == 1
        assert analyzer.dominant_emotion("u1") in (Emotion.FRUSTRATED, Emotion.NEUTRAL)
        assert analyzer.dominant_emotion("nobody") == Emotion.NEUTRAL
