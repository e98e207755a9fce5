"""Prompt builders and fixed reply templates for the tutor."""

import random
from datetime import datetime

from adaptive_tutor.knowledge.graph import KnowledgeGraph
from adaptive_tutor.models.analysis import Analysis, Intent
from adaptive_tutor.models.knowledge import KnowledgeNode, QuizItem
from adaptive_tutor.models.learning_profile import LearningProfile
from adaptive_tutor.models.response import ResponseConfig
from adaptive_tutor.models.session import ChatMessage, MessageRole, SessionSummary

APOLOGY = "I apologize, but I encountered an error. Please try again!"
HISTORY_WINDOW = 3
OPTION_LETTERS = "ABCD"

ANSWER_BASE = """\
You are an expert AI tutor specializing in {subject} with a {tone} approach.

STUDENT CONTEXT:
- Current emotional state: {emotion}
- Preferred complexity: {complexity}
- Learning style: {learning_style}
- Subject mastery: {mastery:.0f}%
- Query intent: {intent}
- Response structure: {structure}
- Encouragement level: {encouragement}

CONVERSATION HISTORY:
{history}

CURRENT QUESTION: "{question}"

RESPONSE REQUIREMENTS:
"""

INTENT_REQUIREMENTS: dict[Intent, str] = {
    Intent.QUICK_CLARIFICATION: """\
- Provide a direct, concise answer (1-2 sentences max)
- Use simple, clear language
- End with a brief follow-up question if appropriate
""",
    Intent.DEEP_EXPLANATION: """\
- Provide comprehensive explanation with clear structure
- Use headings, bullet points, or numbered steps
- Include practical applications and connections
- {examples}
- End with thought-provoking follow-up questions
""",
    Intent.PROBLEM_SOLVING: """\
- Provide step-by-step solution methodology
- Explain the reasoning behind each step
- Highlight common pitfalls to avoid
- Suggest variations or alternative approaches
- Encourage practice with similar problems
""",
}

DEFAULT_REQUIREMENTS = """\
- Provide helpful, educational response matching student's needs
- Adapt tone and complexity to student's current state
- Include encouraging elements appropriate to their emotion
- End with engaging follow-up to continue learning
"""

HINT_INSTRUCTIONS = [
    "Give a subtle hint without revealing the answer",
    "Provide a more direct hint that guides toward the solution",
    "Break down the problem into clear steps",
    "Show the solution method with a similar example",
]

PRAISES = [
    "You're getting better every day!",
    "Your hard work is paying off!",
    "I'm impressed with your progress!",
    "You're a natural at this!",
    "Keep up the fantastic work!",
    "You're on fire today!",
    "That was brilliant thinking!",
    "You're becoming an expert!",
]


def format_history(history: list[ChatMessage], tutor_label: str = "AI") -> str:
    recent = history[-HISTORY_WINDOW:]
    lines = [
        f"{'Student' if m.role == MessageRole.USER else tutor_label}: {m.content.strip()}"
        for m in recent
    ]
    return "\n".join(lines) if lines else "(no previous messages)"


def build_answer_prompt(
    question: str,
    subject: str,
    profile: LearningProfile,
    analysis: Analysis,
    config: ResponseConfig,
    history: list[ChatMessage],
) -> str:
    base = ANSWER_BASE.format(
        subject=subject,
        tone=config.tone,
        emotion=analysis.emotion.value,
        complexity=config.complexity.value,
        learning_style=analysis.learning_style.value,
        mastery=profile.subject_mastery.get(subject, 0.5) * 100,
        intent=analysis.intent.value,
        structure=config.structure.value,
        encouragement=config.encouragement.value,
        history=format_history(history),
        question=question,
    )
    requirements = INTENT_REQUIREMENTS.get(analysis.intent, DEFAULT_REQUIREMENTS).format(
        examples=(
            "Provide 2-3 concrete examples"
            if config.include_examples
            else "Focus on conceptual understanding"
        ),
    )
    extras = []
    if config.use_analogies:
        extras.append("- Use an analogy to connect the idea to something familiar\n")
    if config.follow_ups:
        extras.append(f"- You may close with one of: {'; '.join(config.follow_ups)}\n")
    return base + requirements + "".join(extras)


def build_confusion_prompt(message: str, history: list[ChatMessage]) -> str:
    last_tutor_message = next(
        (m.content for m in reversed(history) if m.role == MessageRole.ASSISTANT), ""
    )
    return f"""\
The student is confused about your previous explanation.
Previous explanation: "{last_tutor_message}"
Student says: "{message}"

Provide a DIFFERENT, SIMPLER explanation that:
1. Uses more basic language
2. Breaks down the concept into smaller steps
3. Uses a relatable real-world example
4. Avoids jargon and technical terms
5. Includes visual descriptions if helpful

Keep it under 150 words and very encouraging."""


def build_dynamic_quiz_prompt(subject: str, difficulty: str) -> str:
    return f"""\
Create a multiple-choice quiz question for {subject} at {difficulty} level.
Format the response EXACTLY like this:

📝 **Quick Quiz Time!**

**Question:** [Your question here]

A) [Option A]
B) [Option B]
C) [Option C]
D) [Option D]

Reply with your answer (A, B, C, or D) and I'll let you know how you did!

Make it educational and age-appropriate for students."""


def build_hint_prompt(question: str, hint_level: int) -> str:
    instruction = HINT_INSTRUCTIONS[min(hint_level, len(HINT_INSTRUCTIONS) - 1)]
    return f"""\
The student needs help with: "{question}"
Hint level: {hint_level + 1}

{instruction}

Keep the hint brief (under 100 words) and encouraging.
Don't give the complete answer unless it's hint level 4+."""


def build_general_prompt(
    message: str, subject: str, profile: LearningProfile, history: list[ChatMessage]
) -> str:
    mastery = profile.subject_mastery.get(subject, 0.5)
    return f"""\
You are a friendly, encouraging AI tutor for {subject}.
Student mastery: {mastery * 100:.0f}%
Total points earned: {profile.xp}

Recent conversation:
{format_history(history, tutor_label="Tutor")}

Student says: "{message}"

Respond in a helpful, educational way that:
1. Addresses their message appropriately
2. Maintains an encouraging, supportive tone
3. Uses age-appropriate language
4. Includes emojis sparingly for friendliness
5. Suggests a learning activity if appropriate

Keep response under 150 words."""


def format_hint(response: str, hint_level: int) -> str:
    return f"💡 **Hint {hint_level + 1}:**\n\n{response}"


def format_quiz(item: QuizItem, concept: KnowledgeNode) -> str:
    options = "\n".join(
        f"{letter}) {option}" for letter, option in zip(OPTION_LETTERS, item.options)
    )
    return f"""\
📝 **Quick Quiz Time!**

**Question:** {item.prompt}

{options}

Reply with your answer (A, B, C, or D) and I'll let you know how you did!

💡 *This question tests: {concept.name}*
"""


def format_quiz_result(
    correct: bool,
    correct_index: int,
    explanation: str | None,
    rng: random.Random | None = None,
) -> str:
    if correct:
        praise = (rng or random).choice(PRAISES)
        return f"""\
✅ **Correct!** Excellent work!

{explanation or 'Great job understanding this concept!'}

{praise}

You earned **15 points**! 🎉
"""
    letter = OPTION_LETTERS[correct_index] if 0 <= correct_index < len(OPTION_LETTERS) else "?"
    return f"""\
❌ Not quite right, but that's okay!

The correct answer was **{letter}**

{explanation or 'Let me explain this concept differently...'}

Remember: Making mistakes is part of learning! You still earned **5 points** for trying! 💪
"""


def motivational_message(mastery: float) -> str:
    if mastery >= 0.9:
        return "🎉 Outstanding! You're mastering this subject!"
    elif mastery >= 0.7:
        return "Great progress! You're getting really good at this!"
    elif mastery >= 0.5:
        return "You're doing well! Keep practicing to improve further!"
    elif mastery >= 0.3:
        return "Good start! Every step forward counts!"
    else:
        return "You're just beginning your journey - that's exciting!"


def progress_report(profile: LearningProfile, subject: str, graph: KnowledgeGraph) -> str:
    mastery = profile.subject_mastery.get(subject, 0.0)
    subject_ids = {node.id for node in graph.nodes_for_subject(subject)}
    completed = sum(1 for concept_id in profile.completed_concepts if concept_id in subject_ids)

    if mastery > 0.8:
        emoji = "🌟"
    elif mastery > 0.6:
        emoji = "💪"
    elif mastery > 0.4:
        emoji = "📈"
    else:
        emoji = "🌱"

    focus = "\n".join(
        f"• {graph.display_name(concept_id)}" for concept_id in profile.struggling_concepts[:3]
    )
    return f"""\
{emoji} **Your Progress in {subject}**

📊 **Overall Mastery:** {mastery * 100:.0f}%
✅ **Concepts Completed:** {completed}/{len(subject_ids)}
🏆 **Total Points:** {profile.xp}
⭐ **Level:** {profile.level} ({profile.title})
🔥 **Current Streak:** {profile.current_streak} days
🎖️ **Badges Earned:** {len(profile.unlocked_badges)}

{motivational_message(mastery)}

**Areas to Focus On:**
{focus or '• Nothing flagged yet - keep exploring!'}

Keep up the great work! What would you like to practice next?
"""


def welcome_message(
    profile: LearningProfile,
    subject: str,
    recent_sessions: list[SessionSummary],
    now: datetime | None = None,
) -> str:
    now = now or datetime.now()
    mastery = profile.subject_mastery.get(subject, 0.0)
    returning = profile.messages_sent > 0 and abs((now - profile.last_activity).days) < 1

    greeting = (
        "Welcome back! Great to see you again!"
        if returning
        else "Hello! I'm your AI tutor, ready to help you learn!"
    )

    history_context = ""
    if recent_sessions and recent_sessions[0].started_at is not None:
        last = recent_sessions[0]
        days = (now - last.started_at).days
        if days == 0:
            history_context = "\n\n📚 Continuing from earlier today..."
        elif days == 1:
            history_context = f"\n\n📚 Welcome back! I remember our {last.subject} discussion from yesterday."
        elif days < 7:
            history_context = f"\n\n📚 Welcome back! We last discussed {last.subject} {days} days ago."

    streak = (
        f"\n\n🔥 You're on a {profile.current_streak} day streak! Amazing!"
        if profile.current_streak > 1
        else ""
    )
    mastery_line = (
        f"\n\n📊 Your current {subject} mastery: {mastery * 100:.0f}%"
        if mastery > 0
        else f"\n\n🌟 Let's start your {subject} journey!"
    )
    badges = (
        f"\n\n🎖️ Badges earned: {len(profile.unlocked_badges)}" if profile.unlocked_badges else ""
    )

    return f"""\
{greeting}{history_context}{streak}{mastery_line}{badges}

What would you like to learn about today? You can:
• Ask me any {subject} question
• Request a practice quiz
• Ask for hints on problems
• Check your progress
• Just chat about what you're learning!

How can I help you today?
"""
